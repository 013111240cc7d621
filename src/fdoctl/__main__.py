from fdoctl.apps.cli.app import app

app(prog_name="fdoctl")
