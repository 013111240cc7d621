from __future__ import annotations

import typer

from fdoctl.apps.cli.common import settings_of
from fdoctl.services.settings import dump_settings

app = typer.Typer(help="Inspect the effective configuration")


@app.command("show")
def show(ctx: typer.Context) -> None:
    """Print the effective settings (file + environment) as YAML."""
    typer.echo(dump_settings(settings_of(ctx)), nl=False)
