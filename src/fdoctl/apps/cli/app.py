from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from fdoctl.apps.cli.commands import config as config_cmd
from fdoctl.apps.cli.commands import env, onboarding, services
from fdoctl.services.errors import ConfigError
from fdoctl.services.logging import setup_logging
from fdoctl.services.settings import load_settings

app = typer.Typer(help="Provision, start and drive an FDO onboarding test environment", no_args_is_help=True)


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="settings file (default: $FDOCTL_CONFIG or ./fdoctl.yaml)"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING or ERROR"),
    log_json: bool = typer.Option(False, "--log-json", help="emit log records as JSON lines"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="also write JSON logs to this file"),
) -> None:
    obj = ctx.ensure_object(dict)
    if obj.get("settings") is None:
        try:
            obj["settings"] = load_settings(config)
        except ConfigError as exc:
            typer.secho(f"config error: {exc}", fg=typer.colors.RED, err=True)
            raise typer.Exit(2)
    setup_logging(log_level or obj["settings"].log_level, json_format=log_json, log_file=log_file)


app.command("setup")(env.setup)
app.command("clean")(env.clean)
app.command("fetch-repos")(env.fetch_repos)
app.command("start-services")(services.start_services)
app.command("stop-services")(services.stop_services)
app.command("status")(services.status)
app.command("health-check")(services.health_check)
app.command("publish-rendezvous-config")(onboarding.publish_rendezvous_config)
app.command("get-rendezvous-config")(onboarding.get_rendezvous_config)
app.command("send-ownership-voucher")(onboarding.send_ownership_voucher)
app.command("run-onboarding")(onboarding.run_onboarding)
app.add_typer(config_cmd.app, name="config")


if __name__ == "__main__":
    app()
