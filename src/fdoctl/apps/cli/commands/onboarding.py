from __future__ import annotations

from typing import Optional

import typer

from fdoctl.apps.cli.common import echo_json, make_driver, run_safe


@run_safe
def publish_rendezvous_config(ctx: typer.Context) -> None:
    """POST rendezvous info to the manufacturer and the owner redirect to the owner."""
    make_driver(ctx).publish_rendezvous_config()
    typer.secho("rendezvous configuration published", fg=typer.colors.GREEN)


@run_safe
def get_rendezvous_config(ctx: typer.Context) -> None:
    """Print the rendezvous info and owner redirect currently held by the services."""
    echo_json(make_driver(ctx).get_rendezvous_config())


@run_safe
def send_ownership_voucher(
    ctx: typer.Context,
    guid: str = typer.Argument(..., help="device GUID"),
) -> None:
    """Hand the device's ownership voucher to the owner service and trigger TO0."""
    make_driver(ctx).send_ownership_voucher(guid)
    typer.secho(f"voucher for {guid} sent", fg=typer.colors.GREEN)


@run_safe
def run_onboarding(
    ctx: typer.Context,
    guid: Optional[str] = typer.Option(None, "--guid", help="skip device initialization and onboard this GUID"),
    json_output: bool = typer.Option(False, "--json", help="print the result as JSON"),
) -> None:
    """Full bring-up: setup, services, rendezvous config, DI, voucher, TO."""
    result = make_driver(ctx).run_onboarding(guid)
    if json_output:
        echo_json(result)
        return
    typer.secho(f"device {result['guid']} onboarded", fg=typer.colors.GREEN)
