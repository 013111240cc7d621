from __future__ import annotations

import typer

from fdoctl.apps.cli.common import echo_json, make_driver, run_safe
from fdoctl.services.http.probe import RetryPolicy


@run_safe
def start_services(
    ctx: typer.Context,
    wait: bool = typer.Option(True, "--wait/--no-wait", help="block until every service answers its health check"),
    json_output: bool = typer.Option(False, "--json", help="print the result as JSON"),
) -> None:
    """Provision if needed, then start the rendezvous, manufacturer and owner services."""
    driver = make_driver(ctx)
    driver.start_services(wait=wait)
    procs = driver.ctx.orchestrator.list()
    if json_output:
        echo_json([p.to_dict() for p in procs])
        return
    for proc in procs:
        typer.echo(f"{proc.name}: {proc.status.value} ports={','.join(str(p) for p in proc.ports)}")


@run_safe
def stop_services(ctx: typer.Context) -> None:
    """Stop every service started by this driver."""
    failed = make_driver(ctx).stop_services()
    for name in failed:
        typer.secho(f"warning: could not stop {name}", fg=typer.colors.YELLOW, err=True)
    typer.echo("services stopped")


@run_safe
def status(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="print the result as JSON"),
) -> None:
    """Show the tracked service processes."""
    procs = make_driver(ctx).ctx.orchestrator.list()
    if json_output:
        echo_json([p.to_dict() for p in procs])
        return
    if not procs:
        typer.echo("no services tracked")
    for proc in procs:
        typer.echo(f"{proc.name}: {proc.status.value}")


@run_safe
def health_check(
    ctx: typer.Context,
    attempts: int = typer.Option(1, "--attempts", min=1, help="probe attempts per service"),
    delay: float = typer.Option(1.0, "--delay", min=0.0, help="seconds between attempts"),
) -> None:
    """GET /health on every service, in order."""
    urls = make_driver(ctx).health_check(RetryPolicy.fixed(attempts, delay))
    for url in urls:
        typer.secho(f"ok {url}", fg=typer.colors.GREEN)
