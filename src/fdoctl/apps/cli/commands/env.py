from __future__ import annotations

import typer

from fdoctl.apps.cli.common import echo_json, make_driver, run_safe


@run_safe
def setup(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="print the result as JSON"),
) -> None:
    """Create the fixture tree and the manufacturer, device CA and owner keys/certificates."""
    result = make_driver(ctx).setup()
    if json_output:
        echo_json(result)
        return
    created = result["created"]
    typer.echo(f"fixture: {result['fixture']}")
    if created:
        for path in created:
            typer.echo(f"  created {path}")
    else:
        typer.echo("  all key material already present")
    typer.secho("setup complete", fg=typer.colors.GREEN)


@run_safe
def clean(ctx: typer.Context) -> None:
    """Stop services and remove the fixture. Safe to run repeatedly."""
    result = make_driver(ctx).clean()
    for name in result["stop_failed"]:
        typer.secho(f"warning: could not stop {name}", fg=typer.colors.YELLOW, err=True)
    if result["fixture_removed"]:
        typer.echo("fixture removed")
    else:
        typer.echo("no fixture to remove")


@run_safe
def fetch_repos(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="print the result as JSON"),
) -> None:
    """Clone or update the pinned repositories and check out their commits."""
    repos = make_driver(ctx).fetch_repos()
    if json_output:
        echo_json(repos)
        return
    for repo in repos:
        action = "cloned" if repo.cloned else "updated"
        typer.echo(f"{repo.name}: {action}, HEAD {repo.commit} ({repo.path})")
