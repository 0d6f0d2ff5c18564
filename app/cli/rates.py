"""CLI commands for fetching and resetting stored rates."""

from __future__ import annotations

import click
from flask import current_app
from flask.cli import with_appcontext

from app.errors import APIError


@click.command("fetch-rates")
@click.argument("integration_id")
@with_appcontext
def fetch_rates(integration_id: str) -> None:
    """Run one polling tick for an active integration right now."""

    from app.integrations.routes import run_fetch_now

    try:
        result = run_fetch_now(integration_id)
    except APIError as exc:
        raise click.ClickException(exc.message) from exc

    click.echo(
        f"Fetched {result.rates_written} rates for {len(result.succeeded)} base currencies."
    )
    for base, error in sorted(result.failed.items()):
        click.echo(f"  {base}: {error}", err=True)
    if result.failed_pairs:
        click.echo(f"  {len(result.failed_pairs)} pairs could not be stored.", err=True)


@click.command("reset-rates")
@click.option("--yes", is_flag=True, help="Skip the confirmation prompt")
@with_appcontext
def reset_rates(yes: bool) -> None:
    """Delete all latest and historical rates and clear the rate cache."""

    from app import RATE_CACHE_KEY, RATE_STORE_KEY

    if not yes:
        click.confirm("This deletes every stored rate. Continue?", abort=True)

    current_app.extensions[RATE_STORE_KEY].reset()
    current_app.extensions[RATE_CACHE_KEY].invalidate_all()
    click.echo("Rate data reset.")
