"""CLI command for seeding a demo integration."""

from __future__ import annotations

import click
from flask import current_app
from flask.cli import with_appcontext

from app.providers import ProviderKind

MOCK_INTEGRATION_NAME = "Mock Provider (demo)"


@click.command("seed-mock-integration")
@click.option("--interval", default=300, show_default=True, help="Poll interval in seconds")
@with_appcontext
def seed_mock_integration(interval: int) -> None:
    """Create an active Mock integration unless one already exists."""

    from app import INTEGRATION_STORE_KEY

    store = current_app.extensions[INTEGRATION_STORE_KEY]
    existing = store.list(provider=ProviderKind.MOCK.value)
    if existing:
        click.echo(f"Mock integration already present (id={existing[0].id}).")
        return

    dto = store.create(
        {
            "name": MOCK_INTEGRATION_NAME,
            "provider": ProviderKind.MOCK.value,
            "base_url": "http://localhost",
            "poll_interval_seconds": interval,
        }
    )
    click.echo(f"Created mock integration (id={dto.id}).")
