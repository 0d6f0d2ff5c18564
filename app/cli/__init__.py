"""CLI entry points."""

from __future__ import annotations

from flask import Flask

from .rates import fetch_rates, reset_rates
from .seed import seed_mock_integration


def register_cli(app: Flask) -> None:
    """Register CLI commands on the given Flask app."""

    app.cli.add_command(fetch_rates)
    app.cli.add_command(reset_rates)
    app.cli.add_command(seed_mock_integration)
