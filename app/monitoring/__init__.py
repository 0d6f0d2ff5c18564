"""Blueprint scaffolding for scheduler and telemetry monitoring."""

from __future__ import annotations

from flask_smorest import Blueprint

blp = Blueprint("Monitoring", __name__, description="Scheduler status and request telemetry")

from . import routes  # noqa: E402,F401
