"""Blueprint scaffolding for integration management endpoints."""

from __future__ import annotations

from flask_smorest import Blueprint

blp = Blueprint("Integrations", __name__, description="Rate-source integration management")

from . import routes  # noqa: E402,F401
