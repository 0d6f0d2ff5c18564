"""Blueprint scaffolding for rate lookup and conversion endpoints."""

from __future__ import annotations

from flask_smorest import Blueprint

blp = Blueprint("Rates", __name__, description="Latest rates, history and conversion")

from . import routes  # noqa: E402,F401
