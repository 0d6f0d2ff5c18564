"""Route handlers for health checks."""

from __future__ import annotations

from flask import current_app
from flask.views import MethodView

from app import RATE_CACHE_KEY, SCHEDULER_KEY
from app.schemas import HealthStatusSchema

from . import blp


@blp.route("")
class HealthStatus(MethodView):
    @blp.response(200, HealthStatusSchema())
    def get(self):
        cache = current_app.extensions.get(RATE_CACHE_KEY)
        scheduler = current_app.extensions.get(SCHEDULER_KEY)
        payload = {
            "status": "ok",
            "app": current_app.config.get("APP_NAME", "currency-exchange-hub"),
        }
        if cache is not None:
            payload["cache"] = cache.backend_name
        if scheduler is not None:
            payload["scheduler"] = scheduler.status()
        return payload
