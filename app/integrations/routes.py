"""Route handlers for integration CRUD and manual fetches."""

from __future__ import annotations

from flask import current_app, url_for
from flask.views import MethodView

from app import INTEGRATION_STORE_KEY, RATE_FETCHER_KEY, SCHEDULER_KEY, USAGE_RECORDER_KEY
from app.providers.registry import list_supported
from app.services.integrations import IntegrationStore
from app.services.rate_fetcher import TickResult

from . import blp
from .schemas import (
    IntegrationCollectionSchema,
    IntegrationCreateSchema,
    IntegrationListQuerySchema,
    IntegrationResponseSchema,
    IntegrationUpdateSchema,
    ProviderInfoSchema,
    TickResultSchema,
    UsageQuerySchema,
    UsageResponseSchema,
)


def _integrations() -> IntegrationStore:
    return current_app.extensions[INTEGRATION_STORE_KEY]


def run_fetch_now(integration_id: str) -> TickResult:
    """Run a tick immediately, through the live job when one is scheduled."""

    scheduler = current_app.extensions[SCHEDULER_KEY]
    if integration_id in scheduler.jobs:
        return scheduler.trigger_fetch(integration_id)
    config = _integrations().get_active_config(integration_id)
    return current_app.extensions[RATE_FETCHER_KEY].fetch_and_store(config)


@blp.route("/providers")
class Providers(MethodView):
    @blp.response(200, ProviderInfoSchema(many=True))
    def get(self):
        return list_supported()


@blp.route("")
class IntegrationCollection(MethodView):
    @blp.arguments(IntegrationListQuerySchema, location="query")
    @blp.response(200, IntegrationCollectionSchema())
    def get(self, query_args):
        items = _integrations().list(
            active=query_args.get("active"), provider=query_args.get("provider")
        )
        return {"items": items, "count": len(items)}

    @blp.arguments(IntegrationCreateSchema)
    @blp.response(201, IntegrationResponseSchema())
    def post(self, payload):
        dto = _integrations().create(payload)
        headers = {
            "Location": url_for(
                "Integrations.IntegrationItem", integration_id=dto.id, _external=False
            )
        }
        return dto, 201, headers


@blp.route("/<string:integration_id>")
class IntegrationItem(MethodView):
    @blp.response(200, IntegrationResponseSchema())
    def get(self, integration_id: str):
        return _integrations().get_by_id(integration_id)

    @blp.arguments(IntegrationUpdateSchema)
    @blp.response(200, IntegrationResponseSchema())
    def patch(self, payload, integration_id: str):
        return _integrations().update(integration_id, payload)

    @blp.response(200, IntegrationResponseSchema())
    def delete(self, integration_id: str):
        return _integrations().soft_deactivate(integration_id)


@blp.route("/<string:integration_id>/permanent")
class IntegrationPermanentDelete(MethodView):
    @blp.response(204)
    def delete(self, integration_id: str):
        _integrations().hard_delete(integration_id)
        return None


@blp.route("/<string:integration_id>/usage")
class IntegrationUsageView(MethodView):
    @blp.arguments(UsageQuerySchema, location="query")
    @blp.response(200, UsageResponseSchema())
    def get(self, query_args, integration_id: str):
        _integrations().get_by_id(integration_id)
        usage = current_app.extensions[USAGE_RECORDER_KEY]
        items = usage.get_usage_stats(integration_id, days=query_args["days"])
        return {"integration_id": integration_id, "items": items}


@blp.route("/<string:integration_id>/fetch")
class IntegrationFetch(MethodView):
    @blp.response(200, TickResultSchema())
    def post(self, integration_id: str):
        return run_fetch_now(integration_id)
