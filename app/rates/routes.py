"""Route handlers for latest rates, history and conversion."""

from __future__ import annotations

from flask import current_app
from flask.views import MethodView

from app import CONVERSION_ENGINE_KEY, RATE_STORE_KEY
from app.schemas import ErrorMessageSchema
from app.services.conversion import ConversionEngine
from app.services.rate_store import RateStore
from app.validation import validate_currency_code

from . import blp
from .schemas import (
    ConversionResponseSchema,
    ConvertQuerySchema,
    CurrenciesResponseSchema,
    HistoryQuerySchema,
    HistoryResponseSchema,
    LatestRatesQuerySchema,
    LatestRatesResponseSchema,
)


def _store() -> RateStore:
    return current_app.extensions[RATE_STORE_KEY]


def _engine() -> ConversionEngine:
    return current_app.extensions[CONVERSION_ENGINE_KEY]


def _optional_code(value: str | None, field: str) -> str | None:
    return validate_currency_code(value, field=field) if value else None


@blp.route("/currencies")
class Currencies(MethodView):
    @blp.response(200, CurrenciesResponseSchema())
    def get(self):
        currencies = _store().list_available_currencies()
        return {"currencies": currencies, "count": len(currencies)}


@blp.route("/latest")
class LatestRates(MethodView):
    @blp.arguments(LatestRatesQuerySchema, location="query")
    @blp.response(200, LatestRatesResponseSchema())
    def get(self, query_args):
        records = _store().list_latest(
            base=_optional_code(query_args.get("base"), "base"),
            target=_optional_code(query_args.get("target"), "target"),
            q=query_args.get("q"),
            limit=query_args["limit"],
        )
        return {"items": records, "count": len(records)}


@blp.route("/history")
class RateHistoryView(MethodView):
    @blp.arguments(HistoryQuerySchema, location="query")
    @blp.response(200, HistoryResponseSchema())
    def get(self, query_args):
        base = validate_currency_code(query_args["base"], field="base")
        target = validate_currency_code(query_args["target"], field="target")
        records = _store().get_history(
            base,
            target,
            start=query_args.get("start"),
            end=query_args.get("end"),
            limit=query_args["limit"],
        )
        return {"base": base, "target": target, "items": records, "count": len(records)}


@blp.route("/convert")
class Convert(MethodView):
    @blp.arguments(ConvertQuerySchema, location="query")
    @blp.response(200, ConversionResponseSchema())
    @blp.alt_response(404, schema=ErrorMessageSchema, description="No direct or cross rate available")
    def get(self, query_args):
        result = _engine().convert(
            query_args["from_currency"], query_args["to_currency"], query_args["amount"]
        )
        return result.to_dict()
