"""Marshmallow schemas for rate endpoints."""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validates_schema
from marshmallow.validate import Length, Range

from app.services.rate_store import DEFAULT_HISTORY_LIMIT, LATEST_QUERY_LIMIT


class LatestRateSchema(Schema):
    pair = fields.String(required=True)
    base = fields.String(required=True)
    target = fields.String(required=True)
    rate = fields.Decimal(required=True, as_string=True)
    fetched_at = fields.DateTime(required=True)
    source_integration_id = fields.String(allow_none=True)


class RateHistorySchema(Schema):
    id = fields.Integer(required=True)
    base = fields.String(required=True)
    target = fields.String(required=True)
    rate = fields.Decimal(required=True, as_string=True)
    fetched_at = fields.DateTime(required=True)
    source_integration_id = fields.String(allow_none=True)


class LatestRatesQuerySchema(Schema):
    base = fields.String(load_default=None, validate=Length(equal=3))
    target = fields.String(load_default=None, validate=Length(equal=3))
    q = fields.String(load_default=None, validate=Length(min=1, max=7))
    limit = fields.Integer(
        load_default=LATEST_QUERY_LIMIT, validate=Range(min=1, max=LATEST_QUERY_LIMIT)
    )


class LatestRatesResponseSchema(Schema):
    items = fields.List(fields.Nested(LatestRateSchema), required=True)
    count = fields.Integer(required=True)


class HistoryQuerySchema(Schema):
    base = fields.String(required=True, validate=Length(equal=3))
    target = fields.String(required=True, validate=Length(equal=3))
    start = fields.Date(load_default=None)
    end = fields.Date(load_default=None)
    limit = fields.Integer(
        load_default=DEFAULT_HISTORY_LIMIT, validate=Range(min=1, max=DEFAULT_HISTORY_LIMIT)
    )

    @validates_schema
    def validate_range(self, data, **kwargs):
        start = data.get("start")
        end = data.get("end")
        if start and end and start > end:
            raise ValidationError("start must be on or before end.", field_name="start")


class HistoryResponseSchema(Schema):
    base = fields.String(required=True)
    target = fields.String(required=True)
    items = fields.List(fields.Nested(RateHistorySchema), required=True)
    count = fields.Integer(required=True)


class CurrenciesResponseSchema(Schema):
    currencies = fields.List(fields.String(), required=True)
    count = fields.Integer(required=True)


class ConvertQuerySchema(Schema):
    """Conversion inputs; format checks happen in the conversion engine."""

    from_currency = fields.String(required=True, data_key="from")
    to_currency = fields.String(required=True, data_key="to")
    amount = fields.String(required=True)


class ConversionResponseSchema(Schema):
    from_currency = fields.String(required=True, attribute="from", data_key="from")
    to_currency = fields.String(required=True, attribute="to", data_key="to")
    amount = fields.Decimal(required=True, as_string=True)
    result = fields.Decimal(required=True, as_string=True)
    rate = fields.Decimal(required=True, as_string=True)
    timestamp = fields.DateTime(required=True)
    dataAgeMinutes = fields.Integer()
    dataAge = fields.String()
    stale = fields.Boolean()
    warning = fields.String()
    via = fields.String()
    crossRate = fields.Boolean()
