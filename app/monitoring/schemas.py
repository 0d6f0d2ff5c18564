"""Marshmallow schemas for monitoring endpoints."""

from __future__ import annotations

from marshmallow import Schema, fields
from marshmallow.validate import Range

from app.services.usage import DEFAULT_RECENT_LIMIT


class RecentQuerySchema(Schema):
    integration_id = fields.String(load_default=None, data_key="integrationId")
    limit = fields.Integer(load_default=DEFAULT_RECENT_LIMIT, validate=Range(min=1, max=500))


class RequestLogSchema(Schema):
    id = fields.Integer(required=True)
    integration_id = fields.String(required=True, data_key="integrationId")
    base_currency = fields.String(required=True, data_key="baseCurrency")
    success = fields.Boolean(required=True)
    response_time_ms = fields.Integer(allow_none=True, data_key="responseTimeMs")
    error_message = fields.String(allow_none=True, data_key="errorMessage")
    created_at = fields.DateTime(required=True, data_key="createdAt")


class ConversionLogSchema(Schema):
    id = fields.Integer(required=True)
    from_currency = fields.String(required=True, data_key="from")
    to_currency = fields.String(required=True, data_key="to")
    amount = fields.Decimal(required=True, as_string=True)
    result = fields.Decimal(required=True, as_string=True)
    rate = fields.Decimal(required=True, as_string=True)
    created_at = fields.DateTime(required=True, data_key="createdAt")


class ResyncResponseSchema(Schema):
    running = fields.Boolean(required=True)
    applied = fields.Boolean(required=True)
    toCreate = fields.List(fields.String())
    toRemove = fields.List(fields.String())
    toRecreate = fields.List(fields.String())
