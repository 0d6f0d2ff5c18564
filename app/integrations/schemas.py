"""Marshmallow schemas for integration endpoints."""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validates_schema
from marshmallow.validate import Length, Range

from app.validation import (
    MAX_POLL_INTERVAL_SECONDS,
    MAX_PRIORITY,
    MIN_POLL_INTERVAL_SECONDS,
    MIN_PRIORITY,
)


class ProviderInfoSchema(Schema):
    kind = fields.String(required=True)
    display_name = fields.String(required=True, data_key="displayName")
    default_endpoint = fields.String(required=True, data_key="defaultEndpoint")
    free_tier_limit = fields.Integer(required=True, data_key="freeTierLimit")
    description = fields.String(required=True)


class IntegrationCreateSchema(Schema):
    name = fields.String(required=True, validate=Length(min=1, max=120))
    provider = fields.String(required=True)
    base_url = fields.String(required=True)
    api_key = fields.String(load_default=None, allow_none=True)
    priority = fields.Integer(
        load_default=100, validate=Range(min=MIN_PRIORITY, max=MAX_PRIORITY)
    )
    poll_interval_seconds = fields.Integer(
        load_default=300,
        validate=Range(min=MIN_POLL_INTERVAL_SECONDS, max=MAX_POLL_INTERVAL_SECONDS),
    )
    active = fields.Boolean(load_default=True)


class IntegrationUpdateSchema(Schema):
    """Partial update; only supplied fields are changed."""

    name = fields.String(validate=Length(min=1, max=120))
    provider = fields.String()
    base_url = fields.String()
    api_key = fields.String(allow_none=True)
    priority = fields.Integer(validate=Range(min=MIN_PRIORITY, max=MAX_PRIORITY))
    poll_interval_seconds = fields.Integer(
        validate=Range(min=MIN_POLL_INTERVAL_SECONDS, max=MAX_POLL_INTERVAL_SECONDS)
    )
    active = fields.Boolean()

    @validates_schema
    def validate_non_empty(self, data, **kwargs):
        if not data:
            raise ValidationError("At least one field must be supplied for update.")


class IntegrationResponseSchema(Schema):
    id = fields.String(required=True)
    name = fields.String(required=True)
    provider = fields.String(required=True)
    base_url = fields.String(required=True)
    has_api_key = fields.Boolean(required=True)
    priority = fields.Integer(required=True)
    poll_interval_seconds = fields.Integer(required=True)
    active = fields.Boolean(required=True)
    created_at = fields.DateTime(allow_none=True)
    updated_at = fields.DateTime(allow_none=True)


class IntegrationListQuerySchema(Schema):
    active = fields.Boolean(load_default=None)
    provider = fields.String(load_default=None)


class IntegrationCollectionSchema(Schema):
    items = fields.List(fields.Nested(IntegrationResponseSchema), required=True)
    count = fields.Integer(required=True)


class UsageDaySchema(Schema):
    date = fields.Date(required=True)
    calls_made = fields.Integer(required=True, data_key="callsMade")
    calls_limit = fields.Integer(allow_none=True, data_key="callsLimit")
    calls_remaining = fields.Integer(allow_none=True, data_key="callsRemaining")
    reset_at = fields.DateTime(allow_none=True, data_key="resetAt")
    last_error = fields.String(allow_none=True, data_key="lastError")
    last_error_at = fields.DateTime(allow_none=True, data_key="lastErrorAt")


class UsageQuerySchema(Schema):
    days = fields.Integer(load_default=30, validate=Range(min=1, max=365))


class UsageResponseSchema(Schema):
    integration_id = fields.String(required=True, data_key="integrationId")
    items = fields.List(fields.Nested(UsageDaySchema), required=True)


class TickResultSchema(Schema):
    integration_id = fields.String(required=True, data_key="integrationId")
    succeeded = fields.List(fields.String(), required=True)
    failed = fields.Dict(keys=fields.String(), values=fields.String(), required=True)
    failed_pairs = fields.Dict(
        keys=fields.String(), values=fields.String(), required=True, data_key="failedPairs"
    )
    rates_written = fields.Integer(required=True, data_key="ratesWritten")
