"""Schemas shared across blueprints."""

from __future__ import annotations

from marshmallow import Schema, fields


class SchedulerJobSchema(Schema):
    id = fields.String(required=True)
    name = fields.String(required=True)
    provider = fields.String(required=True)
    interval = fields.Integer(required=True)


class SchedulerStatusSchema(Schema):
    running = fields.Boolean(required=True)
    activeJobs = fields.Integer(required=True)
    jobs = fields.List(fields.Nested(SchedulerJobSchema), required=True)


class HealthStatusSchema(Schema):
    status = fields.String(required=True)
    app = fields.String()
    cache = fields.String()
    scheduler = fields.Nested(SchedulerStatusSchema)


class ErrorMessageSchema(Schema):
    message = fields.String(required=True)
