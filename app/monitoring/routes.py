"""Route handlers for scheduler status and recent activity."""

from __future__ import annotations

from flask import current_app
from flask.views import MethodView

from app import SCHEDULER_KEY, USAGE_RECORDER_KEY
from app.schemas import SchedulerStatusSchema
from app.services.scheduler import PollingScheduler
from app.services.usage import UsageRecorder

from . import blp
from .schemas import ConversionLogSchema, RecentQuerySchema, RequestLogSchema, ResyncResponseSchema


def _scheduler() -> PollingScheduler:
    return current_app.extensions[SCHEDULER_KEY]


def _usage() -> UsageRecorder:
    return current_app.extensions[USAGE_RECORDER_KEY]


@blp.route("/scheduler")
class SchedulerStatus(MethodView):
    @blp.response(200, SchedulerStatusSchema())
    def get(self):
        return _scheduler().status()


@blp.route("/scheduler/resync")
class SchedulerResync(MethodView):
    @blp.response(200, ResyncResponseSchema())
    def post(self):
        scheduler = _scheduler()
        diff = scheduler.resync()
        payload = {"running": scheduler.running, "applied": diff is not None}
        if diff is not None:
            payload.update(diff.to_dict())
        return payload


@blp.route("/requests")
class RecentRequests(MethodView):
    @blp.arguments(RecentQuerySchema, location="query")
    @blp.response(200, RequestLogSchema(many=True))
    def get(self, query_args):
        return _usage().get_recent_requests(
            integration_id=query_args.get("integration_id"), limit=query_args["limit"]
        )


@blp.route("/conversions")
class RecentConversions(MethodView):
    @blp.arguments(RecentQuerySchema, location="query")
    @blp.response(200, ConversionLogSchema(many=True))
    def get(self, query_args):
        return _usage().get_recent_conversions(limit=query_args["limit"])
