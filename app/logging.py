"""Structured logging for the exchange hub.

Records carry flat ``extra`` fields such as ``event``, ``integration_id`` and
``request_id``. The JSON formatter lifts them to top-level keys so polling
ticks, conversions and API requests can be correlated in one stream.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from datetime import UTC, datetime
from typing import Any

from flask import Flask, current_app, g, has_request_context, request
from werkzeug.exceptions import HTTPException

REQUEST_ID_HEADER = "X-Request-ID"
DEFAULT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "asctime"}

# APScheduler logs every job execution at INFO.
QUIET_LOGGERS = ("apscheduler", "urllib3")


class JSONLogFormatter(logging.Formatter):
    """Render a record and its extra fields as one JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        )
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, separators=(",", ":"))


def setup_logging(app: Flask) -> None:
    """Install a single root handler driven by the app's ``LOG_*`` settings."""

    level = _resolve_level(app.config.get("LOG_LEVEL"))
    handler = logging.StreamHandler()
    handler.setLevel(level)
    if app.config.get("LOG_JSON_ENABLED"):
        handler.setFormatter(JSONLogFormatter())
    else:
        handler.setFormatter(logging.Formatter(app.config.get("LOG_FORMAT", DEFAULT_FORMAT)))

    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    app.logger.handlers.clear()
    app.logger.setLevel(level)
    app.logger.propagate = True
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def init_request_logging(app: Flask) -> None:
    """Tag each request with a correlation id and log how it ended."""

    app.before_request(_begin_request)
    app.after_request(_log_response)
    app.teardown_request(_log_failure)


def _begin_request() -> None:
    g.request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    g.request_start = time.perf_counter()
    g.request_logged = False


def _log_response(response):
    request_id = g.get("request_id")
    if request_id:
        response.headers.setdefault(REQUEST_ID_HEADER, request_id)
    current_app.logger.info(
        "Request handled", extra=_request_extra("request.completed", response.status_code)
    )
    g.request_logged = True
    return response


def _log_failure(exc: BaseException | None) -> None:
    # Unhandled exceptions skip after_request; handled ones were logged there.
    if exc is None or g.get("request_logged"):
        return
    status = (exc.code or 500) if isinstance(exc, HTTPException) else 500
    current_app.logger.error(
        "Request failed", extra=_request_extra("request.failed", status, error=str(exc))
    )
    g.request_logged = True


def _request_extra(event: str, status: int, error: str | None = None) -> dict[str, Any]:
    start = g.get("request_start")
    view_args = request.view_args or {}
    return _compact(
        {
            "event": event,
            "route": request.url_rule.rule if request.url_rule else request.path,
            "method": request.method,
            "status": status,
            "duration_ms": round((time.perf_counter() - start) * 1000, 3) if start is not None else None,
            "request_id": g.get("request_id"),
            "integration_id": view_args.get("integration_id"),
            "client_ip": request.remote_addr,
            "error": error,
            "source": "api",
        }
    )


def fetch_log_extra(
    *,
    integration_id: str,
    provider: str,
    base: str,
    event: str,
    status: str,
    duration_ms: float | None,
    error: str | None = None,
) -> dict[str, Any]:
    """Structured fields for one provider fetch performed by a polling tick."""

    return _compact(
        {
            "event": event,
            "integration_id": integration_id,
            "provider": provider,
            "base": base,
            "status": status,
            "duration_ms": round(duration_ms, 3) if duration_ms is not None else None,
            "request_id": _current_request_id(),
            "source": provider,
            "error": error or None,
        }
    )


def conversion_log_extra(
    *,
    from_currency: str,
    to_currency: str,
    amount: Any,
    rate: Any,
    via: str | None = None,
) -> dict[str, Any]:
    return _compact(
        {
            "event": "conversion.completed",
            "from_currency": from_currency,
            "to_currency": to_currency,
            "amount": str(amount),
            "rate": str(rate),
            "via": via,
            "request_id": _current_request_id(),
            "source": "api",
        }
    )


def _compact(payload: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None}


def _current_request_id() -> str | None:
    if not has_request_context():
        return None
    return g.get("request_id")


def _resolve_level(value: Any) -> int:
    if isinstance(value, int):
        return value
    return logging.getLevelNamesMapping().get(str(value or "INFO").upper(), logging.INFO)
