"""Application-wide error types and HTTP error handlers."""

from __future__ import annotations

import logging
from typing import Any

from flask import Flask, jsonify

logger = logging.getLogger(__name__)


class ConfigurationError(RuntimeError):
    """Raised at startup when required process configuration is missing."""


class APIError(Exception):
    """Base class for errors surfaced to callers of the rates surface."""

    status_code: int = 400

    def __init__(
        self, message: str, *, status_code: int | None = None, payload: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.payload = payload or {}


class ValidationError(APIError):
    """Malformed input at the conversion or configuration boundary."""

    status_code = 422


class UnknownProviderError(ValidationError):
    """An integration references a provider kind the registry does not know."""


class NotFoundError(APIError):
    """Requested resource does not exist."""

    status_code = 404


class RateUnavailableError(NotFoundError):
    """No direct rate and no anchor-currency path exist for a pair."""

    def __init__(self, pair: str):
        super().__init__(
            f"Exchange rate not available for {pair}. No cross-rate path found.",
            payload={"pair": pair},
        )
        self.pair = pair


class StorageError(APIError):
    """The durable store could not complete an operation."""

    status_code = 503


DEFAULT_STATUS_MESSAGES: dict[int, str] = {
    400: "Request could not be processed.",
    404: "Resource not found.",
    422: "Submitted data is invalid.",
    503: "Service temporarily unavailable. Please retry in a moment.",
}


def register_error_handlers(app: Flask) -> None:
    """Attach error handlers to the Flask application."""

    @app.errorhandler(APIError)
    def handle_api_error(error: APIError):
        message = error.message or DEFAULT_STATUS_MESSAGES.get(error.status_code, "Request failed.")
        payload = error.payload or {}

        if isinstance(error, StorageError):
            logger.error("Storage failure: %s", message)

        response = {"message": message}
        if payload:
            response.update(payload)

        field_errors = _derive_field_errors(payload, default_message=message)
        if field_errors and "field_errors" not in response:
            response["field_errors"] = field_errors

        return jsonify(response), error.status_code


def _derive_field_errors(
    payload: dict[str, Any],
    *,
    default_message: str | None = None,
) -> dict[str, list[str]]:
    """Translate payload fields into a flat field_errors mapping."""

    if not payload:
        return {}

    if isinstance(payload.get("field_errors"), dict):
        return {
            str(field): _normalize_messages(messages)
            for field, messages in payload["field_errors"].items()
            if _normalize_messages(messages)
        }

    field = payload.get("field")
    if field and default_message:
        return {str(field): [default_message]}

    return {}


def _normalize_messages(messages: Any) -> list[str]:
    if messages is None:
        return []
    if isinstance(messages, str):
        return [messages]
    if isinstance(messages, list):
        return [item if isinstance(item, str) else str(item) for item in messages if item is not None]
    return [str(messages)]
