"""Validation helpers for request payloads and integration settings."""

from __future__ import annotations

import re
from typing import Any
from urllib.parse import urlparse

from app.errors import ValidationError

CURRENCY_CODE_PATTERN = re.compile(r"^[A-Z]{3}$")

MIN_POLL_INTERVAL_SECONDS = 60
MAX_POLL_INTERVAL_SECONDS = 3600
MIN_PRIORITY = 1
MAX_PRIORITY = 100
MAX_NAME_LENGTH = 120


def validate_currency_code(value: Any, *, field: str = "currency") -> str:
    """Uppercase a currency code, rejecting anything but three ASCII letters."""

    if value is None or not str(value).strip():
        raise ValidationError(f"'{field}' is required.", payload={"field": field})

    normalized = str(value).strip().upper()
    if not CURRENCY_CODE_PATTERN.match(normalized):
        raise ValidationError(
            f"Invalid currency code '{value}'. Expected a 3-letter ISO 4217 code.",
            payload={"field": field, "code": normalized},
        )
    return normalized


def validate_name(value: Any, *, field: str = "name") -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"'{field}' is required.", payload={"field": field})
    normalized = str(value).strip()
    if len(normalized) > MAX_NAME_LENGTH:
        raise ValidationError(
            f"'{field}' must be at most {MAX_NAME_LENGTH} characters.", payload={"field": field}
        )
    return normalized


def validate_base_url(value: Any, *, field: str = "base_url") -> str:
    """Require an absolute http(s) URL with a host."""

    if value is None or not str(value).strip():
        raise ValidationError(f"'{field}' is required.", payload={"field": field})

    normalized = str(value).strip()
    parsed = urlparse(normalized)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValidationError(
            f"Invalid URL '{normalized}'. Expected an http(s) URL.", payload={"field": field}
        )
    return normalized.rstrip("/")


def _validate_bounded_int(value: Any, *, field: str, minimum: int, maximum: int) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"'{field}' must be an integer.", payload={"field": field})
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"'{field}' must be an integer.", payload={"field": field}) from exc
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError(f"'{field}' must be an integer.", payload={"field": field})
    if number < minimum or number > maximum:
        raise ValidationError(
            f"'{field}' must be between {minimum} and {maximum}.",
            payload={"field": field, "min": minimum, "max": maximum},
        )
    return number


def validate_poll_interval(value: Any, *, field: str = "poll_interval_seconds") -> int:
    return _validate_bounded_int(
        value,
        field=field,
        minimum=MIN_POLL_INTERVAL_SECONDS,
        maximum=MAX_POLL_INTERVAL_SECONDS,
    )


def validate_priority(value: Any, *, field: str = "priority") -> int:
    return _validate_bounded_int(value, field=field, minimum=MIN_PRIORITY, maximum=MAX_PRIORITY)
