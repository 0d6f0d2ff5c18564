"""Shared datetime helpers for enforcing UTC awareness."""

from __future__ import annotations

from datetime import UTC, datetime


def ensure_utc(value: datetime) -> datetime:
    """Return a timezone-aware datetime in UTC.

    Naive values are assumed to already be UTC; SQLite hands them back that way.
    """

    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def utc_now() -> datetime:
    """Return the current UTC datetime."""

    return datetime.now(UTC)


def from_epoch(value: int | float | str | None) -> datetime:
    """Convert provider epoch seconds to UTC, falling back to wall-clock time."""

    if value is None or value == "":
        return utc_now()
    try:
        return datetime.fromtimestamp(float(value), tz=UTC)
    except (TypeError, ValueError, OverflowError, OSError):
        return utc_now()
