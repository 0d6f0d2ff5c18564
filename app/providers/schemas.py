"""Dataclasses describing normalized FX provider payloads."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Dict, Mapping

from app.utils.datetime import ensure_utc


def _normalize_code(code: str) -> str:
    normalized = str(code).strip().upper()
    if len(normalized) != 3 or not normalized.isascii() or not normalized.isalpha():
        raise ValueError(f"Currency code must be three ASCII letters: {code!r}")
    return normalized


def _to_rate(code: str, value: Decimal | float | int | str) -> Decimal:
    try:
        rate = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Rate for {code} is not numeric: {value!r}") from exc
    if not rate.is_finite() or rate <= 0:
        raise ValueError(f"Rate for {code} must be a positive finite number, got {value!r}")
    return rate


@dataclass(frozen=True)
class RateSnapshot:
    """Latest rates for one base currency as returned by a single fetch.

    The base currency never appears among the targets; a self-rate reported
    by the provider is dropped during normalization.
    """

    base_currency: str
    timestamp: datetime
    source: str
    rates: Dict[str, Decimal] = field(default_factory=dict)

    def __post_init__(self) -> None:
        base = _normalize_code(self.base_currency)
        object.__setattr__(self, "base_currency", base)
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))
        if not self.source or not self.source.strip():
            raise ValueError("source must be provided for RateSnapshot")
        object.__setattr__(self, "rates", _normalize_rates(self.rates, exclude=base))


def _normalize_rates(
    rates: Mapping[str, Decimal | float | int | str], *, exclude: str
) -> Dict[str, Decimal]:
    normalized: Dict[str, Decimal] = {}
    for code, value in rates.items():
        target = _normalize_code(code)
        if target == exclude:
            continue
        normalized[target] = _to_rate(target, value)
    return normalized
