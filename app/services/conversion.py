"""Currency conversion with direct lookup and anchor-currency cross rates."""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation, getcontext, localcontext
from typing import TYPE_CHECKING, Any, Dict, Mapping, MutableMapping, Optional

from app.errors import RateUnavailableError, ValidationError
from app.utils.datetime import ensure_utc, utc_now
from app.validation import validate_currency_code

if TYPE_CHECKING:
    from .rate_cache import RateCache
    from .rate_store import LatestRateRecord, RateStore

logger = logging.getLogger(__name__)

ROUNDING_PRECISION = 28
ANCHOR_CURRENCIES = ("USD", "EUR", "GBP", "JPY")
DEFAULT_STALE_AFTER_MINUTES = 60
STALE_WARNING = "Exchange rate data may be outdated. Please check if integrations are active."

ConversionLogFn = Callable[[str, str, Decimal, Decimal, Decimal], Any]


def get_decimal_context():
    """Return the shared Decimal context used across FX conversions."""

    context = getcontext().copy()
    context.prec = ROUNDING_PRECISION
    context.rounding = ROUND_HALF_EVEN
    return context


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    """Convert input into a Decimal using the shared context."""

    context = get_decimal_context()
    with localcontext(context):
        return Decimal(str(value))


def parse_amount(value: Any) -> Decimal:
    """Validate a conversion amount as a positive finite number."""

    if value is None or isinstance(value, bool) or str(value).strip() == "":
        raise ValidationError("'amount' is required.", payload={"field": "amount"})
    try:
        amount = to_decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValidationError(
            "amount must be a positive number", payload={"field": "amount"}
        ) from exc
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("amount must be a positive number", payload={"field": "amount"})
    return amount


class RebaseError(ValueError):
    """Raised when rebasing rates fails due to missing data."""


def rebase_rates(rates: Mapping[str, Decimal], new_base: str) -> Dict[str, Decimal]:
    """Rebase a mapping of rates (expressed against a canonical base) to a new base.

    Each rate becomes ``rate(X) / rate(new_base)``; the new base itself is
    omitted from the result.
    """

    normalized_rates: MutableMapping[str, Decimal] = {}
    for code, value in rates.items():
        normalized_rates[str(code).strip().upper()] = to_decimal(value)

    target_base = new_base.strip().upper()

    if target_base not in normalized_rates:
        raise RebaseError(f"Missing rate for {target_base} when rebasing snapshot.")

    base_rate = normalized_rates[target_base]
    if base_rate == 0:
        raise RebaseError(f"Cannot rebase using {target_base} with zero rate.")

    context = get_decimal_context()
    with localcontext(context):
        return {
            code: value / base_rate
            for code, value in normalized_rates.items()
            if code != target_base
        }


@dataclass
class ConversionResult:
    from_currency: str
    to_currency: str
    amount: Decimal
    result: Decimal
    rate: Decimal
    timestamp: datetime
    data_age_minutes: Optional[int] = None
    data_age: Optional[str] = None
    stale: bool = False
    warning: Optional[str] = None
    via: Optional[str] = None
    cross_rate: bool = False

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "from": self.from_currency,
            "to": self.to_currency,
            "amount": self.amount,
            "result": self.result,
            "rate": self.rate,
            "timestamp": self.timestamp,
        }
        if self.data_age_minutes is not None:
            payload["dataAgeMinutes"] = self.data_age_minutes
            payload["dataAge"] = self.data_age
        if self.stale:
            payload["stale"] = True
            payload["warning"] = self.warning
        if self.cross_rate:
            payload["via"] = self.via
            payload["crossRate"] = True
        return payload


def describe_age(age_minutes: int) -> str:
    if age_minutes < 1:
        return "just now"
    if age_minutes < 60:
        return f"{age_minutes} minute{'s' if age_minutes > 1 else ''} ago"
    hours = age_minutes // 60
    return f"{hours} hour{'s' if hours > 1 else ''} ago"


def add_data_freshness_info(
    result: ConversionResult,
    data_timestamp: datetime,
    *,
    now: Optional[datetime] = None,
    stale_after_minutes: int = DEFAULT_STALE_AFTER_MINUTES,
) -> ConversionResult:
    """Annotate ``result`` with the age of its underlying data.

    Informational only; the numeric result is never touched.
    """

    current = ensure_utc(now or utc_now())
    age_seconds = (current - ensure_utc(data_timestamp)).total_seconds()
    age_minutes = max(int(age_seconds // 60), 0)

    result.data_age_minutes = age_minutes
    result.data_age = describe_age(age_minutes)
    if age_minutes > stale_after_minutes:
        result.stale = True
        result.warning = STALE_WARNING
    return result


class ConversionEngine:
    """Answers ``convert(from, to, amount)`` from cached or stored rates."""

    def __init__(
        self,
        store: RateStore,
        cache: RateCache,
        *,
        conversion_log: Optional[ConversionLogFn] = None,
        executor: Optional[Executor] = None,
        stale_after_minutes: int = DEFAULT_STALE_AFTER_MINUTES,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._cache = cache
        self._conversion_log = conversion_log
        self._executor = executor
        self._stale_after_minutes = stale_after_minutes
        self._clock = clock

    def convert(self, from_currency: Any, to_currency: Any, amount: Any) -> ConversionResult:
        source = validate_currency_code(from_currency, field="from")
        target = validate_currency_code(to_currency, field="to")
        value = parse_amount(amount)

        if source == target:
            return ConversionResult(
                from_currency=source,
                to_currency=target,
                amount=value,
                result=value,
                rate=Decimal("1"),
                timestamp=self._clock(),
            )

        pair = f"{source}-{target}"
        direct = self.get_rate(pair)
        if direct is not None:
            result = self._build(source, target, value, direct.rate, direct.fetched_at)
            add_data_freshness_info(
                result,
                direct.fetched_at,
                now=self._clock(),
                stale_after_minutes=self._stale_after_minutes,
            )
            self._log_async(result)
            return result

        cross = self.find_cross_rate(source, target)
        if cross is not None:
            rate, anchor = cross
            now = self._clock()
            result = self._build(source, target, value, rate, now)
            result.via = anchor
            result.cross_rate = True
            add_data_freshness_info(
                result, now, now=now, stale_after_minutes=self._stale_after_minutes
            )
            self._log_async(result)
            return result

        raise RateUnavailableError(pair)

    def get_rate(self, pair: str) -> Optional[LatestRateRecord]:
        """Direct lookup: cache first, then the store (repopulating the cache)."""

        cached = self._cache.get(pair)
        if cached is not None:
            return cached

        stored = self._store.get_latest(pair)
        if stored is not None:
            self._cache.set(pair, stored)
        return stored

    def find_cross_rate(self, source: str, target: str) -> Optional[tuple[Decimal, str]]:
        """Compose a rate through the first anchor holding both legs."""

        for anchor in ANCHOR_CURRENCIES:
            from_leg = self._store.get_latest(f"{anchor}-{source}")
            if from_leg is None:
                continue
            to_leg = self._store.get_latest(f"{anchor}-{target}")
            if to_leg is None:
                continue
            with localcontext(get_decimal_context()):
                rate = (Decimal(1) / from_leg.rate) * to_leg.rate
            return rate, anchor
        return None

    @staticmethod
    def _build(
        source: str, target: str, amount: Decimal, rate: Decimal, timestamp: datetime
    ) -> ConversionResult:
        with localcontext(get_decimal_context()):
            converted = amount * rate
        return ConversionResult(
            from_currency=source,
            to_currency=target,
            amount=amount,
            result=converted,
            rate=rate,
            timestamp=timestamp,
        )

    def _log_async(self, result: ConversionResult) -> None:
        if self._conversion_log is None:
            return
        args = (result.from_currency, result.to_currency, result.amount, result.result, result.rate)
        if self._executor is None:
            self._run_log(*args)
            return
        try:
            future = self._executor.submit(self._conversion_log, *args)
        except RuntimeError as exc:
            logger.warning("Failed to schedule conversion log: %s", exc)
            return
        future.add_done_callback(_report_log_failure)

    def _run_log(self, *args: Any) -> None:
        try:
            self._conversion_log(*args)  # type: ignore[misc]
        except Exception as exc:  # noqa: BLE001 - logging must never fail a conversion
            logger.warning("Failed to log conversion: %s", exc)


def _report_log_failure(future: Future) -> None:
    exc = future.exception()
    if exc is not None:
        logger.warning("Failed to log conversion: %s", exc)
