from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from freezegun import freeze_time

from app.errors import RateUnavailableError, ValidationError
from app.services.conversion import (
    STALE_WARNING,
    ConversionEngine,
    ConversionResult,
    RebaseError,
    add_data_freshness_info,
    describe_age,
    parse_amount,
    rebase_rates,
)
from app.services.rate_store import LatestRateRecord

NOW = datetime(2025, 10, 16, 12, 0, tzinfo=UTC)


class FakeStore:
    def __init__(self, rates: dict[str, Decimal], fetched_at: datetime = NOW) -> None:
        self.calls: list[str] = []
        self._records = {
            pair: LatestRateRecord(
                pair=pair,
                base=pair[:3],
                target=pair[4:],
                rate=Decimal(rate),
                fetched_at=fetched_at,
                source_integration_id=None,
            )
            for pair, rate in rates.items()
        }

    def get_latest(self, pair: str):
        self.calls.append(pair)
        return self._records.get(pair)


class FakeCache:
    def __init__(self) -> None:
        self.entries: dict[str, LatestRateRecord] = {}

    def get(self, pair: str):
        return self.entries.get(pair)

    def set(self, pair: str, record: LatestRateRecord) -> bool:
        self.entries[pair] = record
        return True


def make_engine(store, cache=None, **kwargs) -> ConversionEngine:
    kwargs.setdefault("clock", lambda: NOW)
    return ConversionEngine(store, cache or FakeCache(), **kwargs)


def test_identity_conversion_skips_lookups():
    store = FakeStore({})
    engine = make_engine(store)

    result = engine.convert("usd", "USD", "42.5")

    assert result.rate == Decimal("1")
    assert result.result == Decimal("42.5")
    assert store.calls == []


def test_direct_rate_populates_cache_and_reports_age():
    store = FakeStore({"USD-EUR": "0.92"}, fetched_at=NOW - timedelta(minutes=5))
    cache = FakeCache()
    engine = make_engine(store, cache)

    result = engine.convert("USD", "EUR", "100")

    assert result.result == Decimal("92.00")
    assert result.data_age_minutes == 5
    assert result.data_age == "5 minutes ago"
    assert result.stale is False
    assert "USD-EUR" in cache.entries


def test_direct_rate_prefers_cache_over_store():
    store = FakeStore({"USD-EUR": "0.92"})
    cache = FakeCache()
    cache.set("USD-EUR", store.get_latest("USD-EUR"))
    store.calls.clear()

    make_engine(store, cache).convert("USD", "EUR", "1")

    assert store.calls == []


def test_cross_rate_via_anchor_currency():
    store = FakeStore({"USD-THB": "35.0", "USD-EUR": "0.90"})
    engine = make_engine(store)

    result = engine.convert("THB", "EUR", "350")

    assert result.cross_rate is True
    assert result.via == "USD"
    assert result.rate.quantize(Decimal("0.000001")) == Decimal("0.025714")
    assert result.result.quantize(Decimal("0.01")) == Decimal("9.00")
    payload = result.to_dict()
    assert payload["via"] == "USD"
    assert payload["crossRate"] is True


def test_cross_rate_uses_first_anchor_with_both_legs():
    store = FakeStore({"EUR-THB": "38.0", "EUR-CHF": "0.95", "GBP-THB": "44.0", "GBP-CHF": "1.1"})

    result = make_engine(store).convert("THB", "CHF", "1")

    assert result.via == "EUR"


def test_missing_rate_raises_with_pair():
    engine = make_engine(FakeStore({}))

    with pytest.raises(RateUnavailableError) as exc_info:
        engine.convert("ABC", "XYZ", "1")

    assert exc_info.value.status_code == 404
    assert exc_info.value.payload["pair"] == "ABC-XYZ"


@pytest.mark.parametrize(
    "args, field",
    [
        (("US", "EUR", "1"), "from"),
        (("USD", "EURO", "1"), "to"),
        (("USD", "EUR", "0"), "amount"),
        (("USD", "EUR", "-5"), "amount"),
        (("USD", "EUR", "abc"), "amount"),
        (("USD", "EUR", None), "amount"),
    ],
)
def test_invalid_input_is_rejected(args, field):
    with pytest.raises(ValidationError) as exc_info:
        make_engine(FakeStore({})).convert(*args)

    assert exc_info.value.payload["field"] == field


def test_parse_amount_rejects_non_finite_values():
    for value in ("inf", "NaN"):
        with pytest.raises(ValidationError):
            parse_amount(value)
    assert parse_amount(" 12.50 ") == Decimal("12.50")


@freeze_time("2025-10-16 12:00:00")
def test_staleness_boundary_uses_wall_clock():
    fresh = FakeStore({"USD-EUR": "0.92"}, fetched_at=NOW - timedelta(minutes=59))
    stale = FakeStore({"USD-EUR": "0.92"}, fetched_at=NOW - timedelta(minutes=61))

    fresh_result = ConversionEngine(fresh, FakeCache()).convert("USD", "EUR", "1")
    stale_result = ConversionEngine(stale, FakeCache()).convert("USD", "EUR", "1")

    assert fresh_result.stale is False
    assert "warning" not in fresh_result.to_dict()
    assert stale_result.stale is True
    assert stale_result.warning == STALE_WARNING
    assert stale_result.data_age == "1 hour ago"
    assert stale_result.result == Decimal("0.92")


def test_freshness_info_never_changes_the_result():
    result = ConversionResult("USD", "EUR", Decimal("1"), Decimal("0.92"), Decimal("0.92"), NOW)

    add_data_freshness_info(result, NOW - timedelta(hours=5), now=NOW, stale_after_minutes=60)

    assert result.result == Decimal("0.92")
    assert result.data_age_minutes == 300


def test_describe_age():
    assert describe_age(0) == "just now"
    assert describe_age(1) == "1 minute ago"
    assert describe_age(59) == "59 minutes ago"
    assert describe_age(125) == "2 hours ago"


def test_conversion_is_logged_on_the_executor():
    log = MagicMock()
    store = FakeStore({"USD-EUR": "0.92"})
    with ThreadPoolExecutor(max_workers=1) as executor:
        make_engine(store, conversion_log=log, executor=executor).convert("USD", "EUR", "10")

    log.assert_called_once_with("USD", "EUR", Decimal("10"), Decimal("9.20"), Decimal("0.92"))


def test_log_failure_never_fails_the_conversion():
    log = MagicMock(side_effect=RuntimeError("db down"))
    store = FakeStore({"USD-EUR": "0.92"})

    result = make_engine(store, conversion_log=log).convert("USD", "EUR", "10")
    with ThreadPoolExecutor(max_workers=1) as executor:
        async_result = make_engine(store, conversion_log=log, executor=executor).convert(
            "USD", "EUR", "10"
        )

    assert result.result == Decimal("9.20")
    assert async_result.result == Decimal("9.20")
    assert log.call_count == 2


def test_convert_against_persisted_rates(rate_store):
    rate_store.upsert_latest("USD", "THB", Decimal("35.0"), None)
    rate_store.upsert_latest("USD", "EUR", Decimal("0.90"), None)
    engine = ConversionEngine(rate_store, FakeCache())

    result = engine.convert("THB", "EUR", "350")

    assert result.via == "USD"
    assert result.result.quantize(Decimal("0.01")) == Decimal("9.00")


def test_rebase_rates_divides_by_new_base():
    rebased = rebase_rates({"USD": Decimal("1"), "EUR": Decimal("0.5"), "GBP": "0.25"}, "eur")

    assert rebased == {"USD": Decimal("2"), "GBP": Decimal("0.5")}


def test_rebase_rates_requires_new_base():
    with pytest.raises(RebaseError):
        rebase_rates({"USD": Decimal("1")}, "JPY")
    with pytest.raises(RebaseError):
        rebase_rates({"USD": Decimal("1"), "JPY": Decimal("0")}, "JPY")
