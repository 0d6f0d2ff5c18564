from __future__ import annotations

from decimal import Decimal

import pytest

from app.providers import ProviderConfig, ProviderError, RetryPolicy
from app.providers.mock import MOCK_RATES, MockProvider


def make_provider(sleeps: list | None = None) -> MockProvider:
    retry = RetryPolicy(sleep=(sleeps.append if sleeps is not None else lambda _: None))
    return MockProvider(ProviderConfig(base_url="http://localhost", retry=retry))


def test_usd_base_returns_fixed_table():
    snapshot = make_provider().fetch_latest_rates("USD")

    assert snapshot.rates == dict(MOCK_RATES)
    assert len(snapshot.rates) == 8


def test_non_usd_base_inverts_the_usd_table():
    snapshot = make_provider().fetch_latest_rates("EUR")

    assert "EUR" not in snapshot.rates
    assert snapshot.rates["USD"].quantize(Decimal("0.0001")) == Decimal("1.0870")
    assert snapshot.rates["GBP"] == MOCK_RATES["GBP"] / MOCK_RATES["EUR"]


def test_unsupported_base_fails_without_retrying():
    sleeps: list[float] = []

    with pytest.raises(ProviderError, match="Unsupported base currency"):
        make_provider(sleeps).fetch_latest_rates("THB")

    assert sleeps == []


def test_retries_are_exhausted_with_growing_delays(monkeypatch):
    calls = []

    def failing_table(self):
        calls.append(1)
        raise ProviderError("generator offline")

    monkeypatch.setattr(MockProvider, "_load_table", failing_table)
    sleeps: list[float] = []

    with pytest.raises(ProviderError, match="generator offline"):
        make_provider(sleeps).fetch_latest_rates("USD")

    assert len(calls) == 3
    assert sleeps == [1.0, 2.0]


def test_usage_metrics_and_health_check():
    provider = make_provider()

    metrics = provider.get_usage_metrics()

    assert metrics.limit == 1000
    assert metrics.calls_remaining == 1000
    assert provider.health_check() is True
