"""Mock provider implementation for testing and local development."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from typing import Dict, Mapping

from app.services.conversion import RebaseError, rebase_rates
from app.utils.datetime import utc_now

from .base import ProviderConfig, ProviderError, ProviderKind, UsageMetrics, run_health_check
from .retry import with_retry
from .schemas import RateSnapshot

MOCK_BASE = "USD"

# Approximate real-world rates against USD.
MOCK_RATES: Mapping[str, Decimal] = {
    "EUR": Decimal("0.92"),
    "GBP": Decimal("0.79"),
    "JPY": Decimal("149.50"),
    "CHF": Decimal("0.88"),
    "CAD": Decimal("1.36"),
    "AUD": Decimal("1.54"),
    "NZD": Decimal("1.67"),
    "CNY": Decimal("7.24"),
}

MOCK_CALL_LIMIT = 1000


class MockProvider:
    """Deterministic provider returning a fixed USD table, rebased on request."""

    kind = ProviderKind.MOCK

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config
        self.retry_policy = config.retry

    def fetch_latest_rates(self, base: str) -> RateSnapshot:
        base_currency = base.strip().upper()
        if base_currency != MOCK_BASE and base_currency not in MOCK_RATES:
            raise ProviderError(f"Unsupported base currency: {base_currency}")
        return self._generate(base_currency)

    def get_usage_metrics(self) -> UsageMetrics:
        return UsageMetrics(
            calls_remaining=MOCK_CALL_LIMIT,
            limit=MOCK_CALL_LIMIT,
            reset_at=utc_now() + timedelta(days=30),
        )

    def health_check(self) -> bool:
        return run_health_check(self, self._config.name or self.kind.value)

    def _load_table(self) -> Dict[str, Decimal]:
        table = dict(MOCK_RATES)
        table[MOCK_BASE] = Decimal("1")
        return table

    @with_retry
    def _generate(self, base: str) -> RateSnapshot:
        table = self._load_table()
        try:
            rates = table if base == MOCK_BASE else rebase_rates(table, base)
        except RebaseError as exc:
            raise ProviderError(str(exc)) from exc

        return RateSnapshot(
            base_currency=base,
            timestamp=utc_now(),
            source=self.kind.value,
            rates=rates,
        )
