"""CurrencyLayer provider (https://currencylayer.com)."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from requests import Session

from app.utils.datetime import from_epoch

from .base import ProviderConfig, ProviderError, ProviderKind, UsageMetrics, run_health_check
from .fixer import provider_error_message
from .http_client import HTTPClient
from .retry import with_retry
from .schemas import RateSnapshot

FREE_TIER_BASE = "USD"
FREE_TIER_MONTHLY_LIMIT = 100


def strip_source_prefix(source: str, quotes: Mapping[str, Any]) -> Dict[str, Any]:
    """Turn ``{"USDEUR": 0.92}`` into ``{"EUR": 0.92}`` for source ``USD``.

    Keys not carrying the source prefix are ignored, as is the source's own
    self-quote.
    """

    rates: Dict[str, Any] = {}
    for key, value in quotes.items():
        if not key.startswith(source):
            continue
        target = key[len(source):]
        if not target or target == source:
            continue
        rates[target] = value
    return rates


class CurrencyLayerProvider:
    """CurrencyLayer serves USD as base on the free tier and prefixes quote keys."""

    kind = ProviderKind.CURRENCYLAYER

    def __init__(self, config: ProviderConfig, session: Optional[Session] = None) -> None:
        self._config = config
        self.retry_policy = config.retry
        self._client = HTTPClient(config.base_url, timeout=config.timeout, session=session)

    def fetch_latest_rates(self, base: str) -> RateSnapshot:
        base_currency = base.strip().upper()
        if self._config.free_tier and base_currency != FREE_TIER_BASE:
            raise ProviderError(
                f"CurrencyLayer free tier only supports {FREE_TIER_BASE} as base currency "
                f"(requested {base_currency})."
            )
        return self._request_latest(base_currency)

    def get_usage_metrics(self) -> UsageMetrics:
        return UsageMetrics(calls_remaining=None, limit=FREE_TIER_MONTHLY_LIMIT, reset_at=None)

    def health_check(self) -> bool:
        return run_health_check(self, self._config.name or self.kind.value)

    @with_retry
    def _request_latest(self, base: str) -> RateSnapshot:
        payload = self._client.get(
            "/live", params={"access_key": self._config.api_key, "source": base}
        )
        return self.normalize(payload)

    def normalize(self, payload: Mapping[str, Any]) -> RateSnapshot:
        if not payload.get("success"):
            raise ProviderError(provider_error_message(payload))

        source = str(payload.get("source") or "").strip().upper()
        quotes = payload.get("quotes")
        if not source or not isinstance(quotes, Mapping):
            raise ProviderError("Unexpected response payload from CurrencyLayer")

        try:
            return RateSnapshot(
                base_currency=source,
                timestamp=from_epoch(payload.get("timestamp")),
                source=self.kind.value,
                rates=strip_source_prefix(source, quotes),
            )
        except (TypeError, ValueError) as exc:
            raise ProviderError(f"Malformed CurrencyLayer quotes: {exc}") from exc
