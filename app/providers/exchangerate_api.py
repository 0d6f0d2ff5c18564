"""ExchangeRate-API provider (https://www.exchangerate-api.com)."""

from __future__ import annotations

from typing import Any, Mapping, Optional

from requests import Session

from app.utils.datetime import from_epoch

from .base import ProviderConfig, ProviderError, ProviderKind, UsageMetrics, run_health_check
from .http_client import HTTPClient
from .retry import with_retry
from .schemas import RateSnapshot

FREE_TIER_MONTHLY_LIMIT = 1500


class ExchangeRateAPIProvider:
    """Any currency may be requested as base; the API key travels in the path."""

    kind = ProviderKind.EXCHANGERATE_API

    def __init__(self, config: ProviderConfig, session: Optional[Session] = None) -> None:
        self._config = config
        self.retry_policy = config.retry
        self._client = HTTPClient(config.base_url, timeout=config.timeout, session=session)

    def fetch_latest_rates(self, base: str) -> RateSnapshot:
        return self._request_latest(base.strip().upper())

    def get_usage_metrics(self) -> UsageMetrics:
        # The free tier does not report consumption in responses.
        return UsageMetrics(calls_remaining=None, limit=FREE_TIER_MONTHLY_LIMIT, reset_at=None)

    def health_check(self) -> bool:
        return run_health_check(self, self._config.name or self.kind.value)

    @with_retry
    def _request_latest(self, base: str) -> RateSnapshot:
        payload = self._client.get(f"/v6/{self._config.api_key}/latest/{base}")
        return self._parse(payload)

    def _parse(self, payload: Mapping[str, Any]) -> RateSnapshot:
        if payload.get("result") == "error":
            raise ProviderError(str(payload.get("error-type") or "API request failed"))

        try:
            base = payload["base_code"]
            rates = payload["conversion_rates"]
        except KeyError as exc:
            raise ProviderError("Unexpected response payload from ExchangeRate-API") from exc

        try:
            return RateSnapshot(
                base_currency=base,
                timestamp=from_epoch(payload.get("time_last_update_unix")),
                source=self.kind.value,
                rates=rates,
            )
        except (TypeError, ValueError) as exc:
            raise ProviderError(f"Malformed ExchangeRate-API rates: {exc}") from exc
