"""Fixer.io provider (https://fixer.io)."""

from __future__ import annotations

from typing import Any, Mapping, Optional

from requests import Session

from app.utils.datetime import from_epoch

from .base import ProviderConfig, ProviderError, ProviderKind, UsageMetrics, run_health_check
from .http_client import HTTPClient
from .retry import with_retry
from .schemas import RateSnapshot

FREE_TIER_BASE = "EUR"
FREE_TIER_MONTHLY_LIMIT = 100


def provider_error_message(payload: Mapping[str, Any]) -> str:
    """Extract the message from an apilayer-style ``{"success": false}`` body."""

    error = payload.get("error") or {}
    if isinstance(error, Mapping):
        return str(error.get("info") or error.get("type") or "API request failed")
    return str(error)


class FixerIOProvider:
    """Fixer only serves EUR as base on the free tier.

    With ``free_tier`` enabled a non-EUR base is rejected locally, before any
    request is made, so the monthly quota is not spent on a guaranteed error.
    """

    kind = ProviderKind.FIXER

    def __init__(self, config: ProviderConfig, session: Optional[Session] = None) -> None:
        self._config = config
        self.retry_policy = config.retry
        self._client = HTTPClient(config.base_url, timeout=config.timeout, session=session)

    def fetch_latest_rates(self, base: str) -> RateSnapshot:
        base_currency = base.strip().upper()
        if self._config.free_tier and base_currency != FREE_TIER_BASE:
            raise ProviderError(
                f"Fixer.io free tier only supports {FREE_TIER_BASE} as base currency "
                f"(requested {base_currency})."
            )
        return self._request_latest(base_currency)

    def get_usage_metrics(self) -> UsageMetrics:
        return UsageMetrics(calls_remaining=None, limit=FREE_TIER_MONTHLY_LIMIT, reset_at=None)

    def health_check(self) -> bool:
        # The USD smoke test is what distinguishes a paid plan from a free one.
        return run_health_check(self, self._config.name or self.kind.value)

    @with_retry
    def _request_latest(self, base: str) -> RateSnapshot:
        payload = self._client.get(
            "/latest", params={"access_key": self._config.api_key, "base": base}
        )
        if not payload.get("success"):
            raise ProviderError(provider_error_message(payload))

        try:
            return RateSnapshot(
                base_currency=payload["base"],
                timestamp=from_epoch(payload.get("timestamp")),
                source=self.kind.value,
                rates=payload["rates"],
            )
        except KeyError as exc:
            raise ProviderError("Unexpected response payload from Fixer.io") from exc
        except (TypeError, ValueError) as exc:
            raise ProviderError(f"Malformed Fixer.io rates: {exc}") from exc
