"""Per-integration polling tick: fetch every base currency and persist the results."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from time import perf_counter
from typing import Optional

from app.errors import StorageError
from app.logging import fetch_log_extra
from app.providers import ProviderConfig, ProviderError, RateProvider, RetryPolicy, UsageMetrics
from app.providers.registry import create_provider
from app.utils.datetime import utc_now

from .integrations import IntegrationConfig
from .rate_cache import RateCache
from .rate_store import RateStore, make_pair
from .usage import UsageRecorder

logger = logging.getLogger(__name__)

DEFAULT_BASE_CURRENCIES = ("USD", "EUR", "GBP", "JPY")
USAGE_WARNING_RATIO = 0.9

ProviderFactory = Callable[[str, ProviderConfig], RateProvider]


@dataclass(frozen=True)
class ProviderSettings:
    """Process-wide knobs applied to every provider client."""

    timeout: float = 5.0
    max_retries: int = 2
    backoff_seconds: float = 1.0
    free_tier: bool = True


@dataclass
class TickResult:
    integration_id: str
    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    failed_pairs: dict[str, str] = field(default_factory=dict)
    rates_written: int = 0


class RateFetcher:
    """Runs one tick for an integration.

    Base currencies are processed sequentially; a failure for one base is
    recorded and never stops the remaining ones.
    """

    def __init__(
        self,
        store: RateStore,
        cache: RateCache,
        usage: UsageRecorder,
        *,
        base_currencies: Optional[Sequence[str]] = DEFAULT_BASE_CURRENCIES,
        settings: ProviderSettings = ProviderSettings(),
        provider_factory: ProviderFactory = create_provider,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._cache = cache
        self._usage = usage
        self._base_currencies = base_currencies
        self._settings = settings
        self._provider_factory = provider_factory
        self._clock = clock

    def resolve_base_currencies(self) -> list[str]:
        """Configured bases, or every observed currency when configured as ``ALL``."""

        if self._base_currencies is not None:
            return [code.upper() for code in self._base_currencies]
        try:
            observed = self._store.list_available_currencies()
        except StorageError as exc:
            logger.warning("Could not list observed currencies, using defaults: %s", exc)
            observed = []
        return observed or list(DEFAULT_BASE_CURRENCIES)

    def build_provider(self, integration: IntegrationConfig) -> RateProvider:
        config = ProviderConfig(
            base_url=integration.base_url,
            api_key=integration.api_key,
            name=integration.name,
            timeout=self._settings.timeout,
            retry=RetryPolicy(
                max_retries=self._settings.max_retries,
                backoff_seconds=self._settings.backoff_seconds,
            ),
            free_tier=self._settings.free_tier,
        )
        return self._provider_factory(integration.provider, config)

    def fetch_and_store(self, integration: IntegrationConfig) -> TickResult:
        result = TickResult(integration_id=integration.id)
        provider = self.build_provider(integration)

        for base in self.resolve_base_currencies():
            try:
                written = self.fetch_rates_for_base(
                    integration, provider, base, failed_pairs=result.failed_pairs
                )
            except ProviderError as exc:
                result.failed[base] = str(exc)
                continue
            result.succeeded.append(base)
            result.rates_written += written

        self.check_usage(integration, provider)
        logger.info(
            "Tick finished for %s: %d bases ok, %d failed",
            integration.name,
            len(result.succeeded),
            len(result.failed),
            extra={"event": "scheduler.tick", "integration_id": integration.id},
        )
        return result

    def fetch_rates_for_base(
        self,
        integration: IntegrationConfig,
        provider: RateProvider,
        base: str,
        *,
        failed_pairs: Optional[dict[str, str]] = None,
    ) -> int:
        """Fetch one base currency and store each returned pair.

        The request is recorded as soon as the provider answers. A pair that
        cannot be stored is logged, added to ``failed_pairs`` and skipped.
        """

        start = perf_counter()
        try:
            snapshot = provider.fetch_latest_rates(base)
        except ProviderError as exc:
            duration = (perf_counter() - start) * 1000
            logger.warning(
                "Provider fetch failed: %s",
                exc,
                extra=fetch_log_extra(
                    integration_id=integration.id,
                    provider=integration.provider,
                    base=base,
                    event="provider.fetch",
                    status="error",
                    duration_ms=duration,
                    error=str(exc),
                ),
            )
            self._record_request(integration, base, False, duration, str(exc))
            raise
        duration = (perf_counter() - start) * 1000
        logger.info(
            "Provider fetch succeeded",
            extra=fetch_log_extra(
                integration_id=integration.id,
                provider=integration.provider,
                base=base,
                event="provider.fetch",
                status="success",
                duration_ms=duration,
            ),
        )
        self._record_request(integration, base, True, duration, None)

        fetched_at = self._clock()
        written = 0
        last_error: Optional[str] = None
        for target, rate in snapshot.rates.items():
            if target == snapshot.base_currency:
                continue
            pair = make_pair(snapshot.base_currency, target)
            try:
                record = self._store.upsert_latest(
                    snapshot.base_currency, target, rate, integration.id, fetched_at
                )
                self._cache.set(record.pair, record)
                self._store.append_history(
                    snapshot.base_currency, target, rate, integration.id, fetched_at
                )
            except StorageError as exc:
                logger.error(
                    "Failed to store rate %s: %s",
                    pair,
                    exc.message,
                    extra={"event": "rates.store", "integration_id": integration.id, "pair": pair},
                )
                last_error = f"Failed to store {pair}: {exc.message}"
                if failed_pairs is not None:
                    failed_pairs[pair] = exc.message
                continue
            written += 1

        if last_error is not None:
            self._record_error(integration, last_error)
        return written

    def check_usage(self, integration: IntegrationConfig, provider: RateProvider) -> Optional[UsageMetrics]:
        """Record the provider's quota snapshot and warn when it is nearly spent."""

        try:
            metrics = provider.get_usage_metrics()
            self._usage.record_usage(
                integration.id,
                calls_limit=metrics.limit,
                calls_remaining=metrics.calls_remaining,
                reset_at=metrics.reset_at,
            )
        except (ProviderError, StorageError) as exc:
            logger.warning("Failed to record usage for %s: %s", integration.name, exc)
            return None

        ratio = metrics.consumed_ratio()
        if ratio is not None and ratio >= USAGE_WARNING_RATIO:
            logger.warning(
                "Integration %s has used %.0f%% of its API quota",
                integration.name,
                ratio * 100,
                extra={"event": "provider.quota", "integration_id": integration.id},
            )
        return metrics

    def _record_request(
        self,
        integration: IntegrationConfig,
        base: str,
        success: bool,
        duration_ms: float,
        error: Optional[str],
    ) -> None:
        try:
            self._usage.record_request(
                integration.id,
                base,
                success,
                response_time_ms=int(round(duration_ms)),
                error_message=error,
            )
        except StorageError as exc:
            logger.warning("Failed to record request log for %s: %s", integration.name, exc)

    def _record_error(self, integration: IntegrationConfig, error: str) -> None:
        try:
            self._usage.record_error(integration.id, error)
        except StorageError as exc:
            logger.warning("Failed to record error for %s: %s", integration.name, exc)
