"""Capability interface and shared types for FX rate providers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Protocol, runtime_checkable

from .retry import RetryPolicy
from .schemas import RateSnapshot

logger = logging.getLogger(__name__)

HEALTH_CHECK_BASE = "USD"
USER_AGENT = "CurrencyExchangeHub/1.0"


class ProviderError(Exception):
    """Raised when an upstream provider cannot fulfill a request."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProviderKind(str, Enum):
    """Supported provider variants."""

    EXCHANGERATE_API = "exchangerate-api"
    FIXER = "fixer"
    CURRENCYLAYER = "currencylayer"
    MOCK = "mock"


@dataclass(frozen=True)
class UsageMetrics:
    """Provider-reported quota information; fields are None when not exposed."""

    calls_remaining: int | None = None
    limit: int | None = None
    reset_at: datetime | None = None

    def consumed_ratio(self) -> float | None:
        if self.calls_remaining is None or not self.limit:
            return None
        return (self.limit - self.calls_remaining) / self.limit


@dataclass(frozen=True)
class ProviderConfig:
    """Connection settings handed to a provider client for one integration."""

    base_url: str
    api_key: str | None = None
    name: str = ""
    timeout: float = 5.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    free_tier: bool = True


@runtime_checkable
class RateProvider(Protocol):
    """Capability every provider variant implements."""

    kind: ProviderKind

    def fetch_latest_rates(self, base: str) -> RateSnapshot:
        """Return a normalized snapshot for ``base`` or raise ``ProviderError``."""

    def get_usage_metrics(self) -> UsageMetrics:
        """Return quota information for the integration."""

    def health_check(self) -> bool:
        """Fetch USD rates as a smoke test; never raises."""


def run_health_check(provider: RateProvider, label: str) -> bool:
    """Shared smoke test used by every provider's ``health_check``."""

    try:
        provider.fetch_latest_rates(HEALTH_CHECK_BASE)
    except ProviderError as exc:
        logger.warning("Health check failed for %s: %s", label, exc)
        return False
    return True
