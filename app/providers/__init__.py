"""Provider interfaces and data structures for FX rate sources."""

from .base import (
    ProviderConfig,
    ProviderError,
    ProviderKind,
    RateProvider,
    UsageMetrics,
)
from .retry import RetryPolicy
from .schemas import RateSnapshot

__all__ = [
    "ProviderConfig",
    "ProviderError",
    "ProviderKind",
    "RateProvider",
    "RateSnapshot",
    "RetryPolicy",
    "UsageMetrics",
]
