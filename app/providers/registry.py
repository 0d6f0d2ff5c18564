"""Registry and factory for FX rate providers."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Callable, Dict, Iterable, List

from app.errors import UnknownProviderError

from .base import ProviderConfig, ProviderKind, RateProvider

ProviderFactory = Callable[[ProviderConfig], RateProvider]

PROVIDER_ALIASES = {"fixer.io": ProviderKind.FIXER.value}

_PROVIDER_FACTORIES: Dict[str, ProviderFactory] = {}


@dataclass(frozen=True)
class ProviderInfo:
    """Static catalog entry used to populate integration forms."""

    kind: str
    display_name: str
    default_endpoint: str
    free_tier_limit: int
    description: str

    def to_dict(self) -> dict:
        return asdict(self)


SUPPORTED_PROVIDERS: tuple[ProviderInfo, ...] = (
    ProviderInfo(
        kind=ProviderKind.EXCHANGERATE_API.value,
        display_name="ExchangeRate-API",
        default_endpoint="https://v6.exchangerate-api.com",
        free_tier_limit=1500,
        description="Best free tier with 1,500 requests/month",
    ),
    ProviderInfo(
        kind=ProviderKind.FIXER.value,
        display_name="Fixer.io",
        default_endpoint="http://data.fixer.io/api",
        free_tier_limit=100,
        description="EUR base only on free tier",
    ),
    ProviderInfo(
        kind=ProviderKind.CURRENCYLAYER.value,
        display_name="CurrencyLayer",
        default_endpoint="http://api.currencylayer.com",
        free_tier_limit=100,
        description="USD base only on free tier",
    ),
    ProviderInfo(
        kind=ProviderKind.MOCK.value,
        display_name="Mock Provider",
        default_endpoint="http://localhost",
        free_tier_limit=1000,
        description="No API key needed - perfect for testing",
    ),
)


def _default_factories() -> Iterable[tuple[str, ProviderFactory]]:
    from .currencylayer import CurrencyLayerProvider
    from .exchangerate_api import ExchangeRateAPIProvider
    from .fixer import FixerIOProvider
    from .mock import MockProvider

    return [
        (ProviderKind.EXCHANGERATE_API.value, ExchangeRateAPIProvider),
        (ProviderKind.FIXER.value, FixerIOProvider),
        (ProviderKind.CURRENCYLAYER.value, CurrencyLayerProvider),
        (ProviderKind.MOCK.value, MockProvider),
    ]


def register_provider(kind: str, factory: ProviderFactory) -> None:
    """Register a provider factory under the given kind."""

    if not kind:
        raise ValueError("Provider kind cannot be empty.")
    _PROVIDER_FACTORIES[kind.lower()] = factory


def list_providers() -> List[str]:
    """Return the registered provider kinds."""

    return sorted(_PROVIDER_FACTORIES.keys())


def normalize_kind(kind: str | None) -> str:
    """Resolve a case-insensitive kind or alias to its canonical identifier."""

    normalized = (kind or "").strip().lower()
    normalized = PROVIDER_ALIASES.get(normalized, normalized)
    if normalized not in _PROVIDER_FACTORIES:
        available = ", ".join(list_providers()) or "none registered"
        raise UnknownProviderError(
            f"Unknown integration provider '{kind}'. Available providers: {available}",
            payload={"field": "provider"},
        )
    return normalized


def create_provider(kind: str, config: ProviderConfig) -> RateProvider:
    """Instantiate the provider variant registered for ``kind``."""

    return _PROVIDER_FACTORIES[normalize_kind(kind)](config)


def list_supported() -> List[dict]:
    """Return the static provider catalog."""

    return [info.to_dict() for info in SUPPORTED_PROVIDERS]


def reset_registry(default_factories: Iterable[tuple[str, ProviderFactory]] | None = None) -> None:
    """Reset provider registry; useful for tests."""

    _PROVIDER_FACTORIES.clear()

    factories = default_factories or _default_factories()
    for kind, factory in factories:
        register_provider(kind, factory)


reset_registry()
