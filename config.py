"""Application configuration classes."""

from __future__ import annotations

import os

DEFAULT_BASE_CURRENCIES = "USD,EUR,GBP,JPY"


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name)
    return value if value is not None else default


def _get_bool(name: str, default: str) -> bool:
    return _get_env(name, default).strip().lower() in {"1", "true", "yes", "on"}


class BaseConfig:
    """Base configuration shared across environments."""

    APP_NAME = "currency-exchange-hub"
    SQLALCHEMY_DATABASE_URI = _get_env("DATABASE_URL", "sqlite:///currency-exchange-hub.db")
    APP_DATA_KEY: str | None = os.getenv("APP_DATA_KEY")

    BASE_CURRENCIES = _get_env("BASE_CURRENCIES", DEFAULT_BASE_CURRENCIES)

    REDIS_URL: str | None = os.getenv("REDIS_URL")
    RATES_CACHE_TTL_SECONDS = int(_get_env("RATES_CACHE_TTL_SECONDS", "3600"))
    RATES_CACHE_MAX_ENTRIES = int(_get_env("RATES_CACHE_MAX_ENTRIES", "1000"))

    SCHEDULER_ENABLED = _get_bool("SCHEDULER_ENABLED", "true")
    SCHEDULER_RESYNC_SECONDS = int(_get_env("SCHEDULER_RESYNC_SECONDS", "300"))
    SCHEDULER_TIMEZONE = _get_env("SCHEDULER_TIMEZONE", "UTC")

    PROVIDER_TIMEOUT_SECONDS = float(_get_env("PROVIDER_TIMEOUT_SECONDS", "5"))
    PROVIDER_MAX_RETRIES = int(_get_env("PROVIDER_MAX_RETRIES", "2"))
    PROVIDER_BACKOFF_SECONDS = float(_get_env("PROVIDER_BACKOFF_SECONDS", "1.0"))
    PROVIDER_FREE_TIER = _get_bool("PROVIDER_FREE_TIER", "true")

    STALE_AFTER_MINUTES = int(_get_env("STALE_AFTER_MINUTES", "60"))
    CONVERSION_LOG_ASYNC = _get_bool("CONVERSION_LOG_ASYNC", "true")
    CONVERSION_LOG_WORKERS = int(_get_env("CONVERSION_LOG_WORKERS", "2"))

    LOG_LEVEL = _get_env("LOG_LEVEL", "INFO")
    LOG_JSON_ENABLED = _get_bool("LOG_JSON_ENABLED", "false")
    LOG_FORMAT = _get_env("LOG_FORMAT", "%(asctime)s %(levelname)s [%(name)s] %(message)s")


class DevelopmentConfig(BaseConfig):
    """Configuration for local development."""

    DEBUG = True
    TESTING = False


class TestingConfig(BaseConfig):
    """Configuration used by the test-suite; never starts background timers."""

    DEBUG = False
    TESTING = True
    SCHEDULER_ENABLED = False
    REDIS_URL = None
    CONVERSION_LOG_ASYNC = False


class ProductionConfig(BaseConfig):
    """Configuration for production deployments."""

    DEBUG = False
    TESTING = False


CONFIG_BY_ENV = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}


def get_config(config_name: str | None = None) -> type[BaseConfig]:
    """Return the config class for the requested environment.

    Args:
        config_name: Optional explicit config identifier. If omitted, the
            APP_ENV environment variable is consulted.

    Raises:
        KeyError: If the requested configuration is not defined.
        ValueError: If a tunable is outside its supported range.
    """

    env_candidate = config_name if config_name is not None else os.getenv("APP_ENV", "development")
    env_name = (env_candidate or "development").lower()
    try:
        config_cls = CONFIG_BY_ENV[env_name]
    except KeyError as exc:
        raise KeyError(f"Unknown APP_ENV '{env_name}'") from exc

    # Environment may have changed since import (tests, dotenv loading).
    config_cls.SQLALCHEMY_DATABASE_URI = _get_env(
        "DATABASE_URL", config_cls.SQLALCHEMY_DATABASE_URI
    )
    config_cls.APP_DATA_KEY = os.getenv("APP_DATA_KEY", config_cls.APP_DATA_KEY or "") or None
    config_cls.BASE_CURRENCIES = _get_env("BASE_CURRENCIES", config_cls.BASE_CURRENCIES)

    _validate_tunables(config_cls)
    return config_cls


def parse_base_currencies(value: str | None) -> list[str] | None:
    """Parse the BASE_CURRENCIES setting.

    Returns ``None`` for the ``ALL`` sentinel, meaning every currency observed
    in the store should be polled.
    """

    normalized = (value or DEFAULT_BASE_CURRENCIES).strip().upper()
    if normalized == "ALL":
        return None
    codes = [code.strip() for code in normalized.split(",")]
    return [code for code in codes if code]


def _validate_tunables(config_cls: type[BaseConfig]) -> None:
    if config_cls.PROVIDER_MAX_RETRIES < 0:
        raise ValueError("PROVIDER_MAX_RETRIES must be zero or greater.")
    if config_cls.PROVIDER_TIMEOUT_SECONDS <= 0:
        raise ValueError("PROVIDER_TIMEOUT_SECONDS must be positive.")
    if config_cls.SCHEDULER_RESYNC_SECONDS <= 0:
        raise ValueError("SCHEDULER_RESYNC_SECONDS must be positive.")
    if config_cls.RATES_CACHE_MAX_ENTRIES <= 0:
        raise ValueError("RATES_CACHE_MAX_ENTRIES must be positive.")
