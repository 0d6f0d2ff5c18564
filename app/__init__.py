"""Application factory for the Currency Exchange Hub service."""

from __future__ import annotations

import atexit
from concurrent.futures import ThreadPoolExecutor
from logging import getLogger

from flask import Flask
from flask_smorest import Api

from config import get_config, parse_base_currencies
from .cli import register_cli
from .database import SessionLocal
from .database import init_app as init_db
from .logging import init_request_logging, setup_logging

logger = getLogger(__name__)

RATE_STORE_KEY = "rate_store"
RATE_CACHE_KEY = "rate_cache"
USAGE_RECORDER_KEY = "usage_recorder"
INTEGRATION_STORE_KEY = "integration_store"
CONVERSION_ENGINE_KEY = "conversion_engine"
RATE_FETCHER_KEY = "rate_fetcher"
SCHEDULER_KEY = "polling_scheduler"
CONVERSION_EXECUTOR_KEY = "conversion_log_executor"


def create_app(config_name: str | None = None) -> Flask:
    """Application factory adhering to the Flask app factory pattern."""

    app = Flask(__name__)
    config_class = get_config(config_name)
    app.config.from_object(config_class)

    setup_logging(app)
    init_request_logging(app)

    _configure_api(app)
    api = _register_extensions(app)
    _register_blueprints(app, api)
    _register_error_handlers(app)

    register_cli(app)
    _start_scheduler(app)
    return app


def _configure_api(app: Flask) -> None:
    app.config.setdefault("API_TITLE", "Currency Exchange Hub API")
    app.config.setdefault("API_VERSION", "v1")
    app.config.setdefault("OPENAPI_VERSION", "3.0.3")
    app.config.setdefault("OPENAPI_URL_PREFIX", "/docs")
    app.config.setdefault("OPENAPI_SWAGGER_UI_PATH", "/")
    app.config.setdefault(
        "OPENAPI_SWAGGER_UI_URL",
        "https://cdn.jsdelivr.net/npm/swagger-ui-dist/",
    )


def _register_extensions(app: Flask) -> Api:
    """Build the service graph and expose it through ``app.extensions``."""

    init_db(app)
    from . import models  # noqa: F401  # Ensure models are imported for metadata
    from .services.conversion import ConversionEngine
    from .services.integrations import IntegrationStore
    from .services.rate_cache import build_rate_cache
    from .services.rate_fetcher import ProviderSettings, RateFetcher
    from .services.rate_store import RateStore
    from .services.scheduler import PollingScheduler, default_timer_factory
    from .services.usage import UsageRecorder
    from .utils.crypto import CredentialCipher

    cipher = CredentialCipher(app.config.get("APP_DATA_KEY") or "")

    store = RateStore(SessionLocal)
    cache = build_rate_cache(
        app.config.get("REDIS_URL"),
        ttl_seconds=app.config["RATES_CACHE_TTL_SECONDS"],
        capacity=app.config["RATES_CACHE_MAX_ENTRIES"],
    )
    usage = UsageRecorder(SessionLocal)
    integrations = IntegrationStore(SessionLocal, cipher)

    executor = None
    if app.config.get("CONVERSION_LOG_ASYNC", True):
        executor = ThreadPoolExecutor(
            max_workers=app.config.get("CONVERSION_LOG_WORKERS", 2),
            thread_name_prefix="conversion-log",
        )
    engine = ConversionEngine(
        store,
        cache,
        conversion_log=usage.log_conversion,
        executor=executor,
        stale_after_minutes=app.config["STALE_AFTER_MINUTES"],
    )

    fetcher = RateFetcher(
        store,
        cache,
        usage,
        base_currencies=parse_base_currencies(app.config.get("BASE_CURRENCIES")),
        settings=ProviderSettings(
            timeout=app.config["PROVIDER_TIMEOUT_SECONDS"],
            max_retries=app.config["PROVIDER_MAX_RETRIES"],
            backoff_seconds=app.config["PROVIDER_BACKOFF_SECONDS"],
            free_tier=app.config["PROVIDER_FREE_TIER"],
        ),
    )
    scheduler = PollingScheduler(
        integrations,
        fetcher,
        timer_factory=default_timer_factory(app.config.get("SCHEDULER_TIMEZONE", "UTC")),
        resync_seconds=app.config["SCHEDULER_RESYNC_SECONDS"],
    )
    integrations.on_change = scheduler.resync

    app.extensions[RATE_STORE_KEY] = store
    app.extensions[RATE_CACHE_KEY] = cache
    app.extensions[USAGE_RECORDER_KEY] = usage
    app.extensions[INTEGRATION_STORE_KEY] = integrations
    app.extensions[CONVERSION_ENGINE_KEY] = engine
    app.extensions[RATE_FETCHER_KEY] = fetcher
    app.extensions[SCHEDULER_KEY] = scheduler
    app.extensions[CONVERSION_EXECUTOR_KEY] = executor

    api = Api(app)
    app.extensions["smorest_api"] = api
    return api


def _register_blueprints(app: Flask, api: Api) -> None:
    """Register Flask blueprints."""

    from .health import blp as health_blp
    from .integrations import blp as integrations_blp
    from .monitoring import blp as monitoring_blp
    from .rates import blp as rates_blp

    api.register_blueprint(health_blp, url_prefix="/health")
    api.register_blueprint(rates_blp, url_prefix="/rates")
    api.register_blueprint(integrations_blp, url_prefix="/integrations")
    api.register_blueprint(monitoring_blp, url_prefix="/monitoring")


def _register_error_handlers(app: Flask) -> None:
    """Register global error handlers."""

    from .errors import register_error_handlers

    register_error_handlers(app)


def _start_scheduler(app: Flask) -> None:
    scheduler = app.extensions[SCHEDULER_KEY]
    executor = app.extensions[CONVERSION_EXECUTOR_KEY]
    if executor is not None:
        atexit.register(executor.shutdown, wait=False)

    if not app.config.get("SCHEDULER_ENABLED", True):
        logger.info("Scheduler disabled via configuration.")
        return

    scheduler.start()
    atexit.register(scheduler.stop)
