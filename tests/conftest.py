"""Shared pytest fixtures."""

from __future__ import annotations

import json
import os
import sys
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import delete

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

os.environ.setdefault("APP_DATA_KEY", "test-data-key")

from app import (  # noqa: E402
    INTEGRATION_STORE_KEY,
    RATE_CACHE_KEY,
    RATE_STORE_KEY,
    USAGE_RECORDER_KEY,
    create_app,
)
from app.database import SessionLocal, get_engine  # noqa: E402
from app.models import (  # noqa: E402
    ConversionLog,
    Integration,
    IntegrationUsage,
    LatestRate,
    RateHistory,
    RequestLog,
)
from app.providers.registry import reset_registry  # noqa: E402

CLEANUP_ORDER = (ConversionLog, RequestLog, IntegrationUsage, RateHistory, LatestRate, Integration)


@pytest.fixture(scope="session")
def app(tmp_path_factory: pytest.TempPathFactory) -> Iterator:
    """Session-wide Flask application configured with a temporary database."""

    db_dir = tmp_path_factory.mktemp("db")
    db_path = db_dir / "test.db"
    database_url = f"sqlite:///{db_path}"

    previous_db_url = os.environ.get("DATABASE_URL")
    os.environ["DATABASE_URL"] = database_url

    alembic_cfg = Config(str(ROOT_DIR / "alembic.ini"))
    alembic_cfg.set_main_option("sqlalchemy.url", database_url)
    command.upgrade(alembic_cfg, "head")

    flask_app = create_app("testing")

    yield flask_app

    engine = get_engine()
    SessionLocal.remove()
    engine.dispose()
    command.downgrade(alembic_cfg, "base")

    if previous_db_url is not None:
        os.environ["DATABASE_URL"] = previous_db_url
    else:
        os.environ.pop("DATABASE_URL", None)


@pytest.fixture()
def clean_db(app) -> Iterator:
    """Empty every table and the rate cache after the test."""

    yield
    session = SessionLocal()
    try:
        for model in CLEANUP_ORDER:
            session.execute(delete(model))
        session.commit()
    finally:
        SessionLocal.remove()
    app.extensions[RATE_CACHE_KEY].invalidate_all()
    reset_registry()


@pytest.fixture()
def client(app, clean_db):
    """Provide a Flask test client."""

    with app.test_client() as client:
        yield client


@pytest.fixture()
def rate_store(app, clean_db):
    return app.extensions[RATE_STORE_KEY]


@pytest.fixture()
def rate_cache(app, clean_db):
    return app.extensions[RATE_CACHE_KEY]


@pytest.fixture()
def usage_recorder(app, clean_db):
    return app.extensions[USAGE_RECORDER_KEY]


@pytest.fixture()
def integration_store(app, clean_db):
    store = app.extensions[INTEGRATION_STORE_KEY]
    yield store


@pytest.fixture()
def make_integration(integration_store) -> Callable[..., object]:
    """Create an integration row with sensible defaults."""

    def _factory(**overrides):
        data = {
            "name": "Mock feed",
            "provider": "mock",
            "base_url": "http://localhost",
            "poll_interval_seconds": 300,
        }
        data.update(overrides)
        return integration_store.create(data)

    return _factory


@pytest.fixture(scope="session")
def fixtures_dir() -> Path:
    """Return the path to bundled JSON fixtures."""

    return ROOT_DIR / "tests" / "fixtures"


@pytest.fixture()
def load_json_fixture(fixtures_dir: Path) -> Callable[[str], dict]:
    """Load a JSON fixture by filename."""

    def _loader(filename: str) -> dict:
        path = fixtures_dir / filename
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)

    return _loader
