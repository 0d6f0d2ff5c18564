from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from decimal import Decimal

import pytest
from flask import Flask

from app.logging import (
    JSONLogFormatter,
    conversion_log_extra,
    fetch_log_extra,
    init_request_logging,
    setup_logging,
)


class _MemoryHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


@contextmanager
def isolate_logging():
    root = logging.getLogger()
    previous_handlers = root.handlers[:]
    previous_level = root.level
    try:
        for handler in root.handlers[:]:
            root.removeHandler(handler)
        yield root
    finally:
        for handler in root.handlers[:]:
            root.removeHandler(handler)
        for handler in previous_handlers:
            root.addHandler(handler)
        root.setLevel(previous_level)


def test_json_log_formatter_renders_basic_fields():
    formatter = JSONLogFormatter()
    record = logging.LogRecord(
        name="app.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=42,
        msg="Hello %s",
        args=("world",),
        exc_info=None,
    )
    record.request_id = "req-123"

    payload = json.loads(formatter.format(record))

    assert payload["message"] == "Hello world"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "app.test"
    assert "timestamp" in payload
    assert payload["request_id"] == "req-123"


def test_setup_logging_enables_json_formatter_when_configured():
    app = Flask(__name__)
    app.config["LOG_JSON_ENABLED"] = True
    app.config["LOG_LEVEL"] = "DEBUG"

    with isolate_logging():
        setup_logging(app)
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert app.logger.level == logging.DEBUG
        assert root.handlers, "Expected handler to be registered on root logger"
        handler = root.handlers[0]
        assert isinstance(handler.formatter, JSONLogFormatter)


def test_setup_logging_uses_plain_formatter_by_default():
    app = Flask(__name__)
    app.config["LOG_JSON_ENABLED"] = False
    app.config["LOG_LEVEL"] = "WARNING"
    app.config["LOG_FORMAT"] = "%(levelname)s:%(message)s"

    with isolate_logging():
        setup_logging(app)
        root = logging.getLogger()
        assert root.level == logging.WARNING
        handler = root.handlers[0]
        assert isinstance(handler.formatter, logging.Formatter)
        assert handler.formatter._style._fmt == "%(levelname)s:%(message)s"


def _make_test_app():
    app = Flask(__name__)
    app.config["TESTING"] = True

    @app.route("/ok")
    def ok():  # pragma: no cover - invoked via test client
        return "ok", 200

    @app.route("/boom")
    def boom():  # pragma: no cover - invoked via test client
        raise RuntimeError("boom")

    return app


def test_request_logging_emits_correlation_fields():
    app = _make_test_app()
    app.config["LOG_JSON_ENABLED"] = False

    with isolate_logging():
        setup_logging(app)
        init_request_logging(app)
        handler = _MemoryHandler()
        handler.setLevel(logging.INFO)
        logging.getLogger().addHandler(handler)
        client = app.test_client()
        response = client.get("/ok")

    records = [record for record in handler.records if record.message == "Request handled"]
    assert records
    record = records[-1]
    assert record.event == "request.completed"
    assert record.method == "GET"
    assert record.status == 200
    assert record.request_id == response.headers["X-Request-ID"]
    assert record.source == "api"
    assert record.duration_ms is not None and record.duration_ms >= 0
    assert record.route in {"/ok", "ok"}


def test_request_logging_captures_errors():
    app = _make_test_app()

    with isolate_logging():
        setup_logging(app)
        init_request_logging(app)
        handler = _MemoryHandler()
        handler.setLevel(logging.INFO)
        logging.getLogger().addHandler(handler)
        client = app.test_client()
        with pytest.raises(RuntimeError):
            client.get("/boom")

    records = [record for record in handler.records if record.message == "Request failed"]
    assert records
    record = records[-1]
    assert record.event == "request.failed"
    assert record.status == 500
    assert record.request_id
    assert record.duration_ms is not None and record.duration_ms >= 0
    assert "boom" in record.error


def test_request_id_header_is_echoed_when_supplied():
    app = _make_test_app()

    with isolate_logging():
        setup_logging(app)
        init_request_logging(app)
        response = app.test_client().get("/ok", headers={"X-Request-ID": "abc-123"})

    assert response.headers["X-Request-ID"] == "abc-123"


def test_fetch_log_extra_drops_empty_fields():
    extras = fetch_log_extra(
        integration_id="int-1",
        provider="fixer",
        base="EUR",
        event="provider.fetch",
        status="success",
        duration_ms=12.34567,
    )

    assert extras == {
        "event": "provider.fetch",
        "integration_id": "int-1",
        "provider": "fixer",
        "base": "EUR",
        "status": "success",
        "duration_ms": 12.346,
        "source": "fixer",
    }


def test_fetch_log_extra_carries_request_id_inside_a_request():
    app = _make_test_app()
    init_request_logging(app)

    with app.test_request_context("/ok"):
        app.preprocess_request()
        extras = fetch_log_extra(
            integration_id="int-1",
            provider="mock",
            base="USD",
            event="provider.fetch",
            status="error",
            duration_ms=None,
            error="HTTP 503",
        )

    assert extras["request_id"]
    assert extras["error"] == "HTTP 503"
    assert "duration_ms" not in extras


def test_conversion_log_extra_stringifies_decimals():
    extras = conversion_log_extra(
        from_currency="THB", to_currency="EUR", amount=Decimal("350"), rate=Decimal("0.0257"), via="USD"
    )

    assert extras["amount"] == "350"
    assert extras["rate"] == "0.0257"
    assert extras["via"] == "USD"
    assert extras["event"] == "conversion.completed"


def test_setup_logging_quiets_scheduler_job_logs():
    app = Flask(__name__)
    app.config["LOG_LEVEL"] = "INFO"

    with isolate_logging():
        setup_logging(app)
        assert logging.getLogger("apscheduler").level == logging.WARNING
        assert logging.getLogger("urllib3").level == logging.WARNING


def test_request_logging_tags_integration_routes():
    app = _make_test_app()

    @app.route("/integrations/<string:integration_id>")
    def integration(integration_id):  # pragma: no cover - invoked via test client
        return integration_id, 200

    with isolate_logging():
        setup_logging(app)
        init_request_logging(app)
        handler = _MemoryHandler()
        logging.getLogger().addHandler(handler)
        app.test_client().get("/integrations/int-42")

    [record] = [record for record in handler.records if record.message == "Request handled"]
    assert record.integration_id == "int-42"
    assert record.route == "/integrations/<string:integration_id>"


def test_json_log_formatter_stringifies_decimal_extras():
    record = logging.LogRecord("app.test", logging.INFO, __file__, 1, "converted", (), None)
    record.rate = Decimal("0.0257")

    payload = json.loads(JSONLogFormatter().format(record))

    assert payload["rate"] == "0.0257"
    assert "taskName" not in payload


def test_package_logger_is_not_shadowed_by_logging_module():
    import app as app_package

    assert isinstance(app_package.logger, logging.Logger)
    assert app_package.logger.name == "app"
