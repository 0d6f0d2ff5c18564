from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal

from freezegun import freeze_time

from app.utils.datetime import utc_now


def test_convert_direct_rate(client, rate_store):
    rate_store.upsert_latest("USD", "EUR", Decimal("0.92"), None)

    response = client.get("/rates/convert?from=usd&to=eur&amount=100")

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["from"] == "USD"
    assert payload["to"] == "EUR"
    assert Decimal(payload["result"]) == Decimal("92")
    assert Decimal(payload["rate"]) == Decimal("0.92")
    assert payload["dataAge"] == "just now"
    assert "stale" not in payload
    assert "via" not in payload


def test_convert_cross_rate(client, rate_store):
    rate_store.upsert_latest("USD", "THB", Decimal("35.0"), None)
    rate_store.upsert_latest("USD", "EUR", Decimal("0.90"), None)

    payload = client.get("/rates/convert?from=THB&to=EUR&amount=350").get_json()

    assert payload["via"] == "USD"
    assert payload["crossRate"] is True
    assert Decimal(payload["result"]).quantize(Decimal("0.01")) == Decimal("9.00")


def test_convert_flags_stale_data(client, rate_store):
    fetched_at = datetime(2025, 10, 16, 10, 0, tzinfo=UTC)
    rate_store.upsert_latest("USD", "EUR", Decimal("0.92"), None, fetched_at)

    with freeze_time(fetched_at + timedelta(minutes=61)):
        payload = client.get("/rates/convert?from=USD&to=EUR&amount=1").get_json()

    assert payload["stale"] is True
    assert payload["warning"].startswith("Exchange rate data may be outdated")
    assert payload["dataAgeMinutes"] == 61


def test_convert_unknown_pair_returns_404(client):
    response = client.get("/rates/convert?from=ABC&to=XYZ&amount=1")

    assert response.status_code == 404
    payload = response.get_json()
    assert payload["pair"] == "ABC-XYZ"
    assert "No cross-rate path found" in payload["message"]


def test_convert_rejects_invalid_input(client):
    response = client.get("/rates/convert?from=US&to=EUR&amount=1")
    assert response.status_code == 422
    assert "from" in response.get_json()["field_errors"]

    response = client.get("/rates/convert?from=USD&to=EUR&amount=-1")
    assert response.status_code == 422
    assert response.get_json()["field"] == "amount"

    response = client.get("/rates/convert?from=USD&to=EUR")
    assert response.status_code == 422


def test_latest_rates_filters(client, rate_store):
    now = utc_now()
    rate_store.upsert_latest("USD", "EUR", Decimal("0.92"), None, now - timedelta(minutes=1))
    rate_store.upsert_latest("USD", "GBP", Decimal("0.79"), None, now)
    rate_store.upsert_latest("EUR", "GBP", Decimal("0.86"), None, now - timedelta(minutes=2))

    payload = client.get("/rates/latest?base=usd").get_json()

    assert payload["count"] == 2
    assert [item["pair"] for item in payload["items"]] == ["USD-GBP", "USD-EUR"]
    assert Decimal(payload["items"][1]["rate"]) == Decimal("0.92")

    payload = client.get("/rates/latest?q=gbp&limit=1").get_json()
    assert [item["pair"] for item in payload["items"]] == ["USD-GBP"]


def test_latest_rates_rejects_bad_limit(client):
    assert client.get("/rates/latest?limit=0").status_code == 422
    assert client.get("/rates/latest?limit=101").status_code == 422


def test_history_returns_rows_in_range(client, rate_store):
    for day in (1, 2, 3):
        rate_store.append_history(
            "USD", "EUR", Decimal(f"0.9{day}"), None, datetime(2025, 10, day, 8, 0, tzinfo=UTC)
        )

    response = client.get("/rates/history?base=USD&target=EUR&start=2025-10-02&end=2025-10-03")

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["count"] == 2
    assert [Decimal(item["rate"]) for item in payload["items"]] == [Decimal("0.93"), Decimal("0.92")]


def test_history_rejects_inverted_range(client):
    response = client.get("/rates/history?base=USD&target=EUR&start=2025-10-03&end=2025-10-01")

    assert response.status_code == 422


def test_currencies_lists_observed_codes(client, rate_store):
    rate_store.upsert_latest("USD", "EUR", Decimal("0.92"), None)
    rate_store.upsert_latest("GBP", "JPY", Decimal("190"), None)

    payload = client.get("/rates/currencies").get_json()

    assert payload == {"currencies": ["EUR", "GBP", "JPY", "USD"], "count": 4}


def test_conversion_is_logged(client, rate_store, usage_recorder):
    rate_store.upsert_latest("USD", "EUR", Decimal("0.92"), None)

    client.get("/rates/convert?from=USD&to=EUR&amount=10")

    [entry] = usage_recorder.get_recent_conversions()
    assert entry.result == Decimal("9.2")
