from __future__ import annotations

from decimal import Decimal

import responses

from app import RATE_CACHE_KEY, RATE_FETCHER_KEY
from app.services.rate_fetcher import ProviderSettings


def _create(client, **overrides):
    payload = {
        "name": "Mock feed",
        "provider": "mock",
        "base_url": "http://localhost",
        "poll_interval_seconds": 120,
    }
    payload.update(overrides)
    return client.post("/integrations", json=payload)


def test_list_providers(client):
    response = client.get("/integrations/providers")

    assert response.status_code == 200
    kinds = {item["kind"] for item in response.get_json()}
    assert kinds == {"exchangerate-api", "fixer", "currencylayer", "mock"}
    assert all("displayName" in item for item in response.get_json())


def test_create_integration(client):
    response = _create(client, api_key="top-secret")

    assert response.status_code == 201
    body = response.get_json()
    assert response.headers["Location"].endswith(f"/integrations/{body['id']}")
    assert body["provider"] == "mock"
    assert body["poll_interval_seconds"] == 120
    assert body["has_api_key"] is True
    assert "api_key" not in body
    assert b"top-secret" not in response.data


def test_create_rejects_invalid_payloads(client):
    assert _create(client, poll_interval_seconds=30).status_code == 422
    assert _create(client, priority=0).status_code == 422
    assert _create(client, base_url="not a url").status_code == 422

    response = _create(client, provider="oanda")
    assert response.status_code == 422
    assert "provider" in response.get_json()["field_errors"]


def test_get_update_and_list(client):
    integration_id = _create(client).get_json()["id"]
    _create(client, name="Second", priority=1)

    response = client.patch(f"/integrations/{integration_id}", json={"poll_interval_seconds": 600})
    assert response.status_code == 200
    assert response.get_json()["poll_interval_seconds"] == 600

    assert client.get(f"/integrations/{integration_id}").get_json()["name"] == "Mock feed"

    listing = client.get("/integrations").get_json()
    assert listing["count"] == 2
    assert listing["items"][0]["name"] == "Second"


def test_patch_requires_a_field(client):
    integration_id = _create(client).get_json()["id"]

    assert client.patch(f"/integrations/{integration_id}", json={}).status_code == 422


def test_unknown_integration_returns_404(client):
    assert client.get("/integrations/missing").status_code == 404
    assert client.patch("/integrations/missing", json={"name": "x"}).status_code == 404
    assert client.delete("/integrations/missing/permanent").status_code == 404


def test_delete_deactivates_and_permanent_delete_removes(client):
    integration_id = _create(client).get_json()["id"]

    response = client.delete(f"/integrations/{integration_id}")
    assert response.status_code == 200
    assert response.get_json()["active"] is False
    assert client.get("/integrations?active=true").get_json()["count"] == 0

    response = client.delete(f"/integrations/{integration_id}/permanent")
    assert response.status_code == 204
    assert client.get(f"/integrations/{integration_id}").status_code == 404


def test_fetch_now_with_mock_provider(client, rate_store):
    integration_id = _create(client).get_json()["id"]

    response = client.post(f"/integrations/{integration_id}/fetch")

    assert response.status_code == 200
    body = response.get_json()
    assert body["integrationId"] == integration_id
    assert body["failed"] == {}
    assert body["failedPairs"] == {}
    assert set(body["succeeded"]) == {"USD", "EUR", "GBP", "JPY"}
    assert rate_store.get_latest("USD-EUR").rate == Decimal("0.92")
    assert client.application.extensions[RATE_CACHE_KEY].get("USD-EUR") is not None

    usage = client.get(f"/integrations/{integration_id}/usage").get_json()
    assert usage["integrationId"] == integration_id
    assert usage["items"][0]["callsMade"] == 4
    assert usage["items"][0]["callsLimit"] == 1000


@responses.activate
def test_fetch_now_records_provider_failures(client, monkeypatch):
    integration_id = _create(
        client,
        provider="exchangerate-api",
        base_url="https://v6.example.com",
        api_key="k",
    ).get_json()["id"]
    responses.add(
        responses.GET,
        "https://v6.example.com/v6/k/latest/USD",
        json={"result": "error", "error-type": "invalid-key"},
        status=200,
    )
    fetcher = client.application.extensions[RATE_FETCHER_KEY]
    monkeypatch.setattr(fetcher, "_base_currencies", ["USD"])
    monkeypatch.setattr(fetcher, "_settings", ProviderSettings(max_retries=0))

    body = client.post(f"/integrations/{integration_id}/fetch").get_json()

    assert body["succeeded"] == []
    assert "USD" in body["failed"]
    requests_ = client.get(f"/monitoring/requests?integrationId={integration_id}").get_json()
    assert requests_[0]["success"] is False
    assert requests_[0]["baseCurrency"] == "USD"


def test_fetch_now_rejects_inactive_integration(client):
    integration_id = _create(client, active=False).get_json()["id"]

    assert client.post(f"/integrations/{integration_id}/fetch").status_code == 404
