from __future__ import annotations

from decimal import Decimal


def test_scheduler_status_when_disabled(client):
    response = client.get("/monitoring/scheduler")

    assert response.status_code == 200
    assert response.get_json() == {"running": False, "activeJobs": 0, "jobs": []}


def test_resync_is_not_applied_while_scheduler_stopped(client):
    response = client.post("/monitoring/scheduler/resync")

    assert response.status_code == 200
    assert response.get_json() == {"running": False, "applied": False}


def test_recent_requests_newest_first(client, usage_recorder, make_integration):
    integration = make_integration()
    usage_recorder.record_request(integration.id, "USD", True, response_time_ms=40)
    usage_recorder.record_request(integration.id, "EUR", False, error_message="timeout")

    payload = client.get(f"/monitoring/requests?integrationId={integration.id}").get_json()

    assert [row["baseCurrency"] for row in payload] == ["EUR", "USD"]
    assert payload[0]["errorMessage"] == "timeout"
    assert payload[1]["responseTimeMs"] == 40

    assert len(client.get("/monitoring/requests?limit=1").get_json()) == 1


def test_recent_requests_rejects_bad_limit(client):
    assert client.get("/monitoring/requests?limit=0").status_code == 422


def test_recent_conversions(client, usage_recorder):
    usage_recorder.log_conversion("USD", "EUR", Decimal("10"), Decimal("9.2"), Decimal("0.92"))

    [row] = client.get("/monitoring/conversions").get_json()

    assert row["from"] == "USD"
    assert row["to"] == "EUR"
    assert Decimal(row["result"]) == Decimal("9.2")
