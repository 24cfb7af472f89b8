import json
from datetime import timedelta

import pytest

import config
from fakes import FakeResponse
from utils.time_helpers import to_iso, utcnow

USER = {"X-User-Id": "agent-1"}


@pytest.fixture(autouse=True)
def _no_token_verification(monkeypatch):
    monkeypatch.setattr(config, "VERIFY_FIREBASE_TOKEN", False)


def test_health_reports_integrations(client):
    res = client.get("/health")
    body = res.get_json()

    assert res.status_code == 200, "health should be 200"
    assert body["ok"] is True and body["request_id"], "envelope with request id"
    assert body["data"]["stripe"] is True and body["data"]["openai"] is False, "integration flags"


def test_request_id_is_echoed(client):
    res = client.get("/version", headers={"X-Request-Id": "req-123"})

    assert res.headers["X-Request-Id"] == "req-123", "header echoed"
    assert res.get_json()["request_id"] == "req-123", "body carries the same id"


def test_unknown_route_uses_error_envelope(client):
    res = client.get("/nope")
    body = res.get_json()

    assert res.status_code == 404, "404 expected"
    assert body["ok"] is False and body["error"]["code"] == "not_found", "JSON error envelope"


def test_missing_user_is_unauthorized(client):
    res = client.get("/reminders")

    assert res.status_code == 401, "no user id means 401"
    assert res.get_json()["error"]["code"] == "unauthorized", "unauthorized code"


def test_reminder_create_list_cancel(client):
    when = to_iso(utcnow() + timedelta(days=1))
    res = client.post("/reminders", headers=USER, json={"type": "custom", "message": "Call Ann", "scheduled_for": when})
    assert res.status_code == 201, res.get_data(as_text=True)
    reminder_id = res.get_json()["data"]["reminder"]["id"]

    listed = client.get("/reminders", headers=USER).get_json()["data"]["reminders"]
    assert [r["id"] for r in listed] == [reminder_id], "new reminder listed"

    res = client.post(f"/reminders/{reminder_id}/cancel", headers=USER)
    assert res.get_json()["data"]["reminder"]["status"] == "cancelled", "reminder cancelled"
    assert client.get("/reminders", headers=USER).get_json()["data"]["reminders"] == [], "cancelled not upcoming"


def test_reminder_create_validation(client):
    res = client.post("/reminders", headers=USER, json={"type": "custom", "message": "x", "scheduled_for": "soon"})

    assert res.status_code == 400, "bad timestamp is a 400"


def test_rules_init_and_schedule(client):
    assert client.post("/reminders/rules/init", headers=USER).status_code == 201, "rules created"

    res = client.post("/reminders/schedule", headers=USER, json={
        "rule_id": "birthday",
        "context": {"contactName": "Ann"},
    })

    assert res.status_code == 201, res.get_data(as_text=True)
    assert "Ann's birthday" in res.get_json()["data"]["reminder"]["message"], "template rendered"


def test_rule_update_parses_enabled_flag(client):
    client.post("/reminders/rules/init", headers=USER)

    res = client.patch("/reminders/rules/birthday", headers=USER, json={"enabled": "false"})

    assert res.status_code == 200, res.get_data(as_text=True)
    assert res.get_json()["data"]["rule"]["enabled"] is False, "string flag stored as a boolean"


def test_process_requires_cron_secret(client, monkeypatch):
    monkeypatch.setattr(config, "CRON_SECRET", "s3cret")

    assert client.post("/reminders/process").status_code == 401, "missing secret rejected"
    res = client.post("/reminders/process", headers={"X-Cron-Secret": "s3cret"})
    assert res.status_code == 200, "correct secret accepted"
    assert res.get_json()["data"] == {"processed": 0, "sent": 0, "failed": 0}, "nothing due"


def test_webhook_rejects_bad_signature(client):
    res = client.post("/billing/webhook", data=b"{}", headers={"Stripe-Signature": "forged"})

    assert res.status_code == 400, "bad signature is a 400"


def test_webhook_acknowledges_unknown_event(client):
    payload = json.dumps({"id": "evt_1", "type": "charge.refunded", "data": {"object": {}}})
    res = client.post("/billing/webhook", data=payload, headers={"Stripe-Signature": "good-signature"})

    assert res.get_json()["data"] == {"received": True, "result": "ignored"}, "unknown events acknowledged"


def test_billing_plans(client):
    plans = client.get("/billing/plans").get_json()["data"]["plans"]

    assert [p["id"] for p in plans] == ["basic", "professional", "enterprise"], "three plans listed"


def test_command_without_model_is_unknown(client):
    res = client.post("/command", headers=USER, json={"command": "add a lead named Ann", "execute": True})
    data = res.get_json()["data"]

    assert data["interpretation"]["action"] == "unknown", "no model means unknown"
    assert data["executed"] is False, "unknown actions are never run"


def test_command_requires_text(client):
    assert client.post("/command", headers=USER, json={}).status_code == 400, "empty command is a 400"


def test_property_search_saves_history(client, session):
    session.add("GET", "https://mls.example/properties", FakeResponse(200, {"properties": [
        {"id": "p1", "city": "Austin", "state": "TX", "price": 300000, "bedrooms": 2, "bathrooms": 1},
    ]}))

    res = client.post("/properties/search", headers=USER, json={"city": "Austin", "state": "TX"})
    assert res.get_json()["data"]["properties"][0]["id"] == "p1", "listing returned"

    searches = client.get("/properties/searches", headers=USER).get_json()["data"]["searches"]
    assert len(searches) == 1 and searches[0]["params"] == {"city": "Austin", "state": "TX"}, "search saved"


def test_property_search_coerces_string_bounds(client, session):
    session.add("GET", "https://mls.example/properties", FakeResponse(200, {"properties": [
        {"id": "p1", "city": "Austin", "price": 400000},
        {"id": "p2", "city": "Austin", "price": 200000},
    ]}))

    res = client.post("/properties/search", json={"min_price": "300000", "property_type": "house"})

    assert res.status_code == 200, res.get_data(as_text=True)
    assert [p["id"] for p in res.get_json()["data"]["properties"]] == ["p1"], "string bound applied"


def test_property_search_rejects_bad_page(client):
    res = client.post("/properties/search", json={"page": "x"})

    assert res.status_code == 400, "unparseable page is a 400"
    assert res.get_json()["error"]["code"] == "bad_request", "validation error code"


def test_market_stats_validates_period(client):
    assert client.get("/market/stats?location=Austin&period=decade").status_code == 400, "bad period"
    assert client.get("/market/stats").status_code == 400, "missing location"


def test_crm_authorize_and_status(client):
    res = client.get("/crm/wise_agent/authorize", headers=USER)
    url = res.get_json()["data"]["url"]

    assert url.startswith("https://api.wiseagent.com/oauth/authorize?"), url
    assert "state=agent-1" in url, "user id travels as state"
    assert client.get("/crm/bogus/authorize", headers=USER).status_code == 400, "unknown provider"

    status = client.get("/crm/status", headers=USER).get_json()["data"]["providers"]
    assert all(not entry["connected"] for entry in status.values()), "nothing connected yet"


def test_crm_callback_error(client):
    res = client.get("/crm/wise_agent/callback?error=access_denied")

    assert res.status_code == 400 and res.get_json()["error"]["code"] == "oauth_denied", "denied consent"
