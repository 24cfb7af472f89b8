import threading
import time
from urllib.parse import parse_qs, urlparse

import pytest
import requests

from fakes import FakeResponse
from schemas.crm import FOLLOW_UP_BOSS, WISE_AGENT, TokenSet
from services.token_service import BUFFER_MS, LOCK_STRIPES
from utils.errors import NotConnectedError, ReauthRequiredError
from utils.time_helpers import now_ms

WA_TOKEN_URL = "https://api.wiseagent.com/oauth/token"
FUB_TOKEN_URL = "https://api.followupboss.com/oauth/token"


def _connect(services, user_id, provider, expires_at, access="old-access", refresh="old-refresh"):
    services.credentials.save(user_id, provider, TokenSet(access, refresh, expires_at))
    services.users.set_crm_connected(user_id, provider, True)


def test_fresh_token_makes_no_network_calls(services, session):
    _connect(services, "u1", WISE_AGENT, now_ms() + 60 * 60 * 1000)

    token = services.tokens.get_valid_access_token("u1", WISE_AGENT)

    assert token == "old-access", "fresh token should be returned as stored"
    assert session.calls == [], "no network call expected for a fresh token"


def test_expiring_token_refreshes_exactly_once(services, session):
    _connect(services, "u1", WISE_AGENT, now_ms() + BUFFER_MS - 1000)
    session.add("POST", WA_TOKEN_URL, FakeResponse(200, {
        "access_token": "new-access",
        "refresh_token": "new-refresh",
        "expires_in": 3600,
    }))

    token = services.tokens.get_valid_access_token("u1", WISE_AGENT)

    assert token == "new-access", "refreshed token should be returned"
    calls = session.calls_to(WA_TOKEN_URL, "POST")
    assert len(calls) == 1, "exactly one refresh call expected"
    assert calls[0]["data"]["grant_type"] == "refresh_token", "refresh should use refresh_token grant"
    assert calls[0]["data"]["refresh_token"] == "old-refresh", "stored refresh token should be sent"

    record = services.credentials.get("u1", WISE_AGENT)
    assert record.access_token != "new-access", "stored token must be ciphertext"
    assert services.credentials.access_token(record) == "new-access", "new access token should be persisted"
    assert services.credentials.refresh_token(record) == "new-refresh", "new refresh token should be persisted"
    assert record.expires_at > now_ms() + BUFFER_MS, "expiry should move forward"

    again = services.tokens.get_valid_access_token("u1", WISE_AGENT)
    assert again == "new-access", "second call should use the persisted token"
    assert len(session.calls_to(WA_TOKEN_URL)) == 1, "second call should not refresh again"


def test_refresh_without_rotated_refresh_token_keeps_old_one(services, session):
    _connect(services, "u1", FOLLOW_UP_BOSS, now_ms() - 1000)
    session.add("POST", FUB_TOKEN_URL, FakeResponse(200, {"access_token": "a2", "expires_in": 600}))

    services.tokens.get_valid_access_token("u1", FOLLOW_UP_BOSS)

    record = services.credentials.get("u1", FOLLOW_UP_BOSS)
    assert services.credentials.refresh_token(record) == "old-refresh", "old refresh token should be kept"


def test_missing_record_raises_not_connected(services):
    with pytest.raises(NotConnectedError):
        services.tokens.get_valid_access_token("nobody", WISE_AGENT)


def test_failed_refresh_requires_reauth(services, session):
    _connect(services, "u1", WISE_AGENT, now_ms() - 1000)
    session.add("POST", WA_TOKEN_URL, FakeResponse(400, text='{"error":"invalid_grant"}'))

    with pytest.raises(ReauthRequiredError) as exc:
        services.tokens.get_valid_access_token("u1", WISE_AGENT)

    assert exc.value.status == 401, "reauth should map to 401"
    record = services.credentials.get("u1", WISE_AGENT)
    assert services.credentials.access_token(record) == "old-access", "failed refresh must not overwrite tokens"


def test_unreachable_token_endpoint_requires_reauth(services, session):
    _connect(services, "u1", WISE_AGENT, now_ms() - 1000)

    def unreachable(**kwargs):
        raise requests.ConnectionError("provider unreachable")

    session.add("POST", WA_TOKEN_URL, unreachable)

    with pytest.raises(ReauthRequiredError) as exc:
        services.tokens.get_valid_access_token("u1", WISE_AGENT)

    assert exc.value.code == "reauth_required", "network failure should surface as reauth"
    record = services.credentials.get("u1", WISE_AGENT)
    assert services.credentials.access_token(record) == "old-access", "stored tokens left untouched"


def test_refresh_lock_pool_is_fixed_size(services):
    locks = {id(services.tokens._lock_for(f"user-{i}", WISE_AGENT)) for i in range(500)}

    assert len(locks) <= LOCK_STRIPES, "lock pool should not grow with the number of users"
    assert services.tokens._lock_for("u1", WISE_AGENT) is services.tokens._lock_for("u1", WISE_AGENT), \
        "same key must always map to the same lock"


def test_concurrent_callers_share_one_refresh(services, session):
    _connect(services, "u1", WISE_AGENT, now_ms() - 1000)

    def slow_refresh(**kwargs):
        time.sleep(0.05)
        return FakeResponse(200, {"access_token": "new-access", "refresh_token": "r2", "expires_in": 3600})

    session.add("POST", WA_TOKEN_URL, slow_refresh)
    results = []

    def worker():
        results.append(services.tokens.get_valid_access_token("u1", WISE_AGENT))

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results == ["new-access"] * 4, "every caller should get the refreshed token"
    assert len(session.calls_to(WA_TOKEN_URL)) == 1, "only one refresh should hit the provider"


def test_authorize_url_carries_state_and_redirect(services):
    url = services.tokens.authorize_url(WISE_AGENT, "user-42")
    query = parse_qs(urlparse(url).query)

    assert url.startswith("https://api.wiseagent.com/oauth/authorize?"), "should use provider authorize URL"
    assert query["state"] == ["user-42"], "state should carry the user id"
    assert query["client_id"] == ["wise_agent-id"], "client id should be included"
    assert query["response_type"] == ["code"], "authorization code flow expected"
    assert query["redirect_uri"][0].endswith("/crm/wise_agent/callback"), "redirect should hit the callback route"


def test_complete_oauth_stores_tokens_and_flags_user(services, session):
    session.add("POST", WA_TOKEN_URL, FakeResponse(200, {
        "access_token": "a1",
        "refresh_token": "r1",
        "expires_at": "2099-01-01T00:00:00Z",
    }))

    result = services.tokens.complete_oauth(WISE_AGENT, "auth-code", "u9")

    assert result["success"] is True, "callback should succeed"
    record = services.credentials.get("u9", WISE_AGENT)
    assert services.credentials.access_token(record) == "a1", "exchanged token should be stored"
    assert record.expires_at == 4070908800000, "absolute expires_at should be converted to millis"
    user = services.users.get("u9")
    assert user["connected_crms"] == {WISE_AGENT: True}, "provider flag should be set"
    assert user["crm_type"] == WISE_AGENT, "crm_type should be the last connected provider"


def test_complete_oauth_never_raises(services, session):
    missing = services.tokens.complete_oauth(WISE_AGENT, None, "u1")
    assert missing["success"] is False, "missing code should fail softly"

    session.add("POST", WA_TOKEN_URL, FakeResponse(500, text="boom"))
    failed = services.tokens.complete_oauth(WISE_AGENT, "code", "u1")
    assert failed["success"] is False, "exchange failure should fail softly"
    assert services.credentials.get("u1", WISE_AGENT) is None, "nothing should be stored on failure"

    unknown = services.tokens.complete_oauth("salesforce", "code", "u1")
    assert unknown["success"] is False, "unknown provider should fail softly"


def test_disconnect_removes_credentials_and_flag(services):
    _connect(services, "u1", WISE_AGENT, now_ms() + 10 ** 7)
    _connect(services, "u1", FOLLOW_UP_BOSS, now_ms() + 10 ** 7)

    services.tokens.disconnect("u1", FOLLOW_UP_BOSS)

    assert services.credentials.get("u1", FOLLOW_UP_BOSS) is None, "credential row should be deleted"
    assert services.users.connected_providers("u1") == [WISE_AGENT], "only the other provider stays connected"
    assert services.users.get("u1")["crm_type"] == WISE_AGENT, "crm_type should fall back to a connected provider"
    status = services.tokens.connection_status("u1")
    assert status[WISE_AGENT]["connected"] is True, "status should report remaining connection"
    assert status[FOLLOW_UP_BOSS]["connected"] is False, "status should report the disconnect"
