import pytest

from clients.crm import OAuthClient
from clients.crm.follow_up_boss import FollowUpBossClient
from clients.crm.real_geeks import RealGeeksClient
from clients.crm.wise_agent import WiseAgentClient
from fakes import FakeResponse, FakeSession, provider_configs
from schemas.crm import FOLLOW_UP_BOSS, REAL_GEEKS, WISE_AGENT, Contact, CRMTask
from utils.errors import ConfigError, UpstreamError

CONFIGS = provider_configs()


def _client(cls, provider, session):
    return cls(CONFIGS[provider], lambda: "tok-123", session=session)


def test_wise_agent_search_maps_fields():
    session = FakeSession()
    session.add("GET", "https://api.wiseagent.com/v2/contacts/search", FakeResponse(200, {"contacts": [{
        "id": 7,
        "first_name": "Ann",
        "last_name": "Lee",
        "email": "ann@example.com",
        "phone_number": "555-0100",
        "tags": "buyer,hot",
        "last_contact_date": "2024-05-01",
    }]}))

    contacts = _client(WiseAgentClient, WISE_AGENT, session).search_contacts("ann")

    assert len(contacts) == 1, "one contact expected"
    c = contacts[0]
    assert (c.id, c.first_name, c.phone) == ("7", "Ann", "555-0100"), "fields should be normalized"
    assert c.tags == ["buyer", "hot"], "comma tags should be split"
    assert c.provider == WISE_AGENT, "provider should be stamped"
    call = session.calls[0]
    assert call["params"] == {"q": "ann"}, "query should be sent as q"
    assert call["headers"]["Authorization"] == "Bearer tok-123", "token should be sent as bearer"


def test_wise_agent_create_contact_payload():
    session = FakeSession()
    session.add("POST", "https://api.wiseagent.com/v2/contacts", FakeResponse(201, {"id": "wa-1"}))

    contact_id = _client(WiseAgentClient, WISE_AGENT, session).create_contact(
        Contact(first_name="Ann", last_name="Lee", phone="555", tags=["a", "b"])
    )

    assert contact_id == "wa-1", "provider id should be returned"
    body = session.calls[0]["json"]
    assert body["phone_number"] == "555", "phone should map to phone_number"
    assert body["tags"] == "a,b", "tags should be joined"
    assert body["source"] == "Estait AI", "default source expected"


def test_follow_up_boss_person_mapping():
    session = FakeSession()
    session.add("POST", "https://api.followupboss.com/v1/people", FakeResponse(200, {"id": 99}))
    session.add("GET", "https://api.followupboss.com/v1/people", FakeResponse(200, {"people": [{
        "id": 99,
        "name": "Bob Stone",
        "emails": [{"value": "bob@example.com"}],
        "phones": [{"type": "mobile", "value": "555-0101"}],
    }]}))
    client = _client(FollowUpBossClient, FOLLOW_UP_BOSS, session)

    assert client.create_contact(Contact(first_name="Bob", last_name="Stone", email="bob@example.com")) == "99"
    body = session.calls[0]["json"]
    assert body["name"] == "Bob Stone", "FUB takes a single name"
    assert body["emails"] == [{"value": "bob@example.com"}], "emails should be a list"

    found = client.search_contacts("bob")
    assert (found[0].first_name, found[0].last_name) == ("Bob", "Stone"), "name should be split"
    assert found[0].email == "bob@example.com", "first email should be used"
    assert session.calls[1]["params"] == {"q": "bob"}, "FUB search uses q"


def test_follow_up_boss_task_without_person():
    session = FakeSession()
    session.add("POST", "https://api.followupboss.com/v1/tasks", FakeResponse(200, {"id": 5}))

    task_id = _client(FollowUpBossClient, FOLLOW_UP_BOSS, session).create_task(CRMTask(title="Call back"))

    assert task_id == "5", "task id expected"
    assert "personId" not in session.calls[0]["json"], "no personId when task is unassigned"


def test_real_geeks_activities_as_tasks():
    session = FakeSession()
    session.add("GET", "https://api.realgeeks.com/v2/activities", FakeResponse(200, {"activities": [
        {"id": 1, "lead_id": 3, "type": "call", "description": "Call Ann", "completed": True},
        {"id": 2, "lead_id": 3, "type": "note", "description": "Likes pools"},
    ]}))

    tasks = _client(RealGeeksClient, REAL_GEEKS, session).get_tasks("3")

    assert [t.id for t in tasks] == ["1"], "notes should not be listed as tasks"
    assert tasks[0].status == "completed", "completed flag should map to status"
    assert session.calls[0]["params"] == {"lead_id": "3"}, "lead filter expected"


def test_provider_error_raises_upstream_error():
    session = FakeSession()
    session.add("GET", "https://api.realgeeks.com/v2/leads/1", FakeResponse(500, text="server exploded"))

    with pytest.raises(UpstreamError) as exc:
        _client(RealGeeksClient, REAL_GEEKS, session).get_contact("1")

    assert exc.value.upstream_status == 500, "provider status should be kept"
    assert "server exploded" in exc.value.body, "provider body should be kept"


def test_oauth_client_requires_credentials():
    from dataclasses import replace

    client = OAuthClient(replace(CONFIGS[WISE_AGENT], client_id="", client_secret=""), session=FakeSession())

    with pytest.raises(ConfigError):
        client.authorize_url("u1", "https://app/cb")
    with pytest.raises(ConfigError):
        client.refresh("r")


def test_oauth_client_normalizes_expiry():
    session = FakeSession()
    session.add("POST", "https://api.followupboss.com/oauth/token", FakeResponse(200, {
        "access_token": "a",
        "refresh_token": "r",
        "expires_in": 60,
    }))
    client = OAuthClient(CONFIGS[FOLLOW_UP_BOSS], session=session, clock=lambda: 1_000)

    tokens = client.exchange_code("code", "https://app/cb")

    assert tokens.expires_at == 61_000, "expires_in seconds should be added to now in millis"
    form = session.calls[0]["data"]
    assert form["grant_type"] == "authorization_code", "code exchange grant expected"
    assert form["redirect_uri"] == "https://app/cb", "redirect uri should be echoed"
