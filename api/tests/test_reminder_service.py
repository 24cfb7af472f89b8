from datetime import datetime, timedelta, timezone

import pytest

from fakes import FakeResponse
from schemas.crm import TokenSet, WISE_AGENT
from schemas.reminders import CANCELLED, FAILED, PENDING, SENT
from services.reminder_service import default_rules, render_template
from utils.errors import NotFoundError, ValidationError
from utils.time_helpers import now_ms, to_iso, utcnow


def _past(hours=1):
    return to_iso(utcnow() - timedelta(hours=hours))


def _future(hours=1):
    return to_iso(utcnow() + timedelta(hours=hours))


def test_default_rules_are_fresh_copies():
    first = default_rules()
    first[0].enabled = False

    assert default_rules()[0].enabled is True, "mutating one copy must not leak into the next"
    assert {r.id for r in first} == {
        "follow_up_showing", "new_lead_check", "birthday", "contract_exp", "listing_ann", "market_update",
    }, "all six default rules expected"


def test_render_template_leaves_unknown_placeholders():
    out = render_template("Hi {contactName}, about {propertyAddress}", {"contactName": "Ann"})

    assert out == "Hi Ann, about {propertyAddress}", "unknown placeholder should stay intact"


def test_schedule_from_rule_uses_delay_and_template(services):
    engine = services.reminders
    engine.initialize_user_rules("u1")
    before = utcnow()

    reminder = engine.schedule_from_rule("u1", "new_lead_check", {"contactName": "Ann", "contactId": "c1"})

    scheduled = datetime.strptime(reminder.scheduled_for, "%Y-%m-%dT%H:%M:%S.%fZ").replace(tzinfo=timezone.utc)
    assert timedelta(days=3) <= scheduled - before < timedelta(days=3, minutes=1), "delay should be three days"
    assert reminder.message.startswith("Hi Ann,"), "template should be rendered"
    assert reminder.contact_id == "c1", "contact id should come from context"
    assert reminder.metadata["rule_id"] == "new_lead_check", "rule id should be kept in metadata"


def test_schedule_relative_to_event_date_allows_negative_delay(services):
    engine = services.reminders
    engine.initialize_user_rules("u1")

    reminder = engine.schedule_from_rule("u1", "contract_exp", {"event_date": "2030-06-30T00:00:00Z"})

    assert reminder.scheduled_for == "2030-05-31T00:00:00.000000Z", "30 days before the event"


def test_schedule_rejects_missing_and_disabled_rules(services):
    engine = services.reminders
    engine.initialize_user_rules("u1")
    engine.update_rule("u1", "birthday", {"enabled": False, "id": "hijack"})

    with pytest.raises(NotFoundError):
        engine.schedule_from_rule("u1", "nope", {})
    with pytest.raises(ValidationError):
        engine.schedule_from_rule("u1", "birthday", {})
    assert engine.rules.get("u1", "birthday") is not None, "rule id must not change on update"


def test_sweep_leaves_no_due_reminder_pending(services):
    engine = services.reminders
    services.users.update("u1", {"email": "agent@example.com"})
    due = [engine.create_reminder("u1", "custom", f"due {i}", _past(i + 1)) for i in range(3)]
    later = engine.create_reminder("u1", "custom", "later", _future())

    result = engine.process_pending()

    assert result == {"processed": 3, "sent": 3, "failed": 0}, "three due reminders should be sent"
    assert all(engine.reminders.get(r.id).status == SENT for r in due), "due reminders should be sent"
    assert engine.reminders.get(later.id).status == PENDING, "future reminder should stay pending"
    assert engine.reminders.due(to_iso(utcnow()), 100) == [], "nothing due should remain pending"
    assert len(services.notifications.list("u1")) == 3, "in-app notifications expected"
    assert len(services.emails.pending()) == 3, "email records expected"


def test_sweep_excludes_cancelled(services):
    engine = services.reminders
    services.users.update("u1", {})
    r = engine.create_reminder("u1", "custom", "call", _past())
    engine.cancel_reminder(r.id, "u1")

    result = engine.process_pending()

    assert result["processed"] == 0, "cancelled reminders should not be picked up"
    assert engine.reminders.get(r.id).status == CANCELLED, "status should stay cancelled"


def test_cancel_during_sweep_stays_cancelled(services, monkeypatch):
    engine = services.reminders
    services.users.update("u1", {})
    r = engine.create_reminder("u1", "custom", "call", _past())

    def cancel_then_succeed(reminder):
        engine.cancel_reminder(reminder.id)
        return True

    monkeypatch.setattr(engine, "send_reminder", cancel_then_succeed)
    result = engine.process_pending()

    assert result["sent"] == 0, "batch write must skip rows that left pending"
    assert engine.reminders.get(r.id).status == CANCELLED, "mid-sweep cancel should win"


def test_missing_user_marks_failed(services):
    engine = services.reminders
    r = engine.create_reminder("ghost", "birthday_reminder", "hb", _past())

    result = engine.process_pending()

    assert result["failed"] == 1, "missing user should fail the reminder"
    assert engine.reminders.get(r.id).status == FAILED, "status should be failed"


def test_crm_task_failure_is_not_fatal(services, session):
    engine = services.reminders
    services.users.update("u1", {"notification_preferences": {"email": False}})
    services.credentials.save("u1", WISE_AGENT, TokenSet("acc", "ref", now_ms() + 10 ** 7))
    services.users.set_crm_connected("u1", WISE_AGENT, True)
    session.add("POST", "https://api.wiseagent.com/v2/tasks", FakeResponse(500, text="down"))
    r = engine.create_reminder("u1", "follow_up_after_showing", "follow up", _past(), contact_id="c1")

    result = engine.process_pending()

    assert result["sent"] == 1, "CRM failure should not fail the reminder"
    assert len(session.calls_to("https://api.wiseagent.com/v2/tasks")) == 1, "task creation should be attempted"
    assert services.emails.pending() == [], "email preference off means no email record"
    assert engine.reminders.get(r.id).sent_at, "sent_at should be stamped"


def test_cancel_only_from_pending(services):
    engine = services.reminders
    services.users.update("u1", {})
    r = engine.create_reminder("u1", "custom", "x", _past())
    engine.process_pending()

    with pytest.raises(ValidationError):
        engine.cancel_reminder(r.id, "u1")
    with pytest.raises(NotFoundError):
        engine.cancel_reminder(r.id, "someone-else")


def test_create_reminder_validates(services):
    with pytest.raises(ValidationError):
        services.reminders.create_reminder("u1", "not_a_type", "m", _future())
    with pytest.raises(ValidationError):
        services.reminders.create_reminder("u1", "custom", "m", "yesterday-ish")


def test_update_rule_ignores_unknown_keys_and_parses_enabled(services):
    engine = services.reminders
    engine.initialize_user_rules("u1")

    rule = engine.update_rule("u1", "birthday", {"enabled": "false", "delay_days": "2", "color": "red"})

    assert rule.enabled is False, "string false should disable the rule"
    assert rule.delay_days == 2, "delay parsed as an integer"
    stored = engine.rules._table.get(user_id="u1", id="birthday")
    assert "color" not in stored, "non-rule keys must not reach the table"
    with pytest.raises(ValidationError):
        engine.schedule_from_rule("u1", "birthday", {})


def test_update_rule_rejects_bad_values(services):
    engine = services.reminders
    engine.initialize_user_rules("u1")

    with pytest.raises(ValidationError):
        engine.update_rule("u1", "birthday", {"enabled": "maybe"})
    with pytest.raises(ValidationError):
        engine.update_rule("u1", "birthday", {"color": "red"})
