from __future__ import annotations

import re
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from config import REMINDER_BATCH_LIMIT, REMINDER_WORKERS, log
from schemas.crm import CRMTask
from schemas.reminders import (
    CANCELLED,
    FAILED,
    PENDING,
    REMINDER_TITLES,
    REMINDER_TYPES,
    SENT,
    Reminder,
    ReminderRule,
)
from services.crm_service import CRMService
from storage.notification_store import EmailQueue, NotificationStore
from storage.reminder_store import ReminderRuleStore, ReminderStore
from storage.user_store import UserStore
from utils.errors import NotFoundError, ServiceError, ValidationError
from utils.observability import log_event
from utils.time_helpers import now_iso, parse_iso, to_iso, utcnow

_PLACEHOLDER = re.compile(r"\{(\w+)\}")

# Fields a rule update may change; anything else in the body is ignored.
_EDITABLE_RULE_FIELDS = ("name", "type", "trigger_event", "delay_days", "template", "enabled")
_TRUE = ("true", "1", "yes", "on")
_FALSE = ("false", "0", "no", "off")


def default_rules() -> List[ReminderRule]:
    """Rules every new user starts with. A fresh list on every call."""
    return [
        ReminderRule(
            id="follow_up_showing",
            name="Follow up after showing",
            type="follow_up_after_showing",
            trigger_event="showing_scheduled",
            delay_days=1,
            template=(
                "Hi {contactName}, I wanted to follow up on the property you viewed "
                "yesterday at {propertyAddress}. What were your thoughts?"
            ),
        ),
        ReminderRule(
            id="new_lead_check",
            name="Check in with new lead",
            type="check_in_new_lead",
            trigger_event="lead_created",
            delay_days=3,
            template=(
                "Hi {contactName}, I wanted to check in and see if you had any questions "
                "about the properties we discussed or if you'd like to schedule any showings."
            ),
        ),
        ReminderRule(
            id="birthday",
            name="Birthday reminder",
            type="birthday_reminder",
            trigger_event="birthday",
            delay_days=0,
            template="Don't forget: {contactName}'s birthday is today! Send them a quick birthday wish.",
        ),
        ReminderRule(
            id="contract_exp",
            name="Contract expiration",
            type="contract_expiration",
            trigger_event="contract_expiring",
            delay_days=-30,
            template=(
                "Reminder: The listing agreement for {propertyAddress} expires in 30 days. "
                "Time to discuss renewal with {contactName}."
            ),
        ),
        ReminderRule(
            id="listing_ann",
            name="Listing anniversary",
            type="listing_anniversary",
            trigger_event="listing_anniversary",
            delay_days=0,
            template=(
                "Today marks the {years} year anniversary of listing {propertyAddress}. "
                "Consider reaching out to {contactName} with a market update."
            ),
        ),
        ReminderRule(
            id="market_update",
            name="Monthly market update",
            type="market_update",
            trigger_event="monthly",
            delay_days=0,
            template=(
                "Time to send your monthly market update to active clients. "
                "{activeCount} clients are currently in your pipeline."
            ),
        ),
    ]


def render_template(template: str, context: Dict[str, Any]) -> str:
    """Substitute ``{name}`` placeholders; unknown placeholders are left as-is."""

    def sub(match: "re.Match[str]") -> str:
        key = match.group(1)
        if key in context and context[key] is not None:
            return str(context[key])
        return match.group(0)

    return _PLACEHOLDER.sub(sub, template or "")


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValidationError("enabled must be true or false")


def _ctx(context: Dict[str, Any], *names: str) -> Optional[Any]:
    for name in names:
        if context.get(name) is not None:
            return context[name]
    return None


class ReminderEngine:
    def __init__(
        self,
        reminders: ReminderStore,
        rules: ReminderRuleStore,
        users: UserStore,
        notifications: NotificationStore,
        emails: EmailQueue,
        crm: CRMService,
        *,
        batch_limit: int = REMINDER_BATCH_LIMIT,
        workers: int = REMINDER_WORKERS,
        clock: Callable = utcnow,
    ):
        self.reminders = reminders
        self.rules = rules
        self.users = users
        self.notifications = notifications
        self.emails = emails
        self.crm = crm
        self.batch_limit = batch_limit
        self.workers = max(1, workers)
        self.clock = clock

    # =========================
    # Rules
    # =========================
    def initialize_user_rules(self, user_id: str) -> List[ReminderRule]:
        return [self.rules.save(user_id, rule) for rule in default_rules()]

    def get_user_rules(self, user_id: str) -> List[ReminderRule]:
        return self.rules.list(user_id)

    def update_rule(self, user_id: str, rule_id: str, updates: Dict[str, Any]) -> ReminderRule:
        fields = {k: v for k, v in (updates or {}).items() if k in _EDITABLE_RULE_FIELDS}
        if not fields:
            raise ValidationError("No rule fields to update")
        if "type" in fields and fields["type"] not in REMINDER_TYPES:
            raise ValidationError(f"Unknown reminder type: {fields['type']}")
        if "delay_days" in fields:
            try:
                fields["delay_days"] = int(fields["delay_days"])
            except (TypeError, ValueError):
                raise ValidationError("delay_days must be an integer")
        if "enabled" in fields:
            fields["enabled"] = _to_bool(fields["enabled"])
        rule = self.rules.update(user_id, rule_id, fields)
        if rule is None:
            raise NotFoundError(f"Rule {rule_id} not found")
        return rule

    # =========================
    # Scheduling
    # =========================
    def create_reminder(
        self,
        user_id: str,
        type: str,
        message: str,
        scheduled_for: str,
        *,
        contact_id: Optional[str] = None,
        contact_name: Optional[str] = None,
        property_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Reminder:
        if type not in REMINDER_TYPES:
            raise ValidationError(f"Unknown reminder type: {type}")
        if not (message or "").strip():
            raise ValidationError("Missing reminder message")
        when = parse_iso(scheduled_for)
        if when is None:
            raise ValidationError("scheduled_for must be an ISO-8601 timestamp")

        reminder = Reminder(
            id=str(uuid.uuid4()),
            user_id=user_id,
            type=type,
            message=message.strip(),
            scheduled_for=to_iso(when),
            status=PENDING,
            contact_id=contact_id,
            contact_name=contact_name,
            property_id=property_id,
            metadata=dict(metadata or {}),
        )
        return self.reminders.create(reminder)

    def schedule_from_rule(self, user_id: str, rule_id: str, context: Dict[str, Any]) -> Reminder:
        rule = self.rules.get(user_id, rule_id)
        if rule is None:
            raise NotFoundError(f"Rule {rule_id} not found")
        if not rule.enabled:
            raise ValidationError(f"Rule {rule_id} is disabled")

        context = dict(context or {})
        base = parse_iso(_ctx(context, "event_date", "eventDate")) or self.clock()
        scheduled_for = base + timedelta(days=rule.delay_days)

        return self.create_reminder(
            user_id,
            rule.type,
            render_template(rule.template, context),
            to_iso(scheduled_for),
            contact_id=_ctx(context, "contact_id", "contactId"),
            contact_name=_ctx(context, "contact_name", "contactName"),
            property_id=_ctx(context, "property_id", "propertyId"),
            metadata={"rule_id": rule_id, "context": context},
        )

    def get_upcoming(self, user_id: str, limit: int = 10) -> List[Reminder]:
        return self.reminders.upcoming(user_id, limit)

    def cancel_reminder(self, reminder_id: str, user_id: Optional[str] = None) -> Reminder:
        reminder = self.reminders.get(reminder_id)
        if reminder is None or (user_id and reminder.user_id != user_id):
            raise NotFoundError("Reminder not found")
        if reminder.status != PENDING:
            raise ValidationError(f"Only pending reminders can be cancelled (status: {reminder.status})")
        updated = self.reminders.transition([reminder_id], {"status": CANCELLED, "cancelled_at": now_iso()})
        if not updated:
            raise ValidationError("Reminder is no longer pending")
        return updated[0]

    # =========================
    # Sweep
    # =========================
    def process_pending(self, now: Optional[str] = None) -> Dict[str, int]:
        cutoff = now or to_iso(self.clock())
        due = self.reminders.due(cutoff, self.batch_limit)
        if not due:
            return {"processed": 0, "sent": 0, "failed": 0}

        with ThreadPoolExecutor(max_workers=min(self.workers, len(due))) as pool:
            outcomes = list(pool.map(self.send_reminder, due))

        sent_ids = [r.id for r, ok in zip(due, outcomes) if ok]
        failed_ids = [r.id for r, ok in zip(due, outcomes) if not ok]
        stamp = now_iso()
        # rows cancelled mid-sweep are no longer pending and stay untouched
        sent = self.reminders.transition(sent_ids, {"status": SENT, "sent_at": stamp})
        failed = self.reminders.transition(failed_ids, {"status": FAILED, "sent_at": stamp})

        result = {"processed": len(due), "sent": len(sent), "failed": len(failed)}
        log_event("reminders", "sweep finished", data=result)
        return result

    def send_reminder(self, reminder: Reminder) -> bool:
        try:
            user = self.users.get(reminder.user_id)
            if not user:
                log.warning("Reminder %s: user %s not found", reminder.id, reminder.user_id)
                return False

            prefs = self.users.notification_preferences(user)
            title = REMINDER_TITLES.get(reminder.type, "Reminder")

            if prefs.get("in_app"):
                self.notifications.add(reminder.user_id, {
                    "type": "reminder",
                    "title": title,
                    "message": reminder.message,
                    "reminder_id": reminder.id,
                    "contact_id": reminder.contact_id,
                    "property_id": reminder.property_id,
                })

            if reminder.contact_id:
                self._create_crm_task(reminder)

            if prefs.get("email") and user.get("email"):
                self.emails.enqueue(user["email"], title, reminder.message, reminder_id=reminder.id)

            # SMS preference is stored but no SMS channel is wired up
            return True
        except ServiceError as e:
            log_event("reminders", "dispatch failed", user_id=reminder.user_id, level="warning",
                      data={"reminder_id": reminder.id, "error": e.message})
            return False
        except Exception:
            log.exception("Failed to send reminder %s", reminder.id)
            return False

    def _create_crm_task(self, reminder: Reminder) -> None:
        facade = self.crm.for_user(reminder.user_id)
        if not facade.is_connected():
            return
        task = CRMTask(
            title=REMINDER_TITLES.get(reminder.type, "Reminder"),
            description=reminder.message,
            due_date=now_iso(),
            contact_id=reminder.contact_id,
        )
        # per-provider failures are logged inside the facade
        facade.create_task(task)
