from __future__ import annotations

import hmac

from flask import Blueprint, request

import config
from container import current_services
from utils.auth_helpers import get_user_id
from utils.errors import ServiceError
from utils.json_helpers import jerror, jok

reminders_bp = Blueprint("reminders", __name__)


@reminders_bp.get("/reminders")
def reminders_upcoming():
    try:
        user_id = get_user_id()
        limit = min(request.args.get("limit", default=10, type=int), 100)
        reminders = current_services().reminders.get_upcoming(user_id, limit)
        return jok({"reminders": [r.to_dict() for r in reminders]})
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@reminders_bp.post("/reminders")
def reminders_create():
    """
    Body:
      { type, message, scheduled_for (ISO-8601), contact_id?, contact_name?,
        property_id?, metadata? }
    """
    data = request.get_json(force=True, silent=True) or {}
    try:
        user_id = get_user_id(data)
        reminder = current_services().reminders.create_reminder(
            user_id,
            data.get("type") or "custom",
            data.get("message") or "",
            data.get("scheduled_for") or "",
            contact_id=data.get("contact_id"),
            contact_name=data.get("contact_name"),
            property_id=data.get("property_id"),
            metadata=data.get("metadata"),
        )
        return jok({"reminder": reminder.to_dict()}, 201)
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@reminders_bp.post("/reminders/schedule")
def reminders_schedule():
    """Body: { rule_id, context: { contactName?, propertyAddress?, event_date?, ... } }"""
    data = request.get_json(force=True, silent=True) or {}
    rule_id = (data.get("rule_id") or "").strip()
    if not rule_id:
        return jerror("Missing rule_id", 400)
    try:
        user_id = get_user_id(data)
        reminder = current_services().reminders.schedule_from_rule(user_id, rule_id, data.get("context") or {})
        return jok({"reminder": reminder.to_dict()}, 201)
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@reminders_bp.post("/reminders/<reminder_id>/cancel")
def reminders_cancel(reminder_id: str):
    data = request.get_json(silent=True) or {}
    try:
        user_id = get_user_id(data)
        reminder = current_services().reminders.cancel_reminder(reminder_id, user_id)
        return jok({"reminder": reminder.to_dict()})
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


# =========================
# Rules
# =========================
@reminders_bp.get("/reminders/rules")
def rules_list():
    try:
        rules = current_services().reminders.get_user_rules(get_user_id())
        return jok({"rules": [r.to_dict() for r in rules]})
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@reminders_bp.post("/reminders/rules/init")
def rules_init():
    data = request.get_json(silent=True) or {}
    try:
        rules = current_services().reminders.initialize_user_rules(get_user_id(data))
        return jok({"rules": [r.to_dict() for r in rules]}, 201)
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@reminders_bp.patch("/reminders/rules/<rule_id>")
def rules_update(rule_id: str):
    data = request.get_json(force=True, silent=True) or {}
    try:
        user_id = get_user_id(data)
        updates = {k: v for k, v in data.items() if k != "user_id"}
        rule = current_services().reminders.update_rule(user_id, rule_id, updates)
        return jok({"rule": rule.to_dict()})
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


# =========================
# Sweep (cron)
# =========================
@reminders_bp.post("/reminders/process")
def reminders_process():
    if config.CRON_SECRET:
        supplied = request.headers.get("X-Cron-Secret") or ""
        if not hmac.compare_digest(supplied, config.CRON_SECRET):
            return jerror("Unauthorized", 401, "unauthorized")
    try:
        return jok(current_services().reminders.process_pending())
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)
