from __future__ import annotations

from flask import Blueprint, request

from container import current_services
from schemas.crm import Contact, CRMTask
from utils.auth_helpers import get_user_id
from utils.errors import ServiceError, ValidationError
from utils.json_helpers import jerror, jok

crm_bp = Blueprint("crm", __name__)


def _facade(data=None):
    return current_services().crm.for_user(get_user_id(data))


# =========================
# Contacts
# =========================
@crm_bp.get("/crm/contacts")
def contacts_search():
    try:
        crm = _facade()
        contacts = crm.search_contacts(request.args.get("q") or "")
        return jok({
            "contacts": [c.to_dict() for c in contacts],
            "providers": crm.connected_providers(),
        })
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@crm_bp.post("/crm/contacts")
def contacts_create():
    """
    Body: { first_name, last_name, email?, phone?, notes?, tags?, source? }
    Creates the contact in every connected CRM; returns "provider:id" strings.
    """
    data = request.get_json(force=True, silent=True) or {}
    try:
        contact = Contact.from_payload(data)
        if not contact.first_name and not contact.last_name:
            raise ValidationError("Missing contact name")
        crm = _facade(data)
        return jok({"created": crm.create_contact(contact)}, 201)
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@crm_bp.patch("/crm/contacts/<provider>/<contact_id>")
def contacts_update(provider: str, contact_id: str):
    data = request.get_json(force=True, silent=True) or {}
    updates = {k: v for k, v in data.items() if k != "user_id"}
    try:
        _facade(data).update_contact(provider, contact_id, updates)
        return jok({"updated": f"{provider}:{contact_id}"})
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@crm_bp.post("/crm/contacts/<provider>/<contact_id>/notes")
def contacts_add_note(provider: str, contact_id: str):
    data = request.get_json(force=True, silent=True) or {}
    note = (data.get("note") or "").strip()
    if not note:
        return jerror("Missing note", 400)
    try:
        _facade(data).add_note(provider, contact_id, note)
        return jok({"noted": f"{provider}:{contact_id}"}, 201)
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


# =========================
# Tasks
# =========================
@crm_bp.get("/crm/tasks")
def tasks_list():
    try:
        tasks = _facade().get_tasks(request.args.get("contact_id") or None)
        return jok({"tasks": [t.to_dict() for t in tasks]})
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@crm_bp.post("/crm/tasks")
def tasks_create():
    """Body: { title, description?, due_date?, priority?, contact_id? }"""
    data = request.get_json(force=True, silent=True) or {}
    title = (data.get("title") or "").strip()
    if not title:
        return jerror("Missing task title", 400)
    task = CRMTask(
        title=title,
        description=data.get("description"),
        due_date=data.get("due_date"),
        priority=data.get("priority") or "medium",
        contact_id=data.get("contact_id"),
    )
    try:
        return jok({"created": _facade(data).create_task(task)}, 201)
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@crm_bp.post("/crm/tasks/<provider>/<task_id>/complete")
def tasks_complete(provider: str, task_id: str):
    data = request.get_json(silent=True) or {}
    try:
        _facade(data).complete_task(provider, task_id)
        return jok({"completed": f"{provider}:{task_id}"})
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)
