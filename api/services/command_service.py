from __future__ import annotations

from typing import Any, Dict, Optional

from openai import OpenAIError

from clients.openai_client import function_call_arguments
from config import OPENAI_MODEL, log
from schemas.crm import Contact, CRMTask
from services.crm_service import CRMService
from services.mls_service import MLSService
from utils.errors import ValidationError
from utils.time_helpers import utcnow

ACTIONS = ("add_lead", "create_task", "search_property", "update_contact", "get_contacts", "unknown")
CONFIRMATION_THRESHOLD = 0.8
FALLBACK_RESPONSE = "I'm not sure what you'd like me to do. Could you rephrase that?"

SYSTEM_PROMPT = (
    "You are Estait, an assistant for real estate agents. Map the agent's request to exactly "
    "one action: add_lead (firstName, lastName, email or phone, notes), create_task "
    "(description, dueDate YYYY-MM-DD, priority, contactId), search_property (location, "
    "minBeds, maxBeds, minPrice, maxPrice, propertyType, minSqft), update_contact "
    "(provider, contactId, fields), get_contacts (searchTerm) or unknown. Convert prices "
    "like 500k to numbers. Today is {today}."
)

INTERPRET_TOOL = {
    "type": "function",
    "name": "interpret_command",
    "description": "Structured interpretation of a real estate agent's command.",
    "parameters": {
        "type": "object",
        "properties": {
            "action": {"type": "string", "enum": list(ACTIONS)},
            "parameters": {"type": "object"},
            "confidence": {"type": "number"},
            "response": {"type": "string"},
            "requires_confirmation": {"type": "boolean"},
        },
        "required": ["action", "parameters", "confidence", "response"],
    },
    "strict": False,
}


def unknown_action(message: str = FALLBACK_RESPONSE) -> Dict[str, Any]:
    return {
        "action": "unknown",
        "parameters": {},
        "confidence": 0.0,
        "response": message,
        "requires_confirmation": False,
    }


def _normalize(args: Dict[str, Any]) -> Dict[str, Any]:
    action = args.get("action")
    if action not in ACTIONS:
        return unknown_action()
    try:
        confidence = float(args.get("confidence") or 0)
    except (TypeError, ValueError):
        confidence = 0.0
    confidence = min(1.0, max(0.0, confidence))
    return {
        "action": action,
        "parameters": args.get("parameters") if isinstance(args.get("parameters"), dict) else {},
        "confidence": confidence,
        "response": (args.get("response") or "").strip() or FALLBACK_RESPONSE,
        "requires_confirmation": bool(args.get("requires_confirmation")) or confidence < CONFIRMATION_THRESHOLD,
    }


def _number(value: Any) -> Optional[float]:
    try:
        return float(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


class CommandService:
    """Natural-language command -> structured action, and running that action."""

    def __init__(self, client, crm: CRMService, mls: MLSService, model: str = OPENAI_MODEL):
        self.client = client
        self.crm = crm
        self.mls = mls
        self.model = model

    def interpret(self, command: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        text = (command or "").strip()
        if not text:
            raise ValidationError("No command provided")
        if self.client is None:
            return unknown_action()

        try:
            resp = self.client.responses.create(
                model=self.model,
                input=[
                    {"role": "system", "content": SYSTEM_PROMPT.format(today=utcnow().date().isoformat())},
                    {"role": "user", "content": text},
                ],
                tools=[INTERPRET_TOOL],
                tool_choice={"type": "function", "name": "interpret_command"},
            )
            args = function_call_arguments(resp, "interpret_command")
        except (OpenAIError, ValueError) as e:
            log.warning("Command interpretation failed for %s: %s", user_id, e)
            return unknown_action()

        if not args:
            return unknown_action()
        return _normalize(args)

    def execute(self, user_id: str, interpretation: Dict[str, Any]) -> Dict[str, Any]:
        action = interpretation.get("action")
        params = interpretation.get("parameters") or {}

        if action == "add_lead":
            contact = Contact.from_payload(params)
            if not contact.first_name and not contact.last_name:
                raise ValidationError("A lead needs a name")
            return {"created": self.crm.for_user(user_id).create_contact(contact)}

        if action == "create_task":
            title = (params.get("description") or params.get("title") or "").strip()
            if not title:
                raise ValidationError("A task needs a description")
            task = CRMTask(
                title=title,
                due_date=params.get("dueDate") or params.get("due_date"),
                priority=params.get("priority") or "medium",
                contact_id=params.get("contactId") or params.get("contact_id"),
            )
            return {"created": self.crm.for_user(user_id).create_task(task)}

        if action == "search_property":
            search = {
                "location": params.get("location"),
                "min_beds": _number(params.get("minBeds")),
                "max_beds": _number(params.get("maxBeds")),
                "min_price": _number(params.get("minPrice")),
                "max_price": _number(params.get("maxPrice")),
                "min_sqft": _number(params.get("minSqft")),
            }
            if params.get("propertyType"):
                search["property_type"] = [params["propertyType"]]
            search = {k: v for k, v in search.items() if v is not None}
            result = self.mls.search_properties(search)
            self.mls.save_search(user_id, search, result)
            return {"search": result}

        if action == "get_contacts":
            term = params.get("searchTerm") or params.get("query") or ""
            contacts = self.crm.for_user(user_id).search_contacts(term)
            return {"contacts": [c.to_dict() for c in contacts]}

        if action == "update_contact":
            provider = params.get("provider")
            contact_id = params.get("contactId") or params.get("contact_id")
            if not provider or not contact_id:
                raise ValidationError("Updating a contact needs provider and contactId")
            self.crm.for_user(user_id).update_contact(provider, contact_id, params.get("fields") or {})
            return {"updated": f"{provider}:{contact_id}"}

        return {}
