from __future__ import annotations

from typing import Any, Dict, List, Optional

from clients.crm.base import CRMProvider
from schemas.crm import WISE_AGENT, Contact, CRMTask
from utils.time_helpers import now_iso

# Contact field -> Wise Agent field
_CONTACT_FIELDS = {
    "first_name": "first_name",
    "last_name": "last_name",
    "email": "email",
    "phone": "phone_number",
    "notes": "notes",
    "source": "source",
}


def _split_tags(raw: Any) -> List[str]:
    if isinstance(raw, list):
        return [str(t) for t in raw if t]
    return [t for t in (raw or "").split(",") if t]


class WiseAgentClient(CRMProvider):
    provider_id = WISE_AGENT
    requires_contact_for_task = True

    def _contact(self, c: Dict[str, Any]) -> Contact:
        return Contact(
            id=str(c.get("id") or ""),
            first_name=c.get("first_name") or "",
            last_name=c.get("last_name") or "",
            email=c.get("email"),
            phone=c.get("phone_number"),
            notes=c.get("notes"),
            tags=_split_tags(c.get("tags")),
            source=c.get("source"),
            last_contact=c.get("last_contact_date"),
            provider=self.provider_id,
        )

    def _task(self, t: Dict[str, Any]) -> CRMTask:
        return CRMTask(
            id=str(t.get("id") or ""),
            title=t.get("title") or "",
            description=t.get("description"),
            due_date=t.get("due_date"),
            priority=t.get("priority") or "medium",
            status=t.get("status") or "pending",
            contact_id=t.get("contact_id"),
            provider=self.provider_id,
        )

    def create_contact(self, contact: Contact) -> str:
        data = self._request("POST", "/contacts", json={
            "first_name": contact.first_name,
            "last_name": contact.last_name,
            "email": contact.email,
            "phone_number": contact.phone,
            "notes": contact.notes,
            "tags": ",".join(contact.tags or []),
            "source": contact.source or "Estait AI",
        })
        return str(data.get("id"))

    def update_contact(self, contact_id: str, updates: Dict[str, Any]) -> None:
        payload = {wa: updates[k] for k, wa in _CONTACT_FIELDS.items() if updates.get(k)}
        if updates.get("tags"):
            payload["tags"] = ",".join(updates["tags"])
        self._request("PATCH", f"/contacts/{contact_id}", json=payload)

    def search_contacts(self, query: str) -> List[Contact]:
        data = self._request("GET", "/contacts/search", params={"q": query})
        return [self._contact(c) for c in self._items(data, "contacts")]

    def get_contact(self, contact_id: str) -> Contact:
        return self._contact(self._request("GET", f"/contacts/{contact_id}"))

    def add_note(self, contact_id: str, note: str) -> None:
        self._request("POST", f"/contacts/{contact_id}/notes", json={
            "note": note,
            "created_at": now_iso(),
        })

    def create_task(self, task: CRMTask) -> str:
        data = self._request("POST", "/tasks", json={
            "contact_id": task.contact_id,
            "title": task.title,
            "description": task.description,
            "due_date": task.due_date,
            "priority": task.priority or "medium",
            "status": "pending",
        })
        return str(data.get("id"))

    def get_tasks(self, contact_id: Optional[str] = None) -> List[CRMTask]:
        data = self._request("GET", "/tasks", params={"contact_id": contact_id})
        return [self._task(t) for t in self._items(data, "tasks")]

    def complete_task(self, task_id: str) -> None:
        self._request("PATCH", f"/tasks/{task_id}", json={
            "status": "completed",
            "completed_at": now_iso(),
        })
