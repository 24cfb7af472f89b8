from __future__ import annotations

from typing import Any, Dict, List, Optional

from clients.crm.base import CRMProvider
from schemas.crm import REAL_GEEKS, Contact, CRMTask

_LEAD_FIELDS = ("first_name", "last_name", "email", "phone", "notes", "source", "tags")


class RealGeeksClient(CRMProvider):
    """Leads are contacts; activities double as tasks and notes."""

    provider_id = REAL_GEEKS
    requires_contact_for_task = True

    def _contact(self, lead: Dict[str, Any]) -> Contact:
        return Contact(
            id=str(lead.get("id") or ""),
            first_name=lead.get("first_name") or "",
            last_name=lead.get("last_name") or "",
            email=lead.get("email"),
            phone=lead.get("phone"),
            notes=lead.get("notes"),
            tags=list(lead.get("tags") or []),
            source=lead.get("source"),
            last_contact=lead.get("updated_at"),
            provider=self.provider_id,
        )

    def _task(self, a: Dict[str, Any]) -> CRMTask:
        return CRMTask(
            id=str(a.get("id") or ""),
            title=a.get("description") or "",
            due_date=a.get("due_date"),
            status="completed" if a.get("completed") else "pending",
            contact_id=str(a["lead_id"]) if a.get("lead_id") else None,
            provider=self.provider_id,
        )

    def create_contact(self, contact: Contact) -> str:
        payload = {k: v for k, v in contact.to_dict().items() if k in _LEAD_FIELDS and v}
        payload.setdefault("source", "Estait AI")
        payload["status"] = "New"
        data = self._request("POST", "/leads", json=payload)
        return str(data.get("id"))

    def update_contact(self, contact_id: str, updates: Dict[str, Any]) -> None:
        payload = {k: v for k, v in updates.items() if k in _LEAD_FIELDS and v}
        self._request("PATCH", f"/leads/{contact_id}", json=payload)

    def search_contacts(self, query: str) -> List[Contact]:
        data = self._request("GET", "/leads", params={"search": query})
        return [self._contact(lead) for lead in self._items(data, "leads")]

    def get_contact(self, contact_id: str) -> Contact:
        return self._contact(self._request("GET", f"/leads/{contact_id}"))

    def add_note(self, contact_id: str, note: str) -> None:
        self._request("POST", "/activities", json={
            "lead_id": contact_id,
            "type": "note",
            "description": note,
        })

    def create_task(self, task: CRMTask) -> str:
        description = task.title
        if task.description:
            description = f"{task.title}: {task.description}"
        data = self._request("POST", "/activities", json={
            "lead_id": task.contact_id,
            "type": "call",
            "description": description,
            "due_date": task.due_date,
            "completed": False,
        })
        return str(data.get("id"))

    def get_tasks(self, contact_id: Optional[str] = None) -> List[CRMTask]:
        data = self._request("GET", "/activities", params={"lead_id": contact_id})
        return [
            self._task(a)
            for a in self._items(data, "activities")
            if a.get("type") != "note"
        ]

    def complete_task(self, task_id: str) -> None:
        self._request("PATCH", f"/activities/{task_id}", json={"completed": True})
