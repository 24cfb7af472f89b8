from __future__ import annotations

from typing import Any, Dict, List, Optional

from clients.crm.base import CRMProvider
from schemas.crm import FOLLOW_UP_BOSS, Contact, CRMTask


def _first_value(items: Any) -> Optional[str]:
    if isinstance(items, list) and items:
        first = items[0]
        if isinstance(first, dict):
            return first.get("value")
        return str(first)
    return None


def _person_payload(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Follow Up Boss keeps a single ``name`` plus lists of emails and phones."""
    payload: Dict[str, Any] = {}
    first = fields.get("first_name")
    last = fields.get("last_name")
    if first or last:
        payload["name"] = " ".join(p for p in (first, last) if p)
        payload["firstName"] = first or ""
        payload["lastName"] = last or ""
    if fields.get("email"):
        payload["emails"] = [{"value": fields["email"]}]
    if fields.get("phone"):
        payload["phones"] = [{"type": "mobile", "value": fields["phone"]}]
    if fields.get("tags"):
        payload["tags"] = list(fields["tags"])
    if fields.get("source"):
        payload["source"] = fields["source"]
    return payload


class FollowUpBossClient(CRMProvider):
    provider_id = FOLLOW_UP_BOSS
    # tasks may be created without a person attached
    requires_contact_for_task = False

    def _contact(self, p: Dict[str, Any]) -> Contact:
        first = p.get("firstName")
        last = p.get("lastName")
        if first is None and last is None:
            first, _, last = (p.get("name") or "").partition(" ")
        return Contact(
            id=str(p.get("id") or ""),
            first_name=first or "",
            last_name=last or "",
            email=_first_value(p.get("emails")) or p.get("email"),
            phone=_first_value(p.get("phones")),
            tags=list(p.get("tags") or []),
            source=p.get("source"),
            last_contact=p.get("lastActivity"),
            provider=self.provider_id,
        )

    def _task(self, t: Dict[str, Any]) -> CRMTask:
        return CRMTask(
            id=str(t.get("id") or ""),
            title=t.get("description") or t.get("name") or "",
            due_date=t.get("dueDate"),
            status="completed" if t.get("isCompleted") else "pending",
            contact_id=str(t["personId"]) if t.get("personId") else None,
            provider=self.provider_id,
        )

    def create_contact(self, contact: Contact) -> str:
        payload = _person_payload(contact.to_dict())
        payload.setdefault("source", "Estait AI")
        data = self._request("POST", "/people", json=payload)
        return str(data.get("id"))

    def update_contact(self, contact_id: str, updates: Dict[str, Any]) -> None:
        self._request("PUT", f"/people/{contact_id}", json=_person_payload(updates))

    def search_contacts(self, query: str) -> List[Contact]:
        data = self._request("GET", "/people", params={"q": query})
        return [self._contact(p) for p in self._items(data, "people")]

    def get_contact(self, contact_id: str) -> Contact:
        return self._contact(self._request("GET", f"/people/{contact_id}"))

    def add_note(self, contact_id: str, note: str) -> None:
        self._request("POST", "/notes", json={"personId": contact_id, "body": note})

    def create_task(self, task: CRMTask) -> str:
        description = task.title
        if task.description:
            description = f"{task.title}: {task.description}"
        payload: Dict[str, Any] = {
            "description": description,
            "dueDate": task.due_date,
            "type": "Other",
        }
        if task.contact_id:
            payload["personId"] = task.contact_id
        data = self._request("POST", "/tasks", json=payload)
        return str(data.get("id"))

    def get_tasks(self, contact_id: Optional[str] = None) -> List[CRMTask]:
        data = self._request("GET", "/tasks", params={"personId": contact_id})
        return [self._task(t) for t in self._items(data, "tasks")]

    def complete_task(self, task_id: str) -> None:
        self._request("PUT", f"/tasks/{task_id}", json={"isCompleted": True})
