from __future__ import annotations

import os
import uuid
from typing import Any, Dict, List

from utils.time_helpers import now_iso


SUPABASE_NOTIFICATIONS_TABLE = os.environ.get("ESTAIT_NOTIFICATIONS_TABLE_SUPABASE", "notifications")
SUPABASE_EMAIL_QUEUE_TABLE = os.environ.get("ESTAIT_EMAIL_QUEUE_TABLE_SUPABASE", "email_queue")


class NotificationStore:
    def __init__(self, table_factory):
        self._table = table_factory(SUPABASE_NOTIFICATIONS_TABLE, ("id",))

    def add(self, user_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        row = {
            "id": str(uuid.uuid4()),
            "user_id": user_id,
            "read": False,
            "created_at": now_iso(),
        }
        row.update(payload)
        return self._table.insert(row)

    def list(self, user_id: str, limit: int = 20, unread_only: bool = False) -> List[Dict[str, Any]]:
        filters = [("user_id", "eq", user_id)]
        if unread_only:
            filters.append(("read", "eq", False))
        return self._table.select(filters, order="created_at", desc=True, limit=limit)


class EmailQueue:
    """Outbound email records; a separate mailer drains rows in ``pending``."""

    def __init__(self, table_factory):
        self._table = table_factory(SUPABASE_EMAIL_QUEUE_TABLE, ("id",))

    def enqueue(self, to: str, subject: str, body: str, **extra: Any) -> Dict[str, Any]:
        row = {
            "id": str(uuid.uuid4()),
            "to": to,
            "subject": subject,
            "body": body,
            "status": "pending",
            "created_at": now_iso(),
        }
        row.update(extra)
        return self._table.insert(row)

    def pending(self, limit: int = 100) -> List[Dict[str, Any]]:
        return self._table.select([("status", "eq", "pending")], order="created_at", limit=limit)
