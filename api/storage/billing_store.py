from __future__ import annotations

import os
import uuid
from typing import Any, Dict, List, Optional

from utils.time_helpers import now_iso


SUPABASE_PAYMENTS_TABLE = os.environ.get("ESTAIT_PAYMENTS_TABLE_SUPABASE", "payments")
SUPABASE_CHECKOUT_TABLE = os.environ.get("ESTAIT_CHECKOUT_TABLE_SUPABASE", "checkout_sessions")


class PaymentStore:
    def __init__(self, table_factory):
        self._table = table_factory(SUPABASE_PAYMENTS_TABLE, ("id",))

    def record(self, user_id: str, payment: Dict[str, Any]) -> Dict[str, Any]:
        row = {"id": str(uuid.uuid4()), "user_id": user_id, "created_at": now_iso()}
        row.update(payment)
        return self._table.insert(row)

    def list(self, user_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        return self._table.select([("user_id", "eq", user_id)], order="created_at", desc=True, limit=limit)


class CheckoutSessionStore:
    def __init__(self, table_factory):
        self._table = table_factory(SUPABASE_CHECKOUT_TABLE, ("session_id",))

    def create(self, user_id: str, session_id: str, plan_id: str) -> Dict[str, Any]:
        return self._table.upsert({
            "session_id": session_id,
            "user_id": user_id,
            "plan_id": plan_id,
            "status": "pending",
            "created_at": now_iso(),
        })

    def complete(self, session_id: str) -> Optional[Dict[str, Any]]:
        rows = self._table.update(
            [("session_id", "eq", session_id)],
            {"status": "completed", "completed_at": now_iso()},
        )
        return rows[0] if rows else None
