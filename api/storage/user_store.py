from __future__ import annotations

import os
from typing import Any, Dict, List, Optional

from utils.time_helpers import now_iso


SUPABASE_USERS_TABLE = os.environ.get("ESTAIT_USERS_TABLE_SUPABASE", "users")

DEFAULT_NOTIFICATION_PREFS = {"email": True, "sms": False, "in_app": True}


class UserStore:
    def __init__(self, table_factory):
        self._table = table_factory(SUPABASE_USERS_TABLE, ("user_id",))

    def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self._table.get(user_id=user_id)

    def find_by(self, column: str, value: Any) -> Optional[Dict[str, Any]]:
        rows = self._table.select([(column, "eq", value)], limit=1)
        return rows[0] if rows else None

    def update(self, user_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        row = dict(fields)
        row["user_id"] = user_id
        row["updated_at"] = now_iso()
        return self._table.upsert(row)

    def connected_providers(self, user_id: str) -> List[str]:
        user = self.get(user_id) or {}
        flags = user.get("connected_crms") or {}
        return [p for p, on in flags.items() if on is True]

    def set_crm_connected(self, user_id: str, provider: str, connected: bool) -> Dict[str, Any]:
        # read-modify-write of the flag map; concurrent writers are last-write-wins
        user = self.get(user_id) or {}
        flags = dict(user.get("connected_crms") or {})
        flags[provider] = connected
        fields: Dict[str, Any] = {"connected_crms": flags}
        if connected:
            fields["crm_type"] = provider
            fields["crm_connected_at"] = now_iso()
        elif user.get("crm_type") == provider:
            remaining = [p for p, on in flags.items() if on]
            fields["crm_type"] = remaining[0] if remaining else None
        return self.update(user_id, fields)

    def notification_preferences(self, user: Dict[str, Any]) -> Dict[str, bool]:
        prefs = dict(DEFAULT_NOTIFICATION_PREFS)
        prefs.update(user.get("notification_preferences") or {})
        return prefs
