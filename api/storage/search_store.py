from __future__ import annotations

import os
import uuid
from typing import Any, Dict, List

from utils.time_helpers import now_iso


SUPABASE_SEARCHES_TABLE = os.environ.get("ESTAIT_SEARCHES_TABLE_SUPABASE", "property_searches")


class SearchStore:
    def __init__(self, table_factory):
        self._table = table_factory(SUPABASE_SEARCHES_TABLE, ("id",))

    def add(self, user_id: str, params: Dict[str, Any], results_count: int) -> Dict[str, Any]:
        return self._table.insert({
            "id": str(uuid.uuid4()),
            "user_id": user_id,
            "params": params,
            "results_count": int(results_count),
            "created_at": now_iso(),
        })

    def recent(self, user_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        return self._table.select([("user_id", "eq", user_id)], order="created_at", desc=True, limit=limit)
