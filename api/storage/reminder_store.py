from __future__ import annotations

import os
from typing import Any, Dict, List, Optional, Sequence

from schemas.reminders import PENDING, Reminder, ReminderRule
from utils.time_helpers import now_iso


SUPABASE_REMINDERS_TABLE = os.environ.get("ESTAIT_REMINDERS_TABLE_SUPABASE", "reminders")
SUPABASE_REMINDER_RULES_TABLE = os.environ.get("ESTAIT_REMINDER_RULES_TABLE_SUPABASE", "reminder_rules")


class ReminderStore:
    def __init__(self, table_factory):
        self._table = table_factory(SUPABASE_REMINDERS_TABLE, ("id",))

    def create(self, reminder: Reminder) -> Reminder:
        row = reminder.to_dict()
        row["created_at"] = row.get("created_at") or now_iso()
        return Reminder.from_row(self._table.insert(row))

    def get(self, reminder_id: str) -> Optional[Reminder]:
        row = self._table.get(id=reminder_id)
        return Reminder.from_row(row) if row else None

    def due(self, now: str, limit: int) -> List[Reminder]:
        rows = self._table.select(
            [("status", "eq", PENDING), ("scheduled_for", "lte", now)],
            order="scheduled_for",
            limit=limit,
        )
        return [Reminder.from_row(r) for r in rows]

    def upcoming(self, user_id: str, limit: int) -> List[Reminder]:
        rows = self._table.select(
            [("user_id", "eq", user_id), ("status", "eq", PENDING)],
            order="scheduled_for",
            limit=limit,
        )
        return [Reminder.from_row(r) for r in rows]

    def transition(
        self,
        reminder_ids: Sequence[str],
        values: Dict[str, Any],
        *,
        from_status: str = PENDING,
    ) -> List[Reminder]:
        """Batch status write; only rows still in ``from_status`` are touched."""
        if not reminder_ids:
            return []
        rows = self._table.update(
            [("id", "in", list(reminder_ids)), ("status", "eq", from_status)],
            values,
        )
        return [Reminder.from_row(r) for r in rows]


class ReminderRuleStore:
    def __init__(self, table_factory):
        self._table = table_factory(SUPABASE_REMINDER_RULES_TABLE, ("user_id", "id"))

    def list(self, user_id: str) -> List[ReminderRule]:
        rows = self._table.select([("user_id", "eq", user_id)], order="id")
        return [ReminderRule.from_row(r) for r in rows]

    def get(self, user_id: str, rule_id: str) -> Optional[ReminderRule]:
        row = self._table.get(user_id=user_id, id=rule_id)
        return ReminderRule.from_row(row) if row else None

    def save(self, user_id: str, rule: ReminderRule) -> ReminderRule:
        row = rule.to_dict()
        row["user_id"] = user_id
        row["updated_at"] = now_iso()
        return ReminderRule.from_row(self._table.upsert(row))

    def update(self, user_id: str, rule_id: str, fields: Dict[str, Any]) -> Optional[ReminderRule]:
        values = dict(fields)
        values["updated_at"] = now_iso()
        rows = self._table.update([("user_id", "eq", user_id), ("id", "eq", rule_id)], values)
        return ReminderRule.from_row(rows[0]) if rows else None
