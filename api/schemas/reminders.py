from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional


REMINDER_TYPES = (
    "follow_up_after_showing",
    "check_in_new_lead",
    "birthday_reminder",
    "contract_expiration",
    "listing_anniversary",
    "market_update",
    "custom",
)

PENDING = "pending"
SENT = "sent"
FAILED = "failed"
CANCELLED = "cancelled"
REMINDER_STATUSES = (PENDING, SENT, FAILED, CANCELLED)

REMINDER_TITLES = {
    "follow_up_after_showing": "Follow-up Reminder",
    "check_in_new_lead": "Lead Check-in Reminder",
    "birthday_reminder": "Birthday Reminder",
    "contract_expiration": "Contract Expiration Alert",
    "listing_anniversary": "Listing Anniversary",
    "market_update": "Market Update Reminder",
    "custom": "Reminder",
}


@dataclass
class Reminder:
    id: str
    user_id: str
    type: str
    message: str
    scheduled_for: str
    status: str = PENDING
    contact_id: Optional[str] = None
    contact_name: Optional[str] = None
    property_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[str] = None
    sent_at: Optional[str] = None
    cancelled_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Reminder":
        known = {k: row.get(k) for k in cls.__dataclass_fields__ if k in row}
        known["metadata"] = row.get("metadata") or {}
        return cls(**known)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ReminderRule:
    id: str
    name: str
    type: str
    trigger_event: str
    delay_days: int
    template: str
    enabled: bool = True

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ReminderRule":
        return cls(
            id=row["id"],
            name=row.get("name") or row["id"],
            type=row.get("type") or "custom",
            trigger_event=row.get("trigger_event") or "",
            delay_days=int(row.get("delay_days") or 0),
            template=row.get("template") or "",
            enabled=bool(row.get("enabled", True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
