from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


WISE_AGENT = "wise_agent"
FOLLOW_UP_BOSS = "follow_up_boss"
REAL_GEEKS = "real_geeks"
PROVIDER_IDS = (WISE_AGENT, FOLLOW_UP_BOSS, REAL_GEEKS)


@dataclass
class TokenSet:
    """Plaintext token pair as returned by a provider token endpoint."""

    access_token: str
    refresh_token: str
    expires_at: int  # epoch millis
    token_type: str = "Bearer"
    scope: Optional[str] = None


@dataclass
class CredentialRecord:
    """Stored credential row. Token fields only ever hold ciphertext."""

    user_id: str
    provider: str
    access_token: str
    refresh_token: str
    expires_at: int
    token_type: str = "Bearer"
    scope: Optional[str] = None
    connected_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "CredentialRecord":
        return cls(
            user_id=row["user_id"],
            provider=row["provider"],
            access_token=row.get("access_token") or "",
            refresh_token=row.get("refresh_token") or "",
            expires_at=int(row.get("expires_at") or 0),
            token_type=row.get("token_type") or "Bearer",
            scope=row.get("scope"),
            connected_at=row.get("connected_at"),
            updated_at=row.get("updated_at"),
        )

    def to_row(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Contact:
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    source: Optional[str] = None
    last_contact: Optional[str] = None
    id: Optional[str] = None
    provider: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "Contact":
        tags = data.get("tags") or []
        if isinstance(tags, str):
            tags = [t.strip() for t in tags.split(",") if t.strip()]
        return cls(
            first_name=(data.get("first_name") or data.get("firstName") or "").strip(),
            last_name=(data.get("last_name") or data.get("lastName") or "").strip(),
            email=(data.get("email") or "").strip() or None,
            phone=(data.get("phone") or "").strip() or None,
            notes=data.get("notes"),
            tags=list(tags),
            source=data.get("source"),
        )

    def dedupe_key(self) -> str:
        if self.email:
            return self.email.strip().lower()
        return f"{(self.first_name or '').strip().lower()}-{(self.last_name or '').strip().lower()}"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CRMTask:
    title: str
    description: Optional[str] = None
    due_date: Optional[str] = None
    priority: str = "medium"
    status: str = "pending"
    contact_id: Optional[str] = None
    id: Optional[str] = None
    provider: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
