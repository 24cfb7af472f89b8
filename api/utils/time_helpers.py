from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Optional

# Fixed width so that string order equals time order in storage filters.
ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def now_ms() -> int:
    return int(time.time() * 1000)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt_obj: datetime) -> str:
    if dt_obj.tzinfo is None:
        dt_obj = dt_obj.replace(tzinfo=timezone.utc)
    return dt_obj.astimezone(timezone.utc).strftime(ISO_FORMAT)


def now_iso() -> str:
    return to_iso(utcnow())


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse ISO-8601 (with 'Z', an offset, or naive = UTC). Returns None on empty/invalid."""
    if not value:
        return None
    raw = str(value).strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def from_epoch_seconds(value: Optional[float]) -> Optional[str]:
    if not value:
        return None
    return to_iso(datetime.fromtimestamp(float(value), tz=timezone.utc))
