from __future__ import annotations

import time
from collections import deque
from threading import Lock
from typing import Any, Deque, Dict, List, Optional

from config import DEBUG_CONSOLE_ENABLED, DEBUG_EVENTS_MAX

_LOCK = Lock()
_EVENTS: Deque[Dict[str, Any]] = deque(maxlen=DEBUG_EVENTS_MAX)
_COUNTER = 0

# Never keep credential material in the event ring.
SENSITIVE_KEYS = frozenset({
    "access_token",
    "refresh_token",
    "code",
    "client_secret",
    "authorization",
    "encrypted",
})


def debug_enabled() -> bool:
    return bool(DEBUG_CONSOLE_ENABLED)


def redact(data: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for k, v in (data or {}).items():
        if str(k).lower() in SENSITIVE_KEYS:
            out[k] = "[redacted]"
        elif isinstance(v, dict):
            out[k] = redact(v)
        else:
            out[k] = v
    return out


def record_event(
    category: str,
    message: str,
    *,
    data: Optional[Dict[str, Any]] = None,
    request_id: Optional[str] = None,
    level: str = "info",
) -> Dict[str, Any]:
    global _COUNTER
    if not debug_enabled():
        return {}
    with _LOCK:
        _COUNTER += 1
        event = {
            "id": _COUNTER,
            "ts": time.time(),
            "level": level,
            "category": category,
            "message": message,
            "request_id": request_id or "",
            "data": redact(data or {}),
        }
        _EVENTS.append(event)
    return event


def list_events(since_id: int = 0, category: Optional[str] = None) -> List[Dict[str, Any]]:
    with _LOCK:
        events = list(_EVENTS)
    if since_id > 0:
        events = [e for e in events if e.get("id", 0) > since_id]
    if category:
        events = [e for e in events if e.get("category") == category]
    return events


def clear_events() -> None:
    with _LOCK:
        _EVENTS.clear()
