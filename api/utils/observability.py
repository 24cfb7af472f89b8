from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from config import log
from utils.debug_events import record_event, redact

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def log_event(
    category: str,
    message: str,
    *,
    user_id: Optional[str] = None,
    provider: Optional[str] = None,
    request_id: Optional[str] = None,
    level: str = "info",
    data: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Write a structured line to the app logger and mirror it into the debug ring."""
    payload = dict(data or {})
    if user_id:
        payload["user_id"] = user_id
    if provider:
        payload["provider"] = provider
    log.log(_LEVELS.get(level, logging.INFO), "[%s] %s %s", category, message, redact(payload))
    return record_event(
        category,
        message,
        data=payload,
        request_id=request_id,
        level=level,
    )
