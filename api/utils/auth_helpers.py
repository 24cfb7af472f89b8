from __future__ import annotations

from typing import Any, Dict, Optional

from flask import request

import config
from config import log
from utils.errors import ServiceError


# =========================
# Auth helpers
# =========================
def verify_firebase_token_if_enabled() -> Optional[Dict[str, Any]]:
    """Verifies the caller's Firebase ID token when enabled. Returns claims or None."""
    if not config.VERIFY_FIREBASE_TOKEN:
        return None
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return None
    token = auth.split(" ", 1)[1]
    try:
        return config.id_token.verify_firebase_token(
            token,
            config.google_requests.Request(),
            audience=config.FIREBASE_PROJECT_ID,
        )
    except ValueError as e:
        log.warning("Firebase ID token verification failed: %s", e)
        return None


def get_user_id(data: Optional[Dict[str, Any]] = None, required: bool = True) -> Optional[str]:
    """
    Resolve the calling user.
    With token verification on, only a verified token counts. Otherwise the
    'X-User-Id' header, a 'user_id' query arg or JSON body field is accepted.
    """
    if config.VERIFY_FIREBASE_TOKEN:
        claims = verify_firebase_token_if_enabled() or {}
        uid = claims.get("uid") or claims.get("user_id") or claims.get("sub")
    else:
        uid = (
            request.headers.get("X-User-Id")
            or request.args.get("user_id")
            or (data or {}).get("user_id")
        )
    uid = (uid or "").strip() or None
    if required and not uid:
        raise ServiceError("Unauthorized", 401, "unauthorized")
    return uid
