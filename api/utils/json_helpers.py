from __future__ import annotations

import uuid
from typing import Any, Tuple

from flask import Response, g, has_request_context, jsonify, request


def _request_id() -> str:
    rid = getattr(g, "request_id", None) if has_request_context() else None
    return rid or request.headers.get("X-Request-Id") or str(uuid.uuid4())


def jerror(message: str, status: int = 400, code: str = "bad_request") -> Tuple[Response, int]:
    return jsonify({"ok": False, "error": {"code": code, "message": message}, "request_id": _request_id()}), status


def jok(data: Any, status: int = 200) -> Tuple[Response, int]:
    return jsonify({"ok": True, "data": data, "request_id": _request_id()}), status
