from __future__ import annotations

from flask import Blueprint, request

from utils.debug_events import clear_events, debug_enabled, list_events
from utils.json_helpers import jerror, jok


debug_bp = Blueprint("debug", __name__)


@debug_bp.get("/debug/events")
def debug_events():
    if not debug_enabled():
        return jerror("Debug console disabled", 404, "not_found")
    since = request.args.get("since", type=int) or 0
    events = list_events(since, request.args.get("category") or None)
    return jok({"events": events})


@debug_bp.post("/debug/clear")
def debug_clear():
    if not debug_enabled():
        return jerror("Debug console disabled", 404, "not_found")
    clear_events()
    return jok({"cleared": True})
