from __future__ import annotations

from flask import Blueprint, request

from container import current_services
from utils.auth_helpers import get_user_id
from utils.errors import ServiceError
from utils.json_helpers import jerror, jok

command_bp = Blueprint("command", __name__)


@command_bp.post("/command")
def command():
    """
    Body: { command: str, execute?: bool, confirmed?: bool }
    Interprets the command; with execute=true the action also runs unless it
    needs confirmation and confirmed is not set.
    """
    data = request.get_json(force=True, silent=True) or {}
    try:
        user_id = get_user_id(data)
        commands = current_services().commands
        interpretation = commands.interpret(data.get("command") or "", user_id)
        out = {"interpretation": interpretation, "executed": False}
        wants_run = bool(data.get("execute"))
        runnable = interpretation["action"] != "unknown"
        if wants_run and runnable and (not interpretation["requires_confirmation"] or data.get("confirmed")):
            out["result"] = commands.execute(user_id, interpretation)
            out["executed"] = True
        return jok(out)
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)
