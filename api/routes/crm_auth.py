from __future__ import annotations

from flask import Blueprint, redirect, request

from container import current_services
from utils.auth_helpers import get_user_id
from utils.errors import ServiceError
from utils.json_helpers import jerror, jok

crm_auth_bp = Blueprint("crm_auth", __name__)


# =========================
# CRM OAuth connect / disconnect
# =========================
@crm_auth_bp.get("/crm/<provider>/authorize")
def crm_authorize(provider: str):
    """
    Returns the provider's consent URL (or redirects to it with ?redirect=1).
    The user id travels as OAuth 'state'.
    """
    try:
        user_id = get_user_id()
        url = current_services().tokens.authorize_url(provider, user_id)
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)
    if request.args.get("redirect") in ("1", "true"):
        return redirect(url)
    return jok({"url": url, "provider": provider})


@crm_auth_bp.get("/crm/<provider>/callback")
def crm_callback(provider: str):
    if request.args.get("error"):
        return jerror(request.args.get("error_description") or request.args["error"], 400, "oauth_denied")
    result = current_services().tokens.complete_oauth(
        provider,
        request.args.get("code"),
        request.args.get("state"),
    )
    if not result.get("success"):
        return jerror(result.get("message") or "Failed to connect CRM", 400, "oauth_failed")
    return jok(result)


@crm_auth_bp.post("/crm/<provider>/disconnect")
def crm_disconnect(provider: str):
    data = request.get_json(silent=True) or {}
    try:
        user_id = get_user_id(data)
        return jok(current_services().tokens.disconnect(user_id, provider))
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@crm_auth_bp.get("/crm/status")
def crm_status():
    try:
        user_id = get_user_id()
        return jok({"providers": current_services().tokens.connection_status(user_id)})
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)
