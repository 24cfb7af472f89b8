from __future__ import annotations

from flask import Blueprint, request

from container import current_services
from utils.auth_helpers import get_user_id
from utils.errors import ServiceError
from utils.json_helpers import jerror, jok

billing_bp = Blueprint("billing", __name__)


@billing_bp.get("/billing/plans")
def billing_plans():
    return jok({"plans": [p.to_dict() for p in current_services().billing.plans]})


@billing_bp.post("/billing/checkout")
def billing_checkout():
    """Body: { plan_id, success_url, cancel_url }"""
    data = request.get_json(force=True, silent=True) or {}
    try:
        user_id = get_user_id(data)
        out = current_services().billing.create_checkout_session(
            user_id,
            data.get("plan_id") or "",
            data.get("success_url") or "",
            data.get("cancel_url") or "",
        )
        return jok(out, 201)
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@billing_bp.post("/billing/portal")
def billing_portal():
    data = request.get_json(force=True, silent=True) or {}
    try:
        user_id = get_user_id(data)
        return jok(current_services().billing.create_portal_session(user_id, data.get("return_url") or ""))
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@billing_bp.post("/billing/cancel")
def billing_cancel():
    data = request.get_json(silent=True) or {}
    try:
        return jok(current_services().billing.cancel_subscription(get_user_id(data)))
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@billing_bp.get("/billing/subscription")
def billing_subscription():
    try:
        billing = current_services().billing
        user_id = get_user_id()
        return jok({
            "active": billing.has_active_subscription(user_id),
            "subscription": billing.get_subscription_details(user_id),
        })
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@billing_bp.post("/billing/webhook")
def billing_webhook():
    """Stripe webhook; the raw body is needed for signature verification."""
    billing = current_services().billing
    try:
        event = billing.construct_event(request.get_data(), request.headers.get("Stripe-Signature"))
        result = billing.handle_event(event)
        return jok({"received": True, "result": result})
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)
