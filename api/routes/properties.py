from __future__ import annotations

from flask import Blueprint, request

from container import current_services
from utils.auth_helpers import get_user_id
from utils.errors import ServiceError
from utils.json_helpers import jerror, jok

properties_bp = Blueprint("properties", __name__)


@properties_bp.post("/properties/search")
def properties_search():
    """
    Body: search params (location/city/state/zip, min_/max_ price, beds, baths,
    sqft, property_type[], listing_status[], page, limit). The search is saved
    to the caller's history when a user id is present.
    """
    data = request.get_json(force=True, silent=True) or {}
    params = {k: v for k, v in data.items() if k != "user_id"}
    try:
        mls = current_services().mls
        result = mls.search_properties(params)
        user_id = get_user_id(data, required=False)
        if user_id:
            mls.save_search(user_id, params, result)
        return jok(result)
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@properties_bp.get("/properties/searches")
def properties_saved_searches():
    try:
        limit = min(request.args.get("limit", default=10, type=int), 50)
        return jok({"searches": current_services().mls.get_saved_searches(get_user_id(), limit)})
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@properties_bp.get("/properties/<property_id>")
def properties_details(property_id: str):
    try:
        return jok({"property": current_services().mls.get_property_details(property_id)})
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@properties_bp.get("/properties/<property_id>/comparables")
def properties_comparables(property_id: str):
    radius = request.args.get("radius", default=1.0, type=float)
    try:
        return jok({"comparables": current_services().mls.get_comparables(property_id, radius)})
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@properties_bp.get("/properties/<property_id>/estimate")
def properties_estimate(property_id: str):
    try:
        return jok(current_services().mls.get_property_estimate(property_id))
    except ServiceError as e:
        return jerror(e.message, e.status, e.code)


@properties_bp.get("/market/stats")
def market_stats():
    location = (request.args.get("location") or "").strip()
    if not location:
        return jerror("Missing location", 400)
    period = request.args.get("period") or "month"
    if period not in ("month", "quarter", "year"):
        return jerror("period must be month, quarter or year", 400)
    return jok(current_services().mls.get_market_stats(location, period))
