from __future__ import annotations

import statistics
from collections import Counter
from typing import Any, Dict, List, Optional

import requests

from clients.mls_client import MLSClient
from config import log
from schemas.properties import MarketStats, MLSProperty, PropertySearchResult
from storage.search_store import SearchStore
from storage.user_store import UserStore
from utils.errors import ConfigError, ServiceError, ValidationError
from utils.time_helpers import parse_iso, utcnow

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 20

# search param -> upstream query param
_QUERY_PARAMS = {
    "city": "city",
    "state": "state",
    "zip": "zipCode",
    "min_price": "minPrice",
    "max_price": "maxPrice",
    "min_beds": "bedrooms",
    "min_baths": "bathrooms",
    "radius": "radius",
}

# (search param, property field, comparison)
_BOUNDS = (
    ("min_price", "price", "min"),
    ("max_price", "price", "max"),
    ("min_beds", "bedrooms", "min"),
    ("max_beds", "bedrooms", "max"),
    ("min_baths", "bathrooms", "min"),
    ("max_baths", "bathrooms", "max"),
    ("min_sqft", "square_feet", "min"),
    ("max_sqft", "square_feet", "max"),
)


_NUMERIC_PARAMS = tuple(sorted({param for param, _, _ in _BOUNDS} | {"radius"}))
_LIST_PARAMS = ("property_type", "listing_status")


def _to_number(name: str, value: Any) -> Any:
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number")
    return int(number) if number.is_integer() else number


def _to_int(name: str, value: Any, default: int) -> int:
    if value in (None, ""):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer")


def coerce_search_params(params: Dict[str, Any]) -> Dict[str, Any]:
    """Numbers arrive as JSON strings from some clients; list filters as a bare string."""
    out = dict(params or {})
    for name in _NUMERIC_PARAMS:
        if out.get(name) in (None, ""):
            out.pop(name, None)
        else:
            out[name] = _to_number(name, out[name])
    for name in _LIST_PARAMS:
        value = out.get(name)
        if value in (None, "", []):
            out.pop(name, None)
        elif isinstance(value, str):
            out[name] = [v.strip() for v in value.split(",") if v.strip()]
        elif isinstance(value, (list, tuple)):
            out[name] = [str(v) for v in value]
        else:
            raise ValidationError(f"{name} must be a string or a list")
    return out


def normalize_property_type(value: Optional[str]) -> str:
    normalized = (value or "").lower()
    if "condo" in normalized:
        return "condo"
    if "town" in normalized:
        return "townhouse"
    if "land" in normalized or "lot" in normalized:
        return "land"
    if "commercial" in normalized:
        return "commercial"
    if "multi" in normalized or "plex" in normalized:
        return "multi-family"
    return "house"


def normalize_listing_status(value: Optional[str]) -> str:
    normalized = (value or "").lower()
    if "pending" in normalized:
        return "pending"
    if "sold" in normalized or "closed" in normalized:
        return "sold"
    if "withdrawn" in normalized or "cancelled" in normalized:
        return "withdrawn"
    if "expired" in normalized:
        return "expired"
    return "active"


def days_on_market(listing_date: Optional[str]) -> int:
    listed = parse_iso(listing_date)
    if listed is None:
        return 0
    seconds = abs((utcnow() - listed).total_seconds())
    return int(-(-seconds // 86400))


def _first(raw: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return value
    return default


def transform_property(raw: Dict[str, Any]) -> MLSProperty:
    agent = raw.get("agent")
    coordinates = raw.get("coordinates")
    if not coordinates and raw.get("latitude") and raw.get("longitude"):
        coordinates = {"lat": raw["latitude"], "lng": raw["longitude"]}
    listing_date = _first(raw, "listing_date", "list_date", "listedDate")

    return {
        "id": str(_first(raw, "id", "listing_id", default="")),
        "mls_number": _first(raw, "mls_number", "mls_id"),
        "address": {
            "street": _first(raw, "address", "street_address", "addressLine1", default=""),
            "city": raw.get("city") or "",
            "state": raw.get("state") or "",
            "zip": _first(raw, "zip", "postal_code", "zipCode", default=""),
            "county": raw.get("county"),
        },
        "price": _first(raw, "price", "list_price", default=0),
        "bedrooms": _first(raw, "bedrooms", "beds", default=0),
        "bathrooms": _first(raw, "bathrooms", "baths", default=0),
        "square_feet": _first(raw, "square_feet", "sqft", "squareFootage"),
        "lot_size": _first(raw, "lot_size", "lotSize"),
        "year_built": _first(raw, "year_built", "yearBuilt"),
        "property_type": normalize_property_type(_first(raw, "property_type", "type", "propertyType")),
        "listing_status": normalize_listing_status(_first(raw, "status", "listing_status")),
        "listing_date": listing_date,
        "days_on_market": _first(raw, "days_on_market", "dom", "daysOnMarket") or days_on_market(listing_date),
        "description": _first(raw, "description", "remarks"),
        "features": list(_first(raw, "features", "amenities", default=[])),
        "images": list(_first(raw, "images", "photos", default=[])),
        "virtual_tour_url": raw.get("virtual_tour_url"),
        "agent": {
            "name": agent.get("name") or "",
            "phone": agent.get("phone"),
            "email": agent.get("email"),
            "brokerage": agent.get("brokerage"),
        } if isinstance(agent, dict) else None,
        "schools": raw.get("schools"),
        "hoa_fee": raw.get("hoa_fee"),
        "property_tax": _first(raw, "property_tax", "tax_amount"),
        "coordinates": coordinates,
    }


def _within_bounds(prop: MLSProperty, params: Dict[str, Any]) -> bool:
    for param, field, kind in _BOUNDS:
        limit = params.get(param)
        value = prop.get(field)
        if limit is None or not isinstance(value, (int, float)):
            continue
        if kind == "min" and value < limit:
            return False
        if kind == "max" and value > limit:
            return False
    types = params.get("property_type")
    if types and prop.get("property_type") not in types:
        return False
    statuses = params.get("listing_status")
    if statuses and prop.get("listing_status") not in statuses:
        return False
    return True


def aggregate(properties: List[MLSProperty]) -> Optional[Dict[str, Any]]:
    prices = [p["price"] for p in properties if p.get("price")]
    if not prices:
        return None
    return {
        "avg_price": round(sum(prices) / len(prices), 2),
        "median_price": statistics.median(prices),
        "price_range": {"min": min(prices), "max": max(prices)},
        "property_type_counts": dict(Counter(p["property_type"] for p in properties)),
        "city_counts": dict(Counter(p["address"]["city"] for p in properties if p["address"].get("city"))),
    }


def empty_market_stats(location: str, period: str) -> MarketStats:
    return {
        "location": location,
        "period": period,
        "median_list_price": 0,
        "median_sold_price": 0,
        "avg_days_on_market": 0,
        "inventory_count": 0,
        "sold_count": 0,
        "price_per_sqft": 0,
        "month_over_month_change": 0,
        "year_over_year_change": 0,
    }


class MLSService:
    def __init__(self, client: MLSClient, searches: SearchStore, users: UserStore):
        self.client = client
        self.searches = searches
        self.users = users

    def _query(self, params: Dict[str, Any], page: int, limit: int) -> Dict[str, Any]:
        query = {up: params[k] for k, up in _QUERY_PARAMS.items() if params.get(k) not in (None, "")}
        if params.get("location") and "city" not in query:
            city, _, state = str(params["location"]).partition(",")
            query["city"] = city.strip()
            if state.strip():
                query["state"] = state.strip()
        if params.get("property_type"):
            query["propertyType"] = ",".join(params["property_type"])
        query["limit"] = limit
        query["offset"] = (page - 1) * limit
        return query

    def search_properties(self, params: Dict[str, Any]) -> PropertySearchResult:
        params = coerce_search_params(params)
        page = max(1, _to_int("page", params.get("page"), 1))
        limit = max(1, min(_to_int("limit", params.get("limit"), DEFAULT_PAGE_SIZE), MAX_PAGE_SIZE))

        if not self.client.enabled:
            raise ConfigError("Real Estate API key is not configured.")

        try:
            data = self.client.get("/properties", params=self._query(params, page, limit))
        except (ServiceError, requests.RequestException, ValueError) as e:
            log.warning("Property search failed: %s", e)
            return {
                "properties": [],
                "total_count": 0,
                "page": page,
                "per_page": limit,
                "search_params": params,
            }

        if isinstance(data, list):
            raw_items, upstream = data, {}
        else:
            upstream = data or {}
            raw_items = upstream.get("properties") or upstream.get("listings") or []
        properties = [transform_property(p) for p in raw_items]
        properties = [p for p in properties if _within_bounds(p, params)]

        return {
            "properties": properties,
            "total_count": upstream.get("total_count") or len(properties),
            "page": page,
            "per_page": limit,
            "search_params": params,
            "aggregations": upstream.get("aggregations") or aggregate(properties),
        }

    def get_property_details(self, property_id: str) -> MLSProperty:
        return transform_property(self.client.get(f"/properties/{property_id}") or {})

    def get_comparables(self, property_id: str, radius: float = 1) -> List[MLSProperty]:
        subject = self.get_property_details(property_id)
        beds = subject.get("bedrooms") or 0
        baths = subject.get("bathrooms") or 0
        price = subject.get("price") or 0
        params: Dict[str, Any] = {
            "city": subject["address"]["city"],
            "state": subject["address"]["state"],
            "radius": radius,
            "min_beds": max(1, beds - 1),
            "max_beds": beds + 1,
            "min_baths": max(1, baths - 0.5),
            "max_baths": baths + 0.5,
            "property_type": [subject["property_type"]],
            "listing_status": ["sold"],
            "limit": 10,
        }
        if price:
            params["min_price"] = price * 0.8
            params["max_price"] = price * 1.2
        if subject.get("square_feet"):
            params["min_sqft"] = subject["square_feet"] * 0.8
            params["max_sqft"] = subject["square_feet"] * 1.2

        results = self.search_properties(params)
        return [p for p in results["properties"] if p["id"] != subject["id"] and p["id"] != property_id]

    def get_market_stats(self, location: str, period: str = "month") -> MarketStats:
        if not self.client.enabled:
            return empty_market_stats(location, period)
        try:
            data = self.client.post("/market/stats", json={"location": location, "period": period})
        except (ServiceError, requests.RequestException, ValueError) as e:
            log.warning("Market stats failed for %s: %s", location, e)
            return empty_market_stats(location, period)
        stats = empty_market_stats(location, period)
        stats.update({k: v for k, v in (data or {}).items() if k in stats})
        return stats

    def get_property_estimate(self, property_id: str) -> Dict[str, Any]:
        data = self.client.get(f"/properties/{property_id}/estimate") or {}
        value = data.get("estimated_value") or data.get("price") or 0
        value_range = data.get("value_range") or {
            "low": data.get("priceRangeLow") or value,
            "high": data.get("priceRangeHigh") or value,
        }
        return {
            "estimated_value": value,
            "confidence_score": data.get("confidence_score", 0),
            "value_range": value_range,
            "last_sold_price": data.get("last_sold_price"),
            "last_sold_date": data.get("last_sold_date"),
        }

    # =========================
    # Saved searches
    # =========================
    def save_search(self, user_id: str, params: Dict[str, Any], result: PropertySearchResult) -> Dict[str, Any]:
        row = self.searches.add(user_id, params, result.get("total_count") or 0)
        label = params.get("location") or ", ".join(
            p for p in (params.get("city"), params.get("state")) if p
        )
        self.users.update(user_id, {
            "last_property_search": label,
            "last_search_timestamp": row["created_at"],
        })
        return row

    def get_saved_searches(self, user_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        return self.searches.recent(user_id, limit)
