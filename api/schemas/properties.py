from __future__ import annotations

from typing import Any, Dict, List, Optional, TypedDict


PROPERTY_TYPES = ("house", "condo", "townhouse", "land", "commercial", "multi-family")
LISTING_STATUSES = ("active", "pending", "sold", "withdrawn", "expired")


class Address(TypedDict, total=False):
    street: str
    city: str
    state: str
    zip: str
    county: Optional[str]


class MLSProperty(TypedDict, total=False):
    id: str
    mls_number: Optional[str]
    address: Address
    price: float
    bedrooms: float
    bathrooms: float
    square_feet: Optional[float]
    lot_size: Optional[float]
    year_built: Optional[int]
    property_type: str
    listing_status: str
    listing_date: Optional[str]
    days_on_market: Optional[int]
    description: Optional[str]
    features: List[str]
    images: List[str]
    virtual_tour_url: Optional[str]
    agent: Optional[Dict[str, Any]]
    schools: Optional[Dict[str, Any]]
    hoa_fee: Optional[float]
    property_tax: Optional[float]
    coordinates: Optional[Dict[str, float]]


class PropertySearchResult(TypedDict, total=False):
    properties: List[MLSProperty]
    total_count: int
    page: int
    per_page: int
    search_params: Dict[str, Any]
    aggregations: Optional[Dict[str, Any]]


class MarketStats(TypedDict, total=False):
    location: str
    period: str
    median_list_price: float
    median_sold_price: float
    avg_days_on_market: float
    inventory_count: int
    sold_count: int
    price_per_sqft: float
    month_over_month_change: float
    year_over_year_change: float
