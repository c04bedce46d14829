# homematch/search.py
"""Property search.

``build_property_filters_from_preferences`` turns dashboard preferences into a
plain filter dict; ``PropertySearchService`` applies such a dict to a
PostgREST query and executes it. Keeping the two apart lets the filter logic
be tested without a data store.
"""
from dataclasses import dataclass
from statistics import mean
from typing import Any, Dict, List, Mapping, Optional, Union

from . import crud
from .errors import PostgrestError
from .filters import build_city_state_or_clause, build_text_search_clause, sanitize_filter_value
from .postgrest import PostgrestClient, QueryBuilder
from .schemas import DashboardPreferences, PROPERTY_TYPE_VALUES, SortSpec
from .utils import logger

DEFAULT_PRICE_RANGE = (200_000, 800_000)
# selecting this many cities/neighborhoods is treated as "everywhere"
ALL_CITIES_SENTINEL_THRESHOLD = 200

PROPERTY_TYPE_PREFERENCES = {
    "house": "single_family",
    "townhouse": "townhome",
    "condo": "condo",
}
AMENITY_PREFERENCES = {
    "parking": "Parking",
    "pool": "Pool",
    "gym": "Gym",
    "petFriendly": "Pet Friendly",
}

PROPERTY_SELECT = (
    "id,address,city,state,zip_code,price,bedrooms,bathrooms,square_feet,property_type,"
    "images,description,amenities,lot_size_sqft,neighborhood_id,zpid,year_built,"
    "listing_status,latitude,longitude,created_at"
)

PreferencesInput = Union[DashboardPreferences, Mapping[str, Any], None]


def _as_preferences(prefs: PreferencesInput) -> Optional[DashboardPreferences]:
    if prefs is None:
        return None
    if isinstance(prefs, DashboardPreferences):
        return prefs
    return DashboardPreferences.model_validate(dict(prefs))


def should_treat_as_all_cities(prefs: PreferencesInput) -> bool:
    prefs = _as_preferences(prefs)
    if prefs is None:
        return False
    return (
        bool(prefs.all_cities)
        or len(prefs.cities or []) >= ALL_CITIES_SENTINEL_THRESHOLD
        or len(prefs.neighborhoods or []) >= ALL_CITIES_SENTINEL_THRESHOLD
    )


def build_property_filters_from_preferences(user_preferences: PreferencesInput = None) -> Dict[str, Any]:
    filters: Dict[str, Any] = {}
    prefs = _as_preferences(user_preferences) or DashboardPreferences()
    all_cities = should_treat_as_all_cities(prefs)

    if prefs.neighborhoods and not all_cities:
        filters["neighborhoods"] = list(prefs.neighborhoods)
    elif prefs.cities and not all_cities:
        filters["cities"] = [c.model_dump() for c in prefs.cities]

    price_range = prefs.price_range or DEFAULT_PRICE_RANGE
    filters["price_min"] = price_range[0]
    filters["price_max"] = price_range[1]

    if prefs.bedrooms:
        filters["bedrooms_min"] = prefs.bedrooms
    if prefs.bathrooms:
        filters["bathrooms_min"] = prefs.bathrooms

    if prefs.property_types:
        selected = [PROPERTY_TYPE_PREFERENCES.get(k, k) for k, on in prefs.property_types.items() if on]
        selected = [t for t in selected if t in PROPERTY_TYPE_VALUES]
        if selected:
            filters["property_types"] = selected

    if prefs.must_haves:
        amenities = [AMENITY_PREFERENCES.get(k, k) for k, on in prefs.must_haves.items() if on]
        if amenities:
            filters["amenities"] = amenities

    return filters


@dataclass(frozen=True)
class FilterRule:
    key: str
    column: str
    op: str  # gte | lte | eq | in


FILTER_RULES = (
    FilterRule("price_min", "price", "gte"),
    FilterRule("price_max", "price", "lte"),
    FilterRule("bedrooms_min", "bedrooms", "gte"),
    FilterRule("bedrooms_max", "bedrooms", "lte"),
    FilterRule("bathrooms_min", "bathrooms", "gte"),
    FilterRule("bathrooms_max", "bathrooms", "lte"),
    FilterRule("square_feet_min", "square_feet", "gte"),
    FilterRule("square_feet_max", "square_feet", "lte"),
    FilterRule("year_built_min", "year_built", "gte"),
    FilterRule("year_built_max", "year_built", "lte"),
    FilterRule("lot_size_min", "lot_size_sqft", "gte"),
    FilterRule("lot_size_max", "lot_size_sqft", "lte"),
    FilterRule("property_types", "property_type", "in"),
    FilterRule("neighborhoods", "neighborhood_id", "in"),
    FilterRule("listing_status", "listing_status", "in"),
)


def apply_filters(query: QueryBuilder, filters: Mapping[str, Any], rules=FILTER_RULES) -> QueryBuilder:
    for rule in rules:
        value = filters.get(rule.key)
        if value is None or (isinstance(value, (list, tuple)) and not value):
            continue
        if rule.op == "in":
            query = query.in_(rule.column, value)
        else:
            query = getattr(query, rule.op)(rule.column, value)

    for amenity in filters.get("amenities") or []:
        query = query.contains("amenities", [amenity])

    cities_clause = build_city_state_or_clause(filters.get("cities"))
    if cities_clause:
        query = query.or_(cities_clause)
    return query


class PropertySearchService:
    def __init__(self, client: PostgrestClient):
        self.client = client

    def search_properties(self, filters: Optional[Mapping[str, Any]] = None, page: int = 1,
                          limit: int = 20, sort: Optional[SortSpec] = None,
                          select: str = PROPERTY_SELECT) -> Dict[str, Any]:
        filters = filters or {}
        page = max(1, int(page))
        limit = max(1, int(limit))
        sort = sort or SortSpec()

        query = self.client.table("properties").select(select, count="exact").eq("is_active", True)
        query = apply_filters(query, filters)
        query = query.order(sort.field, desc=sort.direction == "desc")
        start = (page - 1) * limit
        query = query.range(start, start + limit - 1)

        try:
            res = query.execute()
        except PostgrestError as e:
            logger.error("searchProperties failed: %s (filters=%s)", e, dict(filters))
            return {"properties": [], "total": 0, "page": page, "limit": limit}

        return {"properties": res.data or [], "total": res.count or 0, "page": page, "limit": limit}

    def search_properties_text(self, query: str, limit: int = 20) -> List[Dict[str, Any]]:
        clause = build_text_search_clause(query)
        if clause is None:
            # nothing searchable left after sanitizing
            return []
        res = (self.client.table("properties")
               .select(PROPERTY_SELECT)
               .eq("is_active", True)
               .or_(clause)
               .order("created_at", desc=True)
               .limit(limit)
               .execute())
        logger.debug("text search %r -> %d rows", sanitize_filter_value(query), len(res.data or []))
        return res.data or []

    def get_property(self, property_id: str) -> Optional[Dict[str, Any]]:
        return crud.get_property(self.client, property_id, PROPERTY_SELECT)

    def get_similar_properties(self, reference: Mapping[str, Any], limit: int = 10) -> List[Dict[str, Any]]:
        price = float(reference.get("price") or 0)
        beds = float(reference.get("bedrooms") or 0)
        baths = float(reference.get("bathrooms") or 0)
        tolerance = price * 0.2

        query = (self.client.table("properties")
                 .select(PROPERTY_SELECT)
                 .eq("is_active", True)
                 .neq("id", reference["id"])
                 .gte("price", price - tolerance)
                 .lte("price", price + tolerance)
                 .gte("bedrooms", max(0, beds - 1))
                 .lte("bedrooms", beds + 1)
                 .gte("bathrooms", max(0, baths - 0.5))
                 .lte("bathrooms", baths + 0.5))
        if reference.get("property_type"):
            query = query.eq("property_type", reference["property_type"])
        return query.order("created_at", desc=True).limit(limit).execute().data or []

    def get_property_stats(self) -> Dict[str, Any]:
        rows = (self.client.table("properties")
                .select("price,bedrooms,bathrooms,square_feet,property_type")
                .eq("is_active", True)
                .execute().data) or []
        if not rows:
            return {
                "total_properties": 0, "avg_price": 0, "median_price": 0,
                "avg_bedrooms": 0, "avg_bathrooms": 0, "avg_square_feet": 0,
                "property_type_distribution": {},
            }

        prices = sorted(float(r.get("price") or 0) for r in rows)
        sqft = [float(r["square_feet"]) for r in rows if r.get("square_feet") is not None]
        distribution: Dict[str, int] = {}
        for r in rows:
            kind = r.get("property_type") or "unknown"
            distribution[kind] = distribution.get(kind, 0) + 1

        return {
            "total_properties": len(rows),
            "avg_price": round(mean(prices)),
            # upper median, matching the dashboard
            "median_price": prices[len(prices) // 2],
            "avg_bedrooms": round(mean(float(r.get("bedrooms") or 0) for r in rows), 1),
            "avg_bathrooms": round(mean(float(r.get("bathrooms") or 0) for r in rows), 1),
            "avg_square_feet": round(mean(sqft)) if sqft else 0,
            "property_type_distribution": distribution,
        }
