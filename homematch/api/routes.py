# homematch/api/routes.py
import time
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from pydantic import ValidationError

from .. import crud
from ..auth import get_current_user, require_admin
from ..couples import CouplesService, attach_properties, milestone_for
from ..db import get_client
from ..errors import PostgrestError
from ..interactions import InteractionService
from ..postgrest import PostgrestClient
from ..ratelimit import rate_limit
from ..schemas import IngestRequest, InteractionCreate, SortSpec
from ..search import DEFAULT_PRICE_RANGE, PropertySearchService, build_property_filters_from_preferences
from ..services import run_zillow_ingest
from ..utils import logger

router = APIRouter()

LIST_TYPES = ("liked", "viewed", "skip")


def get_search_service(client: PostgrestClient = Depends(get_client)) -> PropertySearchService:
    return PropertySearchService(client)


def get_couples_service(client: PostgrestClient = Depends(get_client)) -> CouplesService:
    return CouplesService(client)


def get_interaction_service(client: PostgrestClient = Depends(get_client),
                            couples: CouplesService = Depends(get_couples_service)) -> InteractionService:
    return InteractionService(client, couples)


def _parse_city(value: str) -> Dict[str, str]:
    city, _, state = value.rpartition(",")
    if not city:
        return {"city": value.strip(), "state": ""}
    return {"city": city.strip(), "state": state.strip()}


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/api/properties/search", dependencies=[Depends(rate_limit("relaxed"))])
def search_properties(
    q: Optional[str] = Query(None, max_length=200),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    cities: Optional[List[str]] = Query(None, description='"City, ST" pairs'),
    neighborhoods: Optional[List[str]] = Query(None),
    all_cities: bool = Query(False, alias="allCities"),
    price_min: Optional[float] = Query(None, ge=0),
    price_max: Optional[float] = Query(None, ge=0),
    bedrooms: Optional[float] = Query(None, ge=0),
    bathrooms: Optional[float] = Query(None, ge=0),
    property_types: Optional[List[str]] = Query(None, alias="propertyTypes"),
    must_haves: Optional[List[str]] = Query(None, alias="mustHaves"),
    sort: str = Query("created_at"),
    direction: str = Query("desc", pattern="^(asc|desc)$"),
    service: PropertySearchService = Depends(get_search_service),
):
    if q is not None:
        return {"properties": service.search_properties_text(q, limit=limit)}

    prefs: Dict[str, Any] = {
        "cities": [_parse_city(c) for c in cities or []],
        "neighborhoods": neighborhoods,
        "all_cities": all_cities,
        "bedrooms": bedrooms,
        "bathrooms": bathrooms,
        "property_types": {t: True for t in property_types or []},
        "must_haves": {m: True for m in must_haves or []},
    }
    if price_min is not None or price_max is not None:
        low, high = DEFAULT_PRICE_RANGE
        prefs["price_range"] = (low if price_min is None else price_min,
                                high if price_max is None else price_max)
    try:
        sort_spec = SortSpec(field=sort, direction=direction)
    except ValidationError:
        raise HTTPException(status_code=400, detail="Invalid sort field")
    filters = build_property_filters_from_preferences(prefs)
    return service.search_properties(filters, page=page, limit=limit, sort=sort_spec)


@router.get("/api/properties/stats", dependencies=[Depends(rate_limit("relaxed"))])
def property_stats(service: PropertySearchService = Depends(get_search_service)):
    try:
        return {"stats": service.get_property_stats()}
    except PostgrestError as e:
        logger.error("Fetching property stats failed: %s", e.message)
        raise HTTPException(status_code=500, detail="Failed to fetch property stats")


@router.get("/api/properties/{property_id}/similar", dependencies=[Depends(rate_limit("relaxed"))])
def similar_properties(
    property_id: str,
    limit: int = Query(10, ge=1, le=50),
    service: PropertySearchService = Depends(get_search_service),
):
    try:
        reference = service.get_property(property_id)
        if reference is None:
            raise HTTPException(status_code=404, detail="Property not found")
        return {"properties": service.get_similar_properties(reference, limit=limit)}
    except PostgrestError as e:
        logger.error("Fetching similar properties failed: %s", e.message)
        raise HTTPException(status_code=500, detail="Failed to fetch similar properties")


@router.get("/api/properties/vibes")
def property_vibes(
    property_id: Optional[str] = Query(None, alias="propertyId"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user=Depends(get_current_user),
    _rl=Depends(rate_limit("relaxed")),
    client: PostgrestClient = Depends(get_client),
):
    query = client.table("property_vibes").select("*").order("created_at", desc=True)
    if property_id:
        query = query.eq("property_id", property_id)
    try:
        rows = query.range(offset, offset + limit - 1).execute().data or []
    except PostgrestError as e:
        logger.error("Fetching property vibes failed: %s", e.message)
        raise HTTPException(status_code=500, detail="Failed to fetch property vibes")
    return {"data": rows, "limit": limit, "offset": offset}


@router.get("/api/couples/mutual-likes")
def mutual_likes(
    include_properties: bool = Query(True, alias="includeProperties"),
    user=Depends(get_current_user),
    _rl=Depends(rate_limit("standard")),
    couples: CouplesService = Depends(get_couples_service),
    client: PostgrestClient = Depends(get_client),
):
    started = time.perf_counter()
    try:
        likes = couples.get_mutual_likes(user["id"])
    except Exception as e:
        logger.exception("Fetching mutual likes failed: %s", e)
        raise HTTPException(status_code=500, detail="Failed to fetch mutual likes")

    if include_properties:
        items = attach_properties(client, likes)
    else:
        items = [ml.model_dump() for ml in likes]
    return {
        "mutualLikes": items,
        "performance": {
            "totalTime": round((time.perf_counter() - started) * 1000, 1),
            "count": len(items),
            "cached": couples.last_cache_hit,
        },
    }


@router.get("/api/couples/disputed")
def disputed_properties(
    user=Depends(get_current_user),
    _rl=Depends(rate_limit("standard")),
    couples: CouplesService = Depends(get_couples_service),
):
    started = time.perf_counter()
    try:
        disputed = couples.get_disputed_properties(user["id"])
    except PostgrestError as e:
        logger.error("Fetching disputed properties failed: %s", e.message)
        raise HTTPException(status_code=500, detail="Failed to fetch disputed properties")
    return {
        "disputedProperties": disputed,
        "performance": {
            "totalTime": round((time.perf_counter() - started) * 1000, 1),
            "count": len(disputed),
        },
    }


@router.get("/api/couples/check-mutual")
def check_mutual(
    property_id: str = Query(..., alias="propertyId", min_length=1),
    user=Depends(get_current_user),
    _rl=Depends(rate_limit("standard")),
    couples: CouplesService = Depends(get_couples_service),
    client: PostgrestClient = Depends(get_client),
):
    check = couples.check_potential_mutual_like(user["id"], property_id)
    if not check["would_be_mutual"]:
        return {"isMutual": False}

    try:
        partner_name = couples.get_user_display_name(check["partner_user_id"])
        prop = crud.get_property(client, property_id, "address") or {}
        stats = couples.get_household_stats(user["id"])
    except PostgrestError as e:
        logger.error("Building mutual like details failed: %s", e.message)
        raise HTTPException(status_code=500, detail="Failed to check mutual like")

    return {
        "isMutual": True,
        "partnerName": partner_name,
        "propertyAddress": prop.get("address", ""),
        "streak": stats.activity_streak_days if stats else 0,
        "milestone": milestone_for(stats.total_mutual_likes) if stats else None,
    }


@router.get("/api/couples/stats")
def couples_stats(
    user=Depends(get_current_user),
    _rl=Depends(rate_limit("standard")),
    couples: CouplesService = Depends(get_couples_service),
):
    try:
        stats = couples.get_household_stats(user["id"])
    except PostgrestError as e:
        logger.error("Fetching household stats failed: %s", e.message)
        raise HTTPException(status_code=500, detail="Failed to fetch household stats")
    return {"stats": stats.model_dump() if stats else None}


@router.get("/api/couples/activity")
def couples_activity(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user=Depends(get_current_user),
    _rl=Depends(rate_limit("standard")),
    couples: CouplesService = Depends(get_couples_service),
):
    try:
        activity = couples.get_household_activity(user["id"], limit=limit, offset=offset)
    except PostgrestError as e:
        logger.error("Fetching household activity failed: %s", e.message)
        raise HTTPException(status_code=500, detail="Failed to fetch household activity")
    return {"activity": [a.model_dump() for a in activity], "limit": limit, "offset": offset}


@router.post("/api/interactions")
def create_interaction(
    payload: InteractionCreate,
    user=Depends(get_current_user),
    _rl=Depends(rate_limit("standard")),
    service: InteractionService = Depends(get_interaction_service),
):
    try:
        created = service.record_interaction(user["id"], payload.property_id, payload.type)
    except PostgrestError as e:
        logger.error("Recording interaction failed: %s", e.message)
        raise HTTPException(status_code=500, detail="Failed to record interaction")
    return {"success": True, "interaction": created}


@router.get("/api/interactions")
def get_interactions(
    type: str = Query("summary"),
    cursor: Optional[str] = Query(None),
    limit: int = Query(12, ge=1, le=50),
    user=Depends(get_current_user),
    _rl=Depends(rate_limit("relaxed")),
    service: InteractionService = Depends(get_interaction_service),
):
    if type != "summary" and type not in LIST_TYPES:
        raise HTTPException(status_code=400, detail=f"Invalid type: {type}")
    try:
        if type == "summary":
            return service.get_interaction_summary(user["id"]).model_dump()
        return service.list_interactions(user["id"], type, cursor=cursor, limit=limit)
    except PostgrestError as e:
        logger.error("Fetching interactions failed: %s", e.message)
        raise HTTPException(status_code=500, detail="Failed to fetch interactions")


@router.delete("/api/interactions/reset")
def reset_interactions(
    user=Depends(get_current_user),
    _rl=Depends(rate_limit("strict")),
    service: InteractionService = Depends(get_interaction_service),
):
    try:
        deleted = service.reset_interactions(user["id"])
    except PostgrestError as e:
        logger.error("Resetting interactions failed: %s", e.message)
        raise HTTPException(status_code=500, detail="Failed to reset interactions")
    return {"success": True, "deleted": deleted}


@router.post("/api/admin/ingest/zillow", dependencies=[Depends(require_admin)])
def trigger_zillow_ingest(payload: Optional[IngestRequest] = Body(None)):
    payload = payload or IngestRequest()
    try:
        summary = run_zillow_ingest(payload.locations, payload.max_pages, fetch_images=payload.fetch_images)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return summary.model_dump(mode="json")
