# tests/test_routes.py
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from homematch import config, db
from homematch.api import routes
from homematch.auth import get_current_user
from homematch.db import get_client
from homematch.main import app
from homematch.schemas import IngestSummary
from homematch.search import ALL_CITIES_SENTINEL_THRESHOLD

from fakes import FakeResponse


@pytest.fixture
def api(client, monkeypatch):
    monkeypatch.setattr(config, "TEST_MODE", True)
    app.dependency_overrides[get_client] = lambda: client
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def signed_in():
    app.dependency_overrides[get_current_user] = lambda: {"id": "u1"}
    yield
    app.dependency_overrides.pop(get_current_user, None)


def test_health(api):
    assert api.get("/health").json() == {"status": "ok"}


def test_requires_bearer_token(api):
    assert api.get("/api/couples/mutual-likes").status_code == 401
    assert api.get("/api/interactions", headers={"Authorization": "Basic abc"}).status_code == 401


def test_bearer_token_resolved_through_auth_endpoint(api, session):
    session.on("GET", "/auth/v1/user", FakeResponse(200, {"id": "u1"}))
    session.on("GET", "/rest/v1/user_property_interactions", FakeResponse(200, [{"interaction_type": "like"}]))
    res = api.get("/api/interactions", headers={"Authorization": "Bearer token-1"})
    assert res.status_code == 200
    assert res.json() == {"liked": 1, "passed": 0, "viewed": 0}
    (auth,) = session.find("GET", "/auth/v1/user")
    assert auth.headers["Authorization"] == "Bearer token-1"


def test_invalid_token_is_401(api, session):
    session.on("GET", "/auth/v1/user", FakeResponse(401, {"message": "bad jwt"}))
    assert api.get("/api/couples/stats", headers={"Authorization": "Bearer nope"}).status_code == 401


def test_mutual_likes_keeps_likes_when_properties_fail(api, session, signed_in):
    session.on("GET", "/rest/v1/user_profiles", FakeResponse(200, [{"household_id": "h1"}]))
    session.on("POST", "/rest/v1/rpc/get_household_mutual_likes",
               FakeResponse(200, [{"property_id": "p1", "liked_by_count": 2}]))
    session.on("GET", "/rest/v1/properties", FakeResponse(500, {"message": "down"}))

    res = api.get("/api/couples/mutual-likes")
    assert res.status_code == 200
    body = res.json()
    (item,) = body["mutualLikes"]
    assert item["property_id"] == "p1" and item["property"] is None
    assert body["performance"]["count"] == 1


def test_mutual_likes_without_properties(api, session, signed_in):
    session.on("GET", "/rest/v1/user_profiles", FakeResponse(200, [{"household_id": "h1"}]))
    session.on("POST", "/rest/v1/rpc/get_household_mutual_likes",
               FakeResponse(200, [{"property_id": "p1", "liked_by_count": 2}]))
    res = api.get("/api/couples/mutual-likes", params={"includeProperties": "false"})
    assert "property" not in res.json()["mutualLikes"][0]
    assert session.find("GET", "/rest/v1/properties") == []


def test_mutual_likes_failure_is_generic_500(api, session, signed_in):
    session.on("GET", "/rest/v1/user_profiles", FakeResponse(500, {"message": "relation does not exist"}))
    res = api.get("/api/couples/mutual-likes")
    assert res.status_code == 500
    assert res.json() == {"detail": "Failed to fetch mutual likes"}


def test_check_mutual_not_mutual(api, session, signed_in):
    session.on("GET", "/rest/v1/user_profiles", FakeResponse(200, [{"household_id": "h1"}]))
    session.on("GET", "/rest/v1/user_property_interactions", FakeResponse(200, []))
    assert api.get("/api/couples/check-mutual", params={"propertyId": "p1"}).json() == {"isMutual": False}


def test_check_mutual_with_milestone(api, session, signed_in):
    def profiles(call):
        if call.param("select") == ["display_name,email"]:
            return FakeResponse(200, [{"display_name": "Sam", "email": "sam@example.test"}])
        return FakeResponse(200, [{"household_id": "h1"}])

    def interactions(call):
        if call.param("select") == ["created_at"]:
            return FakeResponse(200, [{"created_at": datetime.now(timezone.utc).isoformat()}])
        return FakeResponse(200, [{"user_id": "u2"}])

    session.on("GET", "/rest/v1/user_profiles", profiles)
    session.on("GET", "/rest/v1/user_property_interactions", interactions)
    session.on("HEAD", "/rest/v1/user_property_interactions", FakeResponse(200, headers={"Content-Range": "*/12"}))
    session.on("GET", "/rest/v1/properties", FakeResponse(200, [{"address": "1 Main St"}]))
    session.on("POST", "/rest/v1/rpc/get_household_mutual_likes", FakeResponse(200, [
        {"property_id": f"p{i}", "liked_by_count": 2} for i in range(5)
    ]))

    res = api.get("/api/couples/check-mutual", params={"propertyId": "p1"})
    assert res.json() == {
        "isMutual": True,
        "partnerName": "Sam",
        "propertyAddress": "1 Main St",
        "streak": 1,
        "milestone": {"type": "mutual_likes", "count": 5},
    }


def test_check_mutual_requires_property_id(api, signed_in):
    assert api.get("/api/couples/check-mutual").status_code == 400


def test_record_interaction(api, session, signed_in):
    session.on("GET", "/rest/v1/user_profiles", FakeResponse(200, [{"household_id": None}]))
    session.on("POST", "/rest/v1/user_property_interactions", lambda call: FakeResponse(201, [call.json]))
    res = api.post("/api/interactions", json={"propertyId": "p1", "type": "passed"})
    assert res.status_code == 200
    assert res.json()["interaction"]["interaction_type"] == "skip"


def test_record_interaction_rejects_unknown_type(api, session, signed_in):
    res = api.post("/api/interactions", json={"propertyId": "p1", "type": "love"})
    assert res.status_code == 400
    assert session.calls == []


def test_list_interactions_rejects_unknown_type(api, signed_in):
    assert api.get("/api/interactions", params={"type": "loved"}).status_code == 400


def test_reset_interactions(api, session, signed_in):
    session.on("GET", "/rest/v1/user_profiles", FakeResponse(200, [{"household_id": "h1"}]))
    session.on("DELETE", "/rest/v1/user_property_interactions", FakeResponse(200, [{"id": 1}]))
    assert api.delete("/api/interactions/reset").json() == {"success": True, "deleted": 1}


def test_text_search_route(api, session):
    res = api.get("/api/properties/search", params={"q": "(),,"})
    assert res.json() == {"properties": []}
    assert session.calls == []


def test_filtered_search_route(api, session):
    session.on("GET", "/rest/v1/properties", FakeResponse(200, [], headers={"Content-Range": "*/0"}))
    res = api.get("/api/properties/search", params={"cities": ["Austin, TX"], "price_max": 500000})
    assert res.json() == {"properties": [], "total": 0, "page": 1, "limit": 20}
    (call,) = session.calls
    assert call.param("or") == ["(and(city.eq.Austin,state.eq.TX))"]
    # a missing lower bound falls back to the default window
    assert call.param("price") == ["gte.200000.0", "lte.500000.0"]


def test_search_route_treats_oversized_city_list_as_all_cities(api, session):
    session.on("GET", "/rest/v1/properties", FakeResponse(200, [], headers={"Content-Range": "*/0"}))
    cities = [f"City{i}, TX" for i in range(ALL_CITIES_SENTINEL_THRESHOLD)]
    assert api.get("/api/properties/search", params={"cities": cities}).status_code == 200
    (call,) = session.calls
    assert call.param("or") == []
    assert call.param("price") == ["gte.200000", "lte.800000"]


def test_search_route_maps_preference_keys(api, session):
    session.on("GET", "/rest/v1/properties", FakeResponse(200, [], headers={"Content-Range": "*/0"}))
    api.get("/api/properties/search", params={
        "neighborhoods": ["n1"], "cities": ["Austin, TX"], "bedrooms": 2,
        "propertyTypes": ["house", "condo", "castle"], "mustHaves": ["pool"],
    })
    (call,) = session.calls
    assert call.param("neighborhood_id") == ["in.(n1)"]
    assert call.param("or") == []
    assert call.param("bedrooms") == ["gte.2.0"]
    assert call.param("property_type") == ["in.(single_family,condo)"]
    assert call.param("amenities") == ["cs.{Pool}"]


def test_search_route_all_cities_flag(api, session):
    session.on("GET", "/rest/v1/properties", FakeResponse(200, [], headers={"Content-Range": "*/0"}))
    api.get("/api/properties/search", params={"cities": ["Austin, TX"], "allCities": "true"})
    (call,) = session.calls
    assert call.param("or") == []


def test_property_stats_route(api, session):
    session.on("GET", "/rest/v1/properties", FakeResponse(200, [
        {"price": 100, "bedrooms": 2, "bathrooms": 1, "square_feet": 800, "property_type": "condo"},
    ]))
    res = api.get("/api/properties/stats")
    assert res.status_code == 200
    assert res.json()["stats"]["total_properties"] == 1


def test_similar_properties_route(api, session):
    reference = {"id": "p1", "price": 500000, "bedrooms": 3, "bathrooms": 2, "property_type": "condo"}

    def properties(call):
        if call.param("id") == ["eq.p1"]:
            return FakeResponse(200, [reference])
        return FakeResponse(200, [{"id": "p2"}])

    session.on("GET", "/rest/v1/properties", properties)
    res = api.get("/api/properties/p1/similar", params={"limit": 3})
    assert res.json() == {"properties": [{"id": "p2"}]}
    similar = session.calls[-1]
    assert similar.param("id") == ["neq.p1"]
    assert similar.param("limit") == ["3"]


def test_similar_properties_unknown_reference_is_404(api, session):
    session.on("GET", "/rest/v1/properties", FakeResponse(200, []))
    res = api.get("/api/properties/missing/similar")
    assert res.status_code == 404
    assert len(session.calls) == 1


def test_vibes_requires_sign_in(api, session):
    assert api.get("/api/properties/vibes").status_code == 401
    assert session.find("GET", "/rest/v1/property_vibes") == []


def test_vibes_route(api, session, signed_in):
    session.on("GET", "/rest/v1/property_vibes", FakeResponse(200, [{"property_id": "p1", "tagline": "Sunny"}]))
    res = api.get("/api/properties/vibes", params={"propertyId": "p1", "limit": 5, "offset": 10})
    assert res.json() == {"data": [{"property_id": "p1", "tagline": "Sunny"}], "limit": 5, "offset": 10}
    (call,) = session.calls
    assert call.param("property_id") == ["eq.p1"]
    assert call.param("offset") == ["10"] and call.param("limit") == ["5"]


def test_mutual_likes_reports_cache_hits(api, session, signed_in):
    session.on("GET", "/rest/v1/user_profiles", FakeResponse(200, [{"household_id": "h1"}]))
    session.on("POST", "/rest/v1/rpc/get_household_mutual_likes",
               FakeResponse(200, [{"property_id": "p1", "liked_by_count": 2}]))
    params = {"includeProperties": "false"}
    assert api.get("/api/couples/mutual-likes", params=params).json()["performance"]["cached"] is False
    assert api.get("/api/couples/mutual-likes", params=params).json()["performance"]["cached"] is True
    assert len(session.find("POST", "/rest/v1/rpc/get_household_mutual_likes")) == 1


def test_disputed_route(api, session, signed_in):
    def profiles(call):
        if call.param("household_id"):
            return FakeResponse(200, [{"id": "u1", "display_name": "Alex"}, {"id": "u2", "email": "sam@example.test"}])
        return FakeResponse(200, [{"household_id": "h1"}])

    session.on("GET", "/rest/v1/user_profiles", profiles)
    session.on("GET", "/rest/v1/user_property_interactions", FakeResponse(200, [
        {"user_id": "u2", "property_id": "p1", "interaction_type": "skip", "created_at": "2025-01-02T00:00:00Z",
         "properties": {"address": "1 Main St", "price": 400000}},
        {"user_id": "u1", "property_id": "p1", "interaction_type": "like", "created_at": "2025-01-01T00:00:00Z",
         "properties": {"address": "1 Main St", "price": 400000}},
    ]))
    res = api.get("/api/couples/disputed")
    assert res.status_code == 200
    body = res.json()
    (item,) = body["disputedProperties"]
    assert item["property"]["address"] == "1 Main St"
    assert item["partner1"]["user_name"] == "Alex"
    assert item["partner2"]["user_name"] == "sam@example.test"
    assert body["performance"]["count"] == 1
    (call,) = session.find("GET", "/rest/v1/user_property_interactions")
    assert call.param("interaction_type") == ["in.(like,dislike,skip)"]


def test_disputed_requires_sign_in(api):
    assert api.get("/api/couples/disputed").status_code == 401


def test_disputed_failure_is_generic_500(api, session, signed_in):
    session.on("GET", "/rest/v1/user_profiles", FakeResponse(500, {"message": "boom"}))
    res = api.get("/api/couples/disputed")
    assert res.status_code == 500
    assert res.json() == {"detail": "Failed to fetch disputed properties"}


def test_unconfigured_store_is_503(monkeypatch):
    monkeypatch.setattr(config, "SUPABASE_URL", "")
    monkeypatch.setattr(db, "_client", None)
    res = TestClient(app).get("/api/properties/search")
    assert res.status_code == 503


def test_admin_ingest_requires_token(api, monkeypatch):
    monkeypatch.setattr(config, "ADMIN_API_TOKEN", "")
    assert api.post("/api/admin/ingest/zillow").status_code == 503
    monkeypatch.setattr(config, "ADMIN_API_TOKEN", "s3cret")
    assert api.post("/api/admin/ingest/zillow", headers={"X-Admin-Token": "wrong"}).status_code == 401


def test_admin_ingest_runs(api, monkeypatch):
    seen = {}

    def fake_ingest(locations, max_pages, fetch_images=None):
        seen.update(locations=locations, max_pages=max_pages, fetch_images=fetch_images)
        return IngestSummary()

    monkeypatch.setattr(config, "ADMIN_API_TOKEN", "s3cret")
    monkeypatch.setattr(routes, "run_zillow_ingest", fake_ingest)
    res = api.post("/api/admin/ingest/zillow", headers={"Authorization": "Bearer s3cret"},
                   json={"locations": ["Austin, TX"], "max_pages": 1, "fetch_images": True})
    assert res.status_code == 200
    assert res.json()["totals"]["attempted"] == 0
    assert seen == {"locations": ["Austin, TX"], "max_pages": 1, "fetch_images": True}
