# tests/test_postgrest.py
import pytest
import requests

from homematch.errors import PostgrestError

from fakes import FakeResponse


def test_request_sends_service_key_headers(client, session):
    client.table("properties").select("id, city").eq("city", "Austin").execute()
    (call,) = session.calls
    assert call.url == "https://db.example.test/rest/v1/properties"
    assert call.headers["apikey"] == "service-key"
    assert call.headers["Authorization"] == "Bearer service-key"
    assert call.param("select") == ["id,city"]
    assert call.param("city") == ["eq.Austin"]


def test_filter_values_are_sanitized(client, session):
    client.table("properties").select().eq("city", "Austin),id.gt.(0").execute()
    assert session.calls[0].param("city") == ["eq.Austin  id.gt. 0"]


def test_count_from_content_range(client, session):
    session.on("HEAD", "/rest/v1/properties", FakeResponse(200, headers={"Content-Range": "*/42"}))
    res = client.table("properties").select("*", count="exact", head=True).execute()
    assert res.count == 42 and res.data is None
    assert session.calls[0].headers["Prefer"] == "count=exact"


def test_error_body_becomes_postgrest_error(client, session):
    session.on("GET", "/rest/v1/properties",
               FakeResponse(400, {"message": "column x does not exist", "code": "42703"}))
    with pytest.raises(PostgrestError) as exc:
        client.table("properties").select().execute()
    assert exc.value.status == 400
    assert exc.value.code == "42703"
    assert exc.value.message == "column x does not exist"


def test_transport_error_becomes_postgrest_error(client, session):
    session.on("GET", "/rest/v1/properties", requests.ConnectionError("refused"))
    with pytest.raises(PostgrestError):
        client.table("properties").select().execute()


def test_rpc_posts_params(client, session):
    session.on("POST", "/rest/v1/rpc/get_household_mutual_likes", FakeResponse(200, [{"property_id": "p"}]))
    assert client.rpc("get_household_mutual_likes", {"p_household_id": "h"}).data == [{"property_id": "p"}]
    assert session.calls[0].json == {"p_household_id": "h"}


def test_get_user(client, session):
    session.on("GET", "/auth/v1/user", [FakeResponse(200, {"id": "u1"}), FakeResponse(403, {})])
    assert client.get_user("tok") == {"id": "u1"}
    assert client.get_user("tok") is None


def test_rejects_bad_identifiers(client):
    with pytest.raises(ValueError):
        client.table("properties; drop")
    with pytest.raises(ValueError):
        client.table("properties").order("price desc")
