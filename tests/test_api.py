import httpx
import pytest

from compsengine.config import settings
from compsengine.entrypoints.api.deps import get_comparables_service
from compsengine.entrypoints.fastapi_app import create_app
from compsengine.service_layer.comparables import ComparablesService


@pytest.fixture
def upstream_calls():
    return []


@pytest.fixture
def upstream_state():
    return {"status": 200}


@pytest.fixture
def app_client(async_session_maker, make_client, raw_candidate, upstream_calls, upstream_state):
    def handler(request: httpx.Request) -> httpx.Response:
        upstream_calls.append(request)
        if upstream_state["status"] != 200:
            return httpx.Response(upstream_state["status"])
        return httpx.Response(200, json={"results": {"properties": [raw_candidate("1 Elm St")]}})

    service = ComparablesService(async_session_maker, make_client(handler))
    app = create_app()
    app.dependency_overrides[get_comparables_service] = lambda: service

    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


async def test_health(app_client):
    async with app_client as c:
        r = await c.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


async def test_comparables_then_cache_hit(app_client, upstream_calls):
    body = {"property_id": "prop-1", "zip_code": "62701", "bedrooms": 3, "bathrooms": 2}
    async with app_client as c:
        first = await c.post("/comparables", json=body)
        second = await c.post("/comparables", json=body)

    assert first.status_code == 200
    data = first.json()
    assert data["cache_info"]["from_cache"] is False
    assert data["comparables"][0]["address"] == "1 Elm St"
    assert data["comparables"][0]["is_sold"] is True
    assert data["statistics"]["average_price"] == 450_000
    assert data["statistics"]["inventory_level"] == "low"

    assert second.json()["cache_info"] == {"from_cache": True, "age_hours": 0, "access_count": 2, "is_stale": False}
    assert len(upstream_calls) == 1


async def test_unavailable_maps_to_503(app_client, upstream_state):
    upstream_state["status"] = 401
    async with app_client as c:
        r = await c.post("/comparables", json={"property_id": "prop-1", "zip_code": "62701"})
    assert r.status_code == 503
    assert r.json()["detail"]["attempts"][0]["error"] == "http_401"


async def test_validation_error(app_client):
    async with app_client as c:
        r = await c.post("/comparables", json={"property_id": "", "zip_code": "62701"})
    assert r.status_code == 422


async def test_refresh_and_admin_routes(app_client, upstream_calls):
    body = {"property_id": "prop-1", "zip_code": "62701"}
    async with app_client as c:
        await c.post("/comparables", json=body)
        refreshed = await c.post("/comparables/refresh", json=body)
        report = await c.get("/admin/comparables-cache")
        swept = await c.delete("/admin/comparables-cache")
        listed = await c.get("/admin/comparables-cache/prop-1", params={"zip_code": "62701"})
        invalidated = await c.delete("/admin/comparables-cache/prop-1", params={"zip_code": "62701"})
        stats = await c.get("/debug/comparables/stats", params={"reset": True})
        after = await c.get("/debug/comparables/stats")

    assert refreshed.json()["cache_info"]["from_cache"] is False
    assert len(upstream_calls) == 2
    assert report.json()["stats"]["total_entries"] == 1
    assert swept.json() == {"deleted": 0}
    assert listed.json()["count"] == 1
    assert listed.json()["items"][0]["access_count"] == 1
    assert invalidated.json() == {"deleted": 1}
    assert stats.json()["comparables_cache"]["misses"] == 2
    assert after.json()["comparables_cache"]["misses"] == 0


async def test_api_key_guard(app_client, monkeypatch):
    monkeypatch.setattr(settings, "API_KEY", "secret-key")
    async with app_client as c:
        denied = await c.get("/admin/comparables-cache")
        allowed = await c.get("/admin/comparables-cache", headers={"X-API-Key": "secret-key"})
        open_health = await c.get("/health")
    assert denied.status_code == 401
    assert allowed.status_code == 200
    assert open_health.status_code == 200
