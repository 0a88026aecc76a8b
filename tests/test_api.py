import pytest
from fastapi.testclient import TestClient

from app.core.exceptions import SearchBackendError
from app.main import app
from app.models.business import Category
from app.services.search_service import set_search_service
from conftest import SF, FakeStore, make_business, north_of


@pytest.fixture
def store():
    return FakeStore(
        [
            make_business("1", rating=4.9, review_count=200, categories=["pizza"]),
            make_business("2", rating=4.9, review_count=50, sponsored=True),
            make_business("3", *north_of(SF, 1), rating=3.0, review_count=10),
        ],
        categories=[Category(id="1", name="Pizza", slug="pizza")],
        recent_counts={"1": 4},
    )


@pytest.fixture
def client(store, make_service):
    # No lifespan: the service is wired by hand with an in-memory store
    set_search_service(make_service(store))
    yield TestClient(app)
    set_search_service(None)


def test_post_search(client):
    response = client.post("/api/v1/search", json={"filters": {"minRating": 4}, "sortMode": "rating_desc"})

    assert response.status_code == 200
    body = response.json()
    assert [b["id"] for b in body["businesses"]] == ["2", "1"]
    assert body["total"] == 2
    assert body["performance"]["cacheHit"] is False
    assert body["performance"]["queryTimeMs"] >= 0


def test_get_search_uses_lowest_threshold(client):
    response = client.get("/api/v1/search", params={"sort": "rating_desc", "min_rating": [4, 3]})

    assert response.status_code == 200
    assert [b["id"] for b in response.json()["businesses"]] == ["2", "1", "3"]


def test_second_request_hits_cache(client):
    client.post("/api/v1/search", json={"sortMode": "name"})
    response = client.post("/api/v1/search", json={"sortMode": "name"})
    assert response.json()["performance"]["cacheHit"] is True


def test_invalid_query_is_400(client):
    response = client.post("/api/v1/search", json={"location": {"north": 1, "south": 2, "east": 1, "west": 0}})
    assert response.status_code == 400


def test_lat_without_lng_is_400(client):
    assert client.get("/api/v1/search", params={"lat": 37.7}).status_code == 400


def test_backend_failure_is_502(client, store):
    store.failures["get_published_businesses"] = SearchBackendError("down")
    response = client.post("/api/v1/search", json={})
    assert response.status_code == 502


def test_nearby(client):
    response = client.get("/api/v1/search/nearby", params={"lat": SF[0], "lng": SF[1], "radius_km": 5})

    assert response.status_code == 200
    businesses = response.json()["businesses"]
    assert [b["id"] for b in businesses] == ["2", "1", "3"]
    assert businesses[2]["distance_miles"] == pytest.approx(1, rel=1e-6)


def test_category_route(client):
    response = client.get("/api/v1/search/category/pizza")
    assert response.status_code == 200
    assert response.json()["category"]["slug"] == "pizza"
    assert [b["id"] for b in response.json()["businesses"]] == ["1"]


def test_unknown_category_is_404(client):
    assert client.get("/api/v1/search/category/sushi").status_code == 404


def test_trending_route(client):
    response = client.get("/api/v1/search/trending", params={"timeframe": "24h"})
    assert response.status_code == 200
    assert response.json()["timeframe"] == "24h"
    assert [b["id"] for b in response.json()["businesses"]] == ["1"]


def test_cache_stats_and_clear(client):
    client.post("/api/v1/search", json={})
    client.post("/api/v1/search", json={})

    stats = client.get("/api/v1/search/cache/stats").json()
    assert stats["backend"] == "memory"
    assert stats["hits"] == 1
    assert stats["size"] == 1

    assert client.delete("/api/v1/search/cache", params={"pattern": "business_search:*"}).json() == {"removed": 1}
    assert client.get("/api/v1/search/cache/stats").json()["size"] == 0


def test_health_reports_disconnected_database(client):
    body = client.get("/api/v1/health").json()
    assert body["database"] == "disconnected"
    assert body["status"] == "unhealthy"
    assert body["services"]["cache"] == "memory"


def test_version(client):
    assert client.get("/api/v1/version").json()["name"] == "LocalHub Search API"
