import asyncio
import sys
from pathlib import Path

import pytest

# Ensure the `app` package is importable when running pytest from the repo root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.core.config import Settings
from app.models.business import BusinessWithRelations, Category
from app.models.schemas import NearbyBusiness
from app.search import geo
from app.services.search_service import BusinessSearchService
from app.utils.cache import SearchCache

SF = (37.77, -122.41)
MILES_PER_DEGREE_LAT = geo.EARTH_RADIUS_MILES * 3.141592653589793 / 180


def make_business(business_id, lat=None, lng=None, categories=(), **overrides):
    data = {
        "id": business_id,
        "name": f"Business {business_id}",
        "status": "published",
        "rating": 4.0,
        "review_count": 10,
        "price_tier": 2,
        "verified": True,
        "location": {
            "address": "1 Market St",
            "city": "San Francisco",
            "state": "CA",
            "zip": "94103",
            "latitude": SF[0] if lat is None else lat,
            "longitude": SF[1] if lng is None else lng,
        },
        "categories": [Category(id=slug, name=slug.title(), slug=slug) for slug in categories],
    }
    data.update(overrides)
    return BusinessWithRelations(**data)


def north_of(origin, miles):
    """Point `miles` due north of origin (same meridian, exact great-circle distance)"""
    return origin[0] + miles / MILES_PER_DEGREE_LAT, origin[1]


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeStore:
    """In-memory stand-in for BusinessStore with failure injection"""

    def __init__(self, businesses=(), categories=(), zips=None, recent_counts=None, relevance=None):
        self.businesses = {b.id: b for b in businesses}
        self.categories = {c.slug: c for c in categories}
        self.zips = zips or {}
        self.recent_counts = recent_counts or {}
        # Explicit full-text ranking; defaults to insertion order of matches
        self.relevance = relevance
        self.missing = set()
        self.failures = {}
        self.delays = {}
        self.calls = []

    async def _enter(self, operation):
        self.calls.append(operation)
        if operation in self.delays:
            await asyncio.sleep(self.delays[operation])
        if operation in self.failures:
            raise self.failures[operation]

    def count(self, operation):
        return self.calls.count(operation)

    async def search_businesses(self, search_term, location=None, category=None, max_results=20, bounds=None):
        await self._enter("search_businesses")
        self.last_search_bounds = bounds
        order = self.relevance or list(self.businesses)
        matches = []
        for business_id in order:
            b = self.businesses[business_id]
            text = f"{b.name} {b.description}".lower()
            if b.status != "published" or search_term.lower() not in text:
                continue
            if category and category not in b.category_slugs:
                continue
            if location and location not in (b.location.city or "").lower():
                continue
            matches.append({"id": b.id, "relevance_rank": len(matches)})
        return matches[:max_results]

    async def get_businesses_by_ids(self, business_ids):
        await self._enter("get_businesses_by_ids")
        return [self.businesses[i] for i in business_ids if i in self.businesses and i not in self.missing]

    async def get_published_businesses(self, scan_filter=None, offset=0, limit=100):
        await self._enter("get_published_businesses")
        self.last_scan_filter = scan_filter
        published = [b for b in self.businesses.values() if b.status == "published"]
        published.sort(key=lambda b: (not b.featured, -b.rating, -b.review_count, b.id))
        return published[offset:offset + limit]

    async def get_nearby_businesses(self, latitude, longitude, radius_km, limit=20):
        await self._enter("get_nearby_businesses")
        rows = []
        for b in self.businesses.values():
            if b.status != "published" or not b.location.has_coordinates:
                continue
            miles = geo.distance(latitude, longitude, b.location.latitude, b.location.longitude)
            if miles <= geo.km_to_miles(radius_km):
                rows.append(NearbyBusiness(**b.model_dump(), distance_miles=miles, distance_km=geo.miles_to_km(miles)))
        rows.sort(key=lambda r: (r.distance_miles, r.id))
        return rows[:limit]

    async def get_recent_review_counts(self, since, location=None, limit=500):
        await self._enter("get_recent_review_counts")
        self.last_since = since
        # Same scope as the SQL: published, verified businesses, busiest first
        eligible = {
            business_id: count
            for business_id, count in self.recent_counts.items()
            if business_id in self.businesses
            and self.businesses[business_id].status == "published"
            and self.businesses[business_id].verified
        }
        busiest = sorted(eligible.items(), key=lambda item: (-item[1], item[0]))[:limit]
        return dict(busiest)

    async def get_recent_review_counts_for(self, business_ids, since):
        await self._enter("get_recent_review_counts_for")
        self.last_since = since
        return {i: self.recent_counts[i] for i in business_ids if self.recent_counts.get(i)}

    async def get_category_by_slug(self, slug):
        await self._enter("get_category_by_slug")
        return self.categories.get(slug)

    async def get_zip_coordinates(self, zip_code):
        await self._enter("get_zip_coordinates")
        return self.zips.get(zip_code)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def test_settings():
    return Settings(
        SEARCH_BACKEND_TIMEOUT_SECONDS=0.05,
        DEFAULT_SEARCH_RADIUS_MILES=35.0,
        SEARCH_MAX_LIMIT=100,
        SEARCH_DEFAULT_LIMIT=20,
        NEARBY_BACKEND_ENABLED=True,
    )


@pytest.fixture
def make_service(test_settings, clock):
    def build(store, cache=None, config=None, now=None):
        from datetime import datetime, timezone
        return BusinessSearchService(
            store,
            cache if cache is not None else SearchCache(ttl_seconds=600, max_entries=100, clock=clock),
            config=config or test_settings,
            now=now or (lambda: datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)),
        )
    return build
