from fastapi import APIRouter, HTTPException, Query
from typing import List, Optional

from app.core.exceptions import (
    CategoryNotFoundError,
    InvalidQueryError,
    SearchBackendError,
    SearchError,
    SearchTimeoutError,
)
from app.models.schemas import (
    CacheStatsResponse,
    CategorySearchResult,
    GeoPoint,
    NearbyResult,
    Pagination,
    SearchFilters,
    SearchQuery,
    SearchResult,
    SortMode,
    Timeframe,
    TrendingResult,
)
from app.services.search_service import get_search_service

router = APIRouter()


def _http_error(e: SearchError) -> HTTPException:
    if isinstance(e, InvalidQueryError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, CategoryNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, SearchTimeoutError):
        return HTTPException(status_code=504, detail=str(e))
    if isinstance(e, SearchBackendError):
        return HTTPException(status_code=502, detail="Search backend unavailable")
    return HTTPException(status_code=500, detail=str(e))


def _location(location: Optional[str], lat: Optional[float], lng: Optional[float], radius_miles: Optional[float]):
    if lat is not None and lng is not None:
        return GeoPoint(lat=lat, lng=lng, radius_miles=radius_miles)
    if lat is not None or lng is not None:
        raise HTTPException(status_code=400, detail="lat and lng must be given together")
    return location


@router.post("", response_model=SearchResult)
async def search_businesses(query: SearchQuery):
    try:
        return await get_search_service().search(query)
    except SearchError as e:
        raise _http_error(e)


@router.get("", response_model=SearchResult)
async def search_businesses_get(
    q: Optional[str] = Query(None, description="Free-text search"),
    location: Optional[str] = Query(None, description="Place name, zip code or \"lat,lng\""),
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    radius_miles: Optional[float] = None,
    category: Optional[str] = None,
    min_rating: Optional[List[float]] = Query(None, description="Checked star thresholds; the lowest applies"),
    verified: Optional[bool] = None,
    featured: Optional[bool] = None,
    open_now: bool = False,
    price_tier: Optional[List[int]] = Query(None),
    sort: SortMode = SortMode.RELEVANCE,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
):
    query = SearchQuery(
        free_text=q,
        location=_location(location, lat, lng, radius_miles),
        category_slug=category,
        filters=SearchFilters(
            min_rating=min_rating,
            verified=verified,
            featured=featured,
            open_now=open_now,
            price_tiers=price_tier or [],
        ),
        sort_mode=sort,
        pagination=Pagination(limit=limit, offset=offset),
    )
    try:
        return await get_search_service().search(query)
    except SearchError as e:
        raise _http_error(e)


@router.get("/nearby", response_model=NearbyResult)
async def nearby_businesses(
    lat: float,
    lng: float,
    radius_km: float = 10,
    limit: int = 20,
    category: Optional[str] = None,
):
    try:
        return await get_search_service().nearby_businesses((lat, lng), radius_km, limit, category)
    except SearchError as e:
        raise _http_error(e)


@router.get("/category/{category_slug}", response_model=CategorySearchResult)
async def businesses_by_category(
    category_slug: str,
    location: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
):
    try:
        return await get_search_service().by_category(category_slug, location, limit, offset)
    except SearchError as e:
        raise _http_error(e)


@router.get("/trending", response_model=TrendingResult)
async def trending_businesses(
    timeframe: Timeframe = Timeframe.WEEK,
    limit: int = 10,
    location: Optional[str] = None,
):
    try:
        return await get_search_service().trending(timeframe, limit, location)
    except SearchError as e:
        raise _http_error(e)


@router.get("/cache/stats", response_model=CacheStatsResponse)
async def cache_stats():
    return CacheStatsResponse(**get_search_service().cache.stats())


@router.delete("/cache")
async def clear_cache(pattern: Optional[str] = Query(None, description="Glob over cache keys, e.g. \"nearby:*\"")):
    removed = await get_search_service().cache.invalidate(pattern)
    return {"removed": removed}
