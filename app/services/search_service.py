import asyncio
import logging
import math
import time
import warnings
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, Union

from app.core.config import Settings, settings as default_settings
from app.core.exceptions import (
    CategoryNotFoundError,
    InvalidQueryError,
    PartialHydrationWarning,
    SearchBackendError,
    SearchError,
    SearchTimeoutError,
)
from app.models.business import Business, BusinessWithRelations
from app.models.schemas import (
    CachedResultSet,
    CategorySearchResult,
    GeoPoint,
    NearbyBusiness,
    NearbyResult,
    Pagination,
    PerformanceInfo,
    SearchFilters,
    SearchQuery,
    SearchResult,
    SortMode,
    Timeframe,
    TrendingResult,
)
from app.search import geo, location as locations, trending
from app.search.filters import FilterContext, FilterPipeline
from app.search.ranking import RankContext, RankingEngine
from app.utils import telemetry
from app.utils.cache import SEARCH_NAMESPACE, fingerprint

logger = logging.getLogger(__name__)

NEARBY_NAMESPACE = "nearby"
CATEGORY_NAMESPACE = "category"
TRENDING_NAMESPACE = "trending"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BusinessSearchService:
    """Runs a search end to end: normalize, cache lookup, fetch, filter, rank, page.

    The cache is passed in rather than looked up globally, so tests can give each
    service its own and production can choose the memory or Redis backend.
    """

    def __init__(
        self,
        store,
        cache,
        filter_pipeline: FilterPipeline = None,
        ranking_engine: RankingEngine = None,
        config: Settings = None,
        now: Callable[[], datetime] = _utcnow,
        timer: Callable[[], float] = time.perf_counter,
    ):
        self.store = store
        self.cache = cache
        self.config = config or default_settings
        self.filter_pipeline = filter_pipeline or FilterPipeline(
            default_radius_miles=self.config.DEFAULT_SEARCH_RADIUS_MILES,
            default_timezone=self.config.DEFAULT_TIMEZONE,
        )
        self.ranking_engine = ranking_engine or RankingEngine()
        self.now = now
        self.timer = timer

    # Public operations

    async def search(self, query: SearchQuery) -> SearchResult:
        start = self.timer()
        try:
            normalized = self.normalize(query)
            result_set, cache_hit = await self._cached(
                SEARCH_NAMESPACE, normalized, lambda: self._execute(normalized)
            )
            page = self._page(result_set.businesses, normalized.pagination)
            performance = self._performance(start, cache_hit)
            if not cache_hit:
                telemetry.emit(
                    telemetry.QUERY_COMPLETED,
                    queryTimeMs=round(performance.query_time_ms, 2),
                    total=result_set.total,
                    sortMode=normalized.sort_mode.value,
                )
            return SearchResult(businesses=page, total=result_set.total, performance=performance)
        except SearchError as e:
            self._report(e, "search")
            raise

    async def nearby_businesses(
        self,
        point: Union[GeoPoint, tuple],
        radius_km: float = 10,
        limit: int = 20,
        category: Optional[str] = None,
    ) -> NearbyResult:
        start = self.timer()
        try:
            lat, lng = (point.lat, point.lng) if isinstance(point, GeoPoint) else point
            if radius_km is None or not math.isfinite(radius_km) or radius_km < 0:
                raise InvalidQueryError(f"Invalid radius: {radius_km}")
            limit = self._clamp_limit(limit)
            query = SearchQuery(
                location=GeoPoint(lat=lat, lng=lng, radius_miles=geo.km_to_miles(radius_km)),
                category_slug=category.strip().lower() if category else None,
                sort_mode=SortMode.DISTANCE,
                pagination=Pagination(limit=limit, offset=0),
            )
            payload = {"lat": lat, "lng": lng, "radius_km": radius_km, "limit": limit, "category": query.category_slug}

            result_set, cache_hit = await self._cached(
                NEARBY_NAMESPACE, payload, lambda: self._execute_nearby(query, radius_km, limit)
            )
            businesses = [
                NearbyBusiness(
                    **b.model_dump(exclude={"distance_km", "distance_miles"}),
                    distance_km=result_set.distances_km[b.id],
                    distance_miles=geo.km_to_miles(result_set.distances_km[b.id]),
                )
                for b in result_set.businesses
            ]
            return NearbyResult(businesses=businesses, performance=self._performance(start, cache_hit))
        except SearchError as e:
            self._report(e, "nearby")
            raise

    async def by_category(
        self,
        category_slug: str,
        location=None,
        limit: int = 20,
        offset: int = 0,
    ) -> CategorySearchResult:
        start = self.timer()
        try:
            query = self.normalize(SearchQuery(
                category_slug=category_slug,
                location=location,
                sort_mode=SortMode.RELEVANCE,
                pagination=Pagination(limit=limit, offset=offset),
            ))
            if not query.category_slug:
                raise InvalidQueryError("Category slug is required")

            result_set, cache_hit = await self._cached(
                CATEGORY_NAMESPACE, query, lambda: self._execute_category(query)
            )
            return CategorySearchResult(
                businesses=self._page(result_set.businesses, query.pagination),
                total=result_set.total,
                category=result_set.category,
                performance=self._performance(start, cache_hit),
            )
        except SearchError as e:
            self._report(e, "category")
            raise

    async def trending(
        self,
        timeframe: Union[Timeframe, str] = Timeframe.WEEK,
        limit: int = 10,
        location=None,
    ) -> TrendingResult:
        start = self.timer()
        try:
            try:
                timeframe = Timeframe(timeframe)
            except ValueError:
                raise InvalidQueryError(f"Unknown timeframe: {timeframe}")
            limit = self._clamp_limit(limit)
            payload = {
                "timeframe": timeframe.value,
                "limit": limit,
                "location": location.model_dump() if hasattr(location, "model_dump") else location,
            }

            result_set, cache_hit = await self._cached(
                TRENDING_NAMESPACE, payload, lambda: self._execute_trending(timeframe, limit, location)
            )
            return TrendingResult(
                businesses=result_set.businesses,
                timeframe=timeframe,
                performance=self._performance(start, cache_hit),
            )
        except SearchError as e:
            self._report(e, "trending")
            raise

    def normalize(self, query: SearchQuery) -> SearchQuery:
        """Trimmed, lower-cased text and a clamped page window"""
        pagination = query.pagination or Pagination()
        offset = 0 if pagination.offset is None else pagination.offset
        if offset < 0:
            raise InvalidQueryError(f"Offset must not be negative, got {offset}")

        location = query.location
        if isinstance(location, str):
            location = location.strip() or None

        free_text = query.free_text.strip().lower() if query.free_text else None
        category_slug = query.category_slug.strip().lower() if query.category_slug else None

        return query.model_copy(update={
            "free_text": free_text or None,
            "category_slug": category_slug or None,
            "location": location,
            "pagination": Pagination(limit=self._clamp_limit(pagination.limit), offset=offset),
        })

    # Pipelines

    async def _execute(self, query: SearchQuery) -> CachedResultSet:
        context = FilterContext(
            location=await self._resolve_location(query.location),
            now=self.now(),
            text_prefiltered=bool(query.free_text),
        )
        relevance_order = None

        if query.free_text:
            matches = await self._backend(
                "search_businesses",
                self.store.search_businesses(
                    query.free_text,
                    location=context.location.text,
                    category=query.category_slug,
                    max_results=self.config.search_candidate_limit,
                    bounds=self.filter_pipeline.to_scan_filter(query, context).bounds,
                ),
            )
            ids = [match["id"] for match in matches]
            relevance_order = {business_id: rank for rank, business_id in enumerate(ids)}
            candidates = await self._hydrate(ids)
        else:
            scan_filter = self.filter_pipeline.to_scan_filter(query, context)
            candidates = await self._backend(
                "get_published_businesses",
                self.store.get_published_businesses(scan_filter, 0, self.config.search_candidate_limit),
            )

        filtered = self.filter_pipeline.apply(candidates, query, context)

        recent_counts = {}
        if query.sort_mode == SortMode.TRENDING:
            since = trending.timeframe_start(Timeframe.WEEK, context.now)
            recent_counts = await self._backend(
                "get_recent_review_counts_for",
                self.store.get_recent_review_counts_for([b.id for b in filtered], since),
            )

        ranked = self.ranking_engine.rank(
            filtered,
            query.sort_mode,
            RankContext(point=context.location.point, relevance_order=relevance_order, recent_review_counts=recent_counts),
        )
        logger.info(f"Search matched {len(ranked)} of {len(candidates)} candidates")
        return CachedResultSet(businesses=self._with_relations(ranked), total=len(ranked))

    async def _execute_nearby(self, query: SearchQuery, radius_km: float, limit: int) -> CachedResultSet:
        center = (query.location.lat, query.location.lng)
        context = FilterContext(location=locations.resolve_offline(query.location, self.config.DEFAULT_SEARCH_RADIUS_MILES), now=self.now())

        if self.config.NEARBY_BACKEND_ENABLED:
            fetch = limit if not query.category_slug else self.config.search_candidate_limit
            candidates = await self._backend(
                "get_nearby_businesses",
                self.store.get_nearby_businesses(center[0], center[1], radius_km, fetch),
            )
        else:
            candidates = await self._backend(
                "get_published_businesses",
                self.store.get_published_businesses(
                    self.filter_pipeline.to_scan_filter(query, context), 0, self.config.search_candidate_limit
                ),
            )

        filtered = self.filter_pipeline.apply(candidates, query, context)
        # Distances are recomputed here so both fetch paths order identically
        ranked = self.ranking_engine.rank(filtered, SortMode.DISTANCE, RankContext(point=center))[:limit]
        distances = {
            b.id: geo.miles_to_km(geo.distance(center[0], center[1], *geo.business_point(b)))
            for b in ranked
        }
        return CachedResultSet(businesses=self._with_relations(ranked), total=len(ranked), distances_km=distances)

    async def _execute_category(self, query: SearchQuery) -> CachedResultSet:
        category = await self._backend("get_category_by_slug", self.store.get_category_by_slug(query.category_slug))
        if category is None:
            raise CategoryNotFoundError(query.category_slug)
        result_set = await self._execute(query)
        result_set.category = category
        return result_set

    async def _execute_trending(self, timeframe: Timeframe, limit: int, location) -> CachedResultSet:
        now = self.now()
        resolved = await self._resolve_location(location)
        counts = await self._backend(
            "get_recent_review_counts",
            self.store.get_recent_review_counts(
                trending.timeframe_start(timeframe, now),
                resolved.text,
                self.config.search_candidate_limit,
            ),
        )
        counts = {business_id: count for business_id, count in counts.items() if count > 0}
        candidates = await self._hydrate(list(counts))

        query = SearchQuery(location=location, filters=SearchFilters(verified=True), sort_mode=SortMode.TRENDING)
        context = FilterContext(location=resolved, now=now)
        filtered = self.filter_pipeline.apply(candidates, query, context)
        ranked = self.ranking_engine.rank(
            filtered, SortMode.TRENDING, RankContext(point=resolved.point, recent_review_counts=counts)
        )[:limit]
        return CachedResultSet(businesses=self._with_relations(ranked), total=len(ranked))

    # Helpers

    async def _cached(self, namespace: str, query, produce: Callable[[], Awaitable[CachedResultSet]]):
        key = fingerprint(query, namespace)
        cached = await self.cache.get(key)
        if cached is not None:
            telemetry.emit(telemetry.CACHE_HIT, namespace=namespace)
            logger.debug(f"Cache hit: {key}")
            return cached, True

        telemetry.emit(telemetry.CACHE_MISS, namespace=namespace)
        result_set = await produce()
        # Only reached when produce() succeeded; failures are never cached
        await self.cache.set(key, result_set)
        return result_set, False

    async def _resolve_location(self, location):
        return await self._backend(
            "get_zip_coordinates",
            locations.resolve(location, self.store, self.config.DEFAULT_SEARCH_RADIUS_MILES),
        )

    async def _hydrate(self, ids: List[str]) -> List[Business]:
        if not ids:
            return []
        businesses = await self._backend("get_businesses_by_ids", self.store.get_businesses_by_ids(ids))
        by_id = {business.id: business for business in businesses}
        missing = [business_id for business_id in ids if business_id not in by_id]
        if missing:
            message = f"{len(missing)} of {len(ids)} candidates could not be hydrated: {missing[:10]}"
            logger.warning(message)
            telemetry.emit(telemetry.PARTIAL_HYDRATION, level=logging.WARNING, missing=len(missing), requested=len(ids))
            warnings.warn(message, PartialHydrationWarning, stacklevel=2)
        return [by_id[business_id] for business_id in ids if business_id in by_id]

    async def _backend(self, operation: str, awaitable: Awaitable):
        timeout = self.config.SEARCH_BACKEND_TIMEOUT_SECONDS
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except SearchError:
            raise
        except asyncio.TimeoutError as e:
            raise SearchTimeoutError(f"{operation} timed out after {timeout}s", operation) from e
        except Exception as e:
            logger.error(f"Backend call {operation} failed: {e}")
            raise SearchBackendError(f"{operation} failed: {e}", operation) from e

    def _clamp_limit(self, limit: Optional[int]) -> int:
        if limit is None:
            return self.config.SEARCH_DEFAULT_LIMIT
        return max(1, min(int(limit), self.config.SEARCH_MAX_LIMIT))

    @staticmethod
    def _page(businesses: List, pagination: Pagination) -> List:
        return businesses[pagination.offset:pagination.offset + pagination.limit]

    @staticmethod
    def _with_relations(businesses: List[Business]) -> List[BusinessWithRelations]:
        return [
            b if isinstance(b, BusinessWithRelations) else BusinessWithRelations(**b.model_dump())
            for b in businesses
        ]

    def _performance(self, start: float, cache_hit: bool) -> PerformanceInfo:
        return PerformanceInfo(query_time_ms=(self.timer() - start) * 1000, cache_hit=cache_hit)

    @staticmethod
    def _report(error: SearchError, operation: str):
        telemetry.emit(telemetry.SEARCH_ERROR, level=logging.WARNING, kind=error.kind, operation=operation)


# Set during application startup
_search_service = None

def set_search_service(service: BusinessSearchService):
    global _search_service
    _search_service = service

def get_search_service() -> BusinessSearchService:
    if _search_service is None:
        raise RuntimeError("BusinessSearchService is not initialized")
    return _search_service
