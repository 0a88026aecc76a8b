from pydantic import BaseModel, Field, field_validator
from typing import List, Optional, Dict, Union
from enum import Enum

from app.models.business import BusinessWithRelations, Category

# Search request schemas
class SortMode(str, Enum):
    RELEVANCE = "relevance"
    RATING_DESC = "rating_desc"
    RATING_ASC = "rating_asc"
    PRICE_ASC = "price_asc"
    PRICE_DESC = "price_desc"
    DISTANCE = "distance"
    TRENDING = "trending"
    NEWEST = "newest"
    OLDEST = "oldest"
    REVIEWS = "reviews"
    NAME = "name"

# Sort names still sent by older search boxes
LEGACY_SORT_NAMES = {
    "rating": SortMode.RATING_DESC,
    "price": SortMode.PRICE_ASC,
}

class Timeframe(str, Enum):
    DAY = "24h"
    WEEK = "7d"
    MONTH = "30d"

class GeoPoint(BaseModel):
    lat: float = Field(..., description="Latitude in degrees")
    lng: float = Field(..., description="Longitude in degrees")
    radius_miles: Optional[float] = Field(None, description="Search radius; the configured default applies when omitted")

class BoundingBox(BaseModel):
    north: float
    south: float
    east: float
    west: float

LocationInput = Union[BoundingBox, GeoPoint, str]

class SearchFilters(BaseModel):
    min_rating: Optional[float] = Field(None, alias="minRating", description="Lowest checked star threshold")
    verified: Optional[bool] = None
    featured: Optional[bool] = None
    open_now: bool = Field(False, alias="openNow")
    price_tiers: List[int] = Field([], alias="priceTiers", description="Accepted price tiers, 1 ($) to 4 ($$$$)")

    class Config:
        populate_by_name = True

    @field_validator("min_rating", mode="before")
    @classmethod
    def lowest_checked_threshold(cls, v):
        # Several "N stars & up" boxes may be checked; the lowest one wins
        if isinstance(v, (list, tuple, set)):
            values = [float(x) for x in v if x is not None]
            return min(values) if values else None
        return v

    @field_validator("price_tiers", mode="before")
    @classmethod
    def sorted_tiers(cls, v):
        if v is None:
            return []
        if isinstance(v, (int, str)):
            v = [v]
        return sorted({int(tier) for tier in v})

    def is_empty(self) -> bool:
        return (
            self.min_rating is None
            and self.verified is None
            and self.featured is None
            and not self.open_now
            and not self.price_tiers
        )

class Pagination(BaseModel):
    limit: Optional[int] = None
    offset: Optional[int] = None

class SearchQuery(BaseModel):
    free_text: Optional[str] = Field(None, alias="freeText")
    location: Optional[LocationInput] = None
    category_slug: Optional[str] = Field(None, alias="categorySlug")
    filters: SearchFilters = Field(default_factory=SearchFilters)
    sort_mode: SortMode = Field(SortMode.RELEVANCE, alias="sortMode")
    pagination: Pagination = Field(default_factory=Pagination)

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "freeText": "pizza",
                "location": "94103",
                "categorySlug": "restaurants",
                "filters": {"minRating": 4, "openNow": True, "priceTiers": [1, 2]},
                "sortMode": "rating_desc",
                "pagination": {"limit": 20, "offset": 0},
            }
        }

    @field_validator("sort_mode", mode="before")
    @classmethod
    def accept_legacy_sort(cls, v):
        if isinstance(v, str):
            return LEGACY_SORT_NAMES.get(v.strip().lower(), v.strip().lower())
        return v

    @field_validator("free_text", "category_slug", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def cache_payload(self) -> Dict:
        """Everything that decides the ranked result list; pagination is applied later"""
        return self.model_dump(mode="json", exclude={"pagination"})

# Search response schemas
class PerformanceInfo(BaseModel):
    query_time_ms: float = Field(..., alias="queryTimeMs")
    cache_hit: bool = Field(..., alias="cacheHit")

    class Config:
        populate_by_name = True

class SearchResult(BaseModel):
    businesses: List[BusinessWithRelations] = Field(..., description="Requested page of ranked businesses")
    total: int = Field(..., ge=0, description="Matches before pagination")
    performance: PerformanceInfo

class NearbyBusiness(BusinessWithRelations):
    distance_km: float
    distance_miles: float

class NearbyResult(BaseModel):
    businesses: List[NearbyBusiness]
    performance: PerformanceInfo

class CategorySearchResult(BaseModel):
    businesses: List[BusinessWithRelations]
    total: int = Field(..., ge=0)
    category: Category
    performance: PerformanceInfo

class TrendingResult(BaseModel):
    businesses: List[BusinessWithRelations]
    timeframe: Timeframe
    performance: PerformanceInfo

class CacheStatsResponse(BaseModel):
    backend: str
    hits: int
    misses: int
    evictions: int
    size: Optional[int] = None

# Health check schema
class HealthResponse(BaseModel):
    status: str = Field(..., description="Service status")
    database: str = Field(..., description="Database connection status")
    services: Dict[str, str] = Field(..., description="Individual service statuses")

class CachedResultSet(BaseModel):
    """What the search cache stores: the full ranked list before pagination"""
    businesses: List[BusinessWithRelations]
    total: int
    category: Optional[Category] = None
    distances_km: Dict[str, float] = {}
