"""Conjunctive filter pipeline applied to candidate businesses.

Steps run in a fixed order and each one only sees what the previous step kept.
A step whose criterion is not set in the query is skipped. The scan filter sent
to the store is derived from the same steps so the SQL path and the in-process
path agree on what matches.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence, Tuple
import re
import logging

from app.core.config import settings
from app.core.exceptions import InvalidQueryError
from app.models.business import Business, BusinessStatus
from app.models.schemas import SearchQuery
from app.search import geo
from app.search.hours import is_open_at
from app.search.location import NO_LOCATION, ResolvedLocation, in_bounds, matches_text, resolve_offline

logger = logging.getLogger(__name__)

Predicate = Callable[[Business], bool]

_PUNCTUATION = re.compile(r"[^\w\s]")
_SPACES = re.compile(r"\s+")


def normalize_text(value: Optional[str]) -> str:
    if not value:
        return ""
    return _SPACES.sub(" ", _PUNCTUATION.sub("", value.lower())).strip()


@dataclass
class FilterContext:
    location: ResolvedLocation = NO_LOCATION
    now: Optional[datetime] = None
    # True when the full-text backend already matched the free text
    text_prefiltered: bool = False


@dataclass
class ScanFilter:
    """Subset of the pipeline the store can evaluate in SQL"""

    verified: Optional[bool] = None
    featured: Optional[bool] = None
    min_rating: Optional[float] = None
    price_tiers: List[int] = field(default_factory=list)
    category_slug: Optional[str] = None
    bounds: Optional[Tuple[float, float, float, float]] = None  # north, south, east, west
    location_text: Optional[str] = None
    name_text: Optional[str] = None


class FilterPipeline:
    def __init__(self, default_radius_miles: float = None, default_timezone: str = None):
        self.default_radius_miles = (
            settings.DEFAULT_SEARCH_RADIUS_MILES if default_radius_miles is None else default_radius_miles
        )
        self.default_timezone = default_timezone or settings.DEFAULT_TIMEZONE
        self.steps = [
            ("status", self._status),
            ("verified", self._verified),
            ("featured", self._featured),
            ("rating", self._rating),
            ("open_now", self._open_now),
            ("price_tier", self._price_tier),
            ("category", self._category),
            ("free_text", self._free_text),
            ("geo", self._geo),
        ]

    def apply(
        self,
        businesses: Sequence[Business],
        query: SearchQuery,
        context: Optional[FilterContext] = None,
    ) -> List[Business]:
        context = self._context(query, context)
        survivors = list(businesses)
        for name, build in self.steps:
            predicate = build(query, context)
            if predicate is None:
                continue
            before = len(survivors)
            survivors = [business for business in survivors if predicate(business)]
            logger.debug(f"Filter {name}: {before} -> {len(survivors)}")
        return survivors

    def predicates(self, query: SearchQuery, context: Optional[FilterContext] = None) -> List[Tuple[str, Predicate]]:
        """Active (name, predicate) pairs for the query, in pipeline order"""
        context = self._context(query, context)
        active = []
        for name, build in self.steps:
            predicate = build(query, context)
            if predicate is not None:
                active.append((name, predicate))
        return active

    def to_scan_filter(self, query: SearchQuery, context: Optional[FilterContext] = None) -> ScanFilter:
        context = self._context(query, context)
        filters = query.filters
        location = context.location

        bounds = None
        if location.bounds is not None:
            box = location.bounds
            bounds = (box.north, box.south, box.east, box.west)
        elif location.point is not None:
            bounds = geo.bounding_box(location.point, location.radius_miles)

        name_text = None
        if query.free_text and not context.text_prefiltered:
            name_text = query.free_text.strip().lower()

        return ScanFilter(
            verified=filters.verified,
            featured=filters.featured,
            min_rating=filters.min_rating,
            price_tiers=list(filters.price_tiers),
            category_slug=query.category_slug,
            bounds=bounds,
            location_text=location.text,
            name_text=name_text,
        )

    def _context(self, query: SearchQuery, context: Optional[FilterContext]) -> FilterContext:
        self._check_filters(query)
        if context is None:
            context = FilterContext(location=resolve_offline(query.location, self.default_radius_miles))
        if context.now is None:
            context.now = datetime.now(timezone.utc)
        return context

    def _check_filters(self, query: SearchQuery) -> None:
        filters = query.filters
        if filters.min_rating is not None and not 0 <= filters.min_rating <= 5:
            raise InvalidQueryError(f"minRating must be between 0 and 5, got {filters.min_rating}")
        for tier in filters.price_tiers:
            if not 1 <= tier <= 4:
                raise InvalidQueryError(f"Price tier must be between 1 and 4, got {tier}")

    # Steps. Each returns a predicate, or None when the query does not use it.

    def _status(self, query, context) -> Predicate:
        return lambda b: b.status == BusinessStatus.PUBLISHED

    def _verified(self, query, context):
        wanted = query.filters.verified
        if wanted is None:
            return None
        return lambda b: b.verified == wanted

    def _featured(self, query, context):
        wanted = query.filters.featured
        if wanted is None:
            return None
        return lambda b: b.featured == wanted

    def _rating(self, query, context):
        threshold = query.filters.min_rating
        if threshold is None:
            return None
        return lambda b: b.rating >= threshold

    def _open_now(self, query, context):
        if not query.filters.open_now:
            return None
        now = context.now
        return lambda b: is_open_at(b, now, self.default_timezone)

    def _price_tier(self, query, context):
        tiers = set(query.filters.price_tiers)
        if not tiers:
            return None
        return lambda b: b.price_tier in tiers

    def _category(self, query, context):
        slug = query.category_slug
        if not slug:
            return None
        slug = slug.strip().lower()
        return lambda b: any(c.slug.lower() == slug for c in b.categories)

    def _free_text(self, query, context):
        if context.text_prefiltered:
            return None
        term = normalize_text(query.free_text)
        if not term:
            return None
        return lambda b: term in normalize_text(b.name)

    def _geo(self, query, context):
        location = context.location
        if location.bounds is not None:
            bounds = location.bounds
            return lambda b: b.location.has_coordinates and in_bounds(bounds, b.location.latitude, b.location.longitude)

        if location.point is not None:
            center, radius = location.point, location.radius_miles

            def within(b: Business) -> bool:
                point = geo.business_point(b)
                return point is not None and geo.is_within_radius(center, point, radius)

            return within

        if location.text:
            text = location.text
            return lambda b: matches_text(b, text)

        return None
