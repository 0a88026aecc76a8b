"""Result ordering.

Every mode is a total order: ties fall through to documented secondary keys and
finally to the business id, so the same input always ranks the same way.
After sorting, the first sponsored business in that order is moved to the top.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple
import logging

from app.models.business import Business
from app.models.schemas import SortMode
from app.search import geo, trending

logger = logging.getLogger(__name__)


@dataclass
class RankContext:
    point: Optional[Tuple[float, float]] = None
    # business id -> position returned by the full-text backend
    relevance_order: Optional[Dict[str, int]] = None
    # business id -> reviews inside the trending window
    recent_review_counts: Dict[str, int] = field(default_factory=dict)


def _timestamp(value: Optional[datetime]) -> float:
    return value.timestamp() if value is not None else 0.0


class RankingEngine:
    def rank(
        self,
        businesses: Sequence[Business],
        sort_mode: SortMode = SortMode.RELEVANCE,
        context: Optional[RankContext] = None,
    ) -> List[Business]:
        context = context or RankContext()
        sort_mode = SortMode(sort_mode)

        if sort_mode == SortMode.DISTANCE and context.point is None:
            logger.debug("Distance sort without a search point, using relevance")
            sort_mode = SortMode.RELEVANCE

        ranked = sorted(businesses, key=self._key(sort_mode, context))
        return self.pin_sponsored(ranked)

    @staticmethod
    def pin_sponsored(ranked: List[Business]) -> List[Business]:
        for index, business in enumerate(ranked):
            if business.sponsored:
                if index:
                    ranked.insert(0, ranked.pop(index))
                break
        return ranked

    def _key(self, sort_mode: SortMode, context: RankContext):
        if sort_mode == SortMode.RELEVANCE:
            if context.relevance_order:
                order = context.relevance_order
                unranked = len(order)
                return lambda b: (order.get(b.id, unranked), b.id)
            return lambda b: (not b.featured, -b.rating, -b.review_count, b.id)

        if sort_mode == SortMode.RATING_DESC:
            return lambda b: (-b.rating, -b.review_count, b.id)
        if sort_mode == SortMode.RATING_ASC:
            return lambda b: (b.rating, -b.review_count, b.id)

        if sort_mode == SortMode.PRICE_ASC:
            return lambda b: (b.price_tier is None, b.price_tier or 0, -b.rating, b.id)
        if sort_mode == SortMode.PRICE_DESC:
            return lambda b: (b.price_tier is None, -(b.price_tier or 0), -b.rating, b.id)

        if sort_mode == SortMode.DISTANCE:
            center = context.point

            def by_distance(b):
                point = geo.business_point(b)
                if point is None:
                    return (float("inf"), b.id)
                return (geo.distance(center[0], center[1], point[0], point[1]), b.id)

            return by_distance

        if sort_mode == SortMode.TRENDING:
            counts = context.recent_review_counts
            return lambda b: (-trending.score(b, counts.get(b.id, 0)), b.id)

        if sort_mode == SortMode.NEWEST:
            return lambda b: (b.created_at is None, -_timestamp(b.created_at), b.id)
        if sort_mode == SortMode.OLDEST:
            return lambda b: (b.created_at is None, _timestamp(b.created_at), b.id)

        if sort_mode == SortMode.REVIEWS:
            return lambda b: (-b.review_count, -b.rating, b.id)
        if sort_mode == SortMode.NAME:
            return lambda b: ((b.name or "").lower(), b.id)

        raise ValueError(f"Unsupported sort mode: {sort_mode}")

