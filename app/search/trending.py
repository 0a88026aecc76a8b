"""Trending score: a tunable weighted sum, not a validated model.

score = recent_reviews * RECENT_REVIEW_WEIGHT
      + rating * RATING_WEIGHT
      + (FEATURED_FACTOR if featured else BASE_FACTOR) * FEATURED_WEIGHT
"""
from datetime import datetime, timedelta

from app.models.schemas import Timeframe

RECENT_REVIEW_WEIGHT = 0.6
RATING_WEIGHT = 0.3
FEATURED_WEIGHT = 0.1
FEATURED_FACTOR = 2
BASE_FACTOR = 1

TIMEFRAME_DAYS = {
    Timeframe.DAY: 1,
    Timeframe.WEEK: 7,
    Timeframe.MONTH: 30,
}


def score(business, recent_review_count: int) -> float:
    boost = FEATURED_FACTOR if business.featured else BASE_FACTOR
    return (
        max(recent_review_count, 0) * RECENT_REVIEW_WEIGHT
        + (business.rating or 0.0) * RATING_WEIGHT
        + boost * FEATURED_WEIGHT
    )


def timeframe_start(timeframe: Timeframe, now: datetime) -> datetime:
    return now - timedelta(days=TIMEFRAME_DAYS[Timeframe(timeframe)])
