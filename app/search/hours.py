from datetime import datetime, time, timedelta, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import logging

from app.models.business import WEEKDAYS, HoursWindow

logger = logging.getLogger(__name__)


@lru_cache(maxsize=256)
def _zone(name: str):
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {name!r}, using UTC")
        return timezone.utc


def local_time(business, now: datetime, default_timezone: str = "UTC") -> datetime:
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(_zone(business.timezone or default_timezone))


def _window(business, weekday: str):
    window = business.hours.get(weekday)
    return window if isinstance(window, HoursWindow) else None


def is_open_at(business, when: datetime, default_timezone: str = "UTC") -> bool:
    """Whether the business is open at `when`.

    Windows include both ends. A window whose close is not after its open
    (22:00-02:00) runs into the following day. A missing or "closed" day is closed.
    """
    local = local_time(business, when, default_timezone)
    clock = time(local.hour, local.minute)

    today = _window(business, WEEKDAYS[local.weekday()])
    if today is not None:
        if today.crosses_midnight:
            if clock >= today.open:
                return True
        elif today.open <= clock <= today.close:
            return True

    yesterday = _window(business, WEEKDAYS[(local - timedelta(days=1)).weekday()])
    if yesterday is not None and yesterday.crosses_midnight:
        return clock <= yesterday.close

    return False
