from datetime import datetime, timezone

import pytest

from app.search.hours import is_open_at
from conftest import make_business

# 2026-10-19 is a Monday
MONDAY_NOON = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def at(day, hour, minute=0):
    return datetime(2026, 10, day, hour, minute, tzinfo=timezone.utc)


def test_open_inside_window():
    cafe = make_business("c1", hours={"monday": {"open": "08:00", "close": "17:00"}})
    assert is_open_at(cafe, MONDAY_NOON)


@pytest.mark.parametrize("hour, minute", [(8, 0), (17, 0)])
def test_window_edges_are_open(hour, minute):
    cafe = make_business("c1", hours={"monday": {"open": "08:00", "close": "17:00"}})
    assert is_open_at(cafe, at(19, hour, minute))


def test_closed_outside_window():
    cafe = make_business("c1", hours={"monday": {"open": "08:00", "close": "17:00"}})
    assert not is_open_at(cafe, at(19, 17, 1))


def test_missing_day_is_closed():
    cafe = make_business("c1", hours={"tuesday": {"open": "08:00", "close": "17:00"}})
    assert not is_open_at(cafe, MONDAY_NOON)


def test_closed_marker():
    cafe = make_business("c1", hours={"Monday": "Closed"})
    assert cafe.hours == {"monday": "closed"}
    assert not is_open_at(cafe, MONDAY_NOON)


def test_cross_midnight_window_runs_into_next_day():
    bar = make_business("b1", hours={"friday": {"open": "22:00", "close": "02:00"}})

    assert is_open_at(bar, at(16, 23, 30))      # Friday night
    assert is_open_at(bar, at(17, 1, 30))       # Saturday early morning
    assert is_open_at(bar, at(17, 2, 0))
    assert not is_open_at(bar, at(17, 3, 0))
    assert not is_open_at(bar, at(16, 21, 59))


def test_uses_business_timezone():
    # 12:00 UTC is 08:00 in New York during daylight saving time
    shop = make_business("s1", timezone="America/New_York", hours={"monday": {"open": "09:00", "close": "17:00"}})
    assert not is_open_at(shop, MONDAY_NOON)
    assert is_open_at(shop, at(19, 14, 0))
