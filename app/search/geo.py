"""Great-circle distance helpers.

All distances are in miles unless a name says otherwise.
"""
import math
from typing import Optional, Tuple

from app.core.exceptions import InvalidCoordinate, InvalidQueryError

EARTH_RADIUS_MILES = 3959.0
KM_PER_MILE = 1.609344

Coordinate = Tuple[float, float]


def km_to_miles(km: float) -> float:
    return km / KM_PER_MILE


def miles_to_km(miles: float) -> float:
    return miles * KM_PER_MILE


def _check(lat: float, lng: float) -> None:
    if lat is None or lng is None:
        raise InvalidCoordinate("Coordinate is missing")
    if not (math.isfinite(lat) and math.isfinite(lng)):
        raise InvalidCoordinate(f"Non-finite coordinate: ({lat}, {lng})")
    if not -90 <= lat <= 90 or not -180 <= lng <= 180:
        raise InvalidCoordinate(f"Coordinate out of range: ({lat}, {lng})")


def distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Haversine distance in miles between two points"""
    _check(lat1, lng1)
    _check(lat2, lng2)

    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_MILES * c


def check_radius(radius_miles: float) -> float:
    if radius_miles is None or not math.isfinite(radius_miles) or radius_miles < 0:
        raise InvalidQueryError(f"Invalid search radius: {radius_miles}")
    return radius_miles


def is_within_radius(center: Coordinate, point: Coordinate, radius_miles: float) -> bool:
    """True iff point lies within radius_miles of center, boundary included"""
    check_radius(radius_miles)
    return distance(center[0], center[1], point[0], point[1]) <= radius_miles


def bounding_box(center: Coordinate, radius_miles: float) -> Tuple[float, float, float, float]:
    """(north, south, east, west) box enclosing the radius circle.

    Used only to narrow store scans; the exact radius check still runs afterwards.
    Near the poles the box widens to the full longitude range.
    """
    check_radius(radius_miles)
    lat, lng = center
    _check(lat, lng)

    d_lat = math.degrees(radius_miles / EARTH_RADIUS_MILES)
    north = min(90.0, lat + d_lat)
    south = max(-90.0, lat - d_lat)

    cos_lat = math.cos(math.radians(lat))
    if north >= 90.0 or south <= -90.0 or cos_lat < 1e-9:
        return north, south, 180.0, -180.0

    d_lng = math.degrees(radius_miles / (EARTH_RADIUS_MILES * cos_lat))
    if d_lng >= 180.0:
        return north, south, 180.0, -180.0
    east = lng + d_lng
    west = lng - d_lng
    # Wrap across the antimeridian; callers treat west > east as a wrapped box
    if east > 180.0:
        east -= 360.0
    if west < -180.0:
        west += 360.0
    return north, south, east, west


def business_point(business) -> Optional[Coordinate]:
    location = business.location
    if not location.has_coordinates:
        return None
    return location.latitude, location.longitude


def serves_location(business, point: Coordinate) -> bool:
    """Whether point falls inside the business's service-area circle"""
    origin = business_point(business)
    if origin is None or not business.service_area_radius:
        return False
    return is_within_radius(origin, point, business.service_area_radius)
