"""Turns the `location` part of a query into something the filters can test.

A location arrives as a bounding box, a point, or free text. Free text may be a
zip code (geocoded through the store), a "lat,lng" pair, or a place name that is
matched against the business address fields.
"""
from dataclasses import dataclass
from typing import Optional, Tuple
import math
import re
import logging

from app.core.exceptions import InvalidQueryError
from app.models.schemas import BoundingBox, GeoPoint
from app.search import geo

logger = logging.getLogger(__name__)

ZIP_PATTERN = re.compile(r"^(\d{5})(?:-\d{4})?$")
LAT_LNG_PATTERN = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*,\s*(-?\d+(?:\.\d+)?)\s*$")


@dataclass(frozen=True)
class ResolvedLocation:
    point: Optional[Tuple[float, float]] = None
    radius_miles: Optional[float] = None
    bounds: Optional[BoundingBox] = None
    text: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.point is None and self.bounds is None and not self.text


NO_LOCATION = ResolvedLocation()


def validate_bounds(bounds: BoundingBox) -> BoundingBox:
    values = (bounds.north, bounds.south, bounds.east, bounds.west)
    if not all(math.isfinite(v) for v in values):
        raise InvalidQueryError("Bounding box has non-finite edges")
    if not (-90 <= bounds.south <= 90 and -90 <= bounds.north <= 90):
        raise InvalidQueryError("Bounding box latitude out of range")
    if not (-180 <= bounds.west <= 180 and -180 <= bounds.east <= 180):
        raise InvalidQueryError("Bounding box longitude out of range")
    if bounds.south > bounds.north:
        raise InvalidQueryError("Bounding box south edge is north of its north edge")
    return bounds


def in_bounds(bounds: BoundingBox, lat: float, lng: float) -> bool:
    if not bounds.south <= lat <= bounds.north:
        return False
    if bounds.west <= bounds.east:
        return bounds.west <= lng <= bounds.east
    # west > east: the box wraps across the antimeridian
    return lng >= bounds.west or lng <= bounds.east


def _point(lat: float, lng: float, radius_miles: Optional[float], default_radius: float) -> ResolvedLocation:
    # Raises InvalidCoordinate for out-of-range input
    geo.distance(lat, lng, lat, lng)
    radius = default_radius if radius_miles is None else radius_miles
    return ResolvedLocation(point=(lat, lng), radius_miles=geo.check_radius(radius))


def resolve_offline(location, default_radius: float) -> ResolvedLocation:
    """Resolve without touching the store; zip codes stay as text"""
    if location is None:
        return NO_LOCATION
    if isinstance(location, BoundingBox):
        return ResolvedLocation(bounds=validate_bounds(location))
    if isinstance(location, GeoPoint):
        return _point(location.lat, location.lng, location.radius_miles, default_radius)

    text = str(location).strip()
    if not text:
        return NO_LOCATION
    match = LAT_LNG_PATTERN.match(text)
    if match:
        return _point(float(match.group(1)), float(match.group(2)), None, default_radius)
    return ResolvedLocation(text=text.lower())


async def resolve(location, store, default_radius: float) -> ResolvedLocation:
    """Like resolve_offline, but geocodes zip codes through the store"""
    resolved = resolve_offline(location, default_radius)
    if resolved.text is None:
        return resolved

    match = ZIP_PATTERN.match(resolved.text)
    if not match:
        return resolved

    coordinates = await store.get_zip_coordinates(match.group(1))
    if coordinates is None:
        logger.info(f"Zip {match.group(1)} not geocoded, matching it as text")
        return ResolvedLocation(text=match.group(1))
    return _point(coordinates[0], coordinates[1], None, default_radius)


def matches_text(business, text: str) -> bool:
    location = business.location
    for value in (location.city, location.state, location.address, location.zip):
        if value and text in value.lower():
            return True
    return False
