"""Great-circle distance and coordinate parsing for GeoJSON site locations."""

import math
from dataclasses import dataclass
from typing import Any

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class Coordinate:
    longitude: float
    latitude: float


def distance_km(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance between two points in kilometers.

    NaN components propagate to a NaN result; callers validate coordinates.
    """
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    d_lat = math.radians(b.latitude - a.latitude)
    d_lon = math.radians(b.longitude - a.longitude)

    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return None
    try:
        number = float(value)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def make_coordinate(longitude: Any, latitude: Any) -> Coordinate | None:
    """Build a Coordinate, or None when either component is missing or out of range."""
    lng = _as_float(longitude)
    lat = _as_float(latitude)
    if lng is None or lat is None:
        return None
    if not (-180.0 <= lng <= 180.0 and -90.0 <= lat <= 90.0):
        return None
    return Coordinate(longitude=lng, latitude=lat)


def coordinate_from_location(location: Any) -> Coordinate | None:
    """Parse a GeoJSON point ({"coordinates": [lng, lat]}) into a Coordinate."""
    if not isinstance(location, dict):
        return None
    coords = location.get("coordinates")
    if not isinstance(coords, (list, tuple)) or len(coords) < 2:
        return None
    return make_coordinate(coords[0], coords[1])
