"""Coordinate normalization, great-circle distance and travel-time estimates.

Distance is a straight-line geodesic approximation; no road routing is done.
"""

import math
from typing import Any, Mapping, Optional, Sequence

from perishable_alloc.constants import (
    DEFAULT_AVG_SPEED_KMH,
    EARTH_RADIUS_KM,
    REST_BREAK_EVERY_HOURS,
    REST_BREAK_HOURS,
)
from perishable_alloc.models.node import GeoPoint


class CoordinateExtractionError(ValueError):
    """Raised when a record carries no recognizable coordinates."""


def _point(lat: Any, lon: Any) -> GeoPoint:
    try:
        return GeoPoint(lat=float(lat), lon=float(lon))
    except (TypeError, ValueError) as e:
        raise CoordinateExtractionError(f"Invalid coordinates lat={lat!r}, lon={lon!r}: {e}") from e


def _geojson_point(value: Any) -> Optional[GeoPoint]:
    """Read a GeoJSON Point; coordinates are ordered [lon, lat]."""
    if not isinstance(value, Mapping) or value.get("type") != "Point":
        return None
    coordinates = value.get("coordinates")
    if not isinstance(coordinates, Sequence) or isinstance(coordinates, str) or len(coordinates) != 2:
        return None
    return _point(coordinates[1], coordinates[0])


def extract_coordinates(record: Mapping[str, Any]) -> GeoPoint:
    """
    Normalize a record's location into a ``GeoPoint``.

    Recognized encodings, in order:
    1. ``lat`` / ``lon`` fields
    2. ``latitude`` / ``longitude`` fields
    3. GeoJSON Point under ``location``
    4. GeoJSON Point under ``centroid``

    Args:
        record: Raw node document

    Returns:
        Canonical coordinates

    Raises:
        CoordinateExtractionError: If no encoding matches or values are invalid
    """
    if not isinstance(record, Mapping):
        raise CoordinateExtractionError(f"Unable to extract coordinates from {type(record).__name__}")

    if record.get("lat") is not None and record.get("lon") is not None:
        return _point(record["lat"], record["lon"])
    if record.get("latitude") is not None and record.get("longitude") is not None:
        return _point(record["latitude"], record["longitude"])

    for key in ("location", "centroid"):
        point = _geojson_point(record.get(key))
        if point is not None:
            return point

    raise CoordinateExtractionError("Unable to extract coordinates from record")


def haversine_distance_km(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance in km between two points."""
    phi1, phi2 = math.radians(a.lat), math.radians(b.lat)
    dphi = math.radians(b.lat - a.lat)
    dlambda = math.radians(b.lon - a.lon)
    x = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(x), math.sqrt(1 - x))


def estimate_travel_hours(
    distance_km: float,
    avg_speed_kmh: float = DEFAULT_AVG_SPEED_KMH,
    rest_break_every_hours: float = REST_BREAK_EVERY_HOURS,
    rest_break_hours: float = REST_BREAK_HOURS,
) -> float:
    """
    Driving time plus rest breaks.

    Example:
        200 km at 40 km/h -> 5h driving + one 0.5h break = 5.5h
    """
    driving = max(0.0, distance_km or 0.0) / avg_speed_kmh
    breaks = math.floor(driving / rest_break_every_hours) * rest_break_hours
    return driving + breaks
