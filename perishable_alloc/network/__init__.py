"""Geographic helpers for distance-based warehouse ranking."""

from .geo import (
    CoordinateExtractionError,
    estimate_travel_hours,
    extract_coordinates,
    haversine_distance_km,
)

__all__ = [
    "CoordinateExtractionError",
    "estimate_travel_hours",
    "extract_coordinates",
    "haversine_distance_km",
]
