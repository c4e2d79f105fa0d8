"""Tests for coordinate extraction, distance and travel-time estimates."""

import pytest

from perishable_alloc.models import GeoPoint
from perishable_alloc.network import (
    CoordinateExtractionError,
    estimate_travel_hours,
    extract_coordinates,
    haversine_distance_km,
)


class TestExtractCoordinates:
    """Test the accepted coordinate encodings."""

    def test_lat_lon_fields(self):
        assert extract_coordinates({"lat": 17.4, "lon": 78.5}) == GeoPoint(lat=17.4, lon=78.5)

    def test_latitude_longitude_fields(self):
        point = extract_coordinates({"latitude": "17.4", "longitude": "78.5"})
        assert point == GeoPoint(lat=17.4, lon=78.5)

    def test_geojson_point_under_location(self):
        """GeoJSON stores coordinates as [lon, lat]."""
        record = {"location": {"type": "Point", "coordinates": [78.5, 17.4]}}
        assert extract_coordinates(record) == GeoPoint(lat=17.4, lon=78.5)

    def test_geojson_point_under_centroid(self):
        record = {"centroid": {"type": "Point", "coordinates": [77.6, 12.9]}}
        assert extract_coordinates(record) == GeoPoint(lat=12.9, lon=77.6)

    def test_direct_fields_take_precedence_over_geojson(self):
        record = {"lat": 1.0, "lon": 2.0, "location": {"type": "Point", "coordinates": [9.0, 9.0]}}
        assert extract_coordinates(record) == GeoPoint(lat=1.0, lon=2.0)

    def test_missing_coordinates_raise(self):
        with pytest.raises(CoordinateExtractionError):
            extract_coordinates({"name": "nowhere"})

    def test_non_point_geometry_raises(self):
        with pytest.raises(CoordinateExtractionError):
            extract_coordinates({"location": {"type": "Polygon", "coordinates": []}})

    def test_unparseable_values_raise(self):
        with pytest.raises(CoordinateExtractionError):
            extract_coordinates({"lat": "north", "lon": 78.5})

    def test_out_of_range_latitude_raises(self):
        with pytest.raises(CoordinateExtractionError):
            extract_coordinates({"lat": 120.0, "lon": 78.5})


class TestHaversine:
    """Test great-circle distance."""

    def test_zero_for_identical_points(self):
        p = GeoPoint(lat=17.0, lon=78.0)
        assert haversine_distance_km(p, p) == 0.0

    def test_one_degree_of_latitude(self):
        a = GeoPoint(lat=0.0, lon=0.0)
        b = GeoPoint(lat=1.0, lon=0.0)
        assert haversine_distance_km(a, b) == pytest.approx(111.195, abs=0.01)

    def test_symmetric(self):
        a = GeoPoint(lat=17.385, lon=78.4867)
        b = GeoPoint(lat=12.9716, lon=77.5946)
        assert haversine_distance_km(a, b) == pytest.approx(haversine_distance_km(b, a))
        assert haversine_distance_km(a, b) == pytest.approx(500.0, abs=10.0)


class TestTravelHours:
    """Test driving time plus rest breaks."""

    @pytest.mark.parametrize("distance_km, expected", [
        (0.0, 0.0),
        (100.0, 2.5),
        (160.0, 4.5),
        (200.0, 5.5),
        (320.0, 9.0),
    ])
    def test_default_speed_and_breaks(self, distance_km, expected):
        assert estimate_travel_hours(distance_km) == pytest.approx(expected)

    def test_custom_speed(self):
        assert estimate_travel_hours(120.0, avg_speed_kmh=60.0) == pytest.approx(2.0)
