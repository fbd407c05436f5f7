import math

import pytest

from civic_alerts.common.geo import (
    LocalProjection,
    closest_point_between_segments,
    geodesic_distance_m,
    nearest_on_polyline,
    parse_coordinate,
    point_in_ring,
)
from civic_alerts.common.models import Bounds, GeoPoint

SOFIA = GeoPoint(lat=42.6977, lng=23.3219)


def test_geodesic_distance_matches_known_scale():
    north = GeoPoint(lat=SOFIA.lat + 0.01, lng=SOFIA.lng)
    assert geodesic_distance_m(SOFIA, SOFIA) == 0
    assert geodesic_distance_m(SOFIA, north) == pytest.approx(1111, rel=0.01)


@pytest.mark.parametrize("value", [None, "abc", float("nan"), float("inf"), True, [1]])
def test_parse_coordinate_rejects_non_numeric(value):
    assert parse_coordinate(value) is None


def test_parse_coordinate_accepts_numeric_strings():
    assert parse_coordinate("42.5") == 42.5
    assert parse_coordinate(23) == 23.0


def test_local_projection_round_trips_and_keeps_center_distances():
    projection = LocalProjection(SOFIA)
    other = GeoPoint(lat=42.7012, lng=23.3301)

    assert projection.to_xy(SOFIA) == pytest.approx((0.0, 0.0), abs=1e-6)
    x, y = projection.to_xy(other)
    assert math.hypot(x, y) == pytest.approx(geodesic_distance_m(SOFIA, other), abs=0.01)
    back = projection.to_point((x, y))
    assert back.lat == pytest.approx(other.lat, abs=1e-6)
    assert back.lng == pytest.approx(other.lng, abs=1e-6)


def test_nearest_on_polyline_reports_segment_and_fraction():
    line = [(0.0, 0.0), (10.0, 0.0), (10.0, 10.0)]
    distance, index, t, point = nearest_on_polyline((12.0, 5.0), line)

    assert distance == pytest.approx(2.0)
    assert index == 1
    assert t == pytest.approx(0.5)
    assert point == pytest.approx((10.0, 5.0))


def test_closest_point_between_crossing_segments_is_the_crossing():
    distance, point = closest_point_between_segments((-5.0, 0.0), (5.0, 0.0), (0.0, -5.0), (0.0, 5.0))
    assert distance == 0.0
    assert point == pytest.approx((0.0, 0.0))


def test_closest_point_between_parallel_segments():
    distance, point = closest_point_between_segments((0.0, 0.0), (10.0, 0.0), (12.0, 3.0), (20.0, 3.0))
    assert distance == pytest.approx(math.hypot(2.0, 3.0))
    assert point == pytest.approx((10.0, 0.0))


def test_point_in_ring():
    ring = [(-1.0, -1.0), (1.0, -1.0), (1.0, 1.0), (-1.0, 1.0), (-1.0, -1.0)]
    assert point_in_ring((0.0, 0.0), ring)
    assert not point_in_ring((2.0, 0.0), ring)


def test_bounds_contains_and_overpass_bbox():
    bounds = Bounds(south=42.605, west=23.188, north=42.788, east=23.528)
    assert bounds.contains(SOFIA)
    assert not bounds.contains(GeoPoint(lat=42.1354, lng=24.7453))
    assert bounds.overpass_bbox() == "42.605,23.188,42.788,23.528"
