import json

import pytest

from civic_alerts.common.errors import UnresolvedAddressError
from civic_alerts.common.models import ExtractedData, GeoPoint, Pin, StreetSection, Timespan
from civic_alerts.pipeline.geometry import build_feature_collection, build_incident_geometry, dump_geojson

SPAN = Timespan(start="05.03.2025 10:00", end="05.03.2025 16:00")

EXTRACTED = ExtractedData(
    pins=(Pin(address="Opalchenska 1", timespans=(SPAN,)),),
    streets=(StreetSection(street="Vitosha", from_="Patriarh Evtimiy", to="Alabin", timespans=(SPAN,)),),
)

POINTS = {
    "Opalchenska 1": GeoPoint(lat=42.6990, lng=23.3100),
    "Patriarh Evtimiy": GeoPoint(lat=42.6900, lng=23.3190),
    "Alabin": GeoPoint(lat=42.6950, lng=23.3210),
}


def test_feature_order_is_pins_then_streets():
    collection = build_feature_collection(EXTRACTED, POINTS)

    assert collection["type"] == "FeatureCollection"
    assert [feature["geometry"]["type"] for feature in collection["features"]] == ["Point", "LineString"]
    pin, street = collection["features"]
    assert pin["geometry"]["coordinates"] == [23.3100, 42.6990]
    assert pin["properties"] == {
        "address": "Opalchenska 1",
        "timespans": [{"start": "05.03.2025 10:00", "end": "05.03.2025 16:00"}],
    }
    assert street["properties"]["street"] == "Vitosha"
    assert street["properties"]["from"] == "Patriarh Evtimiy"
    assert street["properties"]["to"] == "Alabin"


def test_street_without_path_falls_back_to_straight_line():
    collection = build_feature_collection(EXTRACTED, POINTS, paths={})
    assert collection["features"][1]["geometry"]["coordinates"] == [[23.3190, 42.6900], [23.3210, 42.6950]]


def test_street_uses_resolved_path():
    path = [POINTS["Patriarh Evtimiy"], GeoPoint(lat=42.6920, lng=23.3200), POINTS["Alabin"]]
    collection = build_feature_collection(EXTRACTED, POINTS, paths={("Vitosha", "Patriarh Evtimiy", "Alabin"): path})
    assert len(collection["features"][1]["geometry"]["coordinates"]) == 3


def test_missing_addresses_are_each_named_once():
    extracted = ExtractedData(
        pins=(Pin(address="Missing 1"), Pin(address="Opalchenska 1"), Pin(address="Missing 1")),
        streets=(StreetSection(street="Vitosha", from_="Missing 1", to="Nowhere"),),
    )
    with pytest.raises(UnresolvedAddressError) as excinfo:
        build_feature_collection(extracted, POINTS)

    assert excinfo.value.addresses == ["Missing 1", "Nowhere"]
    assert "Failed to geocode 2 addresses" in str(excinfo.value)


def test_empty_extraction_gives_empty_collection():
    assert build_feature_collection(ExtractedData(), {}) == {"type": "FeatureCollection", "features": []}


def test_dump_geojson_is_compact_and_sorted():
    text = dump_geojson(build_feature_collection(EXTRACTED, POINTS))
    assert json.loads(text)["features"][0]["properties"]["address"] == "Opalchenska 1"
    assert text.startswith('{"features":')


CENTER = ("42.70", "23.32")


def _pt(lat, lng):
    return GeoPoint(lat=lat, lng=lng)


def test_incident_without_points_is_center_point():
    assert build_incident_geometry(*CENTER, []) == {"type": "Point", "coordinates": [23.32, 42.70]}


@pytest.mark.parametrize("count", [1, 2])
def test_incident_with_one_or_two_points_is_multipoint_in_order(count):
    points = [_pt(42.71, 23.31), _pt(42.69, 23.33)][:count]
    geometry = build_incident_geometry(*CENTER, points)
    assert geometry["type"] == "MultiPoint"
    assert geometry["coordinates"] == [point.to_position() for point in points]


def test_incident_with_many_points_is_closed_hull():
    points = [_pt(42.70, 23.30), _pt(42.72, 23.32), _pt(42.70, 23.34), _pt(42.68, 23.32), _pt(42.70, 23.32)]
    geometry = build_incident_geometry(*CENTER, points)

    ring = geometry["coordinates"][0]
    assert geometry["type"] == "Polygon"
    assert ring[0] == ring[-1]
    assert len(ring) == 5
    assert [23.32, 42.70] not in ring


def test_incident_with_collinear_points_keeps_degenerate_ring():
    points = [_pt(42.70, 23.30), _pt(42.70, 23.31), _pt(42.70, 23.32)]
    geometry = build_incident_geometry(*CENTER, points)

    ring = geometry["coordinates"][0]
    assert geometry["type"] == "Polygon"
    assert ring[0] == ring[-1]
    assert len(ring) > 3


@pytest.mark.parametrize("lat, lon", [("abc", "23.3"), (None, 23.3), ("42.7", float("nan"))])
def test_incident_with_unparseable_center_is_none(lat, lon):
    assert build_incident_geometry(lat, lon, [_pt(42.7, 23.3)]) is None
