import pytest

from civic_alerts.common.models import ExtractedData, GeoPoint, Pin, StreetSection, Timespan
from civic_alerts.pipeline.geometry import build_feature_collection, dump_geojson


def _inputs():
    span = Timespan(start="05.03.2025 10:00", end="05.03.2025 16:00")
    extracted = ExtractedData(
        pins=(Pin(address="ул. „Опълченска“ 1", timespans=(span,)), Pin(address="Alabin 5")),
        streets=(StreetSection(street="Vitosha", from_="Alabin 5", to="NDK", timespans=(span,)),),
    )
    # Insertion order of the map must not leak into the output.
    points = {
        "NDK": GeoPoint(lat=42.6847, lng=23.3189),
        "Alabin 5": GeoPoint(lat=42.6955, lng=23.3215),
        "ул. „Опълченска“ 1": GeoPoint(lat=42.6975, lng=23.3094),
    }
    return extracted, points


@pytest.mark.regression
def test_feature_collection_is_byte_stable_for_same_inputs():
    extracted, points = _inputs()
    reordered = dict(reversed(list(points.items())))

    first = dump_geojson(build_feature_collection(extracted, points))
    second = dump_geojson(build_feature_collection(extracted, reordered))

    assert first.encode("utf-8") == second.encode("utf-8")
    assert "Опълченска" in first


@pytest.mark.regression
def test_feature_count_matches_pins_plus_streets():
    extracted, points = _inputs()
    collection = build_feature_collection(extracted, points)
    assert len(collection["features"]) == len(extracted.pins) + len(extracted.streets)
