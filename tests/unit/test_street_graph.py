import pytest

from civic_alerts.common.models import GeoPoint
from civic_alerts.common.text import normalise_street_name
from civic_alerts.streets.graph import StreetGraph, chain_polylines
from civic_alerts.streets.overpass import Way

CENTER = GeoPoint(lat=42.6977, lng=23.3219)


def _way(way_id, name, coords):
    return Way(way_id=way_id, name=name, coords=tuple(GeoPoint(lat=lat, lng=lng) for lat, lng in coords))


VITOSHA = [
    _way("way/1", "бул. Витоша", [(42.690, 23.320), (42.692, 23.320), (42.694, 23.320), (42.695, 23.320)]),
    # Stored against the direction of the first way.
    _way("way/2", "бул. Витоша", [(42.700, 23.320), (42.698, 23.320), (42.696, 23.320), (42.695, 23.320)]),
]
ALABIN = [_way("way/3", "ул. Алабин", [(42.695, 23.315), (42.695, 23.325)])]
FAR_AWAY = [_way("way/4", "ул. Далечна", [(42.750, 23.400), (42.751, 23.401)])]

WAYS = {"витоша": VITOSHA, "алабин": ALABIN, "далечна": FAR_AWAY}


class FakeFetcher:
    def __init__(self):
        self.calls = []

    def __call__(self, street_name):
        self.calls.append(street_name)
        return WAYS.get(normalise_street_name(street_name), [])


def _graph():
    fetcher = FakeFetcher()
    return StreetGraph(CENTER, fetch_ways=fetcher), fetcher


def test_chain_polylines_joins_reversed_pieces():
    chains = chain_polylines([[(0.0, 0.0), (10.0, 0.0)], [(20.0, 0.0), (10.0, 0.0)], [(50.0, 50.0), (60.0, 60.0)]])
    assert chains == [[(0.0, 0.0), (10.0, 0.0), (20.0, 0.0)], [(50.0, 50.0), (60.0, 60.0)]]


def test_chain_polylines_prepends_pieces():
    chains = chain_polylines([[(10.0, 0.0), (20.0, 0.0)], [(0.0, 0.0), (10.0, 0.0)]])
    assert chains == [[(0.0, 0.0), (10.0, 0.0), (20.0, 0.0)]]


def test_ways_are_chained_per_street():
    graph, _fetcher = _graph()
    chains = graph.chains("Витоша")
    assert len(chains) == 1
    assert len(chains[0]) == 7


def test_intersection_is_point_on_first_street():
    graph, _fetcher = _graph()
    point = graph.intersection("бул. „Витоша“", "ул. Алабин")

    assert point.lat == pytest.approx(42.695, abs=1e-5)
    assert point.lng == pytest.approx(23.320, abs=1e-5)


def test_intersection_outside_tolerance_is_none():
    graph, _fetcher = _graph()
    assert graph.intersection("Витоша", "Далечна") is None
    assert graph.intersection("Витоша", "Непозната") is None


def test_section_follows_street_geometry_between_endpoints():
    graph, _fetcher = _graph()
    start = GeoPoint(lat=42.6915, lng=23.3201)
    end = GeoPoint(lat=42.6975, lng=23.3199)

    path = graph.section("Витоша", start, end)

    assert len(path) == 6
    assert path[0].lat == pytest.approx(42.6915, abs=1e-5)
    assert path[0].lng == pytest.approx(23.320, abs=1e-5)
    assert path[-1].lat == pytest.approx(42.6975, abs=1e-5)
    assert [round(point.lat, 4) for point in path[1:-1]] == [42.692, 42.694, 42.695, 42.696]


def test_section_is_reversed_when_endpoints_are_reversed():
    graph, _fetcher = _graph()
    start = GeoPoint(lat=42.6975, lng=23.320)
    end = GeoPoint(lat=42.6915, lng=23.320)

    path = graph.section("Витоша", start, end)

    assert path[0].lat == pytest.approx(42.6975, abs=1e-5)
    assert path[-1].lat == pytest.approx(42.6915, abs=1e-5)


def test_section_with_endpoint_far_from_street_is_empty():
    graph, _fetcher = _graph()
    far = GeoPoint(lat=42.6950, lng=23.330)
    assert graph.section("Витоша", GeoPoint(lat=42.691, lng=23.320), far) == []
    assert graph.section("Непозната", GeoPoint(lat=42.691, lng=23.320), far) == []


def test_each_street_is_fetched_once_including_misses():
    graph, fetcher = _graph()
    graph.has_street("Витоша")
    graph.has_street("бул. Витоша")
    graph.has_street("Непозната")
    graph.has_street("Непозната")
    assert fetcher.calls == ["Витоша", "Непозната"]


def test_graph_without_fetcher_knows_only_added_ways():
    graph = StreetGraph(CENTER)
    assert graph.has_street("Витоша") is False
    graph.add_ways("Витоша", VITOSHA)
    assert graph.has_street("бул. Витоша") is True
