"""Hybrid geocoding: point lookups plus street-graph intersections and paths."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from civic_alerts.common.models import ExtractedData, GeoPoint
from civic_alerts.common.text import has_house_number, normalise_address, split_intersection
from civic_alerts.pipeline.geocoder import PointGeocoder
from civic_alerts.streets.graph import StreetGraph

logger = logging.getLogger(__name__)

StreetKey = tuple[str, str, str]


@dataclass
class ResolvedAddresses:
    points: dict[str, GeoPoint] = field(default_factory=dict)
    paths: dict[StreetKey, list[GeoPoint]] = field(default_factory=dict)
    unresolved: list[str] = field(default_factory=list)


class HybridGeocoder:
    """Resolves every address an ExtractedData references.

    Results are memoised for the lifetime of the instance, which is one
    pipeline invocation. Negative lookups are memoised as well.
    """

    def __init__(self, point_geocoder: PointGeocoder, street_graph: StreetGraph | None = None) -> None:
        self.point_geocoder = point_geocoder
        self.street_graph = street_graph
        self._point_cache: dict[str, GeoPoint | None] = {}
        self._graph_cache: dict[tuple[str, str], GeoPoint | None] = {}

    def resolve_address(self, address: str) -> GeoPoint | None:
        key = normalise_address(address).lower()
        if key not in self._point_cache:
            self._point_cache[key] = self.point_geocoder.geocode(address)
        return self._point_cache[key]

    def _graph_point(self, street: str | None, address: str) -> GeoPoint | None:
        if self.street_graph is None:
            return None
        key = (street or "", normalise_address(address).lower())
        if key in self._graph_cache:
            return self._graph_cache[key]

        point = None
        pair = split_intersection(address)
        if pair is not None:
            point = self.street_graph.intersection(*pair)
        elif street and not has_house_number(address):
            # A bare name as a section endpoint means the cross street.
            point = self.street_graph.intersection(street, address)
        self._graph_cache[key] = point
        return point

    def resolve_endpoint(self, address: str, street: str | None = None) -> GeoPoint | None:
        point = self._graph_point(street, address)
        if point is None:
            point = self.resolve_address(address)
        return point

    def resolve(self, extracted: ExtractedData) -> ResolvedAddresses:
        resolved = ResolvedAddresses()

        for pin in extracted.pins:
            if pin.address not in resolved.points:
                point = self.resolve_endpoint(pin.address)
                if point is not None:
                    resolved.points[pin.address] = point

        for section in extracted.streets:
            for endpoint in (section.from_, section.to):
                if endpoint not in resolved.points:
                    point = self.resolve_endpoint(endpoint, section.street)
                    if point is not None:
                        resolved.points[endpoint] = point

            start = resolved.points.get(section.from_)
            end = resolved.points.get(section.to)
            if start is None or end is None or self.street_graph is None:
                continue
            path = self.street_graph.section(section.street, start, end)
            if path:
                resolved.paths[section.key] = path
            else:
                logger.info("no graph path for %r between %r and %r", section.street, section.from_, section.to)

        resolved.unresolved = [
            address for address in extracted.referenced_addresses() if address not in resolved.points
        ]
        return resolved
