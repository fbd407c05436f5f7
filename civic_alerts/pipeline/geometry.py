"""GeoJSON construction from extracted data and resolved coordinates.

Everything here is pure: the same inputs always give the same output,
including byte-identical serialisation through `dump_geojson`.
"""

from __future__ import annotations

import json
from typing import Any, Mapping, Sequence

from civic_alerts.common.errors import UnresolvedAddressError
from civic_alerts.common.geo import parse_coordinate
from civic_alerts.common.models import ExtractedData, GeoPoint

StreetKey = tuple[str, str, str]


def _timespans(items) -> list[dict[str, str]]:
    return [timespan.to_dict() for timespan in items]


def build_feature_collection(
    extracted: ExtractedData,
    points: Mapping[str, GeoPoint],
    paths: Mapping[StreetKey, Sequence[GeoPoint]] | None = None,
) -> dict[str, Any]:
    """Pins become Points, street sections become LineStrings, in that order.

    Raises UnresolvedAddressError naming every referenced address missing from
    `points`; no partial collection is produced.
    """
    missing = [address for address in extracted.referenced_addresses() if address not in points]
    if missing:
        raise UnresolvedAddressError(missing)

    paths = paths or {}
    features: list[dict[str, Any]] = []

    for pin in extracted.pins:
        features.append(
            {
                "type": "Feature",
                "geometry": {"type": "Point", "coordinates": points[pin.address].to_position()},
                "properties": {"address": pin.address, "timespans": _timespans(pin.timespans)},
            }
        )

    for section in extracted.streets:
        path = list(paths.get(section.key) or ())
        if len(path) < 2:
            path = [points[section.from_], points[section.to]]
        features.append(
            {
                "type": "Feature",
                "geometry": {"type": "LineString", "coordinates": [point.to_position() for point in path]},
                "properties": {
                    "street": section.street,
                    "from": section.from_,
                    "to": section.to,
                    "timespans": _timespans(section.timespans),
                },
            }
        )

    return {"type": "FeatureCollection", "features": features}


def dump_geojson(collection: dict[str, Any]) -> str:
    return json.dumps(collection, sort_keys=True, ensure_ascii=False, separators=(",", ":"))


def _cross(o: GeoPoint, a: GeoPoint, b: GeoPoint) -> float:
    return (a.lng - o.lng) * (b.lat - o.lat) - (a.lat - o.lat) * (b.lng - o.lng)


def convex_hull(points: Sequence[GeoPoint]) -> list[GeoPoint]:
    """Monotone chain hull, counter-clockwise, without the closing vertex."""
    ordered = sorted(set(points), key=lambda point: (point.lng, point.lat))
    if len(ordered) < 3:
        return ordered

    lower: list[GeoPoint] = []
    for point in ordered:
        while len(lower) >= 2 and _cross(lower[-2], lower[-1], point) <= 0:
            lower.pop()
        lower.append(point)
    upper: list[GeoPoint] = []
    for point in reversed(ordered):
        while len(upper) >= 2 and _cross(upper[-2], upper[-1], point) <= 0:
            upper.pop()
        upper.append(point)
    return lower[:-1] + upper[:-1]


def build_incident_geometry(center_lat: Any, center_lon: Any, points: Sequence[GeoPoint]) -> dict[str, Any] | None:
    """Geometry for a record with a centre and a list of affected points.

    Returns None when the centre is not numeric.
    """
    lat = parse_coordinate(center_lat)
    lng = parse_coordinate(center_lon)
    if lat is None or lng is None:
        return None

    if not points:
        return {"type": "Point", "coordinates": GeoPoint(lat=lat, lng=lng).to_position()}
    if len(points) < 3:
        return {"type": "MultiPoint", "coordinates": [point.to_position() for point in points]}

    hull = convex_hull(points)
    # Collinear or duplicate points leave a degenerate hull; keep the input ring.
    vertices = hull if len(hull) >= 3 else list(points)
    ring = [point.to_position() for point in vertices]
    ring.append(vertices[0].to_position())
    return {"type": "Polygon", "coordinates": [ring]}
