"""Geodesic distances and local planar helpers."""

from __future__ import annotations

import math
from typing import Sequence

from pyproj import CRS, Geod, Transformer

from civic_alerts.common.models import GeoPoint

XY = tuple[float, float]

_GEOD = Geod(ellps="WGS84")
_WGS84 = CRS.from_epsg(4326)


def geodesic_distance_m(a: GeoPoint, b: GeoPoint) -> float:
    _fwd_az, _back_az, distance = _GEOD.inv(a.lng, a.lat, b.lng, b.lat)
    return abs(distance)


def parse_coordinate(value) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(parsed) or math.isinf(parsed):
        return None
    return parsed


class LocalProjection:
    """Azimuthal equidistant plane in metres; distances from the centre are geodesic."""

    def __init__(self, center: GeoPoint) -> None:
        self.center = center
        local = CRS.from_proj4(
            f"+proj=aeqd +lat_0={center.lat} +lon_0={center.lng} +datum=WGS84 +units=m +no_defs"
        )
        self._forward = Transformer.from_crs(_WGS84, local, always_xy=True)
        self._inverse = Transformer.from_crs(local, _WGS84, always_xy=True)

    def to_xy(self, point: GeoPoint) -> XY:
        x, y = self._forward.transform(point.lng, point.lat)
        return float(x), float(y)

    def to_point(self, xy: XY) -> GeoPoint:
        lng, lat = self._inverse.transform(xy[0], xy[1])
        return GeoPoint(lat=round(float(lat), 7), lng=round(float(lng), 7))

    def project_all(self, points: Sequence[GeoPoint]) -> list[XY]:
        return [self.to_xy(point) for point in points]


def _dist(a: XY, b: XY) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])


def nearest_on_segment(p: XY, a: XY, b: XY) -> tuple[float, float, XY]:
    """Return (distance, t, nearest point) for p against segment a-b, t in [0, 1]."""
    dx, dy = b[0] - a[0], b[1] - a[1]
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return _dist(p, a), 0.0, a
    t = ((p[0] - a[0]) * dx + (p[1] - a[1]) * dy) / length_sq
    t = max(0.0, min(1.0, t))
    q = (a[0] + t * dx, a[1] + t * dy)
    return _dist(p, q), t, q


def nearest_on_polyline(p: XY, line: Sequence[XY]) -> tuple[float, int, float, XY]:
    """Return (distance, segment index, t, nearest point) for p against a polyline."""
    if len(line) == 1:
        return _dist(p, line[0]), 0, 0.0, line[0]
    best = (math.inf, 0, 0.0, line[0])
    for index in range(len(line) - 1):
        distance, t, q = nearest_on_segment(p, line[index], line[index + 1])
        if distance < best[0]:
            best = (distance, index, t, q)
    return best


def _cross(o: XY, a: XY, b: XY) -> float:
    return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])


def _segment_intersection(a: XY, b: XY, c: XY, d: XY) -> XY | None:
    d1 = _cross(c, d, a)
    d2 = _cross(c, d, b)
    d3 = _cross(a, b, c)
    d4 = _cross(a, b, d)
    if ((d1 > 0 > d2) or (d1 < 0 < d2)) and ((d3 > 0 > d4) or (d3 < 0 < d4)):
        t = d1 / (d1 - d2)
        return (a[0] + t * (b[0] - a[0]), a[1] + t * (b[1] - a[1]))
    return None


def closest_point_between_segments(a: XY, b: XY, c: XY, d: XY) -> tuple[float, XY]:
    """Distance between segments a-b and c-d, with the closest point on a-b."""
    crossing = _segment_intersection(a, b, c, d)
    if crossing is not None:
        return 0.0, crossing

    candidates: list[tuple[float, XY]] = []
    for endpoint in (a, b):
        distance, _t, _q = nearest_on_segment(endpoint, c, d)
        candidates.append((distance, endpoint))
    for endpoint in (c, d):
        distance, _t, q = nearest_on_segment(endpoint, a, b)
        candidates.append((distance, q))
    return min(candidates, key=lambda item: item[0])


def point_in_ring(p: XY, ring: Sequence[XY]) -> bool:
    inside = False
    count = len(ring)
    for index in range(count):
        x1, y1 = ring[index]
        x2, y2 = ring[(index + 1) % count]
        if (y1 > p[1]) != (y2 > p[1]):
            x_cross = x1 + (p[1] - y1) * (x2 - x1) / (y2 - y1)
            if p[0] < x_cross:
                inside = not inside
    return inside
