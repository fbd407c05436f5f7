"""In-process street graph: named ways, intersections and street sections.

Ways are chained into continuous polylines per street name and all spatial
work happens in a local metric plane centred on the municipality.
"""

from __future__ import annotations

import math
from typing import Callable, Sequence

from civic_alerts.common.geo import (
    XY,
    LocalProjection,
    closest_point_between_segments,
    nearest_on_polyline,
)
from civic_alerts.common.models import GeoPoint
from civic_alerts.common.text import normalise_street_name
from civic_alerts.streets.overpass import Way

ENDPOINT_JOIN_TOLERANCE_M = 1.0


def _close(a: XY, b: XY) -> bool:
    return math.hypot(a[0] - b[0], a[1] - b[1]) <= ENDPOINT_JOIN_TOLERANCE_M


def chain_polylines(lines: Sequence[Sequence[XY]]) -> list[list[XY]]:
    """Join lines that share endpoints, reversing pieces where needed."""
    pending = [list(line) for line in lines if line]
    chains: list[list[XY]] = []
    while pending:
        chain = pending.pop(0)
        extended = True
        while extended and len(chain) > 1:
            extended = False
            for index, line in enumerate(pending):
                if len(line) < 2:
                    continue
                if _close(chain[-1], line[0]):
                    chain.extend(line[1:])
                elif _close(chain[-1], line[-1]):
                    chain.extend(reversed(line[:-1]))
                elif _close(chain[0], line[-1]):
                    chain[:0] = line[:-1]
                elif _close(chain[0], line[0]):
                    chain[:0] = list(reversed(line[1:]))
                else:
                    continue
                pending.pop(index)
                extended = True
                break
        chains.append(chain)
    return chains


def _slice_between(line: list[XY], start: tuple[int, float, XY], end: tuple[int, float, XY]) -> list[XY]:
    start_index, start_t, start_xy = start
    end_index, end_t, end_xy = end
    if start_index + start_t > end_index + end_t:
        return list(reversed(_slice_between(line, end, start)))

    path = [start_xy, *line[start_index + 1 : end_index + 1], end_xy]
    deduped: list[XY] = []
    for xy in path:
        if not deduped or not _close(deduped[-1], xy):
            deduped.append(xy)
    return deduped


class StreetGraph:
    def __init__(
        self,
        center: GeoPoint,
        *,
        fetch_ways: Callable[[str], list[Way]] | None = None,
        snap_tolerance_m: float = 50.0,
        intersection_tolerance_m: float = 30.0,
    ) -> None:
        self.projection = LocalProjection(center)
        self.fetch_ways = fetch_ways
        self.snap_tolerance_m = snap_tolerance_m
        self.intersection_tolerance_m = intersection_tolerance_m
        self._chains: dict[str, list[list[XY]]] = {}

    def add_ways(self, street_name: str, ways: Sequence[Way]) -> None:
        lines = [self.projection.project_all(way.coords) for way in ways]
        self._chains[normalise_street_name(street_name)] = chain_polylines(lines)

    def chains(self, street_name: str) -> list[list[XY]]:
        key = normalise_street_name(street_name)
        if key not in self._chains:
            if self.fetch_ways is None:
                return []
            # Negative results are cached too, one lookup per street per run.
            self.add_ways(street_name, self.fetch_ways(street_name))
        return self._chains[key]

    def has_street(self, street_name: str) -> bool:
        return bool(self.chains(street_name))

    def intersection(self, street_a: str, street_b: str) -> GeoPoint | None:
        """Point on street A closest to street B, if they come within tolerance."""
        chains_a = self.chains(street_a)
        chains_b = self.chains(street_b)
        if not chains_a or not chains_b:
            return None

        best_key: tuple[float, float] | None = None
        best_point: XY | None = None
        for line_a in chains_a:
            segments_a = list(zip(line_a, line_a[1:])) or [(line_a[0], line_a[0])]
            for line_b in chains_b:
                segments_b = list(zip(line_b, line_b[1:])) or [(line_b[0], line_b[0])]
                for a, b in segments_a:
                    for c, d in segments_b:
                        distance, point = closest_point_between_segments(a, b, c, d)
                        # Among equally close candidates prefer the one nearest the centre.
                        key = (round(distance, 3), math.hypot(point[0], point[1]))
                        if best_key is None or key < best_key:
                            best_key, best_point = key, point

        if best_key is None or best_point is None or best_key[0] > self.intersection_tolerance_m:
            return None
        return self.projection.to_point(best_point)

    def section(self, street_name: str, start: GeoPoint, end: GeoPoint) -> list[GeoPoint]:
        """Ordered path along the street between two points, or [] when not found."""
        start_xy = self.projection.to_xy(start)
        end_xy = self.projection.to_xy(end)

        best: tuple[float, list[XY], tuple, tuple] | None = None
        for line in self.chains(street_name):
            if len(line) < 2:
                continue
            start_dist, start_index, start_t, start_snap = nearest_on_polyline(start_xy, line)
            end_dist, end_index, end_t, end_snap = nearest_on_polyline(end_xy, line)
            if start_dist > self.snap_tolerance_m or end_dist > self.snap_tolerance_m:
                continue
            total = start_dist + end_dist
            if best is None or total < best[0]:
                best = (total, line, (start_index, start_t, start_snap), (end_index, end_t, end_snap))

        if best is None:
            return []
        path = _slice_between(best[1], best[2], best[3])
        if len(path) < 2:
            return []
        return [self.projection.to_point(xy) for xy in path]
