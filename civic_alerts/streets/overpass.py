"""Overpass lookups of named street geometry."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable

from civic_alerts.common.errors import ExternalServiceError
from civic_alerts.common.geo import parse_coordinate
from civic_alerts.common.http import HttpClient, TimeoutConfig
from civic_alerts.common.models import Bounds, GeoPoint
from civic_alerts.common.text import normalise_street_name

logger = logging.getLogger(__name__)

DEFAULT_HIGHWAY_CLASSES = ("primary", "secondary", "tertiary", "trunk")
_SQUARE_PREFIX_RE = re.compile(r"^(пл\.|площад|square|sq\.)\s*", re.IGNORECASE)


@dataclass(frozen=True)
class Way:
    way_id: str
    name: str
    coords: tuple[GeoPoint, ...]


def _ql_regex(value: str) -> str:
    return re.escape(value).replace("\\", "\\\\").replace('"', '\\"')


def build_street_query(
    street_name: str,
    bounds: Bounds,
    *,
    timeout_seconds: int = 25,
    highway_classes: Iterable[str] = DEFAULT_HIGHWAY_CLASSES,
) -> str:
    pattern = _ql_regex(normalise_street_name(street_name))
    bbox = bounds.overpass_bbox()

    if _SQUARE_PREFIX_RE.match(street_name.strip()):
        return (
            f"[out:json][timeout:{timeout_seconds}];\n"
            "(\n"
            f'  node["place"="square"]["name"~"{pattern}",i]({bbox});\n'
            f'  way["place"="square"]["name"~"{pattern}",i]({bbox});\n'
            ");\n"
            "out geom;"
        )

    classes = "|".join(highway_classes)
    highway_filter = f'["highway"~"^({classes})$"]'
    return (
        f"[out:json][timeout:{timeout_seconds}];\n"
        "(\n"
        f'  way{highway_filter}["name"~"{pattern}",i]({bbox});\n'
        f'  way{highway_filter}["name:bg"~"{pattern}",i]({bbox});\n'
        ");\n"
        "out geom;"
    )


def _geometry_points(raw) -> tuple[GeoPoint, ...]:
    points = []
    for point in raw if isinstance(raw, list) else []:
        if not isinstance(point, dict):
            continue
        lat = parse_coordinate(point.get("lat"))
        lng = parse_coordinate(point.get("lon"))
        if lat is not None and lng is not None:
            points.append(GeoPoint(lat=round(lat, 7), lng=round(lng, 7)))
    return tuple(points)


def parse_ways(payload: dict) -> list[Way]:
    ways: list[Way] = []
    seen: set[str] = set()
    elements = payload.get("elements") if isinstance(payload, dict) else None
    for element in elements if isinstance(elements, list) else []:
        if not isinstance(element, dict):
            continue
        element_id = f"{element.get('type')}/{element.get('id')}"
        if element_id in seen:
            continue
        tags = element.get("tags")
        name = tags.get("name", "") if isinstance(tags, dict) else ""

        if element.get("type") == "node":
            lat = parse_coordinate(element.get("lat"))
            lng = parse_coordinate(element.get("lon"))
            if lat is None or lng is None:
                continue
            coords = (GeoPoint(lat=lat, lng=lng),)
        elif element.get("type") == "way":
            coords = _geometry_points(element.get("geometry"))
            if len(coords) < 2:
                continue
        else:
            continue

        seen.add(element_id)
        ways.append(Way(way_id=element_id, name=name, coords=coords))
    return ways


def fetch_street_ways(
    street_name: str,
    graph_config: dict,
    bounds: Bounds,
    http_client: HttpClient,
) -> list[Way]:
    """Query each configured endpoint in turn until one answers."""
    timeout = int(graph_config.get("timeout_seconds", 25))
    query = build_street_query(
        street_name,
        bounds,
        timeout_seconds=timeout,
        highway_classes=graph_config.get("highway_classes") or DEFAULT_HIGHWAY_CLASSES,
    )

    failures: list[str] = []
    for endpoint in graph_config["endpoints"]:
        try:
            payload = http_client.post_form_json(
                endpoint,
                source_type="overpass",
                data={"data": query},
                timeout=TimeoutConfig(connect=10, read=timeout + 5),
            )
        except ExternalServiceError as exc:
            logger.warning("overpass endpoint %s failed: %s", endpoint, exc)
            failures.append(endpoint)
            continue
        return parse_ways(payload if isinstance(payload, dict) else {})

    raise ExternalServiceError(
        f"All Overpass endpoints failed for {street_name!r}: {', '.join(failures)}",
        service="overpass",
    )
