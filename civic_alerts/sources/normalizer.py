"""Crawl documents to canonical RawMessage records."""

from __future__ import annotations

import json
import logging
from typing import Any

from civic_alerts.common.geo import parse_coordinate
from civic_alerts.common.models import GeoPoint, RawMessage
from civic_alerts.common.time_utils import to_iso
from civic_alerts.pipeline.geometry import build_incident_geometry

logger = logging.getLogger(__name__)


def _feature_collection(value: Any) -> dict[str, Any] | None:
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return None
    if isinstance(value, dict) and value.get("type") == "FeatureCollection" and isinstance(value.get("features"), list):
        return value
    return None


def _affected_points(values: Any) -> list[GeoPoint]:
    points: list[GeoPoint] = []
    for value in values if isinstance(values, list) else []:
        if not isinstance(value, dict):
            continue
        lat = parse_coordinate(value.get("lat"))
        lng = parse_coordinate(value.get("lon", value.get("lng")))
        if lat is not None and lng is not None:
            points.append(GeoPoint(lat=lat, lng=lng))
    return points


def _incident_collection(doc: dict[str, Any]) -> dict[str, Any] | None:
    geometry = build_incident_geometry(doc.get("lat"), doc.get("lon"), _affected_points(doc.get("points")))
    if geometry is None:
        return None
    properties = doc.get("properties") if isinstance(doc.get("properties"), dict) else {}
    return {
        "type": "FeatureCollection",
        "features": [{"type": "Feature", "geometry": geometry, "properties": properties}],
    }


def normalize_document(source_id: str, doc: dict[str, Any]) -> RawMessage | None:
    """Map one crawl document to a RawMessage, or None when it is unusable."""
    if not isinstance(doc, dict):
        return None
    external_id = doc.get("url") or doc.get("externalId") or doc.get("id")
    if not external_id:
        logger.warning("dropping %s document without url or id", source_id)
        return None
    text = doc.get("message") or doc.get("text") or ""
    if not isinstance(text, str):
        text = str(text)

    precomputed = None
    if "geoJson" in doc:
        precomputed = _feature_collection(doc["geoJson"])
        if precomputed is None:
            logger.warning("ignoring malformed geoJson on %s/%s", source_id, external_id)
    elif "lat" in doc and "lon" in doc:
        precomputed = _incident_collection(doc)

    if not text.strip() and precomputed is None:
        logger.warning("dropping empty %s document %s", source_id, external_id)
        return None

    return RawMessage(
        source_id=doc.get("sourceType") or source_id,
        external_id=str(external_id),
        text=text,
        published_at=to_iso(doc.get("datePublished")),
        title=doc.get("title"),
        url=doc.get("url"),
        precomputed_geojson=precomputed,
    )
