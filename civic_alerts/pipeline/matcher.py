"""Geofence matching of stored message geometry against user interest zones."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from civic_alerts.common.constants import (
    INTERESTS_COLLECTION,
    MATCHES_COLLECTION,
    MAX_ZONE_RADIUS_M,
    MIN_ZONE_RADIUS_M,
)
from civic_alerts.common.errors import StageError
from civic_alerts.common.geo import (
    LocalProjection,
    geodesic_distance_m,
    nearest_on_polyline,
    parse_coordinate,
    point_in_ring,
)
from civic_alerts.common.ids import match_id_for
from civic_alerts.common.models import GeoPoint, InterestZone
from civic_alerts.common.store import MemoryDocumentStore
from civic_alerts.common.time_utils import utc_timestamp_iso
from civic_alerts.pipeline.notify import OutboxDispatcher
from civic_alerts.pipeline.persistence import MessageRepository

logger = logging.getLogger(__name__)


@dataclass
class MatchSummary:
    messages: int = 0
    zones: int = 0
    matches: int = 0
    created: int = 0
    skipped: int = 0
    dispatched: int = 0
    failed: int = 0
    errors: list[dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "messages": self.messages,
            "zones": self.zones,
            "matches": self.matches,
            "created": self.created,
            "skipped": self.skipped,
            "dispatched": self.dispatched,
            "failed": self.failed,
            "errors": list(self.errors),
        }


def _position(value: Any) -> GeoPoint | None:
    if not isinstance(value, (list, tuple)) or len(value) < 2:
        return None
    lng = parse_coordinate(value[0])
    lat = parse_coordinate(value[1])
    if lat is None or lng is None:
        return None
    return GeoPoint(lat=lat, lng=lng)


def _positions(values: Any) -> list[GeoPoint]:
    if not isinstance(values, list):
        return []
    return [point for point in (_position(value) for value in values) if point is not None]


def _parts(values: Any) -> list[Any]:
    return values if isinstance(values, list) else []


def distance_to_geometry(projection: LocalProjection, geometry: dict[str, Any] | None) -> float | None:
    """Minimum distance in metres from the projection centre to a GeoJSON geometry.

    Returns None for geometry that carries no usable coordinates.
    """
    if not isinstance(geometry, dict):
        return None
    kind = geometry.get("type")
    coordinates = geometry.get("coordinates")
    center = projection.center

    if kind == "Point":
        point = _position(coordinates)
        return geodesic_distance_m(center, point) if point is not None else None
    if kind == "MultiPoint":
        points = _positions(coordinates)
        return min((geodesic_distance_m(center, point) for point in points), default=None)
    if kind == "LineString":
        line = _positions(coordinates)
        if not line:
            return None
        return nearest_on_polyline((0.0, 0.0), projection.project_all(line))[0]
    if kind == "MultiLineString":
        distances = [distance_to_geometry(projection, {"type": "LineString", "coordinates": part}) for part in _parts(coordinates)]
        return min((value for value in distances if value is not None), default=None)
    if kind == "Polygon":
        rings = [projection.project_all(_positions(ring)) for ring in _parts(coordinates)]
        rings = [ring for ring in rings if ring]
        if not rings:
            return None
        outer, holes = rings[0], rings[1:]
        if point_in_ring((0.0, 0.0), outer) and not any(point_in_ring((0.0, 0.0), hole) for hole in holes):
            return 0.0
        return min(nearest_on_polyline((0.0, 0.0), ring)[0] for ring in rings)
    if kind == "MultiPolygon":
        distances = [distance_to_geometry(projection, {"type": "Polygon", "coordinates": part}) for part in _parts(coordinates)]
        return min((value for value in distances if value is not None), default=None)
    if kind == "GeometryCollection":
        distances = [distance_to_geometry(projection, part) for part in _parts(geometry.get("geometries"))]
        return min((value for value in distances if value is not None), default=None)
    return None


def distance_to_collection(projection: LocalProjection, collection: dict[str, Any]) -> float | None:
    distances = [
        distance_to_geometry(projection, feature.get("geometry"))
        for feature in _parts(collection.get("features"))
        if isinstance(feature, dict)
    ]
    return min((value for value in distances if value is not None), default=None)


def parse_geojson(value: Any) -> dict[str, Any] | None:
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return None
    if not isinstance(value, dict) or value.get("type") != "FeatureCollection":
        return None
    return value


def load_zones(
    store: MemoryDocumentStore,
    *,
    min_radius_m: float = MIN_ZONE_RADIUS_M,
    max_radius_m: float = MAX_ZONE_RADIUS_M,
) -> list[InterestZone]:
    zones: list[InterestZone] = []
    for doc in store.query(INTERESTS_COLLECTION):
        if doc.get("active", True) is False:
            continue
        coordinates = doc.get("coordinates") or {}
        lat = parse_coordinate(coordinates.get("lat"))
        lng = parse_coordinate(coordinates.get("lng"))
        radius = parse_coordinate(doc.get("radius"))
        if lat is None or lng is None or radius is None or not doc.get("userId"):
            logger.warning("skipping malformed interest zone %s", doc.get("id"))
            continue
        if not min_radius_m <= radius <= max_radius_m:
            logger.warning("skipping interest zone %s with radius %s outside bounds", doc["id"], radius)
            continue
        zones.append(
            InterestZone(
                zone_id=doc["id"],
                user_id=str(doc["userId"]),
                center=GeoPoint(lat=lat, lng=lng),
                radius_m=radius,
            )
        )
    return zones


class GeofenceMatcher:
    def __init__(
        self,
        store: MemoryDocumentStore,
        dispatcher: OutboxDispatcher,
        *,
        app_url: str,
        preview_chars: int = 100,
        min_radius_m: float = MIN_ZONE_RADIUS_M,
        max_radius_m: float = MAX_ZONE_RADIUS_M,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.repository = MessageRepository(store)
        self.app_url = app_url.rstrip("/")
        self.preview_chars = preview_chars
        self.min_radius_m = min_radius_m
        self.max_radius_m = max_radius_m
        self._projections: dict[str, LocalProjection] = {}

    def _projection(self, zone: InterestZone) -> LocalProjection:
        if zone.zone_id not in self._projections:
            self._projections[zone.zone_id] = LocalProjection(zone.center)
        return self._projections[zone.zone_id]

    def matching_users(self, collection: dict[str, Any], zones: Iterable[InterestZone]) -> dict[str, tuple[InterestZone, float]]:
        """Closest matching zone and its distance for every user with any match."""
        closest: dict[str, tuple[InterestZone, float]] = {}
        for zone in zones:
            distance = distance_to_collection(self._projection(zone), collection)
            if distance is None or distance > zone.radius_m:
                continue
            current = closest.get(zone.user_id)
            if current is None or distance < current[1]:
                closest[zone.user_id] = (zone, distance)
        return closest

    def _preview(self, text: str) -> str:
        text = " ".join((text or "").split())
        if len(text) <= self.preview_chars:
            return text
        return text[: self.preview_chars].rstrip() + "..."

    def _payload(self, message: dict[str, Any], distance: float) -> dict[str, Any]:
        return {
            "title": message.get("title") or f"New announcement from {message.get('source')}",
            "body": f"{self._preview(message.get('text', ''))} ({round(distance)} m away)",
            "messageId": message["id"],
            "url": f"{self.app_url}/?messageId={message['id']}",
        }

    def match_message(self, message: dict[str, Any], zones: list[InterestZone], summary: MatchSummary) -> None:
        collection = parse_geojson(message.get("geoJson"))
        if collection is None:
            logger.warning("message %s has no usable geometry", message["id"])
            self.repository.mark_notifications_matched(message["id"])
            return

        for user_id, (zone, distance) in sorted(self.matching_users(collection, zones).items()):
            summary.matches += 1
            match_id = match_id_for(message["id"], user_id)
            created = self.store.insert_if_absent(
                MATCHES_COLLECTION,
                match_id,
                {
                    "messageId": message["id"],
                    "userId": user_id,
                    "interestId": zone.zone_id,
                    "distance": round(distance, 1),
                    "matchedAt": utc_timestamp_iso(),
                    "messageSnapshot": {
                        "text": self._preview(message.get("text", "")),
                        "source": message.get("source"),
                        "createdAt": message.get("createdAt"),
                    },
                },
            )
            if created:
                summary.created += 1
            else:
                summary.skipped += 1
            # Outbox writes are idempotent per match id; an existing match re-queues only a lost dispatch.
            if self.dispatcher.dispatch(match_id, user_id, self._payload(message, distance)):
                summary.dispatched += 1

        self.repository.mark_notifications_matched(message["id"])

    def _record_failure(self, summary: MatchSummary, message: dict[str, Any], exc: Exception) -> None:
        summary.failed += 1
        summary.errors.append({"message_id": str(message.get("id")), "error": str(exc) or type(exc).__name__})

    def run(self, messages: list[dict[str, Any]] | None = None) -> MatchSummary:
        """Match messages (default: every complete message not matched yet)."""
        summary = MatchSummary()
        zones = load_zones(self.store, min_radius_m=self.min_radius_m, max_radius_m=self.max_radius_m)
        summary.zones = len(zones)
        pending = self.repository.pending_match() if messages is None else messages

        for message in pending:
            summary.messages += 1
            try:
                self.match_message(message, zones, summary)
            except (StageError, KeyError, OSError) as exc:
                logger.warning("matching failed for %s: %s", message.get("id"), exc)
                self._record_failure(summary, message, exc)
            except Exception as exc:
                logger.exception("unexpected matching failure for %s", message.get("id"))
                self._record_failure(summary, message, exc)
        return summary
