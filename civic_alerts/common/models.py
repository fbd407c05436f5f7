"""Data models used across the pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

STATUS_PENDING = "pending"
STATUS_FILTERED_OUT = "filtered-out"
STATUS_EXTRACTED = "extracted"
STATUS_GEOCODED = "geocoded"
STATUS_COMPLETE = "complete"
FAILED_STATUS_PREFIX = "failed-at-"


def failed_status(stage: str) -> str:
    return f"{FAILED_STATUS_PREFIX}{stage}"


def is_failed_status(status: str | None) -> bool:
    return bool(status) and status.startswith(FAILED_STATUS_PREFIX)


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float

    def to_position(self) -> list[float]:
        # GeoJSON order
        return [self.lng, self.lat]

    def to_dict(self) -> dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}


@dataclass(frozen=True)
class Bounds:
    south: float
    west: float
    north: float
    east: float

    def contains(self, point: GeoPoint) -> bool:
        return self.south <= point.lat <= self.north and self.west <= point.lng <= self.east

    def overpass_bbox(self) -> str:
        return f"{self.south},{self.west},{self.north},{self.east}"


@dataclass(frozen=True)
class RawMessage:
    source_id: str
    external_id: str
    text: str
    published_at: str | None = None
    title: str | None = None
    url: str | None = None
    precomputed_geojson: dict[str, Any] | None = None


@dataclass(frozen=True)
class Timespan:
    start: str
    end: str

    def to_dict(self) -> dict[str, str]:
        return {"start": self.start, "end": self.end}


@dataclass(frozen=True)
class Pin:
    address: str
    timespans: tuple[Timespan, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {"address": self.address, "timespans": [t.to_dict() for t in self.timespans]}


@dataclass(frozen=True)
class StreetSection:
    street: str
    from_: str
    to: str
    timespans: tuple[Timespan, ...] = ()

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.street, self.from_, self.to)

    def to_dict(self) -> dict[str, Any]:
        return {
            "street": self.street,
            "from": self.from_,
            "to": self.to,
            "timespans": [t.to_dict() for t in self.timespans],
        }


@dataclass(frozen=True)
class ExtractedData:
    responsible_entity: str = ""
    pins: tuple[Pin, ...] = ()
    streets: tuple[StreetSection, ...] = ()
    markdown_text: str = ""

    def referenced_addresses(self) -> list[str]:
        """Every address the geometry needs, pins first, each once, in order."""
        seen: dict[str, None] = {}
        for pin in self.pins:
            seen.setdefault(pin.address, None)
        for street in self.streets:
            seen.setdefault(street.from_, None)
            seen.setdefault(street.to, None)
        return list(seen)

    def to_dict(self) -> dict[str, Any]:
        return {
            "responsible_entity": self.responsible_entity,
            "pins": [pin.to_dict() for pin in self.pins],
            "streets": [street.to_dict() for street in self.streets],
            "markdown_text": self.markdown_text,
        }


@dataclass(frozen=True)
class InterestZone:
    zone_id: str
    user_id: str
    center: GeoPoint
    radius_m: float
    active: bool = True


@dataclass
class IngestOutcome:
    message_id: str
    source_id: str
    external_id: str
    status: str
    error: str | None = None
    unresolved: list[str] = field(default_factory=list)

    @property
    def already_ingested(self) -> bool:
        return self.status == "alreadyIngested"
