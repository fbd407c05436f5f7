"""Durable message records on top of the document store."""

from __future__ import annotations

from typing import Any

from civic_alerts.common.constants import MESSAGES_COLLECTION
from civic_alerts.common.ids import message_id_for
from civic_alerts.common.models import (
    STATUS_COMPLETE,
    STATUS_EXTRACTED,
    STATUS_FILTERED_OUT,
    STATUS_GEOCODED,
    STATUS_PENDING,
    ExtractedData,
    GeoPoint,
    RawMessage,
    failed_status,
    is_failed_status,
)
from civic_alerts.common.store import MemoryDocumentStore
from civic_alerts.common.time_utils import utc_timestamp_iso
from civic_alerts.pipeline.relevance import FilterResult

VISIBLE_STATUSES = (STATUS_COMPLETE, STATUS_FILTERED_OUT)


class MessageRepository:
    def __init__(self, store: MemoryDocumentStore) -> None:
        self.store = store

    def claim(self, raw: RawMessage) -> str | None:
        """Create the pending record for a raw message, atomically.

        Returns the message id when this invocation owns the record, or None
        when the (source, external id) pair was already ingested. A record left
        in a failed state is re-claimed and processed again from the start.
        """
        message_id = message_id_for(raw.source_id, raw.external_id)
        fresh = {
            "text": raw.text,
            "source": raw.source_id,
            "externalId": raw.external_id,
            "title": raw.title,
            "url": raw.url,
            "publishedAt": raw.published_at,
            "createdAt": utc_timestamp_iso(),
            "processingStatus": STATUS_PENDING,
            "extractedData": None,
            "geoJson": None,
            "error": None,
            "notificationsMatched": False,
        }
        if self.store.insert_if_absent(MESSAGES_COLLECTION, message_id, fresh):
            return message_id

        existing = self.store.get(MESSAGES_COLLECTION, message_id) or {}
        status = existing.get("processingStatus")
        if is_failed_status(status):
            reclaimed = self.store.compare_and_set(
                MESSAGES_COLLECTION,
                message_id,
                {"processingStatus": status},
                {**fresh, "createdAt": existing.get("createdAt", fresh["createdAt"])},
            )
            if reclaimed:
                return message_id
        return None

    def get(self, message_id: str) -> dict[str, Any] | None:
        return self.store.get(MESSAGES_COLLECTION, message_id)

    def record_filter(self, message_id: str, result: FilterResult) -> None:
        fields: dict[str, Any] = {"filterResult": result.to_dict()}
        if not result.is_relevant:
            fields["processingStatus"] = STATUS_FILTERED_OUT
        self.store.update(MESSAGES_COLLECTION, message_id, fields)

    def record_extracted(self, message_id: str, extracted: ExtractedData) -> None:
        self.store.update(
            MESSAGES_COLLECTION,
            message_id,
            {
                "extractedData": extracted.to_dict(),
                "processingStatus": STATUS_EXTRACTED,
            },
        )

    def record_geocoded(self, message_id: str, points: dict[str, GeoPoint]) -> None:
        self.store.update(
            MESSAGES_COLLECTION,
            message_id,
            {
                "geocodedAddresses": {address: point.to_dict() for address, point in points.items()},
                "processingStatus": STATUS_GEOCODED,
            },
        )

    def record_complete(self, message_id: str, geojson: str) -> None:
        self.store.update(
            MESSAGES_COLLECTION,
            message_id,
            {
                "geoJson": geojson,
                "processingStatus": STATUS_COMPLETE,
                "finalizedAt": utc_timestamp_iso(),
            },
        )

    def record_failure(self, message_id: str, stage: str, error: str) -> None:
        self.store.update(
            MESSAGES_COLLECTION,
            message_id,
            {"processingStatus": failed_status(stage), "error": error},
        )

    def mark_notifications_matched(self, message_id: str) -> None:
        self.store.update(
            MESSAGES_COLLECTION,
            message_id,
            {"notificationsMatched": True, "notificationsMatchedAt": utc_timestamp_iso()},
        )

    def pending_match(self) -> list[dict[str, Any]]:
        return self.store.query(
            MESSAGES_COLLECTION,
            processingStatus=STATUS_COMPLETE,
            notificationsMatched=False,
        )


def visible_messages(store: MemoryDocumentStore) -> list[dict[str, Any]]:
    """Messages end users may see; in-progress and failed records stay hidden."""
    visible: list[dict[str, Any]] = []
    for status in VISIBLE_STATUSES:
        visible.extend(store.query(MESSAGES_COLLECTION, processingStatus=status))
    return sorted(visible, key=lambda doc: doc["id"])
