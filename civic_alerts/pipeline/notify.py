"""Notification dispatch through an outbox collection."""

from __future__ import annotations

import logging
from typing import Any

from civic_alerts.common.constants import OUTBOX_COLLECTION
from civic_alerts.common.store import MemoryDocumentStore
from civic_alerts.common.time_utils import utc_timestamp_iso

logger = logging.getLogger(__name__)


class OutboxDispatcher:
    """Queues one outbox document per dispatch; a push transport drains it."""

    def __init__(self, store: MemoryDocumentStore) -> None:
        self.store = store

    def dispatch(self, match_id: str, user_id: str, payload: dict[str, Any]) -> bool:
        queued = self.store.insert_if_absent(
            OUTBOX_COLLECTION,
            match_id,
            {
                "userId": user_id,
                "payload": payload,
                "status": "queued",
                "queuedAt": utc_timestamp_iso(),
            },
        )
        if not queued:
            logger.info("dispatch for %s already queued", match_id)
        return queued
