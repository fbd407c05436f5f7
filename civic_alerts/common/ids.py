"""Run and document identifier helpers."""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone


def generate_run_id() -> str:
    now = datetime.now(tz=timezone.utc)
    # Lexically sortable by start time.
    return now.strftime("run-%Y%m%dT%H%M%S%fZ")


def message_id_for(source_id: str, external_id: str) -> str:
    digest = hashlib.sha256(f"{source_id}\x1f{external_id}".encode("utf-8")).hexdigest()
    return f"msg-{digest[:24]}"


def match_id_for(message_id: str, user_id: str) -> str:
    return f"{message_id}:{user_id}"
