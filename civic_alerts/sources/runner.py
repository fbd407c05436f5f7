"""Concurrent source reads with fail-soft semantics."""

from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from civic_alerts.common.errors import PipelineError, StageError
from civic_alerts.common.http import HttpClient
from civic_alerts.common.models import RawMessage
from civic_alerts.sources.normalizer import normalize_document
from civic_alerts.sources.readers import read_source

logger = logging.getLogger(__name__)


@dataclass
class SourceReadResult:
    messages: list[RawMessage] = field(default_factory=list)
    documents_by_source: dict[str, int] = field(default_factory=dict)
    failed_sources: dict[str, str] = field(default_factory=dict)


def read_all_sources(
    sources: list[dict],
    data_dir: Path,
    http_client: HttpClient | None = None,
    *,
    limit: int | None = None,
) -> SourceReadResult:
    """Read every source at once, one task each; a failing source is only recorded."""
    result = SourceReadResult()
    if not sources:
        return result

    with ThreadPoolExecutor(max_workers=len(sources)) as executor:
        futures = {source["id"]: executor.submit(read_source, source, data_dir, http_client) for source in sources}

    for source in sources:
        source_id = source["id"]
        try:
            documents = futures[source_id].result()
        except (PipelineError, OSError, json.JSONDecodeError) as exc:
            logger.warning("source %s failed: %s", source_id, exc)
            result.failed_sources[source_id] = str(exc)
            continue
        result.documents_by_source[source_id] = len(documents)
        for doc in documents:
            message = normalize_document(source_id, doc)
            if message is not None:
                result.messages.append(message)

    if len(result.failed_sources) == len(sources):
        raise StageError("All enabled sources failed")

    if limit is not None:
        result.messages = result.messages[:limit]
    return result
