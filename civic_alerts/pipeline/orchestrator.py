"""Per-message ingestion: dedup, filter, extract, geocode, geometry, persist.

Messages are processed one at a time. A stage failure is recorded on that
message only and the batch moves on.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from civic_alerts.common.constants import MAX_FILTER_INPUT_CHARS
from civic_alerts.common.errors import ExternalServiceError, StageError, UnresolvedAddressError, ValidationError
from civic_alerts.common.ids import message_id_for
from civic_alerts.common.logging import log_event
from civic_alerts.common.models import (
    STATUS_COMPLETE,
    STATUS_FILTERED_OUT,
    IngestOutcome,
    RawMessage,
    failed_status,
    is_failed_status,
)
from civic_alerts.pipeline.ai import AiClient
from civic_alerts.pipeline.extraction import extract_structured_data
from civic_alerts.pipeline.geometry import build_feature_collection, dump_geojson
from civic_alerts.pipeline.hybrid import HybridGeocoder
from civic_alerts.pipeline.persistence import MessageRepository
from civic_alerts.pipeline.relevance import filter_message

ALREADY_INGESTED = "alreadyIngested"


@dataclass
class IngestSummary:
    total: int = 0
    ingested: int = 0
    already_ingested: int = 0
    filtered: int = 0
    failed: int = 0
    deferred: int = 0
    outcomes: list[IngestOutcome] = field(default_factory=list)

    def add(self, outcome: IngestOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.already_ingested:
            self.already_ingested += 1
        elif outcome.status == STATUS_COMPLETE:
            self.ingested += 1
        elif outcome.status == STATUS_FILTERED_OUT:
            self.filtered += 1
        elif is_failed_status(outcome.status):
            self.failed += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "ingested": self.ingested,
            "alreadyIngested": self.already_ingested,
            "filtered": self.filtered,
            "failed": self.failed,
            "deferred": self.deferred,
            "errors": [
                {
                    "message_id": outcome.message_id,
                    "source": outcome.source_id,
                    "external_id": outcome.external_id,
                    "status": outcome.status,
                    "error": outcome.error,
                    "unresolved": list(outcome.unresolved),
                }
                for outcome in self.outcomes
                if is_failed_status(outcome.status)
            ],
        }


class IngestionPipeline:
    def __init__(
        self,
        repository: MessageRepository,
        *,
        ai_client: AiClient | None,
        prompts: dict[str, str],
        geocoder: HybridGeocoder | None,
        logger: logging.Logger,
        run_id: str,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.repository = repository
        self.ai_client = ai_client
        self.prompts = prompts
        self.geocoder = geocoder
        self.logger = logger
        self.run_id = run_id
        self.clock = clock

    def _log(self, raw: RawMessage, message_id: str, stage: str, status: str, message: str, **fields: Any) -> None:
        log_event(
            self.logger,
            message,
            run_id=self.run_id,
            stage=stage,
            source=raw.source_id,
            message_id=message_id,
            event=f"{stage}_{status}",
            status=status,
            **fields,
        )

    def _fail(
        self,
        raw: RawMessage,
        message_id: str,
        stage: str,
        exc: Exception,
        started: float,
        error_code: str,
    ) -> IngestOutcome:
        error = str(exc) or type(exc).__name__
        self.repository.record_failure(message_id, stage, error)
        self._log(
            raw,
            message_id,
            stage,
            "error",
            error,
            error_code=error_code,
            duration_ms=int((self.clock() - started) * 1000),
        )
        unresolved = exc.addresses if isinstance(exc, UnresolvedAddressError) else []
        return IngestOutcome(
            message_id,
            raw.source_id,
            raw.external_id,
            failed_status(stage),
            error=error,
            unresolved=list(unresolved),
        )

    def ingest(self, raw: RawMessage) -> IngestOutcome:
        started = self.clock()
        message_id = self.repository.claim(raw)
        if message_id is None:
            existing_id = message_id_for(raw.source_id, raw.external_id)
            self._log(raw, existing_id, "dedup", "skipped", "already ingested")
            return IngestOutcome(existing_id, raw.source_id, raw.external_id, ALREADY_INGESTED)

        stage = "filter"
        try:
            if raw.precomputed_geojson is not None:
                stage = "persist"
                self.repository.record_complete(message_id, dump_geojson(raw.precomputed_geojson))
                status = STATUS_COMPLETE
            else:
                if len(raw.text) > MAX_FILTER_INPUT_CHARS:
                    raise ValidationError(f"Message text exceeds {MAX_FILTER_INPUT_CHARS} characters")
                verdict = filter_message(raw.text, self.ai_client, self.prompts.get("filter"))
                if verdict is None:
                    raise ExternalServiceError("Relevance filter returned no usable result", service="ai")
                self.repository.record_filter(message_id, verdict)
                status = STATUS_FILTERED_OUT

                if verdict.is_relevant:
                    stage = "extract"
                    extracted = extract_structured_data(
                        verdict.normalized_text, self.ai_client, self.prompts.get("extraction")
                    )
                    if extracted is None:
                        raise ExternalServiceError("Extractor returned no usable result", service="ai")
                    self.repository.record_extracted(message_id, extracted)

                    stage = "geocode"
                    if self.geocoder is None:
                        raise StageError("No geocoder configured")
                    resolved = self.geocoder.resolve(extracted)
                    self.repository.record_geocoded(message_id, resolved.points)

                    stage = "geometry"
                    collection = build_feature_collection(extracted, resolved.points, resolved.paths)

                    stage = "persist"
                    self.repository.record_complete(message_id, dump_geojson(collection))
                    status = STATUS_COMPLETE
        except (StageError, OSError) as exc:
            return self._fail(raw, message_id, stage, exc, started, getattr(exc, "error_code", "IO_ERROR"))
        except Exception as exc:
            # Malformed collaborator data must not leave the record pending.
            return self._fail(raw, message_id, stage, exc, started, "UNEXPECTED_ERROR")

        self._log(
            raw,
            message_id,
            stage,
            "ok",
            status,
            duration_ms=int((self.clock() - started) * 1000),
        )
        return IngestOutcome(message_id, raw.source_id, raw.external_id, status)

    def ingest_batch(self, messages: Iterable[RawMessage], *, max_seconds: float | None = None) -> IngestSummary:
        """Ingest sequentially; past the wall-clock ceiling the rest is deferred."""
        pending = list(messages)
        summary = IngestSummary(total=len(pending))
        started = self.clock()
        for index, raw in enumerate(pending):
            if max_seconds is not None and self.clock() - started >= max_seconds:
                summary.deferred = len(pending) - index
                log_event(
                    self.logger,
                    "wall-clock ceiling reached",
                    run_id=self.run_id,
                    stage="ingest",
                    event="ingest_deferred",
                    status="warning",
                    rows_in=len(pending),
                    rows_out=index,
                )
                break
            summary.add(self.ingest(raw))
        return summary
