"""Run report aggregation."""

from __future__ import annotations

from pathlib import Path

from civic_alerts.common.fs import write_json
from civic_alerts.common.time_utils import utc_timestamp_iso
from civic_alerts.pipeline.matcher import MatchSummary
from civic_alerts.pipeline.orchestrator import IngestSummary
from civic_alerts.sources.runner import SourceReadResult


def write_run_summary(
    data_dir: Path,
    run_id: str,
    command: str,
    *,
    sources: SourceReadResult | None = None,
    ingest: IngestSummary | None = None,
    matching: MatchSummary | None = None,
    errors: list[str] | None = None,
) -> Path:
    errors = list(errors or [])
    warning_count = 0
    error_count = len(errors)

    if sources is not None:
        warning_count += len(sources.failed_sources)
    if ingest is not None:
        error_count += ingest.failed
        warning_count += ingest.deferred
    if matching is not None:
        error_count += matching.failed

    status = "success"
    if error_count > 0:
        status = "error"
    elif warning_count > 0:
        status = "partial"

    payload = {
        "run_id": run_id,
        "command": command,
        "finished_at": utc_timestamp_iso(),
        "status": status,
        "sources": None
        if sources is None
        else {
            "documents": dict(sources.documents_by_source),
            "messages": len(sources.messages),
            "failed": dict(sources.failed_sources),
        },
        "ingest": ingest.to_dict() if ingest is not None else None,
        "matching": matching.to_dict() if matching is not None else None,
        "warning_count": warning_count,
        "error_count": error_count,
        "errors": errors,
    }
    summary_path = data_dir / "out" / "reports" / "run_summary.json"
    write_json(summary_path, payload)
    return summary_path
