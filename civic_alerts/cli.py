"""CLI entrypoint for the civic alerts ingestion and matching pipeline."""

from __future__ import annotations

import argparse
import logging
import sys
from functools import partial
from pathlib import Path

from civic_alerts.common.config_loader import ConfigBundle, load_all_configs, resolve_sources
from civic_alerts.common.constants import COMMANDS, EXIT_HARD_FAIL, EXIT_PARTIAL, EXIT_SUCCESS
from civic_alerts.common.errors import PipelineError, StageError
from civic_alerts.common.http import HttpClient
from civic_alerts.common.ids import generate_run_id
from civic_alerts.common.logging import build_logger, log_event
from civic_alerts.common.store import JsonFileDocumentStore
from civic_alerts.pipeline.ai import build_ai_client
from civic_alerts.pipeline.geocoder import build_point_geocoder
from civic_alerts.pipeline.hybrid import HybridGeocoder
from civic_alerts.pipeline.matcher import GeofenceMatcher, MatchSummary
from civic_alerts.pipeline.notify import OutboxDispatcher
from civic_alerts.pipeline.orchestrator import IngestionPipeline, IngestSummary
from civic_alerts.pipeline.persistence import MessageRepository
from civic_alerts.pipeline.reports import write_run_summary
from civic_alerts.sources.runner import SourceReadResult, read_all_sources
from civic_alerts.streets.graph import StreetGraph
from civic_alerts.streets.overpass import fetch_street_ways


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", choices=[*COMMANDS, "all"])
    parser.add_argument("--source", default="all")
    parser.add_argument("--limit", type=int, default=None)
    parser.add_argument("--max-seconds", type=float, default=None)
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--config-dir", default="./config")
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--data-dir", default="./data")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARN", "ERROR"])
    parser.add_argument("--strict", action="store_true")
    return parser.parse_args(argv)


def build_hybrid_geocoder(bundle: ConfigBundle, http_client: HttpClient) -> HybridGeocoder:
    bounds = bundle.bounds
    point_geocoder = build_point_geocoder(bundle.pipeline, bounds, http_client)
    graph_cfg = bundle.pipeline["street_graph"]
    street_graph = None
    if graph_cfg["enabled"]:
        street_graph = StreetGraph(
            bundle.center,
            fetch_ways=partial(fetch_street_ways, graph_config=graph_cfg, bounds=bounds, http_client=http_client),
            snap_tolerance_m=float(graph_cfg["snap_tolerance_m"]),
            intersection_tolerance_m=float(graph_cfg["intersection_tolerance_m"]),
        )
    return HybridGeocoder(point_geocoder, street_graph)


def run_ingest(
    args: argparse.Namespace,
    bundle: ConfigBundle,
    store: JsonFileDocumentStore,
    http_client: HttpClient,
    logger: logging.Logger,
    run_id: str,
) -> tuple[SourceReadResult, IngestSummary]:
    # Fail fast on missing AI or geocoder credentials before touching any source.
    ai_client = build_ai_client(bundle.pipeline["ai"])
    geocoder = build_hybrid_geocoder(bundle, http_client)

    sources = resolve_sources(bundle.sources, args.source)
    read_result = read_all_sources(sources, Path(args.data_dir), http_client, limit=args.limit)
    for source_id, error in read_result.failed_sources.items():
        log_event(
            logger,
            f"source failed: {error}",
            run_id=run_id,
            stage="read",
            source=source_id,
            event="SOURCE_FAIL",
            status="error",
            error_code="STAGE_ERROR",
        )

    pipeline = IngestionPipeline(
        MessageRepository(store),
        ai_client=ai_client,
        prompts=bundle.prompts,
        geocoder=geocoder,
        logger=logger,
        run_id=run_id,
    )
    summary = pipeline.ingest_batch(read_result.messages, max_seconds=args.max_seconds)
    return read_result, summary


def run_match(bundle: ConfigBundle, store: JsonFileDocumentStore) -> MatchSummary:
    notifications = bundle.pipeline["notifications"]
    matching = bundle.pipeline["matching"]
    matcher = GeofenceMatcher(
        store,
        OutboxDispatcher(store),
        app_url=notifications["app_url"],
        preview_chars=int(notifications["preview_chars"]),
        min_radius_m=float(matching["min_radius_m"]),
        max_radius_m=float(matching["max_radius_m"]),
    )
    return matcher.run()


def run_command(args: argparse.Namespace) -> int:
    run_id = args.run_id or generate_run_id()
    config_dir = Path(args.config_dir)
    overlay_config_dir = Path(args.overlay_config_dir) if args.overlay_config_dir else None
    data_dir = Path(args.data_dir)

    logger = build_logger(run_id, data_dir=data_dir, level=args.log_level)
    bundle = load_all_configs(config_dir, overlay_config_dir=overlay_config_dir)
    store = JsonFileDocumentStore(data_dir / "store")
    commands = COMMANDS if args.command == "all" else (args.command,)

    read_result: SourceReadResult | None = None
    ingest_summary: IngestSummary | None = None
    match_summary: MatchSummary | None = None
    errors: list[str] = []

    with HttpClient() as http_client:
        for command in commands:
            log_event(logger, "stage start", run_id=run_id, stage=command, event="STAGE_START", status="ok")
            try:
                if command == "ingest":
                    read_result, ingest_summary = run_ingest(args, bundle, store, http_client, logger, run_id)
                else:
                    match_summary = run_match(bundle, store)
            except StageError as exc:
                errors.append(f"{command}: {exc}")
                log_event(
                    logger,
                    f"stage failed: {exc}",
                    run_id=run_id,
                    stage=command,
                    event="STAGE_FAIL",
                    status="error",
                    error_code=exc.error_code,
                )
                if args.strict:
                    return EXIT_HARD_FAIL
                continue
            log_event(logger, "stage end", run_id=run_id, stage=command, event="STAGE_END", status="ok")

    write_run_summary(
        data_dir,
        run_id,
        args.command,
        sources=read_result,
        ingest=ingest_summary,
        matching=match_summary,
        errors=errors,
    )

    had_partial_failure = bool(errors)
    if read_result is not None and read_result.failed_sources:
        had_partial_failure = True
    if ingest_summary is not None and (ingest_summary.failed or ingest_summary.deferred):
        had_partial_failure = True
    if match_summary is not None and match_summary.failed:
        had_partial_failure = True

    if had_partial_failure:
        return EXIT_HARD_FAIL if args.strict else EXIT_PARTIAL
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    try:
        return run_command(args)
    except PipelineError as exc:
        logging.getLogger("civic_alerts").error("run aborted: %s (%s)", exc, exc.error_code)
        return EXIT_HARD_FAIL
    except Exception:
        logging.getLogger("civic_alerts").exception("unexpected failure")
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
