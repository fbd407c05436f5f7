"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from civic_alerts.common.errors import ConfigError

GEOCODER_PROVIDERS = {"nominatim", "google"}
SOURCE_KINDS = {"file", "http"}


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    if not isinstance(obj, dict):
        raise ConfigError(f"{ctx} must be a mapping")
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def validate_pipeline_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    top_required = {
        "municipality",
        "ai",
        "geocoder",
        "street_graph",
        "matching",
        "notifications",
    }
    _assert_required_keys(cfg, top_required, "pipeline config")
    _assert_no_unknown_keys(cfg, top_required, "pipeline config", allow_unknown)

    _assert_required_keys(
        cfg["municipality"],
        {"name", "locality", "country", "center", "bbox_wgs84"},
        "municipality",
    )
    _assert_required_keys(cfg["municipality"]["center"], {"lat", "lng"}, "municipality.center")
    _assert_required_keys(
        cfg["municipality"]["bbox_wgs84"],
        {"min_lat", "max_lat", "min_lon", "max_lon"},
        "municipality.bbox_wgs84",
    )
    _assert_required_keys(
        cfg["ai"],
        {"model", "api_key_env", "timeout_seconds", "filter_prompt", "extraction_prompt"},
        "ai",
    )
    _assert_required_keys(cfg["geocoder"], {"provider", "endpoint", "timeout_seconds"}, "geocoder")
    if cfg["geocoder"]["provider"] not in GEOCODER_PROVIDERS:
        raise ConfigError(f"Unsupported geocoder provider: {cfg['geocoder']['provider']}")
    if cfg["geocoder"]["provider"] == "google" and not cfg["geocoder"].get("api_key_env"):
        raise ConfigError("geocoder.api_key_env is required for provider=google")
    _assert_required_keys(
        cfg["street_graph"],
        {"enabled", "endpoints", "timeout_seconds", "intersection_tolerance_m", "snap_tolerance_m"},
        "street_graph",
    )
    if cfg["street_graph"]["enabled"] and not cfg["street_graph"]["endpoints"]:
        raise ConfigError("street_graph.endpoints must be a non-empty list when enabled")
    _assert_required_keys(cfg["matching"], {"min_radius_m", "max_radius_m"}, "matching")
    _assert_required_keys(cfg["notifications"], {"app_url", "preview_chars"}, "notifications")

    return cfg


def validate_sources_config(cfg: dict) -> dict:
    _assert_required_keys(cfg, {"sources"}, "sources")
    if not isinstance(cfg["sources"], list):
        raise ConfigError("sources.sources must be a list")

    ids: list[str] = []
    for idx, source in enumerate(cfg["sources"]):
        _assert_required_keys(source, {"id", "kind", "enabled"}, f"sources[{idx}]")
        if source["kind"] not in SOURCE_KINDS:
            raise ConfigError(f"Unsupported source kind in sources[{idx}]: {source['kind']}")
        location_key = "path" if source["kind"] == "file" else "url"
        _assert_required_keys(source, {location_key}, f"sources[{idx}]")
        ids.append(source["id"])

    dupes = {source_id for source_id in ids if ids.count(source_id) > 1}
    if dupes:
        raise ConfigError(f"Duplicate source ids: {', '.join(sorted(dupes))}")

    return cfg
