"""Configuration loading and validation."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from civic_alerts.common.errors import ConfigError
from civic_alerts.common.fs import read_text, read_yaml
from civic_alerts.common.models import Bounds, GeoPoint
from civic_alerts.common.schema import validate_pipeline_config, validate_sources_config


@dataclass(frozen=True)
class ConfigBundle:
    pipeline: dict
    sources: list[dict]
    prompts: dict[str, str]

    @property
    def bounds(self) -> Bounds:
        return municipal_bounds(self.pipeline)

    @property
    def center(self) -> GeoPoint:
        center = self.pipeline["municipality"]["center"]
        return GeoPoint(lat=float(center["lat"]), lng=float(center["lng"]))


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    if not path.exists():
        raise ConfigError(f"Missing config file: {path}")
    base = read_yaml(path)
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path)
    return _deep_merge(base, overlay)


def _load_prompt(config_dir: Path, overlay_config_dir: Path | None, relative: str) -> str:
    if overlay_config_dir is not None and (overlay_config_dir / relative).exists():
        return read_text(overlay_config_dir / relative)
    path = config_dir / relative
    if not path.exists():
        raise ConfigError(f"Missing prompt file: {path}")
    return read_text(path)


def load_all_configs(
    config_dir: Path,
    *,
    allow_unknown: bool = False,
    overlay_config_dir: Path | None = None,
) -> ConfigBundle:
    def overlay_for(name: str) -> Path | None:
        return (overlay_config_dir / name) if overlay_config_dir is not None else None

    pipeline = validate_pipeline_config(
        _load_yaml_with_overlay(config_dir / "pipeline.yml", overlay_for("pipeline.yml")),
        allow_unknown=allow_unknown,
    )
    sources = validate_sources_config(
        _load_yaml_with_overlay(config_dir / "sources.yml", overlay_for("sources.yml"))
    )
    prompts = {
        "filter": _load_prompt(config_dir, overlay_config_dir, pipeline["ai"]["filter_prompt"]),
        "extraction": _load_prompt(config_dir, overlay_config_dir, pipeline["ai"]["extraction_prompt"]),
    }
    return ConfigBundle(pipeline=pipeline, sources=sources["sources"], prompts=prompts)


def municipal_bounds(pipeline_config: dict) -> Bounds:
    bbox = pipeline_config["municipality"]["bbox_wgs84"]
    return Bounds(
        south=float(bbox["min_lat"]),
        west=float(bbox["min_lon"]),
        north=float(bbox["max_lat"]),
        east=float(bbox["max_lon"]),
    )


def resolve_secret(env_name: str | None, *, purpose: str) -> str:
    if not env_name:
        raise ConfigError(f"No environment variable configured for {purpose}")
    value = os.environ.get(env_name, "").strip()
    if not value:
        raise ConfigError(f"Environment variable {env_name} must be set for {purpose}")
    return value


def resolve_sources(sources: list[dict], target: str | None) -> list[dict]:
    enabled = [source for source in sources if source.get("enabled", True)]
    if not target or target == "all":
        return enabled
    selected = [source for source in enabled if source["id"] == target]
    if not selected:
        raise ConfigError(f"Unknown or disabled source: {target}")
    return selected
