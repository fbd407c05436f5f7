"""Source readers: crawl output already on disk, or a JSON endpoint."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from civic_alerts.common.errors import StageError
from civic_alerts.common.fs import read_json, read_json_lines
from civic_alerts.common.http import HttpClient


def _as_documents(payload: Any, origin: str) -> list[dict]:
    if isinstance(payload, dict) and isinstance(payload.get("items"), list):
        payload = payload["items"]
    if not isinstance(payload, list):
        raise StageError(f"Expected a list of documents from {origin}")
    return [doc for doc in payload if isinstance(doc, dict)]


def read_file_source(source: dict, data_dir: Path) -> list[dict]:
    path = Path(source["path"])
    if not path.is_absolute():
        path = data_dir / path
    if not path.exists():
        raise StageError(f"Source file not found: {path}")
    if path.suffix == ".jsonl":
        return _as_documents(read_json_lines(path), str(path))
    return _as_documents(read_json(path), str(path))


def read_http_source(source: dict, http_client: HttpClient) -> list[dict]:
    payload = http_client.get_json(source["url"], source_type="crawl")
    return _as_documents(payload, source["url"])


def read_source(source: dict, data_dir: Path, http_client: HttpClient | None) -> list[dict]:
    if source["kind"] == "file":
        return read_file_source(source, data_dir)
    if http_client is None:
        raise StageError(f"Source {source['id']} needs an HTTP client")
    return read_http_source(source, http_client)
