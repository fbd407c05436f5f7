"""Document store with atomic conditional writes.

The pipeline only needs key/value documents grouped in collections, equality
queries, and two conditional writes that must never be split into a read
followed by a write: ``insert_if_absent`` (dedup, notification matches) and
``compare_and_set`` (re-claiming a failed message).
"""

from __future__ import annotations

import copy
import threading
import uuid
from pathlib import Path
from typing import Any, Iterable

from civic_alerts.common.fs import read_json, write_json


class MemoryDocumentStore:
    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = threading.RLock()

    def _collection(self, name: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(name, {})

    def _persist(self, name: str) -> None:
        return None

    def add(self, collection: str, doc: dict[str, Any], doc_id: str | None = None) -> str:
        doc_id = doc_id or uuid.uuid4().hex
        with self._lock:
            docs = self._collection(collection)
            if doc_id in docs:
                raise KeyError(f"Document {collection}/{doc_id} already exists")
            docs[doc_id] = {**copy.deepcopy(doc), "id": doc_id}
            self._persist(collection)
        return doc_id

    def insert_if_absent(self, collection: str, doc_id: str, doc: dict[str, Any]) -> bool:
        with self._lock:
            docs = self._collection(collection)
            if doc_id in docs:
                return False
            docs[doc_id] = {**copy.deepcopy(doc), "id": doc_id}
            self._persist(collection)
            return True

    def compare_and_set(
        self,
        collection: str,
        doc_id: str,
        expected: dict[str, Any],
        fields: dict[str, Any],
    ) -> bool:
        with self._lock:
            current = self._collection(collection).get(doc_id)
            if current is None:
                return False
            if any(current.get(key) != value for key, value in expected.items()):
                return False
            current.update(copy.deepcopy(fields))
            self._persist(collection)
            return True

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        with self._lock:
            doc = self._collection(collection).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        with self._lock:
            current = self._collection(collection).get(doc_id)
            if current is None:
                raise KeyError(f"Document {collection}/{doc_id} not found")
            current.update(copy.deepcopy(fields))
            self._persist(collection)

    def delete(self, collection: str, doc_id: str) -> bool:
        with self._lock:
            removed = self._collection(collection).pop(doc_id, None)
            if removed is not None:
                self._persist(collection)
            return removed is not None

    def batch_delete(self, collection: str, doc_ids: Iterable[str]) -> int:
        with self._lock:
            docs = self._collection(collection)
            removed = 0
            for doc_id in doc_ids:
                if docs.pop(doc_id, None) is not None:
                    removed += 1
            if removed:
                self._persist(collection)
            return removed

    def query(self, collection: str, **equals: Any) -> list[dict[str, Any]]:
        with self._lock:
            docs = self._collection(collection)
            matched = [
                copy.deepcopy(doc)
                for doc_id, doc in sorted(docs.items())
                if all(doc.get(key) == value for key, value in equals.items())
            ]
        return matched


class JsonFileDocumentStore(MemoryDocumentStore):
    """One JSON file per collection; conditional writes are atomic within this process."""

    def __init__(self, root: Path) -> None:
        super().__init__()
        self.root = root

    def _path(self, name: str) -> Path:
        return self.root / f"{name}.json"

    def _collection(self, name: str) -> dict[str, dict[str, Any]]:
        if name not in self._collections:
            path = self._path(name)
            self._collections[name] = read_json(path) if path.exists() else {}
        return self._collections[name]

    def _persist(self, name: str) -> None:
        write_json(self._path(name), self._collections[name])
