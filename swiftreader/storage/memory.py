"""In-memory document store.

WHY: Tests, the HTTP façade, and the fallback path when disk storage is
unavailable all need a store with no external dependencies.

HOW: Two dicts guarded by a threading.Lock. Records are deep-copied on
the way in and out so callers can never mutate stored state in place.

RULES:
- All public methods acquire self._lock
- Returned records are copies, not live references
"""

from __future__ import annotations

import copy
import threading
from typing import Any, Dict, List, Optional

from swiftreader.storage.base import DocumentStore


class MemoryStore(DocumentStore):
    """Thread-safe dict-backed DocumentStore."""

    def __init__(self) -> None:
        self._documents: Dict[str, Dict[str, Any]] = {}
        self._positions: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get_document(self, document_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._documents.get(document_id)
            return copy.deepcopy(record) if record is not None else None

    def put_document(self, record: Dict[str, Any]) -> None:
        with self._lock:
            self._documents[record["id"]] = copy.deepcopy(record)

    def delete_document(self, document_id: str) -> bool:
        with self._lock:
            self._positions.pop(document_id, None)
            return self._documents.pop(document_id, None) is not None

    def list_documents(self) -> List[Dict[str, Any]]:
        with self._lock:
            records = [copy.deepcopy(r) for r in self._documents.values()]
        return sorted(records, key=lambda r: r.get("updated_at", ""), reverse=True)

    def get_position(self, document_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            position = self._positions.get(document_id)
            return dict(position) if position is not None else None

    def put_position(self, document_id: str, position: Dict[str, Any]) -> None:
        with self._lock:
            self._positions[document_id] = dict(position)
