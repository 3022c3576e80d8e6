"""JSON-file document store with schema validation.

WHY: A local reader should survive restarts without a database. One JSON
file per document is easy to inspect, back up, and delete by hand.

HOW: Each document lives in ``<dir>/<id>.json``; its position lives next
to it in ``<dir>/<id>.position.json``. Writes go to a temp file that is
atomically renamed into place. Document records are validated against
document.schema.json with jsonschema before being written and after
being read.

RULES:
- Document ids must match ^[A-Za-z0-9_-]+$ (no path traversal); an id
  that does not is never stored, so reads and deletes treat it as missing
- OS errors (permissions, full disk, missing mount) → StorageUnavailable
- A record that fails validation on write raises jsonschema.ValidationError
- A corrupt or invalid file on read is logged and treated as missing
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

import jsonschema

from swiftreader.storage.base import DocumentStore, StorageUnavailable

logger = logging.getLogger(__name__)

_SCHEMA_PATH = Path(__file__).resolve().parent / "document.schema.json"
_SAFE_ID_RE = re.compile(r"^[A-Za-z0-9_\-]+$")
_POSITION_SUFFIX = ".position.json"

_CACHED_SCHEMA: Optional[dict] = None


def _get_schema() -> dict:
    """Load and cache the stored-document JSON schema."""
    global _CACHED_SCHEMA
    if _CACHED_SCHEMA is None:
        with open(_SCHEMA_PATH, encoding="utf-8") as f:
            _CACHED_SCHEMA = json.load(f)
    return _CACHED_SCHEMA


def validate_record(record: Dict[str, Any]) -> None:
    """Raise jsonschema.ValidationError if *record* is not a valid document."""
    jsonschema.validate(instance=record, schema=_get_schema())


def is_safe_id(document_id: Optional[str]) -> bool:
    """True when *document_id* can be used as a file name inside the store."""
    return bool(_SAFE_ID_RE.match(document_id or ""))


class JsonFileStore(DocumentStore):
    """DocumentStore persisting one JSON file per document."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory).expanduser()
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageUnavailable("Cannot create data directory {}: {}".format(self.directory, exc)) from exc

    # -- paths ---------------------------------------------------------------

    def _document_path(self, document_id: str) -> Path:
        if not is_safe_id(document_id):
            raise ValueError("Invalid document id: {!r}".format(document_id))
        return self.directory / "{}.json".format(document_id)

    def _position_path(self, document_id: str) -> Path:
        if not is_safe_id(document_id):
            raise ValueError("Invalid document id: {!r}".format(document_id))
        return self.directory / "{}{}".format(document_id, _POSITION_SUFFIX)

    # -- low-level I/O -------------------------------------------------------

    def _write_json(self, path: Path, data: Dict[str, Any]) -> None:
        try:
            fd, tmp_name = tempfile.mkstemp(dir=str(self.directory), prefix=".tmp_", suffix=".json")
        except OSError as exc:
            raise StorageUnavailable("Failed to write {}: {}".format(path.name, exc)) from exc
        replaced = False
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
            os.replace(tmp_name, path)
            replaced = True
        except OSError as exc:
            raise StorageUnavailable("Failed to write {}: {}".format(path.name, exc)) from exc
        finally:
            if not replaced and os.path.exists(tmp_name):
                os.unlink(tmp_name)

    def _read_json(self, path: Path) -> Optional[Dict[str, Any]]:
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except json.JSONDecodeError:
            logger.warning("Ignoring corrupt JSON file %s", path)
            return None
        except OSError as exc:
            raise StorageUnavailable("Failed to read {}: {}".format(path.name, exc)) from exc

    # -- DocumentStore -------------------------------------------------------

    def get_document(self, document_id: str) -> Optional[Dict[str, Any]]:
        if not is_safe_id(document_id):
            return None
        record = self._read_json(self._document_path(document_id))
        if record is None:
            return None
        try:
            validate_record(record)
        except jsonschema.ValidationError as exc:
            logger.warning("Stored document %s failed validation: %s", document_id, exc.message)
            return None
        return record

    def put_document(self, record: Dict[str, Any]) -> None:
        validate_record(record)
        self._write_json(self._document_path(record["id"]), record)

    def delete_document(self, document_id: str) -> bool:
        if not is_safe_id(document_id):
            return False
        doc_path = self._document_path(document_id)
        pos_path = self._position_path(document_id)
        existed = doc_path.exists()
        try:
            for path in (doc_path, pos_path):
                if path.exists():
                    path.unlink()
        except OSError as exc:
            raise StorageUnavailable("Failed to delete {}: {}".format(document_id, exc)) from exc
        if existed:
            logger.info("Deleted document %s", document_id)
        return existed

    def list_documents(self) -> List[Dict[str, Any]]:
        records = []
        try:
            paths = sorted(self.directory.glob("*.json"))
        except OSError as exc:
            raise StorageUnavailable("Failed to list {}: {}".format(self.directory, exc)) from exc
        for path in paths:
            if path.name.endswith(_POSITION_SUFFIX) or path.name.startswith(".tmp_"):
                continue
            record = self.get_document(path.stem)
            if record is not None:
                records.append(record)
        return sorted(records, key=lambda r: r.get("updated_at", ""), reverse=True)

    def get_position(self, document_id: str) -> Optional[Dict[str, Any]]:
        if not is_safe_id(document_id):
            return None
        return self._read_json(self._position_path(document_id))

    def put_position(self, document_id: str, position: Dict[str, Any]) -> None:
        self._write_json(self._position_path(document_id), position)
