"""Persistence collaborators for documents and reading positions.

WHY: The engine must not care where documents live. This package holds
the DocumentStore interface plus the two bundled backends.

HOW: base.py defines the ABC and error types, memory.py the in-process
store, json_store.py the one-file-per-document store.

RULES:
- Backends raise StorageUnavailable on failure; the engine keeps going
- Everything crossing this boundary is a JSON-compatible dict
"""

from swiftreader.storage.base import DocumentNotFound, DocumentStore, StorageUnavailable
from swiftreader.storage.json_store import JsonFileStore
from swiftreader.storage.memory import MemoryStore

__all__ = [
    "DocumentNotFound",
    "DocumentStore",
    "JsonFileStore",
    "MemoryStore",
    "StorageUnavailable",
]
