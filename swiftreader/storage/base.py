"""Abstract document store and storage error types.

WHY: Persistence is an external collaborator. The engine must work the
same whether documents live in memory, in JSON files, or nowhere at all
(storage unavailable), so it only talks to this small interface.

HOW: DocumentStore is an ABC over two key spaces, both keyed by
document id:
  documents — serialized token stream + metadata (document_to_record())
  positions — {"position", "word_index", "token_version",
               "total_read_words", "updated_at"}

RULES:
- Implementations raise StorageUnavailable for backend failures (I/O,
  quota, permissions); callers degrade to in-memory operation
- get_* return None for unknown ids (never raise for "not found")
- Records passed in and returned are plain JSON-compatible dicts
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class StorageUnavailable(Exception):
    """The storage backend cannot be used right now."""


class DocumentNotFound(KeyError):
    """No document with the requested id exists."""


class DocumentStore(ABC):
    """Abstract base for document/position persistence.

    To add a new backend:
    1. Subclass DocumentStore
    2. Implement the six abstract methods
    3. Raise StorageUnavailable for backend failures
    """

    @abstractmethod
    def get_document(self, document_id: str) -> Optional[Dict[str, Any]]:
        """Stored document record, or None."""

    @abstractmethod
    def put_document(self, record: Dict[str, Any]) -> None:
        """Insert or replace a document record (keyed by record["id"])."""

    @abstractmethod
    def delete_document(self, document_id: str) -> bool:
        """Delete a document and its position; True if it existed."""

    @abstractmethod
    def list_documents(self) -> List[Dict[str, Any]]:
        """All document records, most recently updated first."""

    @abstractmethod
    def get_position(self, document_id: str) -> Optional[Dict[str, Any]]:
        """Stored position/progress for a document, or None."""

    @abstractmethod
    def put_position(self, document_id: str, position: Dict[str, Any]) -> None:
        """Insert or replace the position/progress for a document."""
