"""Session controller: documents, storage, and the active scheduler.

WHY: Readers import documents, open one at a time, read, bookmark, and
come back later expecting to land where they left off. Something has to
tie the pure core, the storage collaborator, and the scheduler together
without letting a slow or broken store stop the reading.

HOW: SessionController keeps every loaded Document in memory, backed by
a DocumentStore. open() heals the stored stream, restores the saved
position, builds (or reuses) the WordIndexMap from an IndexCache, and
wires a fresh PlaybackScheduler whose on_change hook persists the
position after every step. Opening another document closes the previous
scheduler first, cancelling its tick and timer tasks.

Loading is explicit: begin_loading() marks a document as resolving;
play() during that window only records the request (state LOADING) and
resolve_content() starts playback once the document arrives.

RULES:
- At most one active scheduler; switching documents closes the old one
- StorageUnavailable never escapes: it is logged, reported once through
  on_warning(), and the session keeps working from memory
- Position records carry the word index so they survive a re-merge
- Document records are written on import, heal, and anchor changes;
  positions after every scheduler mutation
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

from swiftreader.config import ReaderSettings
from swiftreader.core import document as documents
from swiftreader.core.document import Document
from swiftreader.core.index_map import IndexCache
from swiftreader.core.ir import Bookmark, Note, Progress, RenderEvent
from swiftreader.core.pages import StripOptions
from swiftreader.engine.events import PlaybackListener
from swiftreader.engine.scheduler import Clock, EngineState, PlaybackScheduler, PlaybackState, Sleep
from swiftreader.storage.base import DocumentNotFound, DocumentStore, StorageUnavailable
from swiftreader.storage.memory import MemoryStore

logger = logging.getLogger(__name__)


class SessionController:
    """Owns loaded documents and the single active PlaybackScheduler."""

    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        settings: Optional[ReaderSettings] = None,
        listener: Optional[PlaybackListener] = None,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.store = store if store is not None else MemoryStore()
        self.settings = (settings or ReaderSettings()).normalized()
        self.listener = listener or PlaybackListener()
        self._clock = clock
        self._sleep = sleep
        self._documents: Dict[str, Document] = {}
        self._index_cache = IndexCache()
        self._active: Optional[PlaybackScheduler] = None
        self._loading_id: Optional[str] = None
        self._play_requested = False
        self._storage_ok = True

    # -- storage helpers -----------------------------------------------------

    def _storage_call(self, action: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            result = fn(*args)
        except StorageUnavailable as exc:
            logger.warning("Storage unavailable while trying to %s: %s", action, exc)
            if self._storage_ok:
                self._storage_ok = False
                self.listener.on_warning("Storage unavailable; changes are kept in memory only ({})".format(exc))
            return None
        if not self._storage_ok:
            logger.info("Storage available again")
            self._storage_ok = True
        return result

    @property
    def storage_available(self) -> bool:
        return self._storage_ok

    def save_document(self, doc: Document) -> None:
        self._documents[doc.id] = doc
        self._storage_call("save document", self.store.put_document, documents.document_to_record(doc))

    def save_position(self, doc: Document) -> None:
        index_map = self._index_cache.get(doc.id, doc.token_version, doc.tokens)
        position = {
            "position": doc.position,
            "word_index": index_map.word_index_for_token(doc.position),
            "token_version": doc.token_version,
            "total_read_words": doc.total_read_words,
            "updated_at": documents.now_iso(),
        }
        self._storage_call("save position", self.store.put_position, doc.id, position)

    # -- documents -----------------------------------------------------------

    def import_text(
        self,
        text: str,
        title: Optional[str] = None,
        author: str = "",
        tags: Optional[Sequence[str]] = None,
        source_type: str = "paste",
    ) -> Document:
        doc = documents.create_document_from_text(text, title, author, tags, source_type)
        self.save_document(doc)
        return doc

    def import_pages(
        self,
        pages: Sequence[Any],
        title: Optional[str] = None,
        author: str = "",
        tags: Optional[Sequence[str]] = None,
        source_type: str = "pdf",
        options: Optional[StripOptions] = None,
    ) -> Document:
        if options is None:
            options = StripOptions(
                enabled=self.settings.strip_headers,
                ignore_phrases=self.settings.ignore_phrase_list(),
            )
        doc = documents.create_document_from_pages(pages, title, author, tags, source_type, options)
        self.save_document(doc)
        return doc

    def get_document(self, document_id: str) -> Document:
        """Loaded (and healed) document by id.

        Raises:
            DocumentNotFound: when neither memory nor the store has it.
        """
        doc = self._documents.get(document_id)
        if doc is not None:
            return doc

        record = self._storage_call("load document", self.store.get_document, document_id)
        if record is None:
            raise DocumentNotFound(document_id)

        doc = self._load_record(record)
        logger.info("Loaded document %s (%d words)", doc.id, doc.word_count)
        return doc

    def _load_record(self, record: Dict[str, Any]) -> Document:
        doc = documents.document_from_record(record)
        self._restore_position(doc)
        self._documents[doc.id] = doc
        if doc.token_version != int(record.get("token_version") or 1):
            self.save_document(doc)
        return doc

    def _restore_position(self, doc: Document) -> None:
        saved = self._storage_call("load position", self.store.get_position, doc.id)
        if not saved:
            return
        index_map = self._index_cache.get(doc.id, doc.token_version, doc.tokens)
        if int(saved.get("token_version") or 0) == doc.token_version:
            doc.position = doc.clamp_position(int(saved.get("position") or 0))
        else:
            doc.position = index_map.token_index_for_word(int(saved.get("word_index") or 0))
        doc.total_read_words = max(doc.total_read_words, int(saved.get("total_read_words") or 0))

    def list_documents(self) -> List[Document]:
        """Every known document, most recently updated first."""
        records = self._storage_call("list documents", self.store.list_documents) or []
        for record in records:
            if record["id"] not in self._documents:
                self._load_record(record)
        return sorted(self._documents.values(), key=lambda d: d.updated_at, reverse=True)

    def delete_document(self, document_id: str) -> bool:
        if self._active is not None and self._active.engine.document.id == document_id:
            self.close()
        known = self._documents.pop(document_id, None) is not None
        self._index_cache.invalidate(document_id)
        removed = self._storage_call("delete document", self.store.delete_document, document_id)
        if known or removed:
            logger.info("Deleted document %s", document_id)
        return bool(known or removed)

    # -- opening and switching -----------------------------------------------

    @property
    def active(self) -> Optional[PlaybackScheduler]:
        return self._active

    @property
    def state(self) -> PlaybackState:
        if self._loading_id is not None:
            return PlaybackState.LOADING
        if self._active is None:
            return PlaybackState.IDLE
        return self._active.state

    def open(self, document_id: str) -> PlaybackScheduler:
        """Make *document_id* the active document and show its position."""
        return self.open_document(self.get_document(document_id))

    def open_document(self, doc: Document) -> PlaybackScheduler:
        self.close()
        self._loading_id = None
        self._play_requested = False
        self._documents[doc.id] = doc
        index_map = self._index_cache.get(doc.id, doc.token_version, doc.tokens)
        engine = EngineState(document=doc, index_map=index_map, settings=self.settings)
        scheduler = PlaybackScheduler(
            engine,
            listener=self.listener,
            clock=self._clock,
            sleep=self._sleep,
            on_change=lambda: self.save_position(doc),
        )
        self._active = scheduler
        scheduler.show_current()
        logger.info("Opened document %s at token %d", doc.id, doc.position)
        return scheduler

    def close(self) -> None:
        """Close the active document, cancelling its pending tasks."""
        scheduler, self._active = self._active, None
        if scheduler is None:
            return
        scheduler.close()
        self.save_position(scheduler.engine.document)

    def begin_loading(self, document_id: str) -> None:
        """Mark *document_id* as resolving; play() will wait for it."""
        self.close()
        self._loading_id = document_id
        self._play_requested = False
        self.listener.on_state_change(PlaybackState.LOADING.value)

    def resolve_content(self, doc: Optional[Document] = None) -> Optional[PlaybackScheduler]:
        """Finish a pending load and start playback if it was requested.

        Pass the resolved Document, or None to load the pending id from
        the store. A document that does not match the pending id is
        opened without honouring the earlier play request.
        """
        pending, self._loading_id = self._loading_id, None
        play_requested, self._play_requested = self._play_requested, False
        if doc is None:
            if pending is None:
                return None
            doc = self.get_document(pending)
        if doc.id not in self._documents or self._documents[doc.id] is not doc:
            self.save_document(doc)
        scheduler = self.open_document(doc)
        if play_requested and (pending is None or pending == doc.id):
            scheduler.play()
        return scheduler

    # -- playback ------------------------------------------------------------

    def _require_active(self) -> PlaybackScheduler:
        if self._active is None:
            raise DocumentNotFound("No document is open")
        return self._active

    def play(self) -> bool:
        """Play the active document, or defer while content is loading."""
        if self._loading_id is not None:
            self._play_requested = True
            return False
        return self._require_active().play()

    def pause(self) -> None:
        if self._loading_id is not None:
            self._play_requested = False
            return
        if self._active is not None:
            self._active.pause()

    def toggle(self) -> bool:
        if self._loading_id is not None:
            self._play_requested = not self._play_requested
            return False
        return self._require_active().toggle()

    def reset(self) -> None:
        if self._active is not None:
            self._active.reset()

    def step_tokens(self, delta: int) -> int:
        return self._require_active().step_tokens(delta)

    def step_sentence(self, direction: int) -> int:
        return self._require_active().step_sentence(direction)

    def seek_word(self, word_index: int) -> int:
        return self._require_active().seek_word(word_index)

    def seek_page(self, page: int) -> Optional[int]:
        return self._require_active().seek_page(page)

    def scrub_to_word(self, word_index: int) -> None:
        self._require_active().scrub_to_word(word_index)

    def jump_to_anchor(self, anchor_id: str) -> Optional[int]:
        return self._require_active().jump_to_anchor(anchor_id)

    def update_settings(self, **changes: Any) -> ReaderSettings:
        """Apply setting changes; the active scheduler picks them up next step."""
        for name, value in changes.items():
            if value is not None and hasattr(self.settings, name):
                setattr(self.settings, name, value)
        normalized = self.settings.normalized()
        for name in ("wpm", "pause_intensity", "chunk_size"):
            setattr(self.settings, name, getattr(normalized, name))
        return self.settings

    # -- anchors -------------------------------------------------------------

    def _document_for(self, document_id: Optional[str]) -> Document:
        if document_id is None:
            return self._require_active().engine.document
        return self.get_document(document_id)

    def add_bookmark(self, document_id: Optional[str] = None, token_index: Optional[int] = None) -> Bookmark:
        doc = self._document_for(document_id)
        bookmark = documents.add_bookmark(doc, token_index)
        self.save_document(doc)
        return bookmark

    def remove_bookmark(self, bookmark_id: str, document_id: Optional[str] = None) -> bool:
        doc = self._document_for(document_id)
        removed = documents.remove_bookmark(doc, bookmark_id)
        if removed:
            doc.touch()
            self.save_document(doc)
        return removed

    def add_note(self, text: str, document_id: Optional[str] = None, token_index: Optional[int] = None) -> Note:
        doc = self._document_for(document_id)
        note = documents.add_note(doc, text, token_index)
        self.save_document(doc)
        return note

    def update_note(self, note_id: str, text: str, document_id: Optional[str] = None) -> Optional[Note]:
        doc = self._document_for(document_id)
        note = documents.update_note(doc, note_id, text)
        if note is not None:
            doc.touch()
            self.save_document(doc)
        return note

    def delete_note(self, note_id: str, document_id: Optional[str] = None) -> bool:
        doc = self._document_for(document_id)
        removed = documents.delete_note(doc, note_id)
        if removed:
            doc.touch()
            self.save_document(doc)
        return removed

    # -- reporting -----------------------------------------------------------

    def progress(self) -> Progress:
        return self._require_active().progress()

    def current_render(self) -> RenderEvent:
        return self._require_active().current_render()

    def session_stats(self) -> Dict[str, Any]:
        """{elapsed_ms, words_shown, pause_count, average_wpm} for the session."""
        if self._active is None:
            return {"elapsed_ms": 0.0, "words_shown": 0, "pause_count": 0, "average_wpm": None}
        stats = self._active.session_stats()
        return {
            "elapsed_ms": stats.elapsed_ms,
            "words_shown": stats.words_shown,
            "pause_count": stats.pause_count,
            "average_wpm": stats.average_wpm(),
        }
