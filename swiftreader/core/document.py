"""Document model: construction, self-healing load, anchors, and records.

WHY: The token stream is built once at import and stored with the
document, so a document outlives changes to the merge rule. Loading an
old record must quietly bring it up to date without losing the reader's
place, and everything the reader anchors (position, bookmarks, notes)
has to keep pointing at the same words.

HOW: Document is a mutable dataclass owned by the session controller.
create_document_from_text() / create_document_from_pages() run the
tokenizer or page segmenter. heal_document() re-runs the merge pass and,
when anything changed, bumps token_version, rebuilds page ranges from the
stored per-page text, and re-maps the position via its word index.
document_to_record() / document_from_record() convert to and from the
JSON-compatible dicts the storage layer persists.

RULES:
- token_version starts at 1 and increments whenever the stream changes
- position is a token index, always clamped to [0, N-1]
- Bookmarks and notes store token indices; healing re-maps them by word index
- Legacy ``{"t", "kind": "punct"}`` token records are accepted on load
- A record with text but no tokens is tokenized on load
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from swiftreader.core.index_map import WordIndexMap
from swiftreader.core.ir import Bookmark, Note, PageRange, Token, is_word
from swiftreader.core.pages import SegmentedDocument, StripOptions, segment_pages, stitch_pages
from swiftreader.core.tokenizer import count_words, merge_punctuation, tokenize, tokens_to_records

logger = logging.getLogger(__name__)

SOURCE_TYPES = ("paste", "txt", "md", "pdf", "epub")

EXCERPT_WORDS_BACK = 8
EXCERPT_WORDS_FORWARD = 10
EXCERPT_MAX_CHARS = 140


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id(prefix: str = "id") -> str:
    return "{}_{}".format(prefix, uuid.uuid4().hex[:12])


@dataclass
class Document:
    """A stored document with its token stream and reading anchors.

    RULES:
    - tokens: merged stream (Word / ParagraphBreak only)
    - page_ranges / page_texts / page_numbers: empty for plain-text sources
    - position: current token index (the persisted PlaybackPosition)
    - total_read_words: lifetime count of words shown by playback
    """

    id: str
    title: str
    tokens: List[Token]
    text: str = ""
    author: str = ""
    tags: List[str] = field(default_factory=list)
    source_type: str = "paste"
    token_version: int = 1
    page_ranges: List[PageRange] = field(default_factory=list)
    page_texts: List[str] = field(default_factory=list)
    page_numbers: List[int] = field(default_factory=list)
    position: int = 0
    bookmarks: List[Bookmark] = field(default_factory=list)
    notes: List[Note] = field(default_factory=list)
    total_read_words: int = 0
    added_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)

    @property
    def word_count(self) -> int:
        return count_words(self.tokens)

    @property
    def is_paginated(self) -> bool:
        return bool(self.page_ranges)

    @property
    def is_empty(self) -> bool:
        return not self.tokens

    def clamp_position(self, token_index: int) -> int:
        return max(0, min(int(token_index), max(0, len(self.tokens) - 1)))

    def touch(self) -> None:
        self.updated_at = now_iso()


def parse_tags(raw: Optional[str]) -> List[str]:
    """Comma-separated tag text → trimmed, non-empty tags."""
    return [tag.strip() for tag in (raw or "").split(",") if tag.strip()]


def _clean_title(title: Optional[str]) -> str:
    return (title or "").strip() or "Untitled"


def create_document_from_text(
    text: str,
    title: Optional[str] = None,
    author: str = "",
    tags: Optional[Sequence[str]] = None,
    source_type: str = "paste",
) -> Document:
    """Tokenize plain text into a new Document (never raises on bad text)."""
    tokens = tokenize(text)
    doc = Document(
        id=new_id("doc"),
        title=_clean_title(title),
        tokens=tokens,
        text=text if isinstance(text, str) else "",
        author=(author or "").strip(),
        tags=list(tags or []),
        source_type=source_type if source_type in SOURCE_TYPES else "paste",
    )
    logger.info("Created document %s (%d words)", doc.id, doc.word_count)
    return doc


def create_document_from_pages(
    pages: Sequence[Any],
    title: Optional[str] = None,
    author: str = "",
    tags: Optional[Sequence[str]] = None,
    source_type: str = "pdf",
    options: Optional[StripOptions] = None,
) -> Document:
    """Segment per-page line data into a new paginated Document."""
    segmented: SegmentedDocument = segment_pages(pages, options)
    doc = Document(
        id=new_id("doc"),
        title=_clean_title(title),
        tokens=segmented.tokens,
        text="\n\n".join(t for t in segmented.page_texts if t),
        author=(author or "").strip(),
        tags=list(tags or []),
        source_type=source_type if source_type in SOURCE_TYPES else "pdf",
        page_ranges=segmented.page_ranges,
        page_texts=segmented.page_texts,
        page_numbers=segmented.page_numbers,
    )
    logger.info(
        "Created paginated document %s (%d words, %d pages)",
        doc.id, doc.word_count, len(doc.page_ranges),
    )
    return doc


def _as_records(items: Sequence[Any]) -> List[Dict[str, Any]]:
    records = []
    for item in items:
        if isinstance(item, dict):
            records.append({"t": item.get("t", item.get("text")), "kind": item.get("kind", "word")})
        else:
            records.append({"t": getattr(item, "text", None), "kind": getattr(getattr(item, "kind", None), "value", None)})
    return records


def _stored_word_index(records: Sequence[Dict[str, Any]], token_index: int) -> int:
    """Word index at or before *token_index*, counted the way the stored stream counted."""
    if not records:
        return 0
    idx = max(0, min(int(token_index), len(records) - 1))
    words_through = sum(1 for r in records[:idx + 1] if r["kind"] == "word")
    return max(0, words_through - 1)


def heal_document(doc: Document, stored: Optional[Sequence[Any]] = None) -> bool:
    """Re-run the merge pass over a loaded document.

    WHY: Streams stored by an older merge rule may still contain bare
    punctuation tokens or doubled paragraph breaks. Healing on load keeps
    every later consumer (index map, page ranges, scheduler) on the
    current invariants.

    HOW: merge_punctuation() over the stored tokens (``stored`` when given,
    else doc.tokens). If the result differs, remember the word index of
    every anchor under the old stream, swap in the new stream (re-stitching
    page texts for paginated documents), bump token_version, and translate
    anchors back to token indices.

    Returns:
        True when the stream changed.
    """
    source = list(doc.tokens if stored is None else stored)
    source_records = _as_records(source)
    healed = merge_punctuation(source)
    if tokens_to_records(healed) == source_records:
        doc.tokens = healed
        doc.position = doc.clamp_position(doc.position)
        return False

    position_word = _stored_word_index(source_records, doc.position)
    bookmark_words = [_stored_word_index(source_records, b.token_index) for b in doc.bookmarks]
    note_words = [_stored_word_index(source_records, n.token_index) for n in doc.notes]

    if doc.page_texts:
        numbers = doc.page_numbers or [r.page for r in doc.page_ranges] or list(range(1, len(doc.page_texts) + 1))
        healed, ranges = stitch_pages(doc.page_texts, numbers)
        doc.page_ranges = ranges
        doc.page_numbers = list(numbers)

    doc.tokens = healed
    doc.token_version += 1
    new_map = WordIndexMap(doc.tokens)
    doc.position = doc.clamp_position(new_map.token_index_for_word(position_word))
    for bookmark, w_idx in zip(doc.bookmarks, bookmark_words):
        bookmark.token_index = new_map.token_index_for_word(w_idx)
    for note, w_idx in zip(doc.notes, note_words):
        note.token_index = new_map.token_index_for_word(w_idx)
    doc.touch()

    logger.warning(
        "Healed token stream of %s (now v%d, %d tokens)",
        doc.id, doc.token_version, len(doc.tokens),
    )
    return True


# ---------------------------------------------------------------------------
# Anchors
# ---------------------------------------------------------------------------


def add_bookmark(doc: Document, token_index: Optional[int] = None) -> Bookmark:
    """Bookmark *token_index* (default: current position); newest first."""
    index = doc.position if token_index is None else token_index
    bookmark = Bookmark(id=new_id("bm"), token_index=doc.clamp_position(index), created_at=now_iso())
    doc.bookmarks.insert(0, bookmark)
    doc.touch()
    return bookmark


def remove_bookmark(doc: Document, bookmark_id: str) -> bool:
    before = len(doc.bookmarks)
    doc.bookmarks = [b for b in doc.bookmarks if b.id != bookmark_id]
    return len(doc.bookmarks) != before


def add_note(doc: Document, text: str, token_index: Optional[int] = None) -> Note:
    """Attach a note at *token_index* with an excerpt of the surrounding words."""
    index = doc.clamp_position(doc.position if token_index is None else token_index)
    stamp = now_iso()
    note = Note(
        id=new_id("note"),
        token_index=index,
        text=(text or "").strip(),
        excerpt=make_excerpt(doc.tokens, index),
        created_at=stamp,
        updated_at=stamp,
    )
    doc.notes.insert(0, note)
    doc.touch()
    return note


def update_note(doc: Document, note_id: str, text: str) -> Optional[Note]:
    for note in doc.notes:
        if note.id == note_id:
            note.text = (text or "").strip()
            note.updated_at = now_iso()
            return note
    return None


def delete_note(doc: Document, note_id: str) -> bool:
    before = len(doc.notes)
    doc.notes = [n for n in doc.notes if n.id != note_id]
    return len(doc.notes) != before


def find_anchor(doc: Document, anchor_id: str) -> Optional[int]:
    """Token index of a bookmark or note by id, or None."""
    for bookmark in doc.bookmarks:
        if bookmark.id == anchor_id:
            return bookmark.token_index
    for note in doc.notes:
        if note.id == anchor_id:
            return note.token_index
    return None


def make_excerpt(tokens: Sequence[Token], token_index: int) -> str:
    """Short excerpt around *token_index* built from word tokens only.

    RULES:
    - Up to 8 words before the index, then up to 10 from the index on
    - Truncated to 140 characters
    """
    if not tokens:
        return ""
    idx = max(0, min(int(token_index), len(tokens) - 1))

    before: List[str] = []
    i = idx
    while i > 0 and len(before) < EXCERPT_WORDS_BACK:
        i -= 1
        if is_word(tokens[i]):
            before.insert(0, tokens[i].text)

    after: List[str] = []
    j = idx
    while j < len(tokens) and len(after) < EXCERPT_WORDS_FORWARD:
        if is_word(tokens[j]):
            after.append(tokens[j].text)
        j += 1

    return " ".join(before + after)[:EXCERPT_MAX_CHARS]


# ---------------------------------------------------------------------------
# Small helpers used by views and the CLI
# ---------------------------------------------------------------------------


def estimate_read_minutes(word_count: int, wpm: int = 300) -> int:
    """Whole minutes to read *word_count* words (at least 1 when non-empty)."""
    if not word_count or not wpm:
        return 0
    return max(1, int(math.ceil(word_count / float(wpm))))


def format_elapsed(ms: float) -> str:
    """Milliseconds as ``MM:SS``."""
    total = max(0, int(ms // 1000))
    return "{:02d}:{:02d}".format(total // 60, total % 60)


def progress_percent(token_index: int, token_count: int) -> int:
    """Rounded percentage of the stream passed at *token_index*."""
    if token_count <= 1:
        return 0
    idx = max(0, min(int(token_index), token_count - 1))
    return int(round(idx / float(token_count - 1) * 100))


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


def document_to_record(doc: Document) -> Dict[str, Any]:
    """JSON-compatible dict for storage."""
    return {
        "id": doc.id,
        "title": doc.title,
        "author": doc.author,
        "tags": list(doc.tags),
        "source_type": doc.source_type,
        "text": doc.text,
        "tokens": tokens_to_records(doc.tokens),
        "token_version": doc.token_version,
        "word_count": doc.word_count,
        "page_ranges": [
            {
                "page": r.page,
                "start_word_index": r.start_word_index,
                "end_word_index": r.end_word_index,
                "word_count": r.word_count,
            }
            for r in doc.page_ranges
        ],
        "page_texts": list(doc.page_texts),
        "page_numbers": list(doc.page_numbers),
        "position": doc.position,
        "bookmarks": [
            {"id": b.id, "token_index": b.token_index, "created_at": b.created_at}
            for b in doc.bookmarks
        ],
        "notes": [
            {
                "id": n.id,
                "token_index": n.token_index,
                "text": n.text,
                "excerpt": n.excerpt,
                "created_at": n.created_at,
                "updated_at": n.updated_at,
            }
            for n in doc.notes
        ],
        "total_read_words": doc.total_read_words,
        "added_at": doc.added_at,
        "updated_at": doc.updated_at,
    }


def document_from_record(record: Dict[str, Any]) -> Document:
    """Rebuild a Document from a stored record and heal its stream.

    Missing fields take defaults; a record with text but no tokens is
    tokenized. The stream is then healed (see heal_document()).
    """
    raw_tokens = record.get("tokens") or []
    text = record.get("text") if isinstance(record.get("text"), str) else ""

    doc = Document(
        id=record.get("id") or new_id("doc"),
        title=_clean_title(record.get("title")),
        tokens=[],
        text=text,
        author=(record.get("author") or "").strip(),
        tags=list(record.get("tags") or []),
        source_type=record.get("source_type") or "paste",
        token_version=int(record.get("token_version") or 1),
        page_ranges=[
            PageRange(
                page=int(r["page"]),
                start_word_index=int(r["start_word_index"]),
                end_word_index=int(r["end_word_index"]),
                word_count=int(r["word_count"]),
            )
            for r in record.get("page_ranges") or []
        ],
        page_texts=list(record.get("page_texts") or []),
        page_numbers=[int(n) for n in record.get("page_numbers") or []],
        position=int(record.get("position") or 0),
        bookmarks=[
            Bookmark(id=b["id"], token_index=int(b.get("token_index", 0)), created_at=b.get("created_at", ""))
            for b in record.get("bookmarks") or []
        ],
        notes=[
            Note(
                id=n["id"],
                token_index=int(n.get("token_index", 0)),
                text=n.get("text", ""),
                excerpt=n.get("excerpt", ""),
                created_at=n.get("created_at", ""),
                updated_at=n.get("updated_at", ""),
            )
            for n in record.get("notes") or []
        ],
        total_read_words=int(record.get("total_read_words") or 0),
        added_at=record.get("added_at") or now_iso(),
        updated_at=record.get("updated_at") or now_iso(),
    )

    if raw_tokens:
        heal_document(doc, stored=raw_tokens)
    else:
        doc.tokens = tokenize(text) if text else []
        doc.position = doc.clamp_position(doc.position)
    return doc
