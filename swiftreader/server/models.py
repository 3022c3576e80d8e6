"""Pydantic request/response models for the HTTP API.

WHY: The FastAPI endpoints need typed schemas for request validation,
response serialization, and automatic OpenAPI documentation.

HOW: One model per request body or response shape. Enums cover closed
sets (navigation actions, source types). Every field carries a
Field(description=...) so the /docs UI explains itself.

RULES:
- Response models never expose raw token streams, only counts
- Index fields are token indices unless the name says word_index
- Python 3.9+ compatible (no PEP 604 unions, use Optional from typing)
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class SourceType(str, Enum):
    paste = "paste"
    txt = "txt"
    md = "md"
    pdf = "pdf"
    epub = "epub"


class NavigateAction(str, Enum):
    """Reader navigation actions.

    RULES:
    - step: move by `value` tokens (negative moves back)
    - sentence: previous (value < 0) or next (value >= 0) sentence start
    - token / word: jump to a token index / word index
    - page: jump to the first word of page `value`
    - anchor: jump to the bookmark or note named by `anchor_id`
    """

    step = "step"
    sentence = "sentence"
    token = "token"
    word = "word"
    page = "page"
    anchor = "anchor"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class TextDocumentRequest(BaseModel):
    """Create a document from pasted text."""

    text: str = Field(description="Raw document text. Blank text yields an empty document.")
    title: Optional[str] = Field(default=None, description="Document title (defaults to 'Untitled').")
    author: str = Field(default="", description="Author name.")
    tags: List[str] = Field(default_factory=list, description="Free-form tags.")
    source_type: SourceType = Field(default=SourceType.paste, description="Where the text came from.")


class PageLineModel(BaseModel):
    text: str = Field(description="Extracted line text.")
    y: float = Field(description="Vertical position of the line from the top of the page.")


class PageModel(BaseModel):
    page_index: int = Field(description="0-based page index in the source.")
    page_height: float = Field(description="Page height in the same unit as line positions.")
    lines: List[PageLineModel] = Field(default_factory=list, description="Lines in reading order.")


class PagesDocumentRequest(BaseModel):
    """Create a paginated document from per-page line data.

    RULES:
    - strip_headers / ignore_phrases override the server settings when given
    """

    pages: List[PageModel] = Field(description="Per-page extracted lines.")
    title: Optional[str] = Field(default=None, description="Document title.")
    author: str = Field(default="", description="Author name.")
    tags: List[str] = Field(default_factory=list, description="Free-form tags.")
    source_type: SourceType = Field(default=SourceType.pdf, description="Source format of the pages.")
    strip_headers: Optional[bool] = Field(default=None, description="Remove repeated headers/footers and page numbers.")
    ignore_phrases: Optional[List[str]] = Field(default=None, description="Literal phrases always removed.")


class NavigateRequest(BaseModel):
    action: NavigateAction = Field(description="Navigation action to perform.")
    value: int = Field(default=1, description="Step size, direction, index, or page number, depending on action.")
    anchor_id: Optional[str] = Field(default=None, description="Bookmark or note id for the 'anchor' action.")


class BookmarkRequest(BaseModel):
    token_index: Optional[int] = Field(default=None, description="Token index to bookmark (defaults to current position).")


class NoteRequest(BaseModel):
    text: str = Field(description="Note text.")
    token_index: Optional[int] = Field(default=None, description="Token index to anchor to (defaults to current position).")


class NoteUpdateRequest(BaseModel):
    text: str = Field(description="Replacement note text.")


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class PageRangeModel(BaseModel):
    page: int = Field(description="1-based source page number.")
    start_word_index: int = Field(description="First word index on the page.")
    end_word_index: int = Field(description="Last word index on the page (inclusive).")
    word_count: int = Field(description="Words on the page after cleaning.")


class BookmarkModel(BaseModel):
    id: str = Field(description="Bookmark id.")
    token_index: int = Field(description="Bookmarked token index.")
    created_at: str = Field(description="ISO 8601 creation time.")


class NoteModel(BaseModel):
    id: str = Field(description="Note id.")
    token_index: int = Field(description="Anchored token index.")
    text: str = Field(description="Note text.")
    excerpt: str = Field(description="Words around the anchor.")
    created_at: str = Field(description="ISO 8601 creation time.")
    updated_at: str = Field(description="ISO 8601 last edit time.")


class DocumentSummary(BaseModel):
    """Library listing entry."""

    id: str = Field(description="Document id.")
    title: str = Field(description="Document title.")
    author: str = Field(description="Author name.")
    tags: List[str] = Field(description="Free-form tags.")
    source_type: str = Field(description="Source type (paste, txt, md, pdf, epub).")
    word_count: int = Field(description="Number of word tokens.")
    token_count: int = Field(description="Number of tokens including paragraph breaks.")
    token_version: int = Field(description="Stream version, bumped whenever the stream is re-merged.")
    page_count: int = Field(description="Number of source pages (0 for plain text).")
    position: int = Field(description="Current token index.")
    percent_complete: int = Field(description="Reading progress in percent.")
    estimated_minutes: int = Field(description="Estimated reading time at the configured wpm.")
    updated_at: str = Field(description="ISO 8601 last update time.")


class DocumentDetail(DocumentSummary):
    """Full document metadata including anchors and page ranges."""

    added_at: str = Field(description="ISO 8601 import time.")
    total_read_words: int = Field(description="Lifetime words shown by playback.")
    page_ranges: List[PageRangeModel] = Field(default_factory=list, description="Word-index span per page.")
    bookmarks: List[BookmarkModel] = Field(default_factory=list, description="Bookmarks, newest first.")
    notes: List[NoteModel] = Field(default_factory=list, description="Notes, newest first.")


class RenderModel(BaseModel):
    """What the reader should display at the fixed gaze point."""

    kind: str = Field(description="word, paragraph, or empty.")
    left: str = Field(description="Text left of the pivot character.")
    pivot: str = Field(description="Pivot character (or glyph for non-words).")
    right: str = Field(description="Text right of the pivot character.")
    text: str = Field(description="left + pivot + right.")
    token_index: int = Field(description="Token index being displayed.")
    label: Optional[str] = Field(default=None, description="Label for non-word displays.")
    word_count: int = Field(default=0, description="Words in the displayed chunk.")


class ProgressModel(BaseModel):
    percent_complete: int = Field(description="Reading progress in percent.")
    word_index: int = Field(description="Current word index.")
    total_words: int = Field(description="Total number of words.")
    token_index: int = Field(description="Current token index.")
    page_number: Optional[int] = Field(default=None, description="Current source page, for paginated documents.")


class ReaderStateResponse(BaseModel):
    """Reader view after opening or navigating a document."""

    document_id: str = Field(description="Document id.")
    state: str = Field(description="Playback state (idle, loading, playing, paused).")
    render: RenderModel = Field(description="Display at the current position.")
    progress: ProgressModel = Field(description="Position summary.")


class ErrorResponse(BaseModel):
    """Standard error response body."""

    detail: str = Field(description="Human-readable error description.")


class HealthResponse(BaseModel):
    status: str = Field(description="Service health status.", json_schema_extra={"example": "ok"})
    version: str = Field(description="API version string.", json_schema_extra={"example": "0.1.0"})
    storage: str = Field(description="'ok' or 'unavailable'.", json_schema_extra={"example": "ok"})
