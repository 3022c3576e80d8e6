"""FastAPI application exposing the reading engine over HTTP.

WHY: Web front-ends and scripts want to import documents, browse the
library, and drive the reader view (render at position, navigate,
bookmark, annotate) without embedding Python. FastAPI gives request
validation and OpenAPI docs for free.

HOW: One SessionController, created lazily on first use over a
JsonFileStore in the configured data directory, is injected into every
endpoint through the get_controller() dependency. Navigation endpoints
open the requested document (closing whichever was active) and answer
with the render and progress at the resulting position. Timed playback
is a client concern: a client steps with the navigate endpoint at its
own cadence.

RULES:
- Error responses use the ErrorResponse schema
- Unknown document/bookmark/note ids → 404
- Upload accepts .txt and .md only → otherwise 400
- Controller access is serialized with a lock (endpoints run in a threadpool)
- Python 3.9+ compatible (no match/case, no PEP 604 unions)
"""

from __future__ import annotations

import logging
import threading
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Annotated, List, Optional

import jsonschema
from fastapi import Depends, FastAPI, File, Form, HTTPException, UploadFile
from fastapi.responses import Response

from swiftreader import __version__
from swiftreader.config import DATA_DIR, ReaderSettings
from swiftreader.core.document import (
    Document,
    estimate_read_minutes,
    parse_tags,
    progress_percent,
)
from swiftreader.core.ir import Bookmark, Note, Progress, RenderEvent
from swiftreader.core.pages import StripOptions
from swiftreader.engine.scheduler import PlaybackScheduler
from swiftreader.engine.session import SessionController
from swiftreader.server.models import (
    BookmarkModel,
    BookmarkRequest,
    DocumentDetail,
    DocumentSummary,
    ErrorResponse,
    HealthResponse,
    NavigateAction,
    NavigateRequest,
    NoteModel,
    NoteRequest,
    NoteUpdateRequest,
    PageRangeModel,
    PagesDocumentRequest,
    ProgressModel,
    ReaderStateResponse,
    RenderModel,
    TextDocumentRequest,
)
from swiftreader.storage.base import DocumentNotFound, StorageUnavailable
from swiftreader.storage.json_store import JsonFileStore
from swiftreader.storage.memory import MemoryStore

logger = logging.getLogger(__name__)

UPLOAD_SUFFIXES = {".txt": "txt", ".md": "md"}

# ---------------------------------------------------------------------------
# Controller setup
# ---------------------------------------------------------------------------

_controller: Optional[SessionController] = None
_lock = threading.RLock()


def get_controller() -> SessionController:
    """The process-wide SessionController (created on first use)."""
    global _controller
    with _lock:
        if _controller is None:
            try:
                store = JsonFileStore(DATA_DIR)
            except StorageUnavailable as exc:
                logger.warning("Falling back to in-memory storage: %s", exc)
                store = MemoryStore()
            _controller = SessionController(store=store, settings=ReaderSettings.from_env())
        return _controller


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Persist the active document's position on shutdown."""
    yield
    with _lock:
        if _controller is not None:
            _controller.close()


app = FastAPI(
    lifespan=lifespan,
    title="SwiftReader API",
    description=(
        "REST API for the SwiftReader RSVP reading engine. Import text or "
        "per-page line data, browse the library, and drive the reader view: "
        "render at the current position, step by words or sentences, jump "
        "to pages and bookmarks, and keep notes."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

Controller = Annotated[SessionController, Depends(get_controller)]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _not_found(what: str, ident: str) -> HTTPException:
    return HTTPException(status_code=404, detail="{} not found: {}".format(what, ident))


def _load(controller: SessionController, document_id: str) -> Document:
    try:
        return controller.get_document(document_id)
    except DocumentNotFound:
        raise _not_found("Document", document_id)


def _open(controller: SessionController, document_id: str) -> PlaybackScheduler:
    active = controller.active
    if active is not None and active.engine.document.id == document_id:
        return active
    try:
        return controller.open(document_id)
    except DocumentNotFound:
        raise _not_found("Document", document_id)


def _import(controller: SessionController, method: str, *args, **kwargs) -> Document:
    """Run an import on the controller; a record that fails validation is a 500."""
    try:
        return getattr(controller, method)(*args, **kwargs)
    except jsonschema.ValidationError:
        logger.exception("Import pipeline failed (%s)", method)
        raise HTTPException(status_code=500, detail="Imported document could not be stored")


def _summary_fields(doc: Document, wpm: int) -> dict:
    return dict(
        id=doc.id,
        title=doc.title,
        author=doc.author,
        tags=list(doc.tags),
        source_type=doc.source_type,
        word_count=doc.word_count,
        token_count=len(doc.tokens),
        token_version=doc.token_version,
        page_count=len(doc.page_ranges),
        position=doc.position,
        percent_complete=progress_percent(doc.position, len(doc.tokens)),
        estimated_minutes=estimate_read_minutes(doc.word_count, wpm),
        updated_at=doc.updated_at,
    )


def _bookmark_model(bookmark: Bookmark) -> BookmarkModel:
    return BookmarkModel(id=bookmark.id, token_index=bookmark.token_index, created_at=bookmark.created_at)


def _note_model(note: Note) -> NoteModel:
    return NoteModel(
        id=note.id,
        token_index=note.token_index,
        text=note.text,
        excerpt=note.excerpt,
        created_at=note.created_at,
        updated_at=note.updated_at,
    )


def _document_detail(doc: Document, wpm: int) -> DocumentDetail:
    return DocumentDetail(
        added_at=doc.added_at,
        total_read_words=doc.total_read_words,
        page_ranges=[
            PageRangeModel(
                page=r.page,
                start_word_index=r.start_word_index,
                end_word_index=r.end_word_index,
                word_count=r.word_count,
            )
            for r in doc.page_ranges
        ],
        bookmarks=[_bookmark_model(b) for b in doc.bookmarks],
        notes=[_note_model(n) for n in doc.notes],
        **_summary_fields(doc, wpm),
    )


def _render_model(event: RenderEvent) -> RenderModel:
    return RenderModel(
        kind=event.kind.value,
        left=event.left,
        pivot=event.pivot,
        right=event.right,
        text=event.text,
        token_index=event.token_index,
        label=event.label,
        word_count=event.word_count,
    )


def _progress_model(progress: Progress) -> ProgressModel:
    return ProgressModel(
        percent_complete=progress.percent_complete,
        word_index=progress.word_index,
        total_words=progress.total_words,
        token_index=progress.token_index,
        page_number=progress.page_number,
    )


def _reader_state(scheduler: PlaybackScheduler) -> ReaderStateResponse:
    return ReaderStateResponse(
        document_id=scheduler.engine.document.id,
        state=scheduler.state.value,
        render=_render_model(scheduler.current_render()),
        progress=_progress_model(scheduler.progress()),
    )


# ---------------------------------------------------------------------------
# Endpoints: Documents
# ---------------------------------------------------------------------------


@app.post(
    "/documents",
    response_model=DocumentDetail,
    status_code=201,
    tags=["documents"],
    summary="Create a document from text",
    description="Tokenize pasted text into a new document. Blank text creates an empty document.",
)
def create_text_document(body: TextDocumentRequest, controller: Controller) -> DocumentDetail:
    with _lock:
        doc = _import(
            controller,
            "import_text",
            body.text,
            title=body.title,
            author=body.author,
            tags=body.tags,
            source_type=body.source_type.value,
        )
        return _document_detail(doc, controller.settings.wpm)


@app.post(
    "/documents/upload",
    response_model=DocumentDetail,
    status_code=201,
    tags=["documents"],
    summary="Create a document from an uploaded file",
    description="Upload a .txt or .md file. The title defaults to the file name without its extension.",
    responses={
        400: {"model": ErrorResponse, "description": "Unsupported file type"},
    },
)
async def upload_document(
    controller: Controller,
    file: Annotated[UploadFile, File(description="Plain text or Markdown file.")],
    title: Annotated[Optional[str], Form(description="Document title.")] = None,
    author: Annotated[str, Form(description="Author name.")] = "",
    tags: Annotated[str, Form(description="Comma-separated tags.")] = "",
) -> DocumentDetail:
    filename = Path(file.filename or "upload").name
    suffix = Path(filename).suffix.lower()
    if suffix not in UPLOAD_SUFFIXES:
        raise HTTPException(
            status_code=400,
            detail="Unsupported file type '{}'. Supported formats: {}".format(
                suffix, ", ".join(sorted(UPLOAD_SUFFIXES))
            ),
        )
    content = await file.read()
    text = content.decode("utf-8", errors="replace")
    with _lock:
        doc = _import(
            controller,
            "import_text",
            text,
            title=title or Path(filename).stem,
            author=author,
            tags=parse_tags(tags),
            source_type=UPLOAD_SUFFIXES[suffix],
        )
        return _document_detail(doc, controller.settings.wpm)


@app.post(
    "/documents/pages",
    response_model=DocumentDetail,
    status_code=201,
    tags=["documents"],
    summary="Create a paginated document from page line data",
    description=(
        "Segment per-page extracted lines into a document, removing repeated "
        "headers/footers, page numbers, and ignore-phrases, and recording the "
        "word range of every page."
    ),
)
def create_paged_document(body: PagesDocumentRequest, controller: Controller) -> DocumentDetail:
    settings = controller.settings
    options = StripOptions(
        enabled=settings.strip_headers if body.strip_headers is None else body.strip_headers,
        ignore_phrases=settings.ignore_phrase_list() if body.ignore_phrases is None else list(body.ignore_phrases),
    )
    pages = [page.model_dump() for page in body.pages]
    with _lock:
        doc = _import(
            controller,
            "import_pages",
            pages,
            title=body.title,
            author=body.author,
            tags=body.tags,
            source_type=body.source_type.value,
            options=options,
        )
        return _document_detail(doc, settings.wpm)


@app.get(
    "/documents",
    response_model=List[DocumentSummary],
    tags=["documents"],
    summary="List documents",
    description="All documents in the library, most recently updated first.",
)
def list_documents(controller: Controller) -> List[DocumentSummary]:
    with _lock:
        wpm = controller.settings.wpm
        return [DocumentSummary(**_summary_fields(doc, wpm)) for doc in controller.list_documents()]


@app.get(
    "/documents/{document_id}",
    response_model=DocumentDetail,
    tags=["documents"],
    summary="Get document details",
    responses={404: {"model": ErrorResponse, "description": "Document not found"}},
)
def get_document(document_id: str, controller: Controller) -> DocumentDetail:
    with _lock:
        return _document_detail(_load(controller, document_id), controller.settings.wpm)


@app.delete(
    "/documents/{document_id}",
    status_code=204,
    tags=["documents"],
    summary="Delete a document",
    description="Delete a document together with its saved position, bookmarks, and notes.",
    responses={404: {"model": ErrorResponse, "description": "Document not found"}},
)
def delete_document(document_id: str, controller: Controller) -> Response:
    with _lock:
        if not controller.delete_document(document_id):
            raise _not_found("Document", document_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Endpoints: Reader
# ---------------------------------------------------------------------------


@app.get(
    "/documents/{document_id}/reader",
    response_model=ReaderStateResponse,
    tags=["reader"],
    summary="Open a document in the reader",
    description="Render the word at the saved position and report progress.",
    responses={404: {"model": ErrorResponse, "description": "Document not found"}},
)
def get_reader_state(document_id: str, controller: Controller) -> ReaderStateResponse:
    with _lock:
        return _reader_state(_open(controller, document_id))


@app.post(
    "/documents/{document_id}/navigate",
    response_model=ReaderStateResponse,
    tags=["reader"],
    summary="Navigate within a document",
    description=(
        "Step by tokens or sentences, or jump to a token, word, page, or "
        "anchor. Indices are clamped to the document."
    ),
    responses={
        400: {"model": ErrorResponse, "description": "Action not applicable to this document"},
        404: {"model": ErrorResponse, "description": "Document or anchor not found"},
    },
)
def navigate(document_id: str, body: NavigateRequest, controller: Controller) -> ReaderStateResponse:
    with _lock:
        scheduler = _open(controller, document_id)
        action = body.action
        if action is NavigateAction.step:
            scheduler.step_tokens(body.value)
        elif action is NavigateAction.sentence:
            scheduler.step_sentence(-1 if body.value < 0 else 1)
        elif action is NavigateAction.token:
            scheduler.seek_token(body.value)
        elif action is NavigateAction.word:
            scheduler.seek_word(body.value)
        elif action is NavigateAction.page:
            if scheduler.seek_page(body.value) is None:
                raise HTTPException(status_code=400, detail="Document has no pages")
        elif action is NavigateAction.anchor:
            if not body.anchor_id:
                raise HTTPException(status_code=400, detail="anchor_id is required for the anchor action")
            if scheduler.jump_to_anchor(body.anchor_id) is None:
                raise _not_found("Anchor", body.anchor_id)
        return _reader_state(scheduler)


# ---------------------------------------------------------------------------
# Endpoints: Bookmarks & notes
# ---------------------------------------------------------------------------


@app.post(
    "/documents/{document_id}/bookmarks",
    response_model=BookmarkModel,
    status_code=201,
    tags=["annotations"],
    summary="Add a bookmark",
    responses={404: {"model": ErrorResponse, "description": "Document not found"}},
)
def add_bookmark(document_id: str, body: BookmarkRequest, controller: Controller) -> BookmarkModel:
    with _lock:
        _load(controller, document_id)
        return _bookmark_model(controller.add_bookmark(document_id, body.token_index))


@app.delete(
    "/documents/{document_id}/bookmarks/{bookmark_id}",
    status_code=204,
    tags=["annotations"],
    summary="Remove a bookmark",
    responses={404: {"model": ErrorResponse, "description": "Document or bookmark not found"}},
)
def remove_bookmark(document_id: str, bookmark_id: str, controller: Controller) -> Response:
    with _lock:
        _load(controller, document_id)
        if not controller.remove_bookmark(bookmark_id, document_id):
            raise _not_found("Bookmark", bookmark_id)
    return Response(status_code=204)


@app.post(
    "/documents/{document_id}/notes",
    response_model=NoteModel,
    status_code=201,
    tags=["annotations"],
    summary="Add a note",
    description="Attach a note at a token index; an excerpt of the surrounding words is stored with it.",
    responses={404: {"model": ErrorResponse, "description": "Document not found"}},
)
def add_note(document_id: str, body: NoteRequest, controller: Controller) -> NoteModel:
    with _lock:
        _load(controller, document_id)
        return _note_model(controller.add_note(body.text, document_id, body.token_index))


@app.patch(
    "/documents/{document_id}/notes/{note_id}",
    response_model=NoteModel,
    tags=["annotations"],
    summary="Edit a note",
    responses={404: {"model": ErrorResponse, "description": "Document or note not found"}},
)
def update_note(document_id: str, note_id: str, body: NoteUpdateRequest, controller: Controller) -> NoteModel:
    with _lock:
        _load(controller, document_id)
        note = controller.update_note(note_id, body.text, document_id)
        if note is None:
            raise _not_found("Note", note_id)
        return _note_model(note)


@app.delete(
    "/documents/{document_id}/notes/{note_id}",
    status_code=204,
    tags=["annotations"],
    summary="Delete a note",
    responses={404: {"model": ErrorResponse, "description": "Document or note not found"}},
)
def delete_note(document_id: str, note_id: str, controller: Controller) -> Response:
    with _lock:
        _load(controller, document_id)
        if not controller.delete_note(note_id, document_id):
            raise _not_found("Note", note_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Endpoints: Health
# ---------------------------------------------------------------------------


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["health"],
    summary="Health check",
    description="Liveness check; also reports whether document storage is currently usable.",
)
def health_check(controller: Controller) -> HealthResponse:
    return HealthResponse(
        status="ok",
        version=__version__,
        storage="ok" if controller.storage_available else "unavailable",
    )


def run_api(host: str = "127.0.0.1", port: int = 8000) -> None:
    """Serve the API with uvicorn."""
    import uvicorn
    uvicorn.run(app, host=host, port=port)
