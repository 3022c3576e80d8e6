"""Command-line interface for SwiftReader.

WHY: The quickest way to try the engine is a terminal: import a text
file, list the library, and read it word by word right where the cursor
is. The CLI wires the session controller to a JSON-file store and a
terminal listener.

HOW: argparse with one subcommand per action (import, list, info, read,
delete, serve). ``read`` runs the asyncio scheduler via asyncio.run()
and redraws a single terminal line per step, aligning every word's ORP
pivot on the same column. Status messages go to stderr; listings go to
stdout.

RULES:
- --data-dir overrides SWIFTREADER_DATA_DIR for every subcommand
- import: .txt/.md files (or "-" for stdin) become text documents,
  .json files holding page line data become paginated documents
- read: resumes at the saved position; Ctrl-C stops and keeps the position
- Errors print "Error: ..." to stderr and exit with status 1
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, NoReturn, Optional, TextIO

from swiftreader.config import DATA_DIR, ReaderSettings
from swiftreader.core.document import (
    Document,
    estimate_read_minutes,
    format_elapsed,
    parse_tags,
    progress_percent,
)
from swiftreader.core.ir import RenderEvent, RenderKind
from swiftreader.core.pages import StripOptions
from swiftreader.engine.events import PlaybackListener
from swiftreader.engine.session import SessionController
from swiftreader.storage.base import DocumentNotFound, StorageUnavailable
from swiftreader.storage.json_store import JsonFileStore

TEXT_SUFFIXES = {".txt": "txt", ".md": "md"}

# Column the pivot character is drawn in.
PIVOT_COLUMN = 14
LINE_WIDTH = 48


def _status(msg: str) -> None:
    """Print a status message to stderr."""
    print(msg, file=sys.stderr, flush=True)


def _fail(msg: str) -> NoReturn:
    print("Error: {}".format(msg), file=sys.stderr)
    sys.exit(1)


class TerminalListener(PlaybackListener):
    """Draws each render on one terminal line with the pivot aligned.

    RULES:
    - The pivot is highlighted (ANSI red) only when the stream is a TTY
    - stopped is set when playback leaves the playing state or when
      max_words words have been shown
    """

    def __init__(self, stream: Optional[TextIO] = None, max_words: Optional[int] = None) -> None:
        self.stream = stream or sys.stdout
        self.color = hasattr(self.stream, "isatty") and self.stream.isatty()
        self.max_words = max_words
        self.words = 0
        self.page: Optional[int] = None
        self.stopped = asyncio.Event()
        self._playing = False

    def format_event(self, event: RenderEvent) -> str:
        if event.kind is RenderKind.WORD:
            pivot = "\x1b[31m{}\x1b[0m".format(event.pivot) if self.color else event.pivot
            pad = " " * max(0, PIVOT_COLUMN - len(event.left))
            return pad + event.left + pivot + event.right
        label = " {}".format(event.label) if event.label else ""
        return " " * PIVOT_COLUMN + event.pivot + label

    def on_render(self, event: RenderEvent) -> None:
        line = self.format_event(event)
        self.stream.write("\r" + line + " " * max(0, LINE_WIDTH - len(line)))
        self.stream.flush()
        if self._playing:
            self.words += event.word_count
            if self.max_words is not None and self.words >= self.max_words:
                self.stopped.set()

    def on_page_sync(self, page_number: int) -> None:
        self.page = page_number

    def on_state_change(self, state: str) -> None:
        self._playing = state == "playing"
        if state in ("paused", "idle"):
            self.stopped.set()

    def on_warning(self, message: str) -> None:
        _status("\nWarning: {}".format(message))


def _make_controller(args: argparse.Namespace, listener: Optional[PlaybackListener] = None) -> SessionController:
    data_dir = Path(args.data_dir) if args.data_dir else DATA_DIR
    try:
        store = JsonFileStore(data_dir)
    except StorageUnavailable as exc:
        _fail(str(exc))
    return SessionController(store=store, settings=ReaderSettings.from_env(), listener=listener)


def _load_pages(path: Path) -> List[Any]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("pages")
    if not isinstance(data, list):
        raise ValueError("{} does not contain a list of pages".format(path))
    return data


def _describe(doc: Document) -> str:
    return "{:<18} {:>3}%  {:>7} words  {}".format(
        doc.id,
        progress_percent(doc.position, len(doc.tokens)),
        doc.word_count,
        doc.title,
    )


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


def _cmd_import(args: argparse.Namespace) -> None:
    controller = _make_controller(args)
    tags = parse_tags(args.tags)

    if args.path == "-":
        doc = controller.import_text(sys.stdin.read(), title=args.title, author=args.author, tags=tags)
    else:
        path = Path(args.path)
        if not path.exists():
            _fail("File not found: {}".format(path))
        suffix = path.suffix.lower()
        if suffix == ".json":
            try:
                pages = _load_pages(path)
            except ValueError as exc:
                _fail(str(exc))
            options = StripOptions(
                enabled=args.strip_headers,
                ignore_phrases=controller.settings.ignore_phrase_list() + list(args.ignore_phrase or []),
            )
            doc = controller.import_pages(
                pages, title=args.title or path.stem, author=args.author, tags=tags, options=options,
            )
        elif suffix in TEXT_SUFFIXES:
            text = path.read_text(encoding="utf-8", errors="replace")
            doc = controller.import_text(
                text, title=args.title or path.stem, author=args.author, tags=tags,
                source_type=TEXT_SUFFIXES[suffix],
            )
        else:
            _fail("Unsupported file type '{}'. Supported formats: .json, .md, .txt".format(suffix))

    if doc.is_empty:
        _status("Warning: no readable text found")
    _status("Imported {} ({} words, ~{} min)".format(
        doc.title, doc.word_count, estimate_read_minutes(doc.word_count, controller.settings.wpm)
    ))
    print(doc.id)


def _cmd_list(args: argparse.Namespace) -> None:
    controller = _make_controller(args)
    docs = controller.list_documents()
    if not docs:
        _status("Library is empty.")
        return
    for doc in docs:
        print(_describe(doc))


def _cmd_info(args: argparse.Namespace) -> None:
    controller = _make_controller(args)
    try:
        doc = controller.get_document(args.document_id)
    except DocumentNotFound:
        _fail("Document not found: {}".format(args.document_id))

    wpm = controller.settings.wpm
    print("Title:     {}".format(doc.title))
    if doc.author:
        print("Author:    {}".format(doc.author))
    if doc.tags:
        print("Tags:      {}".format(", ".join(doc.tags)))
    print("Source:    {}".format(doc.source_type))
    print("Words:     {} (~{} min at {} wpm)".format(doc.word_count, estimate_read_minutes(doc.word_count, wpm), wpm))
    if doc.page_ranges:
        print("Pages:     {}".format(len(doc.page_ranges)))
    print("Progress:  {}% (token {} of {})".format(
        progress_percent(doc.position, len(doc.tokens)), doc.position, len(doc.tokens)
    ))
    print("Read:      {} words".format(doc.total_read_words))
    for bookmark in doc.bookmarks:
        print("Bookmark   {} @ {}".format(bookmark.id, bookmark.token_index))
    for note in doc.notes:
        print("Note       {} @ {}: {}".format(note.id, note.token_index, note.text))


async def _read(args: argparse.Namespace) -> dict:
    listener = TerminalListener(max_words=args.max_words)
    controller = _make_controller(args, listener)
    controller.update_settings(
        wpm=args.wpm,
        chunk_size=args.chunk_size,
        pause_intensity=args.pause_intensity,
        auto_pause=args.auto_pause,
    )
    try:
        scheduler = controller.open(args.document_id)
    except DocumentNotFound:
        _fail("Document not found: {}".format(args.document_id))

    if args.from_start:
        scheduler.seek_token(0)
    if not controller.play():
        _status("\nNo readable text.")
        return controller.session_stats()

    try:
        await listener.stopped.wait()
    finally:
        stats = controller.session_stats()
        controller.close()
        listener.stream.write("\n")
    return stats


def _cmd_read(args: argparse.Namespace) -> None:
    try:
        stats = asyncio.run(_read(args))
    except KeyboardInterrupt:
        _status("\nStopped.")
        sys.exit(130)
    average = stats["average_wpm"]
    _status("Read {} words in {} ({} wpm average, {} pauses)".format(
        stats["words_shown"],
        format_elapsed(stats["elapsed_ms"]),
        average if average is not None else "-",
        stats["pause_count"],
    ))


def _cmd_delete(args: argparse.Namespace) -> None:
    controller = _make_controller(args)
    if not controller.delete_document(args.document_id):
        _fail("Document not found: {}".format(args.document_id))
    _status("Deleted {}".format(args.document_id))


def _cmd_serve(args: argparse.Namespace) -> None:
    from swiftreader.server.app import run_api
    run_api(host=args.host, port=args.port)


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI.

    WHY: Separating parser construction from main() lets tests inspect
    the parser without touching storage.
    """
    parser = argparse.ArgumentParser(
        prog="swiftreader",
        description="RSVP speed reader: import documents and read them one word at a time.",
    )
    parser.add_argument(
        "--data-dir",
        default=None,
        help="Directory holding the document library (default: {}).".format(DATA_DIR),
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log engine activity to stderr.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_import = sub.add_parser("import", help="Import a .txt/.md file, page JSON, or stdin ('-').")
    p_import.add_argument("path", help="File to import, or '-' to read text from stdin.")
    p_import.add_argument("--title", default=None, help="Document title (default: file name).")
    p_import.add_argument("--author", default="", help="Author name.")
    p_import.add_argument("--tags", default="", help="Comma-separated tags.")
    p_import.add_argument(
        "--strip-headers",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Remove repeated headers/footers and page numbers from page JSON (default: %(default)s).",
    )
    p_import.add_argument(
        "--ignore-phrase",
        action="append",
        default=None,
        help="Phrase to always strip from page JSON. Can be specified multiple times.",
    )
    p_import.set_defaults(func=_cmd_import)

    p_list = sub.add_parser("list", help="List documents in the library.")
    p_list.set_defaults(func=_cmd_list)

    p_info = sub.add_parser("info", help="Show details of one document.")
    p_info.add_argument("document_id")
    p_info.set_defaults(func=_cmd_info)

    p_read = sub.add_parser("read", help="Read a document in the terminal.")
    p_read.add_argument("document_id")
    p_read.add_argument("--wpm", type=int, default=None, help="Words per minute (150-1200).")
    p_read.add_argument("--chunk-size", type=int, default=None, help="Words shown per step (1-4).")
    p_read.add_argument("--pause-intensity", type=int, default=None, help="Punctuation pause, 0-200.")
    p_read.add_argument(
        "--auto-pause",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Pause longer on punctuation and paragraph breaks.",
    )
    p_read.add_argument("--from-start", action="store_true", help="Start at the beginning instead of the saved position.")
    p_read.add_argument("--max-words", type=int, default=None, help="Stop after this many words.")
    p_read.set_defaults(func=_cmd_read)

    p_delete = sub.add_parser("delete", help="Delete a document.")
    p_delete.add_argument("document_id")
    p_delete.set_defaults(func=_cmd_delete)

    p_serve = sub.add_parser("serve", help="Run the HTTP API.")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8000)
    p_serve.set_defaults(func=_cmd_serve)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for ``python -m swiftreader`` and the console script.

    RULES:
    - argv=None means use sys.argv (normal CLI invocation)
    - Explicit argv is for testing
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    args.func(args)


if __name__ == "__main__":
    main()
