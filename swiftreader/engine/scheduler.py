"""Timed RSVP playback over one document's token stream.

WHY: Showing one word at a time only works if the cadence is steady.
A naive fixed interval drifts whenever a pause or a slow callback
stretches a step, and overlapping timers from a previous document can
scribble over the current one. The scheduler owns both problems.

HOW: One asyncio task per playing document runs _run(). It keeps a
monotonic "next deadline" in milliseconds: every step adds base delay
plus the step's extra pause to the deadline and sleeps only the
remaining time, so late wake-ups are absorbed by the next step instead
of accumulating. Navigation, scrubbing, and page sync are plain methods
plus two small helper tasks (scrub coalescing, page-sync debounce).

State machine:
  IDLE    --play()-->  PLAYING
  PLAYING --pause() / end of stream / navigation-->  PAUSED
  PAUSED  --play()-->  PLAYING   (elapsed time preserved)
  any     --reset()--> IDLE      (session stats cleared)

RULES:
- Only the run task and explicit navigation calls mutate the position
- Navigation pauses playback first and never touches session counters
- words_shown counts word tokens shown by playback; pause_count counts
  steps whose PauseDecision counts as a pause
- Chunks (chunk_size > 1) are runs of consecutive words, never crossing
  a paragraph break
- Scrub requests collapse to the latest value, applied once per frame
- Page sync is debounced and only fires when the page actually changes
- close() and reset() bump the generation; stale helper tasks become no-ops
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Sequence, Tuple

from swiftreader.config import MAX_CHUNK_SIZE, MIN_CHUNK_SIZE, ReaderSettings
from swiftreader.core.document import Document, find_anchor, progress_percent
from swiftreader.core.index_map import WordIndexMap
from swiftreader.core.ir import (
    ParagraphBreak,
    PauseDecision,
    Progress,
    RenderEvent,
    RenderKind,
    SessionStats,
    Token,
    is_word,
)
from swiftreader.core.orp import PLACEHOLDER_GLYPH, render_word
from swiftreader.core.pages import page_for_word, start_word_for_page
from swiftreader.core.timing import base_delay_ms, compute_pause, ends_sentence
from swiftreader.engine.events import PlaybackListener

logger = logging.getLogger(__name__)

PARAGRAPH_GLYPH = "¶"
PARAGRAPH_LABEL = "Paragraph"
EMPTY_LABEL = "No readable text"

SCRUB_INTERVAL_S = 1.0 / 60
PAGE_SYNC_DEBOUNCE_S = 0.150
END_GRACE_MS = 250.0
# Deadline is re-anchored to "now" once playback lags further than this.
MAX_LAG_MS = 1000.0

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


class PlaybackState(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"
    PAUSED = "paused"


@dataclass
class EngineState:
    """Per-document playback state owned by the session controller.

    RULES:
    - document.position is the single source of truth for the position
    - index_map must have been built from document.tokens
    """

    document: Document
    index_map: WordIndexMap
    settings: ReaderSettings = field(default_factory=ReaderSettings)
    state: PlaybackState = PlaybackState.IDLE
    stats: SessionStats = field(default_factory=SessionStats)

    @property
    def tokens(self) -> Sequence[Token]:
        return self.document.tokens

    @property
    def position(self) -> int:
        return self.document.position


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


def _current_task() -> Optional[asyncio.Task]:
    if _running_loop() is None:
        return None
    return asyncio.current_task()


def sentence_target(tokens: Sequence[Token], index: int, direction: int) -> int:
    """Token index reached by one sentence step from *index*.

    Backward: skip paragraph breaks to the left, step off the sentence
    end directly before the current sentence, then walk left to the
    previous hard-punctuation word. Forward: walk right from the current
    token to the next hard-punctuation word. The target is the token after
    the boundary (0 when none exists backward), moved past any paragraph
    break, and clamped to the stream.
    """
    if not tokens:
        return 0
    last = len(tokens) - 1
    idx = max(0, min(int(index), last))

    if direction < 0:
        i = idx - 1
        while i >= 0 and not is_word(tokens[i]):
            i -= 1
        if i >= 0 and ends_sentence(tokens[i]):
            i -= 1
        while i >= 0 and not ends_sentence(tokens[i]):
            i -= 1
        target = i + 1
    else:
        i = idx
        while i < last and not ends_sentence(tokens[i]):
            i += 1
        target = i + 1

    target = max(0, min(target, last))
    while target < last and not is_word(tokens[target]):
        target += 1
    return target


def chunk_span(tokens: Sequence[Token], position: int, chunk_size: int) -> Tuple[int, int]:
    """(start, end) token span of the next playback step after *position*.

    One token, or with chunk_size > 1 and a word next, a run of up to
    chunk_size consecutive words that stops at the first non-word.
    """
    last = len(tokens) - 1
    start = min(position + 1, last)
    end = start
    size = max(MIN_CHUNK_SIZE, min(int(chunk_size), MAX_CHUNK_SIZE))
    if size > 1 and is_word(tokens[start]):
        while end < last and end - start + 1 < size and is_word(tokens[end + 1]):
            end += 1
    return start, end


class PlaybackScheduler:
    """Drives timed stepping for one EngineState.

    Args:
        engine: The document state to play.
        listener: Receives render/progress/page-sync/state events.
        clock: Monotonic seconds source (injectable for tests).
        sleep: Awaitable sleep taking seconds (injectable for tests).
        on_change: Called after every position or stats mutation, e.g.
            to persist the position.
    """

    def __init__(
        self,
        engine: EngineState,
        listener: Optional[PlaybackListener] = None,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        self.engine = engine
        self.listener = listener or PlaybackListener()
        self._clock = clock
        self._sleep = sleep
        self._on_change = on_change

        self._generation = 0
        self._run_id = 0
        self._task: Optional[asyncio.Task] = None
        self._scrub_task: Optional[asyncio.Task] = None
        self._page_sync_task: Optional[asyncio.Task] = None
        self._pending_scrub: Optional[int] = None
        self._synced_page: Optional[int] = None
        self._play_started_at: Optional[float] = None
        self._closed = False

    # -- properties ----------------------------------------------------------

    @property
    def state(self) -> PlaybackState:
        return self.engine.state

    @property
    def is_playing(self) -> bool:
        return self.engine.state is PlaybackState.PLAYING

    @property
    def closed(self) -> bool:
        return self._closed

    def _now_ms(self) -> float:
        return self._clock() * 1000.0

    def _base_delay(self) -> float:
        return base_delay_ms(self.engine.settings.wpm)

    # -- playback ------------------------------------------------------------

    def play(self) -> bool:
        """Start or resume playback; False when there is nothing to read.

        Starting on the final token restarts from the beginning. Must be
        called from inside a running event loop.
        """
        if self._closed:
            return False
        if self.is_playing:
            return True

        doc = self.engine.document
        if doc.is_empty:
            self._emit_render(self._render_span(0, 0))
            return False

        loop = _running_loop()
        if loop is None:
            raise RuntimeError("PlaybackScheduler.play() requires a running event loop")

        if len(doc.tokens) > 1 and doc.position >= len(doc.tokens) - 1:
            doc.position = 0

        self._run_id += 1
        self._play_started_at = self._clock()
        self._set_state(PlaybackState.PLAYING)
        self._show(doc.position, doc.position)
        self._task = loop.create_task(self._run(self._run_id))
        logger.debug("Playback started for %s at token %d", doc.id, doc.position)
        return True

    def pause(self) -> None:
        """Pause playback, keeping the session's elapsed time."""
        if not self.is_playing:
            return
        self._stop_run()
        self._set_state(PlaybackState.PAUSED)
        self._notify_change()

    def toggle(self) -> bool:
        """Pause when playing, otherwise play; True when now playing."""
        if self.is_playing:
            self.pause()
            return False
        return self.play()

    def reset(self) -> None:
        """Hard stop: cancel everything and clear the session stats."""
        self._stop_run()
        self._cancel_helpers()
        self._generation += 1
        self.engine.stats.reset()
        self._play_started_at = None
        self._set_state(PlaybackState.IDLE)

    def close(self) -> None:
        """Stop for good; pending ticks and timers become no-ops."""
        if self._closed:
            return
        self.pause()
        self._stop_run()
        self._cancel_helpers()
        self._generation += 1
        self._closed = True

    def _stop_run(self) -> None:
        if self._play_started_at is not None and self.is_playing:
            self.engine.stats.elapsed_ms += max(0.0, self._now_ms() - self._play_started_at * 1000.0)
        self._play_started_at = None
        self._run_id += 1
        task, self._task = self._task, None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

    def _cancel_helpers(self) -> None:
        for task in (self._scrub_task, self._page_sync_task):
            if task is not None and not task.done():
                task.cancel()
        self._scrub_task = None
        self._page_sync_task = None
        self._pending_scrub = None

    async def _sleep_until(self, deadline_ms: float, run_id: int) -> bool:
        delay = deadline_ms - self._now_ms()
        if delay > 0:
            await self._sleep(delay / 1000.0)
        return run_id == self._run_id

    async def _run(self, run_id: int) -> None:
        doc = self.engine.document
        last = len(doc.tokens) - 1
        shown_at = self._now_ms()
        deadline = shown_at + self._base_delay()
        extra = 0.0

        while doc.position < last:
            if not await self._sleep_until(deadline, run_id):
                return
            now = self._now_ms()
            if now - deadline > MAX_LAG_MS:
                logger.debug("Playback of %s lagged %.0f ms; re-anchoring", doc.id, now - deadline)
                deadline = now

            start, end = chunk_span(doc.tokens, doc.position, self.engine.settings.chunk_size)
            decision = compute_pause(
                doc.tokens[end],
                self._base_delay(),
                self.engine.settings.pause_intensity,
                self.engine.settings.auto_pause,
            )
            self._advance(start, end, decision)
            shown_at = deadline
            extra = decision.extra_delay_ms
            deadline += self._base_delay() + extra

        if not await self._sleep_until(shown_at + extra + END_GRACE_MS, run_id):
            return
        logger.debug("Reached end of %s", doc.id)
        self._task = None
        self.pause()

    def _advance(self, start: int, end: int, decision: PauseDecision) -> None:
        doc = self.engine.document
        words = sum(1 for tok in doc.tokens[start:end + 1] if is_word(tok))
        stats = self.engine.stats
        stats.words_shown += words
        if decision.counts_as_pause:
            stats.pause_count += 1
        doc.total_read_words += words
        doc.position = end
        self._show(start, end)

    # -- navigation ----------------------------------------------------------

    def _navigate(self, token_index: int) -> int:
        self.pause()
        doc = self.engine.document
        if doc.is_empty:
            self._emit_render(self._render_span(0, 0))
            return 0
        doc.position = doc.clamp_position(token_index)
        self._show(doc.position, doc.position)
        return doc.position

    def seek_token(self, token_index: int) -> int:
        return self._navigate(token_index)

    def step_tokens(self, delta: int) -> int:
        """Move by *delta* tokens (paragraph breaks are steps too)."""
        return self._navigate(self.engine.position + int(delta))

    def step_sentence(self, direction: int) -> int:
        """Move to the previous (direction < 0) or next sentence start."""
        target = sentence_target(self.engine.tokens, self.engine.position, direction)
        return self._navigate(target)

    def seek_word(self, word_index: int) -> int:
        return self._navigate(self.engine.index_map.token_index_for_word(word_index))

    def seek_page(self, page: int) -> Optional[int]:
        """Jump to the first word of *page*; None for unpaginated documents."""
        start = start_word_for_page(self.engine.document.page_ranges, page)
        if start is None:
            return None
        return self.seek_word(start)

    def jump_to_anchor(self, anchor_id: str) -> Optional[int]:
        """Jump to a bookmark or note; None when the id is unknown."""
        token_index = find_anchor(self.engine.document, anchor_id)
        if token_index is None:
            return None
        return self._navigate(token_index)

    def scrub_to_word(self, word_index: int) -> None:
        """Coalesced seek for continuous input (sliders, drag handles).

        Only the latest requested word index is applied, at most once per
        frame. Outside an event loop the seek is applied immediately.
        """
        self.pause()
        self._pending_scrub = int(word_index)
        if self._scrub_task is not None and not self._scrub_task.done():
            return
        loop = _running_loop()
        if loop is None:
            self._apply_scrub()
            return
        self._scrub_task = loop.create_task(self._flush_scrub(self._generation))

    async def _flush_scrub(self, generation: int) -> None:
        await self._sleep(SCRUB_INTERVAL_S)
        if generation != self._generation:
            return
        self._scrub_task = None
        self._apply_scrub()

    def _apply_scrub(self) -> None:
        word_index, self._pending_scrub = self._pending_scrub, None
        if word_index is not None:
            self.seek_word(word_index)

    # -- derived values ------------------------------------------------------

    def current_word_index(self) -> int:
        return self.engine.index_map.word_index_for_token(self.engine.position)

    def current_page(self) -> Optional[int]:
        ranges = self.engine.document.page_ranges
        if not ranges:
            return None
        return page_for_word(ranges, self.current_word_index())

    def progress(self) -> Progress:
        doc = self.engine.document
        return Progress(
            percent_complete=progress_percent(doc.position, len(doc.tokens)),
            word_index=self.current_word_index(),
            total_words=self.engine.index_map.total_words,
            token_index=doc.position,
            page_number=self.current_page(),
        )

    def session_stats(self) -> SessionStats:
        """Snapshot of the session counters including the live play time."""
        stats = self.engine.stats
        elapsed = stats.elapsed_ms
        if self._play_started_at is not None and self.is_playing:
            elapsed += max(0.0, self._now_ms() - self._play_started_at * 1000.0)
        return SessionStats(elapsed_ms=elapsed, words_shown=stats.words_shown, pause_count=stats.pause_count)

    def current_render(self) -> RenderEvent:
        pos = self.engine.position
        return self._render_span(pos, pos)

    def show_current(self) -> RenderEvent:
        """Render the current position and report progress, without moving."""
        pos = self.engine.position
        return self._show(pos, pos)

    def _render_span(self, start: int, end: int) -> RenderEvent:
        tokens = self.engine.tokens
        if not tokens:
            return RenderEvent(RenderKind.EMPTY, "", PLACEHOLDER_GLYPH, "", 0, label=EMPTY_LABEL)
        if isinstance(tokens[start], ParagraphBreak):
            return RenderEvent(RenderKind.PARAGRAPH, "", PARAGRAPH_GLYPH, "", start, label=PARAGRAPH_LABEL)
        words = [tok.text for tok in tokens[start:end + 1] if is_word(tok)]
        left, pivot, right = render_word(" ".join(words))
        return RenderEvent(RenderKind.WORD, left, pivot, right, end, word_count=len(words))

    # -- event emission ------------------------------------------------------

    def _show(self, start: int, end: int) -> RenderEvent:
        event = self._render_span(start, end)
        self._emit_render(event)
        self.listener.on_progress(self.progress())
        self._request_page_sync()
        self._notify_change()
        return event

    def _emit_render(self, event: RenderEvent) -> None:
        self.listener.on_render(event)

    def _set_state(self, state: PlaybackState) -> None:
        if self.engine.state is state:
            return
        self.engine.state = state
        self.listener.on_state_change(state.value)

    def _notify_change(self) -> None:
        if self._on_change is not None:
            self._on_change()

    def _request_page_sync(self) -> None:
        page = self.current_page()
        if page is None:
            return
        if page == self._synced_page:
            # Moved away and back before the debounce fired.
            if self._page_sync_task is not None and not self._page_sync_task.done():
                self._page_sync_task.cancel()
                self._page_sync_task = None
            return

        loop = _running_loop()
        if loop is None:
            self._emit_page_sync(page)
            return
        if self._page_sync_task is not None and not self._page_sync_task.done():
            self._page_sync_task.cancel()
        self._page_sync_task = loop.create_task(self._debounced_page_sync(self._generation))

    async def _debounced_page_sync(self, generation: int) -> None:
        await self._sleep(PAGE_SYNC_DEBOUNCE_S)
        if generation != self._generation:
            return
        self._page_sync_task = None
        page = self.current_page()
        if page is not None and page != self._synced_page:
            self._emit_page_sync(page)

    def _emit_page_sync(self, page: int) -> None:
        self._synced_page = page
        self.listener.on_page_sync(page)
