"""Shared test fixtures for the swiftreader test suite.

WHY: Most modules need the same sample texts, a small paginated source,
and a deterministic way to drive asyncio playback. Centralizing them
keeps timing tests readable and free of real sleeps.

HOW: VirtualClock stands in for time.monotonic/asyncio.sleep. Sleepers
are kept in a heap; advance_to() wakes them in deadline order, letting
the event loop settle after each wake-up. Scheduler tests run inside
asyncio.run() and move time explicitly.

RULES:
- Timing assertions check at mid-points between steps, never on edges
- No test touches the real data directory (JsonFileStore uses tmp_path)
"""

import asyncio
import heapq
import itertools
from typing import Any, Dict, List

import pytest

from swiftreader.config import ReaderSettings
from swiftreader.core.document import create_document_from_pages, create_document_from_text
from swiftreader.core.index_map import WordIndexMap
from swiftreader.core.pages import StripOptions
from swiftreader.engine.events import RecordingListener
from swiftreader.engine.scheduler import EngineState, PlaybackScheduler
from swiftreader.storage.memory import MemoryStore


# ---------------------------------------------------------------------------
# Virtual time
# ---------------------------------------------------------------------------


class VirtualClock:
    """Deterministic clock + sleep pair for asyncio code under test."""

    def __init__(self) -> None:
        self.now = 0.0
        self._sleepers: List[Any] = []
        self._seq = itertools.count()

    def time(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        if delay <= 0:
            await asyncio.sleep(0)
            return
        future = asyncio.get_running_loop().create_future()
        heapq.heappush(self._sleepers, (self.now + delay, next(self._seq), future))
        await future

    async def settle(self) -> None:
        for _ in range(20):
            await asyncio.sleep(0)

    async def advance_to(self, target: float) -> None:
        await self.settle()
        while self._sleepers and self._sleepers[0][0] <= target:
            wake, _, future = heapq.heappop(self._sleepers)
            self.now = max(self.now, wake)
            if not future.done():
                future.set_result(None)
            await self.settle()
        self.now = max(self.now, target)
        await self.settle()

    async def advance(self, seconds: float) -> None:
        await self.advance_to(self.now + seconds)

    @property
    def pending(self) -> int:
        return sum(1 for _, _, fut in self._sleepers if not fut.done())


@pytest.fixture
def clock():
    return VirtualClock()


@pytest.fixture
def listener():
    return RecordingListener()


@pytest.fixture
def make_scheduler(clock, listener):
    """Factory: text (or Document) + settings → PlaybackScheduler on virtual time."""

    def _make(source, **settings):
        doc = create_document_from_text(source) if isinstance(source, str) else source
        engine = EngineState(
            document=doc,
            index_map=WordIndexMap(doc.tokens),
            settings=ReaderSettings(**settings).normalized(),
        )
        return PlaybackScheduler(engine, listener=listener, clock=clock.time, sleep=clock.sleep)

    return _make


# ---------------------------------------------------------------------------
# Sample content
# ---------------------------------------------------------------------------

SAMPLE_TEXT = "Hello, world! Next paragraph.\n\nSecond para."

MERGE_CORPUS = [
    "",
    "   \n\t  ",
    "...!!! ,,, ;",
    SAMPLE_TEXT,
    "He said , \" hello \" .\n\n\n\n( Really ? )",
    "— Yes , she replied … and left",
    "line one-\nwrapped here\r\nand\rmore",
    "Numbers 1 , 2 and 3 !\n\n\n\n\n« Quote » ok",
    "Ünïcödé wörds , ja ! 東京 。",
    "trailing punctuation only at the end -- !!",
]


@pytest.fixture
def sample_text():
    return SAMPLE_TEXT


@pytest.fixture
def merge_corpus():
    return list(MERGE_CORPUS)


def _page(index: int, lines: List[Any], height: float = 1000.0) -> Dict[str, Any]:
    return {
        "page_index": index,
        "page_height": height,
        "lines": [{"text": text, "y": y} for text, y in lines],
    }


@pytest.fixture
def three_page_source():
    """Three pages with a repeated running head and page-number footers."""
    return [
        _page(0, [
            ("Chapter Title", 40.0),
            ("It was a bright cold day in April.", 300.0),
            ("The clocks were striking thirteen.", 340.0),
            ("1", 960.0),
        ]),
        _page(1, [
            ("Chapter Title", 40.0),
            ("Winston slipped quickly through the doors.", 300.0),
            ("2", 960.0),
        ]),
        _page(2, [
            ("Chapter Title", 40.0),
            ("The hallway smelt of boiled cabbage.", 300.0),
            ("3", 960.0),
        ]),
    ]


@pytest.fixture
def paged_document(three_page_source):
    return create_document_from_pages(three_page_source, title="Paged", options=StripOptions())


@pytest.fixture
def memory_store():
    return MemoryStore()
