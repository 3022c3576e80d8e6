"""Intermediate representation dataclasses for tokenized reading streams.

WHY: Every part of the engine (merger, index mapper, page segmenter,
scheduler, storage) passes the same handful of shapes around. Keeping
them in one module gives the whole package a single, well-typed contract.

HOW: Tokens are a closed tagged variant of two frozen dataclasses:
  Word           — one display unit (punctuation already merged in)
  ParagraphBreak — a paragraph boundary marker
The remaining dataclasses describe derived or per-step values:
  PageRange     — a contiguous span of word-indices belonging to one page
  PauseDecision — extra delay computed for one playback step
  SessionStats  — counters for the current playback session
  RenderEvent   — what the view collaborator should draw
  Progress      — position summary for progress bars and page sync
  Bookmark/Note — user anchors into the token stream

RULES:
- Tokens are immutable; a merged stream never contains punctuation tokens
- ParagraphBreak instances all compare equal; use PARAGRAPH_BREAK
- PageRange.page is 1-based; word indices are 0-based
- A fully stripped page has word_count == 0 and start == end
- SessionStats is ephemeral and never persisted
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import ClassVar, Optional, Union


class TokenKind(str, enum.Enum):
    """Serialized token kinds.

    RULES:
    - "word" and "para" are the only kinds in a merged stream
    - "punct" appears only in legacy records and is folded on load
    """

    WORD = "word"
    PARAGRAPH = "para"
    PUNCTUATION = "punct"


@dataclass(frozen=True)
class Word:
    """A word token, possibly carrying merged leading/trailing punctuation."""

    text: str
    kind: ClassVar[TokenKind] = TokenKind.WORD


@dataclass(frozen=True)
class ParagraphBreak:
    """A paragraph boundary between two words."""

    text: ClassVar[str] = "\n\n"
    kind: ClassVar[TokenKind] = TokenKind.PARAGRAPH


PARAGRAPH_BREAK = ParagraphBreak()

Token = Union[Word, ParagraphBreak]


def is_word(token: Optional[Token]) -> bool:
    """True when *token* is a Word (None-safe)."""
    return isinstance(token, Word)


@dataclass(frozen=True)
class PageRange:
    """Word-index span of one source page.

    RULES:
    - page: 1-based source page number
    - end_word_index is inclusive; for word_count == 0 it equals the start
    """

    page: int
    start_word_index: int
    end_word_index: int
    word_count: int


@dataclass(frozen=True)
class PauseDecision:
    """Extra delay for one step and whether it counts as a pause."""

    extra_delay_ms: float
    counts_as_pause: bool


NO_PAUSE = PauseDecision(extra_delay_ms=0.0, counts_as_pause=False)


@dataclass
class SessionStats:
    """Counters for one playback session.

    WHY: Readers want to see how long they have been reading and at what
    effective speed. These numbers belong to one session only.

    RULES:
    - elapsed_ms: accumulated playing time (paused time is excluded)
    - words_shown: word tokens shown by playback (navigation never counts)
    - pause_count: steps whose PauseDecision counted as a pause
    - Reset to zero on hard stop
    """

    elapsed_ms: float = 0.0
    words_shown: int = 0
    pause_count: int = 0

    def average_wpm(self) -> Optional[int]:
        """Average words per minute, or None until ~3 seconds have elapsed."""
        minutes = self.elapsed_ms / 60000.0
        if minutes <= 0.05:
            return None
        return int(round(self.words_shown / minutes))

    def reset(self) -> None:
        self.elapsed_ms = 0.0
        self.words_shown = 0
        self.pause_count = 0


class RenderKind(str, enum.Enum):
    WORD = "word"
    PARAGRAPH = "paragraph"
    EMPTY = "empty"


@dataclass(frozen=True)
class RenderEvent:
    """What to draw at the fixed gaze point.

    RULES:
    - WORD: left + pivot + right reassemble the displayed text
    - PARAGRAPH: pivot is the "¶" glyph, label is "Paragraph"
    - EMPTY: no readable text; pivot is the placeholder glyph
    - word_count is the number of words in the displayed chunk
    """

    kind: RenderKind
    left: str
    pivot: str
    right: str
    token_index: int
    label: Optional[str] = None
    word_count: int = 0

    @property
    def text(self) -> str:
        return self.left + self.pivot + self.right


@dataclass(frozen=True)
class Progress:
    """Reading position summary."""

    percent_complete: int
    word_index: int
    total_words: int
    token_index: int
    page_number: Optional[int] = None


@dataclass
class Bookmark:
    id: str
    token_index: int
    created_at: str


@dataclass
class Note:
    """A user note anchored at a token index, with a short excerpt."""

    id: str
    token_index: int
    text: str
    excerpt: str = ""
    created_at: str = ""
    updated_at: str = ""
