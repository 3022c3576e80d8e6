"""Optimal Recognition Point (ORP) pivot calculation and word rendering.

WHY: RSVP readers keep their gaze fixed on one screen position. Aligning
each word so that a letter slightly left of its centre sits on that
position lets the eye recognise the word without moving.

HOW: A length-banded lookup picks the pivot character; render_word()
splits the word around it so a view can colour the pivot and align it.

RULES:
- len <= 2 → 0, <= 5 → 1, <= 9 → 2, <= 13 → 3, else 4
- Pivot is clamped to [0, len - 1]
- Empty word → placeholder glyph "•" with empty left/right
"""

from __future__ import annotations

from typing import NamedTuple

PLACEHOLDER_GLYPH = "•"

# (max length, pivot index) bands, checked in order
_ORP_BANDS = ((2, 0), (5, 1), (9, 2), (13, 3))
_ORP_LONG = 4


class RenderedWord(NamedTuple):
    left: str
    pivot: str
    right: str


def orp_index(word: str) -> int:
    """Return the pivot character index for *word*."""
    length = len(word or "")
    pivot = _ORP_LONG
    for max_len, band_pivot in _ORP_BANDS:
        if length <= max_len:
            pivot = band_pivot
            break
    return max(0, min(pivot, length - 1))


def render_word(word: str) -> RenderedWord:
    """Split *word* into (left, pivot, right) around its ORP."""
    if not word:
        return RenderedWord("", PLACEHOLDER_GLYPH, "")
    idx = orp_index(word)
    return RenderedWord(word[:idx], word[idx], word[idx + 1:])
