"""Pause/timing model: base cadence and punctuation-driven extra delays.

WHY: Reading comprehension drops when sentence ends and paragraph breaks
fly past at the same speed as ordinary words. A short, proportional
pause on punctuation gives the reader a moment to close a thought.

HOW: base_delay_ms() converts words-per-minute into a per-step delay.
compute_pause() inspects one token and returns a PauseDecision whose
extra delay scales with the base delay and the user's pause intensity.

RULES:
- wpm is clamped to [150, 1200]; base delay = 60000 / wpm
- pause intensity is a [0, 200] slider value; scale = intensity / 100
- Each extra is capped at 2 × base delay
- Paragraph break: base × 1.2 × scale, counts as a pause
- Hard punctuation (. ! ? …): base × 0.8 × scale, counts as a pause
- Soft punctuation (, ; :): base × 0.35 × scale, counts as a pause
- Trailing closing brackets/quotes are ignored when reading the last char
- auto_pause=False → always (0, False)
"""

from __future__ import annotations

from typing import Optional

from swiftreader.core.ir import NO_PAUSE, ParagraphBreak, PauseDecision, Token, Word

MIN_WPM = 150
MAX_WPM = 1200
DEFAULT_WPM = 300

MIN_PAUSE_INTENSITY = 0
MAX_PAUSE_INTENSITY = 200
DEFAULT_PAUSE_INTENSITY = 80

PARAGRAPH_FACTOR = 1.2
HARD_PUNCT_FACTOR = 0.8
SOFT_PUNCT_FACTOR = 0.35
MAX_EXTRA_FACTOR = 2.0

HARD_PUNCTUATION = frozenset(".!?…")
SOFT_PUNCTUATION = frozenset(",;:")

# Closing wrappers stripped before looking at the final character.
_CLOSING_WRAPPERS = ")]}\"'”’»›*_"


def clamp_wpm(wpm: Optional[float]) -> int:
    """Clamp a words-per-minute value into [MIN_WPM, MAX_WPM].

    Non-numeric input falls back to DEFAULT_WPM.
    """
    try:
        value = int(round(float(wpm)))
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_WPM
    return max(MIN_WPM, min(MAX_WPM, value))


def base_delay_ms(wpm: Optional[float]) -> float:
    """Per-step delay in milliseconds for the (clamped) wpm."""
    return 60000.0 / clamp_wpm(wpm)


def clamp_pause_intensity(intensity: Optional[float]) -> float:
    try:
        value = float(intensity)
    except (TypeError, ValueError):
        return float(DEFAULT_PAUSE_INTENSITY)
    return max(float(MIN_PAUSE_INTENSITY), min(float(MAX_PAUSE_INTENSITY), value))


def pause_scale(intensity: Optional[float]) -> float:
    """Map the [0, 200] intensity slider onto a [0, 2] multiplier."""
    return clamp_pause_intensity(intensity) / 100.0


def trailing_mark(text: str) -> str:
    """Last meaningful character of *text*, ignoring closing wrappers.

    ``'world!"'`` → ``"!"``; ``"(see above.)"`` → ``"."``.
    """
    stripped = (text or "").rstrip().rstrip(_CLOSING_WRAPPERS)
    return stripped[-1:] if stripped else ""


def ends_sentence(token: Optional[Token]) -> bool:
    """True when *token* is a word ending in hard punctuation."""
    return isinstance(token, Word) and trailing_mark(token.text) in HARD_PUNCTUATION


def compute_pause(
    token: Optional[Token],
    base_delay: float,
    pause_intensity: Optional[float] = DEFAULT_PAUSE_INTENSITY,
    auto_pause: bool = True,
) -> PauseDecision:
    """Compute the extra delay after showing *token*.

    Args:
        token: The token (or last token of a chunk) just displayed.
        base_delay: Base per-step delay in ms, from base_delay_ms().
        pause_intensity: Slider value in [0, 200]; clamped.
        auto_pause: When False, punctuation never adds delay.

    Returns:
        PauseDecision with the extra delay in ms and whether it counts
        towards the session's pause counter.
    """
    if not auto_pause or token is None:
        return NO_PAUSE

    scale = pause_scale(pause_intensity)
    cap = base_delay * MAX_EXTRA_FACTOR

    if isinstance(token, ParagraphBreak):
        factor = PARAGRAPH_FACTOR
    else:
        mark = trailing_mark(token.text)
        if mark in HARD_PUNCTUATION:
            factor = HARD_PUNCT_FACTOR
        elif mark in SOFT_PUNCTUATION:
            factor = SOFT_PUNCT_FACTOR
        else:
            return NO_PAUSE

    return PauseDecision(
        extra_delay_ms=min(base_delay * factor * scale, cap),
        counts_as_pause=True,
    )
