"""Text normalization, tokenization, and the punctuation merge pass.

WHY: An RSVP display shows one unit at a time. A bare "," or "!" flashed
on its own wastes a whole step and breaks the reading rhythm, so every
punctuation fragment is glued onto the word it belongs to before the
stream is stored.

HOW: normalize_text() cleans up line endings, hyphen wraps, and blank
line runs. tokenize() splits the result into paragraphs and whitespace
fragments, classifies each fragment as word-like or punctuation-like,
and inserts paragraph breaks between paragraphs. merge_punctuation()
then folds punctuation into adjacent words:
  - after a word in the same run  → appended as a suffix
  - no word yet in the run        → held as a pending prefix for the next word
  - no word ever follows          → dropped

RULES:
- Word-like = contains at least one Unicode letter or digit
- Output contains only Word and ParagraphBreak tokens
- Paragraph breaks only sit between two words (none leading, trailing, doubled)
- merge_punctuation() is idempotent and accepts legacy "punct" records
- Nothing in this module raises on bad input; it degrades to []
"""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable, List, Optional, Tuple

from swiftreader.core.ir import PARAGRAPH_BREAK, ParagraphBreak, Token, TokenKind, Word, is_word

logger = logging.getLogger(__name__)

# A letter or digit in any script (\w minus the underscore).
_WORD_CHAR_RE = re.compile(r"[^\W_]")

_HYPHEN_WRAP_RE = re.compile(r"(\w)-\n(\w)")
_SPACE_BEFORE_NEWLINE_RE = re.compile(r"[ \t]+\n")
_BLANK_RUN_RE = re.compile(r"\n{3,}")
_PARAGRAPH_SPLIT_RE = re.compile(r"\n{2,}")

_Fragment = Tuple[TokenKind, str]


def normalize_text(raw: Any) -> str:
    """Normalize raw extracted text before tokenization.

    RULES:
    - "\\r\\n" and "\\r" become "\\n"
    - "some-\\nthing" becomes "something"
    - 3+ newlines collapse to a single blank line ("\\n\\n")
    - Trailing whitespace is trimmed per line and overall
    - Non-string input yields ""
    """
    if not raw or not isinstance(raw, str):
        return ""
    text = raw.replace("\r\n", "\n").replace("\r", "\n")
    text = _HYPHEN_WRAP_RE.sub(r"\1\2", text)
    text = _SPACE_BEFORE_NEWLINE_RE.sub("\n", text)
    text = _BLANK_RUN_RE.sub("\n\n", text)
    text = "\n".join(line.rstrip() for line in text.split("\n"))
    return text.strip()


def is_word_like(text: str) -> bool:
    """True when *text* contains at least one letter or digit."""
    return bool(text) and _WORD_CHAR_RE.search(text) is not None


def _split_fragments(text: str) -> List[_Fragment]:
    """Split normalized text into classified fragments with paragraph markers."""
    fragments: List[_Fragment] = []
    paragraphs = [p.strip() for p in _PARAGRAPH_SPLIT_RE.split(text)]
    paragraphs = [p for p in paragraphs if p]

    for p_idx, paragraph in enumerate(paragraphs):
        for piece in paragraph.split():
            kind = TokenKind.WORD if is_word_like(piece) else TokenKind.PUNCTUATION
            fragments.append((kind, piece))
        # Paragraph break between paragraphs, never after the last
        if p_idx < len(paragraphs) - 1:
            fragments.append((TokenKind.PARAGRAPH, ParagraphBreak.text))
    return fragments


def tokenize(text: Any) -> List[Token]:
    """Turn raw text into a merged token stream.

    Args:
        text: Raw document text. Anything that is not a non-empty string
            yields an empty stream.

    Returns:
        List of Word and ParagraphBreak tokens with punctuation merged.
    """
    normalized = normalize_text(text)
    if not normalized:
        return []
    return merge_punctuation(_split_fragments(normalized))


def _classify(item: Any) -> Optional[_Fragment]:
    """Reduce a token, legacy record, or fragment tuple to (kind, text).

    Returns None for items that cannot be interpreted.
    """
    if isinstance(item, ParagraphBreak):
        return (TokenKind.PARAGRAPH, item.text)
    if isinstance(item, Word):
        text = item.text
        kind = TokenKind.WORD
    elif isinstance(item, dict):
        text = item.get("t", item.get("text"))
        try:
            kind = TokenKind(item.get("kind", "word"))
        except (TypeError, ValueError):
            kind = TokenKind.WORD
    elif isinstance(item, tuple) and len(item) == 2 and isinstance(item[0], TokenKind):
        kind, text = item
    else:
        return None

    if kind is TokenKind.PARAGRAPH:
        return (kind, ParagraphBreak.text)
    if not isinstance(text, str):
        return None
    text = text.strip()
    if not text:
        return None
    if kind is TokenKind.WORD and not is_word_like(text):
        # Older streams stored bare punctuation as words
        kind = TokenKind.PUNCTUATION
    return (kind, text)


def merge_punctuation(items: Iterable[Any]) -> List[Token]:
    """Fold punctuation fragments into neighbouring words.

    WHY: Standalone punctuation must never reach the display. The same pass
    also repairs streams stored by older versions, so it has to accept
    Word/ParagraphBreak tokens, legacy ``{"t", "kind"}`` records, and the
    ``(TokenKind, text)`` fragments produced by tokenize().

    HOW: Walk the items once. ``run_open`` is True while the last emitted
    token is a Word with no paragraph break since; punctuation then becomes
    its suffix. Otherwise punctuation accumulates in ``pending`` and is
    prepended to the next word. Paragraph breaks are emitted only after a
    word, and a trailing break is removed at the end.

    RULES:
    - Idempotent: merge_punctuation(merge_punctuation(x)) == merge_punctuation(x)
    - Pending prefix survives paragraph breaks until a word arrives
    - Leftover pending punctuation with no following word is dropped
    - Uninterpretable items are skipped
    """
    merged: List[Token] = []
    pending = ""
    run_open = False

    for item in items:
        fragment = _classify(item)
        if fragment is None:
            continue
        kind, text = fragment

        if kind is TokenKind.PARAGRAPH:
            run_open = False
            if merged and is_word(merged[-1]):
                merged.append(PARAGRAPH_BREAK)
            continue

        if kind is TokenKind.PUNCTUATION:
            if run_open:
                merged[-1] = Word(merged[-1].text + text)
            else:
                pending += text
            continue

        merged.append(Word(pending + text))
        pending = ""
        run_open = True

    if merged and not is_word(merged[-1]):
        merged.pop()
    if pending:
        logger.debug("Dropped trailing punctuation with no following word: %r", pending)
    return merged


def count_words(tokens: Iterable[Token]) -> int:
    """Number of Word tokens in a stream."""
    return sum(1 for tok in tokens if is_word(tok))


def tokens_to_records(tokens: Iterable[Token]) -> List[dict]:
    """Serialize tokens to the compact ``{"t", "kind"}`` storage form."""
    return [{"t": tok.text, "kind": tok.kind.value} for tok in tokens]
