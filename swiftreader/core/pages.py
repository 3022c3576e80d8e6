"""Page segmentation, header/footer stripping, and page-range lookup.

WHY: Paginated sources (PDF, scanned books) repeat running heads, chapter
titles, and page numbers on every page. Flashed one word at a time, that
furniture interrupts the text every few hundred words. The reader also
needs to know which source page the current word came from so the page
view can follow along.

HOW: segment_pages() receives per-page line data from an external
extractor (text + vertical position + page height) and:
  1. Collects normalized signatures (with and without digits) of every
     short line inside the top/bottom margin band, per page.
  2. Marks signatures seen on enough pages as repeated headers/footers.
  3. Drops margin lines that are repeated, look like page numbers, or
     contain a user ignore-phrase. Long lines are always kept.
  4. Reassembles the surviving lines top-to-bottom, tokenizes each page,
     and walks a running word cursor to build contiguous PageRanges.
page_for_word() and start_word_for_page() answer lookups over the ranges.

RULES:
- Margin band: 15% of page height at each edge (configurable)
- Repeated signature: length in [3, 90] and present on >= 35% of pages
- Page-number-like margin lines are removed regardless of frequency
- Lines over 120 chars or with 15+ words are never removed
- Ignore-phrases match as normalized substrings anywhere on the page
- A fully stripped page gets a zero-width range (start == end == cursor)
- page_for_word() is a classic binary search; a zero-width range that
  shares its start with the next page can be the hit for that index
"""

from __future__ import annotations

import bisect
import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from swiftreader.core.ir import PageRange, Token
from swiftreader.core.tokenizer import count_words, tokenize

logger = logging.getLogger(__name__)

DEFAULT_MARGIN_RATIO = 0.15
MIN_SIGNATURE_LENGTH = 3
MAX_SIGNATURE_LENGTH = 90
REPEAT_PAGE_RATIO = 0.35
LONG_LINE_CHARS = 120
LONG_LINE_WORDS = 15

_PUNCTUATION_RE = re.compile(r"[^\w\s]|_")
_DIGITS_RE = re.compile(r"\d+")
_WHITESPACE_RE = re.compile(r"\s+")

_DASHES = r"[\s\-–—]*"
_ROMAN = r"(?=[ivxlcdm])m{0,4}(?:cm|cd|d?c{0,3})(?:xc|xl|l?x{0,3})(?:ix|iv|v?i{0,3})"
_PAGE_NUMBER_PATTERNS = [
    re.compile(r"^" + _DASHES + r"\d+" + _DASHES + r"$"),
    re.compile(r"^\d+\s*/\s*\d+$"),
    re.compile(r"^(?:page|p\.)\s*(?:\d+|" + _ROMAN + r")(?:\s*(?:of|/)\s*\d+)?$", re.IGNORECASE),
    re.compile(r"^" + _DASHES + _ROMAN + _DASHES + r"$", re.IGNORECASE),
]


# ---------------------------------------------------------------------------
# Input / output shapes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PageLine:
    """One extracted text line; ``y`` is measured from the top of the page."""

    text: str
    y: float


@dataclass
class PageInput:
    """Line data for one source page as delivered by a text extractor."""

    page_index: int
    page_height: float
    lines: List[PageLine] = field(default_factory=list)

    @property
    def page_number(self) -> int:
        return self.page_index + 1

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PageInput":
        """Build from an extractor dict.

        Accepts both ``pageIndex/pageHeight/verticalPosition`` and
        ``page_index/page_height/y`` spellings. Lines without text are skipped.
        """
        page_index = data.get("pageIndex", data.get("page_index", 0))
        page_height = data.get("pageHeight", data.get("page_height", 0.0))
        lines = []
        for raw in data.get("lines") or []:
            text = raw.get("text")
            if not isinstance(text, str):
                continue
            y = raw.get("verticalPosition", raw.get("y", 0.0))
            lines.append(PageLine(text=text, y=float(y or 0.0)))
        return cls(page_index=int(page_index), page_height=float(page_height or 0.0), lines=lines)


@dataclass
class StripOptions:
    """Header/footer stripping knobs (mirrors the reader settings)."""

    enabled: bool = True
    margin_ratio: float = DEFAULT_MARGIN_RATIO
    ignore_phrases: List[str] = field(default_factory=list)


@dataclass
class SegmentedDocument:
    """Result of segmentation: the stitched stream plus page metadata.

    RULES:
    - tokens: concatenation of every page's merged tokens
    - page_ranges: one per input page, sorted by page number
    - page_texts: cleaned text per page (input to re-stitching on heal)
    - removed_lines: page number → lines dropped by the filter
    """

    tokens: List[Token]
    page_ranges: List[PageRange]
    page_texts: List[str]
    page_numbers: List[int]
    removed_lines: Dict[int, List[str]] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Line classification
# ---------------------------------------------------------------------------


def line_signature(text: str, keep_digits: bool = True) -> str:
    """Lowercase, punctuation-free, whitespace-collapsed form of *text*."""
    sig = _PUNCTUATION_RE.sub("", (text or "").lower())
    if not keep_digits:
        sig = _DIGITS_RE.sub("", sig)
    return _WHITESPACE_RE.sub(" ", sig).strip()


def is_page_number_line(text: str) -> bool:
    """True for "12", "- 12 -", "12 / 40", "Page 3 of 9", "xiv" and friends."""
    stripped = (text or "").strip()
    if not stripped:
        return False
    return any(p.match(stripped) for p in _PAGE_NUMBER_PATTERNS)


def is_long_line(text: str) -> bool:
    """Body-text guard: long lines are never treated as page furniture."""
    stripped = (text or "").strip()
    return len(stripped) > LONG_LINE_CHARS or len(stripped.split()) >= LONG_LINE_WORDS


def _in_margin_band(line: PageLine, page_height: float, margin_ratio: float) -> bool:
    if page_height <= 0:
        return False
    band = page_height * margin_ratio
    return line.y <= band or line.y >= page_height - band


def _signatures(text: str) -> Tuple[str, str]:
    return line_signature(text, keep_digits=True), line_signature(text, keep_digits=False)


def _valid_signature(sig: str) -> bool:
    return MIN_SIGNATURE_LENGTH <= len(sig) <= MAX_SIGNATURE_LENGTH


def find_repeated_signatures(pages: Sequence[PageInput], margin_ratio: float = DEFAULT_MARGIN_RATIO) -> Set[str]:
    """Signatures of margin lines that repeat across enough pages.

    HOW: Each short margin line contributes two signatures (with and
    without digits) so "Chapter 3 · 41" and "Chapter 3 · 42" collapse onto
    the same digit-free key. Keys are prefixed ("d:"/"n:") so the two
    families never collide.
    """
    total_pages = len(pages)
    if total_pages == 0:
        return set()

    occurrences: Dict[str, Set[int]] = defaultdict(set)
    for page in pages:
        for line in page.lines:
            if is_long_line(line.text) or not _in_margin_band(line, page.page_height, margin_ratio):
                continue
            with_digits, without_digits = _signatures(line.text)
            if with_digits:
                occurrences["d:" + with_digits].add(page.page_index)
            if without_digits:
                occurrences["n:" + without_digits].add(page.page_index)

    repeated = set()
    for key, page_set in occurrences.items():
        if not _valid_signature(key[2:]):
            continue
        if len(page_set) / total_pages >= REPEAT_PAGE_RATIO:
            repeated.add(key)
    return repeated


def _compile_ignore_phrases(phrases: Iterable[str]) -> List[Tuple[str, str]]:
    compiled = []
    for phrase in phrases:
        with_digits, without_digits = _signatures(phrase)
        if with_digits or without_digits:
            compiled.append((with_digits, without_digits))
    return compiled


def _matches_ignore_phrase(text: str, compiled: Sequence[Tuple[str, str]]) -> bool:
    if not compiled:
        return False
    with_digits, without_digits = _signatures(text)
    for phrase_d, phrase_n in compiled:
        if phrase_d and phrase_d in with_digits:
            return True
        if phrase_n and phrase_n in without_digits:
            return True
    return False


# ---------------------------------------------------------------------------
# Segmentation
# ---------------------------------------------------------------------------


def clean_pages(pages: Sequence[PageInput], options: Optional[StripOptions] = None) -> Tuple[List[str], Dict[int, List[str]]]:
    """Strip headers/footers and return (page_texts, removed_lines).

    Pages are processed in the order given; lines are reassembled
    top-to-bottom by their vertical position.
    """
    options = options or StripOptions()
    repeated: Set[str] = set()
    ignore: List[Tuple[str, str]] = []
    if options.enabled:
        repeated = find_repeated_signatures(pages, options.margin_ratio)
        ignore = _compile_ignore_phrases(options.ignore_phrases)

    page_texts: List[str] = []
    removed: Dict[int, List[str]] = {}

    for page in pages:
        kept: List[str] = []
        dropped: List[str] = []
        for line in sorted(page.lines, key=lambda ln: ln.y):
            text = line.text.strip()
            if not text:
                continue
            if options.enabled and _should_remove(line, page, options, repeated, ignore):
                dropped.append(text)
            else:
                kept.append(text)
        page_texts.append("\n".join(kept))
        if dropped:
            removed[page.page_number] = dropped
            logger.debug("Page %d: removed %d line(s): %r", page.page_number, len(dropped), dropped)

    return page_texts, removed


def _should_remove(
    line: PageLine,
    page: PageInput,
    options: StripOptions,
    repeated: Set[str],
    ignore: Sequence[Tuple[str, str]],
) -> bool:
    if is_long_line(line.text):
        return False
    if _matches_ignore_phrase(line.text, ignore):
        return True
    if not _in_margin_band(line, page.page_height, options.margin_ratio):
        return False
    if is_page_number_line(line.text):
        return True
    with_digits, without_digits = _signatures(line.text)
    return ("d:" + with_digits) in repeated or ("n:" + without_digits) in repeated


def stitch_pages(page_texts: Sequence[str], page_numbers: Sequence[int]) -> Tuple[List[Token], List[PageRange]]:
    """Tokenize each page and build contiguous PageRanges.

    RULES:
    - The running cursor starts at word 0 and advances by each page's count
    - A page with no words gets (cursor, cursor, 0)
    - Tokens are the plain concatenation of every page's tokens
    """
    tokens: List[Token] = []
    ranges: List[PageRange] = []
    cursor = 0
    for text, page_number in zip(page_texts, page_numbers):
        page_tokens = tokenize(text)
        word_count = count_words(page_tokens)
        end = cursor + word_count - 1 if word_count > 0 else cursor
        ranges.append(PageRange(
            page=page_number,
            start_word_index=cursor,
            end_word_index=end,
            word_count=word_count,
        ))
        tokens.extend(page_tokens)
        cursor += word_count
    return tokens, ranges


def segment_pages(pages: Iterable[Any], options: Optional[StripOptions] = None) -> SegmentedDocument:
    """Convert raw per-page line data into a stitched, paginated stream.

    Args:
        pages: PageInput objects or extractor dicts (see PageInput.from_dict).
        options: Stripping options; defaults to StripOptions().

    Returns:
        SegmentedDocument with tokens, ranges, cleaned page texts, and the
        lines that were removed per page.
    """
    page_inputs = [p if isinstance(p, PageInput) else PageInput.from_dict(p) for p in pages]
    page_inputs.sort(key=lambda p: p.page_index)

    page_texts, removed = clean_pages(page_inputs, options)
    page_numbers = [p.page_number for p in page_inputs]
    tokens, ranges = stitch_pages(page_texts, page_numbers)

    logger.info(
        "Segmented %d page(s) into %d words; removed %d margin line(s)",
        len(page_inputs), count_words(tokens), sum(len(v) for v in removed.values()),
    )
    return SegmentedDocument(
        tokens=tokens,
        page_ranges=ranges,
        page_texts=page_texts,
        page_numbers=page_numbers,
        removed_lines=removed,
    )


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


def page_for_word(ranges: Sequence[PageRange], word_index: int) -> Optional[int]:
    """Page number containing *word_index* (binary search).

    Out-of-range indices are clamped to the covered span. Returns None only
    when there are no ranges.
    """
    if not ranges:
        return None
    w_idx = max(ranges[0].start_word_index, min(int(word_index), ranges[-1].end_word_index))

    lo, hi = 0, len(ranges) - 1
    while lo <= hi:
        mid = (lo + hi) // 2
        current = ranges[mid]
        if w_idx < current.start_word_index:
            hi = mid - 1
        elif w_idx > current.end_word_index:
            lo = mid + 1
        else:
            return current.page
    return ranges[min(lo, len(ranges) - 1)].page


def start_word_for_page(ranges: Sequence[PageRange], page: int) -> Optional[int]:
    """Recorded start word of *page*; unknown pages clamp to the nearest one."""
    if not ranges:
        return None
    numbers = [r.page for r in ranges]
    idx = bisect.bisect_left(numbers, int(page))
    idx = min(idx, len(ranges) - 1)
    return ranges[idx].start_word_index


def ranges_partition_words(ranges: Sequence[PageRange], total_words: int) -> bool:
    """True when the non-empty ranges cover [0, total_words - 1] exactly once."""
    cursor = 0
    previous_page = None
    for r in ranges:
        if previous_page is not None and r.page <= previous_page:
            return False
        previous_page = r.page
        if r.start_word_index != cursor:
            return False
        if r.word_count == 0:
            if r.end_word_index != r.start_word_index:
                return False
            continue
        if r.end_word_index - r.start_word_index + 1 != r.word_count:
            return False
        cursor = r.end_word_index + 1
    return cursor == total_words
