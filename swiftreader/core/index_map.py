"""Word-index ↔ token-index mapping and the per-document derived cache.

WHY: The stream is addressed in two coordinate systems. Playback moves in
token-index space (paragraph breaks are steps too), while progress,
page ranges, and "N words read" are expressed in word-index space. Every
conversion must agree, or the page view and the RSVP display drift apart.

HOW: WordIndexMap builds two arrays once per stream:
  word_to_token[w] — token index of the w-th word (O(1))
  token_to_word[t] — word index of token t, or NOT_A_WORD
IndexCache keeps one WordIndexMap per (document_id, token_version) so a
re-merged stream never reuses a stale map.

RULES:
- word_to_token is strictly increasing
- word_index_for_token() resolves non-words to the nearest preceding
  word (0 if none) and never returns a negative value
- token_index_for_word() clamps out-of-range input to valid bounds
- Bumping a document's token_version invalidates its cached map
"""

from __future__ import annotations

import logging
from typing import Dict, List, Sequence, Tuple

from swiftreader.core.ir import Token, is_word

logger = logging.getLogger(__name__)

NOT_A_WORD = -1


class WordIndexMap:
    """Bidirectional word-index/token-index lookup for one token stream."""

    def __init__(self, tokens: Sequence[Token]) -> None:
        self.word_to_token: List[int] = []
        self.token_to_word: List[int] = []
        for t_idx, tok in enumerate(tokens):
            if is_word(tok):
                self.token_to_word.append(len(self.word_to_token))
                self.word_to_token.append(t_idx)
            else:
                self.token_to_word.append(NOT_A_WORD)

    @property
    def total_words(self) -> int:
        return len(self.word_to_token)

    @property
    def total_tokens(self) -> int:
        return len(self.token_to_word)

    def clamp_token_index(self, token_index: int) -> int:
        return max(0, min(int(token_index), max(0, self.total_tokens - 1)))

    def word_index_for_token(self, token_index: int) -> int:
        """Word index at or before *token_index*.

        Walks backward from non-word positions to the nearest preceding
        word. Returns 0 when the stream has no word at or before it.
        """
        if not self.token_to_word:
            return 0
        t_idx = self.clamp_token_index(token_index)
        while t_idx >= 0:
            w_idx = self.token_to_word[t_idx]
            if w_idx != NOT_A_WORD:
                return w_idx
            t_idx -= 1
        return 0

    def token_index_for_word(self, word_index: int) -> int:
        """Token index of the word at *word_index*, clamped to [0, W-1]."""
        if not self.word_to_token:
            return 0
        w_idx = max(0, min(int(word_index), self.total_words - 1))
        return self.word_to_token[w_idx]


class IndexCache:
    """WordIndexMap cache keyed by (document_id, token_version).

    WHY: Building the map is O(N) and happens on every open, seek, and
    progress update. The cache avoids rebuilding it while guaranteeing a
    re-merged stream (new version) never sees an outdated map.

    RULES:
    - get() builds on miss and drops older versions of the same document
    - invalidate(document_id) drops every cached version of that document
    """

    def __init__(self) -> None:
        self._maps: Dict[Tuple[str, int], WordIndexMap] = {}

    def get(self, document_id: str, token_version: int, tokens: Sequence[Token]) -> WordIndexMap:
        key = (document_id, token_version)
        cached = self._maps.get(key)
        if cached is not None:
            return cached

        self.invalidate(document_id)
        index_map = WordIndexMap(tokens)
        self._maps[key] = index_map
        logger.debug(
            "Built word index map for %s v%d (%d words / %d tokens)",
            document_id, token_version, index_map.total_words, index_map.total_tokens,
        )
        return index_map

    def invalidate(self, document_id: str) -> None:
        for key in [k for k in self._maps if k[0] == document_id]:
            del self._maps[key]

    def __contains__(self, key: Tuple[str, int]) -> bool:
        return key in self._maps

    def __len__(self) -> int:
        return len(self._maps)
