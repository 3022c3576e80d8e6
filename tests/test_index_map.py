"""Tests for word/token index mapping and the per-document map cache."""

from swiftreader.core.index_map import NOT_A_WORD, IndexCache, WordIndexMap
from swiftreader.core.ir import PARAGRAPH_BREAK, Word
from swiftreader.core.tokenizer import tokenize

STREAM = [Word("A"), PARAGRAPH_BREAK, Word("B"), Word("C"), PARAGRAPH_BREAK, Word("D")]


class TestWordIndexMap:

    def test_arrays(self):
        index_map = WordIndexMap(STREAM)
        assert index_map.word_to_token == [0, 2, 3, 5]
        assert index_map.token_to_word == [0, NOT_A_WORD, 1, 2, NOT_A_WORD, 3]
        assert index_map.total_words == 4
        assert index_map.total_tokens == 6

    def test_word_to_token_is_strictly_increasing(self, merge_corpus):
        for text in merge_corpus:
            positions = WordIndexMap(tokenize(text)).word_to_token
            assert all(a < b for a, b in zip(positions, positions[1:]))

    def test_word_index_never_decreases_along_the_stream(self, merge_corpus):
        for text in merge_corpus:
            index_map = WordIndexMap(tokenize(text))
            words = [index_map.word_index_for_token(t) for t in range(index_map.total_tokens)]
            assert all(a <= b for a, b in zip(words, words[1:]))
            if words:
                assert words[-1] == max(0, index_map.total_words - 1)

    def test_non_word_resolves_to_preceding_word(self):
        index_map = WordIndexMap(STREAM)
        assert index_map.word_index_for_token(1) == 0
        assert index_map.word_index_for_token(4) == 2

    def test_leading_non_word_resolves_to_zero(self):
        index_map = WordIndexMap([PARAGRAPH_BREAK, Word("a")])
        assert index_map.word_index_for_token(0) == 0

    def test_out_of_range_input_is_clamped(self):
        index_map = WordIndexMap(STREAM)
        assert index_map.word_index_for_token(99) == 3
        assert index_map.word_index_for_token(-3) == 0
        assert index_map.token_index_for_word(-1) == 0
        assert index_map.token_index_for_word(10) == 5

    def test_round_trips(self):
        index_map = WordIndexMap(STREAM)
        for w in range(index_map.total_words):
            assert index_map.word_index_for_token(index_map.token_index_for_word(w)) == w
        for t in range(index_map.total_tokens):
            assert index_map.token_index_for_word(index_map.word_index_for_token(t)) <= t

    def test_empty_stream(self):
        index_map = WordIndexMap([])
        assert index_map.total_words == 0
        assert index_map.word_index_for_token(5) == 0
        assert index_map.token_index_for_word(5) == 0


class TestIndexCache:

    def test_hit_returns_same_map(self):
        cache = IndexCache()
        first = cache.get("doc", 1, STREAM)
        assert cache.get("doc", 1, STREAM) is first
        assert len(cache) == 1

    def test_new_version_replaces_old(self):
        cache = IndexCache()
        old = cache.get("doc", 1, STREAM)
        new = cache.get("doc", 2, STREAM[:3])
        assert new is not old
        assert new.total_words == 2
        assert ("doc", 1) not in cache
        assert ("doc", 2) in cache

    def test_invalidate_only_touches_one_document(self):
        cache = IndexCache()
        cache.get("a", 1, STREAM)
        cache.get("b", 1, STREAM)
        cache.invalidate("a")
        assert ("a", 1) not in cache
        assert ("b", 1) in cache
