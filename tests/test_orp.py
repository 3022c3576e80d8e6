"""Tests for ORP pivot selection and word rendering."""

import pytest

from swiftreader.core.orp import PLACEHOLDER_GLYPH, orp_index, render_word


class TestOrpIndex:

    @pytest.mark.parametrize("length, expected", [
        (1, 0), (2, 0), (3, 1), (5, 1), (6, 2), (9, 2), (10, 3), (13, 3), (14, 4), (20, 4),
    ])
    def test_length_bands(self, length, expected):
        assert orp_index("x" * length) == expected

    def test_empty_word(self):
        assert orp_index("") == 0


class TestRenderWord:

    def test_splits_around_pivot(self):
        rendered = render_word("reading")
        assert rendered == ("re", "a", "ding")
        assert rendered.left + rendered.pivot + rendered.right == "reading"

    def test_single_character(self):
        assert render_word("a") == ("", "a", "")

    def test_empty_word_uses_placeholder(self):
        rendered = render_word("")
        assert rendered.pivot == PLACEHOLDER_GLYPH
        assert rendered.left == "" and rendered.right == ""

    def test_punctuation_counts_towards_length(self):
        # "world!" has 6 characters → pivot index 2
        assert render_word("world!") == ("wo", "r", "ld!")
