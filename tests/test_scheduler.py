"""Tests for timed playback, navigation, scrubbing, and page sync.

All timing runs on the VirtualClock from conftest.py; render times are
recorded by a listener that reads the virtual clock.
"""

import asyncio

import pytest

from swiftreader.core.document import add_bookmark, create_document_from_text
from swiftreader.core.index_map import WordIndexMap
from swiftreader.core.ir import PARAGRAPH_BREAK, RenderKind, Word
from swiftreader.engine.events import RecordingListener
from swiftreader.engine.scheduler import (
    EMPTY_LABEL,
    PARAGRAPH_GLYPH,
    PARAGRAPH_LABEL,
    EngineState,
    PlaybackScheduler,
    PlaybackState,
    chunk_span,
    sentence_target,
)


class TimedListener(RecordingListener):
    """Records (virtual time, text) for every render."""

    def __init__(self, clock, render_cost=0.0):
        super().__init__()
        self.clock = clock
        self.render_cost = render_cost
        self.timeline = []

    def on_render(self, event):
        super().on_render(event)
        self.timeline.append((round(self.clock.now, 6), event.text))
        self.clock.now += self.render_cost


@pytest.fixture
def listener(clock):
    return TimedListener(clock)


class TestSentenceTarget:

    TOKENS = [Word("One"), Word("two."), Word("Three"), Word("four."), Word("Five"), Word("six.")]

    @pytest.mark.parametrize("index, expected", [(0, 2), (2, 4), (3, 4), (4, 5), (5, 5)])
    def test_forward(self, index, expected):
        assert sentence_target(self.TOKENS, index, 1) == expected

    @pytest.mark.parametrize("index, expected", [(4, 2), (5, 4), (2, 0), (0, 0)])
    def test_backward(self, index, expected):
        assert sentence_target(self.TOKENS, index, -1) == expected

    def test_skips_paragraph_break(self):
        tokens = [Word("One."), PARAGRAPH_BREAK, Word("Two"), Word("three.")]
        assert sentence_target(tokens, 0, 1) == 2
        assert sentence_target(tokens, 3, -1) == 2

    def test_empty_stream(self):
        assert sentence_target([], 3, 1) == 0


class TestChunkSpan:

    TOKENS = [Word("a"), Word("b"), Word("c"), PARAGRAPH_BREAK, Word("d")]

    def test_single_token_steps(self):
        assert chunk_span(self.TOKENS, 0, 1) == (1, 1)
        assert chunk_span(self.TOKENS, 2, 1) == (3, 3)

    def test_chunks_stop_at_paragraph_break(self):
        assert chunk_span(self.TOKENS, 0, 2) == (1, 2)
        assert chunk_span(self.TOKENS, 0, 4) == (1, 2)
        assert chunk_span(self.TOKENS, 2, 3) == (3, 3)

    def test_at_end_of_stream(self):
        assert chunk_span(self.TOKENS, 4, 2) == (4, 4)

    def test_chunk_size_is_clamped(self):
        tokens = [Word(str(i)) for i in range(10)]
        assert chunk_span(tokens, 0, 9) == (1, 4)
        assert chunk_span(tokens, 0, 0) == (1, 1)


class TestPlaybackCadence:

    def test_steady_cadence_and_end_of_stream(self, make_scheduler, clock, listener):
        async def scenario():
            sched = make_scheduler("one two three four", wpm=300)
            assert sched.play()
            await clock.advance_to(0.84)
            assert sched.is_playing
            await clock.advance_to(2.0)
            assert sched.state is PlaybackState.PAUSED
            return sched

        sched = asyncio.run(scenario())
        assert listener.timeline == [(0.0, "one"), (0.2, "two"), (0.4, "three"), (0.6, "four")]
        assert listener.states == ["playing", "paused"]
        stats = sched.session_stats()
        assert stats.words_shown == 3
        assert stats.pause_count == 0
        assert stats.elapsed_ms == pytest.approx(850.0)
        assert sched.engine.document.total_read_words == 3

    def test_hard_punctuation_adds_pause(self, make_scheduler, clock, listener):
        async def scenario():
            sched = make_scheduler("go now. then stop", wpm=300, pause_intensity=80)
            sched.play()
            await clock.advance_to(2.0)
            return sched

        sched = asyncio.run(scenario())
        assert listener.timeline == [(0.0, "go"), (0.2, "now."), (0.528, "then"), (0.728, "stop")]
        assert sched.session_stats().pause_count == 1

    def test_auto_pause_off(self, make_scheduler, clock, listener):
        async def scenario():
            sched = make_scheduler("go now. then", wpm=300, auto_pause=False)
            sched.play()
            await clock.advance_to(2.0)
            return sched

        sched = asyncio.run(scenario())
        assert [t for t, _ in listener.timeline] == [0.0, 0.2, 0.4]
        assert sched.session_stats().pause_count == 0

    def test_chunks_and_paragraph_step(self, make_scheduler, clock, listener):
        async def scenario():
            sched = make_scheduler("a b c d e\n\nf g", wpm=300, chunk_size=2)
            sched.play()
            await clock.advance_to(3.0)
            return sched

        sched = asyncio.run(scenario())
        assert listener.timeline == [
            (0.0, "a"), (0.2, "b c"), (0.4, "d e"), (0.6, PARAGRAPH_GLYPH), (0.992, "f g"),
        ]
        paragraph = listener.renders[3]
        assert paragraph.kind is RenderKind.PARAGRAPH
        assert paragraph.label == PARAGRAPH_LABEL
        assert listener.renders[1].word_count == 2
        stats = sched.session_stats()
        assert stats.words_shown == 6
        assert stats.pause_count == 1

    def test_slow_callbacks_do_not_drift(self, make_scheduler, clock):
        slow = TimedListener(clock, render_cost=0.05)

        async def scenario():
            sched = make_scheduler("one two three four", wpm=300)
            sched.listener = slow
            sched.play()
            await clock.advance_to(2.0)

        asyncio.run(scenario())
        assert slow.timeline == [(0.0, "one"), (0.25, "two"), (0.45, "three"), (0.65, "four")]

    def test_wpm_change_applies_on_next_step(self, make_scheduler, clock, listener):
        async def scenario():
            sched = make_scheduler("one two three four", wpm=300)
            sched.play()
            await clock.advance_to(0.1)
            sched.engine.settings.wpm = 600
            await clock.advance_to(2.0)

        asyncio.run(scenario())
        assert [t for t, _ in listener.timeline] == [0.0, 0.2, 0.3, 0.4]


class TestPlaybackControl:

    def test_pause_preserves_elapsed_time(self, make_scheduler, clock, listener):
        async def scenario():
            sched = make_scheduler("one two three four five six", wpm=300)
            sched.play()
            await clock.advance_to(0.3)
            sched.pause()
            assert sched.session_stats().elapsed_ms == pytest.approx(300.0)
            await clock.advance_to(1.0)
            assert sched.play()
            await clock.advance_to(1.1)
            return sched.session_stats()

        stats = asyncio.run(scenario())
        assert stats.elapsed_ms == pytest.approx(400.0)
        assert stats.words_shown == 1
        # resume shows the current word again without moving
        assert [text for _, text in listener.timeline] == ["one", "two", "two"]

    def test_toggle(self, make_scheduler, clock):
        async def scenario():
            sched = make_scheduler("one two three", wpm=300)
            assert sched.toggle() is True
            assert sched.toggle() is False
            return sched.state

        assert asyncio.run(scenario()) is PlaybackState.PAUSED

    def test_reset_clears_stats(self, make_scheduler, clock, listener):
        async def scenario():
            sched = make_scheduler("one two three four five", wpm=300)
            sched.play()
            await clock.advance_to(0.45)
            sched.reset()
            await clock.advance_to(2.0)
            return sched

        sched = asyncio.run(scenario())
        assert sched.state is PlaybackState.IDLE
        assert listener.states[-1] == "idle"
        assert sched.session_stats().words_shown == 0
        assert sched.session_stats().elapsed_ms == 0
        assert len(listener.renders) == 3

    def test_close_makes_everything_a_no_op(self, make_scheduler, clock, listener):
        async def scenario():
            sched = make_scheduler("one two three four five", wpm=300)
            sched.play()
            await clock.advance_to(0.1)
            sched.close()
            await clock.advance_to(2.0)
            assert not sched.play()
            return sched

        sched = asyncio.run(scenario())
        assert sched.closed
        assert [text for _, text in listener.timeline] == ["one"]
        assert clock.pending == 0

    def test_play_at_last_token_restarts(self, make_scheduler, clock, listener):
        sched = make_scheduler("one two three", wpm=300)
        sched.seek_token(2)

        async def scenario():
            sched.play()
            sched.pause()

        asyncio.run(scenario())
        assert listener.renders[-1].text == "one"
        assert sched.engine.position == 0

    def test_play_requires_event_loop(self, make_scheduler):
        sched = make_scheduler("one two")
        with pytest.raises(RuntimeError):
            sched.play()

    def test_empty_document(self, make_scheduler, listener):
        sched = make_scheduler("")
        assert sched.play() is False
        render = listener.last_render
        assert render.kind is RenderKind.EMPTY
        assert render.label == EMPTY_LABEL
        assert sched.state is PlaybackState.IDLE


class TestNavigation:

    def test_navigation_pauses_without_counting(self, make_scheduler, clock, listener):
        async def scenario():
            sched = make_scheduler("one two three four five", wpm=300)
            sched.play()
            await clock.advance_to(0.3)
            sched.step_tokens(1)
            await clock.advance_to(2.0)
            return sched

        sched = asyncio.run(scenario())
        assert sched.state is PlaybackState.PAUSED
        assert sched.engine.position == 2
        assert sched.session_stats().words_shown == 1
        assert sched.engine.document.total_read_words == 1
        assert [text for _, text in listener.timeline] == ["one", "two", "three"]

    def test_step_and_seek_clamp(self, make_scheduler, listener):
        sched = make_scheduler("one two three")
        assert sched.step_tokens(-5) == 0
        assert sched.step_tokens(10) == 2
        assert sched.seek_word(99) == 2
        assert sched.seek_word(-1) == 0

    def test_step_sentence(self, make_scheduler):
        sched = make_scheduler("One two. Three four. Five six.")
        assert sched.step_sentence(1) == 2
        assert sched.step_sentence(1) == 4
        assert sched.step_sentence(-1) == 2
        assert sched.step_sentence(-1) == 0

    def test_paragraph_position_renders_glyph(self, make_scheduler, sample_text):
        sched = make_scheduler(sample_text)
        sched.seek_token(4)
        render = sched.current_render()
        assert render.kind is RenderKind.PARAGRAPH
        assert render.pivot == PARAGRAPH_GLYPH
        assert sched.current_word_index() == 3

    def test_seek_page_and_progress(self, make_scheduler, paged_document):
        sched = make_scheduler(paged_document)
        token_index = sched.seek_page(2)
        progress = sched.progress()
        assert progress.word_index == 13
        assert progress.page_number == 2
        assert progress.total_words == 25
        assert progress.token_index == token_index

    def test_seek_page_on_plain_text(self, make_scheduler):
        assert make_scheduler("one two").seek_page(1) is None

    def test_jump_to_anchor(self):
        doc = create_document_from_text("one two three four")
        bookmark = add_bookmark(doc, 3)
        sched = PlaybackScheduler(EngineState(document=doc, index_map=WordIndexMap(doc.tokens)))
        assert sched.jump_to_anchor(bookmark.id) == 3
        assert sched.jump_to_anchor("bm_missing") is None

    def test_on_change_called_on_navigation(self, make_scheduler):
        calls = []
        sched = make_scheduler("one two three")
        sched._on_change = lambda: calls.append(sched.engine.position)
        sched.seek_token(1)
        assert calls == [1]


class TestScrubAndPageSync:

    def test_scrub_requests_coalesce(self, make_scheduler, clock, listener):
        async def scenario():
            sched = make_scheduler("one two three four five")
            sched.scrub_to_word(1)
            sched.scrub_to_word(4)
            sched.scrub_to_word(2)
            assert listener.renders == []
            await clock.advance(0.02)
            return sched

        sched = asyncio.run(scenario())
        assert [r.text for r in listener.renders] == ["three"]
        assert sched.engine.position == 2

    def test_scrub_outside_loop_is_immediate(self, make_scheduler, listener):
        sched = make_scheduler("one two three four")
        sched.scrub_to_word(3)
        assert listener.last_render.text == "four"

    def test_page_sync_is_debounced(self, make_scheduler, clock, listener, paged_document):
        async def scenario():
            sched = make_scheduler(paged_document)
            sched.seek_page(2)
            sched.seek_page(1)
            await clock.advance(0.1)
            assert listener.page_syncs == []
            await clock.advance(0.1)
            assert listener.page_syncs == [1]
            sched.seek_page(3)
            await clock.advance(0.2)
            assert listener.page_syncs == [1, 3]
            # away and back before the debounce fires: nothing to sync
            sched.seek_page(2)
            sched.seek_page(3)
            await clock.advance(0.2)

        asyncio.run(scenario())
        assert listener.page_syncs == [1, 3]

    def test_page_sync_outside_loop_is_immediate(self, make_scheduler, listener, paged_document):
        sched = make_scheduler(paged_document)
        sched.seek_page(3)
        sched.seek_page(3)
        assert listener.page_syncs == [3]

    def test_plain_text_never_syncs(self, make_scheduler, listener):
        sched = make_scheduler("one two three")
        sched.seek_token(2)
        assert listener.page_syncs == []
