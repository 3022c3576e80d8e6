"""Tests for the session controller: persistence, switching, deferred play."""

import asyncio

import pytest

from swiftreader.config import ReaderSettings
from swiftreader.engine.scheduler import PlaybackState
from swiftreader.engine.session import SessionController
from swiftreader.storage import DocumentNotFound, MemoryStore, StorageUnavailable

LEGACY_RECORD = {
    "id": "doc_legacy",
    "title": "Legacy",
    "tokens": [
        {"t": "Hello", "kind": "word"},
        {"t": ",", "kind": "punct"},
        {"t": "world", "kind": "word"},
        {"t": "!", "kind": "punct"},
    ],
    "token_version": 1,
    "position": 0,
}


class FlakyStore(MemoryStore):
    """MemoryStore whose writes fail while ``failing`` is set."""

    def __init__(self):
        super().__init__()
        self.failing = False

    def put_document(self, record):
        if self.failing:
            raise StorageUnavailable("disk full")
        super().put_document(record)

    def put_position(self, document_id, position):
        if self.failing:
            raise StorageUnavailable("disk full")
        super().put_position(document_id, position)


@pytest.fixture
def controller(memory_store, listener, clock):
    return SessionController(store=memory_store, listener=listener, clock=clock.time, sleep=clock.sleep)


class TestDocuments:

    def test_import_persists(self, controller, memory_store, sample_text):
        doc = controller.import_text(sample_text, title="Sample", tags=["x"])
        stored = memory_store.get_document(doc.id)
        assert stored["title"] == "Sample"
        assert stored["word_count"] == 6

    def test_unknown_document(self, controller):
        with pytest.raises(DocumentNotFound):
            controller.get_document("doc_missing")

    def test_import_pages_uses_strip_settings(self, memory_store, three_page_source):
        controller = SessionController(store=memory_store, settings=ReaderSettings(strip_headers=False))
        doc = controller.import_pages(three_page_source, title="Paged")
        assert doc.text.startswith("Chapter Title")

    def test_import_pages_default_strips(self, controller, three_page_source):
        doc = controller.import_pages(three_page_source, title="Paged")
        assert doc.word_count == 25
        assert [r.page for r in doc.page_ranges] == [1, 2, 3]

    def test_list_documents_heals_and_saves(self, controller, memory_store):
        memory_store.put_document(dict(LEGACY_RECORD))
        docs = controller.list_documents()
        assert [d.id for d in docs] == ["doc_legacy"]
        assert memory_store.get_document("doc_legacy")["token_version"] == 2

    def test_delete_active_document(self, controller, memory_store, sample_text):
        doc = controller.import_text(sample_text)
        controller.open(doc.id)
        assert controller.delete_document(doc.id)
        assert controller.active is None
        assert memory_store.get_document(doc.id) is None
        with pytest.raises(DocumentNotFound):
            controller.get_document(doc.id)
        assert not controller.delete_document(doc.id)


class TestPositionPersistence:

    def test_position_survives_a_new_session(self, controller, memory_store):
        doc = controller.import_text("one two three four five")
        controller.open(doc.id)
        controller.seek_word(3)
        saved = memory_store.get_position(doc.id)
        assert saved["position"] == 3
        assert saved["word_index"] == 3
        assert saved["token_version"] == 1

        later = SessionController(store=memory_store)
        scheduler = later.open(doc.id)
        assert scheduler.engine.position == 3

    def test_position_remapped_after_heal(self, controller, memory_store):
        memory_store.put_document(dict(LEGACY_RECORD))
        memory_store.put_position("doc_legacy", {
            "position": 3, "word_index": 1, "token_version": 1, "total_read_words": 4,
        })
        doc = controller.get_document("doc_legacy")
        assert doc.token_version == 2
        assert doc.position == 1
        assert doc.total_read_words == 4
        assert memory_store.get_document("doc_legacy")["token_version"] == 2

    def test_storage_failure_warns_once_and_recovers(self, listener, sample_text):
        store = FlakyStore()
        controller = SessionController(store=store, listener=listener)
        store.failing = True
        doc = controller.import_text(sample_text)
        controller.open(doc.id)
        controller.step_tokens(1)
        controller.step_tokens(1)
        assert len(listener.warnings) == 1
        assert not controller.storage_available
        assert controller.get_document(doc.id) is doc

        store.failing = False
        controller.step_tokens(1)
        assert controller.storage_available
        assert store.get_position(doc.id)["position"] == 3

        store.failing = True
        controller.step_tokens(1)
        assert len(listener.warnings) == 2


class TestSwitchingAndLoading:

    def test_opening_another_document_closes_the_first(self, controller, clock, listener):
        first = controller.import_text("alpha beta gamma delta")
        second = controller.import_text("one two three four")

        async def scenario():
            old = controller.open(first.id)
            controller.play()
            await clock.advance_to(0.1)
            controller.open(second.id)
            await clock.advance_to(1.0)
            return old

        old = asyncio.run(scenario())
        assert old.closed
        assert [r.text for r in listener.renders] == ["alpha", "alpha", "one"]
        assert controller.active.engine.document.id == second.id
        assert clock.pending == 0

    def test_play_during_loading_is_deferred(self, controller, clock, listener):
        doc = controller.import_text("one two three four")

        async def scenario():
            controller.begin_loading(doc.id)
            assert controller.play() is False
            assert controller.state is PlaybackState.LOADING
            scheduler = controller.resolve_content()
            assert scheduler.is_playing
            await clock.advance_to(0.3)
            controller.pause()
            return scheduler

        scheduler = asyncio.run(scenario())
        assert "loading" in listener.states
        assert scheduler.engine.position == 1
        assert controller.state is PlaybackState.PAUSED

    def test_pause_while_loading_drops_request(self, controller):
        doc = controller.import_text("one two")
        controller.begin_loading(doc.id)
        controller.play()
        controller.pause()
        scheduler = controller.resolve_content()
        assert not scheduler.is_playing

    def test_mismatched_content_is_not_played(self, controller):
        doc = controller.import_text("one two")
        controller.begin_loading("doc_other")
        controller.play()
        scheduler = controller.resolve_content(doc)
        assert not scheduler.is_playing
        assert controller.state is PlaybackState.IDLE

    def test_resolve_without_pending_load(self, controller):
        assert controller.resolve_content() is None

    def test_navigation_requires_open_document(self, controller):
        with pytest.raises(DocumentNotFound):
            controller.step_tokens(1)
        with pytest.raises(DocumentNotFound):
            controller.add_bookmark()


class TestSettingsAndAnchors:

    def test_update_settings_reaches_active_scheduler(self, controller):
        doc = controller.import_text("one two")
        scheduler = controller.open(doc.id)
        settings = controller.update_settings(wpm=5000, chunk_size=3, auto_pause=None)
        assert settings.wpm == 1200
        assert settings.auto_pause is True
        assert scheduler.engine.settings.chunk_size == 3

    def test_bookmarks_and_notes_are_persisted(self, controller, memory_store, sample_text):
        doc = controller.import_text(sample_text)
        controller.open(doc.id)
        controller.seek_word(2)
        bookmark = controller.add_bookmark()
        note = controller.add_note("check", document_id=doc.id, token_index=0)
        stored = memory_store.get_document(doc.id)
        assert stored["bookmarks"][0]["token_index"] == 2
        assert stored["notes"][0]["text"] == "check"

        assert controller.jump_to_anchor(note.id) == 0
        assert controller.update_note(note.id, "edited").text == "edited"
        assert controller.remove_bookmark(bookmark.id)
        assert controller.delete_note(note.id)
        stored = memory_store.get_document(doc.id)
        assert stored["bookmarks"] == [] and stored["notes"] == []

    def test_session_stats(self, controller, clock):
        assert controller.session_stats() == {
            "elapsed_ms": 0.0, "words_shown": 0, "pause_count": 0, "average_wpm": None,
        }
        doc = controller.import_text(" ".join("w{}".format(i) for i in range(40)))
        controller.open(doc.id)

        async def scenario():
            controller.play()
            await clock.advance_to(3.9)
            controller.pause()

        asyncio.run(scenario())
        stats = controller.session_stats()
        assert stats["words_shown"] == 19
        assert stats["elapsed_ms"] == pytest.approx(3900.0)
        # 19 words in 3.9 s
        assert stats["average_wpm"] == 292
