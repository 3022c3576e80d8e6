"""Playback engine: scheduler, session controller, and listener interface."""

from swiftreader.engine.events import PlaybackListener, RecordingListener
from swiftreader.engine.scheduler import EngineState, PlaybackScheduler, PlaybackState
from swiftreader.engine.session import SessionController

__all__ = [
    "EngineState",
    "PlaybackListener",
    "PlaybackScheduler",
    "PlaybackState",
    "RecordingListener",
    "SessionController",
]
