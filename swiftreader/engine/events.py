"""Listener interface the playback engine reports to.

WHY: The engine knows nothing about terminals, web pages, or HTTP
responses. Anything that wants to show words or progress subclasses
PlaybackListener and overrides the callbacks it cares about.

RULES:
- Every callback defaults to a no-op
- Callbacks run on the event loop thread and must not block
"""

from __future__ import annotations

from typing import List, Optional, Tuple

from swiftreader.core.ir import Progress, RenderEvent


class PlaybackListener:
    """Base listener; override what you need."""

    def on_render(self, event: RenderEvent) -> None:
        pass

    def on_progress(self, progress: Progress) -> None:
        pass

    def on_page_sync(self, page_number: int) -> None:
        pass

    def on_state_change(self, state: str) -> None:
        pass

    def on_warning(self, message: str) -> None:
        pass


class RecordingListener(PlaybackListener):
    """Listener that keeps every event it receives, in arrival order.

    Used by the HTTP façade to collect the render/progress produced by a
    navigation request, and handy in tests.
    """

    def __init__(self) -> None:
        self.events: List[Tuple[str, object]] = []

    def on_render(self, event: RenderEvent) -> None:
        self.events.append(("render", event))

    def on_progress(self, progress: Progress) -> None:
        self.events.append(("progress", progress))

    def on_page_sync(self, page_number: int) -> None:
        self.events.append(("page_sync", page_number))

    def on_state_change(self, state: str) -> None:
        self.events.append(("state", state))

    def on_warning(self, message: str) -> None:
        self.events.append(("warning", message))

    def of_kind(self, kind: str) -> list:
        return [payload for name, payload in self.events if name == kind]

    @property
    def renders(self) -> List[RenderEvent]:
        return self.of_kind("render")

    @property
    def last_render(self) -> Optional[RenderEvent]:
        renders = self.renders
        return renders[-1] if renders else None

    @property
    def page_syncs(self) -> List[int]:
        return self.of_kind("page_sync")

    @property
    def states(self) -> List[str]:
        return self.of_kind("state")

    @property
    def warnings(self) -> List[str]:
        return self.of_kind("warning")

    def clear(self) -> None:
        self.events.clear()
