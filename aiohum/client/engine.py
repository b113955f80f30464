"""Media engine contract used by the client, plus a headless implementation."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from enum import Enum
from typing import Protocol

logger = logging.getLogger(__name__)


class EngineEvent(Enum):
    """Events a media engine reports to its listeners."""

    READY = "ready"
    """The loaded media can be seeked and played."""
    PLAY = "play"
    """Playback started."""
    PAUSE = "pause"
    """Playback paused."""


EngineListener = Callable[[EngineEvent], None]


class MediaEngine(Protocol):
    """
    The local player a client keeps in sync.

    Engines report PLAY and PAUSE for every transition, including the ones caused
    by calling play() or pause() on them, and may do so synchronously from inside
    those calls.
    """

    def add_listener(self, listener: EngineListener) -> Callable[[], None]:
        """Register a listener for engine events. Returns a function to remove it."""
        ...

    @property
    def ready(self) -> bool:
        """Whether the loaded media can be seeked."""
        ...

    @property
    def playing(self) -> bool:
        """Whether the engine is currently playing."""
        ...

    @property
    def duration(self) -> float | None:
        """Duration of the loaded media in seconds, if known."""
        ...

    def position(self) -> float:
        """Return the current media position in seconds."""
        ...

    def load(self, video_id: str) -> None:
        """Load different media. The engine is not ready until it reports READY."""
        ...

    def play(self) -> None:
        """Start or resume playback."""
        ...

    def pause(self) -> None:
        """Pause playback."""
        ...

    def seek(self, position: float) -> None:
        """Jump to ``position`` seconds."""
        ...


class HeadlessMediaEngine:
    """
    A media engine without audio or video output.

    The position advances with a monotonic clock while playing. Loading media
    leaves the engine unready until mark_ready() is called, which mimics the
    initialization delay of a real player.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        duration: float | None = None,
    ) -> None:
        """Initialize an engine with nothing loaded."""
        self._clock = clock
        self._duration = duration
        self._listeners: list[EngineListener] = []
        self._video_id = ""
        self._ready = False
        self._playing = False
        self._anchor_position = 0.0
        self._anchor_time = clock()

    def add_listener(self, listener: EngineListener) -> Callable[[], None]:
        """Register a listener for engine events. Returns a function to remove it."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    @property
    def video_id(self) -> str:
        """Identifier of the loaded media."""
        return self._video_id

    @property
    def ready(self) -> bool:
        """Whether the loaded media can be seeked."""
        return self._ready

    @property
    def playing(self) -> bool:
        """Whether the engine is currently playing."""
        return self._playing

    @property
    def duration(self) -> float | None:
        """Duration of the loaded media in seconds, if known."""
        return self._duration

    def position(self) -> float:
        """Return the current media position in seconds."""
        position = self._anchor_position
        if self._playing:
            position += self._clock() - self._anchor_time
        if self._duration is not None:
            position = min(position, self._duration)
        return position

    def load(self, video_id: str, duration: float | None = None) -> None:
        """Load different media, paused at the start."""
        logger.debug("Loading %s", video_id)
        self._video_id = video_id
        self._duration = duration
        self._ready = False
        self._rebase(0.0)
        if self._playing:
            self._playing = False
            self._emit(EngineEvent.PAUSE)

    def mark_ready(self, duration: float | None = None) -> None:
        """Finish initializing the loaded media, optionally learning its duration."""
        if self._ready:
            return
        if duration is not None:
            self._duration = duration
        self._ready = True
        self._emit(EngineEvent.READY)

    def play(self) -> None:
        """Start or resume playback."""
        if self._playing:
            return
        self._rebase(self.position())
        self._playing = True
        self._emit(EngineEvent.PLAY)

    def pause(self) -> None:
        """Pause playback."""
        if not self._playing:
            return
        self._rebase(self.position())
        self._playing = False
        self._emit(EngineEvent.PAUSE)

    def seek(self, position: float) -> None:
        """Jump to ``position`` seconds."""
        if not self._ready:
            raise RuntimeError("Cannot seek before the media is ready")
        self._rebase(position)

    def _rebase(self, position: float) -> None:
        self._anchor_position = max(0.0, position)
        self._anchor_time = self._clock()

    def _emit(self, event: EngineEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Error in engine listener %s", listener)
