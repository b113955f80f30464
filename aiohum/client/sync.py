"""
Client-side reconciliation of the local player with the room's play state.

Two kinds of traffic meet in a client: state pushed by the server, and actions of
the local user. Applying a push makes the player fire its own play and pause
callbacks, and those must not travel back to the server as if the user had acted,
otherwise every client keeps re-authoring the state it just received. Every
applied push therefore opens a short echo window during which engine events are
tagged as remote-originated and dropped.

Drift between the local position and the pushed position is only corrected above
a threshold, and a correction arms a cooldown so that jittery pushes do not make
the player seek back and forth. A push that arrives before the player can seek is
parked as a pending sync and applied once the player reports ready.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Final, Protocol

from .engine import EngineEvent
from .history import Track, TrackHistory

if TYPE_CHECKING:
    from collections.abc import Iterator

    from aiohum.models.room import ReceiveStatePayload

    from .engine import MediaEngine

logger = logging.getLogger(__name__)

DEFAULT_DRIFT_THRESHOLD: Final = 0.5
"""Seconds of drift tolerated before seeking."""
DEFAULT_DRIFT_COOLDOWN: Final = 2.0
"""Seconds after a drift correction during which no further correction is made."""
DEFAULT_ECHO_WINDOW: Final = 0.3
"""Seconds after applying a push during which engine events count as its echo."""
DEFAULT_MIN_EMIT_INTERVAL: Final = 0.1
"""Minimum seconds between two state updates sent to the server."""


class SyncState(Enum):
    """Connection-level state of the reconciler."""

    IDLE = "idle"
    """Not in a room. Local actions only drive the player."""
    JOINING = "joining"
    """join_room was sent, waiting for the first state push."""
    SYNCED = "synced"
    """At least one state push was applied."""


class EventOrigin(Enum):
    """Who caused an event the media engine reported."""

    USER = "user"
    """The user acted on the player. Forwarded to the server."""
    REMOTE = "remote"
    """Side effect of applying a server push. Dropped."""
    SELF = "self"
    """Side effect of a local command that was already forwarded. Dropped."""


class ApplyResult(Enum):
    """What applying a state push did to the player."""

    IN_SYNC = "in_sync"
    """Drift was within the threshold, no seek."""
    SEEKED = "seeked"
    """The player was seeked to the pushed position."""
    COOLDOWN = "cooldown"
    """Drift was above the threshold but a recent correction blocked the seek."""
    DEFERRED = "deferred"
    """The player was not ready, the push was parked as a pending sync."""


@dataclass(frozen=True, slots=True)
class PendingSync:
    """A push that arrived before the player was able to seek."""

    position: float
    is_playing: bool
    generation: int
    """Apply generation of the push this was captured from."""


class StatePublisher(Protocol):
    """Sends locally authored state to the server."""

    def publish_state(self, *, video_id: str, is_playing: bool, position: float) -> None:
        """Send an update_state for the current room."""
        ...

    def publish_video(self, *, video_id: str, title: str | None, channel: str | None) -> None:
        """Send a change_video for the current room."""
        ...


class PlaybackReconciler:
    """Keeps one local media engine converged on the room's playhead."""

    def __init__(
        self,
        engine: MediaEngine,
        publisher: StatePublisher,
        *,
        clock: Callable[[], float] = time.monotonic,
        drift_threshold: float = DEFAULT_DRIFT_THRESHOLD,
        drift_cooldown: float = DEFAULT_DRIFT_COOLDOWN,
        echo_window: float = DEFAULT_ECHO_WINDOW,
        min_emit_interval: float = DEFAULT_MIN_EMIT_INTERVAL,
        history: TrackHistory | None = None,
        on_search_requested: Callable[[], None] | None = None,
    ) -> None:
        """
        Initialize the reconciler.

        Args:
            engine: The local player.
            publisher: Sends update_state and change_video to the server.
            clock: Monotonic clock in seconds used for every deadline.
            drift_threshold: Seconds of drift tolerated before seeking.
            drift_cooldown: Seconds after a correction during which drift is ignored.
            echo_window: Seconds after a push during which engine events are echoes.
            min_emit_interval: Minimum seconds between two outbound updates.
            history: Track history for previous/next, a new one if omitted.
            on_search_requested: Called when next() runs past the end of history.
        """
        if drift_threshold <= 0:
            raise ValueError("drift_threshold must be positive")
        if drift_cooldown < 0 or echo_window < 0 or min_emit_interval < 0:
            raise ValueError("time windows must not be negative")
        self._engine = engine
        self._publisher = publisher
        self._clock = clock
        self._drift_threshold = drift_threshold
        self._drift_cooldown = drift_cooldown
        self._echo_window = echo_window
        self._min_emit_interval = min_emit_interval
        self.history = history if history is not None else TrackHistory()
        self._on_search_requested = on_search_requested

        self._state = SyncState.IDLE
        self._video_id = ""
        self._title: str | None = None
        self._channel: str | None = None
        self._is_playing = False
        self._last_known_position = 0.0
        self._pending: PendingSync | None = None
        self._apply_generation = 0
        self._suppress_remote_echo_until = float("-inf")
        self._drift_cooldown_until = float("-inf")
        self._last_local_emit_time = float("-inf")
        self._applying_remote = 0
        self._driving_local = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def state(self) -> SyncState:
        """Connection-level state."""
        return self._state

    @property
    def video_id(self) -> str:
        """Media identifier of the room as last known."""
        return self._video_id

    @property
    def title(self) -> str | None:
        """Display title of the current track, if known."""
        return self._title

    @property
    def channel(self) -> str | None:
        """Display channel of the current track, if known."""
        return self._channel

    @property
    def is_playing(self) -> bool:
        """Whether the room is playing, as last known or optimistically set."""
        return self._is_playing

    @property
    def pending_sync(self) -> PendingSync | None:
        """The push waiting for the player to become ready."""
        return self._pending

    @property
    def apply_generation(self) -> int:
        """Number of pushes applied so far."""
        return self._apply_generation

    @property
    def echo_suppressed(self) -> bool:
        """Whether engine events are currently treated as echoes of a push."""
        return self._applying_remote > 0 or self._clock() < self._suppress_remote_echo_until

    @property
    def drift_cooldown_active(self) -> bool:
        """Whether a recent drift correction blocks another one."""
        return self._clock() < self._drift_cooldown_until

    def position(self) -> float:
        """Return the local playback position."""
        if self._engine.ready:
            self._last_known_position = self._engine.position()
        return self._last_known_position

    # ------------------------------------------------------------------
    # Room lifecycle
    # ------------------------------------------------------------------
    def begin_join(self) -> None:
        """Record that join_room was sent."""
        logger.debug("Joining, waiting for the room state")
        self._state = SyncState.JOINING

    def reset(self) -> None:
        """Forget the room after leaving it or losing the connection."""
        self._state = SyncState.IDLE
        self._pending = None
        self._suppress_remote_echo_until = float("-inf")
        self._drift_cooldown_until = float("-inf")
        self._last_local_emit_time = float("-inf")

    # ------------------------------------------------------------------
    # Server pushes
    # ------------------------------------------------------------------
    def apply_remote_state(self, payload: ReceiveStatePayload) -> ApplyResult:
        """Apply a receive_state push to the local player."""
        now = self._clock()
        self._apply_generation += 1
        # A later push extends the window, an earlier deadline never shortens it
        self._suppress_remote_echo_until = max(
            self._suppress_remote_echo_until, now + self._echo_window
        )
        self._state = SyncState.SYNCED

        with self._remote_apply():
            if payload.video_id and payload.video_id != self._video_id:
                logger.info("Loading %s", payload.video_id)
                self._video_id = payload.video_id
                self._engine.load(payload.video_id)
                self._last_known_position = 0.0
                # Metadata belongs to the track, a new track starts without any
                self._title = payload.title
                self._channel = payload.channel
                self.history.record(Track(self._video_id, self._title, self._channel))
            elif not payload.video_id:
                self._video_id = ""
                self._title = self._channel = None
            elif payload.title is not None or payload.channel is not None:
                if payload.title is not None:
                    self._title = payload.title
                if payload.channel is not None:
                    self._channel = payload.channel
                self.history.record(Track(self._video_id, self._title, self._channel))
            self._is_playing = payload.is_playing

            target = payload.current_seconds
            if not self._engine.ready:
                self._pending = PendingSync(target, payload.is_playing, self._apply_generation)
                logger.debug("Player not ready, parking sync to %.2fs", target)
                return ApplyResult.DEFERRED
            self._pending = None
            return self._converge(target, payload.is_playing, respect_cooldown=True)

    def on_engine_ready(self) -> ApplyResult | None:
        """Apply the pending sync once the player is able to seek."""
        pending = self._pending
        if pending is None or not self._engine.ready:
            return None
        self._pending = None
        logger.debug(
            "Player ready, applying sync to %.2fs from push %d",
            pending.position,
            pending.generation,
        )
        self._suppress_remote_echo_until = max(
            self._suppress_remote_echo_until, self._clock() + self._echo_window
        )
        with self._remote_apply():
            return self._converge(pending.position, pending.is_playing, respect_cooldown=False)

    def _converge(self, target: float, is_playing: bool, *, respect_cooldown: bool) -> ApplyResult:
        duration = self._engine.duration
        target = max(0.0, target if duration is None else min(target, duration))

        if is_playing and not self._engine.playing:
            self._engine.play()
        elif not is_playing and self._engine.playing:
            self._engine.pause()

        local = self._engine.position()
        drift = abs(local - target)
        if drift <= self._drift_threshold:
            self._last_known_position = local
            return ApplyResult.IN_SYNC
        now = self._clock()
        if respect_cooldown and now < self._drift_cooldown_until:
            logger.debug("Drift of %.2fs ignored during cooldown", drift)
            self._last_known_position = local
            return ApplyResult.COOLDOWN
        logger.info("Seeking from %.2fs to %.2fs", local, target)
        self._engine.seek(target)
        self._drift_cooldown_until = now + self._drift_cooldown
        self._last_known_position = target
        return ApplyResult.SEEKED

    # ------------------------------------------------------------------
    # Engine callbacks
    # ------------------------------------------------------------------
    def classify(self) -> EventOrigin:
        """Tag an engine event observed right now with its origin."""
        if self._driving_local > 0:
            return EventOrigin.SELF
        if self.echo_suppressed:
            return EventOrigin.REMOTE
        return EventOrigin.USER

    def on_engine_event(self, event: EngineEvent) -> None:
        """Listener for MediaEngine events."""
        match event:
            case EngineEvent.READY:
                _ = self.on_engine_ready()
            case EngineEvent.PLAY:
                _ = self.on_engine_play()
            case EngineEvent.PAUSE:
                _ = self.on_engine_pause()

    def on_engine_play(self) -> bool:
        """Handle the player reporting that playback started."""
        return self._on_engine_transition(is_playing=True)

    def on_engine_pause(self) -> bool:
        """Handle the player reporting that playback paused."""
        return self._on_engine_transition(is_playing=False)

    def _on_engine_transition(self, *, is_playing: bool) -> bool:
        origin = self.classify()
        if origin is not EventOrigin.USER:
            logger.debug("Dropping %s engine event (%s)", origin.value, is_playing)
            return False
        self._is_playing = is_playing
        return self._emit_state(is_playing, self.position())

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------
    def play(self) -> bool:
        """User pressed play. Returns True if the server was told."""
        return self._local_action(is_playing=True, position=None)

    def pause(self) -> bool:
        """User pressed pause. Returns True if the server was told."""
        return self._local_action(is_playing=False, position=None)

    def toggle(self) -> bool:
        """User toggled play/pause."""
        return self._local_action(is_playing=not self._is_playing, position=None)

    def seek(self, position: float) -> bool:
        """User seeked to ``position`` seconds."""
        return self._local_action(is_playing=self._is_playing, position=position)

    def select_track(
        self, video_id: str, title: str | None = None, channel: str | None = None
    ) -> bool:
        """User picked a track. Only ever sent with a concrete media id."""
        if not video_id:
            raise ValueError("video_id must not be empty")
        if self._state is SyncState.IDLE:
            return False
        if self.echo_suppressed:
            logger.debug("Dropping track selection during echo window")
            return False
        self.history.record(Track(video_id, title, channel))
        return self._publish_track(Track(video_id, title, channel))

    def next_track(self) -> bool:
        """Play the next track from history, or ask for a search at the end of it."""
        if self._state is SyncState.IDLE or self.echo_suppressed:
            return False
        track = self.history.next()
        if track is None:
            logger.debug("End of history, requesting search")
            if self._on_search_requested is not None:
                self._on_search_requested()
            return False
        return self._publish_track(track)

    def previous_track(self) -> bool:
        """Play the previous track from history, if there is one."""
        if self._state is SyncState.IDLE or self.echo_suppressed:
            return False
        track = self.history.previous()
        if track is None:
            return False
        return self._publish_track(track)

    def _publish_track(self, track: Track) -> bool:
        # Local metadata follows once the server echoes the change back
        self._publisher.publish_video(
            video_id=track.video_id, title=track.title, channel=track.channel
        )
        return True

    def _local_action(self, *, is_playing: bool, position: float | None) -> bool:
        if self.echo_suppressed:
            logger.debug("Dropping local action during echo window")
            return False
        with self._local_drive():
            if position is not None and self._engine.ready:
                self._engine.seek(position)
                self._last_known_position = position
            if is_playing:
                self._engine.play()
            else:
                self._engine.pause()
        self._is_playing = is_playing
        return self._emit_state(is_playing, self.position() if position is None else position)

    def _emit_state(self, is_playing: bool, position: float) -> bool:
        if self._state is SyncState.IDLE:
            return False
        now = self._clock()
        if now - self._last_local_emit_time < self._min_emit_interval:
            logger.debug("Rate limited state update")
            return False
        self._last_local_emit_time = now
        self._publisher.publish_state(
            video_id=self._video_id, is_playing=is_playing, position=position
        )
        logger.debug("Sent state update: playing=%s, position=%.2fs", is_playing, position)
        return True

    @contextmanager
    def _remote_apply(self) -> Iterator[None]:
        self._applying_remote += 1
        try:
            yield
        finally:
            self._applying_remote -= 1

    @contextmanager
    def _local_drive(self) -> Iterator[None]:
        self._driving_local += 1
        try:
            yield
        finally:
            self._driving_local -= 1
