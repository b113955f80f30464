"""Authoritative play state of a room and the clock extrapolation over it."""

from __future__ import annotations

import time
from dataclasses import dataclass


def wall_time_ms() -> int:
    """Return the server wall clock in milliseconds since the epoch."""
    return int(time.time() * 1000)


@dataclass(slots=True)
class RoomState:
    """
    Play state of one room.

    The position is stored as a reference point rather than a running value: the
    media was at ``position_at_reference`` seconds when the wall clock read
    ``reference_wall_time``, and it has been advancing in real time since then if
    ``is_playing`` is set. Only the event router mutates this object.
    """

    video_id: str = ""
    """Opaque media identifier, empty when nothing is loaded."""
    is_playing: bool = False
    reference_wall_time: int = 0
    """Wall clock in milliseconds of the last state-changing action."""
    position_at_reference: float = 0.0
    """Media position in seconds at ``reference_wall_time``."""

    def set_reference(self, position: float, now_ms: int, *, is_playing: bool) -> None:
        """Record a new reference point authored at ``now_ms``."""
        self.position_at_reference = max(0.0, position)
        self.reference_wall_time = now_ms
        self.is_playing = is_playing


def compute_position(state: RoomState, now_ms: int) -> float:
    """
    Return the media position of ``state`` at wall time ``now_ms``.

    Constant while paused, advancing one second per second while playing. Query
    times before the reference point return the reference position.
    """
    if not state.is_playing:
        return state.position_at_reference
    elapsed_ms = max(0, now_ms - state.reference_wall_time)
    return state.position_at_reference + elapsed_ms / 1000
