"""Deferred deletion of empty rooms."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Final

logger = logging.getLogger(__name__)

DEFAULT_GRACE_PERIOD: Final = 30.0
"""Seconds a room may stay empty before it is deleted."""


class RoomCleanupScheduler:
    """
    Schedules one deferred check per room.

    The callback does not delete anything by itself being called: it is expected to
    recheck that the room is still empty and only then delete it. A rejoin during
    the grace period therefore needs no bookkeeping here. Scheduling a room that
    already has a pending check replaces that check, so a room is only ever deleted
    after it stayed empty for the whole grace period.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        on_due: Callable[[str], None],
        grace_period: float = DEFAULT_GRACE_PERIOD,
    ) -> None:
        """Initialize the scheduler."""
        if grace_period < 0:
            raise ValueError("grace_period must not be negative")
        self._loop = loop
        self._on_due = on_due
        self._grace_period = grace_period
        self._pending: dict[str, asyncio.TimerHandle] = {}

    @property
    def grace_period(self) -> float:
        """Seconds between a room becoming empty and its deletion check."""
        return self._grace_period

    def schedule(self, room_id: str) -> None:
        """Arm the deletion check for ``room_id``."""
        previous = self._pending.pop(room_id, None)
        if previous is not None:
            previous.cancel()
        logger.debug("Room %s is empty, checking again in %.1fs", room_id, self._grace_period)
        self._pending[room_id] = self._loop.call_later(self._grace_period, self._fire, room_id)

    def is_pending(self, room_id: str) -> bool:
        """Return True if a deletion check is armed for ``room_id``."""
        return room_id in self._pending

    def close(self) -> None:
        """Cancel all outstanding checks."""
        for handle in self._pending.values():
            handle.cancel()
        self._pending.clear()

    def _fire(self, room_id: str) -> None:
        self._pending.pop(room_id, None)
        try:
            self._on_due(room_id)
        except Exception:
            logger.exception("Error while cleaning up room %s", room_id)
