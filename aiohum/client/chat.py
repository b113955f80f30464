"""Ephemeral room chat ("whispers") as seen by one client."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Final

DEFAULT_DISPLAY_WINDOW: Final = 5.0
DEFAULT_FADE_AFTER: Final = 4.0


@dataclass(frozen=True, slots=True)
class Whisper:
    """A chat message relayed by the server."""

    message_id: str
    message: str
    sender_id: str
    timestamp: int
    """Server wall clock in milliseconds when the message was relayed."""
    received_at: float
    """Local monotonic time the message arrived."""


class WhisperInbox:
    """
    Whispers currently on screen.

    Nothing is persisted. A whisper is shown for ``display_window`` seconds after
    it arrived and reported as fading during the last part of that window.
    """

    def __init__(
        self,
        *,
        display_window: float = DEFAULT_DISPLAY_WINDOW,
        fade_after: float = DEFAULT_FADE_AFTER,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if display_window <= 0:
            raise ValueError("display_window must be positive")
        if not 0 <= fade_after <= display_window:
            raise ValueError("fade_after must be between 0 and display_window")
        self._display_window = display_window
        self._fade_after = fade_after
        self._clock = clock
        self._whispers: dict[str, Whisper] = {}

    def __len__(self) -> int:
        return len(self._whispers)

    def add(self, message: str, sender_id: str, timestamp: int) -> Whisper:
        """Show a received message. A repeated id replaces the earlier whisper."""
        whisper = Whisper(
            message_id=f"{timestamp}-{sender_id}",
            message=message,
            sender_id=sender_id,
            timestamp=timestamp,
            received_at=self._clock(),
        )
        self._whispers.pop(whisper.message_id, None)
        self._whispers[whisper.message_id] = whisper
        return whisper

    def visible(self) -> list[Whisper]:
        """Return whispers still inside their display window, oldest first."""
        self.expire()
        return list(self._whispers.values())

    def is_fading(self, whisper: Whisper) -> bool:
        """Whether ``whisper`` is in the fade-out part of its window."""
        return self._clock() - whisper.received_at >= self._fade_after

    def expire(self) -> int:
        """Drop whispers whose window has passed. Returns how many were dropped."""
        now = self._clock()
        expired = [
            message_id
            for message_id, whisper in self._whispers.items()
            if now - whisper.received_at >= self._display_window
        ]
        for message_id in expired:
            del self._whispers[message_id]
        return len(expired)
