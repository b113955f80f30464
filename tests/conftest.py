"""Shared fixtures for the hum test suite."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any, TypeVar

import pytest

from aiohum.models.types import ServerMessage
from aiohum.server import EventRouter, InMemoryRoomRepository, RoomEvent

M = TypeVar("M", bound=ServerMessage)


class RecordingTransport:
    """Transport that records every message per connection id."""

    def __init__(self) -> None:
        self.open: set[str] = set()
        self.sent: list[tuple[str, ServerMessage]] = []

    def connect(self, *connection_ids: str) -> None:
        self.open.update(connection_ids)

    def send_to(self, connection_id: str, message: ServerMessage) -> bool:
        if connection_id not in self.open:
            return False
        self.sent.append((connection_id, message))
        return True

    def received(self, connection_id: str, kind: type[M] | None = None) -> list[Any]:
        return [
            message
            for target, message in self.sent
            if target == connection_id and (kind is None or isinstance(message, kind))
        ]

    def clear(self) -> None:
        self.sent.clear()


class FakeClock:
    """Settable clock. Call it for the current time."""

    def __init__(self, now: float = 0) -> None:
        self.now = now

    def __call__(self) -> Any:
        return self.now

    def advance(self, delta: float) -> None:
        self.now += delta


@pytest.fixture
def transport() -> RecordingTransport:
    transport = RecordingTransport()
    transport.connect("alice-connection", "bob-connection", "carol-connection")
    return transport


@pytest.fixture
def wall_clock() -> FakeClock:
    return FakeClock(1_700_000_000_000)


@pytest.fixture
def registry() -> InMemoryRoomRepository:
    return InMemoryRoomRepository()


@pytest.fixture
def events() -> list[RoomEvent]:
    return []


@pytest.fixture
async def router(
    registry: InMemoryRoomRepository,
    transport: RecordingTransport,
    wall_clock: FakeClock,
    events: list[RoomEvent],
) -> AsyncIterator[EventRouter]:
    router = EventRouter(
        asyncio.get_running_loop(),
        registry,
        transport,
        grace_period=0.05,
        clock=wall_clock,
        signal_event=events.append,
    )
    yield router
    router.close()
