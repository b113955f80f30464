"""Tests for the deferred room cleanup scheduler."""

import asyncio

import pytest

from aiohum.server import RoomCleanupScheduler


async def test_fires_after_grace_period():
    due: list[str] = []
    scheduler = RoomCleanupScheduler(asyncio.get_running_loop(), due.append, 0.02)

    scheduler.schedule("lobby")
    assert scheduler.is_pending("lobby")
    await asyncio.sleep(0.05)

    assert due == ["lobby"]
    assert not scheduler.is_pending("lobby")


async def test_rescheduling_restarts_the_grace_period():
    due: list[str] = []
    scheduler = RoomCleanupScheduler(asyncio.get_running_loop(), due.append, 0.05)

    scheduler.schedule("lobby")
    await asyncio.sleep(0.03)
    scheduler.schedule("lobby")
    await asyncio.sleep(0.03)
    assert due == []

    await asyncio.sleep(0.05)
    assert due == ["lobby"]


async def test_close_cancels_pending_checks():
    due: list[str] = []
    scheduler = RoomCleanupScheduler(asyncio.get_running_loop(), due.append, 0.01)

    scheduler.schedule("a")
    scheduler.schedule("b")
    scheduler.close()
    await asyncio.sleep(0.03)

    assert due == []


async def test_callback_errors_are_logged(caplog):
    def on_due(_room_id: str) -> None:
        raise RuntimeError("boom")

    scheduler = RoomCleanupScheduler(asyncio.get_running_loop(), on_due, 0.0)
    scheduler.schedule("lobby")
    await asyncio.sleep(0.01)

    assert "Error while cleaning up room lobby" in caplog.text


async def test_negative_grace_period_is_rejected():
    with pytest.raises(ValueError):
        RoomCleanupScheduler(asyncio.get_running_loop(), lambda _room_id: None, -1)
