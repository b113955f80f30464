"""Tests for the server-side event router."""

import asyncio

import pytest

from aiohum.models.chat import ReceiveMessageMessage, SendMessageMessage, SendMessagePayload
from aiohum.models.room import (
    ChangeVideoMessage,
    ChangeVideoPayload,
    JoinRoomMessage,
    JoinRoomPayload,
    ReceiveStateMessage,
    UpdateStateMessage,
    UpdateStatePayload,
    UserCountUpdateMessage,
)
from aiohum.server import RoomCreatedEvent, RoomDeletedEvent, RoomStateChangedEvent

ALICE = "alice-connection"
BOB = "bob-connection"
CAROL = "carol-connection"


def _join(router, connection_id, room_id="lobby"):
    router.handle_message(connection_id, JoinRoomMessage(JoinRoomPayload(room_id=room_id)))


def _update(router, connection_id, *, is_playing, position, room_id="lobby", video_id=None):
    router.handle_message(
        connection_id,
        UpdateStateMessage(
            UpdateStatePayload(
                room_id=room_id,
                is_playing=is_playing,
                timestamp_at_last_action=position,
                video_id=video_id,
            )
        ),
    )


async def test_join_creates_room_and_sends_snapshot(router, transport, events):
    _join(router, ALICE)

    states = transport.received(ALICE, ReceiveStateMessage)
    assert len(states) == 1
    assert states[0].payload.video_id == ""
    assert states[0].payload.is_playing is False
    assert states[0].payload.current_seconds == 0.0
    counts = transport.received(ALICE, UserCountUpdateMessage)
    assert [c.payload.count for c in counts] == [1]
    assert RoomCreatedEvent("lobby") in events


async def test_join_snapshot_is_extrapolated(router, transport, wall_clock):
    _join(router, ALICE)
    _update(router, ALICE, is_playing=True, position=10.0, video_id="abc")
    wall_clock.advance(5_000)

    _join(router, BOB)

    snapshot = transport.received(BOB, ReceiveStateMessage)[0].payload
    assert snapshot.video_id == "abc"
    assert snapshot.is_playing is True
    assert snapshot.current_seconds == pytest.approx(15.0)
    assert snapshot.server_time == wall_clock.now


async def test_join_same_room_twice_keeps_membership(router, transport, registry):
    _join(router, ALICE)
    _join(router, ALICE)

    assert registry.member_count("lobby") == 1
    assert len(transport.received(ALICE, ReceiveStateMessage)) == 2
    assert [c.payload.count for c in transport.received(ALICE, UserCountUpdateMessage)] == [1, 1]


async def test_join_other_room_leaves_previous(router, transport, registry):
    _join(router, ALICE)
    _join(router, BOB)
    transport.clear()

    _join(router, ALICE, "other")

    assert registry.room_of(ALICE) == "other"
    assert registry.members("lobby") == frozenset({BOB})
    assert [c.payload.count for c in transport.received(BOB, UserCountUpdateMessage)] == [1]


async def test_update_state_excludes_sender_and_is_verbatim(router, transport, wall_clock, events):
    _join(router, ALICE)
    _join(router, BOB)
    _join(router, CAROL)
    transport.clear()

    _update(router, ALICE, is_playing=True, position=10.0)

    assert transport.received(ALICE) == []
    for peer in (BOB, CAROL):
        (state,) = transport.received(peer, ReceiveStateMessage)
        assert state.payload.is_playing is True
        assert state.payload.current_seconds == 10.0
        assert state.payload.server_time == wall_clock.now
    assert isinstance(events[-1], RoomStateChangedEvent)


async def test_update_state_keeps_video_when_omitted(router, registry):
    _join(router, ALICE)
    _update(router, ALICE, is_playing=False, position=0.0, video_id="abc")
    _update(router, ALICE, is_playing=True, position=3.0)

    assert registry.get("lobby").video_id == "abc"


async def test_update_state_for_unknown_room_is_dropped(router, transport, registry):
    _join(router, ALICE)
    transport.clear()

    _update(router, ALICE, is_playing=True, position=5.0, room_id="nowhere")

    assert transport.sent == []
    assert registry.get("nowhere") is None


async def test_change_video_resets_and_reaches_everyone(router, transport, registry):
    _join(router, ALICE)
    _join(router, BOB)
    _update(router, ALICE, is_playing=True, position=80.0)
    transport.clear()

    router.handle_message(
        BOB,
        ChangeVideoMessage(
            ChangeVideoPayload(room_id="lobby", video_id="xyz", title="Song", channel="Band")
        ),
    )

    for member in (ALICE, BOB):
        (state,) = transport.received(member, ReceiveStateMessage)
        assert state.payload.video_id == "xyz"
        assert state.payload.is_playing is False
        assert state.payload.current_seconds == 0.0
        assert state.payload.title == "Song"
        assert state.payload.channel == "Band"
    assert registry.get("lobby").position_at_reference == 0.0


async def test_change_video_with_empty_id_is_rejected(router, transport, registry):
    _join(router, ALICE)
    transport.clear()

    router.handle_message(ALICE, ChangeVideoMessage(ChangeVideoPayload("lobby", "")))

    assert transport.sent == []
    assert registry.get("lobby").video_id == ""


async def test_change_video_creates_missing_room(router, registry, events):
    router.handle_message(ALICE, ChangeVideoMessage(ChangeVideoPayload("fresh", "abc")))

    assert registry.get("fresh").video_id == "abc"
    assert RoomCreatedEvent("fresh") in events
    assert router.cleanup.is_pending("fresh")


async def test_whisper_goes_to_others_with_short_sender(router, transport, wall_clock):
    _join(router, ALICE)
    _join(router, BOB)
    transport.clear()

    router.handle_message(ALICE, SendMessageMessage(SendMessagePayload("lobby", "  hi there ")))

    assert transport.received(ALICE) == []
    (whisper,) = transport.received(BOB, ReceiveMessageMessage)
    assert whisper.payload.message == "hi there"
    assert whisper.payload.sender_id == ALICE[:6]
    assert whisper.payload.timestamp == wall_clock.now


async def test_blank_whisper_is_dropped(router, transport):
    _join(router, ALICE)
    _join(router, BOB)
    transport.clear()

    router.handle_message(ALICE, SendMessageMessage(SendMessagePayload("lobby", "   ")))

    assert transport.sent == []


async def test_leave_updates_count_for_remaining_members(router, transport):
    for member in (ALICE, BOB, CAROL):
        _join(router, member)
    transport.clear()

    router.leave(ALICE)
    router.leave(BOB)

    counts = [c.payload.count for c in transport.received(CAROL, UserCountUpdateMessage)]
    assert counts == [2, 1]


async def test_leave_without_room_is_noop(router, transport):
    assert router.leave(ALICE) is None
    assert transport.sent == []


async def test_empty_room_is_deleted_after_grace_period(router, registry, events):
    _join(router, ALICE)
    router.leave(ALICE)

    assert registry.get("lobby") is not None
    await asyncio.sleep(0.1)

    assert registry.get("lobby") is None
    assert RoomDeletedEvent("lobby") in events


async def test_rejoin_during_grace_period_keeps_room(router, registry, events):
    _join(router, ALICE)
    _update(router, ALICE, is_playing=False, position=12.0, video_id="abc")
    router.leave(ALICE)
    await asyncio.sleep(0.01)

    _join(router, BOB)
    await asyncio.sleep(0.1)

    state = registry.get("lobby")
    assert state is not None
    assert state.video_id == "abc"
    assert state.position_at_reference == 12.0
    assert RoomDeletedEvent("lobby") not in events


async def test_errors_in_one_event_are_contained(router, transport, registry, monkeypatch):
    _join(router, ALICE)

    def broken(*_args, **_kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(router, "update_state", broken)
    _update(router, ALICE, is_playing=True, position=1.0)

    _join(router, BOB)
    assert registry.member_count("lobby") == 2
