"""Tests for wire message parsing."""

import orjson

from aiohum.models import ClientMessage, ServerMessage
from aiohum.models.room import (
    JoinRoomMessage,
    ReceiveStateMessage,
    ReceiveStatePayload,
    UpdateStateMessage,
    UpdateStatePayload,
)
from aiohum.models.voice import VoiceOfferClientMessage, VoiceOfferServerMessage


def test_client_messages_are_parsed_by_type():
    message = ClientMessage.from_json('{"type": "join_room", "payload": {"room_id": "lobby"}}')

    assert isinstance(message, JoinRoomMessage)
    assert message.payload.room_id == "lobby"


def test_voice_offer_parses_to_the_right_side():
    raw = {"type": "voice:offer", "payload": {"room_id": "r", "target_id": "t", "offer": {"a": 1}}}
    client = ClientMessage.from_json(orjson.dumps(raw))
    assert isinstance(client, VoiceOfferClientMessage)
    assert client.payload.offer == {"a": 1}

    server = ServerMessage.from_json(
        '{"type": "voice:offer", "payload": {"sender_id": "s", "offer": {"a": 1}}}'
    )
    assert isinstance(server, VoiceOfferServerMessage)


def test_update_state_omits_missing_video_id():
    message = UpdateStateMessage(
        UpdateStatePayload(room_id="lobby", is_playing=True, timestamp_at_last_action=4.5)
    )

    data = orjson.loads(message.to_json())

    assert data["type"] == "update_state"
    assert data["payload"] == {
        "room_id": "lobby",
        "is_playing": True,
        "timestamp_at_last_action": 4.5,
    }


def test_receive_state_serializes_type_and_payload():
    message = ReceiveStateMessage(
        ReceiveStatePayload(video_id="abc", is_playing=False, current_seconds=1.5, server_time=7)
    )

    data = orjson.loads(message.to_json())

    assert data["type"] == "receive_state"
    assert data["payload"]["video_id"] == "abc"
    assert data["payload"]["current_seconds"] == 1.5
    assert data["payload"]["server_time"] == 7
