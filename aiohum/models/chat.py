"""Whisper (chat) messages. The server only fans these out and never stores them."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from mashumaro.mixins.orjson import DataClassORJSONMixin

from .types import ClientMessage, ServerMessage


# Client -> Server: send_message
@dataclass
class SendMessagePayload(DataClassORJSONMixin):
    """A whisper written by a client."""

    room_id: str
    message: str


@dataclass
class SendMessageMessage(ClientMessage):
    """Message sent by the client to whisper to the rest of the room."""

    payload: SendMessagePayload
    type: Literal["send_message"] = "send_message"


# Server -> Client: receive_message
@dataclass
class ReceiveMessagePayload(DataClassORJSONMixin):
    """A whisper relayed by the server."""

    message: str
    """Trimmed message text."""
    sender_id: str
    """Short form of the sender's connection id."""
    timestamp: int
    """Server wall clock in milliseconds when the whisper was relayed."""


@dataclass
class ReceiveMessageMessage(ServerMessage):
    """Message sent by the server to deliver a whisper."""

    payload: ReceiveMessagePayload
    type: Literal["receive_message"] = "receive_message"
