"""
Room messages for the hum sync protocol.

This module contains the messages that move a client into a room and keep the
shared playhead of that room converged: joining, authoring a new play state,
switching the loaded media and the state pushes and presence counts sent back.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from mashumaro.config import BaseConfig
from mashumaro.mixins.orjson import DataClassORJSONMixin

from .types import ClientMessage, ServerMessage


# Client -> Server: join_room
@dataclass
class JoinRoomPayload(DataClassORJSONMixin):
    """Payload for joining a room."""

    room_id: str
    """Identifier of the room to join, created on first join."""


@dataclass
class JoinRoomMessage(ClientMessage):
    """Message sent by the client to join a room."""

    payload: JoinRoomPayload
    type: Literal["join_room"] = "join_room"


# Client -> Server: update_state
@dataclass
class UpdateStatePayload(DataClassORJSONMixin):
    """A play state authored by a client."""

    room_id: str
    """Room the state applies to."""
    is_playing: bool
    """Whether playback should be running."""
    timestamp_at_last_action: float
    """Media position in seconds at the moment of the action."""
    video_id: str | None = None
    """Media identifier, only replaces the room's media when set."""

    class Config(BaseConfig):
        """Config for parsing json messages."""

        omit_none = True


@dataclass
class UpdateStateMessage(ClientMessage):
    """Message sent by the client after a local play, pause or seek."""

    payload: UpdateStatePayload
    type: Literal["update_state"] = "update_state"


# Client -> Server: change_video
@dataclass
class ChangeVideoPayload(DataClassORJSONMixin):
    """Switch the media loaded in a room."""

    room_id: str
    """Room to switch, created if it does not exist yet."""
    video_id: str
    """Media identifier to load."""
    title: str | None = None
    """Display title, relayed but not stored."""
    channel: str | None = None
    """Display channel or artist name, relayed but not stored."""

    class Config(BaseConfig):
        """Config for parsing json messages."""

        omit_none = True


@dataclass
class ChangeVideoMessage(ClientMessage):
    """Message sent by the client to select a different track."""

    payload: ChangeVideoPayload
    type: Literal["change_video"] = "change_video"


# Server -> Client: receive_state
@dataclass
class ReceiveStatePayload(DataClassORJSONMixin):
    """Authoritative room state, with a position valid at receipt."""

    video_id: str
    """Media identifier, empty when nothing is loaded."""
    is_playing: bool
    """Whether the room is playing."""
    current_seconds: float
    """Position in seconds the client should converge to."""
    server_time: int
    """Server wall clock in milliseconds at the time of sending."""
    title: str | None = None
    """Display title, only present after a track change."""
    channel: str | None = None
    """Display channel, only present after a track change."""

    class Config(BaseConfig):
        """Config for parsing json messages."""

        omit_none = True


@dataclass
class ReceiveStateMessage(ServerMessage):
    """Message sent by the server with the room's play state."""

    payload: ReceiveStatePayload
    type: Literal["receive_state"] = "receive_state"


# Server -> Client: user_count_update
@dataclass
class UserCountUpdatePayload(DataClassORJSONMixin):
    """Number of connections currently in a room."""

    count: int
    room_id: str


@dataclass
class UserCountUpdateMessage(ServerMessage):
    """Message sent by the server whenever the room's membership changes."""

    payload: UserCountUpdatePayload
    type: Literal["user_count_update"] = "user_count_update"
