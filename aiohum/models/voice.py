"""
Voice signaling messages for the hum sync protocol.

Voice is a full mesh: every pair of participants with voice enabled negotiates a
direct WebRTC connection. The server only relays these messages and never looks
inside the session descriptions or ICE candidates it forwards.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from mashumaro.mixins.orjson import DataClassORJSONMixin

from .types import ClientMessage, ServerMessage


# Client -> Server: voice:enabled / voice:disabled
@dataclass
class VoiceTogglePayload(DataClassORJSONMixin):
    """Room in which voice was toggled."""

    room_id: str


@dataclass
class VoiceEnabledClientMessage(ClientMessage):
    """Message sent by the client after enabling its microphone."""

    payload: VoiceTogglePayload
    type: Literal["voice:enabled"] = "voice:enabled"


@dataclass
class VoiceDisabledClientMessage(ClientMessage):
    """Message sent by the client after leaving the voice mesh."""

    payload: VoiceTogglePayload
    type: Literal["voice:disabled"] = "voice:disabled"


# Client -> Server: unicast negotiation
@dataclass
class VoiceOfferClientPayload(DataClassORJSONMixin):
    """Session description offer addressed to one peer."""

    room_id: str
    target_id: str
    """Connection id of the peer the offer is for."""
    offer: dict[str, Any]
    """Opaque RTCSessionDescriptionInit."""


@dataclass
class VoiceOfferClientMessage(ClientMessage):
    """Message sent by the client to offer a peer connection."""

    payload: VoiceOfferClientPayload
    type: Literal["voice:offer"] = "voice:offer"


@dataclass
class VoiceAnswerClientPayload(DataClassORJSONMixin):
    """Session description answer addressed to one peer."""

    room_id: str
    target_id: str
    answer: dict[str, Any]


@dataclass
class VoiceAnswerClientMessage(ClientMessage):
    """Message sent by the client to answer an offer."""

    payload: VoiceAnswerClientPayload
    type: Literal["voice:answer"] = "voice:answer"


@dataclass
class VoiceIceCandidateClientPayload(DataClassORJSONMixin):
    """ICE candidate addressed to one peer."""

    room_id: str
    target_id: str
    candidate: dict[str, Any]


@dataclass
class VoiceIceCandidateClientMessage(ClientMessage):
    """Message sent by the client for every local ICE candidate."""

    payload: VoiceIceCandidateClientPayload
    type: Literal["voice:ice-candidate"] = "voice:ice-candidate"


# Server -> Client: voice presence
@dataclass
class VoiceUserPayload(DataClassORJSONMixin):
    """Connection whose voice state changed."""

    user_id: str


@dataclass
class VoiceUserEnabledServerMessage(ServerMessage):
    """Message sent by the server when another member enabled voice."""

    payload: VoiceUserPayload
    type: Literal["voice:user-enabled"] = "voice:user-enabled"


@dataclass
class VoiceUserDisabledServerMessage(ServerMessage):
    """Message sent by the server when another member disabled voice."""

    payload: VoiceUserPayload
    type: Literal["voice:user-disabled"] = "voice:user-disabled"


# Server -> Client: relayed negotiation
@dataclass
class VoiceOfferServerPayload(DataClassORJSONMixin):
    """Offer relayed from ``sender_id``."""

    sender_id: str
    offer: dict[str, Any]


@dataclass
class VoiceOfferServerMessage(ServerMessage):
    """Message sent by the server to deliver an offer."""

    payload: VoiceOfferServerPayload
    type: Literal["voice:offer"] = "voice:offer"


@dataclass
class VoiceAnswerServerPayload(DataClassORJSONMixin):
    """Answer relayed from ``sender_id``."""

    sender_id: str
    answer: dict[str, Any]


@dataclass
class VoiceAnswerServerMessage(ServerMessage):
    """Message sent by the server to deliver an answer."""

    payload: VoiceAnswerServerPayload
    type: Literal["voice:answer"] = "voice:answer"


@dataclass
class VoiceIceCandidateServerPayload(DataClassORJSONMixin):
    """ICE candidate relayed from ``sender_id``."""

    sender_id: str
    candidate: dict[str, Any]


@dataclass
class VoiceIceCandidateServerMessage(ServerMessage):
    """Message sent by the server to deliver an ICE candidate."""

    payload: VoiceIceCandidateServerPayload
    type: Literal["voice:ice-candidate"] = "voice:ice-candidate"
