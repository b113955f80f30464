"""Models for the hum sync protocol."""

from __future__ import annotations

__all__ = [
    "PROTOCOL_VERSION",
    "ClientMessage",
    "ServerMessage",
    "chat",
    "core",
    "room",
    "types",
    "voice",
]

# Importing every submodule registers all message subclasses with the discriminators
from . import chat, core, room, types, voice
from .core import PROTOCOL_VERSION
from .types import ClientMessage, ServerMessage
