"""Core messages for the hum sync protocol.

The server greets every accepted connection with ``server/hello``. It carries the
connection identifier the server uses for this client, which peers need to address
voice signaling messages, and the server wall clock at the time of sending.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from mashumaro.mixins.orjson import DataClassORJSONMixin

from .types import ServerMessage

PROTOCOL_VERSION = 1


@dataclass
class ServerHelloPayload(DataClassORJSONMixin):
    """Information about the server and this connection."""

    connection_id: str
    """Identifier the server assigned to this connection."""
    server_id: str
    """Identifier of the server."""
    name: str
    """Friendly name of the server."""
    version: int
    """Protocol version implemented by the server."""
    server_time: int
    """Server wall clock in milliseconds since the epoch."""


@dataclass
class ServerHelloMessage(ServerMessage):
    """Message sent by the server right after accepting a connection."""

    payload: ServerHelloPayload
    type: Literal["server/hello"] = "server/hello"
