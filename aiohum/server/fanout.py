"""Room-scoped fan-out of server messages to connections."""

from __future__ import annotations

import logging
from typing import Protocol

from aiohum.models.types import ServerMessage

from .registry import RoomRepository

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Delivers a message to a single connection."""

    def send_to(self, connection_id: str, message: ServerMessage) -> bool:
        """
        Enqueue ``message`` for ``connection_id``.

        Returns False if no such connection is open. Must not block.
        """
        ...


class RoomFanout:
    """Sends messages to one connection or to the members of a room."""

    def __init__(self, registry: RoomRepository, transport: Transport) -> None:
        """Initialize the fan-out over ``registry`` memberships."""
        self._registry = registry
        self._transport = transport

    def to_connection(self, connection_id: str, message: ServerMessage) -> bool:
        """Send ``message`` to a single connection."""
        delivered = self._transport.send_to(connection_id, message)
        if not delivered:
            logger.debug(
                "Dropping %s for unknown connection %s", type(message).__name__, connection_id
            )
        return delivered

    def to_room(
        self, room_id: str, message: ServerMessage, *, exclude: str | None = None
    ) -> int:
        """
        Send ``message`` to every member of ``room_id`` except ``exclude``.

        Returns the number of connections the message was enqueued for.
        """
        delivered = 0
        for connection_id in self._registry.members(room_id):
            if connection_id == exclude:
                continue
            if self._transport.send_to(connection_id, message):
                delivered += 1
        return delivered
