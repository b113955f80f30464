"""Member count pushes for rooms."""

from __future__ import annotations

import logging

from aiohum.models.room import UserCountUpdateMessage, UserCountUpdatePayload

from .fanout import RoomFanout
from .registry import RoomRepository

logger = logging.getLogger(__name__)


class PresenceBroadcaster:
    """Derives a room's member count from the registry and pushes it to the room."""

    def __init__(self, registry: RoomRepository, fanout: RoomFanout) -> None:
        """Initialize the broadcaster."""
        self._registry = registry
        self._fanout = fanout

    def broadcast(self, room_id: str) -> int:
        """Send the current member count of ``room_id`` to all of its members."""
        count = self._registry.member_count(room_id)
        self._fanout.to_room(
            room_id,
            UserCountUpdateMessage(UserCountUpdatePayload(count=count, room_id=room_id)),
        )
        logger.info("Room %s: %d users", room_id, count)
        return count
