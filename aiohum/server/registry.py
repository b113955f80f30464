"""Room registry: room states, member sets and the room of every connection."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Protocol

from .room_state import RoomState

logger = logging.getLogger(__name__)


class RoomRepository(Protocol):
    """
    Storage for room states and memberships.

    Contract: there is exactly one writer. All mutations come from the event router
    while it handles a single inbound event, so an implementation is never observed
    mid-mutation and needs no locking of its own. Implementations backed by a
    shared store must preserve that single-writer property per room.
    """

    def get(self, room_id: str) -> RoomState | None:
        """Return the state of ``room_id`` or None if the room does not exist."""
        ...

    def create(self, room_id: str, now_ms: int) -> RoomState:
        """Create an empty room referenced at ``now_ms`` and return its state."""
        ...

    def delete(self, room_id: str) -> None:
        """Delete the state and member set of ``room_id``."""
        ...

    def __iter__(self) -> Iterator[tuple[str, RoomState]]:
        """Iterate over ``(room_id, state)`` pairs."""
        ...

    def __len__(self) -> int:
        """Return the number of rooms."""
        ...

    def members(self, room_id: str) -> frozenset[str]:
        """Return the connection ids currently in ``room_id``."""
        ...

    def member_count(self, room_id: str) -> int:
        """Return the number of connections currently in ``room_id``."""
        ...

    def add_member(self, room_id: str, connection_id: str) -> None:
        """Add ``connection_id`` to ``room_id``, recording it as its current room."""
        ...

    def remove_member(self, connection_id: str) -> str | None:
        """Remove ``connection_id`` from its room and return that room id, if any."""
        ...

    def room_of(self, connection_id: str) -> str | None:
        """Return the room ``connection_id`` is currently in."""
        ...


class InMemoryRoomRepository:
    """RoomRepository keeping everything in dictionaries of this process."""

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._states: dict[str, RoomState] = {}
        self._members: dict[str, set[str]] = {}
        self._room_of: dict[str, str] = {}

    def get(self, room_id: str) -> RoomState | None:
        """Return the state of ``room_id`` or None if the room does not exist."""
        return self._states.get(room_id)

    def create(self, room_id: str, now_ms: int) -> RoomState:
        """Create an empty room referenced at ``now_ms`` and return its state."""
        if room_id in self._states:
            raise ValueError(f"Room {room_id} already exists")
        state = RoomState(reference_wall_time=now_ms)
        self._states[room_id] = state
        logger.debug("Created room %s", room_id)
        return state

    def delete(self, room_id: str) -> None:
        """Delete the state and member set of ``room_id``."""
        self._states.pop(room_id, None)
        for connection_id in self._members.pop(room_id, set()):
            if self._room_of.get(connection_id) == room_id:
                del self._room_of[connection_id]
        logger.debug("Deleted room %s", room_id)

    def __iter__(self) -> Iterator[tuple[str, RoomState]]:
        """Iterate over ``(room_id, state)`` pairs."""
        return iter(list(self._states.items()))

    def __len__(self) -> int:
        """Return the number of rooms."""
        return len(self._states)

    def members(self, room_id: str) -> frozenset[str]:
        """Return the connection ids currently in ``room_id``."""
        return frozenset(self._members.get(room_id, ()))

    def member_count(self, room_id: str) -> int:
        """Return the number of connections currently in ``room_id``."""
        return len(self._members.get(room_id, ()))

    def add_member(self, room_id: str, connection_id: str) -> None:
        """Add ``connection_id`` to ``room_id``, recording it as its current room."""
        previous = self._room_of.get(connection_id)
        if previous is not None and previous != room_id:
            raise ValueError(f"Connection {connection_id} is still in room {previous}")
        self._members.setdefault(room_id, set()).add(connection_id)
        self._room_of[connection_id] = room_id

    def remove_member(self, connection_id: str) -> str | None:
        """Remove ``connection_id`` from its room and return that room id, if any."""
        room_id = self._room_of.pop(connection_id, None)
        if room_id is None:
            return None
        members = self._members.get(room_id)
        if members is not None:
            members.discard(connection_id)
        return room_id

    def room_of(self, connection_id: str) -> str | None:
        """Return the room ``connection_id`` is currently in."""
        return self._room_of.get(connection_id)
