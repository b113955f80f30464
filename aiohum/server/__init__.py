"""
Hum sync server implementation that hosts rooms for hum clients.

HumServer is the authoritative side of the listening experience, responsible for:
- Keeping one play state per room and extrapolating its position
- Relaying play state, whispers and voice signaling between room members
- Cleaning up rooms that stayed empty for a grace period
"""

__all__ = [
    "ConnectionAddedEvent",
    "ConnectionRemovedEvent",
    "EventRouter",
    "HumConnection",
    "HumServer",
    "InMemoryRoomRepository",
    "PresenceBroadcaster",
    "RoomCleanupScheduler",
    "RoomCreatedEvent",
    "RoomDeletedEvent",
    "RoomEvent",
    "RoomRepository",
    "RoomState",
    "RoomStateChangedEvent",
    "ServerConfig",
    "SignalingRelay",
    "compute_position",
]

from .cleanup import RoomCleanupScheduler
from .config import ServerConfig
from .connection import HumConnection
from .presence import PresenceBroadcaster
from .registry import InMemoryRoomRepository, RoomRepository
from .room_state import RoomState, compute_position
from .router import (
    EventRouter,
    RoomCreatedEvent,
    RoomDeletedEvent,
    RoomEvent,
    RoomStateChangedEvent,
)
from .server import ConnectionAddedEvent, ConnectionRemovedEvent, HumServer
from .signaling import SignalingRelay
