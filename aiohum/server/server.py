"""Hum sync server: accepts client connections and hosts the rooms."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine, Sequence
from dataclasses import dataclass

import aiohttp_cors
from aiohttp import web

from aiohum.models.types import ServerMessage

from .cleanup import DEFAULT_GRACE_PERIOD
from .connection import HumConnection
from .registry import InMemoryRoomRepository, RoomRepository
from .room_state import wall_time_ms
from .router import EventRouter, RoomEvent

logger = logging.getLogger(__name__)

SERVICE_NAME = "HUM Sync Engine"
DEFAULT_WS_PATH = "/ws"


@dataclass
class ConnectionAddedEvent(RoomEvent):
    """A new client connection was accepted."""

    connection_id: str


@dataclass
class ConnectionRemovedEvent(RoomEvent):
    """A client connection was closed."""

    connection_id: str


class HumServer:
    """
    Hum sync server.

    Owns the room registry, the event router that writes to it and the open client
    connections it fans out to. Everything runs on a single event loop.
    """

    _connections: dict[str, HumConnection]
    loop: asyncio.AbstractEventLoop
    _event_cbs: list[Callable[[RoomEvent], Coroutine[None, None, None]]]
    _id: str
    _name: str
    _router: EventRouter

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        server_id: str,
        server_name: str,
        *,
        registry: RoomRepository | None = None,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        clock: Callable[[], int] = wall_time_ms,
    ) -> None:
        """
        Initialize a new hum sync server.

        Args:
            loop: The event loop all connections and timers run on.
            server_id: Identifier reported to clients in server/hello.
            server_name: Friendly name reported to clients in server/hello.
            registry: Room storage, defaults to an in-memory registry.
            grace_period: Seconds an empty room is kept before deletion.
            clock: Wall clock in milliseconds since the epoch.
        """
        self.loop = loop
        self._id = server_id
        self._name = server_name
        self._connections = {}
        self._event_cbs = []
        self._router = EventRouter(
            loop,
            registry if registry is not None else InMemoryRoomRepository(),
            self,
            grace_period=grace_period,
            clock=clock,
            signal_event=self._signal_event,
        )
        logger.debug("HumServer initialized: id=%s, name=%s", server_id, server_name)

    async def on_client_connect(self, request: web.Request) -> web.WebSocketResponse:
        """Handle an incoming WebSocket connection from a hum client."""
        logger.debug("Incoming client connection from %s", request.remote)
        connection = HumConnection(self, request)
        return await connection.handle_client()

    def send_to(self, connection_id: str, message: ServerMessage) -> bool:
        """Enqueue ``message`` for the connection with the given id."""
        connection = self._connections.get(connection_id)
        if connection is None:
            return False
        return connection.send_message(message)

    def add_event_listener(
        self, callback: Callable[[RoomEvent], Coroutine[None, None, None]]
    ) -> Callable[[], None]:
        """Register a callback to listen for state changes of the server.

        State changes include:
        - A connection was accepted or closed
        - A room was created, changed its play state or was deleted

        Returns a function to remove the listener.
        """
        self._event_cbs.append(callback)
        return lambda: self._event_cbs.remove(callback)

    def _signal_event(self, event: RoomEvent) -> None:
        for cb in self._event_cbs:
            _ = self.loop.create_task(cb(event))

    def _on_connection_add(self, connection: HumConnection) -> None:
        """Register an accepted connection so messages can be routed to it."""
        if connection.connection_id in self._connections:
            return
        logger.debug("Adding connection %s", connection.connection_id)
        self._connections[connection.connection_id] = connection
        self._signal_event(ConnectionAddedEvent(connection.connection_id))

    def _on_connection_remove(self, connection: HumConnection) -> None:
        if self._connections.pop(connection.connection_id, None) is None:
            return
        logger.debug("Removing connection %s", connection.connection_id)
        self._router.leave(connection.connection_id)
        self._signal_event(ConnectionRemovedEvent(connection.connection_id))

    @property
    def router(self) -> EventRouter:
        """The event router applying client actions."""
        return self._router

    @property
    def registry(self) -> RoomRepository:
        """The room registry of this server."""
        return self._router.registry

    @property
    def connections(self) -> dict[str, HumConnection]:
        """All open connections, keyed by connection id."""
        return self._connections

    def get_connection(self, connection_id: str) -> HumConnection | None:
        """Get the connection with the given id."""
        return self._connections.get(connection_id)

    @property
    def id(self) -> str:
        """Get the unique identifier of this server."""
        return self._id

    @property
    def name(self) -> str:
        """Get the name of this server."""
        return self._name

    async def close(self) -> None:
        """Disconnect all clients and cancel pending room cleanups."""
        for connection in list(self._connections.values()):
            await connection.disconnect()
        self._router.close()

    async def _handle_status(self, _request: web.Request) -> web.Response:
        registry = self.registry
        return web.json_response(
            {
                "status": "ok",
                "service": SERVICE_NAME,
                "rooms": len(registry),
                "total_users": sum(registry.member_count(room_id) for room_id, _ in registry),
            }
        )

    async def _handle_health(self, _request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})

    def create_app(
        self,
        *,
        ws_path: str = DEFAULT_WS_PATH,
        allowed_origins: Sequence[str] = (),
    ) -> web.Application:
        """
        Build the aiohttp application serving this server.

        The WebSocket endpoint is mounted at ``ws_path``. The status routes allow
        cross-origin requests from ``allowed_origins`` only.
        """
        app = web.Application()
        app.router.add_get(ws_path, self.on_client_connect)
        status_routes = [
            app.router.add_get("/", self._handle_status),
            app.router.add_get("/health", self._handle_health),
        ]

        cors = aiohttp_cors.setup(
            app,
            defaults={
                origin: aiohttp_cors.ResourceOptions(
                    allow_credentials=True, allow_methods=["GET", "POST"]
                )
                for origin in allowed_origins
            },
        )
        for route in status_routes:
            cors.add(route)

        async def _on_shutdown(_app: web.Application) -> None:
            await self.close()

        app.on_shutdown.append(_on_shutdown)
        return app
