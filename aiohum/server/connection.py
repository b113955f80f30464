"""Represents a single client connection to the hum sync server."""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import suppress
from typing import TYPE_CHECKING, cast

from aiohttp import WSMessage, WSMsgType, web

from aiohum.models import PROTOCOL_VERSION
from aiohum.models.core import ServerHelloMessage, ServerHelloPayload
from aiohum.models.types import ClientMessage, ServerMessage

from .room_state import wall_time_ms

MAX_PENDING_MSG = 512

logger = logging.getLogger(__name__)

# The cyclic import is not an issue during runtime, so hide it
# pyright: reportImportCycles=none
if TYPE_CHECKING:
    from .server import HumServer


class HumConnection:
    """
    A WebSocket connection from a client to a HumServer.

    Inbound frames are parsed and handed to the server's event router one at a
    time, in the order they were received. Outbound messages are queued and written
    by a dedicated task, so fanning out to a room never waits on a slow client.
    """

    _server: HumServer
    _request: web.Request
    _wsock: web.WebSocketResponse
    _connection_id: str
    _writer_task: asyncio.Task[None] | None = None
    """Task responsible for sending JSON data."""
    _to_write: asyncio.Queue[ServerMessage]
    """Queue for messages to be sent to the client through the WebSocket."""
    _closing: bool = False
    _logger: logging.Logger

    def __init__(self, server: HumServer, request: web.Request) -> None:
        """
        DO NOT CALL THIS CONSTRUCTOR. INTERNAL USE ONLY.

        Use HumServer.on_client_connect instead.
        """
        self._server = server
        self._request = request
        self._wsock = web.WebSocketResponse(heartbeat=55)
        self._connection_id = uuid.uuid4().hex
        self._logger = logger.getChild(self._connection_id)
        self._to_write = asyncio.Queue(maxsize=MAX_PENDING_MSG)
        self._closing = False
        self._logger.debug("Connection initialized for %s", request.remote)

    @property
    def connection_id(self) -> str:
        """The unique identifier of this connection."""
        return self._connection_id

    @property
    def closing(self) -> bool:
        """Whether this connection is in the process of closing."""
        return self._closing

    @property
    def websocket_connection(self) -> web.WebSocketResponse:
        """The underlying WebSocket response."""
        return self._wsock

    def send_message(self, message: ServerMessage) -> bool:
        """
        Enqueue a message to be sent to the client.

        Returns False if the message was dropped because the connection is closing
        or its outbound queue is full.
        """
        if self._closing:
            return False
        try:
            self._to_write.put_nowait(message)
        except asyncio.QueueFull:
            self._logger.warning(
                "Outbound queue full, dropping %s", type(message).__name__
            )
            return False
        self._logger.debug("Enqueueing message: %s", type(message).__name__)
        return True

    async def disconnect(self) -> None:
        """Disconnect this client from the server."""
        if self._closing:
            return
        self._closing = True
        self._logger.debug("Disconnecting client")

        if self._writer_task and not self._writer_task.done():
            self._logger.debug("Cancelling writer task")
            _ = self._writer_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._writer_task

        if not self._wsock.closed:
            _ = await self._wsock.close()

        # A dropped transport is an implicit leave
        self._server._on_connection_remove(self)  # noqa: SLF001
        self._logger.info("Client disconnected")

    async def handle_client(self) -> web.WebSocketResponse:
        """
        Handle the complete websocket connection lifecycle.

        Should only be called by HumServer during connection handling.
        """
        try:
            await self._setup_connection()
            await self._run_message_loop()
        finally:
            await self.disconnect()
        return self._wsock

    async def _setup_connection(self) -> None:
        """Establish WebSocket connection and greet the client."""
        try:
            async with asyncio.timeout(10):
                _ = await self._wsock.prepare(self._request)
        except TimeoutError:
            self._logger.warning("Timeout preparing request")
            raise

        self._logger.info("Connection established")
        self._writer_task = self._server.loop.create_task(self._writer())
        self._server._on_connection_add(self)  # noqa: SLF001
        _ = self.send_message(
            ServerHelloMessage(
                payload=ServerHelloPayload(
                    connection_id=self._connection_id,
                    server_id=self._server.id,
                    name=self._server.name,
                    version=PROTOCOL_VERSION,
                    server_time=wall_time_ms(),
                )
            )
        )

    async def _run_message_loop(self) -> None:
        """Run the main message processing loop."""
        receive_task: asyncio.Task[WSMessage] | None = None
        try:
            while not self._wsock.closed:
                # Wait for either a message or the writer task to complete (meaning the
                # client disconnected or errored)
                receive_task = self._server.loop.create_task(self._wsock.receive())
                assert self._writer_task is not None  # for type checking
                done, pending = await asyncio.wait(
                    [receive_task, self._writer_task],
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if self._writer_task in done:
                    self._logger.debug("Writer task ended, closing connection")
                    if receive_task in pending:
                        _ = receive_task.cancel()
                    break

                try:
                    msg = await receive_task
                except (ConnectionError, asyncio.CancelledError, TimeoutError) as e:
                    self._logger.error("Error receiving message: %s", e)
                    break

                if msg.type in (WSMsgType.CLOSE, WSMsgType.CLOSING, WSMsgType.CLOSED):
                    break

                if msg.type != WSMsgType.TEXT:
                    continue

                try:
                    message = ClientMessage.from_json(cast("str", msg.data))
                except Exception:
                    self._logger.exception("error parsing message")
                    continue
                self._server.router.handle_message(self._connection_id, message)
            self._logger.debug("wsock was closed")

        except asyncio.CancelledError:
            self._logger.debug("Connection closed by client")
        except Exception:
            self._logger.exception("Unexpected error inside websocket API")
        finally:
            if receive_task and not receive_task.done():
                _ = receive_task.cancel()

    async def _writer(self) -> None:
        """Write outgoing messages from the queue."""
        try:
            while not self._wsock.closed and not self._closing:
                item = await self._to_write.get()
                try:
                    await self._wsock.send_str(item.to_json())
                except ConnectionError:
                    self._logger.warning("Connection error sending JSON data, ending writer task")
                    break
            self._logger.debug("WebSocket Connection was closed for the client, ending writer task")
        except Exception:
            self._logger.exception("Error in writer task for client")
