"""Hum client implementation to connect to a hum sync server."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import suppress
from dataclasses import dataclass
from types import TracebackType
from typing import Any, Self

from aiohttp import ClientSession, ClientWebSocketResponse, WSMessage, WSMsgType

from aiohum.models.chat import (
    ReceiveMessageMessage,
    ReceiveMessagePayload,
    SendMessageMessage,
    SendMessagePayload,
)
from aiohum.models.core import ServerHelloMessage, ServerHelloPayload
from aiohum.models.room import (
    ChangeVideoMessage,
    ChangeVideoPayload,
    JoinRoomMessage,
    JoinRoomPayload,
    ReceiveStateMessage,
    ReceiveStatePayload,
    UpdateStateMessage,
    UpdateStatePayload,
    UserCountUpdateMessage,
    UserCountUpdatePayload,
)
from aiohum.models.types import ClientMessage, ServerMessage
from aiohum.models.voice import (
    VoiceAnswerClientMessage,
    VoiceAnswerClientPayload,
    VoiceAnswerServerMessage,
    VoiceDisabledClientMessage,
    VoiceEnabledClientMessage,
    VoiceIceCandidateClientMessage,
    VoiceIceCandidateClientPayload,
    VoiceIceCandidateServerMessage,
    VoiceOfferClientMessage,
    VoiceOfferClientPayload,
    VoiceOfferServerMessage,
    VoiceTogglePayload,
    VoiceUserDisabledServerMessage,
    VoiceUserEnabledServerMessage,
)

logger = logging.getLogger(__name__)

MAX_PENDING_MSG = 512

StateCallback = Callable[[ReceiveStatePayload], Awaitable[None] | None]
UserCountCallback = Callable[[UserCountUpdatePayload], Awaitable[None] | None]
MessageCallback = Callable[[ReceiveMessagePayload], Awaitable[None] | None]
VoiceCallback = Callable[[ServerMessage], Awaitable[None] | None]
DisconnectCallback = Callable[[], Awaitable[None] | None]


@dataclass(slots=True)
class ServerInfo:
    """Information about the connected server."""

    server_id: str
    name: str
    version: int
    connection_id: str
    """Identifier the server assigned to this connection."""


class HumClient:
    """
    Async hum client.

    Sending is synchronous: messages are queued and written by a background task
    so that callers such as media engine callbacks never have to await the network.
    """

    def __init__(self, *, session: ClientSession | None = None) -> None:
        """Create a new hum client instance."""
        self._session = session
        self._owns_session = session is None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._ws: ClientWebSocketResponse | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._writer_task: asyncio.Task[None] | None = None
        self._to_write: asyncio.Queue[ClientMessage] | None = None
        self._server_info: ServerInfo | None = None
        self._server_hello_event: asyncio.Event | None = None
        self._connected = False
        self._room_id: str | None = None
        self._state_callbacks: list[StateCallback] = []
        self._user_count_callbacks: list[UserCountCallback] = []
        self._message_callbacks: list[MessageCallback] = []
        self._voice_callbacks: list[VoiceCallback] = []
        self._disconnect_callbacks: list[DisconnectCallback] = []

    # ---------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------
    @property
    def server_info(self) -> ServerInfo | None:
        """Return information about the connected server, if available."""
        return self._server_info

    @property
    def connection_id(self) -> str | None:
        """Return the identifier the server assigned to this connection."""
        return self._server_info.connection_id if self._server_info else None

    @property
    def connected(self) -> bool:
        """Return True if the client currently has an active connection."""
        return self._connected and self._ws is not None and not self._ws.closed

    @property
    def room_id(self) -> str | None:
        """Return the room this client joined last, if any."""
        return self._room_id

    async def connect(self, url: str) -> None:
        """Connect to a hum sync server via WebSocket and wait for its hello."""
        if self.connected:
            logger.debug("Already connected")
            return

        self._loop = asyncio.get_running_loop()
        if self._session is None:
            self._session = ClientSession()
        self._server_hello_event = asyncio.Event()
        self._to_write = asyncio.Queue(maxsize=MAX_PENDING_MSG)

        logger.info("Connecting to hum sync server at %s", url)
        self._ws = await self._session.ws_connect(url, heartbeat=30)
        self._connected = True

        self._reader_task = self._loop.create_task(self._reader_loop())
        self._writer_task = self._loop.create_task(self._writer_loop())

        try:
            await asyncio.wait_for(self._server_hello_event.wait(), timeout=10)
        except TimeoutError as err:
            await self.disconnect()
            raise TimeoutError("Timed out waiting for server/hello") from err
        logger.info("Handshake with server complete")

    async def disconnect(self) -> None:
        """Disconnect from the server and release resources."""
        was_connected = self._connected
        self._connected = False
        current_task = asyncio.current_task(loop=self._loop) if self._loop else None

        if self._writer_task is not None:
            if self._writer_task is not current_task:
                self._writer_task.cancel()
                with suppress(asyncio.CancelledError):
                    await self._writer_task
            self._writer_task = None
        if self._reader_task is not None:
            if self._reader_task is not current_task:
                self._reader_task.cancel()
                with suppress(asyncio.CancelledError):
                    await self._reader_task
            self._reader_task = None
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
        self._to_write = None
        self._server_info = None
        self._room_id = None
        if was_connected:
            await self._notify_disconnect()

    def send_message(self, message: ClientMessage) -> None:
        """Queue a message for the server."""
        if not self.connected or self._to_write is None:
            raise RuntimeError("Client is not connected")
        try:
            self._to_write.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning("Outbound queue full, dropping %s", type(message).__name__)

    def join_room(self, room_id: str) -> None:
        """Join ``room_id``. The server answers with receive_state."""
        if not room_id:
            raise ValueError("room_id must not be empty")
        self.send_message(JoinRoomMessage(payload=JoinRoomPayload(room_id=room_id)))
        self._room_id = room_id

    def send_state(
        self, *, is_playing: bool, position: float, video_id: str | None = None
    ) -> None:
        """Send the locally authored play state of the current room."""
        self.send_message(
            UpdateStateMessage(
                payload=UpdateStatePayload(
                    room_id=self._require_room(),
                    is_playing=is_playing,
                    timestamp_at_last_action=position,
                    video_id=video_id or None,
                )
            )
        )

    def change_video(
        self, video_id: str, *, title: str | None = None, channel: str | None = None
    ) -> None:
        """Load different media for the whole room."""
        self.send_message(
            ChangeVideoMessage(
                payload=ChangeVideoPayload(
                    room_id=self._require_room(),
                    video_id=video_id,
                    title=title,
                    channel=channel,
                )
            )
        )

    def send_whisper(self, message: str) -> None:
        """Send a chat message to the other members of the current room."""
        self.send_message(
            SendMessageMessage(
                payload=SendMessagePayload(room_id=self._require_room(), message=message)
            )
        )

    # StatePublisher
    def publish_state(self, *, video_id: str, is_playing: bool, position: float) -> None:
        """Send update_state for the current room."""
        self.send_state(is_playing=is_playing, position=position, video_id=video_id)

    def publish_video(self, *, video_id: str, title: str | None, channel: str | None) -> None:
        """Send change_video for the current room."""
        self.change_video(video_id, title=title, channel=channel)

    # SignalingSender
    def send_voice_enabled(self) -> None:
        """Announce to the room that local voice is on."""
        self.send_message(
            VoiceEnabledClientMessage(payload=VoiceTogglePayload(room_id=self._require_room()))
        )

    def send_voice_disabled(self) -> None:
        """Announce to the room that local voice is off."""
        self.send_message(
            VoiceDisabledClientMessage(payload=VoiceTogglePayload(room_id=self._require_room()))
        )

    def send_offer(self, target_id: str, offer: dict[str, Any]) -> None:
        """Send a WebRTC offer to one room member."""
        self.send_message(
            VoiceOfferClientMessage(
                payload=VoiceOfferClientPayload(
                    room_id=self._require_room(), target_id=target_id, offer=offer
                )
            )
        )

    def send_answer(self, target_id: str, answer: dict[str, Any]) -> None:
        """Send a WebRTC answer to one room member."""
        self.send_message(
            VoiceAnswerClientMessage(
                payload=VoiceAnswerClientPayload(
                    room_id=self._require_room(), target_id=target_id, answer=answer
                )
            )
        )

    def send_ice_candidate(self, target_id: str, candidate: dict[str, Any]) -> None:
        """Send an ICE candidate to one room member."""
        self.send_message(
            VoiceIceCandidateClientMessage(
                payload=VoiceIceCandidateClientPayload(
                    room_id=self._require_room(), target_id=target_id, candidate=candidate
                )
            )
        )

    def add_state_listener(self, callback: StateCallback) -> Callable[[], None]:
        """Register a callback invoked on receive_state messages."""
        self._state_callbacks.append(callback)
        return lambda: self._state_callbacks.remove(callback)

    def add_user_count_listener(self, callback: UserCountCallback) -> Callable[[], None]:
        """Register a callback invoked on user_count_update messages."""
        self._user_count_callbacks.append(callback)
        return lambda: self._user_count_callbacks.remove(callback)

    def add_message_listener(self, callback: MessageCallback) -> Callable[[], None]:
        """Register a callback invoked on receive_message messages."""
        self._message_callbacks.append(callback)
        return lambda: self._message_callbacks.remove(callback)

    def add_voice_listener(self, callback: VoiceCallback) -> Callable[[], None]:
        """Register a callback invoked on every voice signaling message."""
        self._voice_callbacks.append(callback)
        return lambda: self._voice_callbacks.remove(callback)

    def add_disconnect_listener(self, callback: DisconnectCallback) -> Callable[[], None]:
        """Register a callback invoked after the connection was lost or closed."""
        self._disconnect_callbacks.append(callback)
        return lambda: self._disconnect_callbacks.remove(callback)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _require_room(self) -> str:
        if self._room_id is None:
            raise RuntimeError("Not in a room, call join_room() first")
        return self._room_id

    async def _writer_loop(self) -> None:
        assert self._ws is not None
        assert self._to_write is not None
        try:
            while not self._ws.closed:
                message = await self._to_write.get()
                await self._ws.send_str(message.to_json())
        except asyncio.CancelledError:  # pragma: no cover - cancellation path
            pass
        except Exception:
            logger.exception("WebSocket writer encountered an error")
            if self._connected:
                await self.disconnect()

    async def _reader_loop(self) -> None:
        assert self._ws is not None
        try:
            async for msg in self._ws:
                await self._handle_ws_message(msg)
        except asyncio.CancelledError:  # pragma: no cover - cancellation path
            pass
        except Exception:
            logger.exception("WebSocket reader encountered an error")
        finally:
            if self._connected:
                await self.disconnect()

    async def _handle_ws_message(self, msg: WSMessage) -> None:
        if msg.type is WSMsgType.TEXT:
            await self._handle_json_message(msg.data)
        elif msg.type in (WSMsgType.CLOSE, WSMsgType.CLOSING, WSMsgType.CLOSED):
            logger.info("WebSocket closed by server")
            await self.disconnect()
        elif msg.type is WSMsgType.ERROR:
            logger.error("WebSocket error: %s", self._ws.exception() if self._ws else "unknown")
            await self.disconnect()
        else:
            logger.debug("Ignoring WebSocket message of type %s", msg.type)

    async def _handle_json_message(self, data: str) -> None:
        try:
            message = ServerMessage.from_json(data)
        except Exception:
            logger.exception("Failed to parse server message: %s", data)
            return

        match message:
            case ServerHelloMessage(payload=payload):
                self._handle_server_hello(payload)
            case ReceiveStateMessage(payload=payload):
                await self._notify_callbacks(self._state_callbacks, payload)
            case UserCountUpdateMessage(payload=payload):
                await self._notify_callbacks(self._user_count_callbacks, payload)
            case ReceiveMessageMessage(payload=payload):
                await self._notify_callbacks(self._message_callbacks, payload)
            case (
                VoiceUserEnabledServerMessage()
                | VoiceUserDisabledServerMessage()
                | VoiceOfferServerMessage()
                | VoiceAnswerServerMessage()
                | VoiceIceCandidateServerMessage()
            ):
                await self._notify_callbacks(self._voice_callbacks, message)
            case _:
                logger.debug("Unhandled server message type: %s", type(message).__name__)

    def _handle_server_hello(self, payload: ServerHelloPayload) -> None:
        self._server_info = ServerInfo(
            server_id=payload.server_id,
            name=payload.name,
            version=payload.version,
            connection_id=payload.connection_id,
        )
        if self._server_hello_event:
            self._server_hello_event.set()
        logger.info(
            "Connected to server '%s' (%s) version %s as %s",
            payload.name,
            payload.server_id,
            payload.version,
            payload.connection_id,
        )

    async def _notify_callbacks(
        self,
        callbacks: list[Callable[[Any], Awaitable[None] | None]],
        payload: Any,
    ) -> None:
        for callback in list(callbacks):
            try:
                result = callback(payload)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("Error in client callback %s", callback)

    async def _notify_disconnect(self) -> None:
        for callback in list(self._disconnect_callbacks):
            try:
                result = callback()
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("Error in disconnect callback %s", callback)

    async def __aenter__(self) -> Self:
        """Enter the async context manager returning this instance."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        """Disconnect when leaving the async context manager."""
        await self.disconnect()
