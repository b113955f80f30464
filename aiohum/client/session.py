"""Wires a HumClient to the local player, chat inbox and voice mesh of one room."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from aiohum.models.voice import (
    VoiceAnswerServerMessage,
    VoiceIceCandidateServerMessage,
    VoiceOfferServerMessage,
    VoiceUserDisabledServerMessage,
    VoiceUserEnabledServerMessage,
)

from .chat import WhisperInbox
from .sync import PlaybackReconciler
from .voice import PeerFactory, VoiceMesh

if TYPE_CHECKING:
    from aiohum.models.chat import ReceiveMessagePayload
    from aiohum.models.room import ReceiveStatePayload, UserCountUpdatePayload
    from aiohum.models.types import ServerMessage

    from .client import HumClient
    from .engine import MediaEngine

logger = logging.getLogger(__name__)


class RoomSession:
    """
    Everything one client keeps for the room it is in.

    Server pushes are routed to the reconciler, the whisper inbox, the voice mesh
    and the user count. Losing the connection resets all of them.
    """

    def __init__(
        self,
        client: HumClient,
        engine: MediaEngine,
        *,
        peer_factory: PeerFactory | None = None,
        inbox: WhisperInbox | None = None,
        **reconciler_options: Any,
    ) -> None:
        """
        Initialize the session and register its listeners.

        Args:
            client: Connected or not yet connected client.
            engine: The local player to keep in sync.
            peer_factory: Creates voice connections, voice is unavailable without it.
            inbox: Whisper inbox, a new one if omitted.
            **reconciler_options: Passed on to PlaybackReconciler.
        """
        self._client = client
        self.engine = engine
        self.reconciler = PlaybackReconciler(engine, client, **reconciler_options)
        self.inbox = inbox if inbox is not None else WhisperInbox()
        self.voice = VoiceMesh(peer_factory, client) if peer_factory is not None else None
        self.user_count = 0
        self._unsubscribe: list[Callable[[], None]] = [
            engine.add_listener(self.reconciler.on_engine_event),
            client.add_state_listener(self._on_state),
            client.add_user_count_listener(self._on_user_count),
            client.add_message_listener(self._on_message),
            client.add_voice_listener(self._on_voice),
            client.add_disconnect_listener(self._on_disconnect),
        ]

    @property
    def room_id(self) -> str | None:
        """The room this session joined."""
        return self._client.room_id

    def join(self, room_id: str) -> None:
        """Join ``room_id`` and wait for its state."""
        self._client.join_room(room_id)
        self.reconciler.begin_join()

    def say(self, text: str) -> bool:
        """Whisper ``text`` to the room. Blank text is not sent."""
        text = text.strip()
        if not text:
            return False
        self._client.send_whisper(text)
        return True

    def close(self) -> None:
        """Unregister every listener."""
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe.clear()

    def _on_state(self, payload: ReceiveStatePayload) -> None:
        result = self.reconciler.apply_remote_state(payload)
        logger.debug("Applied room state: %s", result.value)

    def _on_user_count(self, payload: UserCountUpdatePayload) -> None:
        self.user_count = payload.count

    def _on_message(self, payload: ReceiveMessagePayload) -> None:
        _ = self.inbox.add(payload.message, payload.sender_id, payload.timestamp)

    async def _on_voice(self, message: ServerMessage) -> None:
        if self.voice is None:
            return
        match message:
            case VoiceUserEnabledServerMessage(payload=payload):
                await self.voice.on_user_enabled(payload.user_id)
            case VoiceUserDisabledServerMessage(payload=payload):
                await self.voice.on_user_disabled(payload.user_id)
            case VoiceOfferServerMessage(payload=payload):
                await self.voice.on_offer(payload.sender_id, payload.offer)
            case VoiceAnswerServerMessage(payload=payload):
                await self.voice.on_answer(payload.sender_id, payload.answer)
            case VoiceIceCandidateServerMessage(payload=payload):
                await self.voice.on_ice_candidate(payload.sender_id, payload.candidate)

    async def _on_disconnect(self) -> None:
        self.reconciler.reset()
        self.user_count = 0
        if self.voice is not None:
            await self.voice.close()
