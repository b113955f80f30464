"""Applies client actions to the room registry and fans out the results."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

from aiohum.models.chat import (
    ReceiveMessageMessage,
    ReceiveMessagePayload,
    SendMessageMessage,
    SendMessagePayload,
)
from aiohum.models.room import (
    ChangeVideoMessage,
    ChangeVideoPayload,
    JoinRoomMessage,
    ReceiveStateMessage,
    ReceiveStatePayload,
    UpdateStateMessage,
    UpdateStatePayload,
)
from aiohum.models.types import ClientMessage
from aiohum.models.voice import (
    VoiceAnswerClientMessage,
    VoiceDisabledClientMessage,
    VoiceEnabledClientMessage,
    VoiceIceCandidateClientMessage,
    VoiceOfferClientMessage,
)

from .cleanup import DEFAULT_GRACE_PERIOD, RoomCleanupScheduler
from .fanout import RoomFanout, Transport
from .presence import PresenceBroadcaster
from .registry import RoomRepository
from .room_state import RoomState, compute_position, wall_time_ms
from .signaling import SignalingRelay

logger = logging.getLogger(__name__)

SENDER_ID_LENGTH = 6
"""Number of connection id characters revealed as the sender of a whisper."""


class RoomEvent:
    """Base event type used by HumServer.add_event_listener()."""


@dataclass
class RoomCreatedEvent(RoomEvent):
    """A room was created."""

    room_id: str


@dataclass
class RoomDeletedEvent(RoomEvent):
    """A room stayed empty for the whole grace period and was deleted."""

    room_id: str


@dataclass
class RoomStateChangedEvent(RoomEvent):
    """The play state of a room changed."""

    room_id: str
    video_id: str
    is_playing: bool
    position: float
    """Position in seconds at the time of the change."""


class EventRouter:
    """
    Server side of the room synchronization protocol.

    Every handler runs synchronously inside one event loop turn, which makes the
    router the single writer of the registry. Actions referencing a room that does
    not exist are dropped and logged, except ``change_video`` which creates it.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        registry: RoomRepository,
        transport: Transport,
        *,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        clock: Callable[[], int] = wall_time_ms,
        signal_event: Callable[[RoomEvent], None] | None = None,
    ) -> None:
        """
        Initialize the router.

        Args:
            loop: Event loop used to schedule room cleanups.
            registry: Storage for room states and memberships.
            transport: Delivers messages to single connections.
            grace_period: Seconds an empty room is kept before deletion.
            clock: Wall clock in milliseconds since the epoch.
            signal_event: Called with every RoomEvent.
        """
        self._registry = registry
        self._clock = clock
        self._signal_event = signal_event
        self._fanout = RoomFanout(registry, transport)
        self.presence = PresenceBroadcaster(registry, self._fanout)
        self.signaling = SignalingRelay(self._fanout)
        self.cleanup = RoomCleanupScheduler(loop, self._cleanup_room, grace_period)

    @property
    def registry(self) -> RoomRepository:
        """The registry this router writes to."""
        return self._registry

    def handle_message(self, connection_id: str, message: ClientMessage) -> None:
        """
        Dispatch one inbound message from ``connection_id``.

        Errors are logged and contained here so that a bad event for one room never
        affects other rooms or the connection that sent it.
        """
        try:
            self._dispatch(connection_id, message)
        except Exception:
            logger.exception(
                "Error handling %s from %s", type(message).__name__, connection_id
            )

    def _dispatch(self, connection_id: str, message: ClientMessage) -> None:
        match message:
            case JoinRoomMessage(payload):
                self.join(connection_id, payload.room_id)
            case UpdateStateMessage(payload):
                self.update_state(connection_id, payload)
            case ChangeVideoMessage(payload):
                self.change_video(connection_id, payload)
            case SendMessageMessage(payload):
                self.send_message(connection_id, payload)
            case VoiceEnabledClientMessage(payload):
                self.signaling.voice_enabled(connection_id, payload.room_id)
            case VoiceDisabledClientMessage(payload):
                self.signaling.voice_disabled(connection_id, payload.room_id)
            case VoiceOfferClientMessage(payload):
                self.signaling.offer(connection_id, payload)
            case VoiceAnswerClientMessage(payload):
                self.signaling.answer(connection_id, payload)
            case VoiceIceCandidateClientMessage(payload):
                self.signaling.ice_candidate(connection_id, payload)
            case _:
                logger.debug("Unhandled client message type: %s", type(message).__name__)

    def join(self, connection_id: str, room_id: str) -> RoomState:
        """
        Move ``connection_id`` into ``room_id``, creating the room if needed.

        The caller alone receives the current state with a live position, then the
        whole room receives the new member count.
        """
        previous_room = self._registry.room_of(connection_id)
        if previous_room is not None and previous_room != room_id:
            self.leave(connection_id)

        now = self._clock()
        state = self._registry.get(room_id)
        if state is None:
            state = self._registry.create(room_id, now)
            logger.info("Created new room: %s", room_id)
            self._emit(RoomCreatedEvent(room_id))
        self._registry.add_member(room_id, connection_id)
        logger.info("%s joined room %s", connection_id, room_id)

        current_seconds = compute_position(state, now)
        self._fanout.to_connection(
            connection_id, self._state_message(state, current_seconds, now)
        )
        self.presence.broadcast(room_id)
        logger.debug(
            "Sent state to %s: playing=%s, position=%.2fs",
            connection_id,
            state.is_playing,
            current_seconds,
        )
        return state

    def update_state(self, connection_id: str, payload: UpdateStatePayload) -> RoomState | None:
        """
        Record a play state authored by ``connection_id`` and push it to its peers.

        The authored position is broadcast verbatim: it was valid at ``now`` when
        the server recorded it, so it is not extrapolated again. The sender does not
        get an echo of its own action.
        """
        state = self._registry.get(payload.room_id)
        if state is None:
            logger.warning(
                "Dropping update_state from %s: room %s not found",
                connection_id,
                payload.room_id,
            )
            return None

        now = self._clock()
        state.set_reference(payload.timestamp_at_last_action, now, is_playing=payload.is_playing)
        if payload.video_id:
            state.video_id = payload.video_id
        logger.info(
            "Room %s: playing=%s, position=%.2fs",
            payload.room_id,
            state.is_playing,
            state.position_at_reference,
        )

        self._fanout.to_room(
            payload.room_id,
            self._state_message(state, state.position_at_reference, now),
            exclude=connection_id,
        )
        self._emit_state_changed(payload.room_id, state)
        return state

    def change_video(self, connection_id: str, payload: ChangeVideoPayload) -> RoomState | None:
        """
        Load a different track in ``payload.room_id`` and push it to every member.

        Playback always restarts paused at position 0. Unlike ``update_state`` the
        sender is included in the broadcast. Title and channel travel along as
        display metadata only.
        """
        if not payload.video_id:
            logger.warning("Dropping change_video from %s: empty video id", connection_id)
            return None

        now = self._clock()
        state = self._registry.get(payload.room_id)
        created = state is None
        if state is None:
            state = self._registry.create(payload.room_id, now)
            logger.info("Created new room: %s", payload.room_id)
            self._emit(RoomCreatedEvent(payload.room_id))
        state.video_id = payload.video_id
        state.set_reference(0.0, now, is_playing=False)
        logger.info(
            "Room %s: changed to %s - %r by %r",
            payload.room_id,
            payload.video_id,
            payload.title,
            payload.channel,
        )

        self._fanout.to_room(
            payload.room_id,
            self._state_message(state, 0.0, now, title=payload.title, channel=payload.channel),
        )
        self._emit_state_changed(payload.room_id, state)
        if created and self._registry.member_count(payload.room_id) == 0:
            # Nobody is in a room created this way, so it gets the same grace period
            self.cleanup.schedule(payload.room_id)
        return state

    def send_message(self, connection_id: str, payload: SendMessagePayload) -> int:
        """Relay a whisper to the rest of the room. Blank whispers are dropped."""
        text = payload.message.strip()
        if not text:
            logger.debug("Dropping empty whisper from %s", connection_id)
            return 0
        if self._registry.get(payload.room_id) is None:
            logger.warning(
                "Dropping whisper from %s: room %s not found", connection_id, payload.room_id
            )
            return 0
        logger.debug("Room %s whisper: %r", payload.room_id, text[:50])
        return self._fanout.to_room(
            payload.room_id,
            ReceiveMessageMessage(
                ReceiveMessagePayload(
                    message=text,
                    sender_id=connection_id[:SENDER_ID_LENGTH],
                    timestamp=self._clock(),
                )
            ),
            exclude=connection_id,
        )

    def leave(self, connection_id: str) -> str | None:
        """
        Remove ``connection_id`` from its room.

        The remaining members get the new count. An empty room is checked again
        after the grace period and deleted only if it is still empty then.
        """
        room_id = self._registry.remove_member(connection_id)
        if room_id is None:
            return None
        logger.info("%s left room %s", connection_id, room_id)
        if self._registry.get(room_id) is None:
            return room_id
        self.presence.broadcast(room_id)
        if self._registry.member_count(room_id) == 0:
            self.cleanup.schedule(room_id)
        return room_id

    def close(self) -> None:
        """Cancel pending room cleanups."""
        self.cleanup.close()

    def _cleanup_room(self, room_id: str) -> None:
        if self._registry.member_count(room_id) > 0:
            logger.debug("Room %s was rejoined, keeping it", room_id)
            return
        if self._registry.get(room_id) is None:
            return
        self._registry.delete(room_id)
        logger.info("Cleaned up empty room: %s", room_id)
        self._emit(RoomDeletedEvent(room_id))

    def _state_message(
        self,
        state: RoomState,
        current_seconds: float,
        now: int,
        *,
        title: str | None = None,
        channel: str | None = None,
    ) -> ReceiveStateMessage:
        return ReceiveStateMessage(
            ReceiveStatePayload(
                video_id=state.video_id,
                is_playing=state.is_playing,
                current_seconds=current_seconds,
                server_time=now,
                title=title,
                channel=channel,
            )
        )

    def _emit_state_changed(self, room_id: str, state: RoomState) -> None:
        self._emit(
            RoomStateChangedEvent(
                room_id=room_id,
                video_id=state.video_id,
                is_playing=state.is_playing,
                position=state.position_at_reference,
            )
        )

    def _emit(self, event: RoomEvent) -> None:
        if self._signal_event is not None:
            self._signal_event(event)
