"""Stateless relay of voice mesh signaling between room members."""

from __future__ import annotations

import logging

from aiohum.models.voice import (
    VoiceAnswerClientPayload,
    VoiceAnswerServerMessage,
    VoiceAnswerServerPayload,
    VoiceIceCandidateClientPayload,
    VoiceIceCandidateServerMessage,
    VoiceIceCandidateServerPayload,
    VoiceOfferClientPayload,
    VoiceOfferServerMessage,
    VoiceOfferServerPayload,
    VoiceUserDisabledServerMessage,
    VoiceUserEnabledServerMessage,
    VoiceUserPayload,
)

from .fanout import RoomFanout

logger = logging.getLogger(__name__)


class SignalingRelay:
    """
    Forwards WebRTC negotiation messages.

    The relay holds no state about peer connections. Voice toggles fan out to the
    rest of the room, negotiation messages go to their ``target_id`` only with the
    sender's connection id attached. Deduplicating connections and tearing them
    down is left to the clients.
    """

    def __init__(self, fanout: RoomFanout) -> None:
        """Initialize the relay."""
        self._fanout = fanout

    def voice_enabled(self, sender_id: str, room_id: str) -> int:
        """Tell the rest of ``room_id`` that ``sender_id`` enabled voice."""
        logger.info("%s enabled voice in room %s", sender_id, room_id)
        return self._fanout.to_room(
            room_id,
            VoiceUserEnabledServerMessage(VoiceUserPayload(user_id=sender_id)),
            exclude=sender_id,
        )

    def voice_disabled(self, sender_id: str, room_id: str) -> int:
        """Tell the rest of ``room_id`` that ``sender_id`` disabled voice."""
        logger.info("%s disabled voice in room %s", sender_id, room_id)
        return self._fanout.to_room(
            room_id,
            VoiceUserDisabledServerMessage(VoiceUserPayload(user_id=sender_id)),
            exclude=sender_id,
        )

    def offer(self, sender_id: str, payload: VoiceOfferClientPayload) -> bool:
        """Forward an offer to its target."""
        logger.debug("Offer from %s to %s", sender_id, payload.target_id)
        return self._fanout.to_connection(
            payload.target_id,
            VoiceOfferServerMessage(
                VoiceOfferServerPayload(sender_id=sender_id, offer=payload.offer)
            ),
        )

    def answer(self, sender_id: str, payload: VoiceAnswerClientPayload) -> bool:
        """Forward an answer to its target."""
        logger.debug("Answer from %s to %s", sender_id, payload.target_id)
        return self._fanout.to_connection(
            payload.target_id,
            VoiceAnswerServerMessage(
                VoiceAnswerServerPayload(sender_id=sender_id, answer=payload.answer)
            ),
        )

    def ice_candidate(self, sender_id: str, payload: VoiceIceCandidateClientPayload) -> bool:
        """Forward an ICE candidate to its target."""
        return self._fanout.to_connection(
            payload.target_id,
            VoiceIceCandidateServerMessage(
                VoiceIceCandidateServerPayload(sender_id=sender_id, candidate=payload.candidate)
            ),
        )
