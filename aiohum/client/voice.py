"""
Full-mesh voice peer management on top of the server's signaling relay.

The server only forwards offers, answers and ICE candidates between connections.
Which peers exist, who offers to whom and when a connection is torn down is
decided here. The actual media connection is created by a factory so that a
WebRTC stack (or a fake one in tests) can be plugged in.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Protocol

logger = logging.getLogger(__name__)

TEARDOWN_STATES = frozenset({"failed", "disconnected", "closed"})


class PeerConnection(Protocol):
    """One media connection to a remote peer."""

    async def create_offer(self) -> dict[str, Any]:
        """Create a local offer and return its session description."""
        ...

    async def accept_offer(self, offer: dict[str, Any]) -> dict[str, Any]:
        """Apply a remote offer and return the local answer."""
        ...

    async def accept_answer(self, answer: dict[str, Any]) -> None:
        """Apply the remote answer to a previously created offer."""
        ...

    async def add_ice_candidate(self, candidate: dict[str, Any]) -> None:
        """Add a remote ICE candidate."""
        ...

    async def close(self) -> None:
        """Close the connection and release its media."""
        ...


PeerFactory = Callable[[str], PeerConnection]
"""Creates the connection to the peer with the given connection id."""


class SignalingSender(Protocol):
    """Outbound voice signaling for the current room."""

    def send_voice_enabled(self) -> None:
        """Announce that local voice was enabled."""
        ...

    def send_voice_disabled(self) -> None:
        """Announce that local voice was disabled."""
        ...

    def send_offer(self, target_id: str, offer: dict[str, Any]) -> None:
        """Send an offer to one peer."""
        ...

    def send_answer(self, target_id: str, answer: dict[str, Any]) -> None:
        """Send an answer to one peer."""
        ...

    def send_ice_candidate(self, target_id: str, candidate: dict[str, Any]) -> None:
        """Send an ICE candidate to one peer."""
        ...


class VoiceMesh:
    """Keeps one connection per voice-enabled peer in the room."""

    def __init__(self, factory: PeerFactory, signaling: SignalingSender) -> None:
        """
        Initialize an empty mesh with voice disabled.

        Args:
            factory: Creates a PeerConnection for a remote connection id.
            signaling: Sends voice messages to the server.
        """
        self._factory = factory
        self._signaling = signaling
        self._peers: dict[str, PeerConnection] = {}
        self._enabled = False

    @property
    def enabled(self) -> bool:
        """Whether local voice is enabled."""
        return self._enabled

    @property
    def peers(self) -> dict[str, PeerConnection]:
        """Connections by remote connection id."""
        return dict(self._peers)

    def enable(self) -> None:
        """Enable local voice and announce it to the room."""
        if self._enabled:
            return
        self._enabled = True
        logger.info("Voice enabled")
        self._signaling.send_voice_enabled()

    async def disable(self) -> None:
        """Disable local voice, close every peer and announce it to the room."""
        if not self._enabled:
            return
        self._enabled = False
        logger.info("Voice disabled")
        for peer_id in list(self._peers):
            await self._teardown(peer_id)
        self._signaling.send_voice_disabled()

    async def on_user_enabled(self, user_id: str) -> None:
        """Offer a connection to a peer that just enabled voice."""
        if not self._enabled:
            return
        if user_id in self._peers:
            logger.debug("Already connected to %s", user_id)
            return
        peer = self._factory(user_id)
        self._peers[user_id] = peer
        try:
            offer = await peer.create_offer()
        except Exception:
            logger.exception("Failed to create offer for %s", user_id)
            await self._teardown(user_id)
            return
        self._signaling.send_offer(user_id, offer)

    async def on_user_disabled(self, user_id: str) -> None:
        """Close the connection to a peer that disabled voice or left."""
        await self._teardown(user_id)

    async def on_offer(self, sender_id: str, offer: dict[str, Any]) -> None:
        """Answer an offer from a peer."""
        if not self._enabled:
            logger.debug("Ignoring offer from %s while voice is disabled", sender_id)
            return
        if sender_id in self._peers:
            logger.debug("Ignoring offer from already connected %s", sender_id)
            return
        peer = self._factory(sender_id)
        self._peers[sender_id] = peer
        try:
            answer = await peer.accept_offer(offer)
        except Exception:
            logger.exception("Failed to answer offer from %s", sender_id)
            await self._teardown(sender_id)
            return
        self._signaling.send_answer(sender_id, answer)

    async def on_answer(self, sender_id: str, answer: dict[str, Any]) -> None:
        """Apply an answer to an offer sent earlier."""
        peer = self._peers.get(sender_id)
        if peer is None:
            logger.debug("Answer from unknown peer %s", sender_id)
            return
        try:
            await peer.accept_answer(answer)
        except Exception:
            logger.exception("Failed to apply answer from %s", sender_id)
            await self._teardown(sender_id)

    async def on_ice_candidate(self, sender_id: str, candidate: dict[str, Any]) -> None:
        """Add a remote ICE candidate."""
        peer = self._peers.get(sender_id)
        if peer is None:
            logger.debug("ICE candidate from unknown peer %s", sender_id)
            return
        try:
            await peer.add_ice_candidate(candidate)
        except Exception:
            logger.exception("Failed to add ICE candidate from %s", sender_id)

    def local_ice_candidate(self, peer_id: str, candidate: dict[str, Any]) -> None:
        """Forward an ICE candidate gathered locally for ``peer_id``."""
        if peer_id not in self._peers:
            return
        self._signaling.send_ice_candidate(peer_id, candidate)

    async def connection_state_changed(self, peer_id: str, state: str) -> None:
        """Tear down a peer whose connection failed or dropped."""
        if state in TEARDOWN_STATES:
            logger.info("Connection to %s is %s", peer_id, state)
            await self._teardown(peer_id)

    async def close(self) -> None:
        """Close every peer without announcing anything."""
        self._enabled = False
        for peer_id in list(self._peers):
            await self._teardown(peer_id)

    async def _teardown(self, peer_id: str) -> None:
        peer = self._peers.pop(peer_id, None)
        if peer is None:
            return
        try:
            await peer.close()
        except Exception:
            logger.exception("Error closing connection to %s", peer_id)
