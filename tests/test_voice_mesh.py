"""Tests for the client voice mesh."""

from __future__ import annotations

import pytest

from aiohum.client import VoiceMesh


class FakePeer:
    def __init__(self, peer_id: str) -> None:
        self.peer_id = peer_id
        self.answers: list[dict] = []
        self.candidates: list[dict] = []
        self.closed = False
        self.fail_candidates = False

    async def create_offer(self) -> dict:
        return {"type": "offer", "sdp": f"offer-for-{self.peer_id}"}

    async def accept_offer(self, offer: dict) -> dict:
        return {"type": "answer", "sdp": f"answer-to-{offer['sdp']}"}

    async def accept_answer(self, answer: dict) -> None:
        self.answers.append(answer)

    async def add_ice_candidate(self, candidate: dict) -> None:
        if self.fail_candidates:
            raise ValueError("bad candidate")
        self.candidates.append(candidate)

    async def close(self) -> None:
        self.closed = True


class RecordingSignaling:
    def __init__(self) -> None:
        self.sent: list[tuple] = []

    def send_voice_enabled(self) -> None:
        self.sent.append(("enabled",))

    def send_voice_disabled(self) -> None:
        self.sent.append(("disabled",))

    def send_offer(self, target_id: str, offer: dict) -> None:
        self.sent.append(("offer", target_id, offer))

    def send_answer(self, target_id: str, answer: dict) -> None:
        self.sent.append(("answer", target_id, answer))

    def send_ice_candidate(self, target_id: str, candidate: dict) -> None:
        self.sent.append(("candidate", target_id, candidate))


@pytest.fixture
def signaling() -> RecordingSignaling:
    return RecordingSignaling()


@pytest.fixture
def created() -> list[FakePeer]:
    return []


@pytest.fixture
def mesh(signaling, created) -> VoiceMesh:
    def factory(peer_id: str) -> FakePeer:
        peer = FakePeer(peer_id)
        created.append(peer)
        return peer

    return VoiceMesh(factory, signaling)


async def test_enabled_peer_offers_to_new_user(mesh, signaling, created):
    mesh.enable()

    await mesh.on_user_enabled("bob")

    assert signaling.sent[0] == ("enabled",)
    assert signaling.sent[1][:2] == ("offer", "bob")
    assert list(mesh.peers) == ["bob"]


async def test_disabled_peer_ignores_new_users(mesh, signaling, created):
    await mesh.on_user_enabled("bob")

    assert created == []
    assert signaling.sent == []


async def test_connecting_twice_is_a_noop(mesh, signaling, created):
    mesh.enable()
    await mesh.on_user_enabled("bob")
    await mesh.on_user_enabled("bob")
    await mesh.on_offer("bob", {"type": "offer", "sdp": "x"})

    assert len(created) == 1
    assert [s[0] for s in signaling.sent] == ["enabled", "offer"]


async def test_offer_is_answered(mesh, signaling):
    mesh.enable()

    await mesh.on_offer("carol", {"type": "offer", "sdp": "x"})

    assert signaling.sent[-1] == ("answer", "carol", {"type": "answer", "sdp": "answer-to-x"})


async def test_answer_and_candidates_reach_the_peer(mesh, created):
    mesh.enable()
    await mesh.on_user_enabled("bob")

    await mesh.on_answer("bob", {"type": "answer"})
    await mesh.on_ice_candidate("bob", {"candidate": "c1"})
    await mesh.on_ice_candidate("nobody", {"candidate": "c2"})

    assert created[0].answers == [{"type": "answer"}]
    assert created[0].candidates == [{"candidate": "c1"}]


async def test_bad_candidate_is_logged_not_raised(mesh, created, caplog):
    mesh.enable()
    await mesh.on_user_enabled("bob")
    created[0].fail_candidates = True

    await mesh.on_ice_candidate("bob", {"candidate": "broken"})

    assert "Failed to add ICE candidate from bob" in caplog.text
    assert "bob" in mesh.peers


async def test_local_candidates_are_forwarded(mesh, signaling):
    mesh.enable()
    await mesh.on_user_enabled("bob")

    mesh.local_ice_candidate("bob", {"candidate": "c"})
    mesh.local_ice_candidate("stranger", {"candidate": "c"})

    assert signaling.sent[-1] == ("candidate", "bob", {"candidate": "c"})
    assert len(signaling.sent) == 3


async def test_user_disabled_tears_down(mesh, created):
    mesh.enable()
    await mesh.on_user_enabled("bob")

    await mesh.on_user_disabled("bob")

    assert mesh.peers == {}
    assert created[0].closed


@pytest.mark.parametrize("state", ["failed", "disconnected"])
async def test_failed_connection_tears_down(mesh, created, state):
    mesh.enable()
    await mesh.on_user_enabled("bob")

    await mesh.connection_state_changed("bob", state)

    assert mesh.peers == {}
    assert created[0].closed


async def test_connected_state_keeps_peer(mesh):
    mesh.enable()
    await mesh.on_user_enabled("bob")

    await mesh.connection_state_changed("bob", "connected")

    assert "bob" in mesh.peers


async def test_disable_closes_everything_and_announces(mesh, signaling, created):
    mesh.enable()
    await mesh.on_user_enabled("bob")
    await mesh.on_offer("carol", {"type": "offer", "sdp": "x"})

    await mesh.disable()

    assert mesh.peers == {}
    assert all(peer.closed for peer in created)
    assert signaling.sent[-1] == ("disabled",)
    assert not mesh.enabled
