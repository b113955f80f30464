"""Tests for the client-side playback reconciler."""

from __future__ import annotations

import pytest

from aiohum.client import (
    ApplyResult,
    EventOrigin,
    HeadlessMediaEngine,
    PlaybackReconciler,
    SyncState,
)
from aiohum.models.room import ReceiveStatePayload
from conftest import FakeClock


class RecordingPublisher:
    def __init__(self) -> None:
        self.states: list[dict] = []
        self.videos: list[dict] = []

    def publish_state(self, *, video_id: str, is_playing: bool, position: float) -> None:
        self.states.append({"video_id": video_id, "is_playing": is_playing, "position": position})

    def publish_video(self, *, video_id: str, title: str | None, channel: str | None) -> None:
        self.videos.append({"video_id": video_id, "title": title, "channel": channel})


def _push(position, *, is_playing=False, video_id="abc", title=None, channel=None):
    return ReceiveStatePayload(
        video_id=video_id,
        is_playing=is_playing,
        current_seconds=position,
        server_time=0,
        title=title,
        channel=channel,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(100.0)


@pytest.fixture
def engine(clock) -> HeadlessMediaEngine:
    return HeadlessMediaEngine(clock=clock)


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def reconciler(engine, publisher, clock) -> PlaybackReconciler:
    reconciler = PlaybackReconciler(engine, publisher, clock=clock)
    engine.add_listener(reconciler.on_engine_event)
    return reconciler


@pytest.fixture
def synced(reconciler, engine, clock) -> PlaybackReconciler:
    """A reconciler that joined a room with media "abc" loaded and ready."""
    reconciler.begin_join()
    assert reconciler.apply_remote_state(_push(0.0)) is ApplyResult.DEFERRED
    engine.mark_ready()
    clock.advance(5.0)
    return reconciler


def test_first_push_moves_to_synced(reconciler):
    reconciler.begin_join()
    assert reconciler.state is SyncState.JOINING

    reconciler.apply_remote_state(_push(0.0))

    assert reconciler.state is SyncState.SYNCED
    assert reconciler.video_id == "abc"


def test_small_drift_does_not_seek(synced, engine):
    engine.seek(10.0)

    result = synced.apply_remote_state(_push(10.3))

    assert result is ApplyResult.IN_SYNC
    assert engine.position() == 10.0


def test_large_drift_seeks_once(synced, engine):
    engine.seek(10.0)

    result = synced.apply_remote_state(_push(12.0))

    assert result is ApplyResult.SEEKED
    assert engine.position() == 12.0
    assert synced.drift_cooldown_active


def test_second_correction_within_cooldown_is_ignored(synced, engine, clock):
    engine.seek(10.0)
    synced.apply_remote_state(_push(12.0))
    clock.advance(0.5)

    assert synced.apply_remote_state(_push(20.0)) is ApplyResult.COOLDOWN
    assert engine.position() == 12.0

    clock.advance(2.0)
    assert synced.apply_remote_state(_push(20.0)) is ApplyResult.SEEKED
    assert engine.position() == 20.0


def test_push_before_ready_is_applied_on_ready(reconciler, engine, publisher):
    reconciler.begin_join()

    result = reconciler.apply_remote_state(_push(30.0, is_playing=True))

    assert result is ApplyResult.DEFERRED
    assert reconciler.pending_sync is not None
    assert reconciler.pending_sync.position == 30.0

    engine.mark_ready()

    assert reconciler.pending_sync is None
    assert engine.playing
    assert engine.position() == 30.0
    assert publisher.states == []


def test_pending_sync_bypasses_cooldown(synced, engine, clock):
    engine.seek(10.0)
    synced.apply_remote_state(_push(12.0))
    clock.advance(0.1)

    assert synced.apply_remote_state(_push(45.0, video_id="def")) is ApplyResult.DEFERRED
    engine.mark_ready()

    assert engine.video_id == "def"
    assert engine.position() == 45.0


def test_pending_sync_is_clamped_to_duration(reconciler, engine):
    reconciler.begin_join()
    reconciler.apply_remote_state(_push(500.0))

    engine.mark_ready(duration=100.0)

    assert engine.position() == 100.0


def test_only_latest_pending_sync_is_kept(reconciler, engine):
    reconciler.begin_join()
    reconciler.apply_remote_state(_push(5.0))
    reconciler.apply_remote_state(_push(8.0))

    assert reconciler.pending_sync.generation == 2
    engine.mark_ready()
    assert engine.position() == 8.0


def test_applied_push_is_not_echoed(synced, engine, publisher, clock):
    synced.apply_remote_state(_push(0.0, is_playing=True))
    assert engine.playing

    # Player reports a late transition caused by the push
    clock.advance(0.1)
    assert synced.classify() is EventOrigin.REMOTE
    engine.pause()

    assert publisher.states == []


def test_user_event_after_echo_window_is_sent(synced, engine, publisher, clock):
    synced.apply_remote_state(_push(0.0, is_playing=True))
    clock.advance(0.4)

    assert synced.classify() is EventOrigin.USER
    engine.pause()

    assert len(publisher.states) == 1
    assert publisher.states[0]["is_playing"] is False
    assert publisher.states[0]["video_id"] == "abc"


def test_later_push_extends_echo_window(synced, clock):
    synced.apply_remote_state(_push(0.0))
    clock.advance(0.2)
    synced.apply_remote_state(_push(0.0))
    clock.advance(0.2)

    assert synced.echo_suppressed


def test_local_play_is_sent_once(synced, engine, publisher):
    assert synced.play() is True

    assert engine.playing
    assert publisher.states == [{"video_id": "abc", "is_playing": True, "position": 0.0}]


def test_local_actions_are_rate_limited(synced, publisher, clock):
    assert synced.play() is True
    clock.advance(0.05)
    assert synced.pause() is False
    clock.advance(0.1)
    assert synced.toggle() is True

    assert [s["is_playing"] for s in publisher.states] == [True, True]


def test_local_seek_sends_requested_position(synced, engine, publisher):
    synced.seek(42.0)

    assert engine.position() == 42.0
    assert publisher.states[-1]["position"] == 42.0


def test_local_action_during_echo_window_is_dropped(synced, publisher):
    synced.apply_remote_state(_push(0.0))

    assert synced.play() is False
    assert publisher.states == []


def test_nothing_is_sent_while_idle(reconciler, engine, publisher):
    engine.mark_ready()

    assert reconciler.play() is False
    assert engine.playing
    assert publisher.states == []


def test_reset_returns_to_idle(synced, publisher):
    synced.reset()

    assert synced.state is SyncState.IDLE
    assert synced.play() is False
    assert publisher.states == []


def test_remote_track_is_recorded_in_history(synced, clock):
    synced.apply_remote_state(_push(0.0, video_id="def", title="Song", channel="Band"))

    assert synced.history.current.video_id == "def"
    assert synced.title == "Song"
    assert synced.channel == "Band"


def test_track_navigation(synced, publisher, clock):
    assert synced.select_track("def", "Second") is True
    assert synced.select_track("ghi", "Third") is True

    assert synced.previous_track() is True
    assert publisher.videos[-1]["video_id"] == "def"
    assert synced.next_track() is True
    assert publisher.videos[-1]["video_id"] == "ghi"


def test_new_track_without_metadata_clears_previous_metadata(synced):
    synced.apply_remote_state(_push(0.0, video_id="aaa", title="Song A", channel="Band A"))
    synced.apply_remote_state(_push(0.0, video_id="bbb"))

    assert synced.video_id == "bbb"
    assert synced.title is None
    assert synced.channel is None


def test_same_track_push_keeps_metadata(synced, clock):
    synced.apply_remote_state(_push(0.0, video_id="aaa", title="Song A", channel="Band A"))
    clock.advance(1.0)
    synced.apply_remote_state(_push(1.0, video_id="aaa", is_playing=True))

    assert synced.title == "Song A"
    assert synced.channel == "Band A"


def test_remote_track_without_metadata_is_recorded(synced, clock):
    synced.apply_remote_state(_push(0.0, video_id="aaa", title="Song A"))
    synced.apply_remote_state(_push(0.0, video_id="bbb"))
    clock.advance(1.0)

    assert synced.history.current.video_id == "bbb"
    assert synced.previous_track() is True
    assert synced.history.current.video_id == "aaa"


def test_track_navigation_is_refused_while_idle(synced, publisher):
    synced.select_track("def", "Second")
    synced.reset()
    before = synced.history.current

    assert synced.previous_track() is False
    assert synced.next_track() is False
    assert synced.select_track("ghi", "Third") is False
    assert synced.history.current == before
    assert [video["video_id"] for video in publisher.videos] == ["def"]


def test_next_at_end_of_history_requests_search(engine, publisher, clock):
    requests = []
    reconciler = PlaybackReconciler(
        engine, publisher, clock=clock, on_search_requested=lambda: requests.append(1)
    )
    reconciler.begin_join()

    assert reconciler.next_track() is False
    assert requests == [1]


def test_select_track_requires_video_id(synced):
    with pytest.raises(ValueError):
        synced.select_track("")


@pytest.mark.parametrize(
    "kwargs",
    [{"drift_threshold": 0}, {"echo_window": -1}, {"drift_cooldown": -0.5}],
)
def test_invalid_windows_are_rejected(engine, publisher, kwargs):
    with pytest.raises(ValueError):
        PlaybackReconciler(engine, publisher, **kwargs)
