"""Public interface for the hum client package."""

from .chat import Whisper, WhisperInbox
from .client import (
    DisconnectCallback,
    HumClient,
    MessageCallback,
    ServerInfo,
    StateCallback,
    UserCountCallback,
    VoiceCallback,
)
from .engine import EngineEvent, HeadlessMediaEngine, MediaEngine
from .history import Track, TrackHistory
from .session import RoomSession
from .sync import ApplyResult, EventOrigin, PlaybackReconciler, StatePublisher, SyncState
from .voice import PeerConnection, PeerFactory, SignalingSender, VoiceMesh

__all__ = [
    "ApplyResult",
    "DisconnectCallback",
    "EngineEvent",
    "EventOrigin",
    "HeadlessMediaEngine",
    "HumClient",
    "MediaEngine",
    "MessageCallback",
    "PeerConnection",
    "PeerFactory",
    "PlaybackReconciler",
    "RoomSession",
    "ServerInfo",
    "SignalingSender",
    "StateCallback",
    "StatePublisher",
    "SyncState",
    "Track",
    "TrackHistory",
    "UserCountCallback",
    "VoiceCallback",
    "VoiceMesh",
    "Whisper",
    "WhisperInbox",
]
