"""Hum: room-synced media playback with whispers and mesh voice."""

from __future__ import annotations

# Re-export client library for easy import
from aiohum.client import (
    HeadlessMediaEngine,
    HumClient,
    PlaybackReconciler,
    RoomSession,
    ServerInfo,
    TrackHistory,
    VoiceMesh,
    WhisperInbox,
)

__all__ = [
    "HeadlessMediaEngine",
    "HumClient",
    "PlaybackReconciler",
    "RoomSession",
    "ServerInfo",
    "TrackHistory",
    "VoiceMesh",
    "WhisperInbox",
]
