"""Client-local track history for previous/next navigation."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Track:
    """A track that was loaded in the room."""

    video_id: str
    title: str | None = None
    channel: str | None = None


class TrackHistory:
    """
    Ordered list of tracks with a cursor.

    Recording a track while the cursor is not at the end drops the tracks after
    the cursor, like browser history. previous() and next() return None at either
    end instead of wrapping around.
    """

    def __init__(self, max_length: int = 100) -> None:
        """Initialize an empty history keeping at most ``max_length`` tracks."""
        if max_length < 1:
            raise ValueError("max_length must be at least 1")
        self._max_length = max_length
        self._tracks: list[Track] = []
        self._cursor = -1

    def __len__(self) -> int:
        """Return the number of tracks in the history."""
        return len(self._tracks)

    @property
    def current(self) -> Track | None:
        """The track at the cursor."""
        if self._cursor < 0:
            return None
        return self._tracks[self._cursor]

    @property
    def tracks(self) -> list[Track]:
        """A copy of all tracks, oldest first."""
        return list(self._tracks)

    def record(self, track: Track) -> None:
        """Make ``track`` the current track."""
        current = self.current
        if current is not None and current.video_id == track.video_id:
            # Same media again, keep the richer metadata
            self._tracks[self._cursor] = Track(
                track.video_id,
                track.title or current.title,
                track.channel or current.channel,
            )
            return
        del self._tracks[self._cursor + 1 :]
        self._tracks.append(track)
        if len(self._tracks) > self._max_length:
            del self._tracks[0]
        self._cursor = len(self._tracks) - 1

    def peek_previous(self) -> Track | None:
        """Return the track before the cursor without moving."""
        if self._cursor <= 0:
            return None
        return self._tracks[self._cursor - 1]

    def peek_next(self) -> Track | None:
        """Return the track after the cursor without moving."""
        if self._cursor + 1 >= len(self._tracks):
            return None
        return self._tracks[self._cursor + 1]

    def previous(self) -> Track | None:
        """Move the cursor back and return the track there."""
        track = self.peek_previous()
        if track is not None:
            self._cursor -= 1
        return track

    def next(self) -> Track | None:
        """Move the cursor forward and return the track there."""
        track = self.peek_next()
        if track is not None:
            self._cursor += 1
        return track
