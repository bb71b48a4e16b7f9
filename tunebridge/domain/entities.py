from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Track:
    """Domain entity representing a track on one platform.

    ``id`` is scoped to the platform the track was read from. Tracks from
    different platforms sharing an ISRC are the same recording.
    """

    id: str
    name: str
    artist: str = ""
    album: str = ""
    duration_ms: int = 0
    isrc: Optional[str] = None

    def __post_init__(self):
        if self.duration_ms is None or self.duration_ms < 0:
            object.__setattr__(self, 'duration_ms', 0)

    def to_json(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "artist": self.artist,
            "album": self.album,
            "durationMs": self.duration_ms,
            "isrc": self.isrc,
        }


@dataclass
class Playlist:
    """Domain entity representing a playlist.

    ``track_count`` is the count advertised by the platform listing and may be
    stale until ``tracks`` has been read.
    """

    id: str
    name: str
    description: Optional[str] = None
    track_count: int = 0
    tracks: List[Track] = field(default_factory=list)
    image_url: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "trackCount": self.track_count,
            "tracks": [t.to_json() for t in self.tracks],
            "imageUrl": self.image_url,
        }


@dataclass(frozen=True)
class TokenData:
    """Bearer credential returned by an authorization exchange."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None

    def to_json(self) -> Dict[str, Any]:
        return {
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
        }


@dataclass(frozen=True)
class AddResult:
    """Result of a best-effort bulk add to a playlist."""

    added: int
    failed: int


class TransferPhase(str, Enum):
    """Phases of a playlist transfer, in execution order."""

    FETCHING = "fetching"
    READING = "reading"
    CREATING = "creating"
    MATCHING = "matching"
    TRANSFERRING = "transferring"
    COMPLETE = "complete"


@dataclass(frozen=True)
class TransferProgress:
    """Progress notification emitted by the transfer engine.

    ``current``/``total`` count tracks while matching, items while
    transferring, and are zero otherwise.
    """

    phase: TransferPhase
    current: int
    total: int
    message: str

    def to_json(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value,
            "current": self.current,
            "total": self.total,
            "message": self.message,
        }


@dataclass
class TransferResult:
    """Terminal value of a successful transfer.

    ``matched`` holds target-platform tracks resolved by search. A matched
    track may still have failed to be added; that count is not carried here.
    """

    source_playlist: Playlist
    target_playlist_id: str
    matched: List[Track]
    unmatched: List[Track]
    total_tracks: int

    def to_json(self) -> Dict[str, Any]:
        return {
            "sourcePlaylist": self.source_playlist.to_json(),
            "targetPlaylistId": self.target_playlist_id,
            "matched": [t.to_json() for t in self.matched],
            "unmatched": [t.to_json() for t in self.unmatched],
            "totalTracks": self.total_tracks,
        }
