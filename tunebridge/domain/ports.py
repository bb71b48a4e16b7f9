from __future__ import annotations

from typing import List, Optional, Protocol, runtime_checkable

from .entities import AddResult, Playlist, TokenData, Track


@runtime_checkable
class MusicProvider(Protocol):
    """Port defining the capability contract every platform adapter satisfies.

    Adapters hold configuration only. User credentials are passed per call and
    trusted for the duration of that call; adapters never refresh them.
    """

    name: str

    def get_auth_url(self) -> str:
        """Build the platform's authorization-request URL. No I/O."""

    def handle_callback(self, code: str) -> TokenData:
        """Exchange an authorization code for a bearer credential."""

    def get_playlists(self, token: str) -> List[Playlist]:
        """Return every playlist of the authenticated user, tracks left empty."""

    def get_playlist_tracks(self, token: str, playlist_id: str) -> List[Track]:
        """Return all tracks of a playlist in source order."""

    def create_playlist(self, token: str, name: str, description: Optional[str] = None) -> str:
        """Create a playlist and return its id."""

    def add_tracks(self, token: str, playlist_id: str, tracks: List[Track]) -> AddResult:
        """Best-effort bulk add; ``added + failed == len(tracks)``."""

    def search_track(self, token: str, track: Track) -> Optional[Track]:
        """Return the best candidate for ``track`` on this platform, or None."""
