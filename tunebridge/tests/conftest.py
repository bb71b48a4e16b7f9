import os
import sys
from typing import Dict, List, Optional

import pytest
import requests
from unittest.mock import Mock


def _ensure_project_root_on_sys_path() -> None:
    here = os.path.dirname(__file__)
    project_root = os.path.abspath(os.path.join(here, "..", ".."))
    if project_root not in sys.path:
        sys.path.insert(0, project_root)


_ensure_project_root_on_sys_path()

from tunebridge.domain.entities import AddResult, Playlist, TokenData, Track  # noqa: E402
from tunebridge.domain.errors import AuthenticationError  # noqa: E402


@pytest.fixture(autouse=True)
def _clear_access_tokens_env():
    """Ensure provider access tokens do not leak across tests.
    Some tests may load a .env that sets these variables; clear before each test
    and restore afterwards so tests explicitly setting them remain deterministic.
    """
    keys = ['SPOTIFY_ACCESS_TOKEN', 'YOUTUBE_MUSIC_ACCESS_TOKEN', 'APPLE_MUSIC_ACCESS_TOKEN',
            'KKBOX_ACCESS_TOKEN']
    backup = {k: os.environ.get(k) for k in keys}
    for k in keys:
        os.environ.pop(k, None)
    try:
        yield
    finally:
        for k, v in backup.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v


class FakeProvider:
    """In-memory provider satisfying the MusicProvider contract.

    ``catalog`` maps a lookup key (``isrc:<code>`` or ``text:<artist> <name>``)
    to the track search should return. Every call is recorded in ``calls``.
    """

    def __init__(self, name: str = "Fake",
                 playlists: Optional[List[Playlist]] = None,
                 tracks: Optional[Dict[str, List[Track]]] = None,
                 catalog: Optional[Dict[str, Track]] = None) -> None:
        self.name = name
        self._playlists = playlists or []
        self._tracks = tracks or {}
        self.catalog = catalog or {}
        self.created: List[Dict[str, Optional[str]]] = []
        self.added: Dict[str, List[Track]] = {}
        self.calls: List[str] = []
        self.fail_on: Dict[str, Exception] = {}
        self.reject_ids: set = set()

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail_on:
            raise self.fail_on[name]

    def get_auth_url(self) -> str:
        return f"https://auth.example/{self.name.lower()}"

    def handle_callback(self, code: str) -> TokenData:
        if code != "good-code":
            raise AuthenticationError("code rejected")
        return TokenData(access_token=f"{self.name.lower()}-token")

    def get_playlists(self, token: str) -> List[Playlist]:
        self._record("get_playlists")
        return [Playlist(id=p.id, name=p.name, description=p.description, track_count=p.track_count)
                for p in self._playlists]

    def get_playlist_tracks(self, token: str, playlist_id: str) -> List[Track]:
        self._record("get_playlist_tracks")
        return list(self._tracks.get(playlist_id, []))

    def create_playlist(self, token: str, name: str, description: Optional[str] = None) -> str:
        self._record("create_playlist")
        playlist_id = f"new-{len(self.created) + 1}"
        self.created.append({"id": playlist_id, "name": name, "description": description})
        return playlist_id

    def add_tracks(self, token: str, playlist_id: str, tracks: List[Track]) -> AddResult:
        self._record("add_tracks")
        if not tracks:
            return AddResult(added=0, failed=0)
        accepted = [t for t in tracks if t.id not in self.reject_ids]
        self.added.setdefault(playlist_id, []).extend(accepted)
        return AddResult(added=len(accepted), failed=len(tracks) - len(accepted))

    def search_track(self, token: str, track: Track) -> Optional[Track]:
        self._record("search_track")
        if track.isrc and f"isrc:{track.isrc}" in self.catalog:
            return self.catalog[f"isrc:{track.isrc}"]
        return self.catalog.get(f"text:{track.artist} {track.name}")


@pytest.fixture
def source_tracks() -> List[Track]:
    return [
        Track(id="s1", name="Song One", artist="Artist One", album="Album", duration_ms=180000, isrc="ISRC001"),
        Track(id="s2", name="Song Two", artist="Artist Two, Guest", album="Album", duration_ms=200000),
        Track(id="s3", name="Rare Song", artist="Nobody", duration_ms=150000),
    ]


@pytest.fixture
def source_provider(source_tracks) -> FakeProvider:
    return FakeProvider(
        name="Source",
        playlists=[
            Playlist(id="pl-1", name="Road Trip", description="Summer songs", track_count=99),
            Playlist(id="pl-2", name="Empty", track_count=0),
        ],
        tracks={"pl-1": source_tracks, "pl-2": []},
    )


@pytest.fixture
def target_provider() -> FakeProvider:
    return FakeProvider(
        name="Target",
        catalog={
            "isrc:ISRC001": Track(id="t1", name="Song One", artist="Artist One", isrc="ISRC001"),
            "text:Artist Two, Guest Song Two": Track(id="t2", name="Song Two", artist="Artist Two"),
        },
    )


@pytest.fixture
def make_provider():
    """Factory for additional fake providers."""
    return FakeProvider


def _fake_response(status_code=200, body=None, headers=None, content=None):
    response = Mock(spec=requests.Response)
    response.status_code = status_code
    response.ok = status_code < 400
    response.headers = headers or {}
    response.text = str(body) if body is not None else ''
    response.content = content if content is not None else (b'{}' if body is not None else b'')
    response.json.return_value = body
    return response


@pytest.fixture
def make_response():
    """Factory for stand-ins of requests.Response."""
    return _fake_response
