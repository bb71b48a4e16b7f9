import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from tunebridge.crosscutting.config import ConfigError
from tunebridge.domain.entities import AddResult, Playlist, TokenData, Track
from tunebridge.domain.errors import AuthenticationError
from tunebridge.domain.matching import resolve_track, text_query
from tunebridge.infrastructure.providers import rest

logger = logging.getLogger(__name__)

API_BASE = 'https://api.music.apple.com'
CLIENT_AUTH_ROUTE = '/auth/apple-music'
# MusicKit user tokens are valid for roughly six months
USER_TOKEN_LIFETIME = timedelta(days=180)


class AppleMusicProvider:
    """Apple Music adapter.

    User authorization happens in the browser through MusicKit JS, which hands
    back a Music User Token directly; there is no server-side code exchange.
    Requests are signed with a developer token (JWT) supplied through
    configuration.
    """

    name = 'Apple Music'

    def __init__(self, developer_token: Optional[str], storefront: str = 'us',
                 timeout: float = rest.DEFAULT_TIMEOUT):
        self.developer_token = developer_token
        self.storefront = storefront
        self.timeout = timeout

    def _headers(self, user_token: str) -> Dict[str, str]:
        if not self.developer_token:
            raise ConfigError("Apple Music developer token not configured")
        return rest.bearer_headers(self.developer_token, {'Music-User-Token': user_token})

    def _request(self, method: str, token: str, path: str, operation: str, **kwargs) -> Dict[str, Any]:
        return rest.request_json(method, f'{API_BASE}{path}', operation, timeout=self.timeout,
                                 headers=self._headers(token), **kwargs)

    @staticmethod
    def _to_track(item: Dict[str, Any]) -> Track:
        attributes = item.get('attributes') or {}
        return Track(
            id=item['id'],
            name=attributes.get('name', ''),
            artist=attributes.get('artistName') or '',
            album=attributes.get('albumName') or '',
            duration_ms=attributes.get('durationInMillis') or 0,
            isrc=attributes.get('isrc'),
        )

    def _paginate(self, token: str, path: str, operation: str) -> List[Dict[str, Any]]:
        items = []
        next_path = path
        while next_path:
            data = self._request('GET', token, next_path, operation)
            items.extend(data.get('data') or [])
            # "next" is a path relative to the API host
            next_path = data.get('next')
        return items

    def get_auth_url(self) -> str:
        return CLIENT_AUTH_ROUTE

    def handle_callback(self, code: str) -> TokenData:
        if not code:
            raise AuthenticationError("Apple Music user token is required")
        return TokenData(
            access_token=code,
            expires_at=datetime.now(timezone.utc) + USER_TOKEN_LIFETIME,
        )

    def get_playlists(self, token: str) -> List[Playlist]:
        playlists = []
        for item in self._paginate(token, '/v1/me/library/playlists?limit=25', 'Apple Music list playlists'):
            attributes = item.get('attributes') or {}
            artwork_url = (attributes.get('artwork') or {}).get('url')
            playlists.append(Playlist(
                id=item['id'],
                name=attributes.get('name', ''),
                description=(attributes.get('description') or {}).get('standard') or '',
                track_count=attributes.get('trackCount') or 0,
                image_url=artwork_url.replace('{w}x{h}', '300x300') if artwork_url else None,
            ))
        return playlists

    def get_playlist_tracks(self, token: str, playlist_id: str) -> List[Track]:
        items = self._paginate(token, f'/v1/me/library/playlists/{playlist_id}/tracks?limit=100',
                               f'Apple Music list tracks of playlist {playlist_id}')
        return [self._to_track(item) for item in items]

    def create_playlist(self, token: str, name: str, description: Optional[str] = None) -> str:
        data = self._request('POST', token, '/v1/me/library/playlists', f"Apple Music create playlist '{name}'",
                             json={'attributes': {'name': name, 'description': description or ''}})
        playlist_id = data['data'][0]['id']
        logger.info(f"Created Apple Music playlist: {name} ({playlist_id})")
        return playlist_id

    def add_tracks(self, token: str, playlist_id: str, tracks: List[Track]) -> AddResult:
        if not tracks:
            return AddResult(added=0, failed=0)

        songs = [{'id': t.id, 'type': 'songs'} for t in tracks if t.id]
        failed = len(tracks) - len(songs)
        if not songs:
            return AddResult(added=0, failed=failed)

        # Apple Music accepts the whole list in one request
        response = rest.send('POST', f'{API_BASE}/v1/me/library/playlists/{playlist_id}/tracks',
                             'Apple Music add tracks', timeout=self.timeout,
                             headers=self._headers(token), json={'data': songs})
        if response.ok:
            return AddResult(added=len(songs), failed=failed)

        logger.error(f"Apple Music add tracks failed: {response.status_code}")
        return AddResult(added=0, failed=failed + len(songs))

    def _lookup(self, token: str, path: str, operation: str, params: Dict[str, Any]) -> Dict[str, Any]:
        # A failed lookup counts as no match; the next search step still runs
        data = rest.lookup_json('GET', f'{API_BASE}{path}', operation, timeout=self.timeout,
                                headers=self._headers(token), params=params)
        return data or {}

    def _by_isrc(self, token: str, isrc: str) -> Optional[Track]:
        data = self._lookup(token, f'/v1/catalog/{self.storefront}/songs', 'Apple Music ISRC lookup',
                            {'filter[isrc]': isrc})
        songs = data.get('data') or []
        return self._to_track(songs[0]) if songs else None

    def _by_text(self, token: str, track: Track) -> Optional[Track]:
        data = self._lookup(token, f'/v1/catalog/{self.storefront}/search', 'Apple Music search',
                            {'term': text_query(track), 'types': 'songs', 'limit': 1})
        songs = ((data.get('results') or {}).get('songs') or {}).get('data') or []
        return self._to_track(songs[0]) if songs else None

    def search_track(self, token: str, track: Track) -> Optional[Track]:
        return resolve_track(
            track,
            by_text=lambda t: self._by_text(token, t),
            by_isrc=lambda isrc: self._by_isrc(token, isrc),
        )
