import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from tunebridge.crosscutting.config import ConfigError, KKBOX_SCOPES, OAuthClientConfig
from tunebridge.domain.entities import AddResult, Playlist, TokenData, Track
from tunebridge.domain.errors import AuthenticationError
from tunebridge.domain.matching import resolve_track
from tunebridge.infrastructure.providers import rest

logger = logging.getLogger(__name__)

AUTH_URL = 'https://account.kkbox.com/oauth2/authorize'
TOKEN_URL = 'https://account.kkbox.com/oauth2/token'
API_BASE = 'https://api.kkbox.com/v1.1'


class KKBoxProvider:
    """KKBox adapter over the KKBox Open API.

    Catalog content is territory scoped; search is text only.
    """

    name = 'KKBox'

    def __init__(self, oauth: OAuthClientConfig, territory: str = 'TW',
                 timeout: float = rest.DEFAULT_TIMEOUT):
        self.oauth = oauth
        self.territory = territory
        self.timeout = timeout

    def _get(self, token: str, url: str, operation: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return rest.request_json('GET', url, operation, timeout=self.timeout,
                                 headers=rest.bearer_headers(token), params=params)

    @staticmethod
    def _to_track(item: Dict[str, Any]) -> Track:
        return Track(
            id=item['id'],
            name=item.get('title') or item.get('name') or '',
            artist=(item.get('artist') or {}).get('name') or '',
            album=(item.get('album') or {}).get('name') or '',
            # Durations come back in seconds
            duration_ms=int((item.get('duration') or 0) * 1000),
            isrc=item.get('isrc'),
        )

    def _paginate(self, token: str, url: str, operation: str) -> List[Dict[str, Any]]:
        items = []
        params = {'territory': self.territory, 'limit': 50}
        next_url = url
        while next_url:
            data = self._get(token, next_url, operation, params=params)
            items.extend(data.get('data') or [])
            # paging.next is absolute and already carries the query string
            next_url = (data.get('paging') or {}).get('next')
            params = None
        return items

    def get_auth_url(self) -> str:
        if not self.oauth.client_id or not self.oauth.redirect_uri:
            raise ConfigError("KKBox client ID not configured")
        query = urlencode({
            'response_type': 'code',
            'client_id': self.oauth.client_id,
            'redirect_uri': self.oauth.redirect_uri,
            'scope': ' '.join(KKBOX_SCOPES),
        })
        return f'{AUTH_URL}?{query}'

    def handle_callback(self, code: str) -> TokenData:
        if not code:
            raise AuthenticationError("KKBox authorization code is required")
        self.oauth.require('KKBox')
        response = rest.send('POST', TOKEN_URL, 'KKBox token exchange', timeout=self.timeout,
                             auth=(self.oauth.client_id, self.oauth.client_secret),
                             data={
                                 'grant_type': 'authorization_code',
                                 'code': code,
                                 'redirect_uri': self.oauth.redirect_uri,
                             })
        if not response.ok:
            logger.error(f"KKBox token exchange failed: {response.status_code}")
            raise AuthenticationError(f"KKBox auth failed: {response.status_code}")

        data = rest.token_json(response, 'KKBox token exchange')
        expires_in = data.get('expires_in')
        return TokenData(
            access_token=data['access_token'],
            refresh_token=data.get('refresh_token'),
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in) if expires_in else None,
        )

    def get_playlists(self, token: str) -> List[Playlist]:
        playlists = []
        for item in self._paginate(token, f'{API_BASE}/me/playlists', 'KKBox list playlists'):
            images = item.get('images') or []
            playlists.append(Playlist(
                id=item['id'],
                name=item.get('title') or item.get('name') or '',
                description=item.get('description') or '',
                track_count=item.get('track_count') or 0,
                image_url=images[0].get('url') if images else None,
            ))
        return playlists

    def get_playlist_tracks(self, token: str, playlist_id: str) -> List[Track]:
        items = self._paginate(token, f'{API_BASE}/playlists/{playlist_id}/tracks',
                               f'KKBox list tracks of playlist {playlist_id}')
        return [self._to_track(item) for item in items]

    def create_playlist(self, token: str, name: str, description: Optional[str] = None) -> str:
        data = rest.request_json('POST', f'{API_BASE}/me/playlists', f"KKBox create playlist '{name}'",
                                 timeout=self.timeout, headers=rest.bearer_headers(token),
                                 data={'title': name, 'description': description or ''})
        logger.info(f"Created KKBox playlist: {name} ({data.get('id')})")
        return data['id']

    def add_tracks(self, token: str, playlist_id: str, tracks: List[Track]) -> AddResult:
        if not tracks:
            return AddResult(added=0, failed=0)

        track_ids = [t.id for t in tracks if t.id]
        failed = len(tracks) - len(track_ids)
        if not track_ids:
            return AddResult(added=0, failed=failed)

        response = rest.send('POST', f'{API_BASE}/playlists/{playlist_id}/tracks', 'KKBox add tracks',
                             timeout=self.timeout, headers=rest.bearer_headers(token),
                             data={'ids': ','.join(track_ids)})
        if response.ok:
            return AddResult(added=len(track_ids), failed=failed)

        logger.error(f"KKBox add tracks failed: {response.status_code}")
        return AddResult(added=0, failed=failed + len(track_ids))

    def _search(self, token: str, track: Track) -> Optional[Track]:
        query = f'{track.name} {track.artist}'.strip()
        data = rest.lookup_json('GET', f'{API_BASE}/search', 'KKBox search', timeout=self.timeout,
                                headers=rest.bearer_headers(token), params={
                                    'q': query,
                                    'type': 'track',
                                    'territory': self.territory,
                                    'limit': 1,
                                })
        if data is None:
            return None
        results = (data.get('tracks') or {}).get('data') or []
        return self._to_track(results[0]) if results else None

    def search_track(self, token: str, track: Track) -> Optional[Track]:
        return resolve_track(track, by_text=lambda t: self._search(token, t))
