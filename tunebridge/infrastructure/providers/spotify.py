from typing import List, Optional, Dict, Any
from datetime import datetime, timezone
import logging
from urllib.parse import urlencode

import requests
import spotipy
from spotipy.cache_handler import MemoryCacheHandler
from spotipy.exceptions import SpotifyException
from spotipy.oauth2 import SpotifyOAuth, SpotifyOauthError

from tunebridge.crosscutting.config import OAuthClientConfig, ConfigError, SPOTIFY_SCOPES
from tunebridge.domain.entities import Track, Playlist, AddResult, TokenData
from tunebridge.domain.errors import AuthenticationError, ProviderError, RateLimited
from tunebridge.domain.matching import join_artists, resolve_track

logger = logging.getLogger(__name__)

ADD_BATCH_SIZE = 100


class SpotifyProvider:
    """Spotify adapter backed by spotipy.

    A new ``spotipy.Spotify`` client is built for each call from the bearer
    token the caller passes in; the adapter itself only keeps configuration.
    """

    name = 'Spotify'

    def __init__(self, oauth: OAuthClientConfig, requests_timeout: float = 15.0):
        """Initialize Spotify provider.

        Args:
            oauth: Spotify client registration (id, secret, redirect uri)
            requests_timeout: Timeout in seconds for each API request
        """
        self.oauth = oauth
        self.requests_timeout = requests_timeout

    def _client(self, token: str) -> spotipy.Spotify:
        # retries=0: failures surface to the caller instead of being retried
        return spotipy.Spotify(auth=token, requests_timeout=self.requests_timeout,
                               retries=0, status_retries=0)

    def _oauth_manager(self) -> SpotifyOAuth:
        self.oauth.require('Spotify')
        return SpotifyOAuth(
            client_id=self.oauth.client_id,
            client_secret=self.oauth.client_secret,
            redirect_uri=self.oauth.redirect_uri,
            scope=' '.join(SPOTIFY_SCOPES),
            open_browser=False,
            cache_handler=MemoryCacheHandler(),
        )

    def _translate_error(self, error: Exception, operation: str) -> ProviderError:
        """Map spotipy/requests failures onto domain errors."""
        status = getattr(error, 'http_status', None)
        if status == 429:
            headers = getattr(error, 'headers', None) or {}
            try:
                retry_after = int(headers.get('Retry-After', 1))
            except (TypeError, ValueError):
                retry_after = 1
            return RateLimited(retry_after_ms=retry_after * 1000, message=f"Spotify {operation} rate limited")
        logger.error(f"Spotify {operation} failed: {error}")
        return ProviderError(f"Spotify {operation} failed: {error}", status_code=status)

    @staticmethod
    def _to_track(item: Dict[str, Any]) -> Track:
        album = item.get('album') or {}
        external_ids = item.get('external_ids') or {}
        return Track(
            id=item.get('id') or '',
            name=item.get('name', ''),
            artist=join_artists(a.get('name') for a in item.get('artists') or []),
            album=album.get('name') or '',
            duration_ms=item.get('duration_ms') or 0,
            isrc=external_ids.get('isrc'),
        )

    def get_auth_url(self) -> str:
        # The authorize URL is public; the client secret is only needed for the code exchange
        if not self.oauth.client_id or not self.oauth.redirect_uri:
            raise ConfigError("Spotify client ID not configured")
        query = urlencode({
            'client_id': self.oauth.client_id,
            'response_type': 'code',
            'redirect_uri': self.oauth.redirect_uri,
            'scope': ' '.join(SPOTIFY_SCOPES),
        })
        return f'{SpotifyOAuth.OAUTH_AUTHORIZE_URL}?{query}'

    def handle_callback(self, code: str) -> TokenData:
        if not code:
            raise AuthenticationError("Spotify authorization code is required")
        try:
            token_info = self._oauth_manager().get_access_token(code, as_dict=True, check_cache=False)
        except (SpotifyOauthError, SpotifyException, requests.RequestException) as e:
            logger.error(f"Spotify token exchange failed: {e}")
            raise AuthenticationError(f"Spotify token exchange failed: {e}")

        if not token_info or 'access_token' not in token_info:
            raise AuthenticationError("Spotify token exchange returned no access token")

        expires_at = None
        if token_info.get('expires_at'):
            expires_at = datetime.fromtimestamp(token_info['expires_at'], tz=timezone.utc)
        return TokenData(
            access_token=token_info['access_token'],
            refresh_token=token_info.get('refresh_token'),
            expires_at=expires_at,
        )

    def get_playlists(self, token: str) -> List[Playlist]:
        client = self._client(token)
        playlists = []
        try:
            page = client.current_user_playlists(limit=50)
            while page:
                for item in page.get('items') or []:
                    images = item.get('images') or []
                    playlists.append(Playlist(
                        id=item['id'],
                        name=item.get('name', ''),
                        description=item.get('description') or '',
                        track_count=(item.get('tracks') or {}).get('total', 0),
                        image_url=images[0].get('url') if images else None,
                    ))
                page = client.next(page) if page.get('next') else None
        except (SpotifyException, requests.RequestException) as e:
            raise self._translate_error(e, 'list playlists')
        return playlists

    def get_playlist_tracks(self, token: str, playlist_id: str) -> List[Track]:
        client = self._client(token)
        tracks = []
        try:
            page = client.playlist_items(playlist_id, limit=100, additional_types=('track',))
            while page:
                for item in page.get('items') or []:
                    track_data = item.get('track')
                    if track_data:
                        tracks.append(self._to_track(track_data))
                page = client.next(page) if page.get('next') else None
        except (SpotifyException, requests.RequestException) as e:
            raise self._translate_error(e, f'list tracks of playlist {playlist_id}')
        return tracks

    def create_playlist(self, token: str, name: str, description: Optional[str] = None) -> str:
        client = self._client(token)
        try:
            user = client.current_user()
            result = client.user_playlist_create(
                user['id'],
                name,
                public=False,
                description=description or '',
            )
        except (SpotifyException, requests.RequestException) as e:
            raise self._translate_error(e, f"create playlist '{name}'")
        logger.info(f"Created Spotify playlist: {name} ({result['id']})")
        return result['id']

    def add_tracks(self, token: str, playlist_id: str, tracks: List[Track]) -> AddResult:
        if not tracks:
            return AddResult(added=0, failed=0)

        uris = [f"spotify:track:{t.id}" for t in tracks if t.id]
        added = 0
        failed = len(tracks) - len(uris)
        client = self._client(token)

        # Spotify allows up to 100 tracks per request
        for i in range(0, len(uris), ADD_BATCH_SIZE):
            batch = uris[i:i + ADD_BATCH_SIZE]
            try:
                result = client.playlist_add_items(playlist_id, batch)
            except SpotifyException as e:
                logger.error(f"Failed to add tracks batch at {i}: {e}")
                failed += len(batch)
                continue
            except requests.RequestException as e:
                raise self._translate_error(e, 'add tracks')

            if result and 'snapshot_id' in result:
                added += len(batch)
            else:
                failed += len(batch)

        return AddResult(added=added, failed=failed)

    def _search(self, client: spotipy.Spotify, query: str) -> Optional[Track]:
        try:
            results = client.search(q=query, type='track', limit=1)
        except SpotifyException as e:
            # An API error on one search counts as no match
            logger.warning(f"Spotify search failed for '{query}': {e}")
            return None
        except requests.RequestException as e:
            raise self._translate_error(e, 'search')
        items = ((results or {}).get('tracks') or {}).get('items') or []
        if not items:
            return None
        return self._to_track(items[0])

    def search_track(self, token: str, track: Track) -> Optional[Track]:
        client = self._client(token)
        return resolve_track(
            track,
            by_text=lambda t: self._search(client, f'track:{t.name} artist:{t.artist}'),
            by_isrc=lambda isrc: self._search(client, f'isrc:{isrc}'),
        )
