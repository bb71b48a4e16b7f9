import re
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode

from tunebridge.crosscutting.config import ConfigError, GOOGLE_SCOPES, OAuthClientConfig
from tunebridge.domain.entities import AddResult, Playlist, TokenData, Track
from tunebridge.domain.errors import AuthenticationError
from tunebridge.domain.matching import resolve_track, text_query
from tunebridge.infrastructure.providers import rest

logger = logging.getLogger(__name__)

AUTH_URL = 'https://accounts.google.com/o/oauth2/auth'
TOKEN_URL = 'https://oauth2.googleapis.com/token'
API_BASE = 'https://www.googleapis.com/youtube/v3'
MUSIC_CATEGORY_ID = '10'

_DURATION_PATTERN = re.compile(r'^PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?$', re.IGNORECASE)


def parse_duration(duration: str) -> int:
    """Convert an ISO-8601 ``PT#H#M#S`` duration to milliseconds (0 if unparseable)."""
    match = _DURATION_PATTERN.match(duration or '')
    if not match:
        return 0
    hours, minutes, seconds = (int(g or 0) for g in match.groups())
    return ((hours * 60 + minutes) * 60 + seconds) * 1000


def split_video_title(title: str) -> Tuple[str, str]:
    """Split the common "Artist - Track" video title into (artist, name)."""
    parts = (title or '').split(' - ')
    if len(parts) > 1:
        return parts[0].strip(), ' - '.join(parts[1:]).strip()
    return '', title or ''


class YouTubeMusicProvider:
    """YouTube Music adapter over the YouTube Data API v3.

    YouTube has no ISRC lookup, so search is text only.
    """

    name = 'YouTube Music'

    def __init__(self, oauth: OAuthClientConfig, timeout: float = rest.DEFAULT_TIMEOUT):
        self.oauth = oauth
        self.timeout = timeout

    def _get(self, token: str, path: str, params: Dict[str, Any], operation: str) -> Dict[str, Any]:
        return rest.request_json('GET', f'{API_BASE}/{path}', operation, timeout=self.timeout,
                                 headers=rest.bearer_headers(token), params=params)

    def get_auth_url(self) -> str:
        if not self.oauth.client_id or not self.oauth.redirect_uri:
            raise ConfigError("Google client ID not configured")
        query = urlencode({
            'client_id': self.oauth.client_id,
            'redirect_uri': self.oauth.redirect_uri,
            'response_type': 'code',
            'scope': ' '.join(GOOGLE_SCOPES),
            'access_type': 'offline',
        })
        return f'{AUTH_URL}?{query}'

    def handle_callback(self, code: str) -> TokenData:
        if not code:
            raise AuthenticationError("Google authorization code is required")
        self.oauth.require('Google')
        response = rest.send('POST', TOKEN_URL, 'Google token exchange', timeout=self.timeout, data={
            'client_id': self.oauth.client_id,
            'client_secret': self.oauth.client_secret,
            'code': code,
            'redirect_uri': self.oauth.redirect_uri,
            'grant_type': 'authorization_code',
        })
        if not response.ok:
            logger.error(f"Google token exchange failed: {response.status_code} - {response.text[:200]}")
            raise AuthenticationError(f"Google token exchange failed: {response.status_code}")

        data = rest.token_json(response, 'Google token exchange')
        expires_in = data.get('expires_in')
        return TokenData(
            access_token=data['access_token'],
            refresh_token=data.get('refresh_token'),
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in) if expires_in else None,
        )

    def get_playlists(self, token: str) -> List[Playlist]:
        playlists = []
        page_token = None

        while True:
            params = {'part': 'snippet,contentDetails', 'mine': 'true', 'maxResults': 50}
            if page_token:
                params['pageToken'] = page_token
            data = self._get(token, 'playlists', params, 'YouTube list playlists')

            for item in data.get('items') or []:
                snippet = item.get('snippet') or {}
                thumbnail = ((snippet.get('thumbnails') or {}).get('default') or {}).get('url')
                playlists.append(Playlist(
                    id=item['id'],
                    name=snippet.get('title', ''),
                    description=snippet.get('description') or '',
                    track_count=(item.get('contentDetails') or {}).get('itemCount', 0),
                    image_url=thumbnail,
                ))

            page_token = data.get('nextPageToken')
            if not page_token:
                return playlists

    def _video_durations(self, token: str, video_ids: List[str]) -> Dict[str, int]:
        if not video_ids:
            return {}
        data = self._get(token, 'videos', {'part': 'contentDetails', 'id': ','.join(video_ids)},
                         'YouTube video details')
        return {
            v['id']: parse_duration((v.get('contentDetails') or {}).get('duration', ''))
            for v in data.get('items') or []
        }

    def get_playlist_tracks(self, token: str, playlist_id: str) -> List[Track]:
        tracks = []
        page_token = None

        while True:
            params = {'part': 'snippet', 'playlistId': playlist_id, 'maxResults': 50}
            if page_token:
                params['pageToken'] = page_token
            data = self._get(token, 'playlistItems', params, f'YouTube list tracks of playlist {playlist_id}')
            items = data.get('items') or []

            video_ids = [((i.get('snippet') or {}).get('resourceId') or {}).get('videoId') for i in items]
            durations = self._video_durations(token, [v for v in video_ids if v])

            for item, video_id in zip(items, video_ids):
                if not video_id:
                    continue
                artist, name = split_video_title((item.get('snippet') or {}).get('title', ''))
                tracks.append(Track(
                    id=video_id,
                    name=name,
                    artist=artist,
                    duration_ms=durations.get(video_id, 0),
                ))

            page_token = data.get('nextPageToken')
            if not page_token:
                return tracks

    def create_playlist(self, token: str, name: str, description: Optional[str] = None) -> str:
        data = rest.request_json(
            'POST', f'{API_BASE}/playlists', f"YouTube create playlist '{name}'",
            timeout=self.timeout,
            headers=rest.bearer_headers(token),
            params={'part': 'snippet,status'},
            json={
                'snippet': {'title': name, 'description': description or ''},
                'status': {'privacyStatus': 'private'},
            },
        )
        logger.info(f"Created YouTube playlist: {name} ({data.get('id')})")
        return data['id']

    def add_tracks(self, token: str, playlist_id: str, tracks: List[Track]) -> AddResult:
        if not tracks:
            return AddResult(added=0, failed=0)

        added = 0
        failed = 0
        # The API inserts one video per request
        for track in tracks:
            if not track.id:
                failed += 1
                continue
            response = rest.send(
                'POST', f'{API_BASE}/playlistItems', 'YouTube add track',
                timeout=self.timeout,
                headers=rest.bearer_headers(token),
                params={'part': 'snippet'},
                json={'snippet': {
                    'playlistId': playlist_id,
                    'resourceId': {'kind': 'youtube#video', 'videoId': track.id},
                }},
            )
            if response.ok:
                added += 1
            else:
                logger.warning(f"Failed to add video {track.id}: {response.status_code}")
                failed += 1

        return AddResult(added=added, failed=failed)

    def _search_videos(self, token: str, track: Track) -> Optional[Track]:
        data = rest.lookup_json('GET', f'{API_BASE}/search', 'YouTube search', timeout=self.timeout,
                                headers=rest.bearer_headers(token), params={
                                    'part': 'snippet',
                                    'q': text_query(track),
                                    'type': 'video',
                                    'videoCategoryId': MUSIC_CATEGORY_ID,
                                    'maxResults': 1,
                                })
        items = (data or {}).get('items') or []
        if not items:
            return None
        video_id = (items[0].get('id') or {}).get('videoId')
        if not video_id:
            logger.warning("YouTube search returned a result without a video id")
            return None
        # Keep the searched metadata; video titles are not reliable artist/name pairs
        return Track(id=video_id, name=track.name, artist=track.artist)

    def search_track(self, token: str, track: Track) -> Optional[Track]:
        return resolve_track(track, by_text=lambda t: self._search_videos(token, t))
