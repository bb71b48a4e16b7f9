from types import MappingProxyType
from typing import Dict, List, Mapping, Optional

from tunebridge.crosscutting.config import Settings
from tunebridge.domain.ports import MusicProvider
from tunebridge.infrastructure.providers.apple_music import AppleMusicProvider
from tunebridge.infrastructure.providers.kkbox import KKBoxProvider
from tunebridge.infrastructure.providers.spotify import SpotifyProvider
from tunebridge.infrastructure.providers.youtube import YouTubeMusicProvider


class ProviderRegistry:
    """Read-only lookup from platform id to its adapter instance."""

    def __init__(self, providers: Mapping[str, MusicProvider]):
        self._providers = MappingProxyType(dict(providers))

    def lookup(self, provider_id: Optional[str]) -> Optional[MusicProvider]:
        if not provider_id:
            return None
        return self._providers.get(provider_id)

    def list(self) -> List[Dict[str, str]]:
        """Platforms in registration order, as ``{"id", "displayName"}``."""
        return [{'id': pid, 'displayName': provider.name} for pid, provider in self._providers.items()]

    def __contains__(self, provider_id: str) -> bool:
        return provider_id in self._providers


def build_registry(settings: Settings) -> ProviderRegistry:
    """Build the fixed provider table. Called once at start-up."""
    return ProviderRegistry({
        'spotify': SpotifyProvider(settings.spotify, requests_timeout=settings.http_timeout),
        'youtube-music': YouTubeMusicProvider(settings.google, timeout=settings.http_timeout),
        'apple-music': AppleMusicProvider(settings.apple_developer_token, storefront=settings.apple_storefront,
                                          timeout=settings.http_timeout),
        'kkbox': KKBoxProvider(settings.kkbox, territory=settings.kkbox_territory,
                               timeout=settings.http_timeout),
    })
