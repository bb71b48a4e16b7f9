import os
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, Mapping

from dotenv import dotenv_values, load_dotenv


class ConfigError(Exception):
    """Configuration error."""
    pass


SPOTIFY_SCOPES = [
    'playlist-read-private',      # Read private playlists
    'playlist-modify-public',     # Create/modify public playlists
    'playlist-modify-private',    # Create/modify private playlists
]
GOOGLE_SCOPES = ['https://www.googleapis.com/auth/youtube']
KKBOX_SCOPES = ['user_profile', 'user_territory', 'user_playlist', 'user_playlist_write']


@dataclass(frozen=True)
class OAuthClientConfig:
    """OAuth client registration for one platform."""

    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    redirect_uri: Optional[str] = None

    def require(self, provider: str, *fields: str) -> None:
        """Raise ConfigError naming the first missing field."""
        for name in fields or ('client_id', 'client_secret', 'redirect_uri'):
            if not getattr(self, name):
                raise ConfigError(f"{provider} {name} not configured")

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.redirect_uri)


@dataclass(frozen=True)
class Settings:
    """Application settings, read once from the environment."""

    spotify: OAuthClientConfig = field(default_factory=OAuthClientConfig)
    google: OAuthClientConfig = field(default_factory=OAuthClientConfig)
    kkbox: OAuthClientConfig = field(default_factory=OAuthClientConfig)
    apple_developer_token: Optional[str] = None
    apple_storefront: str = 'us'
    kkbox_territory: str = 'TW'
    http_timeout: float = 15.0
    log_level: str = 'INFO'
    host: str = 'localhost'
    port: int = 3000

    @classmethod
    def from_mapping(cls, env: Mapping[str, Optional[str]]) -> 'Settings':
        """Build settings from an environment-like mapping."""
        def _get(key: str, default: Optional[str] = None) -> Optional[str]:
            value = env.get(key)
            if value is None or not str(value).strip():
                return default
            return str(value).strip()

        def _oauth(prefix: str) -> OAuthClientConfig:
            return OAuthClientConfig(
                client_id=_get(f'{prefix}_CLIENT_ID'),
                client_secret=_get(f'{prefix}_CLIENT_SECRET'),
                redirect_uri=_get(f'{prefix}_REDIRECT_URI'),
            )

        try:
            http_timeout = float(_get('TUNEBRIDGE_HTTP_TIMEOUT', '15'))
        except ValueError:
            raise ConfigError("TUNEBRIDGE_HTTP_TIMEOUT must be a number")
        if http_timeout <= 0:
            raise ConfigError("TUNEBRIDGE_HTTP_TIMEOUT must be positive")

        try:
            port = int(_get('TUNEBRIDGE_PORT', '3000'))
        except ValueError:
            raise ConfigError("TUNEBRIDGE_PORT must be an integer")

        return cls(
            spotify=_oauth('SPOTIFY'),
            google=_oauth('GOOGLE'),
            kkbox=_oauth('KKBOX'),
            apple_developer_token=_get('APPLE_DEVELOPER_TOKEN'),
            apple_storefront=_get('APPLE_STOREFRONT', 'us'),
            kkbox_territory=_get('KKBOX_TERRITORY', 'TW'),
            http_timeout=http_timeout,
            log_level=_get('TUNEBRIDGE_LOG_LEVEL', 'INFO').upper(),
            host=_get('TUNEBRIDGE_HOST', 'localhost'),
            port=port,
        )

    def validate_configuration(self) -> Dict[str, bool]:
        """Report which providers have their credentials configured."""
        return {
            'spotify': self.spotify.is_configured,
            'youtube-music': self.google.is_configured,
            'apple-music': bool(self.apple_developer_token),
            'kkbox': self.kkbox.is_configured,
        }

    def get_config_summary(self) -> Dict[str, Any]:
        """Get configuration summary (without sensitive data)."""
        return {
            'providers': self.validate_configuration(),
            'apple_storefront': self.apple_storefront,
            'kkbox_territory': self.kkbox_territory,
            'http_timeout': self.http_timeout,
            'log_level': self.log_level,
        }


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Load settings from the process environment, with an optional .env file.

    Values already present in the environment win over the file.
    """
    if env_file:
        if not os.path.exists(env_file):
            raise ConfigError(f"Env file not found: {env_file}")
        file_values = dotenv_values(env_file)
        merged = {**file_values, **os.environ}
        return Settings.from_mapping(merged)

    load_dotenv()
    return Settings.from_mapping(os.environ)


# Global instance, created on first use
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get global settings instance."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def setup_config(env_file: Optional[str] = None) -> Settings:
    """Setup configuration, optionally from a specific .env file."""
    global _settings
    _settings = load_settings(env_file)
    return _settings
