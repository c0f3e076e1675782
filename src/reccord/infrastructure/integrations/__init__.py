"""External integration client implementations."""

from reccord.infrastructure.integrations.apple_music_client import AppleMusicClient
from reccord.infrastructure.integrations.errors import (
    extract_provider_message,
    provider_transport_error,
    raise_for_provider_status,
)
from reccord.infrastructure.integrations.spotify_client import SpotifyClient

__all__ = [
    "AppleMusicClient",
    "SpotifyClient",
    "extract_provider_message",
    "provider_transport_error",
    "raise_for_provider_status",
]
