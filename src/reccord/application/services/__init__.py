"""Application services - token management, merge engine and list sync."""

from reccord.application.services.list_sync_service import (
    ListSyncService,
    SourceFailed,
    SourceFetched,
    SourceResult,
)
from reccord.application.services.token_manager import (
    AppleMusicTokenManager,
    DeveloperTokenProvider,
    SpotifyTokenManager,
    TokenManagerRegistry,
)

# Hey future me - top_songs is pure functions, import them from the module directly:
#   from reccord.application.services.top_songs import process_top_songs
from reccord.application.services.top_songs import TOP_SONGS_LIMIT, process_top_songs

__all__ = [
    "TOP_SONGS_LIMIT",
    "AppleMusicTokenManager",
    "DeveloperTokenProvider",
    "ListSyncService",
    "SourceFailed",
    "SourceFetched",
    "SourceResult",
    "SpotifyTokenManager",
    "TokenManagerRegistry",
    "process_top_songs",
]
