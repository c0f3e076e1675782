"""Provider track sources.

Hey future me - every provider implements ITrackFetcher from domain.ports:
- fetch_top_tracks(auth, window) for Top Songs lists
- fetch_playlist_tracks(auth, playlist_id) for playlist-mirror lists

Usage:
    from reccord.application.sources import SpotifyTrackFetcher, AppleMusicTrackFetcher

    fetchers = {
        SourceService.SPOTIFY: SpotifyTrackFetcher(spotify_client),
        SourceService.APPLE_MUSIC: AppleMusicTrackFetcher(apple_client),
    }
"""

from reccord.application.sources.apple_music_source import (
    AppleMusicTrackFetcher,
    extract_apple_music_playlist_id,
)
from reccord.application.sources.spotify_source import (
    SpotifyTrackFetcher,
    extract_spotify_playlist_id,
)
from reccord.domain.entities import SourceService


def extract_playlist_id(service: SourceService, value: str) -> str | None:
    """Extract a playlist id for the given provider, None if unrecognized."""
    if service is SourceService.SPOTIFY:
        return extract_spotify_playlist_id(value)
    return extract_apple_music_playlist_id(value)


__all__ = [
    "AppleMusicTrackFetcher",
    "SpotifyTrackFetcher",
    "extract_apple_music_playlist_id",
    "extract_playlist_id",
    "extract_spotify_playlist_id",
]
