"""Spotify track source.

Hey future me - this turns raw Spotify Web API JSON into ProviderTracks / PlaylistTracks.
The client does HTTP + error mapping, this module does the shape validation. Anything
malformed is dropped HERE, the merge engine never sees half-filled records.

Top Songs mode always uses /me/top/tracks with the nearest native bucket. Spotify does
the windowing server-side, we don't filter by date afterwards. Top tracks carry no
play counts or timestamps, so every track counts as one play with no last-played date.
"""

import logging
import re
from typing import Any

from reccord.domain.entities import (
    PlaylistTrack,
    ProviderAuth,
    ProviderTrack,
    SourceService,
    TimeWindow,
)
from reccord.domain.ports import ITrackFetcher
from reccord.infrastructure.integrations.spotify_client import SpotifyClient

logger = logging.getLogger(__name__)

PLAYLIST_TRACK_LIMIT = 10

_TIME_RANGES: dict[TimeWindow, str] = {
    TimeWindow.THIS_WEEK: "short_term",  # ~4 weeks, closest Spotify has
    TimeWindow.THIS_MONTH: "short_term",
    TimeWindow.PAST_6_MONTHS: "medium_term",
    TimeWindow.PAST_YEAR: "long_term",
    TimeWindow.ALL_TIME: "long_term",
}

_PLAYLIST_URL_PATTERN = re.compile(r"playlist/([a-zA-Z0-9]+)")
_PLAYLIST_URI_PATTERN = re.compile(r"spotify:playlist:([a-zA-Z0-9]+)")


def spotify_time_range(window: TimeWindow) -> str:
    """Map a time window to Spotify's time_range parameter."""
    return _TIME_RANGES[window]


def extract_spotify_playlist_id(value: str) -> str | None:
    """Extract the playlist id from a Spotify URL or URI.

    Accepts:
    - https://open.spotify.com/playlist/37i9dQZF1DXcBWIGoYBM5M
    - https://open.spotify.com/playlist/37i9dQZF1DXcBWIGoYBM5M?si=abc
    - spotify:playlist:37i9dQZF1DXcBWIGoYBM5M

    Returns None for anything else.
    """
    for pattern in (_PLAYLIST_URL_PATTERN, _PLAYLIST_URI_PATTERN):
        match = pattern.search(value)
        if match:
            return match.group(1)
    return None


def _join_artists(track: dict[str, Any]) -> str:
    return ", ".join(
        a["name"] for a in track.get("artists") or [] if isinstance(a, dict) and a.get("name")
    )


def _external_url(track: dict[str, Any]) -> str | None:
    return (track.get("external_urls") or {}).get("spotify") or None


def parse_top_track(track: dict[str, Any]) -> ProviderTrack | None:
    """Convert one /me/top/tracks item, None if unusable."""
    name = track.get("name")
    if not name:
        return None
    return ProviderTrack(
        name=name,
        artist=_join_artists(track),
        album=(track.get("album") or {}).get("name") or None,
        url=_external_url(track),
        isrc=(track.get("external_ids") or {}).get("isrc") or None,
        play_count=1,
        last_played_at=None,
    )


class SpotifyTrackFetcher(ITrackFetcher):
    """Fetches listening history and playlists from Spotify."""

    service = SourceService.SPOTIFY

    def __init__(
        self,
        client: SpotifyClient,
        top_tracks_limit: int = 50,
        playlist_track_limit: int = PLAYLIST_TRACK_LIMIT,
    ) -> None:
        self._client = client
        self._top_tracks_limit = top_tracks_limit
        self._playlist_track_limit = playlist_track_limit

    async def fetch_top_tracks(
        self, auth: ProviderAuth, window: TimeWindow
    ) -> list[ProviderTrack]:
        """Fetch the user's top tracks for the window's native bucket."""
        data = await self._client.get_top_tracks(
            auth.access_token,
            time_range=spotify_time_range(window),
            limit=self._top_tracks_limit,
        )
        items = data.get("items") or []
        tracks = [t for t in (parse_top_track(i) for i in items if isinstance(i, dict)) if t]
        if len(tracks) != len(items):
            logger.debug(f"Dropped {len(items) - len(tracks)} malformed Spotify top tracks")
        return tracks

    # Listen up - playlist items can be null (deleted tracks) or local files (is_local)
    # which have no Spotify URL. Both are skipped BEFORE taking the first 10.
    async def fetch_playlist_tracks(
        self, auth: ProviderAuth, playlist_id: str
    ) -> list[PlaylistTrack]:
        """First tracks of a playlist in playlist order."""
        data = await self._client.get_playlist_tracks(playlist_id, auth.access_token, limit=100)

        tracks: list[PlaylistTrack] = []
        for item in data.get("items") or []:
            track = (item or {}).get("track")
            if not track or track.get("is_local") or not track.get("name"):
                continue
            tracks.append(
                PlaylistTrack(
                    name=track["name"],
                    description=_join_artists(track) or None,
                    url=_external_url(track),
                )
            )
            if len(tracks) >= self._playlist_track_limit:
                break
        return tracks
