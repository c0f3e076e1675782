"""Apple Music track source.

Hey future me - Apple has NO "top tracks for the last 6 months" endpoint. What we have:

- /me/recent/played/tracks: recent play events (max ~25 useful), newest first
- /me/history/heavy-rotation: Apple's own "what you're into" shelf, no counts, no dates

Strategy per window:
- THIS_WEEK / THIS_MONTH: aggregate recently played by ISRC (or name|artist),
  count plays and keep the latest timestamp, filter to the window. Nothing left?
  Fall back to heavy rotation instead of returning an empty list.
- PAST_6_MONTHS / PAST_YEAR / ALL_TIME: straight to heavy rotation.
"""

import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from reccord.domain.entities import (
    PlaylistTrack,
    ProviderAuth,
    ProviderTrack,
    SourceService,
    TimeWindow,
)
from reccord.domain.exceptions import ConfigurationError
from reccord.domain.ports import ITrackFetcher
from reccord.infrastructure.integrations.apple_music_client import AppleMusicClient

logger = logging.getLogger(__name__)

PLAYLIST_TRACK_LIMIT = 10
UNKNOWN_TRACK_NAME = "Unknown Track"

# Heavy rotation mixes albums, playlists and stations in - only these are tracks
_SONG_TYPES = frozenset({"songs", "library-songs"})

# Order matters: the with-name shape must win over the direct shape
_PLAYLIST_PATTERNS = (
    re.compile(r"playlist/[^/]*/(pl\.[a-zA-Z0-9.-]+)"),
    re.compile(r"playlist/(pl\.[a-zA-Z0-9.-]+)"),
    re.compile(r"music://playlist/(pl\.[a-zA-Z0-9.-]+)"),
)


def extract_apple_music_playlist_id(value: str) -> str | None:
    """Extract the ``pl.`` playlist id from an Apple Music URL.

    Accepts:
    - https://music.apple.com/us/playlist/playlist-name/pl.84f88d0ece474117b4e6e5484f84c4f2
    - https://music.apple.com/us/playlist/pl.u-xxx
    - https://music.apple.com/playlist/pl.u-xxx
    - music://playlist/pl.u-xxx

    Returns None for anything else.
    """
    for pattern in _PLAYLIST_PATTERNS:
        match = pattern.search(value)
        if match:
            return match.group(1)
    return None


def _parse_timestamp(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)


def _played_at(item: dict[str, Any]) -> datetime | None:
    attributes = item.get("attributes") or {}
    meta = item.get("meta") or {}
    return _parse_timestamp(attributes.get("lastPlayedDate")) or _parse_timestamp(
        meta.get("playedAt")
    )


def parse_song(
    item: dict[str, Any], last_played_at: datetime | None = None
) -> ProviderTrack | None:
    """Convert one Apple Music song resource, None if unusable."""
    attributes = item.get("attributes") or {}
    name = attributes.get("name")
    if not name:
        return None
    return ProviderTrack(
        name=name,
        artist=attributes.get("artistName") or "",
        album=attributes.get("albumName") or None,
        url=attributes.get("url") or None,
        isrc=attributes.get("isrc") or None,
        play_count=1,
        last_played_at=last_played_at,
    )


@dataclass
class _PlayAggregate:
    track: ProviderTrack
    play_count: int
    last_played_at: datetime | None


def aggregate_recently_played(items: list[dict[str, Any]]) -> list[ProviderTrack]:
    """Collapse play events into one track per song with a play count.

    Key is the ISRC, or ``name|artist`` without one. The latest timestamp wins.
    Output keeps first-seen order (newest play first).
    """
    aggregates: dict[str, _PlayAggregate] = {}
    for item in items:
        played_at = _played_at(item)
        track = parse_song(item, played_at)
        if track is None:
            continue
        key = track.isrc or f"{track.name}|{track.artist}"
        existing = aggregates.get(key)
        if existing is None:
            aggregates[key] = _PlayAggregate(track, 1, played_at)
            continue
        existing.play_count += 1
        if played_at is not None and (
            existing.last_played_at is None or played_at > existing.last_played_at
        ):
            existing.last_played_at = played_at

    return [
        ProviderTrack(
            name=agg.track.name,
            artist=agg.track.artist,
            album=agg.track.album,
            url=agg.track.url,
            isrc=agg.track.isrc,
            play_count=agg.play_count,
            last_played_at=agg.last_played_at,
        )
        for agg in aggregates.values()
    ]


def filter_to_window(
    tracks: list[ProviderTrack], window: TimeWindow, now: datetime | None = None
) -> list[ProviderTrack]:
    """Keep tracks last played inside the window. No timestamp means out."""
    cutoff = window.cutoff(now)
    if cutoff is None:
        return list(tracks)
    return [t for t in tracks if t.last_played_at is not None and t.last_played_at >= cutoff]


class AppleMusicTrackFetcher(ITrackFetcher):
    """Fetches listening history and playlists from Apple Music."""

    service = SourceService.APPLE_MUSIC

    def __init__(
        self,
        client: AppleMusicClient,
        recently_played_limit: int = 25,
        playlist_track_limit: int = PLAYLIST_TRACK_LIMIT,
    ) -> None:
        self._client = client
        self._recently_played_limit = recently_played_limit
        self._playlist_track_limit = playlist_track_limit

    @staticmethod
    def _developer_token(auth: ProviderAuth) -> str:
        if not auth.developer_token:
            raise ConfigurationError("Apple Music requests need a developer token")
        return auth.developer_token

    async def fetch_top_tracks(
        self, auth: ProviderAuth, window: TimeWindow
    ) -> list[ProviderTrack]:
        """Fetch listening history for a window (see module docstring)."""
        developer_token = self._developer_token(auth)

        if window.is_short:
            data = await self._client.get_recently_played(
                developer_token, auth.access_token, limit=self._recently_played_limit
            )
            recent = aggregate_recently_played(
                [i for i in data.get("data") or [] if isinstance(i, dict)]
            )
            in_window = filter_to_window(recent, window)
            if in_window:
                return in_window
            logger.info(
                f"No Apple Music plays inside {window.value} "
                f"({len(recent)} recent tracks), falling back to heavy rotation"
            )

        return await self._fetch_heavy_rotation(developer_token, auth.access_token)

    async def _fetch_heavy_rotation(
        self, developer_token: str, user_token: str
    ) -> list[ProviderTrack]:
        data = await self._client.get_heavy_rotation(developer_token, user_token)
        tracks: list[ProviderTrack] = []
        for item in data.get("data") or []:
            if not isinstance(item, dict) or item.get("type") not in _SONG_TYPES:
                continue
            track = parse_song(item)
            if track is not None:
                tracks.append(track)
        return tracks

    async def fetch_playlist_tracks(
        self, auth: ProviderAuth, playlist_id: str
    ) -> list[PlaylistTrack]:
        """First tracks of a catalog playlist in playlist order."""
        data = await self._client.get_catalog_playlist(
            playlist_id, self._developer_token(auth), auth.access_token
        )
        playlists = data.get("data") or []
        if not playlists:
            return []

        track_items = (
            ((playlists[0].get("relationships") or {}).get("tracks") or {}).get("data") or []
        )
        tracks: list[PlaylistTrack] = []
        for item in track_items[: self._playlist_track_limit]:
            attributes = (item or {}).get("attributes") or {}
            tracks.append(
                PlaylistTrack(
                    name=attributes.get("name") or UNKNOWN_TRACK_NAME,
                    description=attributes.get("artistName") or None,
                    url=attributes.get("url") or None,
                )
            )
        return tracks
