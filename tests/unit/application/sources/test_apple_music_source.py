"""Tests for the Apple Music track source."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from reccord.application.sources.apple_music_source import (
    UNKNOWN_TRACK_NAME,
    AppleMusicTrackFetcher,
    aggregate_recently_played,
    extract_apple_music_playlist_id,
    filter_to_window,
)
from reccord.domain.entities import ProviderAuth, ProviderTrack, TimeWindow
from reccord.domain.exceptions import ConfigurationError

# Hey future me - the window filter compares against the real clock, so the
# recently-played fixtures use timestamps relative to now.


def _iso(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def _song(
    name: str,
    isrc: str | None = None,
    played_at: datetime | None = None,
    song_type: str = "songs",
) -> dict:
    attributes = {
        "name": name,
        "artistName": "Artist",
        "albumName": "Album",
        "url": f"https://music.apple.com/song/{name}",
    }
    if isrc:
        attributes["isrc"] = isrc
    if played_at:
        attributes["lastPlayedDate"] = _iso(played_at)
    return {"id": name, "type": song_type, "attributes": attributes}


AUTH = ProviderAuth(access_token="music-user-token", developer_token="dev-jwt")


class TestPlaylistIdExtraction:
    """Test Apple Music playlist id parsing."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (
                "https://music.apple.com/us/playlist/todays-hits/"
                "pl.f4d106fed2bd41149aaacabb233eb5eb",
                "pl.f4d106fed2bd41149aaacabb233eb5eb",
            ),
            ("https://music.apple.com/us/playlist/pl.u-8aAVZAxFk6GzXo", "pl.u-8aAVZAxFk6GzXo"),
            ("https://music.apple.com/playlist/pl.u-8aAVZAxFk6GzXo", "pl.u-8aAVZAxFk6GzXo"),
            ("music://playlist/pl.u-8aAVZAxFk6GzXo", "pl.u-8aAVZAxFk6GzXo"),
        ],
    )
    def test_supported_shapes(self, value: str, expected: str) -> None:
        """With and without display name, and the music:// scheme."""
        assert extract_apple_music_playlist_id(value) == expected

    def test_unrecognized_value(self) -> None:
        """Album links are not playlists."""
        assert extract_apple_music_playlist_id("https://music.apple.com/us/album/x/123") is None


class TestAggregateRecentlyPlayed:
    """Test collapsing play events into counted tracks."""

    def test_counts_plays_and_keeps_latest(self) -> None:
        """Same ISRC twice is one track with two plays and the newer date."""
        newer = datetime(2026, 3, 1, tzinfo=UTC)
        older = newer - timedelta(days=2)

        tracks = aggregate_recently_played(
            [
                _song("Kids", isrc="US1", played_at=older),
                _song("Other", played_at=older),
                _song("Kids (Remaster)", isrc="US1", played_at=newer),
            ]
        )

        assert [t.name for t in tracks] == ["Kids", "Other"]
        assert tracks[0].play_count == 2
        assert tracks[0].last_played_at == newer

    def test_name_artist_key_without_isrc(self) -> None:
        """Without ISRC, name plus artist identifies the song."""
        tracks = aggregate_recently_played([_song("Song"), _song("Song")])

        assert len(tracks) == 1
        assert tracks[0].play_count == 2
        assert tracks[0].last_played_at is None

    def test_nameless_items_are_dropped(self) -> None:
        """Items without a name never reach the merge engine."""
        assert aggregate_recently_played([{"attributes": {}}]) == []


class TestFilterToWindow:
    """Test the client-side window filter."""

    def test_drops_old_and_undated(self) -> None:
        """Only dated plays inside the window survive."""
        now = datetime(2026, 3, 1, tzinfo=UTC)
        tracks = [
            ProviderTrack(name="Recent", artist="A", last_played_at=now - timedelta(days=2)),
            ProviderTrack(name="Old", artist="A", last_played_at=now - timedelta(days=20)),
            ProviderTrack(name="Undated", artist="A"),
        ]

        kept = filter_to_window(tracks, TimeWindow.THIS_WEEK, now=now)

        assert [t.name for t in kept] == ["Recent"]

    def test_all_time_keeps_everything(self) -> None:
        """ALL_TIME has no cutoff."""
        tracks = [ProviderTrack(name="Undated", artist="A")]

        assert filter_to_window(tracks, TimeWindow.ALL_TIME) == tracks


class TestAppleMusicTrackFetcher:
    """Test AppleMusicTrackFetcher with a mocked client."""

    @pytest.fixture
    def client(self) -> MagicMock:
        """Mock Apple Music client."""
        client = MagicMock()
        client.get_recently_played = AsyncMock(return_value={"data": []})
        client.get_heavy_rotation = AsyncMock(return_value={"data": []})
        client.get_catalog_playlist = AsyncMock(return_value={"data": []})
        return client

    async def test_short_window_uses_recent_plays(self, client: MagicMock) -> None:
        """Plays inside the week are returned without touching heavy rotation."""
        yesterday = datetime.now(UTC) - timedelta(days=1)
        client.get_recently_played.return_value = {
            "data": [_song("A", isrc="I1", played_at=yesterday)] * 3
        }

        fetcher = AppleMusicTrackFetcher(client)
        tracks = await fetcher.fetch_top_tracks(AUTH, TimeWindow.THIS_WEEK)

        assert len(tracks) == 1
        assert tracks[0].play_count == 3
        client.get_recently_played.assert_awaited_once_with(
            "dev-jwt", "music-user-token", limit=25
        )
        client.get_heavy_rotation.assert_not_awaited()

    async def test_empty_window_falls_back_to_heavy_rotation(self, client: MagicMock) -> None:
        """Nothing inside THIS_WEEK means heavy rotation instead of an empty list."""
        long_ago = datetime.now(UTC) - timedelta(days=60)
        client.get_recently_played.return_value = {"data": [_song("Old", played_at=long_ago)]}
        client.get_heavy_rotation.return_value = {
            "data": [
                _song("Rotation Song"),
                {"id": "a1", "type": "albums", "attributes": {"name": "An Album"}},
            ]
        }

        fetcher = AppleMusicTrackFetcher(client)
        tracks = await fetcher.fetch_top_tracks(AUTH, TimeWindow.THIS_WEEK)

        assert [t.name for t in tracks] == ["Rotation Song"]
        assert tracks[0].play_count == 1
        assert tracks[0].last_played_at is None

    async def test_long_window_goes_straight_to_heavy_rotation(self, client: MagicMock) -> None:
        """PAST_YEAR never asks for recent plays."""
        client.get_heavy_rotation.return_value = {
            "data": [_song("X", song_type="library-songs")]
        }

        fetcher = AppleMusicTrackFetcher(client)
        tracks = await fetcher.fetch_top_tracks(AUTH, TimeWindow.PAST_YEAR)

        assert [t.name for t in tracks] == ["X"]
        client.get_recently_played.assert_not_awaited()

    async def test_missing_developer_token(self, client: MagicMock) -> None:
        """Apple calls need a developer token."""
        with pytest.raises(ConfigurationError):
            await AppleMusicTrackFetcher(client).fetch_top_tracks(
                ProviderAuth(access_token="user"), TimeWindow.THIS_WEEK
            )

    async def test_fetch_playlist_tracks(self, client: MagicMock) -> None:
        """Tracks come from the relationship, capped and in order."""
        client.get_catalog_playlist.return_value = {
            "data": [
                {
                    "id": "pl.x",
                    "relationships": {
                        "tracks": {
                            "data": [
                                {"attributes": {"artistName": "Nobody"}},
                                *[_song(f"T{i}") for i in range(11)],
                            ]
                        }
                    },
                }
            ]
        }

        tracks = await AppleMusicTrackFetcher(client).fetch_playlist_tracks(AUTH, "pl.x")

        assert len(tracks) == 10
        assert tracks[0].name == UNKNOWN_TRACK_NAME
        assert tracks[1].name == "T0"
        assert tracks[1].description == "Artist"
        client.get_catalog_playlist.assert_awaited_once_with(
            "pl.x", "dev-jwt", "music-user-token"
        )

    async def test_fetch_playlist_not_in_response(self, client: MagicMock) -> None:
        """Empty data gives an empty list."""
        assert await AppleMusicTrackFetcher(client).fetch_playlist_tracks(AUTH, "pl.x") == []
