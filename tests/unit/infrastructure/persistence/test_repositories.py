"""Tests for the credential and list sync repositories (real in-memory SQLite)."""

from datetime import UTC, datetime, timedelta

import pytest

from reccord.domain.entities import (
    ListItemDraft,
    ListSourceType,
    SourceService,
    SyncCredential,
    TimeWindow,
)
from reccord.infrastructure.persistence import Database
from reccord.infrastructure.persistence.repositories import (
    ListSyncRepository,
    SyncCredentialRepository,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _item(name: str, position: int) -> ListItemDraft:
    return ListItemDraft(name=name, description="Artist", url=None, sort_order=position)


class TestSyncCredentialRepository:
    """Test credential persistence."""

    async def test_get_returns_none_when_missing(self, db: Database) -> None:
        """No row, no credential."""
        async with db.session_scope() as session:
            repo = SyncCredentialRepository(session)
            assert await repo.get("nobody", SourceService.SPOTIFY) is None

    async def test_save_inserts_then_overwrites(self, db: Database) -> None:
        """Second save for the same user and service replaces the row."""
        first = SyncCredential(
            user_id="user-1",
            service=SourceService.SPOTIFY,
            access_token="old",
            refresh_token="refresh-old",
            expires_at=NOW,
        )
        second = SyncCredential(
            user_id="user-1",
            service=SourceService.SPOTIFY,
            access_token="new",
            refresh_token=None,
            expires_at=NOW + timedelta(hours=1),
        )

        async with db.session_scope() as session:
            await SyncCredentialRepository(session).save(first)
        async with db.session_scope() as session:
            await SyncCredentialRepository(session).save(second)
        async with db.session_scope() as session:
            stored = await SyncCredentialRepository(session).list_for_user("user-1")

        assert len(stored) == 1
        assert stored[0].access_token == "new"
        assert stored[0].refresh_token is None
        assert stored[0].expires_at == NOW + timedelta(hours=1)

    async def test_update_after_refresh_keeps_refresh_token_unless_rotated(
        self, db: Database, seed
    ) -> None:
        """None refresh token leaves the stored one alone."""
        await seed.credential(SourceService.SPOTIFY, expires_at=NOW)

        async with db.session_scope() as session:
            await SyncCredentialRepository(session).update_after_refresh(
                "user-1",
                SourceService.SPOTIFY,
                access_token="fresh",
                expires_at=NOW + timedelta(hours=1),
            )
        async with db.session_scope() as session:
            stored = await SyncCredentialRepository(session).get("user-1", SourceService.SPOTIFY)

        assert stored is not None
        assert stored.access_token == "fresh"
        assert stored.refresh_token == "refresh-token"

        async with db.session_scope() as session:
            await SyncCredentialRepository(session).update_after_refresh(
                "user-1",
                SourceService.SPOTIFY,
                access_token="fresher",
                expires_at=NOW + timedelta(hours=2),
                refresh_token="rotated",
            )
        async with db.session_scope() as session:
            stored = await SyncCredentialRepository(session).get("user-1", SourceService.SPOTIFY)

        assert stored is not None
        assert stored.refresh_token == "rotated"

    async def test_delete_reports_whether_a_row_existed(self, db: Database, seed) -> None:
        """Delete is True once, then False."""
        await seed.credential(SourceService.APPLE_MUSIC, expires_at=NOW, refresh_token=None)

        async with db.session_scope() as session:
            repo = SyncCredentialRepository(session)
            assert await repo.delete("user-1", SourceService.APPLE_MUSIC)
        async with db.session_scope() as session:
            assert not await SyncCredentialRepository(session).delete(
                "user-1", SourceService.APPLE_MUSIC
            )

    async def test_expiry_comes_back_timezone_aware(self, db: Database, seed) -> None:
        """SQLite drops tzinfo, the repository restores UTC."""
        await seed.credential(SourceService.SPOTIFY, expires_at=NOW)

        async with db.session_scope() as session:
            stored = await SyncCredentialRepository(session).get("user-1", SourceService.SPOTIFY)

        assert stored is not None
        assert stored.expires_at.tzinfo is not None


class TestListSyncRepository:
    """Test lists, configs, items and watermarks."""

    async def test_get_top_songs_config(self, db: Database, seed) -> None:
        """Config comes back with enum sources and window."""
        list_id = await seed.top_songs_list(
            sources=(SourceService.APPLE_MUSIC,), time_window=TimeWindow.THIS_WEEK
        )

        async with db.session_scope() as session:
            repo = ListSyncRepository(session)
            music_list = await repo.get_list(list_id)
            config = await repo.get_top_songs_config(list_id)

        assert music_list is not None
        assert music_list.source_type is ListSourceType.TOP_SONGS
        assert config is not None
        assert config.sources == {SourceService.APPLE_MUSIC}
        assert config.time_window is TimeWindow.THIS_WEEK
        assert config.last_synced_at is None

    async def test_get_playlist_config(self, db: Database, seed) -> None:
        """Playlist config carries service and playlist id."""
        list_id = await seed.playlist_list(service=SourceService.APPLE_MUSIC, playlist_id="pl.abc")

        async with db.session_scope() as session:
            config = await ListSyncRepository(session).get_playlist_config(list_id)

        assert config is not None
        assert config.service is SourceService.APPLE_MUSIC
        assert config.playlist_id == "pl.abc"

    async def test_find_due_lists_orders_never_synced_first(self, db: Database, seed) -> None:
        """NULL watermark first, then stalest, fresh lists excluded."""
        stale_old = await seed.top_songs_list(last_synced_at=NOW - timedelta(days=5))
        fresh = await seed.top_songs_list(last_synced_at=NOW - timedelta(hours=1))
        never = await seed.top_songs_list()
        stale_recent = await seed.top_songs_list(last_synced_at=NOW - timedelta(days=2))
        await seed.playlist_list()

        async with db.session_scope() as session:
            due = await ListSyncRepository(session).find_due_lists(
                ListSourceType.TOP_SONGS, stale_before=NOW - timedelta(hours=24)
            )

        assert due == [never, stale_old, stale_recent]
        assert fresh not in due

    async def test_find_due_lists_filters_by_playlist_service(self, db: Database, seed) -> None:
        """Spotify sweep ignores Apple Music mirrors."""
        spotify_id = await seed.playlist_list(service=SourceService.SPOTIFY)
        await seed.playlist_list(service=SourceService.APPLE_MUSIC, playlist_id="pl.x")

        async with db.session_scope() as session:
            due = await ListSyncRepository(session).find_due_lists(
                ListSourceType.SPOTIFY, stale_before=NOW
            )

        assert due == [spotify_id]

    async def test_find_due_lists_manual_is_empty(self, db: Database, seed) -> None:
        """MANUAL lists are never candidates."""
        await seed.manual_list()

        async with db.session_scope() as session:
            assert await ListSyncRepository(session).find_due_lists(
                ListSourceType.MANUAL, stale_before=NOW
            ) == []

    async def test_replace_list_items_swaps_the_whole_set(self, db: Database, seed) -> None:
        """Old items are gone, new ones come back in sort order."""
        list_id = await seed.top_songs_list()

        async with db.session_scope() as session:
            await ListSyncRepository(session).replace_list_items(
                list_id, [_item("Old A", 0), _item("Old B", 1), _item("Old C", 2)]
            )
        async with db.session_scope() as session:
            await ListSyncRepository(session).replace_list_items(
                list_id, [_item("New B", 1), _item("New A", 0)]
            )
        async with db.session_scope() as session:
            items = await ListSyncRepository(session).get_list_items(list_id)

        assert [i.name for i in items] == ["New A", "New B"]

    async def test_update_watermark(self, db: Database, seed) -> None:
        """Watermark is written and mirrored on the config object."""
        list_id = await seed.top_songs_list()

        async with db.session_scope() as session:
            repo = ListSyncRepository(session)
            config = await repo.get_top_songs_config(list_id)
            assert config is not None
            await repo.update_watermark(config, NOW)

        assert config.last_synced_at == NOW
        async with db.session_scope() as session:
            reloaded = await ListSyncRepository(session).get_top_songs_config(list_id)

        assert reloaded is not None
        assert reloaded.last_synced_at == NOW

    async def test_failed_scope_rolls_back_item_replace(self, db: Database, seed) -> None:
        """Exception after replace leaves the previous items in place."""
        list_id = await seed.top_songs_list()
        async with db.session_scope() as session:
            await ListSyncRepository(session).replace_list_items(list_id, [_item("Keep", 0)])

        with pytest.raises(RuntimeError):
            async with db.session_scope() as session:
                await ListSyncRepository(session).replace_list_items(list_id, [_item("Lost", 0)])
                raise RuntimeError("boom")

        async with db.session_scope() as session:
            items = await ListSyncRepository(session).get_list_items(list_id)

        assert [i.name for i in items] == ["Keep"]
