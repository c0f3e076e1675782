"""Shared fixtures.

Hey future me - the db fixture is a REAL in-memory SQLite (aiosqlite + StaticPool),
not a mock. Repository and orchestrator tests go through actual SQL so the
transaction boundaries (replace items + watermark in one scope) are exercised.
"""

import uuid
from collections.abc import AsyncGenerator
from datetime import datetime

import pytest

from reccord.config import DatabaseSettings, Settings, SyncSettings
from reccord.domain.entities import ListSourceType, SourceService, TimeWindow
from reccord.infrastructure.persistence import Database
from reccord.infrastructure.persistence.models import (
    ListModel,
    PlaylistSyncConfigModel,
    SyncCredentialModel,
    TopSongsConfigModel,
)


class DataSeeder:
    """Inserts lists, configs and credentials straight through the ORM."""

    def __init__(self, db: Database) -> None:
        self.db = db

    async def _add_list(self, owner_id: str, source_type: ListSourceType, name: str) -> str:
        list_id = str(uuid.uuid4())
        async with self.db.session_scope() as session:
            session.add(
                ListModel(id=list_id, owner_id=owner_id, name=name, source_type=source_type.value)
            )
        return list_id

    async def top_songs_list(
        self,
        owner_id: str = "user-1",
        sources: tuple[SourceService, ...] = (SourceService.SPOTIFY, SourceService.APPLE_MUSIC),
        time_window: TimeWindow = TimeWindow.THIS_MONTH,
        last_synced_at: datetime | None = None,
        with_config: bool = True,
    ) -> str:
        """TOP_SONGS list (plus config unless with_config=False)."""
        list_id = await self._add_list(owner_id, ListSourceType.TOP_SONGS, "My Top Songs")
        if with_config:
            async with self.db.session_scope() as session:
                session.add(
                    TopSongsConfigModel(
                        list_id=list_id,
                        sources=[s.value for s in sources],
                        time_window=time_window.value,
                        last_synced_at=last_synced_at,
                    )
                )
        return list_id

    async def playlist_list(
        self,
        service: SourceService = SourceService.SPOTIFY,
        owner_id: str = "user-1",
        playlist_id: str = "37i9dQZF1DXcBWIGoYBM5M",
        last_synced_at: datetime | None = None,
    ) -> str:
        """Playlist-mirror list with its config."""
        list_id = await self._add_list(
            owner_id, ListSourceType(service.value), "Mirrored Playlist"
        )
        async with self.db.session_scope() as session:
            session.add(
                PlaylistSyncConfigModel(
                    list_id=list_id,
                    service=service.value,
                    playlist_id=playlist_id,
                    last_synced_at=last_synced_at,
                )
            )
        return list_id

    async def manual_list(self, owner_id: str = "user-1") -> str:
        return await self._add_list(owner_id, ListSourceType.MANUAL, "Hand picked")

    async def credential(
        self,
        service: SourceService,
        expires_at: datetime,
        user_id: str = "user-1",
        access_token: str = "access-token",
        refresh_token: str | None = "refresh-token",
    ) -> None:
        async with self.db.session_scope() as session:
            session.add(
                SyncCredentialModel(
                    user_id=user_id,
                    service=service.value,
                    access_token=access_token,
                    refresh_token=refresh_token,
                    expires_at=expires_at,
                )
            )


@pytest.fixture
def settings() -> Settings:
    """Settings pointing at an in-memory database."""
    return Settings(
        database=DatabaseSettings(url="sqlite+aiosqlite:///:memory:"),
        sync=SyncSettings(),
    )


@pytest.fixture
async def db(settings: Settings) -> AsyncGenerator[Database, None]:
    """In-memory database with all tables created."""
    database = Database(settings)
    await database.create_tables()
    yield database
    await database.close()


@pytest.fixture
def seed(db: Database) -> DataSeeder:
    """Seeder bound to the in-memory database."""
    return DataSeeder(db)
