"""Repository implementations for data persistence."""

import logging
from datetime import UTC, datetime

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from reccord.domain.entities import (
    ListItemDraft,
    ListSourceType,
    MusicList,
    PlaylistSyncConfig,
    SourceService,
    SyncCredential,
    TimeWindow,
    TopSongsConfig,
)
from reccord.domain.exceptions import PersistenceError
from reccord.domain.ports import IListSyncRepository, ISyncCredentialRepository

from .models import (
    ListItemModel,
    ListModel,
    PlaylistSyncConfigModel,
    SyncCredentialModel,
    TopSongsConfigModel,
    ensure_utc_aware,
)

logger = logging.getLogger(__name__)


def _credential_to_entity(model: SyncCredentialModel) -> SyncCredential:
    return SyncCredential(
        user_id=model.user_id,
        service=SourceService(model.service),
        access_token=model.access_token,
        refresh_token=model.refresh_token,
        expires_at=ensure_utc_aware(model.expires_at),
        provider_user_id=model.provider_user_id,
    )


def _optional_utc(dt: datetime | None) -> datetime | None:
    return ensure_utc_aware(dt) if dt is not None else None


# Hey future me, repositories NEVER commit! They stage changes on the session and flush
# so errors show up here, the caller's session_scope owns commit/rollback.
class SyncCredentialRepository(ISyncCredentialRepository):
    """Repository for provider credentials."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session."""
        self.session = session

    async def _get_model(
        self, user_id: str, service: SourceService
    ) -> SyncCredentialModel | None:
        stmt = select(SyncCredentialModel).where(
            SyncCredentialModel.user_id == user_id,
            SyncCredentialModel.service == service.value,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, user_id: str, service: SourceService) -> SyncCredential | None:
        """Get the credential of a user for one provider."""
        model = await self._get_model(user_id, service)
        return _credential_to_entity(model) if model else None

    async def list_for_user(self, user_id: str) -> list[SyncCredential]:
        """Get every credential a user has."""
        stmt = (
            select(SyncCredentialModel)
            .where(SyncCredentialModel.user_id == user_id)
            .order_by(SyncCredentialModel.service)
        )
        result = await self.session.execute(stmt)
        return [_credential_to_entity(m) for m in result.scalars().all()]

    # Listen up - UPSERT pattern, OAuth connect calls this. Reconnecting overwrites
    # the old row, including wiping a stale refresh token when the new one is None.
    async def save(self, credential: SyncCredential) -> None:
        """Insert or replace a credential."""
        model = await self._get_model(credential.user_id, credential.service)
        if model is None:
            model = SyncCredentialModel(
                user_id=credential.user_id,
                service=credential.service.value,
            )
            self.session.add(model)

        model.access_token = credential.access_token
        model.refresh_token = credential.refresh_token
        model.expires_at = credential.expires_at
        model.provider_user_id = credential.provider_user_id
        await self.session.flush()

    async def update_after_refresh(
        self,
        user_id: str,
        service: SourceService,
        access_token: str,
        expires_at: datetime,
        refresh_token: str | None = None,
    ) -> None:
        """Store a refreshed token, keeping the old refresh token unless rotated."""
        values: dict[str, object] = {
            "access_token": access_token,
            "expires_at": expires_at,
            "last_refreshed_at": datetime.now(UTC),
        }
        if refresh_token:
            values["refresh_token"] = refresh_token

        stmt = (
            update(SyncCredentialModel)
            .where(
                SyncCredentialModel.user_id == user_id,
                SyncCredentialModel.service == service.value,
            )
            .values(**values)
        )
        await self.session.execute(stmt)

    async def delete(self, user_id: str, service: SourceService) -> bool:
        """Delete a credential. Returns False if none existed."""
        stmt = delete(SyncCredentialModel).where(
            SyncCredentialModel.user_id == user_id,
            SyncCredentialModel.service == service.value,
        )
        result = await self.session.execute(stmt)
        return bool(result.rowcount)


class ListSyncRepository(IListSyncRepository):
    """Repository for lists, their sync configs and items."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session."""
        self.session = session

    async def get_list(self, list_id: str) -> MusicList | None:
        """Get a list by ID."""
        model = await self.session.get(ListModel, list_id)
        if model is None:
            return None
        return MusicList(
            id=model.id,
            owner_id=model.owner_id,
            name=model.name,
            source_type=ListSourceType(model.source_type),
        )

    async def get_top_songs_config(self, list_id: str) -> TopSongsConfig | None:
        """Get the Top Songs config of a list."""
        stmt = select(TopSongsConfigModel).where(TopSongsConfigModel.list_id == list_id)
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        if model is None:
            return None
        return TopSongsConfig(
            id=model.id,
            list_id=model.list_id,
            sources={SourceService(s) for s in (model.sources or [])},
            time_window=TimeWindow(model.time_window),
            last_synced_at=_optional_utc(model.last_synced_at),
        )

    async def get_playlist_config(self, list_id: str) -> PlaylistSyncConfig | None:
        """Get the playlist-mirror config of a list."""
        stmt = select(PlaylistSyncConfigModel).where(
            PlaylistSyncConfigModel.list_id == list_id
        )
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        if model is None:
            return None
        return PlaylistSyncConfig(
            id=model.id,
            list_id=model.list_id,
            service=SourceService(model.service),
            playlist_id=model.playlist_id,
            last_synced_at=_optional_utc(model.last_synced_at),
        )

    # Yo, "due" = never synced (NULL watermark) or synced before stale_before.
    # Never-synced lists come first, then the stalest ones.
    async def find_due_lists(
        self, source_type: ListSourceType, stale_before: datetime
    ) -> list[str]:
        """IDs of lists of ``source_type`` whose watermark is stale."""
        config_model: type[TopSongsConfigModel] | type[PlaylistSyncConfigModel]
        if source_type is ListSourceType.TOP_SONGS:
            config_model = TopSongsConfigModel
        elif source_type.playlist_service is not None:
            config_model = PlaylistSyncConfigModel
        else:
            return []

        stmt = (
            select(ListModel.id)
            .join(config_model, config_model.list_id == ListModel.id)
            .where(
                ListModel.source_type == source_type.value,
                or_(
                    config_model.last_synced_at.is_(None),
                    config_model.last_synced_at < stale_before,
                ),
            )
            .order_by(
                config_model.last_synced_at.is_(None).desc(),
                config_model.last_synced_at.asc(),
            )
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # Listen up - full replace, no diffing against the previous items. Delete then insert
    # in the SAME transaction as the watermark update (the caller's session_scope).
    async def replace_list_items(self, list_id: str, items: list[ListItemDraft]) -> None:
        """Delete every item of the list and insert ``items``."""
        try:
            await self.session.execute(
                delete(ListItemModel).where(ListItemModel.list_id == list_id)
            )
            self.session.add_all(
                [
                    ListItemModel(
                        list_id=list_id,
                        name=item.name,
                        description=item.description,
                        url=item.url,
                        sort_order=item.sort_order,
                        isrc=item.isrc,
                        album_name=item.album_name,
                        source_service=item.source_service,
                    )
                    for item in items
                ]
            )
            await self.session.flush()
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to replace items of list {list_id}: {e}", list_id=list_id
            ) from e

    async def update_watermark(
        self, config: TopSongsConfig | PlaylistSyncConfig, synced_at: datetime
    ) -> None:
        """Set ``last_synced_at`` of a sync config."""
        model = (
            TopSongsConfigModel
            if isinstance(config, TopSongsConfig)
            else PlaylistSyncConfigModel
        )
        try:
            await self.session.execute(
                update(model).where(model.id == config.id).values(last_synced_at=synced_at)
            )
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to update watermark of list {config.list_id}: {e}",
                list_id=config.list_id,
            ) from e
        config.last_synced_at = synced_at

    async def get_list_items(self, list_id: str) -> list[ListItemDraft]:
        """Get the items of a list ordered by sort order."""
        stmt = (
            select(ListItemModel)
            .where(ListItemModel.list_id == list_id)
            .order_by(ListItemModel.sort_order)
        )
        result = await self.session.execute(stmt)
        return [
            ListItemDraft(
                name=m.name,
                description=m.description,
                url=m.url,
                sort_order=m.sort_order,
                isrc=m.isrc,
                album_name=m.album_name,
                source_service=m.source_service,
            )
            for m in result.scalars().all()
        ]
