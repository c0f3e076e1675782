"""List sync orchestrator.

Hey future me - this is where everything meets. One sync attempt for one list:

    load list + config (own short transaction)
    -> per source: TokenManager.ensure_valid -> Fetcher -> (normalize inside top_songs)
    -> merge + rank (top_songs.process_top_songs) or take playlist order
    -> replace items + advance watermark (ONE transaction)

Rules you MUST keep:
1. A failing source never aborts the sync. _fetch_source() is the boundary - it
   returns SourceFetched or SourceFailed, it never raises.
2. Nothing to write (no tracks, or the mirrored playlist failed) -> keep the old items
   but STILL advance the watermark. Otherwise a broken list would be retried on every
   sweep forever.
3. Only persistence errors are fatal for a list. They surface as PersistenceError.
4. Batch mode isolates lists: an exception in one list is counted and the sweep moves on.

No DB transaction is held open while we talk to providers.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Generic, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from reccord.application.services.token_manager import TokenManagerRegistry
from reccord.application.services.top_songs import process_top_songs
from reccord.config.settings import SyncSettings
from reccord.domain.entities import (
    SOURCE_ORDER,
    BatchSyncResult,
    ListItemDraft,
    ListSourceType,
    MusicList,
    PlaylistSyncConfig,
    PlaylistTrack,
    ProviderAuth,
    ProviderTrack,
    SourceErrorInfo,
    SourceService,
    SyncListResult,
    SyncState,
    TopSongsConfig,
)
from reccord.domain.exceptions import (
    ConfigurationError,
    EntityNotFoundException,
    PersistenceError,
    SyncSourceError,
    ValidationException,
)
from reccord.domain.ports import IListSyncRepository, ITrackFetcher
from reccord.infrastructure.observability.log_messages import LogMessages
from reccord.infrastructure.observability.logger_template import log_operation
from reccord.infrastructure.observability.logging import (
    get_correlation_id,
    set_correlation_id,
)
from reccord.infrastructure.persistence.database import SessionScope
from reccord.infrastructure.persistence.repositories import ListSyncRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")

ListRepositoryFactory = Callable[[AsyncSession], IListSyncRepository]


@dataclass
class SourceFetched(Generic[T]):
    """A source delivered tracks (possibly zero)."""

    service: SourceService
    tracks: list[T]


@dataclass
class SourceFailed:
    """A source contributed nothing because of ``error``."""

    service: SourceService
    error: Exception

    def to_info(self) -> SourceErrorInfo:
        """Serializable form for API callers."""
        error = self.error
        if isinstance(error, SyncSourceError):
            return SourceErrorInfo(
                service=self.service,
                error_type=error.error_type,
                message=error.message,
                status_code=getattr(error, "status_code", None),
                requires_reauth=error.requires_reauth,
            )
        return SourceErrorInfo(
            service=self.service,
            error_type=type(error).__name__,
            message=str(error) or type(error).__name__,
        )


SourceResult = SourceFetched[T] | SourceFailed


def _utc_now() -> datetime:
    return datetime.now(UTC)


class ListSyncService:
    """Runs list syncs (on demand and as scheduled sweeps)."""

    def __init__(
        self,
        session_scope: SessionScope,
        token_managers: TokenManagerRegistry,
        fetchers: Mapping[SourceService, ITrackFetcher],
        settings: SyncSettings | None = None,
        list_repository_factory: ListRepositoryFactory = ListSyncRepository,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._session_scope = session_scope
        self._token_managers = token_managers
        self._fetchers = dict(fetchers)
        self._settings = settings or SyncSettings()
        self._repository_factory = list_repository_factory
        self._clock = clock

    # =========================================================================
    # SINGLE LIST
    # =========================================================================

    async def sync_list(self, list_id: str) -> SyncListResult:
        """Run one sync attempt for one list.

        Raises:
            EntityNotFoundException: List doesn't exist
            ValidationException: MANUAL list, or sync config missing
            PersistenceError: Items/watermark could not be written
        """
        async with self._session_scope() as session:
            repo = self._repository_factory(session)
            music_list = await repo.get_list(list_id)
            if music_list is None:
                raise EntityNotFoundException("List", list_id)

            config: TopSongsConfig | PlaylistSyncConfig | None
            if music_list.source_type is ListSourceType.TOP_SONGS:
                config = await repo.get_top_songs_config(list_id)
            elif music_list.source_type.playlist_service is not None:
                config = await repo.get_playlist_config(list_id)
            else:
                raise ValidationException(
                    f"List {list_id} is a manual list and cannot be synced"
                )

        if config is None:
            raise ValidationException(
                f"List {list_id} has no {music_list.source_type.value} sync configuration"
            )

        async with log_operation(
            logger, "list_sync", list_id=list_id, source_type=music_list.source_type.value
        ):
            if isinstance(config, TopSongsConfig):
                return await self._sync_top_songs(music_list, config)
            return await self._sync_playlist(music_list, config)

    async def _sync_top_songs(
        self, music_list: MusicList, config: TopSongsConfig
    ) -> SyncListResult:
        services = [s for s in SOURCE_ORDER if s in config.sources]

        async def fetch(fetcher: ITrackFetcher, auth: ProviderAuth) -> list[ProviderTrack]:
            return await fetcher.fetch_top_tracks(auth, config.time_window)

        results = await self._fetch_sources(music_list, services, fetch)

        tracks_by_source = {r.service: r.tracks for r in results if isinstance(r, SourceFetched)}
        failures = [r for r in results if isinstance(r, SourceFailed)]

        top = process_top_songs(tracks_by_source, limit=self._settings.top_songs_limit)
        items = [ListItemDraft.from_unified(track, rank) for rank, track in enumerate(top)]

        await self._persist(music_list.id, config, items)
        return self._build_result(
            music_list,
            items,
            failures,
            sources_requested=len(services),
            empty_message=self._empty_message(config.time_window.value, failures, services),
            window=config.time_window.value,
        )

    async def _sync_playlist(
        self, music_list: MusicList, config: PlaylistSyncConfig
    ) -> SyncListResult:
        async def fetch(fetcher: ITrackFetcher, auth: ProviderAuth) -> list[PlaylistTrack]:
            return await fetcher.fetch_playlist_tracks(auth, config.playlist_id)

        results = await self._fetch_sources(music_list, [config.service], fetch)
        result = results[0]

        items: list[ListItemDraft] = []
        failures: list[SourceFailed] = []
        if isinstance(result, SourceFetched):
            items = [
                ListItemDraft.from_playlist(track, position)
                for position, track in enumerate(
                    result.tracks[: self._settings.playlist_item_limit]
                )
            ]
        else:
            failures.append(result)

        # Failure or empty playlist: watermark only, same anti-hot-loop rule
        await self._persist(music_list.id, config, items)
        return self._build_result(
            music_list,
            items,
            failures,
            sources_requested=1,
            empty_message=(
                f"{config.service.display_name} playlist could not be synced"
                if failures
                else f"{config.service.display_name} playlist has no tracks"
            ),
            sources=config.service.display_name,
        )

    # =========================================================================
    # PER-SOURCE BOUNDARY
    # =========================================================================

    async def _fetch_sources(
        self,
        music_list: MusicList,
        services: list[SourceService],
        fetch: Callable[[ITrackFetcher, ProviderAuth], Awaitable[list[T]]],
    ) -> list[SourceResult[T]]:
        calls = [self._fetch_source(music_list, s, fetch) for s in services]
        if self._settings.concurrent_source_fetch and len(calls) > 1:
            # gather keeps argument order, so merge order stays Spotify first
            return list(await asyncio.gather(*calls))
        return [await call for call in calls]

    # Listen up - this is THE isolation boundary. Token refresh has to finish before the
    # fetch of the same source. Anything raised in here becomes a SourceFailed, including
    # plain bugs in a provider parser, so the other provider still runs. Those get logged
    # with traceback.
    async def _fetch_source(
        self,
        music_list: MusicList,
        service: SourceService,
        fetch: Callable[[ITrackFetcher, ProviderAuth], Awaitable[list[T]]],
    ) -> SourceResult[T]:
        try:
            fetcher = self._fetchers.get(service)
            if fetcher is None:
                raise ConfigurationError(f"No track fetcher registered for {service.display_name}")
            auth = await self._token_managers.get(service).ensure_valid(music_list.owner_id)
            tracks = await fetch(fetcher, auth)
        except SyncSourceError as e:
            logger.warning(LogMessages.source_failed(music_list.id, e))
            return SourceFailed(service, e)
        except Exception as e:
            logger.error(
                f"Unexpected error fetching {service.display_name} for list {music_list.id}: {e}",
                exc_info=True,
            )
            return SourceFailed(service, e)

        logger.debug(
            f"{service.display_name} returned {len(tracks)} tracks for list {music_list.id}"
        )
        return SourceFetched(service, tracks)

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    async def _persist(
        self,
        list_id: str,
        config: TopSongsConfig | PlaylistSyncConfig,
        items: list[ListItemDraft],
    ) -> None:
        """Replace items (if any) and advance the watermark in one transaction."""
        synced_at = self._clock()
        try:
            async with self._session_scope() as session:
                repo = self._repository_factory(session)
                if items:
                    await repo.replace_list_items(list_id, items)
                await repo.update_watermark(config, synced_at)
        except PersistenceError:
            raise
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to persist sync result of list {list_id}: {e}", list_id=list_id
            ) from e

    def _build_result(
        self,
        music_list: MusicList,
        items: list[ListItemDraft],
        failures: list[SourceFailed],
        sources_requested: int,
        empty_message: str,
        window: str | None = None,
        sources: str | None = None,
    ) -> SyncListResult:
        errors = [f.to_info() for f in failures]

        if not items:
            logger.info(
                LogMessages.sync_empty(
                    music_list.id,
                    window,
                    [f.service.display_name for f in failures],
                )
            )
            return SyncListResult(
                list_id=music_list.id,
                state=SyncState.PERSISTED_EMPTY,
                item_count=0,
                errors=errors,
                message=empty_message,
                sources_requested=sources_requested,
            )

        if sources is None:
            tags = {tag for item in items for tag in (item.source_service or "").split(",") if tag}
            sources = ", ".join(sorted(tags))
        logger.info(
            LogMessages.sync_completed(
                music_list.id,
                music_list.source_type.value,
                len(items),
                sources,
                errors=len(errors),
            )
        )
        return SyncListResult(
            list_id=music_list.id,
            state=SyncState.PERSISTED,
            item_count=len(items),
            errors=errors,
            message=None,
            sources_requested=sources_requested,
        )

    @staticmethod
    def _empty_message(
        window: str, failures: list[SourceFailed], services: list[SourceService]
    ) -> str:
        if not services:
            return "No sources are enabled for this list"
        message = f"No listening history found for {window}"
        if failures:
            failed = ", ".join(
                f"{f.service.display_name} ({type(f.error).__name__})" for f in failures
            )
            message = f"{message}. Failed sources: {failed}"
        return message

    # =========================================================================
    # BATCH
    # =========================================================================

    def staleness_threshold(self, source_type: ListSourceType) -> timedelta:
        """How old a watermark may get before the list is due again."""
        if source_type is ListSourceType.TOP_SONGS:
            return timedelta(minutes=self._settings.top_songs_staleness_minutes)
        return timedelta(minutes=self._settings.playlist_staleness_minutes)

    async def sync_all_due(
        self,
        source_type: ListSourceType,
        should_stop: Callable[[], bool] | None = None,
    ) -> BatchSyncResult:
        """Sync every due list of one source type, sequentially.

        ``should_stop`` is checked between lists, remaining lists are counted
        as skipped when it returns True.

        Raises:
            ValidationException: source_type is MANUAL
        """
        if source_type is ListSourceType.MANUAL:
            raise ValidationException("Manual lists are never synced")

        started = time.monotonic()
        stale_before = self._clock() - self.staleness_threshold(source_type)
        async with self._session_scope() as session:
            list_ids = await self._repository_factory(session).find_due_lists(
                source_type, stale_before
            )

        result = BatchSyncResult(source_type=source_type, total_candidates=len(list_ids))
        sweep_correlation_id = get_correlation_id()

        for index, list_id in enumerate(list_ids):
            if should_stop is not None and should_stop():
                result.skipped_count = len(list_ids) - index
                logger.info(f"Sweep stopped, skipping {result.skipped_count} remaining lists")
                break

            set_correlation_id()
            try:
                outcome = await self.sync_list(list_id)
            except Exception as e:
                result.error_count += 1
                logger.error(LogMessages.sync_failed(list_id, f"{type(e).__name__}: {e}"))
                continue
            finally:
                set_correlation_id(sweep_correlation_id)

            if outcome.all_sources_failed:
                result.error_count += 1
            else:
                result.synced_count += 1

        logger.info(
            LogMessages.batch_summary(
                source_type.value,
                total=result.total_candidates,
                synced=result.synced_count,
                errors=result.error_count,
                skipped=result.skipped_count,
                duration_ms=(time.monotonic() - started) * 1000,
            )
        )
        return result
