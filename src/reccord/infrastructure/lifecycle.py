"""Application lifecycle management for startup and shutdown tasks.

This module handles the FastAPI lifespan context manager plus the wiring of the
sync pipeline (clients -> token managers -> fetchers -> ListSyncService). The CLI
script reuses build_sync_components() so both entry points share one wiring.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx
from fastapi import FastAPI

from reccord.application.services.list_sync_service import ListSyncService
from reccord.application.services.token_manager import (
    AppleMusicTokenManager,
    DeveloperTokenProvider,
    SpotifyTokenManager,
    TokenManagerRegistry,
)
from reccord.application.sources import AppleMusicTrackFetcher, SpotifyTrackFetcher
from reccord.application.workers import ListSyncWorker
from reccord.config import Settings, get_settings
from reccord.domain.entities import SourceService
from reccord.domain.exceptions import ConfigurationError
from reccord.infrastructure.integrations import AppleMusicClient, SpotifyClient
from reccord.infrastructure.observability import LogMessages, configure_logging
from reccord.infrastructure.persistence import Database
from reccord.infrastructure.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


@dataclass
class SyncComponents:
    """Everything a sync entry point needs, built once per process."""

    spotify_client: SpotifyClient
    apple_music_client: AppleMusicClient
    developer_tokens: DeveloperTokenProvider
    token_managers: TokenManagerRegistry
    list_sync_service: ListSyncService


# Hey future me - missing provider credentials must NOT stop the app from starting. A user
# with only Spotify connected is a normal setup. We just log it here, the actual
# ConfigurationError fires when the provider is used and ends up as a failed source.
def build_sync_components(
    settings: Settings, db: Database, http_client: httpx.AsyncClient
) -> SyncComponents:
    """Wire clients, token managers, fetchers and the sync service."""
    if not settings.spotify.is_configured:
        logger.warning(
            LogMessages.config_missing("Spotify", "SPOTIFY__CLIENT_ID / SPOTIFY__CLIENT_SECRET")
        )
    if not settings.apple_music.is_configured:
        logger.warning(
            LogMessages.config_missing(
                "Apple Music",
                "APPLE_MUSIC__TEAM_ID / APPLE_MUSIC__KEY_ID / APPLE_MUSIC__PRIVATE_KEY",
            )
        )

    sync = settings.sync
    spotify_client = SpotifyClient(
        settings.spotify,
        rate_limiter=RateLimiter.for_spotify(),
        http_client=http_client,
        timeout=sync.http_timeout_seconds,
    )
    apple_music_client = AppleMusicClient(
        settings.apple_music,
        rate_limiter=RateLimiter.for_apple_music(),
        http_client=http_client,
        timeout=sync.http_timeout_seconds,
    )

    developer_tokens = DeveloperTokenProvider(
        apple_music_client,
        ttl_seconds=settings.apple_music.developer_token_ttl_seconds,
        refresh_buffer_seconds=sync.token_refresh_buffer_seconds,
    )
    token_managers = TokenManagerRegistry(
        [
            SpotifyTokenManager(
                db.session_scope,
                spotify_client,
                refresh_buffer_seconds=sync.token_refresh_buffer_seconds,
            ),
            AppleMusicTokenManager(
                db.session_scope,
                developer_tokens,
                refresh_buffer_seconds=sync.token_refresh_buffer_seconds,
            ),
        ]
    )
    fetchers = {
        SourceService.SPOTIFY: SpotifyTrackFetcher(
            spotify_client,
            top_tracks_limit=sync.spotify_top_tracks_limit,
            playlist_track_limit=sync.playlist_item_limit,
        ),
        SourceService.APPLE_MUSIC: AppleMusicTrackFetcher(
            apple_music_client,
            recently_played_limit=sync.apple_recently_played_limit,
            playlist_track_limit=sync.playlist_item_limit,
        ),
    }

    list_sync_service = ListSyncService(
        db.session_scope,
        token_managers,
        fetchers,
        settings=sync,
    )
    return SyncComponents(
        spotify_client=spotify_client,
        apple_music_client=apple_music_client,
        developer_tokens=developer_tokens,
        token_managers=token_managers,
        list_sync_service=list_sync_service,
    )


# Hey future me, SQLite needs the parent directory of the .db file to exist and be
# writable (it creates -journal/-wal files next to it). Fail at startup with a clear
# message instead of a cryptic "unable to open database file" on the first query.
def _validate_sqlite_path(settings: Settings) -> None:
    db_path = settings._get_sqlite_db_path()
    if db_path is None:
        return
    try:
        if db_path.parent and str(db_path.parent) != ".":
            db_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigurationError(
            f"Unable to create SQLite database directory '{db_path.parent}': {exc}. "
            "Update DATABASE__URL or adjust directory permissions."
        ) from exc


# Listen future me, everything before `yield` runs at STARTUP, everything after at
# SHUTDOWN. The finally block runs even if startup crashed halfway, so every cleanup
# step checks whether its resource was actually created.
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Startup: logging, database, shared HTTP client, sync pipeline, worker.
    Shutdown: worker, HTTP client, database (reverse order).
    """
    settings = get_settings()
    configure_logging(
        log_level=settings.log_level,
        json_format=settings.observability.log_json_format,
        app_name=settings.app_name,
    )
    logger.info("Starting application: %s", settings.app_name)

    db: Database | None = None
    http_client: httpx.AsyncClient | None = None
    worker: ListSyncWorker | None = None
    try:
        _validate_sqlite_path(settings)
        db = Database(settings)
        app.state.db = db
        if settings.database.create_tables_on_startup:
            await db.create_tables()
            logger.info("Database tables created")
        logger.info("Database initialized: %s", settings.database.url)

        http_client = httpx.AsyncClient(timeout=settings.sync.http_timeout_seconds)
        components = build_sync_components(settings, db, http_client)
        app.state.developer_tokens = components.developer_tokens
        app.state.token_managers = components.token_managers
        app.state.list_sync_service = components.list_sync_service

        if settings.sync.worker_enabled:
            worker = ListSyncWorker(
                components.list_sync_service,
                interval_seconds=settings.sync.worker_interval_seconds,
            )
            await worker.start()
            app.state.list_sync_worker = worker
        else:
            logger.info("List sync worker disabled, expecting an external scheduler")

        yield

    except Exception as e:
        logger.exception("Error during application startup: %s", e)
        raise
    finally:
        logger.info("Shutting down application")

        if worker is not None:
            try:
                await worker.stop()
            except Exception as e:
                logger.exception("Error stopping list sync worker: %s", e)

        if http_client is not None:
            try:
                await http_client.aclose()
                logger.info("HTTP client closed")
            except Exception as e:
                logger.exception("Error closing HTTP client: %s", e)

        if db is not None:
            try:
                await db.close()
                logger.info("Database connection closed")
            except Exception as e:
                logger.exception("Error closing database: %s", e)
