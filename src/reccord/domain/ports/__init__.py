"""Domain ports (interfaces) for dependency inversion."""

from abc import ABC, abstractmethod
from datetime import datetime

from reccord.domain.entities import (
    ListItemDraft,
    ListSourceType,
    MusicList,
    PlaylistSyncConfig,
    PlaylistTrack,
    ProviderAuth,
    ProviderTrack,
    SourceService,
    SyncCredential,
    TimeWindow,
    TopSongsConfig,
)


# Hey future me, this is a PORT. The SQLAlchemy implementation lives in
# infrastructure/persistence/repositories.py. Repositories never commit, the caller's
# session scope owns the transaction. Tests mock this with AsyncMock(spec=...).
class ISyncCredentialRepository(ABC):
    """Repository interface for provider credentials."""

    @abstractmethod
    async def get(self, user_id: str, service: SourceService) -> SyncCredential | None:
        """Get the credential of a user for one provider."""
        pass

    @abstractmethod
    async def list_for_user(self, user_id: str) -> list[SyncCredential]:
        """Get every credential a user has."""
        pass

    @abstractmethod
    async def save(self, credential: SyncCredential) -> None:
        """Insert or replace a credential (OAuth connect)."""
        pass

    @abstractmethod
    async def update_after_refresh(
        self,
        user_id: str,
        service: SourceService,
        access_token: str,
        expires_at: datetime,
        refresh_token: str | None = None,
    ) -> None:
        """Store a refreshed token.

        ``refresh_token`` is only written when the provider rotated it.
        """
        pass

    @abstractmethod
    async def delete(self, user_id: str, service: SourceService) -> bool:
        """Delete a credential (disconnect). Returns False if none existed."""
        pass


class IListSyncRepository(ABC):
    """Repository interface for lists, their sync configs and items."""

    @abstractmethod
    async def get_list(self, list_id: str) -> MusicList | None:
        """Get a list by ID."""
        pass

    @abstractmethod
    async def get_top_songs_config(self, list_id: str) -> TopSongsConfig | None:
        """Get the Top Songs config of a list."""
        pass

    @abstractmethod
    async def get_playlist_config(self, list_id: str) -> PlaylistSyncConfig | None:
        """Get the playlist-mirror config of a list."""
        pass

    @abstractmethod
    async def find_due_lists(
        self, source_type: ListSourceType, stale_before: datetime
    ) -> list[str]:
        """IDs of lists whose watermark is null or older than ``stale_before``."""
        pass

    @abstractmethod
    async def replace_list_items(self, list_id: str, items: list[ListItemDraft]) -> None:
        """Delete every item of the list and insert ``items``."""
        pass

    @abstractmethod
    async def update_watermark(
        self, config: TopSongsConfig | PlaylistSyncConfig, synced_at: datetime
    ) -> None:
        """Set ``last_synced_at`` of a sync config."""
        pass

    @abstractmethod
    async def get_list_items(self, list_id: str) -> list[ListItemDraft]:
        """Get the items of a list ordered by sort order."""
        pass


# Yo, token managers hide the difference between Spotify (refreshable) and Apple
# Music (user must reconnect). Both hand back a ProviderAuth the fetcher can use.
class ITokenManager(ABC):
    """Keeps a provider credential valid for at least the refresh buffer."""

    service: SourceService

    @abstractmethod
    async def ensure_valid(self, user_id: str) -> ProviderAuth:
        """Return usable auth for the user, refreshing if needed.

        Raises:
            CredentialNotFoundError: No connection row for the user
            ExpiredCredentialError: Token lapsed and cannot be refreshed
        """
        pass


class ITrackFetcher(ABC):
    """Translates provider auth plus a request into ProviderTracks."""

    service: SourceService

    @abstractmethod
    async def fetch_top_tracks(
        self, auth: ProviderAuth, window: TimeWindow
    ) -> list[ProviderTrack]:
        """Fetch listening history for a time window."""
        pass

    @abstractmethod
    async def fetch_playlist_tracks(
        self, auth: ProviderAuth, playlist_id: str
    ) -> list[PlaylistTrack]:
        """Fetch the first tracks of a playlist in playlist order."""
        pass


__all__ = [
    "IListSyncRepository",
    "ISyncCredentialRepository",
    "ITokenManager",
    "ITrackFetcher",
]
