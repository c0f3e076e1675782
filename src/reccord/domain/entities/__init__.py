"""Domain entities."""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum


# Hey future me, SourceService is the tag we stamp on every track and every
# credential. The ORDER of members matters: merge runs sources in this order
# (Spotify first, then Apple Music) and the "keep existing url/isrc" rule means
# the first source wins on conflicting non-empty values. Don't reorder!
class SourceService(str, Enum):
    """Streaming service a track or credential belongs to."""

    SPOTIFY = "SPOTIFY"
    APPLE_MUSIC = "APPLE_MUSIC"

    @property
    def display_name(self) -> str:
        """Human-readable service name for messages."""
        return "Spotify" if self is SourceService.SPOTIFY else "Apple Music"


# Merge/processing order for sources
SOURCE_ORDER: tuple[SourceService, ...] = (
    SourceService.SPOTIFY,
    SourceService.APPLE_MUSIC,
)


class ListSourceType(str, Enum):
    """How a list gets its items."""

    MANUAL = "MANUAL"
    SPOTIFY = "SPOTIFY"  # Mirrors a Spotify playlist
    APPLE_MUSIC = "APPLE_MUSIC"  # Mirrors an Apple Music playlist
    TOP_SONGS = "TOP_SONGS"  # Aggregated listening history

    @property
    def playlist_service(self) -> SourceService | None:
        """Service a playlist-mirror list pulls from (None for other types)."""
        if self is ListSourceType.SPOTIFY:
            return SourceService.SPOTIFY
        if self is ListSourceType.APPLE_MUSIC:
            return SourceService.APPLE_MUSIC
        return None


# Yo, ALL_TIME has no day count, it means "don't filter at all".
# Spotify maps these onto its own short/medium/long buckets, Apple Music only
# honors the two short windows (see AppleMusicTrackFetcher).
class TimeWindow(str, Enum):
    """Listening history window for Top Songs lists."""

    THIS_WEEK = "THIS_WEEK"
    THIS_MONTH = "THIS_MONTH"
    PAST_6_MONTHS = "PAST_6_MONTHS"
    PAST_YEAR = "PAST_YEAR"
    ALL_TIME = "ALL_TIME"

    @property
    def days(self) -> int | None:
        """Window length in days, None for ALL_TIME."""
        return _WINDOW_DAYS[self]

    @property
    def is_short(self) -> bool:
        """True for windows that recent play history can cover."""
        return self in (TimeWindow.THIS_WEEK, TimeWindow.THIS_MONTH)

    def cutoff(self, now: datetime | None = None) -> datetime | None:
        """Oldest timestamp still inside the window."""
        if self.days is None:
            return None
        return (now or datetime.now(UTC)) - timedelta(days=self.days)


_WINDOW_DAYS: dict[TimeWindow, int | None] = {
    TimeWindow.THIS_WEEK: 7,
    TimeWindow.THIS_MONTH: 30,
    TimeWindow.PAST_6_MONTHS: 180,
    TimeWindow.PAST_YEAR: 365,
    TimeWindow.ALL_TIME: None,
}


class SyncState(str, Enum):
    """Outcome state of one list sync attempt."""

    PENDING = "PENDING"
    FETCHING = "FETCHING"
    MERGED = "MERGED"
    PERSISTED = "PERSISTED"
    PERSISTED_EMPTY = "PERSISTED_EMPTY"


@dataclass
class ProviderTrack:
    """Track record as returned by one provider fetch.

    Transient: produced fresh per fetch and never stored directly.
    ``artist`` holds the artist list (or description) already joined.
    """

    name: str
    artist: str
    album: str | None = None
    url: str | None = None
    isrc: str | None = None
    play_count: int = 1
    last_played_at: datetime | None = None

    def __post_init__(self) -> None:
        """Validate track data."""
        if self.play_count < 1:
            raise ValueError("Play count must be at least 1")


# Listen up, UnifiedTrack is THE central record of the merge engine. source_services
# is a set so merging the same source twice is a no-op. play_count accumulates across
# every source that matched the same dedup key.
@dataclass
class UnifiedTrack:
    """Provider-independent track used by the merge and ranking steps."""

    name: str
    artist: str
    album: str | None
    url: str | None
    isrc: str | None
    play_count: int
    last_played_at: datetime | None
    source_services: set[SourceService] = field(default_factory=set)

    def __post_init__(self) -> None:
        """Validate track data."""
        if self.play_count < 1:
            raise ValueError("Play count must be at least 1")
        if not self.source_services:
            raise ValueError("A track needs at least one source service")

    @property
    def source_service_tags(self) -> str:
        """Comma-joined service tags in canonical source order."""
        return ",".join(s.value for s in SOURCE_ORDER if s in self.source_services)


@dataclass
class PlaylistTrack:
    """Track from a mirrored playlist, in playlist order."""

    name: str
    description: str | None
    url: str | None


@dataclass
class SyncCredential:
    """Stored connection to one provider for one user.

    ``access_token`` is the OAuth access token for Spotify and the Music User
    Token for Apple Music. Only Spotify has a refresh token.
    """

    user_id: str
    service: SourceService
    access_token: str
    expires_at: datetime
    refresh_token: str | None = None
    provider_user_id: str | None = None

    def expires_within(self, seconds: int, now: datetime | None = None) -> bool:
        """True if the token expires in less than ``seconds``."""
        now = now or datetime.now(UTC)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        return (expires_at - now) < timedelta(seconds=seconds)


@dataclass
class TopSongsConfig:
    """Sync configuration of a Top Songs list."""

    id: str
    list_id: str
    sources: set[SourceService]
    time_window: TimeWindow
    last_synced_at: datetime | None = None


@dataclass
class PlaylistSyncConfig:
    """Sync configuration of a playlist-mirror list."""

    id: str
    list_id: str
    service: SourceService
    playlist_id: str
    last_synced_at: datetime | None = None


@dataclass
class MusicList:
    """A published list owned by one user."""

    id: str
    owner_id: str
    name: str
    source_type: ListSourceType


@dataclass
class ListItemDraft:
    """Row to be written into a list's ordered item set."""

    name: str
    description: str | None
    url: str | None
    sort_order: int
    isrc: str | None = None
    album_name: str | None = None
    source_service: str | None = None

    @classmethod
    def from_unified(cls, track: UnifiedTrack, rank: int) -> "ListItemDraft":
        """Project a ranked UnifiedTrack into a list item."""
        return cls(
            name=track.name,
            description=track.artist,
            url=track.url or None,
            sort_order=rank,
            isrc=track.isrc or None,
            album_name=track.album or None,
            source_service=track.source_service_tags,
        )

    @classmethod
    def from_playlist(cls, track: PlaylistTrack, position: int) -> "ListItemDraft":
        """Project a playlist track into a list item."""
        return cls(
            name=track.name,
            description=track.description or None,
            url=track.url or None,
            sort_order=position,
        )


@dataclass
class ProviderAuth:
    """Credentials needed to call a provider fetcher.

    Spotify only needs ``access_token``. Apple Music needs the user token as
    ``access_token`` plus the signed ``developer_token``.
    """

    access_token: str
    developer_token: str | None = None


@dataclass
class SourceErrorInfo:
    """Serializable description of a failed source."""

    service: SourceService
    error_type: str
    message: str
    status_code: int | None = None
    requires_reauth: bool = False


@dataclass
class SyncListResult:
    """Result of one ``sync_list`` call."""

    list_id: str
    state: SyncState
    item_count: int = 0
    errors: list[SourceErrorInfo] = field(default_factory=list)
    message: str | None = None
    sources_requested: int = 0

    @property
    def is_empty(self) -> bool:
        """True when nothing was written (the EmptyResult condition)."""
        return self.state is SyncState.PERSISTED_EMPTY

    @property
    def all_sources_failed(self) -> bool:
        """True when every requested source failed."""
        return self.sources_requested > 0 and len(self.errors) >= self.sources_requested


@dataclass
class BatchSyncResult:
    """Tally of a scheduled sweep."""

    source_type: ListSourceType
    total_candidates: int = 0
    synced_count: int = 0
    error_count: int = 0
    skipped_count: int = 0
