"""Application settings loaded from environment variables."""

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseModel):
    """Database connection settings."""

    url: str = Field(
        default="sqlite+aiosqlite:///./reccord.db",
        description="SQLAlchemy async database URL",
    )
    echo: bool = False
    pool_pre_ping: bool = True
    # Only applied for PostgreSQL, SQLite has no real pool
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 3600
    # Dev convenience, production runs `alembic upgrade head` instead
    create_tables_on_startup: bool = False


class SpotifySettings(BaseModel):
    """Spotify Web API credentials."""

    client_id: str = ""
    client_secret: str = ""
    redirect_uri: str = "http://localhost:8000/api/auth/spotify/callback"

    @property
    def is_configured(self) -> bool:
        """True when client id and secret are both set."""
        return bool(self.client_id.strip() and self.client_secret.strip())


# Hey future me - APPLE_MUSIC__PRIVATE_KEY usually comes out of a .env file with
# literal "\n" sequences instead of real newlines. The validator below turns them
# back into newlines, otherwise the ES256 signer chokes on the PEM.
class AppleMusicSettings(BaseModel):
    """Apple Music API (MusicKit) credentials."""

    team_id: str = ""
    key_id: str = ""
    private_key: str = ""
    storefront: str = "us"
    # Apple allows at most 6 months for developer tokens
    developer_token_ttl_seconds: int = 15_777_000

    @field_validator("private_key")
    @classmethod
    def _unescape_newlines(cls, value: str) -> str:
        if "\\n" in value:
            return value.replace("\\n", "\n")
        return value

    @property
    def is_configured(self) -> bool:
        """True when team id, key id and private key are all set."""
        return bool(self.team_id and self.key_id and self.private_key)


class SyncSettings(BaseModel):
    """Knobs for the list sync pipeline."""

    token_refresh_buffer_seconds: int = 300
    top_songs_limit: int = 10
    playlist_item_limit: int = 10
    apple_recently_played_limit: int = 25
    spotify_top_tracks_limit: int = 50
    playlist_staleness_minutes: int = 60
    top_songs_staleness_minutes: int = 24 * 60
    worker_enabled: bool = True
    worker_interval_seconds: int = 900
    concurrent_source_fetch: bool = False
    http_timeout_seconds: float = 30.0


class APISettings(BaseModel):
    """HTTP server settings."""

    host: str = "0.0.0.0"  # nosec B104 - container default
    port: int = 8000
    # Bearer secret for the scheduled sweep endpoint. Empty disables the endpoint.
    cron_secret: str = ""


class ObservabilitySettings(BaseModel):
    """Logging settings."""

    log_json_format: bool = False


class Settings(BaseSettings):
    """Root settings object.

    Nested groups are read with a double underscore delimiter, e.g.
    ``SPOTIFY__CLIENT_ID`` or ``SYNC__TOP_SONGS_LIMIT``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    app_name: str = "reccord"
    debug: bool = False
    log_level: str = "INFO"

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    spotify: SpotifySettings = Field(default_factory=SpotifySettings)
    apple_music: AppleMusicSettings = Field(default_factory=AppleMusicSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    api: APISettings = Field(default_factory=APISettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    def _get_sqlite_db_path(self) -> Path | None:
        """Return the SQLite file path, or None for non-file databases."""
        url = self.database.url
        if not url.startswith("sqlite"):
            return None
        _, _, path = url.partition(":///")
        if not path or path.startswith(":memory:"):
            return None
        return Path(path)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
