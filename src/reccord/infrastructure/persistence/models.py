"""SQLAlchemy ORM models for Reccord."""

import uuid
from datetime import UTC, datetime

import sqlalchemy as sa
from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


# Hey future me - SQLite doesn't preserve timezone info! Datetimes come back naive.
# ALWAYS run values read from the DB through this before comparing with
# datetime.now(UTC), otherwise "can't compare offset-naive and offset-aware" TypeError.
def ensure_utc_aware(dt: datetime) -> datetime:
    """Ensure datetime is UTC-aware, assuming naive datetimes are UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Yo, one row per (user, service). access_token holds the Spotify OAuth access token OR
# the Apple Music User Token. refresh_token is only ever set for Spotify.
# Tokens are NOT encrypted at rest, same trade-off as before, keep the DB file private.
class SyncCredentialModel(Base):
    """Provider connection of a user."""

    __tablename__ = "sync_credentials"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    # 'SPOTIFY' or 'APPLE_MUSIC' (plain string, not enum - SQLite compatibility)
    service: Mapped[str] = mapped_column(String(20), nullable=False)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    expires_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False
    )
    provider_user_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
    last_refreshed_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        UniqueConstraint("user_id", "service", name="uq_sync_credentials_user_service"),
    )


class ListModel(Base):
    """A published music list.

    source_type decides how items get filled:
    - MANUAL: Curated by hand, never synced
    - SPOTIFY / APPLE_MUSIC: Mirrors the first tracks of a provider playlist
    - TOP_SONGS: Aggregated from the owner's listening history
    """

    __tablename__ = "lists"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    source_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="MANUAL", index=True
    )
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )

    items: Mapped[list["ListItemModel"]] = relationship(
        "ListItemModel",
        back_populates="list",
        cascade="all, delete-orphan",
        order_by="ListItemModel.sort_order",
    )
    top_songs_config: Mapped["TopSongsConfigModel | None"] = relationship(
        "TopSongsConfigModel", back_populates="list", cascade="all, delete-orphan"
    )
    playlist_config: Mapped["PlaylistSyncConfigModel | None"] = relationship(
        "PlaylistSyncConfigModel", back_populates="list", cascade="all, delete-orphan"
    )


class ListItemModel(Base):
    """One ordered entry of a list."""

    __tablename__ = "list_items"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    list_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("lists.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(512), nullable=False)
    # Artist(s) for synced items, free text for manual items
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    isrc: Mapped[str | None] = mapped_column(String(20), nullable=True)
    album_name: Mapped[str | None] = mapped_column(String(512), nullable=True)
    # Comma-joined tags, e.g. "SPOTIFY,APPLE_MUSIC"
    source_service: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)

    list: Mapped["ListModel"] = relationship("ListModel", back_populates="items")

    __table_args__ = (Index("ix_list_items_sort_order", "list_id", "sort_order"),)


class TopSongsConfigModel(Base):
    """Sync config of a TOP_SONGS list."""

    __tablename__ = "top_songs_configs"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    list_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("lists.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    # JSON array of service tags: ["SPOTIFY", "APPLE_MUSIC"]
    sources: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    time_window: Mapped[str] = mapped_column(
        String(20), nullable=False, default="THIS_MONTH"
    )
    # Sync watermark - NULL means "never synced", always due
    last_synced_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True, index=True
    )

    list: Mapped["ListModel"] = relationship("ListModel", back_populates="top_songs_config")


class PlaylistSyncConfigModel(Base):
    """Sync config of a playlist-mirror list (SPOTIFY or APPLE_MUSIC)."""

    __tablename__ = "playlist_sync_configs"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    list_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("lists.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    service: Mapped[str] = mapped_column(String(20), nullable=False)
    # Bare provider playlist id, already extracted from whatever URL the user pasted
    playlist_id: Mapped[str] = mapped_column(String(255), nullable=False)
    last_synced_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True, index=True
    )

    list: Mapped["ListModel"] = relationship("ListModel", back_populates="playlist_config")
