"""initial sync schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 10:00:00.000000

Hey future me - the five tables the sync pipeline needs:

- sync_credentials: one provider connection per (user, service)
- lists: published lists, source_type decides how they get filled
- list_items: ordered items, REPLACED wholesale on every successful sync
- top_songs_configs / playlist_sync_configs: per-list sync config + watermark

last_synced_at NULL means "never synced", the sweep query treats it as due first.
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create the sync tables."""
    op.create_table(
        "sync_credentials",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("service", sa.String(20), nullable=False),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("provider_user_id", sa.String(255), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("last_refreshed_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("user_id", "service", name="uq_sync_credentials_user_service"),
    )
    op.create_index("ix_sync_credentials_user_id", "sync_credentials", ["user_id"])

    op.create_table(
        "lists",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("source_type", sa.String(20), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_lists_owner_id", "lists", ["owner_id"])
    op.create_index("ix_lists_source_type", "lists", ["source_type"])

    op.create_table(
        "list_items",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "list_id",
            sa.String(36),
            sa.ForeignKey("lists.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(512), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("url", sa.String(1024), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=False),
        sa.Column("isrc", sa.String(20), nullable=True),
        sa.Column("album_name", sa.String(512), nullable=True),
        sa.Column("source_service", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_list_items_sort_order", "list_items", ["list_id", "sort_order"])

    op.create_table(
        "top_songs_configs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "list_id",
            sa.String(36),
            sa.ForeignKey("lists.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("sources", sa.JSON(), nullable=False),
        sa.Column("time_window", sa.String(20), nullable=False),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_top_songs_configs_last_synced_at", "top_songs_configs", ["last_synced_at"]
    )

    op.create_table(
        "playlist_sync_configs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "list_id",
            sa.String(36),
            sa.ForeignKey("lists.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("service", sa.String(20), nullable=False),
        sa.Column("playlist_id", sa.String(255), nullable=False),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_playlist_sync_configs_last_synced_at",
        "playlist_sync_configs",
        ["last_synced_at"],
    )


def downgrade() -> None:
    """Drop the sync tables (children first)."""
    op.drop_index("ix_playlist_sync_configs_last_synced_at", "playlist_sync_configs")
    op.drop_table("playlist_sync_configs")
    op.drop_index("ix_top_songs_configs_last_synced_at", "top_songs_configs")
    op.drop_table("top_songs_configs")
    op.drop_index("ix_list_items_sort_order", "list_items")
    op.drop_table("list_items")
    op.drop_index("ix_lists_source_type", "lists")
    op.drop_index("ix_lists_owner_id", "lists")
    op.drop_table("lists")
    op.drop_index("ix_sync_credentials_user_id", "sync_credentials")
    op.drop_table("sync_credentials")
