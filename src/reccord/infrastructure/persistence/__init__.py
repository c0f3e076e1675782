"""Infrastructure persistence layer."""

from .database import Database, SessionScope
from .models import (
    Base,
    ListItemModel,
    ListModel,
    PlaylistSyncConfigModel,
    SyncCredentialModel,
    TopSongsConfigModel,
)
from .repositories import ListSyncRepository, SyncCredentialRepository

__all__ = [
    # Database
    "Database",
    "SessionScope",
    "Base",
    # Models
    "ListModel",
    "ListItemModel",
    "PlaylistSyncConfigModel",
    "SyncCredentialModel",
    "TopSongsConfigModel",
    # Repositories
    "ListSyncRepository",
    "SyncCredentialRepository",
]
