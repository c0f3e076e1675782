"""API request/response schemas."""

from reccord.api.schemas.sync import (
    BatchSyncResponse,
    ConnectionStatus,
    ConnectionsResponse,
    DeveloperTokenResponse,
    DisconnectResponse,
    SourceErrorResponse,
    SyncListResponse,
)

__all__ = [
    "BatchSyncResponse",
    "ConnectionStatus",
    "ConnectionsResponse",
    "DeveloperTokenResponse",
    "DisconnectResponse",
    "SourceErrorResponse",
    "SyncListResponse",
]
