"""API schemas for list sync and provider connections."""

from datetime import datetime

from pydantic import BaseModel, Field

from reccord.domain.entities import (
    BatchSyncResult,
    SourceErrorInfo,
    SyncListResult,
)


class SourceErrorResponse(BaseModel):
    """One provider that contributed nothing to a sync."""

    service: str = Field(..., description="SPOTIFY or APPLE_MUSIC")
    error_type: str = Field(..., description="Error class name, e.g. ProviderError")
    message: str = Field(..., description="Human readable reason")
    status_code: int | None = Field(
        default=None, description="Provider HTTP status, null for network errors"
    )
    requires_reauth: bool = Field(
        default=False, description="User must reconnect this provider"
    )

    @classmethod
    def from_info(cls, info: SourceErrorInfo) -> "SourceErrorResponse":
        return cls(
            service=info.service.value,
            error_type=info.error_type,
            message=info.message,
            status_code=info.status_code,
            requires_reauth=info.requires_reauth,
        )


class SyncListResponse(BaseModel):
    """Result of one list sync."""

    list_id: str
    state: str = Field(..., description="PERSISTED or PERSISTED_EMPTY")
    item_count: int
    errors: list[SourceErrorResponse] = Field(default_factory=list)
    message: str | None = None

    @classmethod
    def from_result(cls, result: SyncListResult) -> "SyncListResponse":
        return cls(
            list_id=result.list_id,
            state=result.state.value,
            item_count=result.item_count,
            errors=[SourceErrorResponse.from_info(e) for e in result.errors],
            message=result.message,
        )


class BatchSyncResponse(BaseModel):
    """Tally of one scheduled sweep."""

    source_type: str
    total_candidates: int
    synced_count: int
    error_count: int
    skipped_count: int = 0

    @classmethod
    def from_result(cls, result: BatchSyncResult) -> "BatchSyncResponse":
        return cls(
            source_type=result.source_type.value,
            total_candidates=result.total_candidates,
            synced_count=result.synced_count,
            error_count=result.error_count,
            skipped_count=result.skipped_count,
        )


class DeveloperTokenResponse(BaseModel):
    """Signed Apple Music developer token for client-side MusicKit."""

    token: str
    expires_at: datetime | None = None


class ConnectionStatus(BaseModel):
    """Connection state of one provider for the caller."""

    connected: bool
    expires_at: datetime | None = None
    needs_reauth: bool = False


class ConnectionsResponse(BaseModel):
    """Per-service connection states, keyed by SourceService value."""

    connections: dict[str, ConnectionStatus]


class DisconnectResponse(BaseModel):
    service: str
    disconnected: bool
