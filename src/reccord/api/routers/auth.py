"""Provider connection endpoints.

OAuth redirects and the MusicKit authorize flow happen elsewhere. This router only
hands out the Apple developer token, reports connection state and disconnects.
"""

import logging

from fastapi import APIRouter, Depends

from reccord.api.dependencies import (
    get_credential_repository,
    get_current_user_id,
    get_developer_token_provider,
)
from reccord.api.schemas import (
    ConnectionsResponse,
    ConnectionStatus,
    DeveloperTokenResponse,
    DisconnectResponse,
)
from reccord.application.services.token_manager import DeveloperTokenProvider
from reccord.config import Settings, get_settings
from reccord.domain.entities import SOURCE_ORDER, SourceService, SyncCredential
from reccord.infrastructure.persistence.repositories import SyncCredentialRepository

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/apple-music/developer-token", response_model=DeveloperTokenResponse)
async def get_apple_music_developer_token(
    provider: DeveloperTokenProvider = Depends(get_developer_token_provider),
) -> DeveloperTokenResponse:
    """Developer token for client-side MusicKit authorization (503 if unconfigured)."""
    token = provider.get_developer_token()
    return DeveloperTokenResponse(token=token, expires_at=provider.expires_at)


def _connection_status(
    credential: SyncCredential | None, buffer_seconds: int
) -> ConnectionStatus:
    if credential is None:
        return ConnectionStatus(connected=False)
    expiring = credential.expires_within(buffer_seconds)
    # Spotify heals itself through the refresh token, Apple Music never does
    needs_reauth = expiring and (
        credential.service is SourceService.APPLE_MUSIC or not credential.refresh_token
    )
    return ConnectionStatus(
        connected=True, expires_at=credential.expires_at, needs_reauth=needs_reauth
    )


@router.get("/connections", response_model=ConnectionsResponse)
async def get_connections(
    user_id: str = Depends(get_current_user_id),
    repository: SyncCredentialRepository = Depends(get_credential_repository),
    settings: Settings = Depends(get_settings),
) -> ConnectionsResponse:
    """Connection state of every provider for the caller."""
    credentials = {c.service: c for c in await repository.list_for_user(user_id)}
    buffer_seconds = settings.sync.token_refresh_buffer_seconds
    return ConnectionsResponse(
        connections={
            service.value: _connection_status(credentials.get(service), buffer_seconds)
            for service in SOURCE_ORDER
        }
    )


# Listen up - list configs pointing at this provider stay as they are. Their next sync
# reports CredentialNotFoundError for this source until the user reconnects.
@router.delete("/{service}", response_model=DisconnectResponse)
async def disconnect(
    service: SourceService,
    user_id: str = Depends(get_current_user_id),
    repository: SyncCredentialRepository = Depends(get_credential_repository),
) -> DisconnectResponse:
    """Delete the caller's credential for one provider."""
    deleted = await repository.delete(user_id, service)
    if deleted:
        logger.info(f"{service.display_name} disconnected for user {user_id}")
    return DisconnectResponse(service=service.value, disconnected=deleted)
