"""Dependency injection for API endpoints."""

import hmac
import logging
from collections.abc import AsyncGenerator
from typing import cast

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from reccord.application.services.list_sync_service import ListSyncService
from reccord.application.services.token_manager import DeveloperTokenProvider
from reccord.config import Settings, get_settings
from reccord.domain.exceptions import AuthenticationError
from reccord.infrastructure.persistence.database import Database
from reccord.infrastructure.persistence.repositories import SyncCredentialRepository

logger = logging.getLogger(__name__)


# Hey future me - everything stateful lives on app.state (see infrastructure/lifecycle.py).
# If something is missing there the lifespan didn't run or failed, answer 503 instead of
# crashing with AttributeError.
def _from_state(request: Request, name: str) -> object:
    if not hasattr(request.app.state, name):
        raise HTTPException(status_code=503, detail=f"{name} not initialized")
    return getattr(request.app.state, name)


def get_database(request: Request) -> Database:
    return cast(Database, _from_state(request, "db"))


# Use this in endpoint params like: "session: AsyncSession = Depends(get_db_session)"
async def get_db_session(
    db: Database = Depends(get_database),
) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session that commits when the request handler returns."""
    async with db.session_scope() as session:
        yield session


def get_list_sync_service(request: Request) -> ListSyncService:
    return cast(ListSyncService, _from_state(request, "list_sync_service"))


def get_developer_token_provider(request: Request) -> DeveloperTokenProvider:
    return cast(DeveloperTokenProvider, _from_state(request, "developer_tokens"))


def get_credential_repository(
    session: AsyncSession = Depends(get_db_session),
) -> SyncCredentialRepository:
    return SyncCredentialRepository(session)


# Hey future me - handles both "Bearer {token}" and a raw token, prefix is case-insensitive.
def parse_bearer_token(authorization: str) -> str:
    """Strip an optional Bearer prefix from an Authorization header value."""
    if authorization.lower().startswith("bearer "):
        return authorization[7:].strip()
    return authorization.strip()


# Listen up - we don't do sessions or cookies here. The fronting auth layer (reverse proxy,
# gateway) authenticates the user and forwards the id in X-User-Id. No header means the
# request never went through that layer.
async def get_current_user_id(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
) -> str:
    """Caller identity forwarded by the fronting auth layer."""
    if not x_user_id or not x_user_id.strip():
        raise AuthenticationError("Missing X-User-Id header")
    return x_user_id.strip()


async def verify_cron_secret(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Guard for the scheduled sweep endpoint.

    Raises:
        HTTPException: 503 when no cron secret is configured
        AuthenticationError: Missing or wrong bearer secret (401)
    """
    expected = settings.api.cron_secret
    if not expected:
        raise HTTPException(status_code=503, detail="Cron secret is not configured")
    if not authorization or not hmac.compare_digest(
        parse_bearer_token(authorization).encode(), expected.encode()
    ):
        logger.warning("Rejected cron request with invalid secret")
        raise AuthenticationError("Invalid cron secret")
