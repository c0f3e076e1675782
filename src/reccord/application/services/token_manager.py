"""Token managers - keep provider credentials valid before a fetch.

Hey future me - the contract is the same for both providers: give me a user id, I give
you a ProviderAuth that stays valid for at least the refresh buffer (5 min default).
How that happens differs a LOT:

- Spotify: access tokens live 1h and can be refreshed with the stored refresh token.
  Spotify MAY rotate the refresh token on refresh - we MUST persist the new one, the
  old one stops working after rotation.
- Apple Music: the Music User Token cannot be refreshed server-side. Inside the buffer
  we fail with ExpiredCredentialError and the user has to re-authorize in MusicKit JS.
  On top we need our own developer token (ES256 JWT), cached by DeveloperTokenProvider.

Each token manager opens its OWN short transaction for reading/persisting tokens. A
refreshed (possibly rotated) token must survive even if the list sync that triggered
the refresh fails later.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from reccord.domain.entities import ProviderAuth, SourceService, SyncCredential
from reccord.domain.exceptions import (
    ConfigurationError,
    CredentialNotFoundError,
    ExpiredCredentialError,
)
from reccord.domain.ports import ISyncCredentialRepository, ITokenManager
from reccord.infrastructure.integrations.apple_music_client import AppleMusicClient
from reccord.infrastructure.integrations.spotify_client import SpotifyClient
from reccord.infrastructure.observability.log_messages import LogMessages
from reccord.infrastructure.persistence.database import SessionScope
from reccord.infrastructure.persistence.repositories import SyncCredentialRepository

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_BUFFER_SECONDS = 300
DEFAULT_EXPIRES_IN_SECONDS = 3600

CredentialRepositoryFactory = Callable[[AsyncSession], ISyncCredentialRepository]
Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(UTC)


class SpotifyTokenManager(ITokenManager):
    """Refresh-before-expiry for Spotify OAuth tokens."""

    service = SourceService.SPOTIFY

    def __init__(
        self,
        session_scope: SessionScope,
        client: SpotifyClient,
        refresh_buffer_seconds: int = DEFAULT_REFRESH_BUFFER_SECONDS,
        credential_repository_factory: CredentialRepositoryFactory = SyncCredentialRepository,
        clock: Clock = _utc_now,
    ) -> None:
        self._session_scope = session_scope
        self._client = client
        self._buffer = refresh_buffer_seconds
        self._repository_factory = credential_repository_factory
        self._clock = clock
        # One lock per user so two lists of the same owner don't both burn the refresh token
        self._locks: dict[str, asyncio.Lock] = {}

    async def _load(self, user_id: str) -> SyncCredential:
        async with self._session_scope() as session:
            credential = await self._repository_factory(session).get(user_id, self.service)
        if credential is None:
            logger.info(LogMessages.credential_missing("Spotify", user_id))
            raise CredentialNotFoundError(self.service, user_id)
        return credential

    async def ensure_valid(self, user_id: str) -> ProviderAuth:
        """Return a Spotify access token valid for at least the buffer.

        Raises:
            CredentialNotFoundError: User never connected Spotify (or disconnected)
            ExpiredCredentialError: Refresh token missing, revoked or rejected
            ProviderError: Token endpoint unreachable or 5xx
        """
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        async with lock:
            # Re-read inside the lock, a concurrent call may have refreshed already
            credential = await self._load(user_id)
            now = self._clock()

            if not credential.expires_within(self._buffer, now=now):
                return ProviderAuth(access_token=credential.access_token)

            if not credential.refresh_token:
                raise ExpiredCredentialError(
                    self.service,
                    message="Spotify token expired and no refresh token is stored. "
                    "Please reconnect your Spotify account.",
                )

            try:
                token_data = await self._client.refresh_token(credential.refresh_token)
            except ExpiredCredentialError as e:
                logger.warning(LogMessages.token_refresh_failed("Spotify", user_id, e.message))
                raise

            access_token: str = token_data["access_token"]
            # Yo, expires_in missing, null or 0 all fall back to 1h
            expires_in = int(token_data.get("expires_in") or DEFAULT_EXPIRES_IN_SECONDS)
            expires_at = now + timedelta(seconds=expires_in)
            rotated_refresh_token: str | None = token_data.get("refresh_token") or None

            async with self._session_scope() as session:
                await self._repository_factory(session).update_after_refresh(
                    user_id,
                    self.service,
                    access_token=access_token,
                    expires_at=expires_at,
                    refresh_token=rotated_refresh_token,
                )

            logger.info(
                LogMessages.token_refreshed(
                    "Spotify",
                    user_id,
                    expires_at.isoformat(),
                    rotated=rotated_refresh_token is not None,
                )
            )
            return ProviderAuth(access_token=access_token)


# Hey future me - Apple lets a developer token live up to 6 months, so signing a new one
# per request is pure waste. We cache the JWT with its own expiry and only re-sign when
# it gets within the buffer of that expiry. It's process-local, every worker/process
# signs its own - that's fine, Apple doesn't care how many valid tokens exist.
class DeveloperTokenProvider:
    """Caches the signed Apple Music developer token."""

    def __init__(
        self,
        client: AppleMusicClient,
        ttl_seconds: int,
        refresh_buffer_seconds: int = DEFAULT_REFRESH_BUFFER_SECONDS,
        clock: Clock = _utc_now,
    ) -> None:
        self._client = client
        self._ttl = timedelta(seconds=ttl_seconds)
        self._buffer = timedelta(seconds=refresh_buffer_seconds)
        self._clock = clock
        self._token: str | None = None
        self._expires_at: datetime | None = None

    @property
    def expires_at(self) -> datetime | None:
        """Expiry of the cached token (None before the first signing)."""
        return self._expires_at

    def generate_developer_token(self) -> str:
        """Sign a fresh developer token and cache it.

        Raises:
            ConfigurationError: Apple Music credentials missing or unusable
        """
        now = self._clock()
        token = self._client.generate_developer_token(issued_at=now)
        self._token = token
        self._expires_at = now + self._ttl
        return token

    def get_developer_token(self) -> str:
        """Return the cached developer token, re-signing near expiry."""
        if (
            self._token is not None
            and self._expires_at is not None
            and self._expires_at - self._clock() > self._buffer
        ):
            return self._token
        return self.generate_developer_token()

    def invalidate(self) -> None:
        """Drop the cached token (e.g. after rotating the signing key)."""
        self._token = None
        self._expires_at = None


class AppleMusicTokenManager(ITokenManager):
    """Validity check for Apple Music user tokens plus developer token supply."""

    service = SourceService.APPLE_MUSIC

    def __init__(
        self,
        session_scope: SessionScope,
        developer_tokens: DeveloperTokenProvider,
        refresh_buffer_seconds: int = DEFAULT_REFRESH_BUFFER_SECONDS,
        credential_repository_factory: CredentialRepositoryFactory = SyncCredentialRepository,
        clock: Clock = _utc_now,
    ) -> None:
        self._session_scope = session_scope
        self._developer_tokens = developer_tokens
        self._buffer = refresh_buffer_seconds
        self._repository_factory = credential_repository_factory
        self._clock = clock

    async def ensure_valid(self, user_id: str) -> ProviderAuth:
        """Return the user token plus a developer token.

        Raises:
            CredentialNotFoundError: User never connected Apple Music
            ExpiredCredentialError: User token within the buffer of expiry
            ConfigurationError: Developer token cannot be signed
        """
        async with self._session_scope() as session:
            credential = await self._repository_factory(session).get(user_id, self.service)

        if credential is None or not credential.access_token:
            logger.info(LogMessages.credential_missing("Apple Music", user_id))
            raise CredentialNotFoundError(self.service, user_id)

        if credential.expires_within(self._buffer, now=self._clock()):
            raise ExpiredCredentialError(
                self.service,
                message="Apple Music user token expired. Please reconnect.",
            )

        return ProviderAuth(
            access_token=credential.access_token,
            developer_token=self._developer_tokens.get_developer_token(),
        )


class TokenManagerRegistry:
    """Maps a SourceService to its token manager."""

    def __init__(self, managers: list[ITokenManager] | None = None) -> None:
        self._managers: dict[SourceService, ITokenManager] = {}
        for manager in managers or []:
            self.register(manager)

    def register(self, manager: ITokenManager) -> None:
        """Register (or replace) the manager of a service."""
        self._managers[manager.service] = manager

    def get(self, service: SourceService) -> ITokenManager:
        """Get the manager of a service.

        Raises:
            ConfigurationError: No manager registered for the service
        """
        try:
            return self._managers[service]
        except KeyError:
            raise ConfigurationError(
                f"No token manager registered for {service.display_name}"
            ) from None

    def __contains__(self, service: object) -> bool:
        return service in self._managers
