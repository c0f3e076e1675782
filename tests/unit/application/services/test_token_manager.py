"""Tests for the Spotify/Apple Music token managers and the developer token cache."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from reccord.application.services.token_manager import (
    AppleMusicTokenManager,
    DeveloperTokenProvider,
    SpotifyTokenManager,
    TokenManagerRegistry,
)
from reccord.domain.entities import SourceService
from reccord.domain.exceptions import (
    ConfigurationError,
    CredentialNotFoundError,
    ExpiredCredentialError,
)
from reccord.infrastructure.persistence import Database
from reccord.infrastructure.persistence.repositories import SyncCredentialRepository

# Hey future me - the threshold tests pin the clock. 4 minutes left is INSIDE the
# 5 minute buffer (refresh), 10 minutes left is outside (stored token returned as-is).

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _clock() -> datetime:
    return NOW


class FakeClock:
    """Settable clock for the developer token cache."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


async def _stored(db: Database, service: SourceService):
    async with db.session_scope() as session:
        return await SyncCredentialRepository(session).get("user-1", service)


class TestSpotifyTokenManager:
    """Test refresh-before-expiry for Spotify."""

    @pytest.fixture
    def spotify_client(self) -> MagicMock:
        """Mock Spotify client returning a fresh token."""
        client = MagicMock()
        client.refresh_token = AsyncMock(
            return_value={"access_token": "refreshed", "expires_in": 3600}
        )
        return client

    @pytest.fixture
    def manager(self, db: Database, spotify_client: MagicMock) -> SpotifyTokenManager:
        """Manager wired to the in-memory database and a pinned clock."""
        return SpotifyTokenManager(db.session_scope, spotify_client, clock=_clock)

    async def test_four_minutes_left_triggers_refresh(
        self, db: Database, seed, manager: SpotifyTokenManager, spotify_client: MagicMock
    ) -> None:
        """Token inside the buffer gets refreshed and persisted."""
        await seed.credential(SourceService.SPOTIFY, expires_at=NOW + timedelta(minutes=4))

        auth = await manager.ensure_valid("user-1")

        assert auth.access_token == "refreshed"
        spotify_client.refresh_token.assert_awaited_once_with("refresh-token")
        stored = await _stored(db, SourceService.SPOTIFY)
        assert stored.access_token == "refreshed"
        assert stored.expires_at == NOW + timedelta(seconds=3600)

    async def test_ten_minutes_left_returns_stored_token(
        self, seed, manager: SpotifyTokenManager, spotify_client: MagicMock
    ) -> None:
        """Token outside the buffer comes back unchanged without a refresh."""
        await seed.credential(SourceService.SPOTIFY, expires_at=NOW + timedelta(minutes=10))

        auth = await manager.ensure_valid("user-1")

        assert auth.access_token == "access-token"
        assert auth.developer_token is None
        spotify_client.refresh_token.assert_not_awaited()

    async def test_rotated_refresh_token_is_persisted(
        self, db: Database, seed, manager: SpotifyTokenManager, spotify_client: MagicMock
    ) -> None:
        """A new refresh token from Spotify replaces the stored one."""
        spotify_client.refresh_token.return_value = {
            "access_token": "refreshed",
            "expires_in": 3600,
            "refresh_token": "rotated-refresh",
        }
        await seed.credential(SourceService.SPOTIFY, expires_at=NOW - timedelta(hours=1))

        await manager.ensure_valid("user-1")

        stored = await _stored(db, SourceService.SPOTIFY)
        assert stored.refresh_token == "rotated-refresh"

    async def test_missing_expires_in_falls_back_to_one_hour(
        self, db: Database, seed, manager: SpotifyTokenManager, spotify_client: MagicMock
    ) -> None:
        """No expires_in in the response means 3600 seconds."""
        spotify_client.refresh_token.return_value = {"access_token": "refreshed"}
        await seed.credential(SourceService.SPOTIFY, expires_at=NOW)

        await manager.ensure_valid("user-1")

        stored = await _stored(db, SourceService.SPOTIFY)
        assert stored.expires_at == NOW + timedelta(hours=1)
        assert stored.refresh_token == "refresh-token"

    async def test_invalid_grant_propagates(
        self, seed, manager: SpotifyTokenManager, spotify_client: MagicMock
    ) -> None:
        """Revoked refresh token surfaces as ExpiredCredentialError."""
        spotify_client.refresh_token.side_effect = ExpiredCredentialError(
            SourceService.SPOTIFY, error_code="invalid_grant"
        )
        await seed.credential(SourceService.SPOTIFY, expires_at=NOW)

        with pytest.raises(ExpiredCredentialError) as exc_info:
            await manager.ensure_valid("user-1")

        assert exc_info.value.error_code == "invalid_grant"
        assert exc_info.value.requires_reauth is True

    async def test_no_refresh_token_is_expired(
        self, seed, manager: SpotifyTokenManager, spotify_client: MagicMock
    ) -> None:
        """Expired token without a refresh token cannot be renewed."""
        await seed.credential(SourceService.SPOTIFY, expires_at=NOW, refresh_token=None)

        with pytest.raises(ExpiredCredentialError):
            await manager.ensure_valid("user-1")

        spotify_client.refresh_token.assert_not_awaited()

    async def test_missing_credential(self, db: Database, manager: SpotifyTokenManager) -> None:
        """No connection row raises CredentialNotFoundError."""
        with pytest.raises(CredentialNotFoundError) as exc_info:
            await manager.ensure_valid("user-1")

        assert exc_info.value.service is SourceService.SPOTIFY
        assert exc_info.value.user_id == "user-1"


class TestDeveloperTokenProvider:
    """Test developer token caching."""

    @pytest.fixture
    def apple_client(self) -> MagicMock:
        """Mock Apple client that numbers every signed token."""
        client = MagicMock()
        client.generate_developer_token.side_effect = [f"jwt-{i}" for i in range(1, 10)]
        return client

    def test_token_is_cached(self, apple_client: MagicMock) -> None:
        """Two calls well inside the TTL sign once."""
        provider = DeveloperTokenProvider(apple_client, ttl_seconds=3600, clock=_clock)

        assert provider.get_developer_token() == "jwt-1"
        assert provider.get_developer_token() == "jwt-1"
        apple_client.generate_developer_token.assert_called_once_with(issued_at=NOW)
        assert provider.expires_at == NOW + timedelta(hours=1)

    def test_token_resigned_inside_buffer(self, apple_client: MagicMock) -> None:
        """Close to expiry a new token is signed."""
        clock = FakeClock(NOW)
        provider = DeveloperTokenProvider(
            apple_client, ttl_seconds=3600, refresh_buffer_seconds=300, clock=clock
        )
        provider.get_developer_token()

        clock.now = NOW + timedelta(minutes=56)

        assert provider.get_developer_token() == "jwt-2"

    def test_invalidate_forces_new_token(self, apple_client: MagicMock) -> None:
        """invalidate() drops the cache."""
        provider = DeveloperTokenProvider(apple_client, ttl_seconds=3600, clock=_clock)
        provider.get_developer_token()

        provider.invalidate()

        assert provider.expires_at is None
        assert provider.get_developer_token() == "jwt-2"


class TestAppleMusicTokenManager:
    """Test Apple Music user token validity checks."""

    @pytest.fixture
    def developer_tokens(self) -> MagicMock:
        """Developer token provider stub."""
        provider = MagicMock()
        provider.get_developer_token.return_value = "dev-jwt"
        return provider

    @pytest.fixture
    def manager(self, db: Database, developer_tokens: MagicMock) -> AppleMusicTokenManager:
        """Manager wired to the in-memory database and a pinned clock."""
        return AppleMusicTokenManager(db.session_scope, developer_tokens, clock=_clock)

    async def test_valid_user_token(self, seed, manager: AppleMusicTokenManager) -> None:
        """Valid user token comes back with the developer token."""
        await seed.credential(
            SourceService.APPLE_MUSIC,
            expires_at=NOW + timedelta(days=30),
            access_token="music-user-token",
            refresh_token=None,
        )

        auth = await manager.ensure_valid("user-1")

        assert auth.access_token == "music-user-token"
        assert auth.developer_token == "dev-jwt"

    async def test_user_token_inside_buffer_is_expired(
        self, seed, manager: AppleMusicTokenManager, developer_tokens: MagicMock
    ) -> None:
        """Apple tokens can't be refreshed, inside the buffer means reconnect."""
        await seed.credential(
            SourceService.APPLE_MUSIC, expires_at=NOW + timedelta(minutes=4), refresh_token=None
        )

        with pytest.raises(ExpiredCredentialError) as exc_info:
            await manager.ensure_valid("user-1")

        assert exc_info.value.service is SourceService.APPLE_MUSIC
        developer_tokens.get_developer_token.assert_not_called()

    async def test_missing_credential(self, db: Database, manager: AppleMusicTokenManager) -> None:
        """No connection row raises CredentialNotFoundError."""
        with pytest.raises(CredentialNotFoundError):
            await manager.ensure_valid("user-1")

    async def test_developer_token_config_error_propagates(
        self, seed, manager: AppleMusicTokenManager, developer_tokens: MagicMock
    ) -> None:
        """Unsignable developer token is a configuration problem."""
        developer_tokens.get_developer_token.side_effect = ConfigurationError("no key")
        await seed.credential(
            SourceService.APPLE_MUSIC, expires_at=NOW + timedelta(days=1), refresh_token=None
        )

        with pytest.raises(ConfigurationError):
            await manager.ensure_valid("user-1")


class TestTokenManagerRegistry:
    """Test the service to manager lookup."""

    def test_get_registered_manager(self) -> None:
        """Registered managers are found by service."""
        manager = MagicMock(service=SourceService.SPOTIFY)
        registry = TokenManagerRegistry([manager])

        assert registry.get(SourceService.SPOTIFY) is manager
        assert SourceService.SPOTIFY in registry
        assert SourceService.APPLE_MUSIC not in registry

    def test_missing_manager_is_configuration_error(self) -> None:
        """Unknown service raises ConfigurationError."""
        with pytest.raises(ConfigurationError):
            TokenManagerRegistry().get(SourceService.APPLE_MUSIC)
