"""Tests for SpotifyClient (HTTP mocked with pytest-httpx)."""

from unittest.mock import AsyncMock

import httpx
import pytest
from pytest_httpx import HTTPXMock

from reccord.config.settings import SpotifySettings
from reccord.domain.entities import SourceService
from reccord.domain.exceptions import (
    AuthenticationFailedError,
    ConfigurationError,
    ExpiredCredentialError,
    ProviderError,
    ResourceUnavailableError,
)
from reccord.infrastructure.integrations.spotify_client import SpotifyClient
from reccord.infrastructure.rate_limiter import RateLimiter

# Hey future me - the 429 tests swap handle_rate_limit_response for an AsyncMock so
# nothing actually sleeps for Retry-After seconds.


@pytest.fixture
def rate_limiter() -> RateLimiter:
    """Limiter that doesn't wait on 429."""
    limiter = RateLimiter.for_spotify()
    limiter.handle_rate_limit_response = AsyncMock(return_value=0.0)  # type: ignore[method-assign]
    return limiter


@pytest.fixture
def settings() -> SpotifySettings:
    """Configured Spotify app credentials."""
    return SpotifySettings(client_id="client-id", client_secret="client-secret")


class TestApiRequest:
    """Test status mapping and retries of Web API calls."""

    async def test_top_tracks_success(
        self, httpx_mock: HTTPXMock, settings: SpotifySettings, rate_limiter: RateLimiter
    ) -> None:
        """Bearer header and query params are sent, JSON comes back."""
        httpx_mock.add_response(json={"items": [{"name": "Kids"}]})

        async with SpotifyClient(settings, rate_limiter=rate_limiter) as client:
            data = await client.get_top_tracks("tok", time_range="short_term", limit=80)

        assert data == {"items": [{"name": "Kids"}]}
        request = httpx_mock.get_requests()[0]
        assert request.headers["Authorization"] == "Bearer tok"
        assert request.url.path == "/v1/me/top/tracks"
        assert request.url.params["time_range"] == "short_term"
        assert request.url.params["limit"] == "50"

    @pytest.mark.parametrize(
        ("status", "error_class"),
        [
            (401, AuthenticationFailedError),
            (403, AuthenticationFailedError),
            (404, ResourceUnavailableError),
            (500, ProviderError),
        ],
    )
    async def test_status_mapping(
        self,
        httpx_mock: HTTPXMock,
        settings: SpotifySettings,
        rate_limiter: RateLimiter,
        status: int,
        error_class: type[ProviderError],
    ) -> None:
        """Non-2xx statuses map onto the domain taxonomy with the message kept."""
        httpx_mock.add_response(
            status_code=status, json={"error": {"status": status, "message": "Nope"}}
        )

        async with SpotifyClient(settings, rate_limiter=rate_limiter) as client:
            with pytest.raises(error_class) as exc_info:
                await client.get_playlist_tracks("pl1", "tok")

        assert type(exc_info.value) is error_class
        assert exc_info.value.status_code == status
        assert exc_info.value.provider_message == "Nope"
        assert exc_info.value.service is SourceService.SPOTIFY

    async def test_429_is_retried(
        self, httpx_mock: HTTPXMock, settings: SpotifySettings, rate_limiter: RateLimiter
    ) -> None:
        """Retry-After is honored and the retry succeeds."""
        httpx_mock.add_response(status_code=429, headers={"Retry-After": "7"})
        httpx_mock.add_response(json={"id": "user"})

        async with SpotifyClient(settings, rate_limiter=rate_limiter) as client:
            data = await client.get_current_user("tok")

        assert data == {"id": "user"}
        rate_limiter.handle_rate_limit_response.assert_awaited_once_with(7)

    async def test_429_gives_up_after_retries(
        self, httpx_mock: HTTPXMock, settings: SpotifySettings, rate_limiter: RateLimiter
    ) -> None:
        """Exhausted retries become ProviderError(429)."""
        for _ in range(4):
            httpx_mock.add_response(status_code=429)

        async with SpotifyClient(settings, rate_limiter=rate_limiter) as client:
            with pytest.raises(ProviderError) as exc_info:
                await client.get_current_user("tok")

        assert exc_info.value.status_code == 429
        assert rate_limiter.handle_rate_limit_response.await_count == 3

    async def test_transport_error(
        self, httpx_mock: HTTPXMock, settings: SpotifySettings, rate_limiter: RateLimiter
    ) -> None:
        """Network failures become ProviderError without a status."""
        httpx_mock.add_exception(httpx.ConnectTimeout("timed out"))

        async with SpotifyClient(settings, rate_limiter=rate_limiter) as client:
            with pytest.raises(ProviderError) as exc_info:
                await client.get_current_user("tok")

        assert exc_info.value.status_code is None
        assert "ConnectTimeout" in (exc_info.value.provider_message or "")


class TestRefreshToken:
    """Test the refresh-token grant."""

    async def test_success(self, httpx_mock: HTTPXMock, settings: SpotifySettings) -> None:
        """Basic auth header and form body are sent."""
        httpx_mock.add_response(
            url=SpotifyClient.TOKEN_URL,
            method="POST",
            json={"access_token": "new", "expires_in": 3600},
        )

        async with SpotifyClient(settings) as client:
            data = await client.refresh_token("refresh-me")

        assert data["access_token"] == "new"
        request = httpx_mock.get_requests()[0]
        assert request.headers["Authorization"].startswith("Basic ")
        assert b"grant_type=refresh_token" in request.content
        assert b"refresh_token=refresh-me" in request.content

    async def test_invalid_grant(self, httpx_mock: HTTPXMock, settings: SpotifySettings) -> None:
        """Revoked refresh token means reconnect."""
        httpx_mock.add_response(
            status_code=400,
            json={"error": "invalid_grant", "error_description": "Refresh token revoked"},
        )

        async with SpotifyClient(settings) as client:
            with pytest.raises(ExpiredCredentialError) as exc_info:
                await client.refresh_token("revoked")

        assert exc_info.value.error_code == "invalid_grant"
        assert "Refresh token revoked" in exc_info.value.message

    async def test_other_400_is_provider_error(
        self, httpx_mock: HTTPXMock, settings: SpotifySettings
    ) -> None:
        """400 without invalid_grant stays a generic provider error."""
        httpx_mock.add_response(status_code=400, json={"error": "invalid_request"})

        async with SpotifyClient(settings) as client:
            with pytest.raises(ProviderError) as exc_info:
                await client.refresh_token("x")

        assert exc_info.value.status_code == 400

    async def test_unauthorized_client(
        self, httpx_mock: HTTPXMock, settings: SpotifySettings
    ) -> None:
        """401 on the token endpoint is an expired credential."""
        httpx_mock.add_response(status_code=401, json={"error": "invalid_client"})

        async with SpotifyClient(settings) as client:
            with pytest.raises(ExpiredCredentialError):
                await client.refresh_token("x")

    async def test_not_configured(self) -> None:
        """No client credentials, no refresh."""
        async with SpotifyClient(SpotifySettings()) as client:
            with pytest.raises(ConfigurationError):
                await client.refresh_token("x")


class TestClientLifecycle:
    """Test ownership of the HTTP client."""

    async def test_injected_client_is_not_closed(self, settings: SpotifySettings) -> None:
        """Shared clients belong to the caller."""
        async with httpx.AsyncClient() as shared:
            client = SpotifyClient(settings, http_client=shared)
            await client.close()

            assert shared.is_closed is False
