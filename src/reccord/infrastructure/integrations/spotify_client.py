"""Spotify Web API HTTP client."""

import base64
import logging
from typing import Any, cast

import httpx

from reccord.config.settings import SpotifySettings
from reccord.domain.entities import SourceService
from reccord.domain.exceptions import ConfigurationError, ExpiredCredentialError, ProviderError
from reccord.infrastructure.integrations.errors import (
    extract_provider_message,
    provider_transport_error,
    raise_for_provider_status,
)
from reccord.infrastructure.rate_limiter import RateLimiter, parse_retry_after

logger = logging.getLogger(__name__)

SERVICE = SourceService.SPOTIFY


class SpotifyClient:
    """HTTP client for the Spotify endpoints the sync pipeline needs."""

    TOKEN_URL = "https://accounts.spotify.com/api/token"  # nosec B105 - public URL
    API_BASE_URL = "https://api.spotify.com/v1"

    # Hey future me, we DON'T create the HTTP client here unless one is injected. The
    # lifespan injects a shared httpx.AsyncClient, tests and the CLI let us create our own
    # lazily in _get_client(). We only close clients we created ourselves.
    def __init__(
        self,
        settings: SpotifySettings,
        rate_limiter: RateLimiter | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        """
        Initialize Spotify client.

        Args:
            settings: Spotify configuration settings
            rate_limiter: Shared limiter, a fresh one is built when omitted
            http_client: Shared HTTP client owned by the caller
            timeout: Per-request timeout for clients we create ourselves
        """
        self.settings = settings
        self.rate_limiter = rate_limiter or RateLimiter.for_spotify()
        self._client = http_client
        self._owns_client = http_client is None
        self._timeout = timeout

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        """Close HTTP client if we own it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # Hey future me - ALL Web API calls go through here.
    # - Token bucket rate limiting
    # - Retry on 429 honoring Retry-After, max 3 retries, then ProviderError(429)
    # - Transport errors (timeouts, resets) become ProviderError(status_code=None)
    # - Non-2xx is mapped by raise_for_provider_status (401/403, 404, rest)
    async def _api_request(
        self,
        method: str,
        url: str,
        access_token: str,
        params: dict[str, Any] | None = None,
        max_retries: int = 3,
    ) -> dict[str, Any]:
        """Make rate-limited API request and return the decoded JSON body.

        Raises:
            AuthenticationFailedError: Token rejected (401/403)
            ResourceUnavailableError: Resource not found (404)
            ProviderError: Any other failure, including exhausted 429 retries
        """
        client = await self._get_client()
        headers = {"Authorization": f"Bearer {access_token}"}

        for attempt in range(max_retries + 1):
            try:
                async with self.rate_limiter:
                    response = await client.request(
                        method=method,
                        url=url,
                        params=params,
                        headers=headers,
                    )
            except httpx.TransportError as e:
                logger.warning(f"Spotify request failed ({type(e).__name__}): {url}")
                raise provider_transport_error(e, SERVICE) from e

            if response.status_code == 429:
                retry_after = parse_retry_after(response.headers.get("Retry-After"))

                if attempt >= max_retries:
                    logger.error(
                        f"Spotify API rate limited (429) after {max_retries} retries. "
                        f"URL: {url}. Retry-After: {retry_after or 'not provided'} seconds."
                    )
                    raise ProviderError(
                        SERVICE,
                        status_code=429,
                        provider_message=f"Rate limited after {max_retries} retries",
                    )

                wait_time = await self.rate_limiter.handle_rate_limit_response(retry_after)
                logger.warning(
                    f"Spotify 429 Rate Limit (attempt {attempt + 1}/{max_retries}): "
                    f"Waited {wait_time:.1f}s, retrying {url}"
                )
                continue

            self.rate_limiter.reset_backoff()
            raise_for_provider_status(response, SERVICE)
            return cast(dict[str, Any], response.json())

        # Unreachable, the loop either returns or raises
        raise ProviderError(SERVICE, status_code=429)

    def _basic_auth_header(self) -> str:
        raw = f"{self.settings.client_id}:{self.settings.client_secret}".encode()
        return "Basic " + base64.b64encode(raw).decode()

    # Listen up, the refresh grant is the ONLY call that doesn't go through _api_request.
    # It hits the accounts host (different rate limits) and has its own error semantics:
    # 400 invalid_grant means the refresh token is revoked, 401/403 mean the app or user
    # access is gone. Both mean "user must reconnect", so both become ExpiredCredentialError.
    # Spotify MAY rotate the refresh token, the caller must persist it when present.
    async def refresh_token(self, refresh_token: str) -> dict[str, Any]:
        """
        Refresh access token using refresh token.

        Returns:
            Token response with access_token, expires_in (may be absent) and
            refresh_token (only if Spotify rotated it)

        Raises:
            ConfigurationError: Client id/secret not configured
            ExpiredCredentialError: Refresh token invalid/revoked (requires re-auth)
            ProviderError: Other HTTP or network failures
        """
        if not self.settings.is_configured:
            raise ConfigurationError("Spotify client credentials are not configured")

        client = await self._get_client()

        try:
            response = await client.post(
                self.TOKEN_URL,
                data={"grant_type": "refresh_token", "refresh_token": refresh_token},
                headers={
                    "Authorization": self._basic_auth_header(),
                    "Content-Type": "application/x-www-form-urlencoded",
                },
            )
        except httpx.TransportError as e:
            raise provider_transport_error(e, SERVICE) from e

        if response.status_code == 400:
            try:
                error_code = response.json().get("error", "")
            except ValueError:
                error_code = ""
            if error_code == "invalid_grant":
                description = extract_provider_message(response)
                raise ExpiredCredentialError(
                    SERVICE,
                    message=(
                        f"Refresh token invalid: {description}. "
                        "Please reconnect your Spotify account."
                    ),
                    error_code="invalid_grant",
                )

        if response.status_code in (401, 403):
            raise ExpiredCredentialError(
                SERVICE,
                message="Spotify access denied. Please reconnect your Spotify account.",
                error_code="access_denied",
            )

        raise_for_provider_status(response, SERVICE)
        return cast(dict[str, Any], response.json())

    async def get_top_tracks(
        self,
        access_token: str,
        time_range: str,
        limit: int = 50,
    ) -> dict[str, Any]:
        """Get the user's top tracks for a native time range (raw JSON).

        Args:
            access_token: OAuth access token
            time_range: short_term, medium_term or long_term
            limit: Number of tracks, clamped to Spotify's max of 50
        """
        return await self._api_request(
            method="GET",
            url=f"{self.API_BASE_URL}/me/top/tracks",
            access_token=access_token,
            params={"time_range": time_range, "limit": min(limit, 50)},
        )

    async def get_playlist_tracks(
        self,
        playlist_id: str,
        access_token: str,
        limit: int = 100,
        offset: int = 0,
    ) -> dict[str, Any]:
        """Get a page of tracks for a playlist (raw JSON)."""
        return await self._api_request(
            method="GET",
            url=f"{self.API_BASE_URL}/playlists/{playlist_id}/tracks",
            access_token=access_token,
            params={"limit": min(limit, 100), "offset": offset},
        )

    async def get_current_user(self, access_token: str) -> dict[str, Any]:
        """Get current authenticated user's profile (raw Spotify JSON)."""
        return await self._api_request(
            method="GET",
            url=f"{self.API_BASE_URL}/me",
            access_token=access_token,
        )

    async def __aenter__(self) -> "SpotifyClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()
