"""Apple Music API HTTP client."""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any, cast

import httpx
from jose import JOSEError, jwt

from reccord.config.settings import AppleMusicSettings
from reccord.domain.entities import SourceService
from reccord.domain.exceptions import ConfigurationError, ProviderError
from reccord.infrastructure.integrations.errors import (
    provider_transport_error,
    raise_for_provider_status,
)
from reccord.infrastructure.rate_limiter import RateLimiter, parse_retry_after

logger = logging.getLogger(__name__)

SERVICE = SourceService.APPLE_MUSIC


class AppleMusicClient:
    """HTTP client for the Apple Music API (MusicKit).

    Every personal endpoint needs TWO tokens: the developer token (a JWT we
    sign ourselves, sent as Bearer) and the Music User Token the user obtained
    through MusicKit JS (sent as Music-User-Token header).
    """

    API_BASE_URL = "https://api.music.apple.com/v1"

    def __init__(
        self,
        settings: AppleMusicSettings,
        rate_limiter: RateLimiter | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        """
        Initialize Apple Music client.

        Args:
            settings: Apple Music configuration settings
            rate_limiter: Shared limiter, a fresh one is built when omitted
            http_client: Shared HTTP client owned by the caller
            timeout: Per-request timeout for clients we create ourselves
        """
        self.settings = settings
        self.rate_limiter = rate_limiter or RateLimiter.for_apple_music()
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

    # Hey future me - the developer token is an ES256 JWT signed with the .p8 key from the
    # Apple developer portal. Claims: iss=team id, iat, exp (Apple caps it at 6 months).
    # The key id goes into the JOSE header as "kid". This ALWAYS signs a fresh token,
    # caching is DeveloperTokenProvider's job.
    def generate_developer_token(self, issued_at: datetime | None = None) -> str:
        """Sign a new developer token.

        Raises:
            ConfigurationError: Team id, key id or private key missing or unusable
        """
        if not self.settings.is_configured:
            raise ConfigurationError(
                "Apple Music credentials are not set. Required: APPLE_MUSIC__TEAM_ID, "
                "APPLE_MUSIC__KEY_ID, APPLE_MUSIC__PRIVATE_KEY"
            )

        issued_at = issued_at or datetime.now(UTC)
        expires_at = issued_at + timedelta(seconds=self.settings.developer_token_ttl_seconds)
        claims = {
            "iss": self.settings.team_id,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }

        try:
            token = jwt.encode(
                claims,
                self.settings.private_key,
                algorithm="ES256",
                headers={"kid": self.settings.key_id},
            )
        except JOSEError as e:
            raise ConfigurationError(
                f"Apple Music private key could not sign a developer token: {e}"
            ) from e

        logger.debug(f"Signed Apple Music developer token (expires {expires_at.isoformat()})")
        return cast(str, token)

    # Same contract as SpotifyClient._api_request: rate limited, 429 retried with
    # Retry-After up to 3 times, network errors and non-2xx mapped to domain errors.
    async def _api_request(
        self,
        method: str,
        path: str,
        developer_token: str,
        user_token: str | None = None,
        params: dict[str, Any] | None = None,
        max_retries: int = 3,
    ) -> dict[str, Any]:
        """Make rate-limited API request and return the decoded JSON body."""
        client = await self._get_client()
        url = f"{self.API_BASE_URL}{path}"
        headers = {"Authorization": f"Bearer {developer_token}"}
        if user_token:
            headers["Music-User-Token"] = user_token

        for attempt in range(max_retries + 1):
            try:
                async with self.rate_limiter:
                    response = await client.request(
                        method=method, url=url, params=params, headers=headers
                    )
            except httpx.TransportError as e:
                logger.warning(f"Apple Music request failed ({type(e).__name__}): {url}")
                raise provider_transport_error(e, SERVICE) from e

            if response.status_code == 429:
                retry_after = parse_retry_after(response.headers.get("Retry-After"))

                if attempt >= max_retries:
                    logger.error(
                        f"Apple Music API rate limited (429) after {max_retries} retries. "
                        f"URL: {url}"
                    )
                    raise ProviderError(
                        SERVICE,
                        status_code=429,
                        provider_message=f"Rate limited after {max_retries} retries",
                    )

                wait_time = await self.rate_limiter.handle_rate_limit_response(retry_after)
                logger.warning(
                    f"Apple Music 429 Rate Limit (attempt {attempt + 1}/{max_retries}): "
                    f"Waited {wait_time:.1f}s, retrying {url}"
                )
                continue

            self.rate_limiter.reset_backoff()
            raise_for_provider_status(response, SERVICE)
            # Some endpoints answer 204 when the history is empty
            if response.status_code == 204 or not response.content:
                return {"data": []}
            return cast(dict[str, Any], response.json())

        raise ProviderError(SERVICE, status_code=429)

    async def get_recently_played(
        self, developer_token: str, user_token: str, limit: int = 25
    ) -> dict[str, Any]:
        """Get recently played tracks, newest first (raw JSON)."""
        return await self._api_request(
            "GET",
            "/me/recent/played/tracks",
            developer_token,
            user_token,
            params={"limit": limit},
        )

    # Yo, heavy rotation is Apple's "what you've been into" shelf. It mixes albums,
    # playlists and songs and carries NO play counts or timestamps.
    async def get_heavy_rotation(
        self, developer_token: str, user_token: str, limit: int = 25
    ) -> dict[str, Any]:
        """Get heavy rotation content (raw JSON)."""
        return await self._api_request(
            "GET",
            "/me/history/heavy-rotation",
            developer_token,
            user_token,
            params={"limit": limit},
        )

    async def get_catalog_playlist(
        self,
        playlist_id: str,
        developer_token: str,
        user_token: str,
        storefront: str | None = None,
    ) -> dict[str, Any]:
        """Get a catalog playlist including its tracks relationship (raw JSON)."""
        storefront = storefront or self.settings.storefront
        return await self._api_request(
            "GET",
            f"/catalog/{storefront}/playlists/{playlist_id}",
            developer_token,
            user_token,
        )

    async def get_current_user(self, developer_token: str, user_token: str) -> dict[str, Any]:
        """Get the user's storefront, Apple's closest thing to a /me identity."""
        return await self._api_request(
            "GET", "/me/storefront", developer_token, user_token
        )

    async def __aenter__(self) -> "AppleMusicClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()
