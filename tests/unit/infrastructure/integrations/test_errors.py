"""Tests for provider error mapping."""

import httpx
import pytest

from reccord.domain.entities import SourceService
from reccord.domain.exceptions import (
    AuthenticationFailedError,
    ProviderError,
    ResourceUnavailableError,
)
from reccord.infrastructure.integrations.errors import (
    extract_provider_message,
    provider_transport_error,
    raise_for_provider_status,
)

REQUEST = httpx.Request("GET", "https://api.example.test/v1/thing")


def _response(status: int, **kwargs) -> httpx.Response:
    return httpx.Response(status, request=REQUEST, **kwargs)


class TestExtractProviderMessage:
    """Test error body parsing for the shapes providers send."""

    def test_spotify_web_api_shape(self) -> None:
        """{"error": {"message": ...}}"""
        response = _response(401, json={"error": {"status": 401, "message": "Invalid token"}})

        assert extract_provider_message(response) == "Invalid token"

    def test_oauth_shape(self) -> None:
        """error_description wins over the error code."""
        response = _response(
            400, json={"error": "invalid_grant", "error_description": "Refresh token revoked"}
        )

        assert extract_provider_message(response) == "Refresh token revoked"

    def test_oauth_shape_without_description(self) -> None:
        """Bare error code is still a message."""
        assert extract_provider_message(_response(400, json={"error": "invalid_client"})) == (
            "invalid_client"
        )

    def test_apple_shape(self) -> None:
        """{"errors": [{"detail": ...}]}"""
        response = _response(
            403, json={"errors": [{"title": "Forbidden", "detail": "No subscription"}]}
        )

        assert extract_provider_message(response) == "No subscription"

    def test_plain_text_body(self) -> None:
        """Non-JSON bodies are truncated raw text."""
        response = _response(502, text="x" * 500)

        assert extract_provider_message(response) == "x" * 200

    def test_empty_body(self) -> None:
        """Nothing to say is None."""
        assert extract_provider_message(_response(500)) is None


class TestRaiseForProviderStatus:
    """Test status to exception mapping."""

    def test_success_does_nothing(self) -> None:
        """2xx passes."""
        raise_for_provider_status(_response(200, json={}), SourceService.SPOTIFY)

    @pytest.mark.parametrize(
        ("status", "error_class"),
        [
            (401, AuthenticationFailedError),
            (403, AuthenticationFailedError),
            (404, ResourceUnavailableError),
            (500, ProviderError),
            (418, ProviderError),
        ],
    )
    def test_mapping(self, status: int, error_class: type[ProviderError]) -> None:
        """Each status lands on its error class with the status kept."""
        with pytest.raises(error_class) as exc_info:
            raise_for_provider_status(_response(status), SourceService.APPLE_MUSIC)

        assert type(exc_info.value) is error_class
        assert exc_info.value.status_code == status
        assert exc_info.value.service is SourceService.APPLE_MUSIC

    def test_auth_failure_requires_reauth(self) -> None:
        """401 asks the user to reconnect, 500 does not."""
        with pytest.raises(ProviderError) as auth_error:
            raise_for_provider_status(_response(401), SourceService.SPOTIFY)
        with pytest.raises(ProviderError) as server_error:
            raise_for_provider_status(_response(500), SourceService.SPOTIFY)

        assert auth_error.value.requires_reauth is True
        assert server_error.value.requires_reauth is False


class TestTransportError:
    """Test network failure wrapping."""

    def test_no_status_code(self) -> None:
        """Transport errors carry no status."""
        error = provider_transport_error(httpx.ReadTimeout("slow"), SourceService.SPOTIFY)

        assert error.status_code is None
        assert error.provider_message == "ReadTimeout: slow"
        assert "network error" in error.message
