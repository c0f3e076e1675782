"""Mapping of provider HTTP failures onto the domain error taxonomy."""

import logging
from typing import Any

import httpx

from reccord.domain.entities import SourceService
from reccord.domain.exceptions import (
    AuthenticationFailedError,
    ProviderError,
    ResourceUnavailableError,
)

logger = logging.getLogger(__name__)


def extract_provider_message(response: httpx.Response) -> str | None:
    """Pull a human-readable error message out of a provider error body.

    Handles the three shapes we actually see:
    - Spotify Web API: {"error": {"status": 401, "message": "..."}}
    - OAuth token endpoint: {"error": "invalid_grant", "error_description": "..."}
    - Apple Music API: {"errors": [{"title": "...", "detail": "..."}]}
    Falls back to the (truncated) raw body.
    """
    try:
        body: Any = response.json()
    except ValueError:
        text = response.text.strip()
        return text[:200] or None

    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return str(body.get("error_description") or error)

        errors = body.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            first = errors[0]
            return str(first.get("detail") or first.get("title") or "") or None

    return None


# Hey future me - this is THE single place where an HTTP status turns into a domain
# error. Fetchers never look at status codes themselves. 401/403 means the token was
# rejected (user must reconnect), 404 means the resource is gone or gated behind a
# subscription, everything else is a generic ProviderError with the status preserved.
def raise_for_provider_status(response: httpx.Response, service: SourceService) -> None:
    """Raise the matching ProviderError subclass for a non-2xx response."""
    if response.is_success:
        return

    status = response.status_code
    provider_message = extract_provider_message(response)

    logger.warning(
        f"{service.display_name} API returned {status}: "
        f"{provider_message or 'no message'} ({response.request.url})"
    )

    if status in (401, 403):
        raise AuthenticationFailedError(service, status, provider_message)
    if status == 404:
        raise ResourceUnavailableError(service, status, provider_message)
    raise ProviderError(service, status, provider_message)


def provider_transport_error(exc: httpx.TransportError, service: SourceService) -> ProviderError:
    """Wrap a network failure (timeout, DNS, reset) as a ProviderError."""
    return ProviderError(
        service,
        status_code=None,
        provider_message=f"{type(exc).__name__}: {exc}",
    )


__all__ = [
    "extract_provider_message",
    "provider_transport_error",
    "raise_for_provider_status",
]
