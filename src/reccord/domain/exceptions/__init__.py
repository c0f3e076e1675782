"""Domain exceptions."""

from typing import Any

from reccord.domain.entities import SourceService


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, message is stored as an attribute so callers can inspect it without
    # parsing str(exception). Never raise this base directly, use a specific subclass.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class EntityNotFoundException(DomainException):
    """Raised when an entity is not found."""

    # Yo, entity_type and entity_id stay separate so handlers can log them structured.
    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(f"{entity_type} with id {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ValidationException(DomainException):
    """Raised when a request violates a business rule.

    Example: syncing a MANUAL list, or a Top Songs list without a config row.
    """

    pass


class ConfigurationError(DomainException):
    """Application misconfiguration.

    Raised when provider credentials (client id/secret, team/key id) are
    missing at the point a provider is used.

    HTTP Status: 503 (Service Unavailable)
    """

    pass


class AuthenticationError(DomainException):
    """Caller is not authenticated.

    HTTP Status: 401
    """

    pass


class AuthorizationError(DomainException):
    """Caller is authenticated but does not own the resource.

    HTTP Status: 403
    """

    pass


class PersistenceError(DomainException):
    """Writing list items or the watermark failed.

    This is the only error class that is fatal for a list sync attempt.
    Everything coming out of a token manager or fetcher is a SyncSourceError
    and gets downgraded to "this source contributed nothing".
    """

    def __init__(self, message: str, list_id: str | None = None) -> None:
        super().__init__(message)
        self.list_id = list_id


# =============================================================================
# Source errors
# Hey future me - everything below is raised by token managers, provider clients
# and fetchers. The orchestrator catches SyncSourceError at the per-source boundary
# and turns it into a SourceErrorInfo. Anything that is NOT a SyncSourceError
# escaping from a source is a bug and still gets caught there, but logged loudly.
# =============================================================================


class SyncSourceError(DomainException):
    """Base class for failures scoped to one provider."""

    requires_reauth: bool = False

    def __init__(self, message: str, service: SourceService) -> None:
        super().__init__(message)
        self.service = service

    @property
    def error_type(self) -> str:
        """Stable machine-readable error name."""
        return type(self).__name__


class CredentialNotFoundError(SyncSourceError):
    """User has no connection row for this provider.

    Expected after a disconnect, the sync config keeps pointing at the provider.
    """

    requires_reauth = True

    def __init__(self, service: SourceService, user_id: str) -> None:
        super().__init__(
            f"No {service.display_name} connection found. Please connect your account.",
            service,
        )
        self.user_id = user_id


class ExpiredCredentialError(SyncSourceError):
    """Stored token lapsed and cannot be refreshed without the user.

    Apple Music user tokens always end up here, Spotify only when the refresh
    grant itself gets rejected (invalid_grant, 401, 403).
    """

    requires_reauth = True

    def __init__(
        self,
        service: SourceService,
        message: str | None = None,
        error_code: str | None = None,
    ) -> None:
        super().__init__(
            message
            or f"{service.display_name} token expired. Please reconnect your account.",
            service,
        )
        self.error_code = error_code  # e.g. "invalid_grant"


class ProviderError(SyncSourceError):
    """Provider API returned a non-2xx status or could not be reached.

    ``status_code`` is None for transport failures (DNS, timeout, reset).
    ``provider_message`` keeps whatever the provider said, for diagnostics.
    """

    def __init__(
        self,
        service: SourceService,
        status_code: int | None,
        provider_message: str | None = None,
        message: str | None = None,
    ) -> None:
        if message is None:
            status = status_code if status_code is not None else "network error"
            message = f"{service.display_name} API error ({status})"
            if provider_message:
                message = f"{message}: {provider_message}"
        super().__init__(message, service)
        self.status_code = status_code
        self.provider_message = provider_message


class AuthenticationFailedError(ProviderError):
    """Provider rejected the token (401/403).

    Treated like an expired credential for retry purposes.
    """

    requires_reauth = True


class ResourceUnavailableError(ProviderError):
    """Provider returned 404.

    Usually a playlist that was deleted or made private, or an endpoint
    gated behind a subscription tier the user doesn't have.
    """

    pass


# =============================================================================
# Public API - All exceptions that can be imported
# =============================================================================
__all__ = [
    # Base
    "DomainException",
    # Entity / validation
    "EntityNotFoundException",
    "ValidationException",
    # Auth
    "AuthenticationError",
    "AuthorizationError",
    # Configuration
    "ConfigurationError",
    # Persistence
    "PersistenceError",
    # Source errors
    "SyncSourceError",
    "CredentialNotFoundError",
    "ExpiredCredentialError",
    "ProviderError",
    "AuthenticationFailedError",
    "ResourceUnavailableError",
]
