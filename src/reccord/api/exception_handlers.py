"""Map domain exceptions onto HTTP responses.

Provider failures inside a sync never get here, ListSyncService reports them in the
200 response body. What does reach these handlers is either a request problem
(unknown list, wrong owner, bad cron secret) or an infrastructure problem (missing
provider credentials, failed item write, locked SQLite file).
"""

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

from reccord.domain.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConfigurationError,
    DomainException,
    EntityNotFoundException,
    PersistenceError,
    SyncSourceError,
    ValidationException,
)

logger = logging.getLogger(__name__)

# Status and log level per plain domain exception. Order matters, first isinstance match
# wins, so subclasses go before their bases.
_DOMAIN_STATUS: tuple[tuple[type[DomainException], int, int], ...] = (
    (EntityNotFoundException, status.HTTP_404_NOT_FOUND, logging.INFO),
    (ValidationException, status.HTTP_422_UNPROCESSABLE_ENTITY, logging.WARNING),
    (AuthenticationError, status.HTTP_401_UNAUTHORIZED, logging.WARNING),
    (AuthorizationError, status.HTTP_403_FORBIDDEN, logging.WARNING),
    (ConfigurationError, status.HTTP_503_SERVICE_UNAVAILABLE, logging.ERROR),
    (PersistenceError, status.HTTP_500_INTERNAL_SERVER_ERROR, logging.ERROR),
)


def _to_jsonable(value: Any) -> Any:
    # exc.errors() may carry the raw body as bytes in "input"
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, dict):
        return {k: _to_jsonable(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [_to_jsonable(v) for v in value]
    return value


def _status_for(exc: DomainException) -> tuple[int, int]:
    for exc_type, status_code, level in _DOMAIN_STATUS:
        if isinstance(exc, exc_type):
            return status_code, level
    return status.HTTP_500_INTERNAL_SERVER_ERROR, logging.ERROR


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    """Answer a plain domain exception with its mapped status and message."""
    status_code, level = _status_for(exc)
    logger.log(
        level,
        "%s at %s: %s",
        type(exc).__name__,
        request.url.path,
        exc.message,
        extra={"path": request.url.path, "status_code": status_code},
    )
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(
        status_code=status_code, content={"detail": exc.message}, headers=headers
    )


# Yo, this only fires when a source error escapes to a route directly (e.g. the
# developer-token endpoint). Inside sync_list they are turned into SourceErrorInfo.
async def sync_source_error_handler(request: Request, exc: SyncSourceError) -> JSONResponse:
    """Provider failure outside a sync: 502 with the reconnect hint."""
    logger.error(
        "%s failed at %s: %s",
        exc.service.display_name,
        request.url.path,
        exc.message,
        extra={
            "path": request.url.path,
            "service": exc.service.value,
            "error_type": exc.error_type,
        },
    )
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={
            "detail": exc.message,
            "service": exc.service.value,
            "requires_reauth": exc.requires_reauth,
        },
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Bad path/query/body values (unknown source type, for example): 422."""
    errors = _to_jsonable(list(exc.errors()))
    logger.info("Request validation failed at %s", request.url.path, extra={"errors": errors})
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": errors}
    )


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Plain HTTPException (503 from missing app.state, 404 for unknown routes)."""
    level = logging.ERROR if exc.status_code >= 500 else logging.INFO
    logger.log(level, "HTTP %d at %s: %s", exc.status_code, request.url.path, exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


# Hey future me - SQLite "database is locked" while the worker is mid-sweep is
# transient. Tell the client to retry instead of handing out a bare 500.
async def operational_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
    """Locked/busy database: 503 with Retry-After, anything else: 500."""
    message = str(exc)
    if "locked" in message.lower() or "busy" in message.lower():
        logger.warning("Database busy at %s", request.url.path)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Database is busy, please retry"},
            headers={"Retry-After": "3"},
        )
    logger.error("Database error at %s: %s", request.url.path, message[:200], exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Database error"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install every handler on the app. Call from create_app() before serving.

    Mapping:
    - EntityNotFoundException -> 404
    - ValidationException, RequestValidationError -> 422
    - AuthenticationError -> 401 (with WWW-Authenticate)
    - AuthorizationError -> 403
    - ConfigurationError -> 503
    - PersistenceError -> 500
    - SyncSourceError -> 502 with service and requires_reauth
    - OperationalError -> 503 when SQLite is locked, else 500
    """
    app.add_exception_handler(SyncSourceError, sync_source_error_handler)
    app.add_exception_handler(DomainException, domain_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(OperationalError, operational_error_handler)
