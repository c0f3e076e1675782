"""Middleware for observability: correlation ids and request logging."""

import logging
import time
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from reccord.infrastructure.observability.logging import (
    get_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger(__name__)

CORRELATION_ID_HEADER = "X-Correlation-ID"


# Hey future me, this middleware runs around EVERY request. It takes the correlation id from
# the X-Correlation-ID header (or generates one), puts it in the contextvar so every log line
# of the request carries it, and echoes it back in the response header. Probe requests under
# /health are not logged, k8s hits them every few seconds.
class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Correlation id propagation plus one log line per request."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        set_correlation_id(request.headers.get(CORRELATION_ID_HEADER) or None)

        method = request.method
        path = request.url.path
        is_probe = path.startswith("/health")

        start_time = time.monotonic()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(
                f"Request failed: {method} {path}",
                extra={
                    "method": method,
                    "path": path,
                    "duration_ms": int((time.monotonic() - start_time) * 1000),
                    "error_type": type(e).__name__,
                },
            )
            raise

        if not is_probe:
            duration_ms = int((time.monotonic() - start_time) * 1000)
            status_emoji = "✓" if response.status_code < 400 else "✗"
            logger.info(
                f"{status_emoji} {method} {path} → {response.status_code} ({duration_ms}ms)",
                extra={
                    "method": method,
                    "path": path,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                },
            )

        response.headers[CORRELATION_ID_HEADER] = get_correlation_id()
        return response
