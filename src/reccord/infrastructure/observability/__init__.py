"""Observability infrastructure for structured logging."""

from reccord.infrastructure.observability.log_messages import LogMessages, LogTemplate
from reccord.infrastructure.observability.logger_template import (
    log_operation,
    log_worker_health,
)
from reccord.infrastructure.observability.logging import (
    configure_logging,
    get_correlation_id,
    set_correlation_id,
)
from reccord.infrastructure.observability.middleware import RequestLoggingMiddleware

__all__ = [
    "LogMessages",
    "LogTemplate",
    "RequestLoggingMiddleware",
    "configure_logging",
    "get_correlation_id",
    "log_operation",
    "log_worker_health",
    "set_correlation_id",
]
