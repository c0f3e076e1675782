"""Logging setup: correlation ids, token redaction, compact and JSON output."""

import contextvars
import logging
import sys
import traceback
import uuid
from pathlib import Path
from typing import Any

from pythonjsonlogger.json import JsonFormatter

# Hey future me, every API request and every list sync in a batch gets its own
# correlation id. contextvars is asyncio-safe, each task sees its own value.
# "" covers startup logs and anything outside a request or sync.
correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)

# Record attributes (passed via extra=) that may carry provider credentials
REDACTED_FIELDS = frozenset(
    {"access_token", "refresh_token", "developer_token", "user_token", "authorization"}
)


def get_correlation_id() -> str:
    """Current correlation id ("" outside a request or sync)."""
    return correlation_id_var.get()


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Bind a correlation id to the current task, generating a UUID if None."""
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())
    correlation_id_var.set(correlation_id)
    return correlation_id


class CorrelationIdFilter(logging.Filter):
    """Stamp the current correlation id onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id()
        return True


# Listen up - token managers log around refreshes with extra={...}. If somebody ever
# passes a token in there it gets masked here before any handler formats it.
class TokenRedactionFilter(logging.Filter):
    """Mask credential values passed as record extras."""

    def filter(self, record: logging.LogRecord) -> bool:
        for field_name in REDACTED_FIELDS:
            value = record.__dict__.get(field_name)
            if value:
                record.__dict__[field_name] = f"***{str(value)[-4:]}"
        return True


def _exception_chain(exc_value: BaseException) -> list[BaseException]:
    """Exceptions linked via __cause__/__context__, root cause first."""
    chain: list[BaseException] = []
    current: BaseException | None = exc_value
    while current is not None and current not in chain:
        chain.append(current)
        current = current.__cause__ or current.__context__
    chain.reverse()
    return chain


def _own_frames(exc: BaseException) -> list[traceback.FrameSummary]:
    if exc.__traceback__ is None:
        return []
    return [
        frame
        for frame in traceback.extract_tb(exc.__traceback__)
        if "reccord" in frame.filename and "/site-packages/" not in frame.filename
    ]


class CompactExceptionFormatter(logging.Formatter):
    """Console formatter that prints exception chains root cause first.

    httpx/SQLAlchemy frames are dropped, only frames from our own package stay:

    ERROR   │ reccord.application.workers.list_sync_worker:88 │ Sweep failed
    ╰─► ConnectError: All connection attempts failed
    ╰─► ProviderError: Spotify API error (network error)
        File "spotify_client.py", line 97, in _api_request
          raise provider_transport_error(e, SERVICE) from e
    """

    def formatException(self, ei: Any) -> str:
        _, exc_value, _ = ei
        if exc_value is None:
            return ""

        lines: list[str] = []
        for exc in _exception_chain(exc_value):
            lines.append(f"╰─► {type(exc).__name__}: {exc}")
            for frame in _own_frames(exc):
                lines.append(
                    f'    File "{Path(frame.filename).name}", line {frame.lineno}, in {frame.name}'
                )
                if frame.line:
                    lines.append(f"      {frame.line.strip()}")
        return "\n".join(lines)


class CustomJsonFormatter(JsonFormatter):
    """One JSON object per line for log shipping.

    Extras such as list_id, service or duration_ms end up as top-level keys.
    """

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = self.formatTime(record, self.datefmt)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["line"] = record.lineno

        correlation_id = getattr(record, "correlation_id", "")
        if correlation_id:
            log_record["correlation_id"] = correlation_id
        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)


def _build_formatter(json_format: bool, app_name: str) -> logging.Formatter:
    if json_format:
        return CustomJsonFormatter(
            "%(timestamp)s %(level)s %(name)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
            static_fields={"app": app_name},
        )
    return CompactExceptionFormatter(
        fmt="%(asctime)s │ %(levelname)-7s │ %(name)s:%(lineno)d │ %(message)s",
        datefmt="%H:%M:%S",
    )


# Listen future me, call this ONCE at startup (lifespan or CLI). It replaces every
# handler on the root logger, so calling it again (tests, reloads) is harmless.
def configure_logging(
    log_level: str = "INFO",
    json_format: bool = False,
    app_name: str = "reccord",
) -> None:
    """Configure the root logger.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        json_format: JSON lines instead of the compact console format
        app_name: Added as a static "app" field in JSON output
    """
    root_logger = logging.getLogger()
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)

    level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(CorrelationIdFilter())
    handler.addFilter(TokenRedactionFilter())
    handler.setFormatter(_build_formatter(json_format, app_name))
    root_logger.addHandler(handler)

    # Provider request lines from httpx would drown the sync logs
    for noisy in ("httpx", "httpcore", "asyncio", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging configured",
        extra={"app_name": app_name, "log_level": log_level, "json_format": json_format},
    )
