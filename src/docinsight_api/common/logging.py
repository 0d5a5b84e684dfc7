"""Logging configuration and helpers for the DocInsight API.

The process logs through the standard :mod:`logging` library with a single
console handler. Each record renders as one line::

    2026-03-02T10:15:00.120Z INFO  docinsight_api.features.ingestion.service [cid=6f1c..] ingestion.trigger.success job_id=... document_id=...

Request handlers get a correlation ID bound by ``RequestContextMiddleware``;
background tasks (simulation, cleanup) log with ``cid=-``.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from docinsight_api.settings import Settings

_CORRELATION_ID: ContextVar[str | None] = ContextVar(
    "docinsight_correlation_id",
    default=None,
)

# Attributes handled by logging itself; never echoed as key=value extras.
_STANDARD_ATTRS: frozenset[str] = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "message",
        "asctime",
        "correlation_id",
        "taskName",
        "color_message",
    }
)

_CONFIGURED_FLAG = "_docinsight_configured"

_THIRD_PARTY_LOGGERS = (
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
    "alembic",
    "alembic.runtime.migration",
    "sqlalchemy",
    "httpx",
)


class ConsoleLogFormatter(logging.Formatter):
    """Render log records as single-line console output with key=value extras."""

    _time_format = "%Y-%m-%dT%H:%M:%S"

    def __init__(self) -> None:
        fmt = "%(asctime)s %(levelname)-5s %(name)s [cid=%(correlation_id)s] %(message)s"
        super().__init__(fmt=fmt, datefmt=self._time_format)

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        dt = datetime.fromtimestamp(record.created, tz=UTC)
        return f"{dt.strftime(datefmt or self._time_format)}.{int(record.msecs):03d}Z"

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - std signature
        record.correlation_id = (
            getattr(record, "correlation_id", None) or current_correlation_id() or "-"
        )
        base = super().format(record)

        extras = [
            f"{key}={_format_extra_value(value)}"
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        ]
        if extras:
            return f"{base} " + " ".join(extras)
        return base


def setup_logging(settings: Settings) -> None:
    """Install the console handler on the root logger.

    The level comes from ``settings.logging_level`` (env:
    ``DOCINSIGHT_LOGGING_LEVEL``). Repeated calls only adjust the level.
    """
    root_logger = logging.getLogger()
    level = getattr(logging, settings.logging_level.upper(), logging.INFO)

    if getattr(root_logger, _CONFIGURED_FLAG, False):
        root_logger.setLevel(level)
        return

    handler = logging.StreamHandler()
    handler.setFormatter(ConsoleLogFormatter())
    root_logger.handlers = [handler]
    root_logger.setLevel(level)

    for name in _THIRD_PARTY_LOGGERS:
        logger = logging.getLogger(name)
        logger.handlers.clear()
        logger.propagate = True
    # httpx logs every request at INFO; keep dispatch noise out of app logs.
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))

    setattr(root_logger, _CONFIGURED_FLAG, True)


def bind_request_context(correlation_id: str | None) -> None:
    """Bind a correlation ID to the logging context for the current request."""
    _CORRELATION_ID.set(correlation_id)


def current_correlation_id() -> str | None:
    return _CORRELATION_ID.get()


def clear_request_context() -> None:
    _CORRELATION_ID.set(None)


def log_context(
    *,
    job_id: UUID | str | None = None,
    document_id: UUID | str | None = None,
    user_id: UUID | str | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """Build a consistent ``extra`` payload for structured logs.

    Example::

        logger.info(
            "ingestion.retry.success",
            extra=log_context(job_id=job.id, user_id=principal.user_id, retry_count=2),
        )
    """
    ctx: dict[str, Any] = {}
    if job_id is not None:
        ctx["job_id"] = str(job_id)
    if document_id is not None:
        ctx["document_id"] = str(document_id)
    if user_id is not None:
        ctx["user_id"] = str(user_id)
    ctx.update(extra)
    return ctx


def _format_extra_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, str) and " " in value:
        return repr(value)
    return str(value)


__all__ = [
    "ConsoleLogFormatter",
    "bind_request_context",
    "clear_request_context",
    "current_correlation_id",
    "log_context",
    "setup_logging",
]
