"""Centralized logging configuration for redisrouter.

Loggers are namespaced under ``redisrouter`` and stamped with the lookup key
held by the active routing context, so build and routing events can be
correlated with the sub-database a unit of work asked for.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any

import msgspec

from redisrouter.context import routing_context

if TYPE_CHECKING:
    from collections.abc import Sequence
    from logging import LogRecord
    from typing import TextIO

__all__ = (
    "RoutingContextFilter",
    "StructuredFormatter",
    "configure_logging",
    "get_logger",
    "log_with_context",
)

ROOT_LOGGER_NAME = "redisrouter"
TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class StructuredFormatter(logging.Formatter):
    """Structured JSON formatter with lookup key support."""

    def format(self, record: LogRecord) -> str:
        """Format log record as structured JSON.

        Args:
            record: The log record to format

        Returns:
            JSON formatted log entry
        """
        log_entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        lookup_key = getattr(record, "lookup_key", None)
        if lookup_key is not None:
            log_entry["lookup_key"] = lookup_key

        if hasattr(record, "extra_fields"):
            log_entry.update(record.extra_fields)  # pyright: ignore

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return msgspec.json.encode(log_entry).decode("utf-8")


class RoutingContextFilter(logging.Filter):
    """Filter that adds the active lookup key to log records.

    Records that already carry a ``lookup_key`` (see :func:`log_with_context`)
    are left alone, so a router logging against its own context wins over the
    process-wide one.
    """

    def filter(self, record: LogRecord) -> bool:
        """Add the lookup key to the record if one is set.

        Args:
            record: The log record to filter

        Returns:
            Always True to pass the record through
        """
        if getattr(record, "lookup_key", None) is not None:
            return True
        lookup_key = routing_context.get()
        if lookup_key is not None:
            record.lookup_key = lookup_key  # type: ignore[attr-defined]
        return True


def get_logger(name: str | None = None) -> logging.Logger:
    """Get a logger instance with standardized configuration.

    Args:
        name: Logger name. If not provided, returns the root redisrouter logger.

    Returns:
        Configured logger instance
    """
    if name is None:
        return logging.getLogger(ROOT_LOGGER_NAME)

    if not name.startswith(ROOT_LOGGER_NAME):
        name = f"{ROOT_LOGGER_NAME}.{name}"

    logger = logging.getLogger(name)

    if not any(isinstance(f, RoutingContextFilter) for f in logger.filters):
        logger.addFilter(RoutingContextFilter())

    return logger


def configure_logging(
    level: int | str = "INFO",
    *,
    structured: bool = True,
    stream: TextIO | None = None,
    handlers: Sequence[logging.Handler] = (),
) -> logging.Logger:
    """Send redisrouter's log records to a stream.

    Replaces any handlers a previous call installed and stops records from
    propagating to the root logger.

    Args:
        level: Logging level name or number.
        structured: Emit JSON lines via :class:`StructuredFormatter` instead of plain text.
        stream: Target stream, ``sys.stderr`` when omitted.
        handlers: Additional handlers to attach.

    Returns:
        The configured ``redisrouter`` logger.
    """
    logger = get_logger()
    logger.setLevel(level.upper() if isinstance(level, str) else level)
    logger.handlers.clear()

    stream_handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    stream_handler.setFormatter(StructuredFormatter() if structured else logging.Formatter(TEXT_FORMAT))
    logger.addHandler(stream_handler)
    for handler in handlers:
        logger.addHandler(handler)

    logger.propagate = False
    return logger


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    *args: Any,
    lookup_key: int | None = None,
    **extra_fields: Any,
) -> None:
    """Log a message stamped with a lookup key and structured extra fields.

    Args:
        logger: The logger to use
        level: Log level
        message: Log message, ``%``-formatted with ``args``
        *args: Message arguments
        lookup_key: Lookup key to record instead of the process-wide one
        **extra_fields: Additional fields to include in structured logs
    """
    if not logger.isEnabledFor(level):
        return
    extra: dict[str, Any] = {"extra_fields": extra_fields}
    if lookup_key is not None:
        extra["lookup_key"] = lookup_key
    logger.log(level, message, *args, extra=extra, stacklevel=2)
