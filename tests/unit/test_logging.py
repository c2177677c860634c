"""Tests for redisrouter.utils.logging module."""

import io
import logging
import sys
from collections.abc import Iterator

import msgspec
import pytest

from redisrouter.context import routing_context
from redisrouter.utils.logging import (
    RoutingContextFilter,
    StructuredFormatter,
    configure_logging,
    get_logger,
    log_with_context,
)

pytestmark = pytest.mark.xdist_group("logging")


def _record(message: str = "handle cached") -> logging.LogRecord:
    return logging.LogRecord("redisrouter.router", logging.INFO, __file__, 10, message, (), None)


def test_get_logger_namespaces_names() -> None:
    """Short names are placed under the redisrouter logger."""
    assert get_logger().name == "redisrouter"
    assert get_logger("router").name == "redisrouter.router"
    assert get_logger("redisrouter.registry").name == "redisrouter.registry"


def test_get_logger_adds_filter_once() -> None:
    """Repeated lookups do not stack filters."""
    get_logger("test_filter_once")
    logger = get_logger("test_filter_once")

    assert sum(isinstance(f, RoutingContextFilter) for f in logger.filters) == 1


def test_filter_stamps_lookup_key() -> None:
    """Records emitted inside a scope carry the declared index."""
    record = _record()

    with routing_context.scope(7):
        assert RoutingContextFilter().filter(record)

    assert record.lookup_key == 7  # type: ignore[attr-defined]


def test_filter_leaves_record_alone_without_key() -> None:
    """With no declared index the record gets no lookup key."""
    record = _record()

    assert RoutingContextFilter().filter(record)
    assert not hasattr(record, "lookup_key")


def test_structured_formatter_emits_json() -> None:
    """The formatter produces a JSON object with the lookup key and extra fields."""
    record = _record("built handle")
    record.lookup_key = 3  # type: ignore[attr-defined]
    record.extra_fields = {"datasource": "orders"}  # type: ignore[attr-defined]

    entry = msgspec.json.decode(StructuredFormatter().format(record))

    assert entry["message"] == "built handle"
    assert entry["level"] == "INFO"
    assert entry["logger"] == "redisrouter.router"
    assert entry["lookup_key"] == 3
    assert entry["datasource"] == "orders"


def test_structured_formatter_includes_exception() -> None:
    """Exception tracebacks are included in the entry."""
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = logging.LogRecord("redisrouter", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())

    entry = msgspec.json.decode(StructuredFormatter().format(record))

    assert "RuntimeError: boom" in entry["exception"]


def test_filter_keeps_explicit_lookup_key() -> None:
    """A key already on the record is not replaced by the process-wide one."""
    record = _record()
    record.lookup_key = 4  # type: ignore[attr-defined]

    with routing_context.scope(9):
        RoutingContextFilter().filter(record)

    assert record.lookup_key == 4  # type: ignore[attr-defined]


@pytest.fixture
def package_logger() -> Iterator[logging.Logger]:
    logger = logging.getLogger("redisrouter")
    saved = (logger.level, list(logger.handlers), logger.propagate)
    yield logger
    logger.setLevel(saved[0])
    logger.handlers[:] = saved[1]
    logger.propagate = saved[2]


def test_configure_logging_structured(package_logger: logging.Logger) -> None:
    """Structured output writes one JSON object per record to the stream."""
    stream = io.StringIO()

    configured = configure_logging("debug", stream=stream)
    get_logger("registry").info("registered %s", "orders")

    assert configured is package_logger
    assert package_logger.level == logging.DEBUG
    assert not package_logger.propagate
    entry = msgspec.json.decode(stream.getvalue().splitlines()[-1])
    assert entry["message"] == "registered orders"
    assert entry["logger"] == "redisrouter.registry"


def test_configure_logging_replaces_handlers(package_logger: logging.Logger) -> None:
    """A second call swaps the handlers of the first one."""
    extra = logging.NullHandler()
    configure_logging(handlers=[extra])
    configure_logging(logging.WARNING, structured=False, stream=io.StringIO())

    assert extra not in package_logger.handlers
    assert len(package_logger.handlers) == 1
    assert package_logger.level == logging.WARNING


def test_log_with_context_stamps_key_and_fields(caplog: pytest.LogCaptureFixture) -> None:
    """An explicit lookup key and extra fields end up on the record."""
    logger = get_logger("test_log_with_context")

    with caplog.at_level(logging.INFO, logger="redisrouter"), routing_context.scope(1):
        log_with_context(logger, logging.INFO, "cached %s", "orders", lookup_key=6, datasource="orders")

    record = caplog.records[-1]
    assert record.getMessage() == "cached orders"
    assert record.lookup_key == 6  # type: ignore[attr-defined]
    assert record.extra_fields == {"datasource": "orders"}  # type: ignore[attr-defined]


def test_log_with_context_skips_disabled_levels(caplog: pytest.LogCaptureFixture) -> None:
    """Nothing is emitted below the logger's level."""
    logger = get_logger("test_log_with_context_disabled")

    with caplog.at_level(logging.WARNING, logger="redisrouter"):
        log_with_context(logger, logging.DEBUG, "not shown")

    assert not caplog.records
