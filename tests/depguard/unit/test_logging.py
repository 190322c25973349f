from __future__ import annotations

import json
import logging
import sys
from collections.abc import Callable, Iterator
from typing import Protocol, cast

import pytest
import structlog

from depguard.logging import (
    configure_structlog,
    get_breaker_logger,
    get_log_level_value,
    log_exception,
    log_info,
    log_warning,
)
from tests.depguard.support.fakes import FakeLogger


def _configured_renderer() -> object:
    root_handler = logging.getLogger().handlers[0]
    formatter = root_handler.formatter
    assert isinstance(formatter, structlog.stdlib.ProcessorFormatter)
    return formatter.processors[-1]


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    yield
    structlog.reset_defaults()


def test_get_log_level_value_maps_known_levels() -> None:
    assert get_log_level_value("debug") == logging.DEBUG
    assert get_log_level_value("INFO") == logging.INFO
    assert get_log_level_value(" warning ") == logging.WARNING
    assert get_log_level_value("ERROR") == logging.ERROR
    assert get_log_level_value("critical") == logging.CRITICAL


def test_get_log_level_value_rejects_unknown_level() -> None:
    with pytest.raises(ValueError, match="log_level must be one of"):
        get_log_level_value("TRACE")


def test_configure_structlog_idempotent(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(sys.stderr, "isatty", lambda: False, raising=False)

    first_logger = configure_structlog(log_level="INFO")
    second_logger = configure_structlog(log_level="DEBUG")

    assert len(logging.getLogger().handlers) == 1
    assert logging.getLogger().level == logging.DEBUG
    assert first_logger is not None
    assert second_logger is not None


def test_configure_structlog_uses_console_renderer_for_tty(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(sys.stderr, "isatty", lambda: True, raising=False)

    configure_structlog(log_level="INFO")
    renderer = _configured_renderer()

    assert isinstance(renderer, structlog.dev.ConsoleRenderer)


def test_configure_structlog_uses_json_renderer_for_non_tty(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(sys.stderr, "isatty", lambda: False, raising=False)

    configure_structlog(log_level="INFO")
    renderer = _configured_renderer()

    assert isinstance(renderer, structlog.processors.JSONRenderer)


def test_configured_formatter_renders_json_events(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(sys.stderr, "isatty", lambda: False, raising=False)
    configure_structlog(log_level="INFO")
    root_handler = logging.getLogger().handlers[0]
    formatter = root_handler.formatter
    assert formatter is not None

    record = logging.LogRecord(
        name="depguard.test",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg="circuit_state_changed",
        args=None,
        exc_info=None,
    )
    payload = json.loads(formatter.format(record))

    assert payload["event"] == "circuit_state_changed"
    assert payload["level"] == "warning"
    assert "timestamp" in payload
    assert "service" not in payload


class _CaptureHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


class _RecordWithStructuredFields(Protocol):
    breaker: str
    retry_after: float


@pytest.mark.parametrize(
    ("log_fn", "level"),
    [
        (log_info, "info"),
        (log_warning, "warning"),
        (log_exception, "exception"),
    ],
)
def test_structured_log_helpers_forward_keyword_fields(
    log_fn: Callable[..., None],
    level: str,
) -> None:
    logger = FakeLogger()

    log_fn(logger, "circuit.event", breaker="db", attempt=3)

    assert logger.calls == [
        (
            level,
            "circuit.event",
            {"breaker": "db", "attempt": 3},
        )
    ]


def test_structured_log_helpers_support_stdlib_logger_extra() -> None:
    logger = logging.getLogger("tests.depguard.logging.helpers")
    logger.handlers.clear()
    logger.propagate = False
    logger.setLevel(logging.INFO)
    handler = _CaptureHandler()
    logger.addHandler(handler)

    log_warning(logger, "circuit_call_rejected", breaker="db", retry_after=1.5)

    assert len(handler.records) == 1
    record = handler.records[0]
    typed_record = cast(_RecordWithStructuredFields, record)
    assert record.getMessage() == "circuit_call_rejected"
    assert typed_record.breaker == "db"
    assert typed_record.retry_after == 1.5


def test_configured_formatter_stamps_service_fields(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(sys.stderr, "isatty", lambda: False, raising=False)
    configure_structlog(log_level="INFO", service_fields={"service": "orders"})
    formatter = logging.getLogger().handlers[0].formatter
    assert formatter is not None

    record = logging.LogRecord(
        name="depguard.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="circuit_transition",
        args=None,
        exc_info=None,
    )
    payload = json.loads(formatter.format(record))

    assert payload["service"] == "orders"


def test_breaker_logger_binds_breaker_name() -> None:
    with structlog.testing.capture_logs() as captured:
        get_breaker_logger("db").info("circuit_transition", new_state="OPEN")

    assert captured == [
        {
            "breaker": "db",
            "new_state": "OPEN",
            "event": "circuit_transition",
            "log_level": "info",
        }
    ]


def test_breaker_loggers_keep_names_apart() -> None:
    with structlog.testing.capture_logs() as captured:
        get_breaker_logger("db").warning("circuit_call_rejected")
        get_breaker_logger("cache").warning("circuit_call_rejected")

    assert [entry["breaker"] for entry in captured] == ["db", "cache"]
