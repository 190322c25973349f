from __future__ import annotations

import logging

import pytest

from depguard.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitOpenError,
    CircuitState,
    LoggingBreakerListener,
)
from tests.depguard.support.fakes import DependencyError, FakeClock, FakeLogger


def _fail() -> None:
    raise DependencyError("dependency down")


def test_logging_listener_records_breaker_lifecycle(
    fake_clock: FakeClock,
    fake_logger: FakeLogger,
) -> None:
    breaker = CircuitBreaker(
        "payments",
        config=CircuitBreakerConfig(
            failure_threshold=1, success_threshold=1, reset_timeout=2.0
        ),
        clock=fake_clock.monotonic,
        listeners=[LoggingBreakerListener(fake_logger)],
    )

    breaker.call_sync(lambda: None)
    with pytest.raises(DependencyError):
        breaker.call_sync(_fail)
    with pytest.raises(CircuitOpenError):
        breaker.call_sync(lambda: None)
    fake_clock.advance(2.0)
    breaker.call_sync(lambda: None)

    assert [(level, event) for level, event, _ in fake_logger.calls] == [
        ("warning", "circuit_call_failed"),
        ("warning", "circuit_state_changed"),
        ("warning", "circuit_call_rejected"),
        ("info", "circuit_state_changed"),
        ("info", "circuit_state_changed"),
    ]
    _, _, failed_fields = fake_logger.calls[0]
    assert failed_fields["breaker"] == "payments"
    assert failed_fields["error_type"] == "DependencyError"
    _, _, opened_fields = fake_logger.calls[1]
    assert opened_fields["new_state"] == "OPEN"
    _, _, rejected_fields = fake_logger.calls[2]
    assert rejected_fields["retry_after"] == 2.0
    _, _, closed_fields = fake_logger.calls[4]
    assert closed_fields == {
        "breaker": "payments",
        "old_state": "HALF_OPEN",
        "new_state": "CLOSED",
    }


def test_logging_listener_accepts_stdlib_logger(
    caplog: pytest.LogCaptureFixture,
) -> None:
    listener = LoggingBreakerListener(logging.getLogger("depguard.test"))

    with caplog.at_level(logging.INFO, logger="depguard.test"):
        listener.on_state_change("svc", CircuitState.OPEN, CircuitState.HALF_OPEN)

    assert caplog.records[0].getMessage() == "circuit_state_changed"
    assert caplog.records[0].__dict__["new_state"] == "HALF_OPEN"
