from __future__ import annotations

import pytest

from tests.depguard.support.fakes import FakeClock, FakeLogger, RecordingListener


@pytest.fixture
def fake_logger() -> FakeLogger:
    """Provide a fresh structured logger test double per test."""
    return FakeLogger()


@pytest.fixture
def fake_clock() -> FakeClock:
    """Provide a manually advanced clock per test."""
    return FakeClock()


@pytest.fixture
def listener() -> RecordingListener:
    """Provide a fresh recording breaker listener per test."""
    return RecordingListener()
