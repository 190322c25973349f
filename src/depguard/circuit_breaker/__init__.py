"""Thread- and asyncio-safe circuit breaker.

This package implements the circuit breaker pattern from *Release It!*.

Key behavior notes:
  - ``CLOSED`` counts consecutive failures; ``failure_threshold`` of them opens
    the circuit for ``reset_timeout`` seconds.
  - The first call after the timeout moves the circuit to ``HALF_OPEN`` and runs
    as a trial. ``success_threshold`` consecutive trial successes close it; any
    trial failure reopens it with a fresh timeout.
  - At most ``half_open_max_calls`` trials are in flight at once (default one).
    Extra callers are rejected with ``retry_after == 0``.
  - Excluded exceptions, exceptions outside ``expected_exceptions`` and
    cancellation are neutral: they propagate without touching any counter.
  - The breaker never retries. Compose ``depguard.retry`` on top if needed.
"""

from depguard.circuit_breaker.breaker import (
    MAX_RESET_TIMEOUT_SECONDS,
    CircuitBreaker,
    CircuitBreakerConfig,
)
from depguard.circuit_breaker.exceptions import (
    CircuitBreakerError,
    CircuitConfigurationError,
    CircuitOpenError,
)
from depguard.circuit_breaker.metrics import BreakerListener, LoggingBreakerListener
from depguard.circuit_breaker.outcome import (
    CallFailed,
    CallOutcome,
    CallRejected,
    CallSucceeded,
)
from depguard.circuit_breaker.state import BreakerSnapshot, CircuitState

__all__ = [
    "MAX_RESET_TIMEOUT_SECONDS",
    "BreakerListener",
    "BreakerSnapshot",
    "CallFailed",
    "CallOutcome",
    "CallRejected",
    "CallSucceeded",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitConfigurationError",
    "CircuitOpenError",
    "CircuitState",
    "LoggingBreakerListener",
]
