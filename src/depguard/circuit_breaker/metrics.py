"""Observability hooks for circuit breakers."""

from typing import Protocol

from depguard.circuit_breaker.state import CircuitState
from depguard.logging import StructuredLogger, log_info, log_warning


class BreakerListener(Protocol):
    """Listener protocol for circuit breaker events.

    Notes:
        Hooks are invoked synchronously, outside the breaker lock, from
        whichever thread or task completed the call. Exceptions raised by a
        hook are logged and ignored.
    """

    def on_state_change(self, name: str, old: CircuitState, new: CircuitState) -> None:
        """Handle circuit state transitions."""

    def on_call_rejected(self, name: str, retry_after: float) -> None:
        """Handle call rejection while the circuit is open."""

    def on_call_succeeded(self, name: str, elapsed: float) -> None:
        """Handle successful protected call completion."""

    def on_call_failed(self, name: str, exc: Exception, elapsed: float) -> None:
        """Handle failed protected call completion."""


class LoggingBreakerListener(BreakerListener):
    """Listener that writes breaker events to a structured logger."""

    def __init__(self, logger: StructuredLogger) -> None:
        self._logger = logger

    def on_state_change(self, name: str, old: CircuitState, new: CircuitState) -> None:
        if new == CircuitState.OPEN:
            log_warning(
                self._logger,
                "circuit_state_changed",
                breaker=name,
                old_state=str(old),
                new_state=str(new),
            )
            return
        log_info(
            self._logger,
            "circuit_state_changed",
            breaker=name,
            old_state=str(old),
            new_state=str(new),
        )

    def on_call_rejected(self, name: str, retry_after: float) -> None:
        log_warning(
            self._logger,
            "circuit_call_rejected",
            breaker=name,
            retry_after=retry_after,
        )

    def on_call_succeeded(self, name: str, elapsed: float) -> None:
        """No-op; successes are only interesting as counters."""
        _ = (name, elapsed)

    def on_call_failed(self, name: str, exc: Exception, elapsed: float) -> None:
        log_warning(
            self._logger,
            "circuit_call_failed",
            breaker=name,
            error_type=exc.__class__.__name__,
            error=str(exc),
            elapsed=round(elapsed, 6),
        )
