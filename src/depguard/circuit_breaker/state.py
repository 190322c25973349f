"""Circuit breaker state primitives."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class CircuitState(StrEnum):
    """Circuit breaker state values."""

    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass(frozen=True)
class BreakerSnapshot:
    """Point-in-time view of breaker internals useful for health/logging.

    Attributes:
        name: Breaker name.
        state: Current admission state.
        failure_count: Consecutive counted failures while ``CLOSED`` or
            ``HALF_OPEN``.
        success_count: Consecutive trial successes while ``HALF_OPEN``.
        next_attempt_time: Monotonic time at which a trial may run, if open.
        next_attempt_at: Wall-clock projection of ``next_attempt_time``.
    """

    name: str
    state: CircuitState
    failure_count: int
    success_count: int
    next_attempt_time: float | None
    next_attempt_at: datetime | None
