"""Core circuit breaker implementation."""

import math
import threading
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import ParamSpec, TypeVar

from depguard.circuit_breaker.exceptions import (
    CircuitConfigurationError,
    CircuitOpenError,
)
from depguard.circuit_breaker.metrics import BreakerListener
from depguard.circuit_breaker.outcome import (
    CallFailed,
    CallOutcome,
    CallRejected,
    CallSucceeded,
)
from depguard.circuit_breaker.state import BreakerSnapshot, CircuitState
from depguard.logging import get_breaker_logger, log_exception

T = TypeVar("T")
P = ParamSpec("P")

_Transition = tuple[CircuitState, CircuitState]

# One year; keeps the wall-clock projection of the next attempt in range.
MAX_RESET_TIMEOUT_SECONDS = 365 * 24 * 60 * 60.0


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _require_positive_int(field: str, value: object) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise CircuitConfigurationError(f"{field} must be an integer >= 1")


def _require_exception_types(field: str, value: object) -> None:
    if not isinstance(value, tuple):
        raise CircuitConfigurationError(f"{field} must be a tuple of exception types")
    for item in value:
        if not (isinstance(item, type) and issubclass(item, Exception)):
            raise CircuitConfigurationError(
                f"{field} must contain Exception subclasses, got {item!r}"
            )


@dataclass(frozen=True, slots=True)
class CircuitBreakerConfig:
    """Circuit breaker configuration values.

    Attributes:
        failure_threshold: Consecutive failures while ``CLOSED`` before opening.
        success_threshold: Consecutive trial successes while ``HALF_OPEN``
            before closing.
        reset_timeout: Seconds to stay ``OPEN`` before allowing a trial call.
        half_open_max_calls: Trial calls allowed in flight at once while
            ``HALF_OPEN``.
        expected_exceptions: Exceptions that count as failures.
        excluded_exceptions: Exceptions that must not count as failures.
    """

    failure_threshold: int = 5
    success_threshold: int = 2
    reset_timeout: float = 30.0
    half_open_max_calls: int = 1
    expected_exceptions: tuple[type[Exception], ...] = (Exception,)
    excluded_exceptions: tuple[type[Exception], ...] = ()

    def __post_init__(self) -> None:
        _require_positive_int("failure_threshold", self.failure_threshold)
        _require_positive_int("success_threshold", self.success_threshold)
        _require_positive_int("half_open_max_calls", self.half_open_max_calls)
        timeout = self.reset_timeout
        if (
            isinstance(timeout, bool)
            or not isinstance(timeout, (int, float))
            or not timeout > 0
        ):
            raise CircuitConfigurationError("reset_timeout must be > 0")
        if not math.isfinite(timeout) or timeout > MAX_RESET_TIMEOUT_SECONDS:
            raise CircuitConfigurationError(
                f"reset_timeout must be <= {MAX_RESET_TIMEOUT_SECONDS:g}"
            )
        _require_exception_types("expected_exceptions", self.expected_exceptions)
        _require_exception_types("excluded_exceptions", self.excluded_exceptions)


@dataclass(frozen=True, slots=True)
class _Admission:
    """Ticket for one admitted call, tied to the state epoch it entered in."""

    epoch: int
    trial: bool


class CircuitBreaker:
    """Stateful proxy around a call to an unreliable dependency.

    One ``threading.Lock`` guards admission and outcome bookkeeping. It is
    never held while the protected operation runs, so the breaker can be
    shared between OS threads (``call_sync``) and asyncio tasks (``call``).

    Every state transition starts a new epoch. Outcomes of calls admitted in
    an earlier epoch release their trial slot but do not touch the counters.
    """

    def __init__(
        self,
        name: str,
        *,
        config: CircuitBreakerConfig | None = None,
        listeners: Sequence[BreakerListener] | None = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Build a circuit breaker for one protected dependency.

        Args:
            name: Breaker name used in errors, logs and health payloads.
            config: Breaker behavior configuration. Defaults to
                ``CircuitBreakerConfig()``.
            listeners: Optional listener hooks for breaker events.
            clock: Monotonic clock used for reset timeout comparisons.
            wall_clock: UTC clock used only to report ``next_attempt_at``.
        """
        self.name = name
        self.config = CircuitBreakerConfig() if config is None else config
        self._listeners = tuple(listeners) if listeners is not None else ()
        self._clock = clock
        self._wall_clock = wall_clock
        self._logger = get_breaker_logger(name)

        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._next_attempt_time: float | None = None
        self._epoch = 0
        self._trials_in_flight = 0

    def __repr__(self) -> str:
        return f"CircuitBreaker(name={self.name!r}, state={self._state!s})"

    def get_state(self) -> BreakerSnapshot:
        """Return a read-only snapshot of the breaker.

        Never performs the ``OPEN`` to ``HALF_OPEN`` transition, even when the
        reset timeout has already elapsed; only a call does that.
        """
        with self._lock:
            state = self._state
            failure_count = self._failure_count
            success_count = self._success_count
            next_attempt_time = self._next_attempt_time
            now = self._clock()

        next_attempt_at = None
        if next_attempt_time is not None:
            next_attempt_at = self._wall_clock() + timedelta(
                seconds=next_attempt_time - now
            )
        return BreakerSnapshot(
            name=self.name,
            state=state,
            failure_count=failure_count,
            success_count=success_count,
            next_attempt_time=next_attempt_time,
            next_attempt_at=next_attempt_at,
        )

    async def call(
        self,
        func: Callable[P, Awaitable[T]],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        """Invoke an async callable under circuit breaker protection.

        Args:
            func: Async callable performing the protected action.
            *args: Positional arguments forwarded to ``func``.
            **kwargs: Keyword arguments forwarded to ``func``.

        Returns:
            The result of ``func`` when allowed and successful.

        Raises:
            CircuitOpenError: When the circuit is open and the call is rejected.
                ``func`` is not invoked in that case.
            Exception: The original exception from ``func`` when it is attempted
                and fails.
        """
        admission = self._admit()
        return await self._invoke_async(admission, func, *args, **kwargs)

    def call_sync(
        self,
        func: Callable[P, T],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        """Invoke a blocking callable under circuit breaker protection.

        Same contract as ``call``; intended for worker threads.
        """
        admission = self._admit()
        return self._invoke_sync(admission, func, *args, **kwargs)

    async def try_call(
        self,
        func: Callable[P, Awaitable[T]],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> CallOutcome[T]:
        """Like ``call`` but return rejections and counted failures as values.

        Excluded exceptions and exceptions outside ``expected_exceptions``
        still propagate, since the breaker does not classify them.
        """
        try:
            admission = self._admit()
        except CircuitOpenError as error:
            return CallRejected.from_error(error)

        try:
            value = await self._invoke_async(admission, func, *args, **kwargs)
        except self.config.excluded_exceptions:
            raise
        except self.config.expected_exceptions as exc:
            return CallFailed(exc)
        return CallSucceeded(value)

    def try_call_sync(
        self,
        func: Callable[P, T],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> CallOutcome[T]:
        """Blocking counterpart of ``try_call``."""
        try:
            admission = self._admit()
        except CircuitOpenError as error:
            return CallRejected.from_error(error)

        try:
            value = self._invoke_sync(admission, func, *args, **kwargs)
        except self.config.excluded_exceptions:
            raise
        except self.config.expected_exceptions as exc:
            return CallFailed(exc)
        return CallSucceeded(value)

    async def _invoke_async(
        self,
        admission: _Admission,
        func: Callable[P, Awaitable[T]],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        start = time.monotonic()
        try:
            result = await func(*args, **kwargs)
        except self.config.excluded_exceptions:
            self._release(admission)
            raise
        except self.config.expected_exceptions as exc:
            self._record_failure(admission, exc, max(time.monotonic() - start, 0.0))
            raise
        except BaseException:
            # Cancellation or an unclassified error: neutral outcome.
            self._release(admission)
            raise
        self._record_success(admission, max(time.monotonic() - start, 0.0))
        return result

    def _invoke_sync(
        self,
        admission: _Admission,
        func: Callable[P, T],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        start = time.monotonic()
        try:
            result = func(*args, **kwargs)
        except self.config.excluded_exceptions:
            self._release(admission)
            raise
        except self.config.expected_exceptions as exc:
            self._record_failure(admission, exc, max(time.monotonic() - start, 0.0))
            raise
        except BaseException:
            self._release(admission)
            raise
        self._record_success(admission, max(time.monotonic() - start, 0.0))
        return result

    def _admit(self) -> _Admission:
        transitions: list[_Transition] = []
        with self._lock:
            decision = self._admit_locked(transitions)

        self._emit_transitions(transitions)
        if isinstance(decision, CircuitOpenError):
            self._emit_call_rejected(decision.retry_after)
            raise decision
        return decision

    def _admit_locked(
        self, transitions: list[_Transition]
    ) -> _Admission | CircuitOpenError:
        if self._state == CircuitState.OPEN:
            now = self._clock()
            retry_after = self._retry_after_locked(now)
            if retry_after > 0:
                return CircuitOpenError(self.name, retry_after=retry_after)
            self._transition(CircuitState.HALF_OPEN, now, transitions)

        if self._state == CircuitState.HALF_OPEN:
            if self._trials_in_flight >= self.config.half_open_max_calls:
                return CircuitOpenError(self.name, retry_after=0.0)
            self._trials_in_flight += 1
            return _Admission(epoch=self._epoch, trial=True)
        return _Admission(epoch=self._epoch, trial=False)

    def _retry_after_locked(self, now: float) -> float:
        if self._next_attempt_time is None:
            return 0.0
        return self._next_attempt_time - now

    def _record_success(self, admission: _Admission, elapsed: float) -> None:
        transitions: list[_Transition] = []
        with self._lock:
            self._release_locked(admission)
            if admission.epoch == self._epoch:
                self._failure_count = 0
                if self._state == CircuitState.HALF_OPEN:
                    self._success_count += 1
                    if self._success_count >= self.config.success_threshold:
                        self._transition(
                            CircuitState.CLOSED, self._clock(), transitions
                        )

        self._emit_transitions(transitions)
        self._emit_call_succeeded(elapsed)

    def _record_failure(
        self, admission: _Admission, exc: Exception, elapsed: float
    ) -> None:
        transitions: list[_Transition] = []
        with self._lock:
            self._release_locked(admission)
            if admission.epoch == self._epoch:
                self._failure_count += 1
                if (
                    self._state == CircuitState.HALF_OPEN
                    or self._failure_count >= self.config.failure_threshold
                ):
                    self._transition(CircuitState.OPEN, self._clock(), transitions)

        self._emit_call_failed(exc, elapsed)
        self._emit_transitions(transitions)

    def _release(self, admission: _Admission) -> None:
        with self._lock:
            self._release_locked(admission)

    def _release_locked(self, admission: _Admission) -> None:
        if admission.trial and admission.epoch == self._epoch:
            self._trials_in_flight -= 1

    def _transition(
        self,
        new: CircuitState,
        now: float,
        transitions: list[_Transition],
    ) -> None:
        """Move to ``new``; caller must hold ``self._lock``."""
        old = self._state
        self._state = new
        self._epoch += 1
        self._trials_in_flight = 0
        self._success_count = 0
        if new == CircuitState.OPEN:
            self._next_attempt_time = now + self.config.reset_timeout
        elif new == CircuitState.HALF_OPEN:
            self._next_attempt_time = None
        else:
            self._failure_count = 0
            self._next_attempt_time = None
        transitions.append((old, new))

    def _notify(self, hook: str, *args: object) -> None:
        for listener in self._listeners:
            try:
                getattr(listener, hook)(self.name, *args)
            except Exception:
                log_exception(
                    self._logger,
                    "circuit_listener_failed",
                    hook=hook,
                    listener=type(listener).__qualname__,
                )

    def _emit_transitions(self, transitions: list[_Transition]) -> None:
        for old, new in transitions:
            self._logger.debug(
                "circuit_transition",
                old_state=str(old),
                new_state=str(new),
            )
            self._notify("on_state_change", old, new)

    def _emit_call_rejected(self, retry_after: float) -> None:
        self._notify("on_call_rejected", retry_after)

    def _emit_call_succeeded(self, elapsed: float) -> None:
        self._notify("on_call_succeeded", elapsed)

    def _emit_call_failed(self, exc: Exception, elapsed: float) -> None:
        self._notify("on_call_failed", exc, elapsed)
