"""Explicit outcome values for protected calls.

``CircuitBreaker.try_call`` returns one of these instead of raising, so the
difference between a dependency failure and a breaker rejection is a value
callers can ``match`` on::

    match await breaker.try_call(fetch):
        case CallSucceeded(value=value):
            ...
        case CallRejected():
            ...  # serve cached data
        case CallFailed(error=error):
            ...
"""

from dataclasses import dataclass
from typing import Generic, NoReturn, TypeVar

from depguard.circuit_breaker.exceptions import CircuitOpenError

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class CallSucceeded(Generic[T]):
    """The protected operation ran and returned ``value``."""

    value: T

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True, slots=True)
class CallFailed:
    """The protected operation ran and raised a counted failure."""

    error: Exception

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self) -> NoReturn:
        raise self.error


@dataclass(frozen=True, slots=True)
class CallRejected:
    """The breaker declined to run the operation."""

    breaker_name: str
    retry_after: float

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self) -> NoReturn:
        raise CircuitOpenError(self.breaker_name, retry_after=self.retry_after)

    @classmethod
    def from_error(cls, error: CircuitOpenError) -> "CallRejected":
        return cls(breaker_name=error.breaker_name, retry_after=error.retry_after)


CallOutcome = CallSucceeded[T] | CallFailed | CallRejected
