"""Health endpoint payload built from breaker snapshots."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from depguard.circuit_breaker import BreakerSnapshot, CircuitBreaker, CircuitState

STATUS_HEALTHY = "healthy"
STATUS_UNHEALTHY = "unhealthy"

HealthStatus = Literal["healthy", "unhealthy"]


class ServiceHealth(BaseModel):
    """Health entry for one breaker-protected dependency."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    state: CircuitState
    failure_count: int = Field(alias="failureCount", ge=0)
    success_count: int = Field(alias="successCount", ge=0)
    next_attempt: datetime | None = Field(alias="nextAttempt", default=None)

    @classmethod
    def from_snapshot(cls, snapshot: BreakerSnapshot) -> ServiceHealth:
        """Build a health entry from a breaker snapshot."""
        return cls(
            state=snapshot.state,
            failure_count=snapshot.failure_count,
            success_count=snapshot.success_count,
            next_attempt=snapshot.next_attempt_at,
        )


class HealthPayload(BaseModel):
    """Health endpoint payload aggregated over monitored breakers."""

    model_config = ConfigDict(frozen=True)

    status: HealthStatus
    services: dict[str, ServiceHealth]

    def to_json_dict(self) -> dict[str, object]:
        """Return the JSON-ready payload with camelCase service fields."""
        return self.model_dump(mode="json", by_alias=True)


def build_health_payload(breakers: Iterable[CircuitBreaker]) -> HealthPayload:
    """Aggregate breaker snapshots into a health payload.

    Only reads breaker state, so building a payload never admits a trial.

    Raises:
        ValueError: When two breakers share a name.
    """
    services: dict[str, ServiceHealth] = {}
    for breaker in breakers:
        if breaker.name in services:
            raise ValueError(f"duplicate breaker name: {breaker.name}")
        services[breaker.name] = ServiceHealth.from_snapshot(breaker.get_state())

    any_open = any(entry.state == CircuitState.OPEN for entry in services.values())
    return HealthPayload(
        status=STATUS_UNHEALTHY if any_open else STATUS_HEALTHY,
        services=services,
    )
