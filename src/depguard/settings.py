from __future__ import annotations

import math

from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from depguard.circuit_breaker import MAX_RESET_TIMEOUT_SECONDS, CircuitBreakerConfig
from depguard.logging import get_log_level_value

DEFAULT_ENV_PREFIX = "DEPGUARD_BREAKER_"


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class BreakerSettings(BaseSettings):
    """Environment-driven settings for one breaker-protected dependency.

    Subclass and override ``model_config`` with ``prefixed_settings_config`` to
    load several dependencies from distinct prefixes.
    """

    model_config = prefixed_settings_config(DEFAULT_ENV_PREFIX)

    failure_threshold: int = 5
    success_threshold: int = 2
    reset_timeout_seconds: float = 30.0
    half_open_max_calls: int = 1
    log_level: str = "INFO"

    @field_validator(
        "failure_threshold",
        "success_threshold",
        "half_open_max_calls",
    )
    @classmethod
    def _validate_positive_count(cls, value: int, info: ValidationInfo) -> int:
        if value < 1:
            raise ValueError(f"{info.field_name} must be >= 1")
        return value

    @field_validator("reset_timeout_seconds")
    @classmethod
    def _validate_reset_timeout(cls, value: float) -> float:
        if not value > 0:
            raise ValueError("reset_timeout_seconds must be > 0")
        if not math.isfinite(value) or value > MAX_RESET_TIMEOUT_SECONDS:
            raise ValueError(
                f"reset_timeout_seconds must be <= {MAX_RESET_TIMEOUT_SECONDS:g}"
            )
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        normalized = value.strip().upper()
        get_log_level_value(normalized)
        return normalized

    def to_config(self) -> CircuitBreakerConfig:
        """Build an immutable breaker configuration from these settings."""
        return CircuitBreakerConfig(
            failure_threshold=self.failure_threshold,
            success_threshold=self.success_threshold,
            reset_timeout=self.reset_timeout_seconds,
            half_open_max_calls=self.half_open_max_calls,
        )
