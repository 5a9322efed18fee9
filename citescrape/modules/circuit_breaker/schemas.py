from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


@dataclass(frozen=True)
class CircuitBreakerConfig:
    failure_threshold: int = 5
    success_threshold: int = 2
    timeout_ms: int = 60_000
    half_open_max_calls: int = 3
    backoff_base_ms: int = 1_000
    backoff_max_ms: int = 60_000


class CircuitBreakerStats(BaseModel):
    """Point-in-time snapshot; timestamps are epoch seconds."""

    state: CircuitState
    failure_count: int
    success_count: int
    last_failure_time: float | None = None
    last_success_time: float | None = None
    opened_at: float | None = None
    next_attempt_time: float | None = None
    total_calls: int
    total_failures: int
    total_successes: int
