import logging
import math
import random
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import TypeVar

from citescrape.modules.circuit_breaker.schemas import (
    CircuitBreakerConfig,
    CircuitBreakerStats,
    CircuitState,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

StateChangeCallback = Callable[[CircuitState, CircuitState], None]
ErrorCallback = Callable[[Exception], None]

MAX_BACKOFF_EXPONENT = 10
JITTER_RATIO = 0.3


class CircuitBreakerOpenError(Exception):
    """Raised instead of calling the wrapped function while the gate is shut."""

    def __init__(self, message: str, next_attempt_time: float) -> None:
        super().__init__(message)
        self.next_attempt_time = next_attempt_time


def calculate_backoff(
    attempt: int, base_ms: int = 1_000, max_ms: int = 60_000
) -> int:
    """Exponential backoff in milliseconds with up to 30% random jitter on top."""
    exponential = min(base_ms * (2**attempt), max_ms)
    jitter = random.random() * JITTER_RATIO * exponential
    return math.floor(exponential + jitter)


class CircuitBreaker:
    """Gate around one named dependency.

    closed -> open after ``failure_threshold`` failures, open -> half-open
    lazily on the first call past ``next_attempt_time``, half-open -> closed
    after ``success_threshold`` successes or back to open on any failure.
    The breaker never retries and never imposes a timeout of its own.
    """

    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig | None = None,
        on_state_change: StateChangeCallback | None = None,
        on_error: ErrorCallback | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._name = name
        self._config = config or CircuitBreakerConfig()
        self._on_state_change = on_state_change
        self._on_error = on_error
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._consecutive_failures = 0
        self._half_open_calls = 0
        self._opened_at: float | None = None
        self._next_attempt_time: float | None = None
        self._last_failure_time: float | None = None
        self._last_success_time: float | None = None
        self._total_calls = 0
        self._total_failures = 0
        self._total_successes = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def config(self) -> CircuitBreakerConfig:
        return self._config

    # ── State machine ───────────────────────────────────────────

    def _transition(self, new_state: CircuitState) -> None:
        previous = self._state
        self._state = new_state
        logger.info(
            "[CircuitBreaker:%s] State transition: %s -> %s",
            self._name, previous.value, new_state.value,
        )

        if new_state is CircuitState.OPEN:
            now = self._clock()
            backoff_ms = calculate_backoff(
                min(self._consecutive_failures, MAX_BACKOFF_EXPONENT),
                self._config.backoff_base_ms,
                self._config.backoff_max_ms,
            )
            self._opened_at = now
            self._next_attempt_time = now + backoff_ms / 1000
            logger.info(
                "[CircuitBreaker:%s] Circuit opened until %s (backoff: %dms)",
                self._name,
                datetime.fromtimestamp(self._next_attempt_time, tz=timezone.utc).isoformat(),
                backoff_ms,
            )
        elif new_state is CircuitState.CLOSED:
            self._opened_at = None
            self._next_attempt_time = None
            self._failure_count = 0
            self._success_count = 0
            self._half_open_calls = 0
        else:
            self._next_attempt_time = None
            self._half_open_calls = 0
            self._success_count = 0

        if self._on_state_change is not None:
            try:
                self._on_state_change(new_state, previous)
            except Exception:
                logger.exception("[CircuitBreaker:%s] Error in state change callback", self._name)

    def _should_allow_request(self) -> bool:
        if self._state is CircuitState.CLOSED:
            return True

        if self._state is CircuitState.OPEN:
            if self._next_attempt_time is not None and self._clock() >= self._next_attempt_time:
                self._transition(CircuitState.HALF_OPEN)
                return True
            return False

        return self._half_open_calls < self._config.half_open_max_calls

    def _record_success(self) -> None:
        self._total_successes += 1
        self._last_success_time = self._clock()

        if self._state is CircuitState.HALF_OPEN:
            self._success_count += 1
            if self._success_count >= self._config.success_threshold:
                self._consecutive_failures = 0
                self._transition(CircuitState.CLOSED)
        elif self._state is CircuitState.CLOSED:
            # Only the backoff streak resets here; the threshold counter is
            # cleared on the transition to closed.
            self._consecutive_failures = 0

    def _record_failure(self, error: Exception) -> None:
        self._total_failures += 1
        self._consecutive_failures += 1
        self._last_failure_time = self._clock()

        if self._on_error is not None:
            try:
                self._on_error(error)
            except Exception:
                logger.exception("[CircuitBreaker:%s] Error in error callback", self._name)

        if self._state is CircuitState.HALF_OPEN:
            self._transition(CircuitState.OPEN)
        elif self._state is CircuitState.CLOSED:
            self._failure_count += 1
            if self._failure_count >= self._config.failure_threshold:
                self._transition(CircuitState.OPEN)

    def _open_error(self) -> CircuitBreakerOpenError:
        now = self._clock()
        if self._next_attempt_time is not None:
            wait_s = self._next_attempt_time - now
            next_attempt = self._next_attempt_time
        else:
            wait_s = self._config.timeout_ms / 1000
            next_attempt = now + wait_s
        return CircuitBreakerOpenError(
            f'Circuit breaker "{self._name}" is open. Try again in {math.ceil(wait_s)}s.',
            next_attempt,
        )

    def _admit(self) -> None:
        self._total_calls += 1
        if not self._should_allow_request():
            raise self._open_error()
        if self._state is CircuitState.HALF_OPEN:
            self._half_open_calls += 1

    # ── Public API ──────────────────────────────────────────────

    async def execute(self, fn: Callable[[], Awaitable[T]]) -> T:
        self._admit()
        try:
            result = await fn()
        except Exception as exc:
            self._record_failure(exc)
            raise
        self._record_success()
        return result

    def execute_sync(self, fn: Callable[[], T]) -> T:
        self._admit()
        try:
            result = fn()
        except Exception as exc:
            self._record_failure(exc)
            raise
        self._record_success()
        return result

    def reset(self) -> None:
        logger.info("[CircuitBreaker:%s] Resetting circuit breaker", self._name)
        self._transition(CircuitState.CLOSED)
        self._consecutive_failures = 0
        self._total_calls = 0
        self._total_failures = 0
        self._total_successes = 0

    def get_state(self) -> CircuitState:
        return self._state

    def get_stats(self) -> CircuitBreakerStats:
        return CircuitBreakerStats(
            state=self._state,
            failure_count=self._failure_count,
            success_count=self._success_count,
            last_failure_time=self._last_failure_time,
            last_success_time=self._last_success_time,
            opened_at=self._opened_at,
            next_attempt_time=self._next_attempt_time,
            total_calls=self._total_calls,
            total_failures=self._total_failures,
            total_successes=self._total_successes,
        )


def create_circuit_breaker(
    name: str,
    config: CircuitBreakerConfig | None = None,
    on_state_change: StateChangeCallback | None = None,
    on_error: ErrorCallback | None = None,
    clock: Callable[[], float] = time.time,
) -> CircuitBreaker:
    return CircuitBreaker(
        name,
        config=config,
        on_state_change=on_state_change,
        on_error=on_error,
        clock=clock,
    )
