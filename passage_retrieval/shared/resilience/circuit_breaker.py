"""
Thread-safe circuit breaker guarding calls to a remote dependency.

Usage:
    breaker = CircuitBreaker(name="embedding-gateway", failure_threshold=5)

    try:
        vector = breaker.call(lambda: gateway.embed_dense(text))
    except CircuitOpenError:
        raise UpstreamEmbeddingError("embedding gateway circuit open")
"""

from __future__ import annotations

import threading
import time
from enum import Enum
from typing import Callable, Optional, TypeVar

from ..observability import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states following the standard pattern."""

    CLOSED = "closed"  # requests pass through
    OPEN = "open"  # requests rejected immediately
    HALF_OPEN = "half_open"  # one trial request at a time


class CircuitOpenError(RuntimeError):
    """Raised by CircuitBreaker.call when the circuit rejects a request."""


class CircuitBreaker:
    """
    Consecutive-failure circuit breaker.

    CLOSED counts consecutive failures and opens at ``failure_threshold``.
    OPEN rejects until ``recovery_timeout`` seconds passed since the last
    failure, then moves to HALF_OPEN. HALF_OPEN admits a single trial request
    and rejects others until it reports back. A success closes the
    circuit; a failure reopens it.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if failure_threshold <= 0:
            raise ValueError("failure_threshold must be positive")
        if recovery_timeout <= 0:
            raise ValueError("recovery_timeout must be positive")
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None
        self._trial_in_flight = False
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._state

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failure_count

    def allow_request(self) -> bool:
        with self._lock:
            if self._state == CircuitState.CLOSED:
                return True

            if self._state == CircuitState.HALF_OPEN:
                if self._trial_in_flight:
                    return False
                self._trial_in_flight = True
                return True

            if self._last_failure_time is None:
                return False
            elapsed = self._clock() - self._last_failure_time
            if elapsed < self.recovery_timeout:
                return False
            self._state = CircuitState.HALF_OPEN
            self._trial_in_flight = True
            logger.info(
                "circuit_breaker_half_open",
                name=self.name,
                elapsed_seconds=round(elapsed, 3),
            )
            return True

    def record_success(self) -> None:
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                logger.info("circuit_breaker_closed", name=self.name)
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._trial_in_flight = False

    def record_failure(self) -> None:
        with self._lock:
            self._trial_in_flight = False
            self._failure_count += 1
            self._last_failure_time = self._clock()

            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.OPEN
                logger.warning("circuit_breaker_reopened", name=self.name)
            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self.failure_threshold
            ):
                self._state = CircuitState.OPEN
                logger.warning(
                    "circuit_breaker_opened",
                    name=self.name,
                    failure_count=self._failure_count,
                    threshold=self.failure_threshold,
                )

    def call(self, fn: Callable[[], T]) -> T:
        """Run ``fn`` under the breaker, recording its outcome."""
        if not self.allow_request():
            raise CircuitOpenError(f"circuit {self.name!r} is open")
        try:
            result = fn()
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    def reset(self) -> None:
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._last_failure_time = None
            self._trial_in_flight = False

    def __repr__(self) -> str:
        with self._lock:
            return (
                f"CircuitBreaker(name={self.name!r}, state={self._state.value}, "
                f"failures={self._failure_count}/{self.failure_threshold})"
            )
