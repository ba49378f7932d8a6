"""Resilience primitives for the streaming client.

- ``CircuitBreaker`` — fails fast after repeated request failures.
- ``RateLimiter`` — sliding window of request timestamps.
- ``RetryPolicy`` — capped exponential backoff with jitter.
- ``AttemptOutcome`` — typed result of a single send attempt.

Breaker and limiter state belongs to the instance, never to the module, so
two clients never share counters. State changes happen in short
synchronous sections guarded by a lock.
"""

import logging
import random
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from docchat.domain.exceptions import DocChatError, RateLimitExceeded, ServiceUnavailable

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


# ── Circuit breaker ─────────────────────────────────────────────────

@dataclass
class CircuitState:
    failure_count: int = 0
    last_failure_time: float | None = None


class CircuitBreaker:
    """Counts consecutive request failures and opens at ``failure_threshold``.

    While open, ``check`` raises ``ServiceUnavailable``. Once
    ``recovery_seconds`` have passed since the last failure, the breaker
    resets and lets the next request through.
    """

    def __init__(
        self,
        *,
        failure_threshold: int = 5,
        recovery_seconds: float = 300.0,
        clock: Clock = time.monotonic,
    ):
        self._failure_threshold = failure_threshold
        self._recovery_seconds = recovery_seconds
        self._clock = clock
        self._state = CircuitState()
        self._lock = threading.Lock()

    @property
    def failure_count(self) -> int:
        return self._state.failure_count

    @property
    def last_failure_time(self) -> float | None:
        return self._state.last_failure_time

    @property
    def is_open(self) -> bool:
        with self._lock:
            return self._open_for() is not None

    def check(self) -> None:
        """Raise ``ServiceUnavailable`` if the circuit is open."""
        with self._lock:
            remaining = self._open_for()
            if remaining is not None:
                raise ServiceUnavailable(retry_after=remaining)
            if self._state.failure_count >= self._failure_threshold:
                logger.info(
                    "Circuit recovery window elapsed after %d failures; allowing a trial request",
                    self._state.failure_count,
                )
                self._state = CircuitState()

    def record_success(self) -> None:
        with self._lock:
            if self._state.failure_count:
                logger.info("Circuit reset after successful request")
            self._state = CircuitState()

    def record_failure(self) -> None:
        with self._lock:
            self._state.failure_count += 1
            self._state.last_failure_time = self._clock()
            if self._state.failure_count == self._failure_threshold:
                logger.warning(
                    "Circuit opened after %d consecutive failures (recovery in %.0fs)",
                    self._state.failure_count,
                    self._recovery_seconds,
                )

    def _open_for(self) -> float | None:
        """Seconds until recovery if open, else None. Caller holds the lock."""
        state = self._state
        if state.failure_count < self._failure_threshold or state.last_failure_time is None:
            return None
        elapsed = self._clock() - state.last_failure_time
        if elapsed >= self._recovery_seconds:
            return None
        return self._recovery_seconds - elapsed


# ── Rate limiter ────────────────────────────────────────────────────

class RateLimiter:
    """Allows at most ``max_requests`` acquisitions per ``window_seconds``."""

    def __init__(
        self,
        *,
        max_requests: int = 50,
        window_seconds: float = 60.0,
        clock: Clock = time.monotonic,
    ):
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._clock = clock
        self._timestamps: deque[float] = deque()
        self._lock = threading.Lock()

    @property
    def in_window(self) -> int:
        with self._lock:
            self._prune(self._clock())
            return len(self._timestamps)

    def acquire(self) -> None:
        """Record a request, or raise ``RateLimitExceeded`` if the window is full.

        Rejected calls are not recorded.
        """
        with self._lock:
            now = self._clock()
            self._prune(now)
            if len(self._timestamps) >= self._max_requests:
                retry_after = self._timestamps[0] + self._window_seconds - now
                raise RateLimitExceeded(
                    f"Local rate limit of {self._max_requests} requests per "
                    f"{self._window_seconds:.0f}s reached",
                    retry_after=max(retry_after, 0.0),
                )
            self._timestamps.append(now)

    def _prune(self, now: float) -> None:
        while self._timestamps and now - self._timestamps[0] >= self._window_seconds:
            self._timestamps.popleft()


# ── Retry policy ────────────────────────────────────────────────────

@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 32.0
    jitter_min: float = 0.5
    jitter_max: float = 1.0

    def backoff(self, attempt: int) -> float:
        """Un-jittered delay after ``attempt`` (1-based)."""
        return min(self.base_delay * 2 ** (attempt - 1), self.max_delay)

    def delay_for(
        self,
        attempt: int,
        rng: random.Random,
        *,
        retry_after: float | None = None,
    ) -> float:
        delay = self.backoff(attempt) * rng.uniform(self.jitter_min, self.jitter_max)
        if retry_after is not None and retry_after > delay:
            delay = min(retry_after, self.max_delay)
        return delay


# ── Attempt outcome ─────────────────────────────────────────────────

class AttemptStatus(str, Enum):
    OK = "ok"
    RETRY = "retry"
    FATAL = "fatal"


@dataclass(frozen=True)
class AttemptOutcome:
    """Result of one send attempt: an open response, or the error and whether to retry."""

    status: AttemptStatus
    response: Any = None
    error: DocChatError | None = None

    @classmethod
    def ok(cls, response: Any) -> "AttemptOutcome":
        return cls(AttemptStatus.OK, response=response)

    @classmethod
    def failed(cls, error: DocChatError) -> "AttemptOutcome":
        status = AttemptStatus.RETRY if error.retryable else AttemptStatus.FATAL
        return cls(status, error=error)

    @classmethod
    def fatal(cls, error: DocChatError) -> "AttemptOutcome":
        return cls(AttemptStatus.FATAL, error=error)
