"""Unit tests for the circuit breaker, rate limiter, and retry policy."""

import random

import pytest

from docchat.domain.exceptions import (
    AuthenticationFailed,
    ConnectionFailed,
    RateLimitExceeded,
    ServiceUnavailable,
)
from docchat.infrastructure.anthropic.resilience import (
    AttemptOutcome,
    AttemptStatus,
    CircuitBreaker,
    RateLimiter,
    RetryPolicy,
)


# ── Fakes ──


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ── CircuitBreaker ──


def test_breaker_opens_at_threshold():
    clock = FakeClock()
    breaker = CircuitBreaker(failure_threshold=3, recovery_seconds=300, clock=clock)

    for _ in range(2):
        breaker.record_failure()
        breaker.check()  # still closed

    breaker.record_failure()
    assert breaker.is_open
    with pytest.raises(ServiceUnavailable) as exc_info:
        breaker.check()
    assert exc_info.value.retry_after == pytest.approx(300)


def test_breaker_allows_trial_after_recovery_window():
    clock = FakeClock()
    breaker = CircuitBreaker(failure_threshold=2, recovery_seconds=60, clock=clock)
    breaker.record_failure()
    breaker.record_failure()

    clock.advance(59.9)
    with pytest.raises(ServiceUnavailable):
        breaker.check()

    clock.advance(0.2)
    breaker.check()
    assert breaker.failure_count == 0
    assert not breaker.is_open


def test_success_resets_failures():
    breaker = CircuitBreaker(failure_threshold=5, clock=FakeClock())
    for _ in range(4):
        breaker.record_failure()

    breaker.record_success()

    assert breaker.failure_count == 0
    assert breaker.last_failure_time is None


def test_breakers_do_not_share_state():
    first = CircuitBreaker(failure_threshold=1, clock=FakeClock())
    second = CircuitBreaker(failure_threshold=1, clock=FakeClock())

    first.record_failure()

    assert first.is_open
    assert not second.is_open


# ── RateLimiter ──


def test_rate_limiter_rejects_call_beyond_cap():
    limiter = RateLimiter(max_requests=3, window_seconds=60, clock=FakeClock())
    for _ in range(3):
        limiter.acquire()

    with pytest.raises(RateLimitExceeded) as exc_info:
        limiter.acquire()
    assert exc_info.value.retry_after == pytest.approx(60)
    assert limiter.in_window == 3


def test_rate_limiter_frees_capacity_as_window_slides():
    clock = FakeClock()
    limiter = RateLimiter(max_requests=2, window_seconds=10, clock=clock)
    limiter.acquire()
    clock.advance(4)
    limiter.acquire()

    with pytest.raises(RateLimitExceeded):
        limiter.acquire()

    clock.advance(6)  # the first timestamp is now 10s old
    limiter.acquire()
    with pytest.raises(RateLimitExceeded):
        limiter.acquire()


def test_rejected_calls_are_not_recorded():
    clock = FakeClock()
    limiter = RateLimiter(max_requests=1, window_seconds=10, clock=clock)
    limiter.acquire()
    for _ in range(5):
        with pytest.raises(RateLimitExceeded):
            limiter.acquire()

    clock.advance(10)
    limiter.acquire()


# ── RetryPolicy ──


def test_backoff_doubles_and_caps():
    policy = RetryPolicy(base_delay=1.0, max_delay=32.0)
    assert [policy.backoff(n) for n in range(1, 8)] == [1, 2, 4, 8, 16, 32, 32]


def test_jittered_delay_within_half_to_full_backoff():
    policy = RetryPolicy(base_delay=1.0, max_delay=32.0)
    rng = random.Random(42)
    for attempt in range(1, 8):
        for _ in range(50):
            delay = policy.delay_for(attempt, rng)
            assert 0.5 * policy.backoff(attempt) <= delay <= policy.backoff(attempt)


def test_retry_after_raises_delay_up_to_cap():
    policy = RetryPolicy(base_delay=1.0, max_delay=32.0)
    rng = random.Random(1)
    assert policy.delay_for(1, rng, retry_after=5.0) == 5.0
    assert policy.delay_for(1, rng, retry_after=120.0) == 32.0


# ── AttemptOutcome ──


def test_outcome_classifies_by_retryable_flag():
    assert AttemptOutcome.failed(ConnectionFailed()).status is AttemptStatus.RETRY
    assert AttemptOutcome.failed(AuthenticationFailed()).status is AttemptStatus.FATAL
    assert AttemptOutcome.fatal(ConnectionFailed()).status is AttemptStatus.FATAL
