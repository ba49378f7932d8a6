"""Unit tests for token estimation, truncation, and the exact-count fallback."""

import math

import pytest

from docchat.application.interfaces.token_counter import TokenCounter
from docchat.application.services.token_budget import (
    ELLIPSIS,
    TokenBudgetEstimator,
    TokenCountingService,
)
from docchat.domain.entities import ConversationTurn
from docchat.domain.exceptions import TokenCountUnavailable


# ── Fakes ──


class FakeTokenCounter(TokenCounter):
    def __init__(self, *, count: int = 0, error: Exception | None = None):
        self._count = count
        self._error = error
        self.calls = 0

    async def exact_token_count(self, messages, model, *, system=None) -> int:
        self.calls += 1
        if self._error:
            raise self._error
        return self._count


# ── estimate ──


def test_estimate_empty_is_zero():
    assert TokenBudgetEstimator().estimate("") == 0


def test_estimate_applies_ceiling_and_margin():
    estimator = TokenBudgetEstimator()
    # 400 chars → 100 tokens → 110 with the margin
    assert estimator.estimate("x" * 400) == 110
    # 401 chars → ceil(100.25) = 101 → int(111.1) = 111
    assert estimator.estimate("x" * 401) == 111


def test_estimate_normalizes_whitespace():
    estimator = TokenBudgetEstimator()
    assert estimator.estimate("a    b\n\n\tc") == estimator.estimate("a b c")


def test_estimate_many_sums_each_text():
    estimator = TokenBudgetEstimator()
    texts = ["x" * 40, "y" * 80]
    assert estimator.estimate_many(texts) == estimator.estimate(texts[0]) + estimator.estimate(texts[1])


# ── truncate ──


def test_truncate_leaves_fitting_text_alone():
    text = "short text"
    assert TokenBudgetEstimator().truncate(text, 100) == text


def test_truncate_clips_to_ninety_percent_and_marks():
    estimator = TokenBudgetEstimator()
    result = estimator.truncate("z" * 1000, 50)

    assert result.endswith(ELLIPSIS)
    assert len(result) == math.floor(50 * 4 * 0.9)
    assert estimator.estimate(result) <= 50


def test_truncate_non_positive_limit_is_empty():
    assert TokenBudgetEstimator().truncate("anything", 0) == ""


# ── TokenCountingService ──


@pytest.mark.asyncio
async def test_prefers_exact_count():
    counter = FakeTokenCounter(count=42)
    service = TokenCountingService(TokenBudgetEstimator(), counter)

    count = await service.count([ConversationTurn("user", "hello")], "claude-test")

    assert count == 42
    assert counter.calls == 1


@pytest.mark.asyncio
async def test_falls_back_to_estimate_when_exact_count_unavailable():
    estimator = TokenBudgetEstimator()
    counter = FakeTokenCounter(error=TokenCountUnavailable("endpoint down"))
    service = TokenCountingService(estimator, counter)
    messages = [ConversationTurn("user", "x" * 400)]

    count = await service.count(messages, "claude-test", system="y" * 39)

    assert counter.calls == 1
    assert count == estimator.estimate("x" * 400 + " " + "y" * 39)


@pytest.mark.asyncio
async def test_estimates_without_exact_counter():
    estimator = TokenBudgetEstimator()
    service = TokenCountingService(estimator)

    count = await service.count([ConversationTurn("user", "x" * 400)], "claude-test")

    assert count == 110


@pytest.mark.asyncio
async def test_other_errors_are_not_swallowed():
    service = TokenCountingService(TokenBudgetEstimator(), FakeTokenCounter(error=RuntimeError("bug")))

    with pytest.raises(RuntimeError):
        await service.count([ConversationTurn("user", "hi")], "claude-test")
