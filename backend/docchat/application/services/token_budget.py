"""Token budgeting — character-based estimation with an exact-count preference.

The estimator is an approximation layer. ``TokenCountingService`` asks the
exact counter first and only falls back to the estimator when that fails.
"""

import logging
import math
import re

from docchat.application.interfaces.token_counter import TokenCounter
from docchat.domain.entities import ConversationTurn
from docchat.domain.exceptions import TokenCountUnavailable

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")

# ── Estimation constants ────────────────────────────────────────────
_CHARS_PER_TOKEN = 4.0
_SAFETY_MARGIN = 1.1  # +10% on every estimate
_TRUNCATION_FILL = 0.9  # Truncate to 90% of the nominal character allowance
ELLIPSIS = "..."


class TokenBudgetEstimator:
    """Approximates token counts as ceil(chars / 4) * 1.1 on whitespace-normalized text."""

    def __init__(
        self,
        *,
        chars_per_token: float = _CHARS_PER_TOKEN,
        safety_margin: float = _SAFETY_MARGIN,
    ):
        self._chars_per_token = chars_per_token
        self._safety_margin = safety_margin

    def estimate(self, text: str) -> int:
        if not text:
            return 0
        normalized = _WHITESPACE_RE.sub(" ", text)
        tokens = math.ceil(len(normalized) / self._chars_per_token)
        return int(tokens * self._safety_margin)

    def estimate_many(self, texts: list[str]) -> int:
        return sum(self.estimate(t) for t in texts)

    def truncate(self, text: str, token_limit: int) -> str:
        """Clip ``text`` to ``token_limit * 4 * 0.9`` characters, ending in an ellipsis.

        Text that already fits is returned unchanged.
        """
        if token_limit <= 0:
            return ""
        if self.estimate(text) <= token_limit:
            return text

        target_chars = int(token_limit * self._chars_per_token * _TRUNCATION_FILL)
        if len(text) <= target_chars:
            return text
        if target_chars <= len(ELLIPSIS):
            return ELLIPSIS[:target_chars]
        return text[: target_chars - len(ELLIPSIS)] + ELLIPSIS


class TokenCountingService:
    """Counts request tokens exactly when possible, estimating otherwise."""

    def __init__(
        self,
        estimator: TokenBudgetEstimator,
        exact_counter: TokenCounter | None = None,
    ):
        self._estimator = estimator
        self._exact_counter = exact_counter

    async def count(
        self,
        messages: list[ConversationTurn],
        model: str,
        *,
        system: str | None = None,
    ) -> int:
        if self._exact_counter is not None:
            try:
                return await self._exact_counter.exact_token_count(
                    messages, model, system=system
                )
            except TokenCountUnavailable as exc:
                logger.info("Exact token count unavailable, estimating instead: %s", exc)

        return self.estimate(messages, system=system)

    def estimate(self, messages: list[ConversationTurn], *, system: str | None = None) -> int:
        texts = [m.text for m in messages]
        if system:
            texts.append(system)
        return self._estimator.estimate(" ".join(texts))
