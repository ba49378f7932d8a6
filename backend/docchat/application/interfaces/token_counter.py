"""Abstract interface (port) for exact token counting."""

from abc import ABC, abstractmethod

from docchat.domain.entities import ConversationTurn


class TokenCounter(ABC):
    """Port for a precise tokenizer, typically the provider's counting API."""

    @abstractmethod
    async def exact_token_count(
        self,
        messages: list[ConversationTurn],
        model: str,
        *,
        system: str | None = None,
    ) -> int:
        """Count the input tokens of a request exactly.

        Raises:
            TokenCountUnavailable: On any failure; callers fall back to the estimator.
        """
        ...
