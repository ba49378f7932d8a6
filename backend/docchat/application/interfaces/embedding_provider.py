"""Abstract interface (port) for query embedding generation."""

from abc import ABC, abstractmethod


class EmbeddingProvider(ABC):
    """Port for turning text into a vector — implemented in the infrastructure layer."""

    @abstractmethod
    async def embed_text(self, text: str) -> list[float]:
        """Embed a single text span.

        Returns:
            A fixed-length embedding vector.

        Raises:
            EmbeddingUnavailable: If no vector could be produced.
        """
        ...
