"""Abstract repository interface (port) for document chunks."""

from abc import ABC, abstractmethod
from collections.abc import Iterable

from docchat.domain.entities import Chunk


class ChunkRepository(ABC):
    """Port for chunk storage, queried by document scope.

    The store may be mutated concurrently by an ingestion process; each call
    returns a consistent snapshot of what it read.
    """

    @abstractmethod
    async def chunks_in_scope(self, document_ids: Iterable[str]) -> list[Chunk]:
        """Return every chunk belonging to the given documents."""
        ...

    @abstractmethod
    async def store_chunks(self, document_id: str, chunks: list[Chunk]) -> None:
        """Replace the chunks of a document (reprocessing drops the old ones)."""
        ...

    @abstractmethod
    async def get_chunks_for_document(self, document_id: str) -> list[Chunk]:
        """Return the chunks of one document ordered by chunk id."""
        ...

    @abstractmethod
    async def get_chunks(self, chunk_ids: Iterable[str]) -> list[Chunk]:
        """Return the chunks with the given ids; unknown ids are skipped."""
        ...

    @abstractmethod
    async def delete_by_document(self, document_id: str) -> int:
        """Delete all chunks for a document. Returns count of deleted chunks."""
        ...
