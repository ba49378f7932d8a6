"""In-memory implementation of ChunkRepository."""

import logging
import threading
from collections.abc import Iterable

from docchat.application.interfaces.chunk_repository import ChunkRepository
from docchat.domain.entities import Chunk

logger = logging.getLogger(__name__)


class InMemoryChunkRepository(ChunkRepository):
    """Concrete chunk repository holding chunks per document in process memory.

    Writes replace a document's chunk tuple wholesale, so a reader always sees
    either the old or the new set for a document, never a mix.
    """

    def __init__(self) -> None:
        self._by_document: dict[str, tuple[Chunk, ...]] = {}
        self._lock = threading.Lock()

    async def chunks_in_scope(self, document_ids: Iterable[str]) -> list[Chunk]:
        with self._lock:
            snapshot = [self._by_document.get(doc_id, ()) for doc_id in sorted(set(document_ids))]
        return [chunk for chunks in snapshot for chunk in chunks]

    async def store_chunks(self, document_id: str, chunks: list[Chunk]) -> None:
        """Replace the chunks of ``document_id``.

        Raises:
            ValueError: If a chunk belongs to a different document.
        """
        for chunk in chunks:
            if chunk.document_id != document_id:
                raise ValueError(
                    f"Chunk {chunk.id} belongs to document {chunk.document_id}, not {document_id}"
                )
        with self._lock:
            self._by_document[document_id] = tuple(chunks)
        logger.info("Stored %d chunks for document %s", len(chunks), document_id)

    async def get_chunks_for_document(self, document_id: str) -> list[Chunk]:
        with self._lock:
            chunks = self._by_document.get(document_id, ())
        return sorted(chunks, key=lambda c: c.id)

    async def get_chunks(self, chunk_ids: Iterable[str]) -> list[Chunk]:
        wanted = set(chunk_ids)
        with self._lock:
            documents = list(self._by_document.values())
        return [chunk for chunks in documents for chunk in chunks if chunk.id in wanted]

    async def delete_by_document(self, document_id: str) -> int:
        with self._lock:
            removed = self._by_document.pop(document_id, ())
        count = len(removed)
        if count > 0:
            logger.info("Deleted %d chunks for document %s", count, document_id)
        return count
