"""Retrieval use case — query embedding, similarity search, and quality filtering.

Orchestrates:
1. Embedding the query via the EmbeddingProvider
2. Reading the chunks in scope from the ChunkRepository (one snapshot)
3. Ranking them with a SimilarityIndex, with a limit that grows with scope size
4. Dropping near-empty chunks after ranking
"""

import logging

from docchat.application.interfaces.chunk_repository import ChunkRepository
from docchat.application.interfaces.embedding_provider import EmbeddingProvider
from docchat.application.services.similarity_index import SimilarityIndex
from docchat.domain.entities import RetrievalQuery, ScoredChunk
from docchat.infrastructure.logging.colored_logger import PipelineLogger, PipelineStage

logger = logging.getLogger(__name__)
plog = PipelineLogger("RetrievalService")

# ── Retrieval defaults ──────────────────────────────────────────────
_PER_DOCUMENT_LIMIT = 8
_MIN_LIMIT = 5
_MAX_LIMIT = 20
_MIN_CONTENT_LENGTH = 50


def search_limit_for(
    document_count: int,
    *,
    per_document: int = _PER_DOCUMENT_LIMIT,
    min_limit: int = _MIN_LIMIT,
    max_limit: int = _MAX_LIMIT,
) -> int:
    """Candidate pool size: per_document * documents, clamped to [min_limit, max_limit]."""
    return max(min_limit, min(per_document * document_count, max_limit))


class RetrievalService:
    """Application service turning a scoped query into ranked chunks.

    Side-effect free apart from the embedding call.
    """

    def __init__(
        self,
        embedding_provider: EmbeddingProvider,
        chunk_repository: ChunkRepository,
        *,
        per_document_limit: int = _PER_DOCUMENT_LIMIT,
        min_limit: int = _MIN_LIMIT,
        max_limit: int = _MAX_LIMIT,
        min_content_length: int = _MIN_CONTENT_LENGTH,
    ):
        self._embedding_provider = embedding_provider
        self._chunk_repo = chunk_repository
        self._per_document_limit = per_document_limit
        self._min_limit = min_limit
        self._max_limit = max_limit
        self._min_content_length = min_content_length

    async def retrieve(self, query: RetrievalQuery) -> list[ScoredChunk]:
        """Return the most relevant chunks for ``query``, most similar first.

        An empty scope or blank query returns [] without calling the embedder.

        Raises:
            EmbeddingUnavailable: If the query cannot be embedded.
        """
        if not query.scope_document_ids:
            logger.info("Retrieval scope is empty, returning no chunks")
            return []
        if not query.text or not query.text.strip():
            logger.warning("Empty query string provided, returning no chunks")
            return []

        document_count = len(query.scope_document_ids)
        limit = search_limit_for(
            document_count,
            per_document=self._per_document_limit,
            min_limit=self._min_limit,
            max_limit=self._max_limit,
        )
        plog.step_start(
            PipelineStage.RETRIEVAL,
            "Searching document scope",
            documents=document_count,
            limit=limit,
        )

        query_embedding = await self._embedding_provider.embed_text(query.text)
        chunks = await self._chunk_repo.chunks_in_scope(query.scope_document_ids)
        plog.detail("Scanning chunks", candidates=len(chunks), dims=len(query_embedding))

        ranked = SimilarityIndex(chunks).search(query_embedding, limit)

        # Quality filter runs after ranking so ranking sees the full pool
        results = [
            sc for sc in ranked
            if len(sc.chunk.text.strip()) >= self._min_content_length
        ]

        plog.step_complete(
            PipelineStage.RETRIEVAL,
            f"Retrieved {len(results)} chunks",
            ranked=len(ranked),
            dropped_short=len(ranked) - len(results),
            top_score=f"{results[0].similarity:.3f}" if results else "n/a",
        )
        return results
