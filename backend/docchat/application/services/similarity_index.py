"""In-memory similarity index — linear cosine scan over chunk embeddings."""

import logging
from collections.abc import Sequence

import numpy as np

from docchat.domain.entities import Chunk, ScoredChunk

logger = logging.getLogger(__name__)


def cosine_similarity(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """Cosine similarity of two vectors.

    Mismatched lengths and zero-magnitude vectors yield 0.0 instead of raising.
    """
    va = np.asarray(a, dtype=np.float32)
    vb = np.asarray(b, dtype=np.float32)
    if va.shape != vb.shape or va.size == 0:
        return 0.0

    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0 or not np.isfinite(norm_a * norm_b):
        return 0.0

    similarity = float(np.dot(va, vb)) / (norm_a * norm_b)
    if not np.isfinite(similarity):
        return 0.0
    return max(-1.0, min(1.0, similarity))


class SimilarityIndex:
    """Scores every chunk against a query embedding and keeps the top ``limit``.

    Holds a snapshot of the chunks it was built from; it never caches scores,
    so each ``search`` recomputes similarity from the current query vector.
    """

    def __init__(self, chunks: Sequence[Chunk]):
        self._chunks = list(chunks)

    def __len__(self) -> int:
        return len(self._chunks)

    def search(self, query_embedding: Sequence[float], limit: int) -> list[ScoredChunk]:
        """Return up to ``limit`` chunks, most similar first.

        Ties keep the input order (stable sort). ``limit <= 0`` returns [].
        """
        if limit <= 0 or not self._chunks:
            return []

        query = np.asarray(query_embedding, dtype=np.float32)
        scored: list[ScoredChunk] = []
        mismatched = 0

        for chunk in self._chunks:
            if len(chunk.embedding) != query.size:
                mismatched += 1
            scored.append(
                ScoredChunk(chunk=chunk, similarity=cosine_similarity(query, chunk.embedding))
            )

        if mismatched:
            logger.warning(
                "%d of %d chunks have embedding dimension != %d; scored as 0.0",
                mismatched,
                len(self._chunks),
                query.size,
            )

        scored.sort(key=lambda sc: sc.similarity, reverse=True)
        return scored[:limit]
