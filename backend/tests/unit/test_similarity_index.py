"""Unit tests for cosine similarity and the SimilarityIndex."""

import math
import random

import pytest

from docchat.application.services.similarity_index import SimilarityIndex, cosine_similarity
from docchat.domain.entities import Chunk


# ── Helpers ──


def _chunk(chunk_id: str, embedding: list[float]) -> Chunk:
    return Chunk(
        id=chunk_id,
        document_id="doc-1",
        text=f"text of {chunk_id}",
        embedding=tuple(embedding),
    )


# ── cosine_similarity ──


def test_self_similarity_is_one():
    rng = random.Random(7)
    for _ in range(20):
        vector = [rng.uniform(-1, 1) for _ in range(16)]
        assert cosine_similarity(vector, vector) == pytest.approx(1.0, abs=1e-5)


def test_similarity_is_symmetric():
    rng = random.Random(11)
    for _ in range(20):
        a = [rng.uniform(-1, 1) for _ in range(8)]
        b = [rng.uniform(-1, 1) for _ in range(8)]
        assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a), abs=1e-6)


def test_orthogonal_and_opposite_vectors():
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0, abs=1e-6)
    assert cosine_similarity([1.0, 2.0], [-1.0, -2.0]) == pytest.approx(-1.0, abs=1e-6)


def test_zero_magnitude_vector_scores_zero():
    assert cosine_similarity([0.0, 0.0, 0.0], [1.0, 2.0, 3.0]) == 0.0


def test_mismatched_lengths_score_zero_instead_of_raising():
    assert cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0]) == 0.0


def test_empty_vectors_score_zero():
    assert cosine_similarity([], []) == 0.0


def test_non_finite_values_score_zero():
    assert cosine_similarity([math.inf, 1.0], [1.0, 1.0]) == 0.0


# ── SimilarityIndex.search ──


def test_search_sorted_non_increasing():
    rng = random.Random(3)
    chunks = [_chunk(f"c{i}", [rng.uniform(-1, 1) for _ in range(4)]) for i in range(30)]
    results = SimilarityIndex(chunks).search([0.5, -0.2, 0.1, 0.9], limit=30)

    scores = [r.similarity for r in results]
    assert scores == sorted(scores, reverse=True)
    assert len(results) == 30


def test_search_limit_zero_returns_empty():
    index = SimilarityIndex([_chunk("a", [1.0, 0.0])])
    assert index.search([1.0, 0.0], limit=0) == []
    assert index.search([1.0, 0.0], limit=-3) == []


def test_search_never_exceeds_limit():
    chunks = [_chunk(f"c{i}", [1.0, float(i)]) for i in range(10)]
    assert len(SimilarityIndex(chunks).search([1.0, 1.0], limit=4)) == 4


def test_limit_above_size_returns_all_chunks():
    chunks = [_chunk("a", [1.0, 0.0]), _chunk("b", [0.0, 1.0])]
    results = SimilarityIndex(chunks).search([1.0, 0.0], limit=50)
    assert [r.chunk.id for r in results] == ["a", "b"]


def test_ties_keep_input_order():
    chunks = [_chunk("first", [1.0, 0.0]), _chunk("second", [2.0, 0.0]), _chunk("third", [3.0, 0.0])]
    results = SimilarityIndex(chunks).search([1.0, 0.0], limit=3)
    assert [r.chunk.id for r in results] == ["first", "second", "third"]


def test_dimension_mismatch_chunks_sink_to_zero():
    chunks = [_chunk("stale", [1.0, 0.0, 0.0]), _chunk("fresh", [1.0, 0.0])]
    results = SimilarityIndex(chunks).search([1.0, 0.0], limit=2)

    assert results[0].chunk.id == "fresh"
    assert results[1].chunk.id == "stale"
    assert results[1].similarity == 0.0


def test_scores_are_recomputed_per_query():
    index = SimilarityIndex([_chunk("x", [1.0, 0.0])])
    assert index.search([1.0, 0.0], limit=1)[0].similarity == pytest.approx(1.0, abs=1e-6)
    assert index.search([0.0, 1.0], limit=1)[0].similarity == pytest.approx(0.0, abs=1e-6)
