"""Unit tests for the ContextAssembler."""

import random

import pytest

from docchat.application.services.context_assembler import (
    CHUNK_BLOCK_HEADER,
    SELECTION_BLOCK_HEADER,
    TRUNCATION_MARKER,
    ContextAssembler,
    jaccard_similarity,
)
from docchat.application.services.token_budget import ELLIPSIS, TokenBudgetEstimator
from docchat.domain.entities import Chunk, ManualSelection, ScoredChunk


# ── Helpers ──


def _scored(
    chunk_id: str,
    text: str,
    *,
    document_id: str = "doc",
    title: str = "Doc",
    pages: tuple[int, ...] = (1,),
    similarity: float = 0.9,
) -> ScoredChunk:
    return ScoredChunk(
        chunk=Chunk(
            id=chunk_id,
            document_id=document_id,
            text=text,
            page_numbers=pages,
            source_title=title,
        ),
        similarity=similarity,
    )


def _assembler() -> ContextAssembler:
    return ContextAssembler(TokenBudgetEstimator())


def _words(rng: random.Random, count: int) -> str:
    return " ".join(f"w{rng.randint(0, 5000)}" for _ in range(count))


# ── jaccard_similarity ──


def test_jaccard_identical_and_disjoint():
    assert jaccard_similarity("the cat sat", "sat the cat") == 1.0
    assert jaccard_similarity("alpha beta", "gamma delta") == 0.0


def test_jaccard_is_case_insensitive():
    assert jaccard_similarity("Hello World", "hello world") == 1.0


def test_jaccard_two_empty_texts_are_identical():
    assert jaccard_similarity("", "   ") == 1.0


# ── Empty input ──


def test_empty_input_yields_empty_context():
    context = _assembler().assemble([], [], token_budget=1000)

    assert context.chunk_sections == []
    assert context.selection_sections == []
    assert context.total_tokens_used == 0
    assert context.text == ""
    assert context.is_empty


def test_zero_budget_yields_empty_context():
    context = _assembler().assemble([_scored("a", "some text")], [], token_budget=0)
    assert context.is_empty


# ── Deduplication ──


def test_identical_texts_collapse_to_one():
    text = "The mitochondria is the powerhouse of the cell."
    chunks = [_scored("first", text, pages=(1,)), _scored("second", text, pages=(2,))]

    context = _assembler().assemble(chunks, [], token_budget=2000)

    assert len(context.chunk_sections) == 1
    assert "Pages 1" in context.chunk_sections[0]


def test_disjoint_texts_are_both_kept():
    chunks = [_scored("a", "alpha beta gamma"), _scored("b", "delta epsilon zeta")]

    context = _assembler().assemble(chunks, [], token_budget=2000)

    assert len(context.chunk_sections) == 2


def test_dedup_keeps_first_encountered():
    chunks = [
        _scored("kept", "one two three four five six seven eight nine ten"),
        _scored("dropped", "one two three four five six seven eight nine ten ten"),
    ]
    unique = _assembler().deduplicate(chunks)
    assert [c.chunk.id for c in unique] == ["kept"]


def test_dedup_threshold_is_configurable():
    chunks = [_scored("a", "one two three four"), _scored("b", "one two three five")]
    # Jaccard = 3 / 5 = 0.6
    assert len(ContextAssembler(TokenBudgetEstimator()).deduplicate(chunks)) == 2
    assert len(ContextAssembler(TokenBudgetEstimator(), dedup_threshold=0.5).deduplicate(chunks)) == 1


# ── Prioritization ──


def test_orders_by_title_then_page_then_length():
    chunks = [
        _scored("z1", "zeta page one", document_id="z", title="Zeta", pages=(1,)),
        _scored("a2", "alpha page two", document_id="a", title="Alpha", pages=(2,)),
        _scored("a1-short", "alpha one", document_id="a", title="Alpha", pages=(1,)),
        _scored("a1-long", "alpha page one but much longer text", document_id="a", title="Alpha", pages=(1,)),
    ]

    ordered = ContextAssembler.prioritize(chunks)

    assert [c.chunk.id for c in ordered] == ["a1-long", "a1-short", "a2", "z1"]


def test_chunks_without_pages_sort_last_within_document():
    chunks = [
        _scored("nopage", "no page text", pages=()),
        _scored("p3", "page three text", pages=(3,)),
    ]
    assert [c.chunk.id for c in ContextAssembler.prioritize(chunks)] == ["p3", "nopage"]


def test_output_is_deterministic():
    rng = random.Random(5)
    chunks = [_scored(f"c{i}", _words(rng, 30), pages=(i % 4 + 1,)) for i in range(12)]
    selections = [ManualSelection(document_id="doc", content=_words(rng, 20))]

    first = _assembler().assemble(chunks, selections, token_budget=3000)
    second = _assembler().assemble(chunks, selections, token_budget=3000)

    assert first == second


# ── Budgeting ──


@pytest.mark.parametrize("budget", [1, 10, 50, 120, 400, 1500, 3000, 8000])
def test_never_exceeds_budget(budget):
    rng = random.Random(budget)
    estimator = TokenBudgetEstimator()
    chunks = [
        _scored(
            f"c{i}",
            _words(rng, rng.randint(5, 900)),
            document_id=f"d{i % 3}",
            title=f"Title {i % 3}",
            pages=(rng.randint(1, 9),),
        )
        for i in range(25)
    ]
    selections = [
        ManualSelection(document_id="d0", content=_words(rng, rng.randint(5, 600)), page_numbers=(2,))
        for _ in range(4)
    ]

    context = ContextAssembler(estimator).assemble(chunks, selections, token_budget=budget)

    assert estimator.estimate(context.text) <= budget
    assert context.total_tokens_used <= budget


def test_hard_stop_appends_marker_and_refuses_later_sections():
    chunks = [
        _scored("p1", "a" * 400, pages=(1,)),
        _scored("p2", "b" * 400, pages=(2,)),
        _scored("p3", "tiny", pages=(3,)),
    ]

    context = _assembler().assemble(chunks, [], token_budget=300)

    assert len(context.chunk_sections) == 1
    assert "tiny" not in context.text
    assert context.text.endswith(TRUNCATION_MARKER)


def test_oversized_section_is_truncated_when_enough_budget_remains():
    chunks = [
        _scored("p1", "a" * 10_000, pages=(1,)),
        _scored("p2", "b" * 20_000, pages=(2,)),
    ]

    context = _assembler().assemble(chunks, [], token_budget=6000)

    assert len(context.chunk_sections) == 2
    assert context.chunk_sections[1].endswith(ELLIPSIS)
    assert TRUNCATION_MARKER in context.text
    assert context.total_tokens_used <= 6000


def test_oversized_section_is_skipped_when_little_budget_remains():
    chunks = [
        _scored("p1", "a" * 2_000, pages=(1,)),
        _scored("p2", "b" * 20_000, pages=(2,)),
    ]

    context = _assembler().assemble(chunks, [], token_budget=1500)

    assert len(context.chunk_sections) == 1
    assert "b" * 100 not in context.text


def test_selections_use_the_remaining_budget():
    chunks = [_scored("c", "chunk text " * 10)]
    selections = [
        ManualSelection(document_id="doc", content="highlighted passage", page_numbers=(4,), source_title="Doc")
    ]

    context = _assembler().assemble(chunks, selections, token_budget=2000)

    assert len(context.selection_sections) == 1
    assert "Pages 4" in context.selection_sections[0]
    assert context.text.index(CHUNK_BLOCK_HEADER) < context.text.index(SELECTION_BLOCK_HEADER)


def test_empty_block_emits_no_header():
    only_chunks = _assembler().assemble([_scored("c", "chunk text")], [], token_budget=2000)
    only_selections = _assembler().assemble(
        [], [ManualSelection(document_id="doc", content="picked text")], token_budget=2000
    )

    assert SELECTION_BLOCK_HEADER not in only_chunks.text
    assert CHUNK_BLOCK_HEADER not in only_selections.text
    assert only_selections.text.startswith(SELECTION_BLOCK_HEADER)


def test_blank_selections_are_ignored():
    context = _assembler().assemble([], [ManualSelection(document_id="doc", content="   ")], token_budget=2000)
    assert context.is_empty
    assert context.text == ""


def test_selection_budget_uses_content_not_reported_count():
    estimator = TokenBudgetEstimator()
    selection = ManualSelection(document_id="doc", content="word " * 2_000, page_numbers=(1,), token_count=1)

    context = ContextAssembler(estimator).assemble([], [selection], token_budget=300)

    assert estimator.estimate(context.text) <= 300
    assert "word " * 1_000 not in context.text
