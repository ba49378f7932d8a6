"""Context assembly — deduplicate, order, budget, and render prompt context.

Retrieved chunks and manual selections are rendered into two labeled blocks.
Every rendered piece (block header, section, truncation marker) is charged
against the budget as ``estimate(piece + separator) + 1``; the sum of those
charges bounds the estimate of the joined text, so the assembled context can
never exceed the budget it was given.
"""

import logging
import math
from collections.abc import Sequence

from docchat.application.services.token_budget import TokenBudgetEstimator
from docchat.domain.entities import AssembledContext, ManualSelection, ScoredChunk

logger = logging.getLogger(__name__)

# ── Assembly defaults ───────────────────────────────────────────────
_DEDUP_THRESHOLD = 0.85
_CHUNK_BUDGET_RATIO = 2 / 3
_MIN_USABLE_SPAN = 1000

SECTION_SEPARATOR = "\n\n"
CHUNK_BLOCK_HEADER = "=== RETRIEVED CONTEXT ==="
SELECTION_BLOCK_HEADER = "=== MANUAL SELECTIONS ==="
TRUNCATION_MARKER = "[... further context omitted to stay within the token budget ...]"


def jaccard_similarity(a: str, b: str) -> float:
    """Jaccard similarity of the lower-cased word sets of two texts."""
    words_a = set(a.lower().split())
    words_b = set(b.lower().split())
    if not words_a and not words_b:
        return 1.0
    return len(words_a & words_b) / len(words_a | words_b)


def format_chunk_section(scored: ScoredChunk) -> str:
    chunk = scored.chunk
    header = f"[Source: {chunk.source_title or chunk.document_id}"
    if chunk.page_numbers:
        header += f" | Pages {', '.join(str(p) for p in chunk.page_numbers)}"
    header += f" | Relevance {scored.similarity:.3f}]"
    return f"{header}\n{chunk.text.strip()}"


def format_selection_section(selection: ManualSelection) -> str:
    header = f"[Selected text: {selection.source_title or selection.document_id}"
    if selection.page_numbers:
        header += f" | Pages {', '.join(str(p) for p in selection.page_numbers)}"
    header += "]"
    return f"{header}\n{selection.content.strip()}"


class _BlockBudget:
    """Accumulates the pieces of one labeled block under a token allowance.

    Once a section does not fit, the block is closed: the oversized section is
    either rendered partially (if at least ``min_usable_span`` tokens remain)
    or skipped, a truncation marker is appended if it fits, and every later
    section is refused.
    """

    def __init__(
        self,
        estimator: TokenBudgetEstimator,
        header: str,
        budget: int,
        min_usable_span: int,
    ):
        self._estimator = estimator
        self._header = header
        self._budget = max(budget, 0)
        self._min_usable_span = min_usable_span
        self.pieces: list[str] = []
        self.sections: list[str] = []
        self.used = 0
        self.closed = False

    def cost(self, piece: str) -> int:
        return self._estimator.estimate(piece + SECTION_SEPARATOR) + 1

    def add(self, section: str) -> bool:
        """Try to render ``section``. Returns False once the block is closed."""
        if self.closed:
            return False

        header_cost = 0 if self.pieces else self.cost(self._header)
        section_cost = self.cost(section)
        if self.used + header_cost + section_cost <= self._budget:
            self._append(section, header_cost + section_cost)
            return True

        marker_cost = self.cost(TRUNCATION_MARKER)
        allowance = self._budget - self.used - header_cost - marker_cost
        if allowance >= self._min_usable_span:
            partial = self._fit(section, allowance)
            if partial:
                self._append(partial, header_cost + self.cost(partial))
                logger.debug("Section truncated to fit %d remaining tokens", allowance)
        else:
            logger.debug(
                "Section of ~%d tokens skipped; only %d tokens remain",
                section_cost,
                max(allowance, 0),
            )

        self._close(marker_cost)
        return False

    def _append(self, section: str, cost: int) -> None:
        if not self.pieces:
            self.pieces.append(self._header)
        self.pieces.append(section)
        self.sections.append(section)
        self.used += cost

    def _fit(self, section: str, allowance: int) -> str | None:
        # truncate() keeps the estimate within the limit; the separator and the
        # +1 charge add at most 3 tokens on top of it.
        limit = allowance - 3
        while limit > 0:
            candidate = self._estimator.truncate(section, limit)
            if self.cost(candidate) <= allowance:
                return candidate
            limit -= max(1, math.ceil(limit * 0.01))
        return None

    def _close(self, marker_cost: int) -> None:
        self.closed = True
        if self.pieces and self.used + marker_cost <= self._budget:
            self.pieces.append(TRUNCATION_MARKER)
            self.used += marker_cost


class ContextAssembler:
    """Builds the context block of a prompt from retrieved chunks and manual selections.

    The ordering applied here (document title, page, passage length) is for
    topical coherence of the rendered prompt; relevance ranking has already
    happened during retrieval.
    """

    def __init__(
        self,
        estimator: TokenBudgetEstimator,
        *,
        dedup_threshold: float = _DEDUP_THRESHOLD,
        chunk_budget_ratio: float = _CHUNK_BUDGET_RATIO,
        min_usable_span: int = _MIN_USABLE_SPAN,
    ):
        self._estimator = estimator
        self._dedup_threshold = dedup_threshold
        self._chunk_budget_ratio = chunk_budget_ratio
        self._min_usable_span = min_usable_span

    def assemble(
        self,
        chunks: Sequence[ScoredChunk],
        manual_selections: Sequence[ManualSelection],
        token_budget: int,
    ) -> AssembledContext:
        """Render ``chunks`` and ``manual_selections`` within ``token_budget``.

        Never raises on empty input; returns a context with zero sections.
        """
        if token_budget <= 0 or (not chunks and not manual_selections):
            return AssembledContext()

        ordered = self.prioritize(self.deduplicate(chunks))

        chunk_block = _BlockBudget(
            self._estimator,
            CHUNK_BLOCK_HEADER,
            int(token_budget * self._chunk_budget_ratio),
            self._min_usable_span,
        )
        for scored in ordered:
            if not chunk_block.add(format_chunk_section(scored)):
                break

        # Selections get whatever the chunk block left unused
        selection_block = _BlockBudget(
            self._estimator,
            SELECTION_BLOCK_HEADER,
            token_budget - chunk_block.used,
            self._min_usable_span,
        )
        for selection in manual_selections:
            if not selection.content or not selection.content.strip():
                continue
            if not selection_block.add(format_selection_section(selection)):
                break

        text = SECTION_SEPARATOR.join(chunk_block.pieces + selection_block.pieces)
        context = AssembledContext(
            chunk_sections=chunk_block.sections,
            selection_sections=selection_block.sections,
            total_tokens_used=self._estimator.estimate(text),
            text=text,
        )
        logger.info(
            "Assembled context: %d/%d chunks, %d/%d selections, %d/%d tokens",
            len(context.chunk_sections),
            len(ordered),
            len(context.selection_sections),
            len(manual_selections),
            context.total_tokens_used,
            token_budget,
        )
        return context

    def deduplicate(self, chunks: Sequence[ScoredChunk]) -> list[ScoredChunk]:
        """Drop chunks whose word-set Jaccard similarity to a kept chunk exceeds the threshold.

        The first-encountered chunk of a duplicate pair is kept.
        """
        kept: list[ScoredChunk] = []
        for candidate in chunks:
            if any(
                jaccard_similarity(candidate.chunk.text, existing.chunk.text)
                > self._dedup_threshold
                for existing in kept
            ):
                logger.debug("Dropping near-duplicate chunk %s", candidate.chunk.id)
                continue
            kept.append(candidate)
        return kept

    @staticmethod
    def prioritize(chunks: Sequence[ScoredChunk]) -> list[ScoredChunk]:
        """Group by document (alphabetical by title), then page ascending, then longest first."""

        def sort_key(scored: ScoredChunk) -> tuple:
            chunk = scored.chunk
            first_page = chunk.first_page
            return (
                (chunk.source_title or "").casefold(),
                chunk.document_id,
                first_page if first_page is not None else math.inf,
                -len(chunk.text),
            )

        return sorted(chunks, key=sort_key)
