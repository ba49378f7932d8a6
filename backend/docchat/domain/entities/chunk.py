"""Domain entities for document chunks and their similarity scores."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Chunk:
    """A fixed slice of a source document's text paired with its embedding.

    Produced upstream (PDF chunking + embedding collaborator) and immutable
    once stored. Owned by the document it belongs to.
    """

    id: str
    document_id: str
    text: str
    embedding: tuple[float, ...] = ()
    page_numbers: tuple[int, ...] = ()
    source_title: str = ""

    @property
    def first_page(self) -> int | None:
        return min(self.page_numbers) if self.page_numbers else None


@dataclass(frozen=True)
class ScoredChunk:
    """A chunk paired with its cosine similarity to the current query."""

    chunk: Chunk
    similarity: float  # -1.0 – 1.0


@dataclass(frozen=True)
class RetrievalQuery:
    """A user query scoped to a set of documents. Created per user message."""

    text: str
    scope_document_ids: frozenset[str] = field(default_factory=frozenset)
