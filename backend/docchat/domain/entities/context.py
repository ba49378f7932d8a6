"""Domain entities for assembled prompt context."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ManualSelection:
    """User-highlighted text explicitly attached to the conversation.

    Created by UI interaction; read-only to the core. ``token_count`` is the
    count reported by the client; the assembler re-estimates ``content``
    itself when budgeting.
    """

    document_id: str
    content: str
    page_numbers: tuple[int, ...] = ()
    token_count: int = 0
    source_title: str = ""


@dataclass
class AssembledContext:
    """Formatted context sections for one outgoing message.

    Built fresh per message and discarded after use. ``text`` is the exact
    string that is sent to the model and whose estimate is
    ``total_tokens_used``.
    """

    chunk_sections: list[str] = field(default_factory=list)
    selection_sections: list[str] = field(default_factory=list)
    total_tokens_used: int = 0
    text: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.chunk_sections and not self.selection_sections


@dataclass(frozen=True)
class ConversationTurn:
    """A prior message in the conversation, sent as history."""

    role: str  # "user" | "assistant"
    text: str
