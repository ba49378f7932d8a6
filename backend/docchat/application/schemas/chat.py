"""Pydantic v2 schemas (DTOs) for chat, context, and chunk endpoints."""

from pydantic import BaseModel, Field

from docchat.domain.entities import Chunk, ConversationTurn, ManualSelection


# ── Shared parts ──


class ConversationTurnSchema(BaseModel):
    """A prior message in the conversation."""

    role: str = Field(..., pattern=r"^(user|assistant)$")
    text: str

    def to_domain(self) -> ConversationTurn:
        return ConversationTurn(role=self.role, text=self.text)


class ManualSelectionSchema(BaseModel):
    """Text the user highlighted and attached to the message."""

    document_id: str
    content: str
    page_numbers: list[int] = Field(default_factory=list)
    token_count: int = Field(default=0, ge=0)
    source_title: str = ""

    def to_domain(self) -> ManualSelection:
        return ManualSelection(
            document_id=self.document_id,
            content=self.content,
            page_numbers=tuple(self.page_numbers),
            token_count=self.token_count,
            source_title=self.source_title,
        )


# ── Chat ──


class ChatStreamRequest(BaseModel):
    """Request schema for the streaming chat endpoint."""

    conversation_id: str = Field(..., min_length=1, description="Caller key for last-write-wins")
    message: str = Field(..., description="The user's question")
    history: list[ConversationTurnSchema] = Field(default_factory=list)
    document_ids: list[str] = Field(default_factory=list, description="Retrieval scope")
    manual_selections: list[ManualSelectionSchema] = Field(default_factory=list)


class CancelResponse(BaseModel):
    conversation_id: str
    cancelled: bool


# ── Context preview ──


class ContextRequest(BaseModel):
    """Request schema for assembling context without calling the model."""

    query: str
    document_ids: list[str] = Field(default_factory=list)
    manual_selections: list[ManualSelectionSchema] = Field(default_factory=list)
    token_budget: int | None = Field(default=None, gt=0)


class ContextResponse(BaseModel):
    chunk_sections: list[str]
    selection_sections: list[str]
    total_tokens_used: int
    text: str
    prompt_tokens: int = Field(..., description="Input tokens of the full request, exact when available")


# ── Chunks ──


class ChunkSchema(BaseModel):
    id: str
    text: str
    embedding: list[float] = Field(default_factory=list)
    page_numbers: list[int] = Field(default_factory=list)
    source_title: str = ""

    def to_domain(self, document_id: str) -> Chunk:
        return Chunk(
            id=self.id,
            document_id=document_id,
            text=self.text,
            embedding=tuple(self.embedding),
            page_numbers=tuple(self.page_numbers),
            source_title=self.source_title,
        )

    @classmethod
    def from_domain(cls, chunk: Chunk) -> "ChunkSchema":
        return cls(
            id=chunk.id,
            text=chunk.text,
            embedding=list(chunk.embedding),
            page_numbers=list(chunk.page_numbers),
            source_title=chunk.source_title,
        )


class StoreChunksRequest(BaseModel):
    chunks: list[ChunkSchema]


class StoreChunksResponse(BaseModel):
    document_id: str
    stored: int


class DeleteChunksResponse(BaseModel):
    document_id: str
    deleted: int
