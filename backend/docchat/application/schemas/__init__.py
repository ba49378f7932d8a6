from .chat import (
    CancelResponse,
    ChatStreamRequest,
    ChunkSchema,
    ContextRequest,
    ContextResponse,
    ConversationTurnSchema,
    DeleteChunksResponse,
    ManualSelectionSchema,
    StoreChunksRequest,
    StoreChunksResponse,
)

__all__ = [
    "CancelResponse",
    "ChatStreamRequest",
    "ChunkSchema",
    "ContextRequest",
    "ContextResponse",
    "ConversationTurnSchema",
    "DeleteChunksResponse",
    "ManualSelectionSchema",
    "StoreChunksRequest",
    "StoreChunksResponse",
]
