from .chunk import Chunk, RetrievalQuery, ScoredChunk
from .context import AssembledContext, ConversationTurn, ManualSelection
from .stream_event import (
    MessageStart,
    MessageStop,
    Ping,
    StreamError,
    StreamEvent,
    TextDelta,
    Unknown,
)

__all__ = [
    "Chunk",
    "RetrievalQuery",
    "ScoredChunk",
    "AssembledContext",
    "ConversationTurn",
    "ManualSelection",
    "MessageStart",
    "MessageStop",
    "Ping",
    "StreamError",
    "StreamEvent",
    "TextDelta",
    "Unknown",
]
