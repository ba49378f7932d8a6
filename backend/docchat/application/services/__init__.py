from .chat_service import ChatService
from .context_assembler import ContextAssembler
from .retrieval_service import RetrievalService
from .similarity_index import SimilarityIndex
from .token_budget import TokenBudgetEstimator, TokenCountingService

__all__ = [
    "ChatService",
    "ContextAssembler",
    "RetrievalService",
    "SimilarityIndex",
    "TokenBudgetEstimator",
    "TokenCountingService",
]
