from .chunk_repository import ChunkRepository
from .credential_provider import CredentialProvider
from .embedding_provider import EmbeddingProvider
from .token_counter import TokenCounter

__all__ = [
    "ChunkRepository",
    "CredentialProvider",
    "EmbeddingProvider",
    "TokenCounter",
]
