"""FastAPI dependency injection — wires infrastructure to application layer.

The chunk store, the stream client (with its circuit and rate state), and the
chat service (with its in-flight reply registry) are process-wide singletons.
"""

from functools import lru_cache

from docchat.application.services import (
    ChatService,
    ContextAssembler,
    RetrievalService,
    TokenBudgetEstimator,
    TokenCountingService,
)
from docchat.config import get_settings
from docchat.infrastructure.anthropic import (
    AnthropicTokenCounter,
    CircuitBreaker,
    RateLimiter,
    ResilientStreamClient,
    RetryPolicy,
)
from docchat.infrastructure.credentials.settings_credential_provider import (
    SettingsCredentialProvider,
)
from docchat.infrastructure.embeddings.http_embedding_provider import HttpEmbeddingProvider
from docchat.infrastructure.storage.in_memory_chunk_repository import InMemoryChunkRepository


@lru_cache
def get_chunk_repository() -> InMemoryChunkRepository:
    return InMemoryChunkRepository()


@lru_cache
def get_credential_provider() -> SettingsCredentialProvider:
    return SettingsCredentialProvider(get_settings().anthropic_api_key)


@lru_cache
def get_stream_client() -> ResilientStreamClient:
    """Provides the shared streaming client and its breaker/rate window."""
    settings = get_settings()
    return ResilientStreamClient(
        get_credential_provider(),
        model=settings.chat_model,
        base_url=settings.anthropic_base_url,
        api_version=settings.anthropic_api_version,
        max_output_tokens=settings.max_output_tokens,
        timeout=settings.request_timeout_seconds,
        retry_policy=RetryPolicy(
            max_attempts=settings.max_retries,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
        ),
        circuit_breaker=CircuitBreaker(
            failure_threshold=settings.circuit_failure_threshold,
            recovery_seconds=settings.circuit_recovery_seconds,
        ),
        rate_limiter=RateLimiter(
            max_requests=settings.rate_limit_max_requests,
            window_seconds=settings.rate_limit_window_seconds,
        ),
        buffer_limit=settings.stream_buffer_limit,
    )


@lru_cache
def get_chat_service() -> ChatService:
    """Provides the ChatService with retrieval, assembly, and streaming wired up."""
    settings = get_settings()

    embedding_provider = HttpEmbeddingProvider(
        api_key=settings.embedding_api_key,
        base_url=settings.embedding_base_url,
        model=settings.embedding_model,
        model_dimensions=settings.embedding_dimensions,
    )
    retrieval = RetrievalService(
        embedding_provider,
        get_chunk_repository(),
        per_document_limit=settings.retrieval_per_document_limit,
        min_limit=settings.retrieval_min_limit,
        max_limit=settings.retrieval_max_limit,
        min_content_length=settings.min_content_length,
    )

    estimator = TokenBudgetEstimator()
    assembler = ContextAssembler(
        estimator,
        dedup_threshold=settings.dedup_threshold,
        chunk_budget_ratio=settings.chunk_budget_ratio,
        min_usable_span=settings.min_usable_span,
    )
    token_counting = TokenCountingService(
        estimator,
        AnthropicTokenCounter(
            get_credential_provider(),
            base_url=settings.anthropic_base_url,
            api_version=settings.anthropic_api_version,
        ),
    )

    return ChatService(
        retrieval,
        assembler,
        get_stream_client(),
        token_budget=settings.context_token_budget,
        history_limit=settings.history_limit,
        token_counting=token_counting,
        model=settings.chat_model,
    )
