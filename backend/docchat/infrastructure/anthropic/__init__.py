from docchat.infrastructure.anthropic.resilience import (
    CircuitBreaker,
    RateLimiter,
    RetryPolicy,
)
from docchat.infrastructure.anthropic.sse_decoder import StreamDecoder
from docchat.infrastructure.anthropic.stream_client import ResilientStreamClient
from docchat.infrastructure.anthropic.token_counter import AnthropicTokenCounter

__all__ = [
    "AnthropicTokenCounter",
    "CircuitBreaker",
    "RateLimiter",
    "ResilientStreamClient",
    "RetryPolicy",
    "StreamDecoder",
]
