"""Health check endpoint — reports app metadata and circuit state."""

from fastapi import APIRouter, Depends

from docchat.config import get_settings
from docchat.infrastructure.anthropic import ResilientStreamClient
from docchat.infrastructure.dependencies import get_stream_client

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check(
    client: ResilientStreamClient = Depends(get_stream_client),
) -> dict:
    """Returns the current application health status."""
    settings = get_settings()
    breaker = client.circuit_breaker
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.app_env,
        "model": client.model,
        "circuit": {
            "open": breaker.is_open,
            "failure_count": breaker.failure_count,
        },
        "requests_in_window": client.rate_limiter.in_window,
    }
