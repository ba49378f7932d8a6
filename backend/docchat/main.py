"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from docchat.config import get_settings
from docchat.infrastructure.dependencies import get_credential_provider
from docchat.infrastructure.logging.log_config import setup_logging
from docchat.presentation.api.router import router as api_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan — configure logging and report missing credentials."""
    settings = get_settings()
    setup_logging()

    credentials = get_credential_provider()
    if not credentials.credentials():
        logger.warning("ANTHROPIC_API_KEY is not configured; chat requests will be rejected.")
    elif not credentials.is_valid_format(credentials.credentials()):
        logger.warning("ANTHROPIC_API_KEY does not look like a Claude API key.")
    if not settings.embedding_api_key.strip():
        logger.warning(
            "EMBEDDING_API_KEY is not configured; answers will use manual selections only."
        )

    yield


def create_app() -> FastAPI:
    """Factory function that builds and configures the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_title,
        version=settings.app_version,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Mount API routes
    app.include_router(api_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "docchat.main:app",
        host="0.0.0.0",
        port=8020,
        reload=True,
    )
