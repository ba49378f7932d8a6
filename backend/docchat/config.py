import json
import logging
from pathlib import Path

from pydantic_settings import BaseSettings
from functools import lru_cache

_config_logger = logging.getLogger(__name__)

_SETTINGS_FILE = Path("data/settings.json")
_BACKEND_DIR = Path(__file__).resolve().parents[1]
_ENV_FILES = (
    _BACKEND_DIR / ".env",
    ".env",
)
_OVERRIDE_KEYS = {
    "chat_model": str,
    "context_token_budget": int,
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_title: str = "DocChat RAG API"
    app_version: str = "0.1.0"
    app_env: str = "development"
    cors_origins: list[str] = ["http://localhost:3000"]

    # Anthropic Messages API
    anthropic_api_key: str = ""
    anthropic_base_url: str = "https://api.anthropic.com"
    anthropic_api_version: str = "2023-06-01"
    chat_model: str = "claude-3-5-sonnet-20241022"
    max_output_tokens: int = 1000
    history_limit: int = 10
    request_timeout_seconds: float = 120.0

    # Embedding endpoint (OpenAI-compatible /embeddings)
    embedding_api_key: str = ""
    embedding_base_url: str = "https://api.openai.com/v1"
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536

    # Retrieval
    retrieval_per_document_limit: int = 8
    retrieval_min_limit: int = 5
    retrieval_max_limit: int = 20
    min_content_length: int = 50

    # Context assembly
    context_token_budget: int = 8000
    chunk_budget_ratio: float = 2 / 3
    dedup_threshold: float = 0.85
    min_usable_span: int = 1000

    # Resilience
    max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 32.0
    circuit_failure_threshold: int = 5
    circuit_recovery_seconds: float = 300.0
    rate_limit_max_requests: int = 50
    rate_limit_window_seconds: float = 60.0
    stream_buffer_limit: int = 10_000

    # Logging: per-category log levels
    log_level: str = "INFO"                  # Root / app-wide
    log_level_http: str = "WARNING"          # httpx / httpcore outbound HTTP
    log_level_uvicorn: str = "INFO"          # uvicorn.access / uvicorn.error
    log_level_retrieval: str = "INFO"        # retrieval + context assembly
    log_level_stream: str = "INFO"           # stream client + SSE decoding

    model_config = {
        "env_file": _ENV_FILES,
        "env_file_encoding": "utf-8",
    }

    def model_post_init(self, __context: object) -> None:
        """Merge runtime overrides from data/settings.json into user-tunable settings."""
        if _SETTINGS_FILE.exists():
            try:
                overrides = json.loads(_SETTINGS_FILE.read_text("utf-8"))
                for key, expected_type in _OVERRIDE_KEYS.items():
                    if key in overrides and isinstance(overrides[key], expected_type):
                        object.__setattr__(self, key, overrides[key])
            except Exception as exc:
                _config_logger.warning("Could not load settings overrides: %s", exc)


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance — reads .env once."""
    return Settings()
