"""HTTP embedding provider — calls an OpenAI-compatible ``/embeddings`` endpoint.

Default model: text-embedding-3-small (1536 dimensions).
"""

import logging
from typing import Any

import httpx

from docchat.application.interfaces.embedding_provider import EmbeddingProvider
from docchat.domain.exceptions import EmbeddingUnavailable

logger = logging.getLogger(__name__)


class HttpEmbeddingProvider(EmbeddingProvider):
    """Infrastructure adapter — generates query embeddings over HTTP."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        model: str = "text-embedding-3-small",
        model_dimensions: int = 1536,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._dimensions = model_dimensions
        self._timeout = timeout
        self._http_client = http_client

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def _get_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is not None:
            return self._http_client
        return httpx.AsyncClient(timeout=self._timeout)

    async def embed_text(self, text: str) -> list[float]:
        if not self._api_key:
            raise EmbeddingUnavailable("No embedding API key configured")

        payload: dict[str, Any] = {
            "model": self._model,
            "input": [text],
            "dimensions": self._dimensions,
        }

        client = await self._get_client()
        should_close = self._http_client is None

        try:
            response = await client.post(
                f"{self._base_url}/embeddings", headers=self._get_headers(), json=payload
            )
        except httpx.HTTPError as exc:
            logger.error("Embedding request failed: %s", exc)
            raise EmbeddingUnavailable(f"Embedding request failed: {exc}") from exc
        finally:
            if should_close:
                await client.aclose()

        if response.status_code != 200:
            error_text = response.text[:500]
            logger.error("Embedding API error %d: %s", response.status_code, error_text)
            raise EmbeddingUnavailable(
                f"Embedding API returned {response.status_code}: {error_text}",
                status_code=response.status_code,
            )

        try:
            embedding = response.json()["data"][0]["embedding"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise EmbeddingUnavailable("Embedding response had no vector") from exc
        if not isinstance(embedding, list) or not embedding:
            raise EmbeddingUnavailable("Embedding response had an empty vector")
        try:
            vector = [float(v) for v in embedding]
        except (ValueError, TypeError) as exc:
            raise EmbeddingUnavailable("Embedding response had a non-numeric vector") from exc

        logger.info("Generated query embedding (model=%s, dims=%d)", self._model, len(vector))
        return vector
