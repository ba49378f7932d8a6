"""Exact token counting via the Messages API ``/v1/messages/count_tokens`` endpoint."""

import logging
from typing import Any

import httpx

from docchat.application.interfaces.credential_provider import CredentialProvider
from docchat.application.interfaces.token_counter import TokenCounter
from docchat.domain.entities import ConversationTurn
from docchat.domain.exceptions import TokenCountUnavailable

logger = logging.getLogger(__name__)


class AnthropicTokenCounter(TokenCounter):
    """Infrastructure adapter — asks the API how many input tokens a request uses.

    Any failure (no credential, transport error, non-200, unexpected body)
    surfaces as ``TokenCountUnavailable`` so callers can fall back to the
    local estimate.
    """

    def __init__(
        self,
        credential_provider: CredentialProvider,
        *,
        base_url: str = "https://api.anthropic.com",
        api_version: str = "2023-06-01",
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._credentials = credential_provider
        self._base_url = base_url.rstrip("/")
        self._api_version = api_version
        self._timeout = timeout
        self._http_client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is not None:
            return self._http_client
        return httpx.AsyncClient(timeout=self._timeout)

    async def exact_token_count(
        self,
        messages: list[ConversationTurn],
        model: str,
        *,
        system: str | None = None,
    ) -> int:
        api_key = self._credentials.credentials()
        if not api_key or not self._credentials.is_valid_format(api_key):
            raise TokenCountUnavailable("No valid API key for token counting")

        payload: dict[str, Any] = {
            "model": model,
            "messages": [{"role": m.role, "content": m.text} for m in messages],
        }
        if system:
            payload["system"] = system

        client = await self._get_client()
        should_close = self._http_client is None

        try:
            response = await client.post(
                f"{self._base_url}/v1/messages/count_tokens",
                headers={
                    "Content-Type": "application/json",
                    "x-api-key": api_key,
                    "anthropic-version": self._api_version,
                },
                json=payload,
            )
        except httpx.HTTPError as exc:
            raise TokenCountUnavailable(f"Token count request failed: {exc}") from exc
        finally:
            if should_close:
                await client.aclose()

        if response.status_code != 200:
            raise TokenCountUnavailable(
                f"Token count endpoint returned {response.status_code}",
                status_code=response.status_code,
            )

        try:
            count = response.json()["input_tokens"]
        except (ValueError, KeyError, TypeError) as exc:
            raise TokenCountUnavailable("Token count response had no input_tokens") from exc
        if not isinstance(count, int):
            raise TokenCountUnavailable("Token count response had no input_tokens")

        logger.debug("Exact token count for %d messages: %d", len(messages), count)
        return count
