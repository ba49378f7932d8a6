"""Unit tests for the HTTP embedding provider (httpx.MockTransport)."""

import json

import httpx
import pytest

from docchat.domain.exceptions import EmbeddingUnavailable
from docchat.infrastructure.embeddings.http_embedding_provider import HttpEmbeddingProvider


def _provider(handler, api_key: str = "test-key") -> HttpEmbeddingProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpEmbeddingProvider(
        api_key=api_key,
        base_url="https://embeddings.test/v1/",
        model="text-embedding-3-small",
        model_dimensions=3,
        http_client=client,
    )


@pytest.mark.asyncio
async def test_embed_text_returns_vector_and_sends_request():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"data": [{"embedding": [0.1, 0.2, 0.3]}]})

    vector = await _provider(handler).embed_text("what is a chunk?")

    assert vector == [0.1, 0.2, 0.3]
    assert seen["url"] == "https://embeddings.test/v1/embeddings"
    assert seen["auth"] == "Bearer test-key"
    assert seen["body"] == {
        "model": "text-embedding-3-small",
        "input": ["what is a chunk?"],
        "dimensions": 3,
    }


@pytest.mark.asyncio
async def test_missing_key_fails_without_request():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    with pytest.raises(EmbeddingUnavailable):
        await _provider(handler, api_key="").embed_text("q")


@pytest.mark.asyncio
async def test_non_200_raises_with_status():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="upstream down")

    with pytest.raises(EmbeddingUnavailable) as exc_info:
        await _provider(handler).embed_text("q")
    assert exc_info.value.status_code == 503


@pytest.mark.asyncio
async def test_transport_error_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused")

    with pytest.raises(EmbeddingUnavailable):
        await _provider(handler).embed_text("q")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [{"data": []}, {"data": [{"embedding": []}]}, {"unexpected": True}],
)
async def test_malformed_body_raises(body):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=body)

    with pytest.raises(EmbeddingUnavailable):
        await _provider(handler).embed_text("q")


@pytest.mark.asyncio
@pytest.mark.parametrize("vector", [["abc"], [None], "0.1", [0.1, {"x": 1}]])
async def test_non_numeric_vector_raises(vector):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"data": [{"embedding": vector}]})

    with pytest.raises(EmbeddingUnavailable):
        await _provider(handler).embed_text("q")
