"""Resilient streaming client for the Anthropic Messages API.

Per request:
1. Validate the prompt and credential (never retried)
2. Circuit check: fail fast with ServiceUnavailable while open
3. Rate check: fail fast with RateLimitExceeded when the local window is full
4. Send up to ``max_attempts`` times with jittered exponential backoff
5. Decode the SSE body and yield typed events until a terminal one

An attempt may only be retried while it has delivered nothing to the caller,
so the caller never sees partial output from an abandoned attempt. Cancelling
the consumer closes the connection and leaves breaker state untouched.
"""

import asyncio
import json
import logging
import random
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from contextlib import AsyncExitStack
from typing import Any

import httpx

from docchat.application.interfaces.credential_provider import CredentialProvider
from docchat.domain.entities import ConversationTurn, StreamError, StreamEvent
from docchat.domain.exceptions import (
    AuthenticationFailed,
    ConnectionFailed,
    ContextTooLarge,
    DocChatError,
    ProtocolError,
    RateLimitExceeded,
    RequestFailed,
    RequestTimeout,
    ValidationError,
)
from docchat.infrastructure.anthropic.resilience import (
    AttemptOutcome,
    AttemptStatus,
    CircuitBreaker,
    RateLimiter,
    RetryPolicy,
)
from docchat.infrastructure.anthropic.sse_decoder import DEFAULT_BUFFER_LIMIT, StreamDecoder
from docchat.infrastructure.logging.colored_logger import PipelineLogger, PipelineStage

logger = logging.getLogger(__name__)
plog = PipelineLogger("ResilientStreamClient")

Sleep = Callable[[float], Awaitable[None]]

_TRANSIENT_STATUSES = frozenset({500, 502, 503, 504, 529})
_CONTEXT_TOO_LARGE_HINTS = ("prompt is too long", "too many tokens", "context length")


class ResilientStreamClient:
    """Infrastructure adapter — streams completions from the Messages API.

    One instance owns one circuit breaker and one rate window; share the
    instance to share that state.
    """

    def __init__(
        self,
        credential_provider: CredentialProvider,
        *,
        model: str,
        base_url: str = "https://api.anthropic.com",
        api_version: str = "2023-06-01",
        max_output_tokens: int = 1000,
        timeout: float = 120.0,
        retry_policy: RetryPolicy | None = None,
        circuit_breaker: CircuitBreaker | None = None,
        rate_limiter: RateLimiter | None = None,
        buffer_limit: int = DEFAULT_BUFFER_LIMIT,
        http_client: httpx.AsyncClient | None = None,
        sleep: Sleep = asyncio.sleep,
        rng: random.Random | None = None,
    ):
        self._credentials = credential_provider
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._api_version = api_version
        self._max_output_tokens = max_output_tokens
        self._timeout = timeout
        self._retry = retry_policy or RetryPolicy()
        self._breaker = circuit_breaker or CircuitBreaker()
        self._rate_limiter = rate_limiter or RateLimiter()
        self._buffer_limit = buffer_limit
        self._http_client = http_client
        self._sleep = sleep
        self._rng = rng or random.Random()

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._breaker

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    @property
    def model(self) -> str:
        return self._model

    def _get_headers(self, api_key: str) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": api_key,
            "anthropic-version": self._api_version,
        }

    def _build_payload(
        self,
        prompt: str,
        history: Sequence[ConversationTurn],
        system: str | None,
    ) -> dict[str, Any]:
        messages = [
            {"role": turn.role, "content": turn.text}
            for turn in history
            if turn.text and turn.text.strip()
        ]
        messages.append({"role": "user", "content": prompt})
        payload: dict[str, Any] = {
            "model": self._model,
            "max_tokens": self._max_output_tokens,
            "messages": messages,
            "stream": True,
        }
        if system:
            payload["system"] = system
        return payload

    async def _get_client(self) -> httpx.AsyncClient:
        """Return the injected client or create a new one."""
        if self._http_client is not None:
            return self._http_client
        return httpx.AsyncClient(timeout=self._timeout)

    def _validate(self, prompt: str) -> str:
        if not prompt or not prompt.strip():
            raise ValidationError("Message cannot be empty.")
        api_key = self._credentials.credentials()
        if not api_key:
            raise ValidationError(
                "No API key configured. Please add your Claude API key in Settings."
            )
        if not self._credentials.is_valid_format(api_key):
            raise ValidationError(
                "Invalid API key format. Claude API keys start with 'sk-ant-'."
            )
        return api_key

    async def stream(
        self,
        prompt: str,
        history: Sequence[ConversationTurn] = (),
        *,
        system: str | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Send ``prompt`` and yield decoded events in arrival order.

        The last event yielded is always terminal (``MessageStop`` or
        ``StreamError``); request-level failures are raised as
        ``DocChatError`` subclasses instead.

        Raises:
            ValidationError: Empty prompt, missing or malformed credential.
            ServiceUnavailable: The circuit breaker is open.
            RateLimitExceeded: The local request window is full, or the
                endpoint kept answering 429 until retries ran out.
            DocChatError: Any other failure once retries are exhausted.
        """
        api_key = self._validate(prompt)
        try:
            self._breaker.check()
        except DocChatError as exc:
            plog.step_error(PipelineStage.CIRCUIT, "Circuit open, request rejected", error=exc)
            raise
        self._rate_limiter.acquire()

        url = f"{self._base_url}/v1/messages"
        headers = self._get_headers(api_key)
        payload = self._build_payload(prompt, history, system)

        client = await self._get_client()
        should_close = self._http_client is None

        try:
            for attempt in range(1, self._retry.max_attempts + 1):
                plog.step_start(
                    PipelineStage.STREAM,
                    "Sending message",
                    attempt=attempt,
                    model=self._model,
                    history=len(payload["messages"]) - 1,
                )
                delivered = False

                async with AsyncExitStack() as stack:
                    outcome = await self._open(client, stack, url, headers, payload)

                    if outcome.status is AttemptStatus.OK:
                        decoder = StreamDecoder(buffer_limit=self._buffer_limit)
                        try:
                            async for data in outcome.response.aiter_bytes():
                                for event in decoder.feed(data):
                                    delivered = True
                                    yield event
                                    if event.terminal:
                                        self._on_terminal(event, decoder)
                                        return
                        except httpx.HTTPError as exc:
                            error = _map_transport_error(exc)
                            outcome = (
                                AttemptOutcome.fatal(error)
                                if delivered
                                else AttemptOutcome.failed(error)
                            )
                        else:
                            for event in decoder.finish():
                                yield event
                                if event.terminal:
                                    self._on_terminal(event, decoder)
                                    return

                error = outcome.error
                if outcome.status is AttemptStatus.FATAL or attempt >= self._retry.max_attempts:
                    self._on_failure(error, attempt)
                    raise error

                delay = self._retry.delay_for(
                    attempt, self._rng, retry_after=getattr(error, "retry_after", None)
                )
                plog.step_warning(
                    PipelineStage.RETRY,
                    f"Attempt {attempt} failed, retrying in {delay:.2f}s",
                    error=type(error).__name__,
                    detail=error.message,
                )
                await self._sleep(delay)
        finally:
            if should_close:
                await client.aclose()

    async def _open(
        self,
        client: httpx.AsyncClient,
        stack: AsyncExitStack,
        url: str,
        headers: dict[str, str],
        payload: dict[str, Any],
    ) -> AttemptOutcome:
        """Open the streaming response and classify its status line."""
        try:
            response = await stack.enter_async_context(
                client.stream("POST", url, headers=headers, json=payload)
            )
            if response.status_code == 200:
                return AttemptOutcome.ok(response)
            body = await response.aread()
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as exc:
            return AttemptOutcome.fatal(ValidationError(f"Invalid endpoint URL: {exc}"))
        except httpx.HTTPError as exc:
            return AttemptOutcome.failed(_map_transport_error(exc))

        return AttemptOutcome.failed(
            error_from_response(
                response.status_code, body, response.headers.get("retry-after")
            )
        )

    def _on_terminal(self, event: StreamEvent, decoder: StreamDecoder) -> None:
        if isinstance(event, StreamError):
            self._breaker.record_failure()
            plog.step_error(
                PipelineStage.ERROR,
                f"Stream reported error: {event.message}",
            )
            return
        self._breaker.record_success()
        plog.step_complete(
            PipelineStage.COMPLETE,
            "Stream completed",
            malformed=decoder.malformed_count,
            dropped_bytes=decoder.dropped_bytes,
        )

    def _on_failure(self, error: DocChatError, attempt: int) -> None:
        if counts_against_circuit(error):
            self._breaker.record_failure()
        plog.step_error(
            PipelineStage.ERROR,
            f"Request failed after {attempt} attempt(s)",
            error=error,
        )


# ── Error mapping ───────────────────────────────────────────────────

def counts_against_circuit(error: DocChatError) -> bool:
    """Whether a terminal failure says something about endpoint health."""
    return error.retryable or isinstance(error, ProtocolError)


def _map_transport_error(exc: httpx.HTTPError) -> DocChatError:
    if isinstance(exc, httpx.TimeoutException):
        return RequestTimeout(f"Request timed out: {exc}")
    if isinstance(exc, (httpx.DecodingError, httpx.HTTPStatusError)):
        return ProtocolError(f"Invalid response body: {exc}")
    return ConnectionFailed(f"Connection failed: {exc}")


def _extract_error_message(body: bytes) -> str:
    try:
        data = json.loads(body)
        error = data.get("error", {})
        if isinstance(error, dict):
            return str(error.get("message") or body.decode(errors="replace"))
        return str(error)
    except (ValueError, AttributeError):
        return body.decode(errors="replace")


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


def error_from_response(
    status_code: int,
    body: bytes,
    retry_after: str | None = None,
) -> DocChatError:
    """Translate a non-200 response into the matching ``DocChatError``."""
    message = _extract_error_message(body)[:500]
    logger.debug("Messages API returned %d: %s", status_code, message)

    if status_code in (401, 403):
        return AuthenticationFailed(status_code=status_code)
    if status_code == 413 or (
        status_code == 400
        and any(hint in message.lower() for hint in _CONTEXT_TOO_LARGE_HINTS)
    ):
        return ContextTooLarge(status_code=status_code)
    if status_code == 429:
        return RateLimitExceeded(
            status_code=429, retry_after=_parse_retry_after(retry_after)
        )
    if status_code in _TRANSIENT_STATUSES:
        return ConnectionFailed(
            f"Messages API returned {status_code}: {message}", status_code=status_code
        )
    return RequestFailed(
        f"Messages API returned {status_code}: {message}", status_code=status_code
    )
