"""Chat use case — retrieval, context assembly, and the streamed model reply.

Orchestrates:
1. Retrieving relevant chunks for the query within the document scope
2. Assembling them with manual selections under the token budget
3. Streaming the reply through the resilient client on its own task

Each caller (conversation) has at most one reply in flight. Starting a new
one cancels the previous one first (last-write-wins).
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import aclosing
from typing import Protocol

from docchat.application.services.context_assembler import ContextAssembler
from docchat.application.services.retrieval_service import RetrievalService
from docchat.application.services.token_budget import TokenCountingService
from docchat.domain.entities import (
    AssembledContext,
    ConversationTurn,
    ManualSelection,
    RetrievalQuery,
    StreamEvent,
)
from docchat.domain.exceptions import EmbeddingUnavailable
from docchat.infrastructure.logging.colored_logger import PipelineLogger, PipelineStage

logger = logging.getLogger(__name__)
plog = PipelineLogger("ChatService")

DEFAULT_HISTORY_LIMIT = 10

SYSTEM_PROMPT = """\
You are an AI assistant integrated into a PDF reading and document management application. Your role is to:

1. Help users understand and analyze their PDF documents
2. Answer questions about document content when provided
3. Assist with research and provide insights
4. Be helpful, accurate, and concise in your responses

When a user message contains a RETRIEVED CONTEXT or MANUAL SELECTIONS block, prioritize information from those passages in your responses. Each passage is labeled with its document title and page numbers.

The user's actual question follows the context after "User Query:".

Focus on the user's question while using the provided passages to give accurate, relevant answers. If asked about content not in the provided passages, clearly state that and offer general knowledge if helpful.

Always return your answer in neatly formatted markdown."""

# Assistant turns carrying one of these were failure notices, not answers
_ERROR_NOTICE_MARKERS = (
    "Sorry, I encountered an error",
    "Please configure your Claude API key",
    "Connection failed",
    "Request failed",
)


class StreamingChatClient(Protocol):
    """What ChatService needs from the streaming client."""

    def stream(
        self,
        prompt: str,
        history: Sequence[ConversationTurn] = (),
        *,
        system: str | None = None,
    ) -> AsyncIterator[StreamEvent]: ...


# ── Helpers ──────────────────────────────────────────────────────────

def is_error_notice(turn: ConversationTurn) -> bool:
    return any(marker in turn.text for marker in _ERROR_NOTICE_MARKERS)


def select_history(
    history: Iterable[ConversationTurn],
    limit: int = DEFAULT_HISTORY_LIMIT,
) -> list[ConversationTurn]:
    """Drop empty turns and failure notices, then keep the last ``limit``."""
    if limit <= 0:
        return []
    valid = [t for t in history if t.text.strip() and not is_error_notice(t)]
    return valid[-limit:]


def format_prompt(query: str, context: AssembledContext) -> str:
    if context.is_empty:
        return query
    return f"{context.text}\n\nUser Query: {query}"


class ChatService:
    """Application service — answers a query over a document scope as a stream of events."""

    def __init__(
        self,
        retrieval_service: RetrievalService,
        context_assembler: ContextAssembler,
        stream_client: StreamingChatClient,
        *,
        token_budget: int = 8000,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        system_prompt: str = SYSTEM_PROMPT,
        token_counting: TokenCountingService | None = None,
        model: str = "",
    ):
        self._retrieval = retrieval_service
        self._assembler = context_assembler
        self._client = stream_client
        self._token_budget = token_budget
        self._history_limit = history_limit
        self._system_prompt = system_prompt
        self._token_counting = token_counting
        self._model = model
        self._tickets: dict[str, object] = {}
        self._in_flight: dict[str, asyncio.Task[None]] = {}

    @property
    def system_prompt(self) -> str:
        return self._system_prompt

    def has_active_stream(self, caller_id: str) -> bool:
        task = self._in_flight.get(caller_id)
        return task is not None and not task.done()

    async def assemble_context(
        self,
        query: str,
        scope: Iterable[str],
        manual_selections: Sequence[ManualSelection] = (),
        *,
        token_budget: int | None = None,
    ) -> AssembledContext:
        """Retrieve chunks for ``query`` and assemble them with ``manual_selections``.

        If the embedding collaborator is down, the context is built from the
        manual selections alone.
        """
        budget = self._token_budget if token_budget is None else token_budget
        query_obj = RetrievalQuery(text=query, scope_document_ids=frozenset(scope))

        try:
            chunks = await self._retrieval.retrieve(query_obj)
        except EmbeddingUnavailable as exc:
            plog.step_warning(
                PipelineStage.RETRIEVAL,
                "Embedding unavailable, continuing with manual selections only",
                reason=exc.message,
            )
            chunks = []

        with plog.timed_step(
            PipelineStage.ASSEMBLY,
            "Assembling context",
            chunks=len(chunks),
            selections=len(manual_selections),
            budget=budget,
        ):
            return self._assembler.assemble(chunks, manual_selections, budget)

    async def count_prompt_tokens(
        self,
        prompt: str,
        history: Sequence[ConversationTurn] = (),
    ) -> int:
        """Input tokens of the request ``prompt`` would produce (exact if possible)."""
        if self._token_counting is None:
            raise RuntimeError("ChatService was built without a TokenCountingService")
        messages = [*select_history(history, self._history_limit), ConversationTurn("user", prompt)]
        return await self._token_counting.count(
            messages, self._model, system=self._system_prompt
        )

    def cancel(self, caller_id: str) -> bool:
        """Cancel the in-flight reply of ``caller_id``. Returns True if one was running."""
        self._tickets.pop(caller_id, None)
        task = self._in_flight.pop(caller_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.info("Cancelled in-flight reply for %s", caller_id)
        return True

    async def stream_chat(
        self,
        caller_id: str,
        query: str,
        history: Sequence[ConversationTurn] = (),
        scope: Iterable[str] = (),
        manual_selections: Sequence[ManualSelection] = (),
    ) -> AsyncIterator[StreamEvent]:
        """Answer ``query`` and yield the model's events in arrival order.

        Supersedes any reply still running for ``caller_id``. A superseded
        reply ends quietly without further events.

        Raises:
            DocChatError: Whatever the stream client raised for this request.
        """
        self.cancel(caller_id)
        ticket = object()
        self._tickets[caller_id] = ticket

        context = await self.assemble_context(query, scope, manual_selections)
        if self._tickets.get(caller_id) is not ticket:
            logger.info("Reply for %s superseded during retrieval", caller_id)
            return

        prompt = format_prompt(query, context)
        turns = select_history(history, self._history_limit)
        plog.step_start(
            PipelineStage.PIPELINE,
            "Streaming reply",
            caller=caller_id,
            context_tokens=context.total_tokens_used,
            history=len(turns),
        )

        queue: asyncio.Queue[StreamEvent] = asyncio.Queue(maxsize=1)
        producer = asyncio.create_task(
            self._produce(prompt, turns, queue), name=f"chat-reply:{caller_id}"
        )
        self._in_flight[caller_id] = producer

        try:
            async for event in self._consume(queue, producer):
                yield event
        finally:
            producer.cancel()
            if self._in_flight.get(caller_id) is producer:
                del self._in_flight[caller_id]
            if self._tickets.get(caller_id) is ticket:
                del self._tickets[caller_id]

    async def _produce(
        self,
        prompt: str,
        turns: list[ConversationTurn],
        queue: asyncio.Queue[StreamEvent],
    ) -> None:
        async with aclosing(
            self._client.stream(prompt, turns, system=self._system_prompt)
        ) as events:
            async for event in events:
                await queue.put(event)

    @staticmethod
    async def _consume(
        queue: asyncio.Queue[StreamEvent],
        producer: asyncio.Task[None],
    ) -> AsyncIterator[StreamEvent]:
        getter: asyncio.Future[StreamEvent] | None = None
        try:
            while True:
                getter = asyncio.ensure_future(queue.get())
                done, _ = await asyncio.wait(
                    {getter, producer}, return_when=asyncio.FIRST_COMPLETED
                )
                if getter in done:
                    event = getter.result()
                    getter = None
                    yield event
                    continue

                getter.cancel()
                getter = None
                while not queue.empty():
                    yield queue.get_nowait()

                if producer.cancelled():
                    logger.info("Reply stream cancelled")
                    return
                error = producer.exception()
                if error is not None:
                    raise error
                plog.step_complete(PipelineStage.PIPELINE, "Reply stream finished")
                return
        finally:
            if getter is not None:
                getter.cancel()
