"""Chat endpoints — streamed replies over SSE and cancellation."""

import json
import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from docchat.application.schemas import CancelResponse, ChatStreamRequest
from docchat.application.services import ChatService
from docchat.domain.entities import StreamEvent, Unknown
from docchat.domain.exceptions import DocChatError
from docchat.infrastructure.dependencies import get_chat_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["Chat"])

_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _sse(event_type: str, data: dict) -> str:
    return f"event: {event_type}\ndata: {json.dumps(data)}\n\n"


def _event_message(event: StreamEvent) -> str:
    return _sse(event.kind, asdict(event))


def _error_message(error: DocChatError) -> str:
    return _sse(
        "error",
        {
            "message": error.user_message,
            "detail": error.message,
            "type": type(error).__name__,
            "retryable": error.retryable,
            "retry_after": getattr(error, "retry_after", None),
        },
    )


@router.post("/stream")
async def chat_stream(
    request: ChatStreamRequest,
    service: ChatService = Depends(get_chat_service),
) -> StreamingResponse:
    """Answer a message over Server-Sent Events.

    Each decoded model event is sent as ``event: <kind>`` with a JSON
    ``data:`` line. A request-level failure is sent as a single ``error``
    event. A newer request for the same conversation ends this stream.
    """

    async def event_generator():
        try:
            async for event in service.stream_chat(
                request.conversation_id,
                request.message,
                history=[t.to_domain() for t in request.history],
                scope=request.document_ids,
                manual_selections=[s.to_domain() for s in request.manual_selections],
            ):
                if isinstance(event, Unknown):
                    continue
                yield _event_message(event)
        except DocChatError as e:
            logger.warning("Chat stream for %s failed: %s", request.conversation_id, e.message)
            yield _error_message(e)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers=_SSE_HEADERS,
    )


@router.post("/{conversation_id}/cancel", response_model=CancelResponse)
async def cancel_chat(
    conversation_id: str,
    service: ChatService = Depends(get_chat_service),
) -> CancelResponse:
    """Cancel the reply currently streaming for a conversation, if any."""
    return CancelResponse(
        conversation_id=conversation_id,
        cancelled=service.cancel(conversation_id),
    )
