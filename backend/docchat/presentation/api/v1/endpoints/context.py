"""Context preview endpoint — assembles prompt context without calling the model."""

from fastapi import APIRouter, Depends, HTTPException

from docchat.application.schemas import ContextRequest, ContextResponse
from docchat.application.services import ChatService
from docchat.application.services.chat_service import format_prompt
from docchat.domain.exceptions import DocChatError
from docchat.infrastructure.dependencies import get_chat_service

router = APIRouter(tags=["Context"])


@router.post("/context", response_model=ContextResponse)
async def assemble_context(
    request: ContextRequest,
    service: ChatService = Depends(get_chat_service),
) -> ContextResponse:
    """Retrieve and assemble context for a query, and count the resulting prompt."""
    try:
        context = await service.assemble_context(
            request.query,
            request.document_ids,
            [s.to_domain() for s in request.manual_selections],
            token_budget=request.token_budget,
        )
        prompt_tokens = await service.count_prompt_tokens(format_prompt(request.query, context))
    except DocChatError as e:
        status_code = e.status_code or 502
        raise HTTPException(
            status_code=status_code if 400 <= status_code < 600 else 502,
            detail=e.message,
        )

    return ContextResponse(
        chunk_sections=context.chunk_sections,
        selection_sections=context.selection_sections,
        total_tokens_used=context.total_tokens_used,
        text=context.text,
        prompt_tokens=prompt_tokens,
    )
