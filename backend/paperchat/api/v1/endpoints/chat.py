from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from paperchat.api.v1.schemas.chat import ChatRequest, SuggestionsResponse, TitleResponse  # noqa: TCH001
from paperchat.core.exceptions import MissingContextError
from paperchat.core.services.completion_service import CompletionService  # noqa: TCH001
from paperchat.dependencies import get_completion_service
from paperchat.utils.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = get_logger(__name__)

router = APIRouter()


def _sse(events: AsyncIterator[dict[str, Any]]) -> StreamingResponse:
    async def event_iterator():
        try:
            async for evt in events:
                event_type = evt.get("type", "message")
                data = json.dumps(evt)
                yield f"event: {event_type}\n"
                yield f"data: {data}\n\n"
        except Exception as err:
            logger.error("Streaming failed: %s", err)
            fallback = {"type": "error", "message": "Streaming failed."}
            yield "event: error\n"
            yield f"data: {json.dumps(fallback)}\n\n"

    return StreamingResponse(
        event_iterator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.post("")
async def chat_completion(
    payload: ChatRequest,
    service: CompletionService = Depends(get_completion_service),
):
    """Answer a chat, summary, suggestion or title request.

    Chat and summary replies stream via SSE; suggestions and titles are JSON.
    Errors are rendered as ``{"error": ...}`` by the app's exception handlers.
    """
    logger.info(
        "Completion request",
        extra={
            "thread_id": payload.id,
            "turns": len(payload.messages),
            "has_pdf": payload.pdf_data is not None,
            "suggestion": payload.is_suggestion_request,
            "title": payload.is_title_request,
        },
    )

    if payload.is_suggestion_request:
        return SuggestionsResponse(suggestions=await service.generate_suggestions(payload))

    if payload.is_title_request:
        return TitleResponse(title=await service.generate_title(payload))

    if payload.is_summary_request:
        if not payload.pdf_data:
            raise MissingContextError("A summary needs the document")
        return _sse(service.stream_summary(payload))

    if not payload.messages:
        raise MissingContextError("messages must not be empty")
    return _sse(service.stream_chat(payload))
