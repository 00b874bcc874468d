"""
Chat Routes

`POST /chat` answers one user message with retrieved context.

Flow
----
1. Quick replies for small talk (no retrieval, no model call).
2. Embed the message once.
3. Memory -> document -> general context fallback.
4. Completion call (deep-thinking profile on request).
5. Concurrent write-back of both turns to the chat log and vector store.

Failures before a reply exists surface as structured errors; write-back
failures are logged and do not affect the response.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from .dependencies import get_chat_service
from .models import ChatDebugInfo, ChatRequest, ChatResponse
from ..chat.service import ChatService

router = APIRouter(prefix="/chat", tags=["chat"])


@router.post(
    "",
    response_model=ChatResponse,
    summary="Chat with the document assistant",
    status_code=status.HTTP_200_OK,
)
async def chat(
    req: ChatRequest,
    service: Annotated[ChatService, Depends(get_chat_service)],
) -> ChatResponse:
    result = await service.handle(
        req.message,
        user_id=req.user_id,
        session_id=req.session_id,
        is_deep_thinking=req.is_deep_thinking,
        document_scope=req.document_scope,
    )

    return ChatResponse(
        response=result.response,
        type=result.type,
        sources=result.sources,
        debug=ChatDebugInfo(
            context_used=result.debug.context_used,
            context_source=result.debug.context_source,
            matches=result.debug.matches,
            timestamp=result.debug.timestamp,
        ),
    )
