"""
Per-user storage statistics.

`GET /stats?userId=` reports how many document and chat-message vectors
and how many chat sessions a user owns. Counts are always filtered by
`userId`.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from .dependencies import get_chat_log, get_embedder, get_vector_store
from .models import MAX_ID_LENGTH, StatsResponse
from ..db.vector_store import Collection, VectorFilter, VectorStore
from ..embeddings.embedder import Embedder
from ..sessions.store import ChatLog

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("", response_model=StatsResponse)
async def get_user_stats(
    vector_store: Annotated[VectorStore, Depends(get_vector_store)],
    chat_log: Annotated[ChatLog, Depends(get_chat_log)],
    embedder: Annotated[Embedder, Depends(get_embedder)],
    user_id: str = Query(..., alias="userId", min_length=1, max_length=MAX_ID_LENGTH),
) -> StatsResponse:
    vector_filter = VectorFilter(user_id=user_id)

    documents = await vector_store.count(Collection.DOCUMENTS, vector_filter)
    chat_messages = await vector_store.count(Collection.CHAT_MESSAGES, vector_filter)
    sessions = await chat_log.list_sessions(user_id)

    return StatsResponse(
        user_id=user_id,
        document_vectors=documents,
        chat_message_vectors=chat_messages,
        sessions=len(sessions),
        embedding_model=embedder.model,
        embedding_dimension=embedder.dimension,
    )
