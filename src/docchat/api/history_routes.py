"""
History and Deletion Routes

- `GET /history?userId=`: the user's sessions, newest first, each with a
  three-message preview.
- `GET /history/{sessionId}?userId=`: one session's full message list.
- `POST /delete`: purge one session (chat vectors, document vectors and
  chat log) or, with no `sessionId`, everything the user owns.

Every lookup and delete is filtered by `userId`; one user can never read
or remove another user's data.
"""

from typing import Annotated, Dict, List, Sequence

from fastapi import APIRouter, Depends, HTTPException, Query, status

from .dependencies import get_chat_log, get_vector_store
from .models import (
    MAX_ID_LENGTH,
    DeleteRequest,
    DeleteResponse,
    HistoryResponse,
    MessageModel,
    SessionHistoryResponse,
    SessionSummaryModel,
)
from ..db.vector_store import Collection, VectorFilter, VectorStore
from ..sessions.store import ChatLog, StoredMessage

router = APIRouter(tags=["history"])


def _messages(messages: Sequence[StoredMessage]) -> List[MessageModel]:
    return [
        MessageModel(role=m.role, message=m.message, timestamp=m.timestamp)
        for m in messages
    ]


# ---------------------------------------------------------------------
# History
# ---------------------------------------------------------------------

@router.get("/history", response_model=HistoryResponse)
async def list_history(
    chat_log: Annotated[ChatLog, Depends(get_chat_log)],
    user_id: str = Query(..., alias="userId", min_length=1, max_length=MAX_ID_LENGTH),
) -> HistoryResponse:
    sessions = await chat_log.list_sessions(user_id)
    return HistoryResponse(
        user_id=user_id,
        sessions=[
            SessionSummaryModel(
                session_id=s.session_id,
                created_at=s.created_at,
                updated_at=s.updated_at,
                total_messages=s.total_messages,
                messages_preview=_messages(s.messages_preview),
            )
            for s in sessions
        ],
    )


@router.get("/history/{session_id}", response_model=SessionHistoryResponse)
async def get_history(
    session_id: str,
    chat_log: Annotated[ChatLog, Depends(get_chat_log)],
    user_id: str = Query(..., alias="userId", min_length=1, max_length=MAX_ID_LENGTH),
) -> SessionHistoryResponse:
    history = await chat_log.get_session(user_id, session_id)
    if history is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session {session_id} not found",
        )

    return SessionHistoryResponse(
        user_id=history.user_id,
        session_id=history.session_id,
        created_at=history.created_at,
        updated_at=history.updated_at,
        messages=_messages(history.messages),
    )


# ---------------------------------------------------------------------
# Deletion
# ---------------------------------------------------------------------

@router.post("/delete", response_model=DeleteResponse)
async def delete_history(
    req: DeleteRequest,
    vector_store: Annotated[VectorStore, Depends(get_vector_store)],
    chat_log: Annotated[ChatLog, Depends(get_chat_log)],
) -> DeleteResponse:
    """
    Delete one session, or the whole account when `sessionId` is omitted.

    The vector database is checked before anything is removed. Vector
    deletes run before the chat log delete, so a failure part way
    leaves the log intact and the request can simply be retried.
    """
    await vector_store.ping()

    session_id = (req.session_id or "").strip() or None
    vector_filter = VectorFilter(user_id=req.user_id, session_id=session_id)

    deleted: Dict[str, int] = {
        "chatMessageVectors": await vector_store.delete_by_filter(
            Collection.CHAT_MESSAGES, vector_filter
        ),
        "documentVectors": await vector_store.delete_by_filter(
            Collection.DOCUMENTS, vector_filter
        ),
    }

    if session_id:
        deleted["sessions"] = await chat_log.delete_session(req.user_id, session_id)
        message = f"Session {session_id} deleted"
    else:
        deleted["sessions"] = await chat_log.delete_user(req.user_id)
        message = f"All data for user {req.user_id} deleted"

    return DeleteResponse(success=True, message=message, deleted=deleted)
