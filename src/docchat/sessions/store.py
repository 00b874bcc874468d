"""
Chat Log Store

Durable conversation history for chat sessions, kept in PostgreSQL.

Design choices
--------------
- One `chat_session` row per (user_id, session_id); `session_id` is
  globally unique and bound to the first user that wrote to it.
- Sessions are created lazily by the first append (insert-on-conflict).
- Messages are append-only; `updated_at` moves forward on every append.
- Each call opens its own database session, so appends for the user and
  assistant turns can run concurrently.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, Field
from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from ..core.errors import ChatLogError, ValidationError
from ..db.models import Base, ChatMessage, ChatSession

logger = logging.getLogger("docchat.chat_log")

PREVIEW_MESSAGES = 3


# ---------------------------------------------------------------------
# Read Models
# ---------------------------------------------------------------------

class StoredMessage(BaseModel):
    role: Literal["user", "assistant"]
    message: str
    timestamp: datetime


class SessionSummary(BaseModel):
    session_id: str
    created_at: datetime
    updated_at: datetime
    total_messages: int = Field(..., ge=0)
    messages_preview: List[StoredMessage] = Field(default_factory=list)


class SessionHistory(BaseModel):
    user_id: str
    session_id: str
    created_at: datetime
    updated_at: datetime
    messages: List[StoredMessage] = Field(default_factory=list)


def _ordered(messages: List[ChatMessage]) -> List[StoredMessage]:
    return [
        StoredMessage(role=m.role, message=m.message, timestamp=m.timestamp)
        for m in sorted(messages, key=lambda m: (m.timestamp, m.message_id or 0))
    ]


# ---------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------

class ChatLog:
    """
    PostgreSQL-backed chat history keyed by (user_id, session_id).
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def ensure_schema(self) -> None:
        """Create the chat log tables if absent."""
        tables = [ChatSession.__table__, ChatMessage.__table__]
        try:
            async with self._session_factory() as session:
                conn = await session.connection()
                await conn.run_sync(Base.metadata.create_all, tables=tables)
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            raise ChatLogError(f"Chat log setup failed: {type(exc).__name__}") from exc

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def append_message(
        self,
        user_id: str,
        session_id: str,
        role: str,
        message: str,
        timestamp: Optional[datetime] = None,
    ) -> None:
        """
        Append one message, creating the session on first use.

        Parameters
        ----------
        user_id, session_id : str
            Owner and conversation identifiers.
        role : str
            "user" or "assistant".
        message : str
            Full message text.
        timestamp : Optional[datetime]
            Message time; defaults to now. Callers writing several turns
            concurrently pass explicit timestamps to keep ordering.

        Raises
        ------
        ValidationError
            If the session id belongs to a different user.
        ChatLogError
            On database failure.
        """
        now = timestamp or datetime.now(timezone.utc)

        try:
            async with self._session_factory() as session:
                await session.execute(
                    pg_insert(ChatSession)
                    .values(
                        session_id=session_id,
                        user_id=user_id,
                        created_at=now,
                        updated_at=now,
                    )
                    .on_conflict_do_nothing(index_elements=[ChatSession.session_id])
                )

                owner = await session.scalar(
                    select(ChatSession.user_id).where(ChatSession.session_id == session_id)
                )
                if owner != user_id:
                    await session.rollback()
                    raise ValidationError(
                        f"Session {session_id} does not belong to user {user_id}"
                    )

                session.add(
                    ChatMessage(
                        session_id=session_id,
                        role=role,
                        message=message,
                        timestamp=now,
                    )
                )
                await session.execute(
                    update(ChatSession)
                    .where(ChatSession.session_id == session_id)
                    .values(updated_at=func.greatest(ChatSession.updated_at, now))
                )
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            logger.error("Failed to append %s message to %s: %s", role, session_id, exc)
            raise ChatLogError(f"Failed to save message: {type(exc).__name__}") from exc

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_sessions(self, user_id: str) -> List[SessionSummary]:
        """
        Return the user's sessions newest first, each with the last
        three messages and the total message count.
        """
        stmt = (
            select(ChatSession)
            .where(ChatSession.user_id == user_id)
            .options(selectinload(ChatSession.messages))
            .order_by(ChatSession.created_at.desc())
        )

        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                sessions = result.scalars().all()
        except (SQLAlchemyError, OSError) as exc:
            raise ChatLogError(f"Failed to load chat history: {type(exc).__name__}") from exc

        summaries = []
        for chat in sessions:
            messages = _ordered(chat.messages)
            summaries.append(
                SessionSummary(
                    session_id=chat.session_id,
                    created_at=chat.created_at,
                    updated_at=chat.updated_at,
                    total_messages=len(messages),
                    messages_preview=messages[-PREVIEW_MESSAGES:],
                )
            )
        return summaries

    async def get_session(self, user_id: str, session_id: str) -> Optional[SessionHistory]:
        """Return one session's full ordered history, or None."""
        stmt = (
            select(ChatSession)
            .where(
                ChatSession.user_id == user_id,
                ChatSession.session_id == session_id,
            )
            .options(selectinload(ChatSession.messages))
        )

        try:
            async with self._session_factory() as session:
                chat = (await session.execute(stmt)).scalar_one_or_none()
        except (SQLAlchemyError, OSError) as exc:
            raise ChatLogError(f"Failed to load chat session: {type(exc).__name__}") from exc

        if chat is None:
            return None

        return SessionHistory(
            user_id=chat.user_id,
            session_id=chat.session_id,
            created_at=chat.created_at,
            updated_at=chat.updated_at,
            messages=_ordered(chat.messages),
        )

    # ------------------------------------------------------------------
    # Deletes
    # ------------------------------------------------------------------

    async def delete_session(self, user_id: str, session_id: str) -> int:
        """
        Delete one session and its messages. Returns sessions removed (0 or 1).
        """
        return await self._delete(
            ChatSession.user_id == user_id,
            ChatSession.session_id == session_id,
        )

    async def delete_user(self, user_id: str) -> int:
        """
        Delete every session owned by the user. Returns sessions removed.
        """
        return await self._delete(ChatSession.user_id == user_id)

    async def _delete(self, *clauses) -> int:
        owned = select(ChatSession.session_id).where(*clauses)

        try:
            async with self._session_factory() as session:
                await session.execute(
                    delete(ChatMessage).where(ChatMessage.session_id.in_(owned))
                )
                result = await session.execute(delete(ChatSession).where(*clauses))
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            raise ChatLogError(f"Failed to delete chat history: {type(exc).__name__}") from exc

        return result.rowcount or 0
