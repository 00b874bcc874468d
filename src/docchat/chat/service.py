"""
Chat Service

Runs one chat turn end to end:

1. Validate the message.
2. Answer small talk from canned replies (no retrieval, no model call).
3. Embed the message once.
4. Assemble context (memory -> documents -> general).
5. Call the completion model, picking the deep-thinking profile on request.
6. Persist the turn: both messages to the chat log and both messages to
   the chat-message vector collection, as four independent writes.

Persistence failures never fail the turn. Each write reports its own
outcome and errors are logged.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, List, Literal, Optional, Sequence

from ..config import Settings, settings as default_settings
from ..core.errors import ValidationError
from ..db.vector_store import Collection, VectorRecord, VectorStore
from ..embeddings.embedder import Embedder
from ..llm.client import CompletionClient
from ..prompts import GENERAL_SYSTEM_PROMPT
from ..retrieval.orchestrator import ContextAssembler, DocumentScope
from ..sessions.store import ChatLog
from .quick_responses import get_quick_response

logger = logging.getLogger("docchat.chat")

ResponseType = Literal["memory", "document", "general", "ai"]


@dataclass(frozen=True)
class ModelParams:
    model: str
    temperature: float
    max_tokens: int


@dataclass(frozen=True)
class WriteOutcome:
    name: str
    ok: bool
    error: Optional[str] = None


@dataclass
class ChatDebug:
    context_used: bool
    context_source: str
    matches: int
    timestamp: datetime


@dataclass
class ChatResult:
    response: str
    type: ResponseType
    debug: ChatDebug
    sources: List[str] = field(default_factory=list)
    writes: List[WriteOutcome] = field(default_factory=list)


def model_params(is_deep_thinking: bool, config: Settings) -> ModelParams:
    """Deep thinking selects the larger model, more output tokens and a higher temperature."""
    if is_deep_thinking:
        return ModelParams(
            model=config.deep_thinking_model,
            temperature=config.deep_thinking_temperature,
            max_tokens=config.deep_thinking_max_tokens,
        )
    return ModelParams(
        model=config.chat_model,
        temperature=config.chat_temperature,
        max_tokens=config.chat_max_tokens,
    )


def _message_vector_id(session_id: str, role: str, at: datetime) -> str:
    return f"{session_id}-{role}-{int(at.timestamp() * 1000)}-{uuid.uuid4().hex[:12]}"


class ChatService:
    def __init__(
        self,
        embedder: Embedder,
        vector_store: VectorStore,
        completion_client: CompletionClient,
        chat_log: ChatLog,
        assembler: Optional[ContextAssembler] = None,
        config: Optional[Settings] = None,
    ) -> None:
        self.embedder = embedder
        self.vector_store = vector_store
        self.completion_client = completion_client
        self.chat_log = chat_log
        self.config = config or default_settings
        self.assembler = assembler or ContextAssembler(vector_store, config=self.config)

    async def handle(
        self,
        message: str,
        user_id: str,
        session_id: str,
        is_deep_thinking: bool = False,
        document_scope: Optional[DocumentScope] = None,
    ) -> ChatResult:
        """
        Answer one user message.

        Raises
        ------
        ValidationError
            Empty message or missing identity.
        EmbeddingServiceError, VectorStoreError, CompletionServiceError
            Failures before a reply exists. Failures after the reply
            exists are reported in `ChatResult.writes` instead.
        """
        if not message or not message.strip():
            raise ValidationError("Message is required", suggestion="Type a message and try again.")
        if not user_id or not session_id:
            raise ValidationError("userId and sessionId are required")

        started_at = datetime.now(timezone.utc)

        if self.config.quick_responses_enabled:
            quick = get_quick_response(message)
            if quick is not None:
                logger.info("Quick response for session %s", session_id)
                return ChatResult(
                    response=quick,
                    type="general",
                    debug=ChatDebug(
                        context_used=False,
                        context_source="quick",
                        matches=0,
                        timestamp=started_at,
                    ),
                )

        params = model_params(is_deep_thinking, self.config)

        if not self.config.retrieval_enabled:
            reply = await self.completion_client.complete(
                GENERAL_SYSTEM_PROMPT,
                message,
                temperature=params.temperature,
                max_tokens=params.max_tokens,
                model=params.model,
            )
            writes = await self._run_writes(
                [
                    self._log(user_id, session_id, "user", message, started_at),
                    self._log(user_id, session_id, "assistant", reply, datetime.now(timezone.utc)),
                ],
                ["log_user", "log_assistant"],
            )
            return ChatResult(
                response=reply,
                type="ai",
                debug=ChatDebug(
                    context_used=False,
                    context_source="none",
                    matches=0,
                    timestamp=started_at,
                ),
                writes=writes,
            )

        query_vector = await self.embedder.embed_one(message)

        context = await self.assembler.assemble(
            message,
            query_vector,
            user_id=user_id,
            session_id=session_id,
            document_scope=document_scope,
        )

        reply = await self.completion_client.complete(
            context.system_prompt,
            context.user_prompt,
            temperature=params.temperature,
            max_tokens=params.max_tokens,
            model=params.model,
        )

        writes = await self.persist_turn(
            user_id,
            session_id,
            message,
            reply,
            query_vector,
            user_at=started_at,
            assistant_at=datetime.now(timezone.utc),
        )

        return ChatResult(
            response=reply,
            type=context.source.value,
            sources=context.sources,
            debug=ChatDebug(
                context_used=bool(context.matches),
                context_source=context.source.value,
                matches=len(context.matches),
                timestamp=started_at,
            ),
            writes=writes,
        )

    # ------------------------------------------------------------------
    # Write-back
    # ------------------------------------------------------------------

    async def persist_turn(
        self,
        user_id: str,
        session_id: str,
        message: str,
        reply: str,
        query_vector: Sequence[float],
        user_at: datetime,
        assistant_at: datetime,
    ) -> List[WriteOutcome]:
        """
        Store both turns in the chat log and the vector store.

        The four writes run concurrently and independently; nothing is
        rolled back when one of them fails.
        """
        return await self._run_writes(
            [
                self._log(user_id, session_id, "user", message, user_at),
                self._log(user_id, session_id, "assistant", reply, assistant_at),
                self._store_vector(user_id, session_id, "user", message, user_at, query_vector),
                self._store_vector(user_id, session_id, "assistant", reply, assistant_at),
            ],
            ["log_user", "log_assistant", "vector_user", "vector_assistant"],
        )

    async def _run_writes(
        self,
        writes: Sequence[Awaitable[object]],
        names: Sequence[str],
    ) -> List[WriteOutcome]:
        results = await asyncio.gather(*writes, return_exceptions=True)

        outcomes = []
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                logger.error("Write-back %s failed: %s", name, result)
                outcomes.append(WriteOutcome(name=name, ok=False, error=str(result)))
            else:
                outcomes.append(WriteOutcome(name=name, ok=True))
        return outcomes

    async def _log(
        self,
        user_id: str,
        session_id: str,
        role: str,
        text: str,
        at: datetime,
    ) -> None:
        await self.chat_log.append_message(user_id, session_id, role, text, timestamp=at)

    async def _store_vector(
        self,
        user_id: str,
        session_id: str,
        role: str,
        text: str,
        at: datetime,
        vector: Optional[Sequence[float]] = None,
    ) -> None:
        values = list(vector) if vector is not None else await self.embedder.embed_one(text)
        record = VectorRecord(
            id=_message_vector_id(session_id, role, at),
            values=values,
            metadata={
                "user_id": user_id,
                "session_id": session_id,
                "role": role,
                "text": text,
                "created_at": at.isoformat(),
            },
        )
        await self.vector_store.upsert(Collection.CHAT_MESSAGES, [record])
