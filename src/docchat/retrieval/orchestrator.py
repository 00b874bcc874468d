"""
Context Assembler

Decides, per chat turn, which context is sent to the model and builds the
prompts for it. The order is strict and the sources are exclusive:

1. Memory: earlier turns of this session (chat-message collection).
2. Documents: the user's uploaded documents, hybrid re-ranked.
3. General: no retrieved context.

The first source that yields matches wins; sources are never blended.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Literal, Optional, Sequence

from ..config import Settings, settings as default_settings
from ..db.vector_store import Collection, VectorFilter, VectorMatch, VectorStore
from ..prompts import (
    DOCUMENT_SYSTEM_PROMPT,
    GENERAL_SYSTEM_PROMPT,
    MEMORY_SYSTEM_PROMPT,
    build_document_prompt,
    build_memory_prompt,
)
from .models import ContextSource, RetrievalMatch
from .ranker import RankingConfig, rank_matches

logger = logging.getLogger("docchat.retrieval")

DocumentScope = Literal["session", "user"]

# Documents are over-fetched so the ranker has candidates to reorder.
MIN_DOCUMENT_CANDIDATES = 15
DOCUMENT_OVERFETCH = 3


@dataclass
class AssembledContext:
    source: ContextSource
    system_prompt: str
    user_prompt: str
    matches: List[RetrievalMatch] = field(default_factory=list)
    sources: List[str] = field(default_factory=list)
    below_floor: bool = False


def _as_retrieval_matches(matches: Sequence[VectorMatch]) -> List[RetrievalMatch]:
    return [
        RetrievalMatch(
            id=m.id,
            semantic_score=m.score,
            hybrid_score=m.score,
            text=m.text,
            metadata=m.metadata,
        )
        for m in matches
    ]


def _file_names(matches: Sequence[RetrievalMatch]) -> List[str]:
    names: List[str] = []
    for match in matches:
        name = match.metadata.get("file_name")
        if name and name not in names:
            names.append(name)
    return names


class ContextAssembler:
    """
    Runs the memory -> document -> general fallback chain for one message.
    """

    def __init__(
        self,
        vector_store: VectorStore,
        ranking: Optional[RankingConfig] = None,
        config: Optional[Settings] = None,
    ) -> None:
        self.vector_store = vector_store
        self.config = config or default_settings
        self.ranking = ranking or RankingConfig.from_settings(self.config)

    async def assemble(
        self,
        message: str,
        query_vector: Sequence[float],
        user_id: str,
        session_id: str,
        document_scope: Optional[DocumentScope] = None,
    ) -> AssembledContext:
        """
        Build the prompts for one chat turn.

        Parameters
        ----------
        message : str
            The user's message.
        query_vector : Sequence[float]
            Embedding of `message`, computed once by the caller.
        user_id, session_id : str
            Identity used to filter every vector query.
        document_scope : Optional[str]
            "session" searches documents uploaded in this session;
            "user" searches all of the user's documents.

        Returns
        -------
        AssembledContext
        """
        memory = await self._lookup_memory(query_vector, user_id, session_id)
        if memory:
            logger.info("Using %d memory matches for session %s", len(memory), session_id)
            return AssembledContext(
                source=ContextSource.MEMORY,
                system_prompt=MEMORY_SYSTEM_PROMPT,
                user_prompt=build_memory_prompt(message, memory),
                matches=memory,
            )

        scope = document_scope or self.config.document_scope
        ranked = await self._lookup_documents(message, query_vector, user_id, session_id, scope)
        if ranked.matches:
            if ranked.below_floor:
                logger.info(
                    "No document match cleared the relevance floor; using top %d of %d",
                    len(ranked.matches),
                    ranked.total_found,
                )
            return AssembledContext(
                source=ContextSource.DOCUMENT,
                system_prompt=DOCUMENT_SYSTEM_PROMPT,
                user_prompt=build_document_prompt(message, ranked.matches),
                matches=ranked.matches,
                sources=_file_names(ranked.matches),
                below_floor=ranked.below_floor,
            )

        logger.info("No retrieved context for session %s; answering generally", session_id)
        return AssembledContext(
            source=ContextSource.GENERAL,
            system_prompt=GENERAL_SYSTEM_PROMPT,
            user_prompt=message,
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def _lookup_memory(
        self,
        query_vector: Sequence[float],
        user_id: str,
        session_id: str,
    ) -> List[RetrievalMatch]:
        raw = await self.vector_store.query(
            Collection.CHAT_MESSAGES,
            query_vector,
            self.config.memory_top_k,
            VectorFilter(user_id=user_id, session_id=session_id),
        )
        threshold = self.config.memory_min_score
        if threshold is not None:
            raw = [m for m in raw if m.score >= threshold]
        return _as_retrieval_matches(raw)

    async def _lookup_documents(
        self,
        message: str,
        query_vector: Sequence[float],
        user_id: str,
        session_id: str,
        scope: DocumentScope,
    ):
        limit = self.config.document_top_k
        top_k = max(limit * DOCUMENT_OVERFETCH, MIN_DOCUMENT_CANDIDATES)
        vector_filter = VectorFilter(
            user_id=user_id,
            session_id=session_id if scope == "session" else None,
        )
        raw = await self.vector_store.query(
            Collection.DOCUMENTS, query_vector, top_k, vector_filter
        )
        return rank_matches(message, raw, limit, self.ranking)
