"""
Retrieval Models

Types shared by the ranker and the context assembler.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List

from pydantic import BaseModel, Field, ConfigDict


class ContextSource(str, Enum):
    """Where the context for a chat turn came from."""

    MEMORY = "memory"
    DOCUMENT = "document"
    GENERAL = "general"


class RetrievalMatch(BaseModel):
    """
    A vector match after re-ranking.

    `semantic_score` is the raw cosine similarity from the vector store.
    `hybrid_score` blends it with the keyword score.
    """

    id: str
    semantic_score: float
    hybrid_score: float
    text: str
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)


class RankedMatches(BaseModel):
    """
    Ranker output.

    `below_floor` is True when matches were found but none cleared the
    relevance floor, so `matches` holds the best-effort fallback.
    """

    matches: List[RetrievalMatch] = Field(default_factory=list)
    total_found: int = 0
    relevant_count: int = 0
    below_floor: bool = False
