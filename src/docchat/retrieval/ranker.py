"""
Hybrid Ranker

Re-ranks raw vector matches by blending semantic similarity with a
keyword-overlap score, then applies a relevance floor.

    hybrid = w_sem * semantic + w_kw * min(keyword / cap, 1)

The ranker is pure and deterministic: the same query and matches always
produce the same ordering.
"""

from __future__ import annotations

import re
import string
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..config import Settings, settings as default_settings
from ..db.vector_store import VectorMatch
from .models import RankedMatches, RetrievalMatch


STOP_WORDS = frozenset(
    {"what", "how", "when", "where", "which", "with", "from", "the", "and", "for"}
)

MIN_KEYWORD_LENGTH = 3


@dataclass(frozen=True)
class RankingConfig:
    semantic_weight: float = 0.6
    keyword_weight: float = 0.4
    keyword_cap: float = 5.0
    relevance_floor: float = 0.15

    @classmethod
    def from_settings(cls, s: Optional[Settings] = None) -> "RankingConfig":
        s = s or default_settings
        return cls(
            semantic_weight=s.hybrid_semantic_weight,
            keyword_weight=s.hybrid_keyword_weight,
            keyword_cap=s.hybrid_keyword_cap,
            relevance_floor=s.hybrid_relevance_floor,
        )


# ---------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------

def extract_keywords(query: str) -> List[str]:
    """
    Lower-cased whitespace tokens of at least three characters that are
    not stop words. Surrounding punctuation is stripped; duplicates are kept.
    """
    tokens = (t.strip(string.punctuation) for t in query.lower().split())
    return [
        token
        for token in tokens
        if len(token) >= MIN_KEYWORD_LENGTH and token not in STOP_WORDS
    ]


def keyword_score(keywords: Sequence[str], text: str) -> int:
    """
    Total whole-word, case-insensitive occurrences of every keyword in `text`.
    """
    if not keywords or not text:
        return 0

    lowered = text.lower()
    total = 0
    for keyword in keywords:
        pattern = r"(?<!\w)" + re.escape(keyword) + r"(?!\w)"
        total += len(re.findall(pattern, lowered))
    return total


def hybrid_score(semantic: float, keywords: int, config: RankingConfig) -> float:
    normalized = min(keywords / config.keyword_cap, 1.0) if config.keyword_cap > 0 else 0.0
    return config.semantic_weight * semantic + config.keyword_weight * normalized


# ---------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------

def rank_matches(
    query: str,
    matches: Sequence[VectorMatch],
    limit: int,
    config: Optional[RankingConfig] = None,
) -> RankedMatches:
    """
    Score, sort and filter raw vector matches.

    Parameters
    ----------
    query : str
        The user's message.
    matches : Sequence[VectorMatch]
        Raw matches from the vector store.
    limit : int
        Maximum number of matches to return.
    config : Optional[RankingConfig]
        Weights, cap and floor. Defaults to the values from settings.

    Returns
    -------
    RankedMatches
        Matches at or above the relevance floor, best first, at most
        `limit`. If none clear the floor, the top `limit` matches are
        returned anyway and `below_floor` is set.
    """
    config = config or RankingConfig.from_settings()
    keywords = extract_keywords(query)

    scored = [
        RetrievalMatch(
            id=m.id,
            semantic_score=m.score,
            hybrid_score=hybrid_score(m.score, keyword_score(keywords, m.text), config),
            text=m.text,
            metadata=m.metadata,
        )
        for m in matches
    ]
    # sorted() is stable, so equal scores keep vector-store order
    scored = sorted(scored, key=lambda m: m.hybrid_score, reverse=True)

    relevant = [m for m in scored if m.hybrid_score >= config.relevance_floor]
    below_floor = bool(scored) and not relevant
    selected = relevant if relevant else scored

    return RankedMatches(
        matches=selected[: max(limit, 0)],
        total_found=len(scored),
        relevant_count=len(relevant),
        below_floor=below_floor,
    )
