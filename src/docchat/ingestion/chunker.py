"""
Sentence-Based Chunker

Splits normalized document text into overlapping, bounded-size chunks.

Algorithm
---------
1. Collapse whitespace and split after `.`, `!` or `?` followed by
   whitespace; drop fragments shorter than `min_sentence_length`.
2. Greedily accumulate sentences into a buffer.
3. When the next sentence would push the buffer past `chunk_size`, close
   the buffer (emitting it only if longer than `min_chunk_length`) and
   seed the next buffer with its last `overlap_sentences` sentences.
   A chunk can therefore exceed `chunk_size` by at most one sentence.
4. Flush the remaining buffer under the same minimum-length rule.
5. Assign `chunk_index` in emission order and backfill `total_chunks`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from .models import ChunkMetadata, DocumentChunk

_WHITESPACE = re.compile(r"\s+")
_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


@dataclass(frozen=True)
class ChunkingConfig:
    chunk_size: int = 600
    overlap_sentences: int = 2
    min_sentence_length: int = 10
    min_chunk_length: int = 30


def split_sentences(text: str, min_sentence_length: int = 10) -> List[str]:
    """
    Split text into sentences, discarding fragments under the minimum length.
    """
    clean = _WHITESPACE.sub(" ", text or "").strip()
    if not clean:
        return []

    return [
        s.strip()
        for s in _SENTENCE_BOUNDARY.split(clean)
        if len(s.strip()) >= min_sentence_length
    ]


def chunk_sentences(sentences: List[str], config: ChunkingConfig) -> List[str]:
    """
    Group sentences into overlapping chunk bodies.

    Buffer length counts each sentence plus one separator character.
    """
    bodies: List[str] = []
    buffer: List[str] = []
    buffer_len = 0

    def _close() -> None:
        body = " ".join(buffer).strip()
        if len(body) > config.min_chunk_length:
            bodies.append(body)

    for sentence in sentences:
        piece_len = len(sentence) + 1

        if buffer and buffer_len + piece_len > config.chunk_size:
            _close()
            buffer = buffer[-config.overlap_sentences:] if config.overlap_sentences > 0 else []
            buffer_len = sum(len(s) + 1 for s in buffer)

        buffer.append(sentence)
        buffer_len += piece_len

    if buffer:
        _close()

    return bodies


def chunk_text(
    text: str,
    file_name: str,
    file_type: str,
    file_size: int,
    page_count: int = 0,
    user_id: Optional[str] = None,
    session_id: Optional[str] = None,
    config: Optional[ChunkingConfig] = None,
    now: Optional[datetime] = None,
) -> List[DocumentChunk]:
    """
    Split normalized text into `DocumentChunk` records for one file.

    Parameters
    ----------
    text : str
        Cleaned document text.
    file_name, file_type, file_size, page_count :
        Source file metadata copied onto every chunk.
    user_id, session_id :
        Ownership stamped onto every chunk.
    config : Optional[ChunkingConfig]
        Size and overlap parameters. Defaults to 600 chars / 2 sentences.
    now : Optional[datetime]
        Creation time; used for `uploaded_at` and `chunk_id`.

    Returns
    -------
    List[DocumentChunk]
        Chunks in document order. Empty when no sentence survives
        filtering; callers treat that as "no extractable text".
    """
    config = config or ChunkingConfig()
    now = now or datetime.now(timezone.utc)

    sentences = split_sentences(text, config.min_sentence_length)
    bodies = chunk_sentences(sentences, config)

    uploaded_at = now.isoformat()
    stamp = int(now.timestamp() * 1000)
    total = len(bodies)

    return [
        DocumentChunk(
            text=body,
            metadata=ChunkMetadata(
                file_name=file_name,
                file_type=file_type,
                file_size=file_size,
                chunk_index=index,
                total_chunks=total,
                uploaded_at=uploaded_at,
                page_count=page_count or 0,
                chunk_id=f"{file_name}-{index}-{stamp}",
                user_id=user_id,
                session_id=session_id,
            ),
        )
        for index, body in enumerate(bodies)
    ]
