"""
Ingestion Data Models

This module defines the canonical data model for a single document chunk
produced at upload time, plus the tagged file-kind variant used to route
extraction.

Each `DocumentChunk` corresponds to ONE embedding vector and ONE bounded
substring of a source document.
"""

from __future__ import annotations

import enum
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict


class FileKind(str, enum.Enum):
    """Supported upload formats, resolved once at the upload boundary."""

    PDF = "pdf"
    DOCX = "docx"
    TEXT = "text"


class ExtractedText(BaseModel):
    """Result of a successful extraction."""

    text: str
    page_count: int = Field(default=0, ge=0)
    used_fallback: bool = False

    model_config = ConfigDict(frozen=True)


class ChunkMetadata(BaseModel):
    """
    Positional and ownership metadata for a chunk.

    `chunk_index` is 0-based and contiguous per file; `total_chunks` is
    identical on every chunk of the same file.
    """

    file_name: str = Field(..., min_length=1)
    file_type: str
    file_size: int = Field(..., ge=0)
    chunk_index: int = Field(..., ge=0)
    total_chunks: int = Field(..., ge=1)
    uploaded_at: str = Field(
        ...,
        description="ISO 8601 timestamp of the upload that produced this chunk.",
    )
    page_count: int = Field(default=0, ge=0)
    chunk_id: str = Field(..., min_length=1)
    user_id: Optional[str] = None
    session_id: Optional[str] = None

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
    )


class DocumentChunk(BaseModel):
    """
    A single chunk of document text. Never mutated after creation.
    """

    text: str = Field(..., min_length=1)
    metadata: ChunkMetadata

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
    )
