"""
Upload Pipeline

Turns uploaded files into stored document vectors:

    validate -> extract -> chunk -> embed -> upsert

Files are processed one at a time. A failure in one file is recorded in
its result and never aborts the rest of the batch. Only problems that
would fail every file (vector database down, embedding key missing) are
raised before any file is touched.
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import List, Literal, Optional, Sequence

from ..config import Settings, settings as default_settings
from ..core.errors import (
    EmbeddingServiceError,
    ExtractionError,
    NoExtractableText,
    ValidationError,
    VectorStoreError,
)
from ..db.vector_store import Collection, VectorRecord, VectorStore
from ..embeddings.embedder import Embedder
from .chunker import ChunkingConfig, chunk_text
from .extractor import extract_text, resolve_file_kind
from .models import DocumentChunk

logger = logging.getLogger("docchat.upload")

_UNSAFE_ID_CHARS = re.compile(r"[^a-zA-Z0-9]")
_MAX_ID_NAME_LENGTH = 100


# ---------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class IncomingFile:
    file_name: str
    mime_type: Optional[str]
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class FileResult:
    file_name: str
    status: Literal["success", "error"]
    chunks: int = 0
    message: str = ""


@dataclass
class UploadSummary:
    total_files: int
    total_chunks: int
    embedding_model: str
    embedding_dimension: int


@dataclass
class UploadReport:
    results: List[FileResult] = field(default_factory=list)
    summary: Optional[UploadSummary] = None


def document_vector_id(user_id: str, file_name: str, batch: str, index: int) -> str:
    """
    Vector id for one chunk. The owner and a per-file batch token are part
    of the id, so uploads by different users can never collide.
    """
    owner = _UNSAFE_ID_CHARS.sub("_", user_id)
    safe = _UNSAFE_ID_CHARS.sub("_", file_name)[:_MAX_ID_NAME_LENGTH]
    return f"doc_{owner}_{safe}_{batch}_{index}"


# ---------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------

class UploadService:
    def __init__(
        self,
        embedder: Embedder,
        vector_store: VectorStore,
        config: Optional[Settings] = None,
    ) -> None:
        self.embedder = embedder
        self.vector_store = vector_store
        self.config = config or default_settings
        self.chunking = ChunkingConfig(
            chunk_size=self.config.chunk_size,
            overlap_sentences=self.config.chunk_overlap_sentences,
        )

    def validate_upload(self, upload: IncomingFile) -> None:
        """
        Reject files that are empty, too large or of an unsupported type.

        Raises
        ------
        ValidationError
            Empty or oversized file.
        UnsupportedFileType
            Neither the MIME type nor the extension is accepted.
        """
        if upload.size == 0:
            raise ValidationError(f"{upload.file_name} is empty")

        limit = self.config.max_upload_bytes
        if upload.size > limit:
            raise ValidationError(
                f"{upload.file_name} exceeds the {limit // (1024 * 1024)}MB size limit",
                suggestion="Please upload a smaller file.",
            )

        resolve_file_kind(upload.mime_type, upload.file_name)

    async def process_batch(
        self,
        uploads: Sequence[IncomingFile],
        user_id: str,
        session_id: str,
    ) -> UploadReport:
        """
        Process every file and report per-file results.

        Parameters
        ----------
        uploads : Sequence[IncomingFile]
            Files in the order they were received.
        user_id, session_id : str
            Owner stamped onto every stored chunk.

        Returns
        -------
        UploadReport

        Raises
        ------
        ValidationError
            No files, or missing identity.
        VectorStoreError
            The vector database is unreachable.
        EmbeddingServiceError
            The embedding key is not configured.
        """
        if not uploads:
            raise ValidationError("No files provided")
        if not user_id or not session_id:
            raise ValidationError("userId and sessionId are required")

        await self.vector_store.ping()
        if not self.embedder.is_configured:
            raise EmbeddingServiceError(
                "HUGGINGFACE_API_KEY is not configured",
                suggestion="Please add your Hugging Face API key to environment variables.",
            )

        report = UploadReport()
        total_chunks = 0

        for upload in uploads:
            result = await self._process_one(upload, user_id, session_id)
            report.results.append(result)
            total_chunks += result.chunks

        report.summary = UploadSummary(
            total_files=len(uploads),
            total_chunks=total_chunks,
            embedding_model=self.embedder.model,
            embedding_dimension=self.embedder.dimension,
        )
        logger.info(
            "Upload batch for user %s: %d files, %d chunks stored",
            user_id,
            len(uploads),
            total_chunks,
        )
        return report

    # ------------------------------------------------------------------
    # Per-file processing
    # ------------------------------------------------------------------

    async def _process_one(
        self,
        upload: IncomingFile,
        user_id: str,
        session_id: str,
    ) -> FileResult:
        try:
            self.validate_upload(upload)
            chunks = self._chunk(upload, user_id, session_id)
            stored = await self._store(chunks)
        except (ValidationError, ExtractionError) as exc:
            logger.warning("Skipping %s: %s", upload.file_name, exc.detail)
            return FileResult(file_name=upload.file_name, status="error", message=exc.detail)
        except (EmbeddingServiceError, VectorStoreError) as exc:
            logger.error("Failed to store %s: %s", upload.file_name, exc.detail)
            return FileResult(
                file_name=upload.file_name,
                status="error",
                message=f"{exc.detail}. {exc.suggestion}",
            )

        return FileResult(
            file_name=upload.file_name,
            status="success",
            chunks=stored,
            message=f"Successfully processed {stored} chunks",
        )

    def _chunk(
        self,
        upload: IncomingFile,
        user_id: str,
        session_id: str,
    ) -> List[DocumentChunk]:
        extracted = extract_text(upload.data, upload.mime_type, upload.file_name)
        kind = resolve_file_kind(upload.mime_type, upload.file_name)

        chunks = chunk_text(
            extracted.text,
            file_name=upload.file_name,
            file_type=upload.mime_type or kind.value,
            file_size=upload.size,
            page_count=extracted.page_count,
            user_id=user_id,
            session_id=session_id,
            config=self.chunking,
        )
        if not chunks:
            raise NoExtractableText(f"No extractable text found in {upload.file_name}")
        return chunks

    async def _store(self, chunks: List[DocumentChunk]) -> int:
        vectors = await self.embedder.embed([c.text for c in chunks])
        batch = uuid.uuid4().hex

        records = [
            VectorRecord(
                id=document_vector_id(
                    chunk.metadata.user_id,
                    chunk.metadata.file_name,
                    batch,
                    chunk.metadata.chunk_index,
                ),
                values=values,
                metadata={**chunk.metadata.model_dump(), "text": chunk.text},
            )
            for chunk, values in zip(chunks, vectors)
        ]
        return await self.vector_store.upsert(Collection.DOCUMENTS, records)
