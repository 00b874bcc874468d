"""
Vector Store

PostgreSQL + pgvector storage and similarity search over two logical
collections: document chunks and chat messages.

The tables are shared by every user. Per-vector `user_id` / `session_id`
columns are the only partitioning, so every query, delete and write goes
through an identity check that rejects calls missing them.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Type, Union

from pydantic import BaseModel, Field, ConfigDict
from sqlalchemy import Delete, Select, delete, func, select, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import Base, ChatMessageVector, DocumentChunkVector, VECTOR_DIMENSION
from ..core.errors import IdentityFilterError, VectorStoreError

logger = logging.getLogger("docchat.vector_store")

TEXT_PREVIEW_LIMIT = 1000
_OWNER_KEYS = frozenset({"id", "user_id", "session_id"})

VectorModel = Union[Type[DocumentChunkVector], Type[ChatMessageVector]]


# ---------------------------------------------------------------------
# Public Types
# ---------------------------------------------------------------------

class Collection(str, enum.Enum):
    DOCUMENTS = "documents"
    CHAT_MESSAGES = "chat_messages"


_MODELS: Dict[Collection, VectorModel] = {
    Collection.DOCUMENTS: DocumentChunkVector,
    Collection.CHAT_MESSAGES: ChatMessageVector,
}

# Chat memory is always session-scoped; documents may be queried per user.
_QUERY_REQUIRES_SESSION = {Collection.CHAT_MESSAGES}


@dataclass(frozen=True)
class VectorFilter:
    """Identity filter applied to every read and delete."""

    user_id: str
    session_id: Optional[str] = None


class VectorRecord(BaseModel):
    """A vector to upsert. `metadata` must carry `user_id` and `session_id`."""

    id: str = Field(..., min_length=1)
    values: List[float]
    metadata: Dict[str, Any]

    model_config = ConfigDict(extra="forbid")


class VectorMatch(BaseModel):
    """Raw similarity match. `score` is cosine similarity (1 - distance)."""

    id: str
    score: float
    text: str
    metadata: Dict[str, Any]


# ---------------------------------------------------------------------
# Identity Validation
# ---------------------------------------------------------------------

def require_identity(
    collection: Collection,
    vector_filter: Optional[VectorFilter],
    require_session: bool,
    operation: str,
) -> VectorFilter:
    """
    Reject a vector operation that is missing its identity filter.

    Raises
    ------
    IdentityFilterError
        If `user_id` is missing, or `session_id` is required but missing.
    """
    if vector_filter is None or not (vector_filter.user_id or "").strip():
        raise IdentityFilterError(
            f"{operation} on '{collection.value}' requires a user_id filter"
        )
    if require_session and not (vector_filter.session_id or "").strip():
        raise IdentityFilterError(
            f"{operation} on '{collection.value}' requires a session_id filter"
        )
    return vector_filter


def _identity_clauses(model: VectorModel, vector_filter: VectorFilter) -> list:
    clauses = [model.user_id == vector_filter.user_id]
    if vector_filter.session_id:
        clauses.append(model.session_id == vector_filter.session_id)
    return clauses


# ---------------------------------------------------------------------
# Statement Builders
# ---------------------------------------------------------------------

def build_query_statement(
    collection: Collection,
    vector: Sequence[float],
    top_k: int,
    vector_filter: VectorFilter,
) -> Select:
    """
    Cosine-similarity top-K query restricted to the caller's identity.
    """
    require_identity(
        collection, vector_filter, collection in _QUERY_REQUIRES_SESSION, "query"
    )
    model = _MODELS[collection]
    cosine_distance = model.embedding.cosine_distance(list(vector))

    return (
        select(model, (1 - cosine_distance).label("score"))
        .where(*_identity_clauses(model, vector_filter))
        .order_by(cosine_distance)
        .limit(top_k)
    )


def build_delete_statement(collection: Collection, vector_filter: VectorFilter) -> Delete:
    """
    Bulk delete restricted to the caller's identity.
    """
    require_identity(collection, vector_filter, False, "delete")
    model = _MODELS[collection]
    return delete(model).where(*_identity_clauses(model, vector_filter))


def _document_row(record: VectorRecord) -> Dict[str, Any]:
    meta = dict(record.metadata)
    return {
        "id": record.id,
        "user_id": meta.pop("user_id"),
        "session_id": meta.pop("session_id"),
        "file_name": str(meta.get("file_name", "")),
        "chunk_index": int(meta.get("chunk_index", 0)),
        "text": str(meta.pop("text", "")),
        "extra": meta,
        "embedding": record.values,
    }


def _chat_row(record: VectorRecord) -> Dict[str, Any]:
    meta = record.metadata
    row = {
        "id": record.id,
        "user_id": meta["user_id"],
        "session_id": meta["session_id"],
        "role": meta.get("role", "user"),
        "text": str(meta.get("text", ""))[:TEXT_PREVIEW_LIMIT],
        "embedding": record.values,
    }
    created_at = meta.get("created_at") or datetime.now(timezone.utc)
    if isinstance(created_at, str):
        created_at = datetime.fromisoformat(created_at)
    row["created_at"] = created_at
    return row


def _to_match(collection: Collection, row: Any, score: float) -> VectorMatch:
    if collection is Collection.DOCUMENTS:
        metadata = {
            **(row.extra or {}),
            "user_id": row.user_id,
            "session_id": row.session_id,
            "file_name": row.file_name,
            "chunk_index": row.chunk_index,
        }
    else:
        metadata = {
            "user_id": row.user_id,
            "session_id": row.session_id,
            "role": row.role,
            "created_at": row.created_at.isoformat() if row.created_at else None,
        }
    return VectorMatch(id=row.id, score=float(score), text=row.text, metadata=metadata)


# ---------------------------------------------------------------------
# Vector Store
# ---------------------------------------------------------------------

class VectorStore:
    """
    PostgreSQL-backed vector store using pgvector for similarity search.

    Each operation opens its own session from the factory, so independent
    operations may run concurrently.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dimension: int = VECTOR_DIMENSION,
    ) -> None:
        """
        Parameters
        ----------
        session_factory : async_sessionmaker[AsyncSession]
            Factory for per-operation sessions.
        dimension : int
            Vector length every upsert and query must match.
        """
        self._session_factory = session_factory
        self.dimension = dimension

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def ensure_collections(self) -> None:
        """
        Create the pgvector extension and both vector tables if absent.

        Idempotent: existing tables are reused untouched.
        """
        tables = [DocumentChunkVector.__table__, ChatMessageVector.__table__]
        try:
            async with self._session_factory() as session:
                conn = await session.connection()
                await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
                await conn.run_sync(Base.metadata.create_all, tables=tables)
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            raise VectorStoreError(
                f"Vector database setup failed: {type(exc).__name__}"
            ) from exc
        logger.info("Vector collections ready (dimension=%d, metric=cosine)", self.dimension)

    async def ping(self) -> None:
        """Raise VectorStoreError if the database is unreachable."""
        try:
            async with self._session_factory() as session:
                await session.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as exc:
            raise VectorStoreError(
                f"Vector database unavailable: {type(exc).__name__}"
            ) from exc

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def upsert(self, collection: Collection, vectors: Sequence[VectorRecord]) -> int:
        """
        Insert vectors, replacing any existing vector with the same id and
        owner. A vector owned by another user or session is left untouched.

        Returns
        -------
        int
            Number of vectors written.

        Raises
        ------
        IdentityFilterError
            If any record lacks `user_id` or `session_id` metadata.
        VectorStoreError
            On dimension mismatch or database failure.
        """
        if not vectors:
            return 0

        for record in vectors:
            require_identity(
                collection,
                VectorFilter(
                    user_id=record.metadata.get("user_id") or "",
                    session_id=record.metadata.get("session_id"),
                ),
                True,
                "upsert",
            )
            if len(record.values) != self.dimension:
                raise VectorStoreError(
                    f"Vector {record.id} has dimension {len(record.values)}, "
                    f"expected {self.dimension}"
                )

        model = _MODELS[collection]
        to_row = _document_row if collection is Collection.DOCUMENTS else _chat_row
        rows = [to_row(record) for record in vectors]

        stmt = pg_insert(model).values(rows)
        # An existing id is only refreshed for its own owner; ownership never moves.
        stmt = stmt.on_conflict_do_update(
            index_elements=[model.id],
            set_={
                key: stmt.excluded[key]
                for key in rows[0].keys()
                if key not in _OWNER_KEYS
            },
            where=(model.user_id == stmt.excluded.user_id)
            & (model.session_id == stmt.excluded.session_id),
        )

        try:
            async with self._session_factory() as session:
                await session.execute(stmt)
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            logger.error("Upsert into %s failed: %s", collection.value, exc)
            raise VectorStoreError(
                f"Failed to store vectors: {type(exc).__name__}"
            ) from exc

        logger.info("Upserted %d vectors into %s", len(rows), collection.value)
        return len(rows)

    async def query(
        self,
        collection: Collection,
        vector: Sequence[float],
        top_k: int,
        vector_filter: VectorFilter,
    ) -> List[VectorMatch]:
        """
        Return the `top_k` most similar vectors owned by the filter identity.

        Matches are ordered by cosine similarity; no re-ranking happens here.
        """
        stmt = build_query_statement(collection, vector, top_k, vector_filter)

        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                rows = result.all()
        except (SQLAlchemyError, OSError) as exc:
            logger.error("Query on %s failed: %s", collection.value, exc)
            raise VectorStoreError(
                f"Vector search failed: {type(exc).__name__}"
            ) from exc

        return [_to_match(collection, row[0], row.score) for row in rows]

    async def delete_by_filter(self, collection: Collection, vector_filter: VectorFilter) -> int:
        """
        Delete every vector matching the identity filter.

        Returns the number of deleted rows.
        """
        stmt = build_delete_statement(collection, vector_filter)

        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            logger.error("Delete on %s failed: %s", collection.value, exc)
            raise VectorStoreError(
                f"Failed to delete vectors: {type(exc).__name__}"
            ) from exc

        deleted = result.rowcount or 0
        logger.info(
            "Deleted %d vectors from %s (user=%s, session=%s)",
            deleted,
            collection.value,
            vector_filter.user_id,
            vector_filter.session_id or "*",
        )
        return deleted

    async def count(self, collection: Collection, vector_filter: VectorFilter) -> int:
        """
        Count vectors owned by the filter identity.
        """
        require_identity(collection, vector_filter, False, "count")
        model = _MODELS[collection]
        stmt = (
            select(func.count())
            .select_from(model)
            .where(*_identity_clauses(model, vector_filter))
        )

        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
        except (SQLAlchemyError, OSError) as exc:
            raise VectorStoreError(
                f"Vector count failed: {type(exc).__name__}"
            ) from exc

        return result.scalar() or 0
