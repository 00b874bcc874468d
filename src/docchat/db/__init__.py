"""
Database Package

Provides SQLAlchemy async session management, model definitions and the
pgvector-backed vector store for PostgreSQL.
"""

from .session import create_engine, create_session_factory
from .models import Base, DocumentChunkVector, ChatMessageVector, ChatSession, ChatMessage
from .vector_store import Collection, VectorFilter, VectorMatch, VectorRecord, VectorStore

__all__ = [
    "create_engine",
    "create_session_factory",
    "Base",
    "DocumentChunkVector",
    "ChatMessageVector",
    "ChatSession",
    "ChatMessage",
    "Collection",
    "VectorFilter",
    "VectorMatch",
    "VectorRecord",
    "VectorStore",
]
