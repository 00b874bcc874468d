"""
Service Container

Owns every long-lived resource of the service and wires the components
together. Created once in the application lifespan (or by an operator
script), stored on `app.state`, and handed to routes through dependencies.

Nothing is created at import time.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from ..chat.service import ChatService
from ..config import Settings, settings as default_settings
from ..db.session import create_engine, create_session_factory
from ..db.vector_store import VectorStore
from ..embeddings.embedder import Embedder
from ..ingestion.pipeline import UploadService
from ..llm.client import CompletionClient
from ..retrieval.orchestrator import ContextAssembler
from ..sessions.store import ChatLog

logger = logging.getLogger("docchat.container")


class ServiceContainer:
    def __init__(self, config: Optional[Settings] = None) -> None:
        self.config = config or default_settings

        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self.http_client: Optional[httpx.AsyncClient] = None

        self.embedder: Optional[Embedder] = None
        self.completion_client: Optional[CompletionClient] = None
        self.vector_store: Optional[VectorStore] = None
        self.chat_log: Optional[ChatLog] = None
        self.chat_service: Optional[ChatService] = None
        self.upload_service: Optional[UploadService] = None

    async def init(self, ensure_schema: bool = True) -> "ServiceContainer":
        """
        Build all clients and, unless disabled, create the database schema.

        Parameters
        ----------
        ensure_schema : bool
            Create the pgvector extension and all tables if absent.
        """
        config = self.config

        self.engine = create_engine(config.database_url)
        self.session_factory = create_session_factory(self.engine)
        self.http_client = httpx.AsyncClient()

        self.embedder = Embedder(
            api_key=config.huggingface_api_key.get_secret_value(),
            model=config.embedding_model,
            base_url=config.embedding_base_url,
            dimension=config.embedding_dimension,
            batch_size=config.embedding_batch_size,
            delay_seconds=config.embedding_delay_seconds,
            timeout=config.embedding_timeout_seconds,
            http_client=self.http_client,
        )
        self.completion_client = CompletionClient(
            api_key=config.groq_api_key.get_secret_value(),
            base_url=config.completion_base_url,
            timeout=config.completion_timeout_seconds,
            top_p=config.completion_top_p,
            http_client=self.http_client,
        )
        self.vector_store = VectorStore(self.session_factory, dimension=config.embedding_dimension)
        self.chat_log = ChatLog(self.session_factory)

        self.chat_service = ChatService(
            embedder=self.embedder,
            vector_store=self.vector_store,
            completion_client=self.completion_client,
            chat_log=self.chat_log,
            assembler=ContextAssembler(self.vector_store, config=config),
            config=config,
        )
        self.upload_service = UploadService(self.embedder, self.vector_store, config=config)

        if ensure_schema:
            await self.vector_store.ensure_collections()
            await self.chat_log.ensure_schema()

        logger.info(
            "Services initialised (embedding model=%s, chat model=%s)",
            config.embedding_model,
            config.chat_model,
        )
        return self

    async def close(self) -> None:
        """Release the HTTP client and the database pool."""
        if self.http_client is not None:
            await self.http_client.aclose()
            self.http_client = None
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
        logger.info("Services closed")
