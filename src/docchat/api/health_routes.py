import logging
from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends

from .dependencies import get_completion_client, get_embedder, get_vector_store
from .models import ServicesHealthResponse, ServiceStatus
from ..config import settings
from ..core.errors import (
    CompletionServiceError,
    EmbeddingServiceError,
    VectorStoreError,
)
from ..db.vector_store import VectorStore
from ..embeddings.embedder import Embedder
from ..llm.client import CompletionClient

logger = logging.getLogger("docchat.health")

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    return {
        "status": "ok",
        "embedding_model": settings.embedding_model,
        "chat_model": settings.chat_model,
    }


@router.get("/health/services", response_model=ServicesHealthResponse)
async def health_services(
    embedder: Annotated[Embedder, Depends(get_embedder)],
    completion_client: Annotated[CompletionClient, Depends(get_completion_client)],
    vector_store: Annotated[VectorStore, Depends(get_vector_store)],
) -> ServicesHealthResponse:
    """
    Probe every upstream dependency. Read-only: nothing is written.
    """
    services = {}

    if not embedder.is_configured:
        services["embedding"] = ServiceStatus(status="missing_api_key")
    else:
        try:
            await embedder.ping()
            services["embedding"] = ServiceStatus(status="ok")
        except EmbeddingServiceError as exc:
            logger.warning("Embedding service check failed: %s", exc.detail)
            services["embedding"] = ServiceStatus(status="unavailable", detail=exc.detail)

    if not completion_client.is_configured:
        services["completion"] = ServiceStatus(status="missing_api_key")
    else:
        try:
            await completion_client.ping()
            services["completion"] = ServiceStatus(status="ok")
        except CompletionServiceError as exc:
            logger.warning("Completion service check failed: %s", exc.detail)
            services["completion"] = ServiceStatus(status="unavailable", detail=exc.detail)

    try:
        await vector_store.ping()
        services["vector_database"] = ServiceStatus(status="ok")
    except VectorStoreError as exc:
        logger.warning("Vector database check failed: %s", exc.detail)
        services["vector_database"] = ServiceStatus(status="unavailable", detail=exc.detail)

    healthy = all(s.status == "ok" for s in services.values())
    return ServicesHealthResponse(
        status="healthy" if healthy else "degraded",
        services=services,
        timestamp=datetime.now(timezone.utc),
    )
