"""
FastAPI dependencies.

Every component is read from the `ServiceContainer` stored on
`app.state.container` by the lifespan. Tests replace these through
`app.dependency_overrides`.
"""

from fastapi import HTTPException, Request, status

from ..chat.service import ChatService
from ..core.container import ServiceContainer
from ..db.vector_store import VectorStore
from ..embeddings.embedder import Embedder
from ..ingestion.pipeline import UploadService
from ..llm.client import CompletionClient
from ..sessions.store import ChatLog


def get_container(request: Request) -> ServiceContainer:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Services are not initialised",
        )
    return container


def get_vector_store(request: Request) -> VectorStore:
    return get_container(request).vector_store


def get_embedder(request: Request) -> Embedder:
    return get_container(request).embedder


def get_completion_client(request: Request) -> CompletionClient:
    return get_container(request).completion_client


def get_chat_log(request: Request) -> ChatLog:
    return get_container(request).chat_log


def get_chat_service(request: Request) -> ChatService:
    return get_container(request).chat_service


def get_upload_service(request: Request) -> UploadService:
    return get_container(request).upload_service
