"""
Health and Stats Route Tests
"""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from docchat.api.dependencies import (
    get_chat_log,
    get_completion_client,
    get_embedder,
    get_vector_store,
)
from docchat.core.errors import CompletionUnavailable, VectorStoreError
from docchat.db.vector_store import Collection, VectorStore
from docchat.embeddings.embedder import Embedder
from docchat.llm.client import CompletionClient
from docchat.sessions.store import ChatLog, SessionSummary


@pytest.fixture
def embedder():
    mock = AsyncMock(spec=Embedder)
    mock.is_configured = True
    mock.model = "sentence-transformers/all-MiniLM-L6-v2"
    mock.dimension = 384
    return mock


@pytest.fixture
def completion():
    mock = AsyncMock(spec=CompletionClient)
    mock.is_configured = True
    return mock


@pytest.fixture
def vector_store():
    return AsyncMock(spec=VectorStore)


@pytest.fixture
def chat_log():
    return AsyncMock(spec=ChatLog)


@pytest.fixture
def client(app, embedder, completion, vector_store, chat_log):
    app.dependency_overrides[get_embedder] = lambda: embedder
    app.dependency_overrides[get_completion_client] = lambda: completion
    app.dependency_overrides[get_vector_store] = lambda: vector_store
    app.dependency_overrides[get_chat_log] = lambda: chat_log
    with TestClient(app) as c:
        yield c


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_services_all_healthy(client):
    response = client.get("/health/services")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert {name: s["status"] for name, s in body["services"].items()} == {
        "embedding": "ok",
        "completion": "ok",
        "vector_database": "ok",
    }


def test_services_degraded(client, embedder, completion, vector_store):
    embedder.is_configured = False
    completion.ping.side_effect = CompletionUnavailable("Completion API returned 503")
    vector_store.ping.side_effect = VectorStoreError("Vector database unavailable")

    response = client.get("/health/services")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "degraded"
    assert body["services"]["embedding"]["status"] == "missing_api_key"
    assert body["services"]["completion"]["status"] == "unavailable"
    assert body["services"]["vector_database"]["detail"] == "Vector database unavailable"
    embedder.ping.assert_not_called()


def test_stats_are_filtered_by_user(client, vector_store, chat_log):
    async def count(collection, vector_filter):
        assert vector_filter.user_id == "u1"
        assert vector_filter.session_id is None
        return 12 if collection is Collection.DOCUMENTS else 4

    vector_store.count.side_effect = count
    chat_log.list_sessions.return_value = [
        SessionSummary(
            session_id="s1",
            created_at="2024-05-01T09:00:00Z",
            updated_at="2024-05-01T09:05:00Z",
            total_messages=4,
        )
    ]

    response = client.get("/stats", params={"userId": "u1"})

    assert response.status_code == 200
    body = response.json()
    assert body["documentVectors"] == 12
    assert body["chatMessageVectors"] == 4
    assert body["sessions"] == 1
    assert body["embeddingDimension"] == 384


def test_stats_requires_user_id(client):
    assert client.get("/stats").status_code == 400
