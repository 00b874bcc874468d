from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from docchat.api.dependencies import get_chat_service
from docchat.chat.service import ChatDebug, ChatResult, ChatService
from docchat.core.errors import CompletionRateLimited, ValidationError

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def chat_service():
    mock = AsyncMock(spec=ChatService)
    mock.handle.return_value = ChatResult(
        response="Refunds are issued within 30 days.",
        type="document",
        sources=["policy.pdf"],
        debug=ChatDebug(context_used=True, context_source="document", matches=2, timestamp=NOW),
    )
    return mock


@pytest.fixture
def client(app, chat_service):
    app.dependency_overrides[get_chat_service] = lambda: chat_service
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


def test_chat_returns_camel_case_payload(client, chat_service):
    response = client.post(
        "/chat",
        json={
            "message": "What is the refund window?",
            "userId": "u1",
            "sessionId": "s1",
            "isDeepThinking": True,
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["type"] == "document"
    assert body["sources"] == ["policy.pdf"]
    assert body["debug"]["contextUsed"] is True
    assert body["debug"]["contextSource"] == "document"
    assert body["debug"]["matches"] == 2

    kwargs = chat_service.handle.call_args.kwargs
    assert kwargs["user_id"] == "u1"
    assert kwargs["session_id"] == "s1"
    assert kwargs["is_deep_thinking"] is True
    assert kwargs["document_scope"] is None


def test_missing_user_id_is_a_400(client):
    response = client.post("/chat", json={"message": "hello", "sessionId": "s1"})

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "validation_error"
    assert any("userId" in err["loc"] for err in body["errors"])


def test_blank_message_is_a_400(client, chat_service):
    chat_service.handle.side_effect = ValidationError("Message is required")
    response = client.post("/chat", json={"message": "  ", "userId": "u1", "sessionId": "s1"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Message is required"


def test_rate_limit_is_reported_as_retryable(client, chat_service):
    chat_service.handle.side_effect = CompletionRateLimited("Completion API rate limit exceeded")
    response = client.post("/chat", json={"message": "q", "userId": "u1", "sessionId": "s1"})

    assert response.status_code == 429
    body = response.json()
    assert body["error"] == "completion_rate_limited"
    assert body["retryable"] is True
    assert body["suggestion"]


def test_unexpected_errors_do_not_leak_details(client, chat_service):
    chat_service.handle.side_effect = RuntimeError("secret internal state")
    response = client.post("/chat", json={"message": "q", "userId": "u1", "sessionId": "s1"})

    assert response.status_code == 500
    assert "secret" not in response.text
    assert response.json()["error"] == "internal_server_error"


@pytest.mark.parametrize("field", ["userId", "sessionId"])
def test_overlong_identity_is_a_400(client, chat_service, field):
    body = {"message": "q", "userId": "u1", "sessionId": "s1"}
    body[field] = "x" * 129
    response = client.post("/chat", json=body)

    assert response.status_code == 400
    chat_service.handle.assert_not_called()
