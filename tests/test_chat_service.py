"""
Chat Service Tests

End-to-end turn handling with every collaborator mocked: quick replies,
context source selection, model profile selection and the concurrent
write-back with per-write outcomes.
"""

from unittest.mock import AsyncMock

import pytest

from docchat.chat.quick_responses import (
    CAPABILITY_REPLIES,
    GREETING_REPLIES,
    THANKS_REPLY,
    get_quick_response,
)
from docchat.chat.service import ChatService
from docchat.config import Settings
from docchat.core.errors import ChatLogError, ValidationError, VectorStoreError
from docchat.db.vector_store import Collection, VectorStore
from docchat.embeddings.embedder import Embedder
from docchat.llm.client import CompletionClient
from docchat.sessions.store import ChatLog

from conftest import make_match, unit_vector


@pytest.fixture
def embedder():
    mock = AsyncMock(spec=Embedder)
    mock.embed_one.return_value = unit_vector(0)
    return mock


@pytest.fixture
def vector_store():
    mock = AsyncMock(spec=VectorStore)
    mock.query.return_value = []
    mock.upsert.return_value = 1
    return mock


@pytest.fixture
def completion():
    mock = AsyncMock(spec=CompletionClient)
    mock.complete.return_value = "Here is the answer."
    return mock


@pytest.fixture
def chat_log():
    return AsyncMock(spec=ChatLog)


def _service(embedder, vector_store, completion, chat_log, **overrides):
    return ChatService(
        embedder=embedder,
        vector_store=vector_store,
        completion_client=completion,
        chat_log=chat_log,
        config=Settings(**overrides),
    )


class TestQuickResponses:
    def test_greeting(self):
        assert get_quick_response("Hi!") in GREETING_REPLIES

    def test_whole_words_only(self):
        assert get_quick_response("which file mentions this") is None

    def test_long_messages_go_to_retrieval(self):
        assert get_quick_response("hello, can you summarise the second chapter of my report") is None

    def test_how_are_you(self):
        assert "functioning well" in get_quick_response("hey, how are you?")

    @pytest.mark.parametrize(
        "message, expected",
        [
            ("hey there", GREETING_REPLIES),
            ("Thanks so much!", (THANKS_REPLY,)),
            ("what can you do?", CAPABILITY_REPLIES),
        ],
    )
    def test_whole_message_small_talk(self, message, expected):
        assert get_quick_response(message) in expected

    @pytest.mark.parametrize(
        "message",
        [
            "hello, what is the refund window?",
            "help me find the termination clause",
            "thanks. and the warranty period?",
        ],
    )
    def test_questions_with_small_talk_go_to_retrieval(self, message):
        assert get_quick_response(message) is None

    @pytest.mark.asyncio
    async def test_greeting_with_question_is_retrieved(self, embedder, vector_store, completion, chat_log):
        service = _service(embedder, vector_store, completion, chat_log)
        result = await service.handle("hello, what is the refund window?", "u1", "s1")

        assert result.debug.context_source != "quick"
        embedder.embed_one.assert_any_await("hello, what is the refund window?")
        vector_store.query.assert_awaited()
        completion.complete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_hi_makes_no_vector_queries(self, embedder, vector_store, completion, chat_log):
        service = _service(embedder, vector_store, completion, chat_log)
        result = await service.handle("hi", "u1", "s1")

        assert result.type == "general"
        assert result.debug.context_source == "quick"
        assert result.response in GREETING_REPLIES
        vector_store.query.assert_not_called()
        embedder.embed_one.assert_not_called()
        completion.complete.assert_not_called()
        chat_log.append_message.assert_not_called()


class TestHandle:
    @pytest.mark.asyncio
    async def test_blank_message_is_rejected(self, embedder, vector_store, completion, chat_log):
        service = _service(embedder, vector_store, completion, chat_log)
        with pytest.raises(ValidationError):
            await service.handle("   ", "u1", "s1")

    @pytest.mark.asyncio
    async def test_document_answer(self, embedder, vector_store, completion, chat_log):
        async def query(collection, vector, top_k, vector_filter):
            if collection is Collection.DOCUMENTS:
                return [make_match("d1", 0.8, "Refunds within 30 days.", {"file_name": "policy.pdf"})]
            return []

        vector_store.query.side_effect = query
        service = _service(embedder, vector_store, completion, chat_log)

        result = await service.handle("What is the refund window?", "u1", "s1")

        assert result.type == "document"
        assert result.sources == ["policy.pdf"]
        assert result.debug.context_used is True
        assert result.debug.matches == 1
        assert result.response == "Here is the answer."
        assert [w.name for w in result.writes] == [
            "log_user",
            "log_assistant",
            "vector_user",
            "vector_assistant",
        ]
        assert all(w.ok for w in result.writes)

    @pytest.mark.asyncio
    async def test_message_is_embedded_once_and_reused(self, embedder, vector_store, completion, chat_log):
        service = _service(embedder, vector_store, completion, chat_log)
        await service.handle("Tell me about the contract terms", "u1", "s1")

        embedded = [call.args[0] for call in embedder.embed_one.call_args_list]
        assert embedded == ["Tell me about the contract terms", "Here is the answer."]

        stored = [call.args[1][0] for call in vector_store.upsert.call_args_list]
        assert {r.metadata["role"] for r in stored} == {"user", "assistant"}
        assert all(call.args[0] is Collection.CHAT_MESSAGES for call in vector_store.upsert.call_args_list)
        assert all(r.metadata["user_id"] == "u1" and r.metadata["session_id"] == "s1" for r in stored)

    @pytest.mark.asyncio
    async def test_message_vector_ids_are_unique(self, embedder, vector_store, completion, chat_log):
        service = _service(embedder, vector_store, completion, chat_log)
        await service.handle("Explain the warranty terms", "u1", "s1")
        await service.handle("Explain the warranty terms", "u1", "s1")

        ids = [call.args[1][0].id for call in vector_store.upsert.call_args_list]
        assert len(ids) == 4
        assert len(set(ids)) == 4
        assert all(i.startswith("s1-") for i in ids)

    @pytest.mark.asyncio
    async def test_user_turn_is_logged_before_assistant_turn(self, embedder, vector_store, completion, chat_log):
        service = _service(embedder, vector_store, completion, chat_log)
        await service.handle("Explain the warranty terms", "u1", "s1")

        calls = {call.args[2]: call.kwargs["timestamp"] for call in chat_log.append_message.call_args_list}
        assert calls["user"] <= calls["assistant"]

    @pytest.mark.asyncio
    async def test_write_failures_do_not_fail_the_turn(self, embedder, vector_store, completion, chat_log):
        chat_log.append_message.side_effect = ChatLogError("database down")
        vector_store.upsert.side_effect = [1, VectorStoreError("pgvector down")]
        service = _service(embedder, vector_store, completion, chat_log)

        result = await service.handle("Explain the warranty terms", "u1", "s1")

        assert result.response == "Here is the answer."
        outcomes = {w.name: w for w in result.writes}
        assert outcomes["log_user"].ok is False
        assert outcomes["log_assistant"].ok is False
        assert "database down" in outcomes["log_user"].error
        assert sum(1 for w in result.writes if w.ok) == 1

    @pytest.mark.asyncio
    async def test_deep_thinking_selects_larger_model(self, embedder, vector_store, completion, chat_log):
        service = _service(embedder, vector_store, completion, chat_log)
        await service.handle("Compare both contracts", "u1", "s1", is_deep_thinking=True)

        kwargs = completion.complete.call_args.kwargs
        assert kwargs["model"] == "llama-3.3-70b-versatile"
        assert kwargs["temperature"] == 0.3
        assert kwargs["max_tokens"] == 2048

    @pytest.mark.asyncio
    async def test_default_profile(self, embedder, vector_store, completion, chat_log):
        service = _service(embedder, vector_store, completion, chat_log)
        result = await service.handle("Compare both contracts", "u1", "s1")

        kwargs = completion.complete.call_args.kwargs
        assert kwargs["model"] == "llama-3.1-8b-instant"
        assert kwargs["temperature"] == 0.1
        assert result.type == "general"

    @pytest.mark.asyncio
    async def test_retrieval_disabled(self, embedder, vector_store, completion, chat_log):
        service = _service(embedder, vector_store, completion, chat_log, retrieval_enabled=False)
        result = await service.handle("Compare both contracts", "u1", "s1")

        assert result.type == "ai"
        embedder.embed_one.assert_not_called()
        vector_store.query.assert_not_called()
        assert chat_log.append_message.await_count == 2
