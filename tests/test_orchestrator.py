"""
Context Assembler Tests

The memory -> document -> general chain, with a mocked vector store.
"""

from unittest.mock import AsyncMock

import pytest

from docchat.config import Settings
from docchat.db.vector_store import Collection, VectorStore
from docchat.prompts import DOCUMENT_SYSTEM_PROMPT, GENERAL_SYSTEM_PROMPT, MEMORY_SYSTEM_PROMPT
from docchat.retrieval.models import ContextSource
from docchat.retrieval.orchestrator import ContextAssembler

from conftest import make_match, unit_vector


def _store(memory=(), documents=()):
    store = AsyncMock(spec=VectorStore)

    async def query(collection, vector, top_k, vector_filter):
        return list(memory if collection is Collection.CHAT_MESSAGES else documents)

    store.query.side_effect = query
    return store


def _collections(store):
    return [call.args[0] for call in store.query.call_args_list]


@pytest.mark.asyncio
async def test_memory_wins_and_documents_are_not_queried():
    store = _store(
        memory=[make_match("m1", 0.9, "My name is Sam.", {"role": "user"})],
        documents=[make_match("d1", 0.9, "Doc text", {"file_name": "a.pdf"})],
    )
    context = await ContextAssembler(store).assemble("what is my name", unit_vector(), "u1", "s1")

    assert context.source is ContextSource.MEMORY
    assert context.system_prompt == MEMORY_SYSTEM_PROMPT
    assert "User: My name is Sam." in context.user_prompt
    assert "what is my name" in context.user_prompt
    assert _collections(store) == [Collection.CHAT_MESSAGES]


@pytest.mark.asyncio
async def test_documents_used_when_memory_is_empty():
    store = _store(
        documents=[
            make_match("d1", 0.7, "Refunds are issued within 30 days.", {"file_name": "policy.pdf"}),
            make_match("d2", 0.6, "Shipping takes a week.", {"file_name": "shipping.txt"}),
        ]
    )
    context = await ContextAssembler(store).assemble("refund window", unit_vector(), "u1", "s1")

    assert context.source is ContextSource.DOCUMENT
    assert context.system_prompt == DOCUMENT_SYSTEM_PROMPT
    assert "[Excerpt 1 from policy.pdf]" in context.user_prompt
    assert context.sources == ["policy.pdf", "shipping.txt"]
    assert _collections(store) == [Collection.CHAT_MESSAGES, Collection.DOCUMENTS]


@pytest.mark.asyncio
async def test_document_query_overfetches_candidates():
    store = _store(documents=[make_match("d1", 0.7, "text", {"file_name": "a.pdf"})])
    config = Settings(document_top_k=5)
    await ContextAssembler(store, config=config).assemble("q", unit_vector(), "u1", "s1")

    doc_call = store.query.call_args_list[1]
    assert doc_call.args[2] == 15


@pytest.mark.asyncio
async def test_general_when_nothing_is_found():
    store = _store()
    context = await ContextAssembler(store).assemble("tell me a joke", unit_vector(), "u1", "s1")

    assert context.source is ContextSource.GENERAL
    assert context.system_prompt == GENERAL_SYSTEM_PROMPT
    assert context.user_prompt == "tell me a joke"
    assert context.matches == []


@pytest.mark.asyncio
async def test_every_query_carries_identity():
    store = _store()
    await ContextAssembler(store).assemble("anything", unit_vector(), "u1", "s1")

    for call in store.query.call_args_list:
        vector_filter = call.args[3]
        assert vector_filter.user_id == "u1"
        assert vector_filter.session_id == "s1"


@pytest.mark.asyncio
async def test_user_scope_searches_all_sessions():
    store = _store()
    await ContextAssembler(store).assemble(
        "anything", unit_vector(), "u1", "s1", document_scope="user"
    )

    memory_filter = store.query.call_args_list[0].args[3]
    document_filter = store.query.call_args_list[1].args[3]
    assert memory_filter.session_id == "s1"
    assert document_filter.user_id == "u1"
    assert document_filter.session_id is None


@pytest.mark.asyncio
async def test_memory_threshold_lets_documents_through():
    store = _store(
        memory=[make_match("m1", 0.2, "unrelated chit-chat", {"role": "user"})],
        documents=[make_match("d1", 0.8, "Refund text", {"file_name": "a.pdf"})],
    )
    config = Settings(memory_min_score=0.5)
    context = await ContextAssembler(store, config=config).assemble(
        "refund", unit_vector(), "u1", "s1"
    )

    assert context.source is ContextSource.DOCUMENT
