"""
Context Assembler Tests
=======================
End-to-end pipeline with the in-memory session store, hashing embeddings
and a mocked LLM.

Run with: pytest tests/test_context_assembler.py -v
"""

import asyncio
from unittest.mock import AsyncMock

import openai
import pytest
import pytest_asyncio

from agent_core.context_assembler import (
    DEGRADED_REPLY,
    EMPTY_COMPLETION_REPLY,
    ContextAssembler,
    build_system_prompt,
)
from agent_core.document_chunker import DocumentChunker
from agent_core.errors import DependencyUnavailableError
from agent_core.llm_service import LLMService, LLMTimeoutError, LLMUnavailableError
from agent_core.models import Message, MessageRole, PluginResult
from agent_core.plugin_router import PluginRouter
from agent_core.plugins import MathPlugin, WeatherPlugin
from agent_core.rag_service import RAGService

from conftest import make_completion


@pytest.fixture
def plugin_router():
    router = PluginRouter()
    router.register(WeatherPlugin())
    router.register(MathPlugin())
    return router


@pytest_asyncio.fixture
async def rag_service(hashing_provider, docs_dir):
    service = RAGService(
        embedding_provider=hashing_provider,
        chunker=DocumentChunker(max_chunk_size=80, overlap_size=0),
        docs_path=docs_dir,
    )
    await service.initialize()
    return service


@pytest.fixture
def llm_service(mock_openai_client):
    return LLMService(client=mock_openai_client)


@pytest.fixture
def assembler(memory_store, rag_service, plugin_router, llm_service):
    return ContextAssembler(
        session_store=memory_store,
        rag_service=rag_service,
        plugin_router=plugin_router,
        llm_service=llm_service,
    )


def sent_system_prompt(mock_openai_client) -> str:
    messages = mock_openai_client.chat.completions.create.await_args.kwargs["messages"]
    assert messages[0]["role"] == "system"
    return messages[0]["content"]


# =============================================================================
# PROMPT BUILDING
# =============================================================================

class TestBuildSystemPrompt:
    """Test deterministic prompt assembly"""

    PLUGINS = [{"name": "math", "description": "Does math"}]

    def test_section_order(self):
        prompt = build_system_prompt(
            session_id="s1",
            message_count=3,
            plugins=self.PLUGINS,
            recent_messages=[Message(role=MessageRole.USER, content="hi")],
            relevant_context="[Context 1] facts",
            plugin_result=PluginResult(matched=True, plugin_name="math", context_info="2 + 2 = 4"),
            extra_prompt="Answer in English.",
        )

        markers = [
            "You are a helpful AI assistant",
            "- math: Does math",
            "Current session: s1",
            "Message count in this session: 3",
            "## Memory Summary (Last 2 messages):",
            "user: hi",
            "## Relevant Knowledge Base Information:",
            "## Plugin Output:",
            "Plugin used: math",
            "Answer in English.",
        ]
        positions = [prompt.index(marker) for marker in markers]
        assert positions == sorted(positions)

    def test_deterministic(self):
        kwargs = dict(
            session_id="s1",
            message_count=1,
            plugins=self.PLUGINS,
            recent_messages=[],
            relevant_context="ctx",
        )
        assert build_system_prompt(**kwargs) == build_system_prompt(**kwargs)

    def test_empty_sections_omitted(self):
        prompt = build_system_prompt(
            session_id="s1",
            message_count=0,
            plugins=[],
            recent_messages=[],
            plugin_result=PluginResult(matched=False),
        )

        assert "No previous conversation history." in prompt
        assert "Knowledge Base" not in prompt
        assert "Plugin" not in prompt
        assert "capabilities" not in prompt

    def test_plugin_error_section(self):
        prompt = build_system_prompt(
            session_id="s1",
            message_count=1,
            plugins=self.PLUGINS,
            recent_messages=[],
            plugin_result=PluginResult(matched=True, plugin_name="math", error="bad input"),
        )

        assert "## Plugin Information:" in prompt
        assert "encountered an issue: bad input" in prompt
        assert "Additional context: No additional context" in prompt
        assert "## Plugin Output:" not in prompt

    def test_memory_summary_uses_last_messages(self):
        messages = [Message(role=MessageRole.USER, content=f"m{i}") for i in range(5)]
        prompt = build_system_prompt(
            session_id="s1",
            message_count=5,
            plugins=[],
            recent_messages=messages,
            conversation_summary="talked about numbers",
        )

        assert "Summary: talked about numbers" in prompt
        assert "user: m4" in prompt and "user: m3" in prompt
        assert "user: m2" not in prompt


# =============================================================================
# PIPELINE
# =============================================================================

class TestContextAssembler:
    """Test ContextAssembler.process_message"""

    @pytest.mark.asyncio
    async def test_reply_persisted_with_user_message(self, assembler, memory_store):
        reply = await assembler.process_message("s1", "Hello there")

        assert reply.reply == "This is a test response"
        assert reply.session_id == "s1"

        session = await memory_store.get_session("s1")
        assert [(m.role, m.content) for m in session.messages] == [
            (MessageRole.USER, "Hello there"),
            (MessageRole.ASSISTANT, "This is a test response"),
        ]
        assert session.message_count == 2

    @pytest.mark.asyncio
    async def test_math_plugin_output_in_prompt(self, assembler, mock_openai_client, memory_store):
        reply = await assembler.process_message("s1", "Calculate 15 * 8 + sqrt(144)")

        prompt = sent_system_prompt(mock_openai_client)
        assert "## Plugin Output:" in prompt
        assert "Plugin used: math" in prompt
        assert "132" in prompt
        assert reply.plugins_used == ["math"]

        session = await memory_store.get_session("s1")
        assert session.messages[-1].metadata["plugins_used"] == ["math"]

    @pytest.mark.asyncio
    async def test_retrieved_context_in_prompt(self, assembler, mock_openai_client):
        reply = await assembler.process_message("s1", "Explain markdown syntax")

        prompt = sent_system_prompt(mock_openai_client)
        assert "## Relevant Knowledge Base Information:" in prompt
        assert "[Context 1]" in prompt
        assert "Markdown Guide" in reply.sources_used
        assert reply.plugins_used == []

    @pytest.mark.asyncio
    async def test_history_limited_to_ten_messages(self, assembler, mock_openai_client, memory_store):
        for i in range(15):
            await memory_store.add_message("s1", Message(role=MessageRole.USER, content=f"old {i}"))

        await assembler.process_message("s1", "Hello again")

        messages = mock_openai_client.chat.completions.create.await_args.kwargs["messages"]
        history = messages[1:]
        assert len(history) == 10
        assert history[-1] == {"role": "user", "content": "Hello again"}

    @pytest.mark.asyncio
    async def test_degraded_retrieval_still_replies(self, memory_store, plugin_router, llm_service, hashing_provider, tmp_path):
        uninitialized = RAGService(hashing_provider, docs_path=tmp_path / "missing")
        assembler = ContextAssembler(memory_store, uninitialized, plugin_router, llm_service)

        reply = await assembler.process_message("s1", "Explain markdown syntax")

        assert reply.reply == "This is a test response"
        assert reply.sources_used == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        LLMTimeoutError("slow"),
        LLMUnavailableError("down"),
        RuntimeError("unexpected"),
    ])
    async def test_llm_failure_degrades(self, assembler, llm_service, memory_store, error):
        llm_service.generate = AsyncMock(side_effect=error)

        reply = await assembler.process_message("s1", "Hello")

        assert reply.reply == DEGRADED_REPLY
        session = await memory_store.get_session("s1")
        assert session.messages[-1].content == DEGRADED_REPLY

    @pytest.mark.asyncio
    async def test_empty_completion_replaced(self, assembler, mock_openai_client):
        mock_openai_client.chat.completions.create.return_value = make_completion(None)

        reply = await assembler.process_message("s1", "Hello")

        assert reply.reply == EMPTY_COMPLETION_REPLY

    @pytest.mark.asyncio
    async def test_short_circuit_skips_llm(self, memory_store, rag_service, plugin_router, llm_service, mock_openai_client):
        assembler = ContextAssembler(
            memory_store, rag_service, plugin_router, llm_service, plugin_short_circuit=True
        )

        reply = await assembler.process_message("s1", "Calculate 6 * 7")

        assert "**Result:** 42" in reply.reply
        mock_openai_client.chat.completions.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self, assembler, memory_store):
        memory_store.update_session = AsyncMock(side_effect=DependencyUnavailableError("redis down"))

        with pytest.raises(DependencyUnavailableError):
            await assembler.process_message("s1", "Hello")

    @pytest.mark.asyncio
    async def test_concurrent_requests_same_session(self, assembler, memory_store):
        await asyncio.gather(*[
            assembler.process_message("s1", f"Hello {i}") for i in range(10)
        ])

        session = await memory_store.get_session("s1")
        assert session.message_count == 20

    @pytest.mark.asyncio
    async def test_session_info(self, assembler):
        missing = await assembler.get_session_info("s1")
        assert missing == {"exists": False, "message_count": 0, "created_at": None, "last_active": None}

        await assembler.process_message("s1", "Hello")
        info = await assembler.get_session_info("s1")

        assert info["exists"] is True
        assert info["message_count"] == 2
        assert info["created_at"] is not None

    def test_available_plugins(self, assembler):
        assert [p["name"] for p in assembler.get_available_plugins()] == ["weather", "math"]


class TestLLMService:
    """Test LLMService error mapping"""

    @pytest.mark.asyncio
    async def test_missing_key_is_unavailable(self):
        with pytest.raises(LLMUnavailableError):
            await LLMService(api_key=None).generate("system", [])

    @pytest.mark.asyncio
    async def test_timeout(self, mock_openai_client):
        async def slow(**kwargs):
            await asyncio.sleep(1)

        mock_openai_client.chat.completions.create = slow
        service = LLMService(client=mock_openai_client, timeout_seconds=0.01)

        with pytest.raises(LLMTimeoutError):
            await service.generate("system", [])

    @pytest.mark.asyncio
    async def test_api_error_is_unavailable(self, mock_openai_client):
        mock_openai_client.chat.completions.create.side_effect = openai.OpenAIError("bad gateway")
        service = LLMService(client=mock_openai_client)

        with pytest.raises(LLMUnavailableError):
            await service.generate("system", [])

    @pytest.mark.asyncio
    async def test_request_shape(self, mock_openai_client):
        service = LLMService(client=mock_openai_client, model="gpt-4o", max_tokens=1500, temperature=0.7)

        text = await service.generate("system prompt", [{"role": "user", "content": "hi"}])

        assert text == "This is a test response"
        mock_openai_client.chat.completions.create.assert_awaited_once_with(
            model="gpt-4o",
            messages=[
                {"role": "system", "content": "system prompt"},
                {"role": "user", "content": "hi"},
            ],
            max_tokens=1500,
            temperature=0.7,
        )
        assert service.get_stats()["completion_tokens"] == 5
