"""
Startup Configuration
=====================
Composition root: builds every agent component from AgentSettings.

Example:
    from agent_core.startup import build_agent, shutdown_agent

    @app.on_event("startup")
    async def startup():
        app.state.agent = await build_agent(AgentSettings.from_env())

    @app.on_event("shutdown")
    async def shutdown():
        await shutdown_agent(app.state.agent)

Author: Context Agent
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .config import AgentSettings
from .context_assembler import ContextAssembler
from .document_chunker import DocumentChunker
from .embeddings import (
    EmbeddingProvider,
    FailurePolicy,
    HashingEmbeddingProvider,
    OpenAIEmbeddingProvider,
)
from .llm_service import LLMService
from .plugin_router import PluginRouter
from .plugins import MathPlugin, WeatherPlugin
from .rag_service import RAGService
from .session_store import SessionStore, create_session_store

logger = logging.getLogger(__name__)


@dataclass
class AgentComponents:
    """Everything the HTTP layer needs, built once per process"""
    settings: AgentSettings
    session_store: SessionStore
    rag_service: RAGService
    plugin_router: PluginRouter
    llm_service: LLMService
    assembler: ContextAssembler


def build_embedding_provider(settings: AgentSettings) -> EmbeddingProvider:
    if settings.embedding_provider == "hashing":
        return HashingEmbeddingProvider(
            dimension=settings.embedding_dimension,
            max_input_chars=settings.embedding_max_input_chars,
        )
    if settings.embedding_provider == "openai":
        return OpenAIEmbeddingProvider(
            api_key=settings.openai_api_key,
            model=settings.embedding_model,
            dimension=settings.embedding_dimension,
            timeout_seconds=settings.embedding_timeout_seconds,
            max_input_chars=settings.embedding_max_input_chars,
            max_batch_size=settings.embedding_batch_size,
            on_failure=FailurePolicy(settings.on_embedding_failure),
        )
    raise ValueError(f"Unknown embedding provider: {settings.embedding_provider}")


def build_plugin_router(settings: AgentSettings) -> PluginRouter:
    """Register the built-in plugins. Weather is consulted before math."""
    router = PluginRouter(default_timeout=settings.plugin_timeout_seconds)
    router.register(WeatherPlugin(
        api_key=settings.weather_api_key,
        base_url=settings.weather_api_base,
        request_timeout=settings.plugin_timeout_seconds,
    ))
    router.register(MathPlugin())
    return router


async def build_agent(
    settings: Optional[AgentSettings] = None,
    session_store: Optional[SessionStore] = None,
    embedding_provider: Optional[EmbeddingProvider] = None,
    llm_service: Optional[LLMService] = None,
) -> AgentComponents:
    """
    Build and wire all components.

    A retrieval initialization failure is logged and leaves retrieval
    uninitialized; a session store that cannot connect is fatal.

    Raises:
        DependencyUnavailableError: Session store unreachable
    """
    settings = settings or AgentSettings.from_env()
    logger.info("🚀 Initializing agent components...")

    store = session_store or await create_session_store(settings)

    rag_service = RAGService(
        embedding_provider=embedding_provider or build_embedding_provider(settings),
        chunker=DocumentChunker(settings.chunk_size, settings.chunk_overlap),
        docs_path=settings.docs_path,
        min_similarity=settings.rag_min_similarity,
        default_max_results=settings.rag_max_results,
    )
    try:
        await rag_service.initialize()
    except Exception as e:
        logger.error(f"❌ Retrieval disabled, RAG initialization failed: {e}")

    llm = llm_service or LLMService(
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        max_tokens=settings.llm_max_tokens,
        temperature=settings.llm_temperature,
        timeout_seconds=settings.llm_timeout_seconds,
    )

    plugin_router = build_plugin_router(settings)

    assembler = ContextAssembler(
        session_store=store,
        rag_service=rag_service,
        plugin_router=plugin_router,
        llm_service=llm,
        history_limit=settings.history_limit,
        memory_summary_messages=settings.memory_summary_messages,
        max_context_results=settings.rag_max_results,
        plugin_short_circuit=settings.plugin_short_circuit,
        extra_system_prompt=settings.extra_system_prompt,
    )

    logger.info("✅ Agent components initialized")
    return AgentComponents(
        settings=settings,
        session_store=store,
        rag_service=rag_service,
        plugin_router=plugin_router,
        llm_service=llm,
        assembler=assembler,
    )


async def shutdown_agent(components: AgentComponents):
    """Release external connections"""
    logger.info("🛑 Shutting down agent components...")
    await components.session_store.disconnect()
