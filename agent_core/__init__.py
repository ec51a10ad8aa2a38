"""
Agent Core Module
=================
Conversational agent backend with:
- Per-session conversation memory (Redis or in-process)
- Keyword-routed plugins (weather, math)
- Retrieval over a local markdown corpus
- Context assembly and LLM reply generation

Author: Context Agent
"""

__version__ = "1.0.0"

from .errors import (
    AgentError,
    ValidationError,
    NotInitializedError,
    DependencyTimeoutError,
    DependencyUnavailableError,
    CorruptStateError,
)

from .models import (
    MessageRole,
    Message,
    Session,
    Document,
    DocumentChunk,
    SearchResult,
    RetrievedContext,
    PluginContext,
    PluginResult,
    AgentReply,
)

from .config import AgentSettings

from .document_chunker import DocumentChunker

from .embeddings import (
    EmbeddingProvider,
    FailurePolicy,
    HashingEmbeddingProvider,
    OpenAIEmbeddingProvider,
)

from .vector_store import (
    InMemoryVectorStore,
    cosine_similarity,
)

from .rag_service import RAGService

from .session_store import (
    SessionStore,
    InMemorySessionStore,
    RedisSessionStore,
    create_session_store,
)

from .plugin_router import (
    BasePlugin,
    PluginRouter,
)

from .llm_service import (
    LLMService,
    LLMError,
    LLMTimeoutError,
    LLMUnavailableError,
)

from .context_assembler import (
    ContextAssembler,
    build_system_prompt,
)

__all__ = [
    "__version__",
    # Errors
    "AgentError",
    "ValidationError",
    "NotInitializedError",
    "DependencyTimeoutError",
    "DependencyUnavailableError",
    "CorruptStateError",
    # Models
    "MessageRole",
    "Message",
    "Session",
    "Document",
    "DocumentChunk",
    "SearchResult",
    "RetrievedContext",
    "PluginContext",
    "PluginResult",
    "AgentReply",
    # Config
    "AgentSettings",
    # Retrieval
    "DocumentChunker",
    "EmbeddingProvider",
    "FailurePolicy",
    "HashingEmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "InMemoryVectorStore",
    "cosine_similarity",
    "RAGService",
    # Sessions
    "SessionStore",
    "InMemorySessionStore",
    "RedisSessionStore",
    "create_session_store",
    # Plugins
    "BasePlugin",
    "PluginRouter",
    # LLM
    "LLMService",
    "LLMError",
    "LLMTimeoutError",
    "LLMUnavailableError",
    # Assembly
    "ContextAssembler",
    "build_system_prompt",
]
