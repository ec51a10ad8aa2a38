"""
Agent Configuration
===================
Environment-driven settings, read once at process start.

Components receive these values through their constructors; nothing
below the composition root reads the environment.

Author: Context Agent
"""

import os
import logging
from typing import Optional
from dataclasses import dataclass

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass
class AgentSettings:
    """All tunables of the agent backend"""

    # LLM
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o"
    llm_max_tokens: int = 1500
    llm_temperature: float = 0.7
    llm_timeout_seconds: float = 30.0
    extra_system_prompt: Optional[str] = None

    # Embeddings
    embedding_provider: str = "openai"     # "openai" or "hashing"
    embedding_model: str = "text-embedding-3-small"
    embedding_dimension: int = 1536
    embedding_timeout_seconds: float = 15.0
    embedding_max_input_chars: int = 8000
    embedding_batch_size: int = 2048
    on_embedding_failure: str = "degrade"  # "degrade" or "fail"

    # Retrieval
    docs_path: str = "docs"
    chunk_size: int = 1000
    chunk_overlap: int = 200
    rag_max_results: int = 3
    rag_min_similarity: float = 0.1

    # Sessions
    session_backend: str = "redis"         # "redis" or "memory"
    redis_url: str = "redis://localhost:6379"
    session_ttl_seconds: int = 86400
    session_max_retries: int = 50
    history_limit: int = 10
    memory_summary_messages: int = 2

    # Plugins
    plugin_timeout_seconds: float = 5.0
    plugin_short_circuit: bool = False
    weather_api_key: Optional[str] = None
    weather_api_base: str = "http://api.weatherapi.com/v1"

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "AgentSettings":
        """Build settings from environment variables"""
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o"),
            llm_max_tokens=int(os.getenv("LLM_MAX_TOKENS", "1500")),
            llm_temperature=float(os.getenv("LLM_TEMPERATURE", "0.7")),
            llm_timeout_seconds=float(os.getenv("LLM_TIMEOUT_SECONDS", "30")),
            extra_system_prompt=os.getenv("EXTRA_SYSTEM_PROMPT"),
            embedding_provider=os.getenv("EMBEDDING_PROVIDER", "openai").lower(),
            embedding_model=os.getenv("EMBEDDING_MODEL", "text-embedding-3-small"),
            embedding_dimension=int(os.getenv("EMBEDDING_DIMENSION", "1536")),
            embedding_timeout_seconds=float(os.getenv("EMBEDDING_TIMEOUT_SECONDS", "15")),
            embedding_max_input_chars=int(os.getenv("EMBEDDING_MAX_INPUT_CHARS", "8000")),
            embedding_batch_size=int(os.getenv("EMBEDDING_BATCH_SIZE", "2048")),
            on_embedding_failure=os.getenv("ON_EMBEDDING_FAILURE", "degrade").lower(),
            docs_path=os.getenv("DOCS_PATH", "docs"),
            chunk_size=int(os.getenv("CHUNK_SIZE", "1000")),
            chunk_overlap=int(os.getenv("CHUNK_OVERLAP", "200")),
            rag_max_results=int(os.getenv("RAG_MAX_RESULTS", "3")),
            rag_min_similarity=float(os.getenv("RAG_MIN_SIMILARITY", "0.1")),
            session_backend=os.getenv("SESSION_BACKEND", "redis").lower(),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379"),
            session_ttl_seconds=int(os.getenv("SESSION_TTL_SECONDS", "86400")),
            session_max_retries=int(os.getenv("SESSION_MAX_RETRIES", "50")),
            history_limit=int(os.getenv("HISTORY_LIMIT", "10")),
            memory_summary_messages=int(os.getenv("MEMORY_SUMMARY_MESSAGES", "2")),
            plugin_timeout_seconds=float(os.getenv("PLUGIN_TIMEOUT_SECONDS", "5")),
            plugin_short_circuit=_env_bool("PLUGIN_SHORT_CIRCUIT"),
            weather_api_key=os.getenv("WEATHER_API_KEY"),
            weather_api_base=os.getenv("WEATHER_API_BASE", "http://api.weatherapi.com/v1"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
