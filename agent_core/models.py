"""
Core Data Models
================
Data models for the context-assembly pipeline.

Defines:
- Chat messages and sessions (owned by the session store)
- Documents, chunks and search results (owned by the vector index)
- Plugin request/response values
- The reply returned to the HTTP layer

Author: Context Agent
"""

import logging
from enum import Enum
from typing import List, Dict, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime, timezone

from .errors import CorruptStateError

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# =============================================================================
# ENUMS
# =============================================================================

class MessageRole(str, Enum):
    """Roles a chat message can have"""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


# =============================================================================
# CONVERSATION MEMORY
# =============================================================================

@dataclass(frozen=True)
class Message:
    """Single chat message. Immutable once appended to a session."""
    role: MessageRole
    content: str
    timestamp: datetime = field(default_factory=utcnow)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }

    def to_llm_message(self) -> Dict[str, str]:
        return {"role": self.role.value, "content": self.content}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        return cls(
            role=MessageRole(data["role"]),
            content=data["content"],
            timestamp=_parse_timestamp(data["timestamp"]),
            metadata=data.get("metadata") or {},
        )


@dataclass
class Session:
    """
    Ordered, append-only conversation log for one session id.

    Insertion order is chronological order. ``message_count`` always equals
    ``len(messages)`` after a successful store update.
    """
    session_id: str
    messages: List[Message] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    last_active: datetime = field(default_factory=utcnow)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def message_count(self) -> int:
        return self.metadata.get("message_count", 0)

    @property
    def conversation_summary(self) -> Optional[str]:
        return self.metadata.get("conversation_summary")

    def append(self, message: Message) -> None:
        self.messages.append(message)
        self.metadata["message_count"] = len(self.messages)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "messages": [m.to_dict() for m in self.messages],
            "created_at": self.created_at.isoformat(),
            "last_active": self.last_active.isoformat(),
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        try:
            return cls(
                session_id=data["session_id"],
                messages=[Message.from_dict(m) for m in data.get("messages", [])],
                created_at=_parse_timestamp(data["created_at"]),
                last_active=_parse_timestamp(data["last_active"]),
                metadata=data.get("metadata") or {},
            )
        except (KeyError, TypeError, ValueError) as e:
            raise CorruptStateError(f"Invalid session record: {e}") from e


# =============================================================================
# DOCUMENTS & RETRIEVAL
# =============================================================================

@dataclass
class DocumentChunk:
    """
    Bounded slice of a document, the unit of embedding and retrieval.

    ``total_chunks`` is fixed up once every chunk of the document exists.
    ``embedding`` is assigned exactly once, by the vector index.
    """
    id: str
    content: str
    source: str
    chunk_index: int
    total_chunks: int = 0
    word_count: int = 0
    title: Optional[str] = None
    embedding: Optional[List[float]] = None

    def set_embedding(self, vector: List[float]):
        """Attach the chunk's vector. A second assignment is an error."""
        if self.embedding is not None:
            raise CorruptStateError(f"Chunk {self.id} already has an embedding")
        self.embedding = list(vector)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "source": self.source,
            "title": self.title,
            "chunk_index": self.chunk_index,
            "total_chunks": self.total_chunks,
            "word_count": self.word_count,
        }


@dataclass
class Document:
    """Corpus document loaded once at startup"""
    id: str
    title: str
    content: str
    source: str
    word_count: int = 0
    last_modified: Optional[datetime] = None
    chunks: List[DocumentChunk] = field(default_factory=list)


@dataclass
class SearchResult:
    """Single nearest-neighbour hit. Ephemeral, never persisted."""
    chunk: DocumentChunk
    similarity: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.chunk.content,
            "similarity": self.similarity,
            "source": self.chunk.title or self.chunk.source,
            "chunk_index": self.chunk.chunk_index,
        }


@dataclass
class RetrievedContext:
    """Prompt-ready retrieval output"""
    text: str = ""
    sources: List[str] = field(default_factory=list)


# =============================================================================
# PLUGINS
# =============================================================================

@dataclass
class PluginContext:
    """Request-scoped input handed to a plugin"""
    session_id: str
    user_message: str
    conversation_history: List[Dict[str, str]] = field(default_factory=list)


@dataclass
class PluginResult:
    """
    Outcome of a plugin run.

    ``matched`` is true whenever a plugin was selected, even if it then
    failed; ``error`` tells the two apart.
    """
    matched: bool
    plugin_name: Optional[str] = None
    response_text: Optional[str] = None
    structured_data: Optional[Dict[str, Any]] = None
    context_info: Optional[str] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.matched and self.error is None


# =============================================================================
# AGENT OUTPUT
# =============================================================================

@dataclass
class AgentReply:
    """Reply produced for one inbound message"""
    reply: str
    session_id: str
    timestamp: datetime = field(default_factory=utcnow)
    plugins_used: List[str] = field(default_factory=list)
    sources_used: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reply": self.reply,
            "session_id": self.session_id,
            "plugins_used": self.plugins_used,
            "sources_used": self.sources_used,
            "timestamp": self.timestamp.isoformat(),
        }
