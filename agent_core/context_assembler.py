"""
Context Assembler
=================
Orchestrates one request: persist the user message, gather plugin output
and retrieved knowledge, build the system prompt, call the LLM, persist
the reply.

Failure handling:
- Session store errors propagate (the request fails)
- Plugin and retrieval failures are already folded into empty/errored
  results by their components
- Any LLM failure is replaced by a fixed degraded-service reply

Author: Context Agent
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from .llm_service import LLMService
from .models import (
    AgentReply,
    Message,
    MessageRole,
    PluginContext,
    PluginResult,
)
from .plugin_router import PluginRouter
from .rag_service import RAGService
from .session_store import SessionStore

logger = logging.getLogger(__name__)


# =============================================================================
# PROMPT TEMPLATES
# =============================================================================

BASE_SYSTEM_TEMPLATE = """You are a helpful AI assistant with access to plugins and a knowledge base about markup languages, blogging, and technical documentation.

Keep your responses conversational and helpful."""

CAPABILITIES_TEMPLATE = """You have access to the following capabilities:
{capabilities}"""

SESSION_TEMPLATE = """Current session: {session_id}
Message count in this session: {message_count}"""

MEMORY_TEMPLATE = """## Memory Summary (Last {count} messages):
{summary}"""

KNOWLEDGE_TEMPLATE = """## Relevant Knowledge Base Information:
{context}

Use this information to provide more accurate and detailed responses when relevant to the user's question."""

PLUGIN_OUTPUT_TEMPLATE = """## Plugin Output:
Plugin used: {plugin_name}
{context_info}

Use this plugin data to enhance your response. Provide a natural, conversational response that incorporates the plugin results."""

PLUGIN_ERROR_TEMPLATE = """## Plugin Information:
A plugin was triggered but encountered an issue: {error}
Additional context: {context_info}

Acknowledge the issue and provide a helpful response based on what you can determine from the user's request."""

NO_HISTORY_TEXT = "No previous conversation history."
DEGRADED_REPLY = "I'm experiencing technical difficulties. Please try again."
EMPTY_COMPLETION_REPLY = "I apologize, but I couldn't generate a response."


def build_system_prompt(
    session_id: str,
    message_count: int,
    plugins: List[Dict[str, str]],
    recent_messages: List[Message],
    relevant_context: str = "",
    plugin_result: Optional[PluginResult] = None,
    conversation_summary: Optional[str] = None,
    extra_prompt: Optional[str] = None,
    summary_message_count: int = 2,
) -> str:
    """
    Assemble the system prompt. Pure and deterministic.

    Section order: base instructions (with plugin capabilities), session
    metadata, memory summary, retrieved knowledge, plugin output or plugin
    error, extra instructions. Empty sections are left out.
    """
    base = BASE_SYSTEM_TEMPLATE
    if plugins:
        capabilities = "\n".join(f"- {p['name']}: {p['description']}" for p in plugins)
        base += " " + CAPABILITIES_TEMPLATE.format(capabilities=capabilities)

    sections = [
        base,
        SESSION_TEMPLATE.format(session_id=session_id, message_count=message_count),
    ]

    summary_lines = []
    if conversation_summary:
        summary_lines.append(f"Summary: {conversation_summary}")
    tail = recent_messages[-summary_message_count:] if summary_message_count > 0 else []
    summary_lines.extend(f"{m.role.value}: {m.content}" for m in tail)
    sections.append(MEMORY_TEMPLATE.format(
        count=summary_message_count,
        summary="\n".join(summary_lines) or NO_HISTORY_TEXT,
    ))

    if relevant_context:
        sections.append(KNOWLEDGE_TEMPLATE.format(context=relevant_context))

    if plugin_result is not None and plugin_result.matched:
        if plugin_result.error is None and plugin_result.context_info:
            sections.append(PLUGIN_OUTPUT_TEMPLATE.format(
                plugin_name=plugin_result.plugin_name or "unknown",
                context_info=plugin_result.context_info,
            ))
        elif plugin_result.error is not None:
            sections.append(PLUGIN_ERROR_TEMPLATE.format(
                error=plugin_result.error,
                context_info=plugin_result.context_info or "No additional context",
            ))

    if extra_prompt:
        sections.append(extra_prompt)

    return "\n\n".join(sections)


class ContextAssembler:
    """
    Per-request pipeline tying the session store, retrieval, plugins and
    the LLM together.
    """

    def __init__(
        self,
        session_store: SessionStore,
        rag_service: RAGService,
        plugin_router: PluginRouter,
        llm_service: LLMService,
        history_limit: int = 10,
        memory_summary_messages: int = 2,
        max_context_results: int = 3,
        plugin_short_circuit: bool = False,
        extra_system_prompt: Optional[str] = None,
    ):
        """
        Initialize context assembler

        Args:
            session_store: Conversation memory
            rag_service: Knowledge retrieval
            plugin_router: Plugin selection and execution
            llm_service: Completion backend
            history_limit: Prior messages sent to the LLM
            memory_summary_messages: Messages quoted in the memory summary
            max_context_results: maxResults for retrieval
            plugin_short_circuit: Reply with a successful plugin's text
                instead of calling the LLM
            extra_system_prompt: Appended to every system prompt
        """
        self.session_store = session_store
        self.rag_service = rag_service
        self.plugin_router = plugin_router
        self.llm_service = llm_service
        self.history_limit = history_limit
        self.memory_summary_messages = memory_summary_messages
        self.max_context_results = max_context_results
        self.plugin_short_circuit = plugin_short_circuit
        self.extra_system_prompt = extra_system_prompt

    async def process_message(self, session_id: str, user_message: str) -> AgentReply:
        """
        Produce the reply for one user message.

        Raises:
            DependencyUnavailableError: Session store unreachable
        """
        session = await self.session_store.add_message(
            session_id, Message(role=MessageRole.USER, content=user_message)
        )

        recent = await self.session_store.get_recent_messages(session_id, self.history_limit)
        history = [m.to_llm_message() for m in recent]

        plugin_context = PluginContext(
            session_id=session_id,
            user_message=user_message,
            conversation_history=history,
        )
        plugin_result, retrieved = await asyncio.gather(
            self.plugin_router.process_message(plugin_context),
            self.rag_service.retrieve(user_message, self.max_context_results),
        )

        system_prompt = build_system_prompt(
            session_id=session_id,
            message_count=session.message_count,
            plugins=self.plugin_router.list_plugins(),
            recent_messages=recent,
            relevant_context=retrieved.text,
            plugin_result=plugin_result,
            conversation_summary=session.conversation_summary,
            extra_prompt=self.extra_system_prompt,
            summary_message_count=self.memory_summary_messages,
        )

        if self.plugin_short_circuit and plugin_result.success and plugin_result.response_text:
            reply = plugin_result.response_text
        else:
            reply = await self._generate(session_id, system_prompt, history)

        plugins_used = [plugin_result.plugin_name] if plugin_result.matched and plugin_result.plugin_name else []

        await self.session_store.add_message(
            session_id,
            Message(
                role=MessageRole.ASSISTANT,
                content=reply,
                metadata={"plugins_used": plugins_used, "sources": retrieved.sources},
            ),
        )

        logger.info(
            f"💬 Reply generated for session {session_id} "
            f"({len(reply)} chars, plugins={plugins_used}, sources={len(retrieved.sources)})"
        )
        return AgentReply(
            reply=reply,
            session_id=session_id,
            plugins_used=plugins_used,
            sources_used=retrieved.sources,
        )

    async def _generate(self, session_id: str, system_prompt: str, history: List[Dict[str, str]]) -> str:
        try:
            reply = await self.llm_service.generate(system_prompt, history)
        except Exception as e:
            logger.error(f"❌ LLM generation failed for session {session_id}: {e}")
            return DEGRADED_REPLY
        return reply or EMPTY_COMPLETION_REPLY

    # =========================================================================
    # INTROSPECTION
    # =========================================================================

    async def get_session_info(self, session_id: str) -> Dict[str, Any]:
        session = await self.session_store.get_session(session_id)
        if session is None:
            return {
                "exists": False,
                "message_count": 0,
                "created_at": None,
                "last_active": None,
            }
        return {
            "exists": True,
            "message_count": session.message_count,
            "created_at": session.created_at.isoformat(),
            "last_active": session.last_active.isoformat(),
        }

    def get_available_plugins(self) -> List[Dict[str, str]]:
        return self.plugin_router.list_plugins()
