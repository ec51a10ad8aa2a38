"""
LLM Service
===========
Chat completions against the OpenAI API.

Features:
- Lazy AsyncOpenAI client, created on first use
- Per-request timeout
- Token usage tracking

Author: Context Agent
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import openai

from .errors import AgentError, DependencyTimeoutError, DependencyUnavailableError

logger = logging.getLogger(__name__)


# =============================================================================
# CUSTOM EXCEPTIONS
# =============================================================================

class LLMError(AgentError):
    """Base exception for LLM-related errors"""
    pass


class LLMTimeoutError(DependencyTimeoutError, LLMError):
    """Raised when an LLM request times out"""
    pass


class LLMUnavailableError(DependencyUnavailableError, LLMError):
    """Raised when the OpenAI API is unreachable, misconfigured or failing"""
    pass


class LLMService:
    """
    OpenAI chat-completion wrapper
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4o",
        max_tokens: int = 1500,
        temperature: float = 0.7,
        timeout_seconds: float = 30.0,
        client: Optional[openai.AsyncOpenAI] = None,
    ):
        """
        Initialize LLM service

        Args:
            api_key: OpenAI API key
            model: Chat model name
            max_tokens: Completion token limit
            temperature: Sampling temperature
            timeout_seconds: Wall-clock budget for one completion
            client: Pre-built client (tests inject a mock)
        """
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout_seconds = timeout_seconds
        self._client = client

        if self.is_configured():
            logger.info(f"✅ OpenAI configured: {self.model}")
        else:
            logger.warning("⚠️ OpenAI API key not configured - replies will be degraded")

        self.stats = {
            "total_requests": 0,
            "failures": 0,
            "prompt_tokens": 0,
            "completion_tokens": 0,
        }

    def is_configured(self) -> bool:
        return self._client is not None or bool(self.api_key)

    def _get_client(self) -> openai.AsyncOpenAI:
        if self._client is None:
            if not self.api_key:
                raise LLMUnavailableError("OpenAI API key not configured")
            self._client = openai.AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def generate(
        self,
        system_prompt: str,
        conversation_history: List[Dict[str, str]],
    ) -> str:
        """
        Generate the assistant reply.

        Args:
            system_prompt: Assembled system prompt
            conversation_history: Prior turns as {role, content}, oldest first

        Returns:
            Completion text; "" when the model returned nothing

        Raises:
            LLMTimeoutError: Request exceeded timeout_seconds
            LLMUnavailableError: Client missing or API error
        """
        self.stats["total_requests"] += 1
        messages = [{"role": "system", "content": system_prompt}, *conversation_history]

        try:
            client = self._get_client()
            response = await asyncio.wait_for(
                client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    max_tokens=self.max_tokens,
                    temperature=self.temperature,
                ),
                timeout=self.timeout_seconds,
            )
        except (asyncio.TimeoutError, openai.APITimeoutError) as e:
            self.stats["failures"] += 1
            logger.error(f"❌ OpenAI request timed out after {self.timeout_seconds}s")
            raise LLMTimeoutError(f"OpenAI request timed out: {e}") from e
        except openai.OpenAIError as e:
            self.stats["failures"] += 1
            logger.error(f"❌ OpenAI API error: {e}")
            raise LLMUnavailableError(f"OpenAI API unavailable: {e}") from e
        except LLMError:
            self.stats["failures"] += 1
            raise

        usage = getattr(response, "usage", None)
        if usage is not None:
            self.stats["prompt_tokens"] += usage.prompt_tokens or 0
            self.stats["completion_tokens"] += usage.completion_tokens or 0

        if not response.choices:
            return ""

        content = response.choices[0].message.content or ""
        logger.info(
            f"✅ OpenAI response received - {len(content)} chars, "
            f"finish reason: {response.choices[0].finish_reason}"
        )
        return content

    def get_stats(self) -> Dict[str, Any]:
        return dict(self.stats)
