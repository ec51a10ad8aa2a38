"""
Embedding Providers
===================
Map text to fixed-length vectors for the vector index.

Providers:
- OpenAIEmbeddingProvider: OpenAI embeddings API (text-embedding-3-small)
- HashingEmbeddingProvider: deterministic offline feature hashing

Failure policy:
- DEGRADE: an upstream failure returns pseudo-random vectors of the
  configured dimension, logged as degraded. Retrieval keeps working,
  relevance does not.
- FAIL: the failure is raised as DependencyTimeoutError or
  DependencyUnavailableError.

Large inputs are sent in slices of at most max_batch_size texts; the
policy applies to each slice on its own.

Author: Context Agent
"""

import re
import math
import asyncio
import hashlib
import logging
import random
from enum import Enum
from typing import List, Optional

import openai

from .errors import AgentError, DependencyTimeoutError, DependencyUnavailableError

logger = logging.getLogger(__name__)

TOKEN_PATTERN = re.compile(r"[a-z0-9]+")


class FailurePolicy(str, Enum):
    """What to do when the upstream embedding call fails"""
    DEGRADE = "degrade"
    FAIL = "fail"


class EmbeddingProvider:
    """
    Base class for embedding providers.

    Subclasses implement _embed_texts; truncation, dimension checks and
    the failure policy live here.
    """

    def __init__(
        self,
        dimension: int,
        max_input_chars: int = 8000,
        on_failure: FailurePolicy = FailurePolicy.DEGRADE,
        max_batch_size: int = 2048,
    ):
        self.dimension = dimension
        self.max_input_chars = max_input_chars
        self.max_batch_size = max(1, max_batch_size)
        self.on_failure = FailurePolicy(on_failure)

        self.stats = {
            "requests": 0,
            "texts": 0,
            "degraded": 0,
        }

    async def _embed_texts(self, texts: List[str]) -> List[List[float]]:
        raise NotImplementedError

    async def embed(self, text: str) -> List[float]:
        """Embed a single text"""
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Embed several texts, one upstream call per max_batch_size slice.

        Returns:
            One vector of length self.dimension per input text
        """
        vectors: List[List[float]] = []
        for start in range(0, len(texts), self.max_batch_size):
            vectors.extend(await self._embed_slice(texts[start:start + self.max_batch_size]))
        return vectors

    async def _embed_slice(self, texts: List[str]) -> List[List[float]]:
        self.stats["requests"] += 1
        self.stats["texts"] += len(texts)
        truncated = [text[:self.max_input_chars] for text in texts]

        try:
            vectors = await self._embed_texts(truncated)
            self._check_vectors(vectors, expected=len(texts))
            return vectors
        except asyncio.TimeoutError as e:
            error = DependencyTimeoutError(f"Embedding request timed out: {e}")
        except (openai.OpenAIError, AgentError) as e:
            error = e if isinstance(e, AgentError) else DependencyUnavailableError(f"Embedding request failed: {e}")

        if self.on_failure == FailurePolicy.FAIL:
            logger.error(f"❌ Embedding failed for {len(texts)} texts: {error}")
            raise error

        self.stats["degraded"] += 1
        logger.warning(f"⚠️ Embedding degraded to fallback vectors for {len(texts)} texts: {error}")
        return [self.fallback_vector() for _ in texts]

    def _check_vectors(self, vectors: List[List[float]], expected: int):
        if len(vectors) != expected:
            raise DependencyUnavailableError(
                f"Embedding response has {len(vectors)} vectors, expected {expected}"
            )
        for vector in vectors:
            if len(vector) != self.dimension:
                raise DependencyUnavailableError(
                    f"Embedding response has dimension {len(vector)}, expected {self.dimension}"
                )

    def fallback_vector(self) -> List[float]:
        return [random.random() - 0.5 for _ in range(self.dimension)]


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """Embeddings from the OpenAI API"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "text-embedding-3-small",
        dimension: int = 1536,
        timeout_seconds: float = 15.0,
        max_input_chars: int = 8000,
        on_failure: FailurePolicy = FailurePolicy.DEGRADE,
        max_batch_size: int = 2048,
        client: Optional[openai.AsyncOpenAI] = None,
    ):
        super().__init__(dimension, max_input_chars, on_failure, max_batch_size)
        self.api_key = api_key
        self.model = model
        self.timeout_seconds = timeout_seconds
        self._client = client

        if self._client or self.api_key:
            logger.info(f"✅ OpenAI embeddings configured: {self.model} ({self.dimension} dimensions)")
        else:
            logger.warning("⚠️ OpenAI API key not configured - embeddings will use fallback vectors")

    def _get_client(self) -> openai.AsyncOpenAI:
        if self._client is None:
            if not self.api_key:
                raise DependencyUnavailableError("OpenAI API key not configured")
            self._client = openai.AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def _embed_texts(self, texts: List[str]) -> List[List[float]]:
        client = self._get_client()
        response = await asyncio.wait_for(
            client.embeddings.create(model=self.model, input=texts),
            timeout=self.timeout_seconds,
        )
        return [item.embedding for item in response.data]


class HashingEmbeddingProvider(EmbeddingProvider):
    """
    Deterministic bag-of-words embeddings.

    Each lower-cased word token is hashed into one of `dimension` buckets;
    the count vector is L2-normalised. Text without tokens maps to the zero
    vector. Needs no network, so it never degrades.
    """

    def __init__(
        self,
        dimension: int = 256,
        max_input_chars: int = 8000,
    ):
        super().__init__(dimension, max_input_chars, FailurePolicy.DEGRADE)

    def _bucket(self, token: str) -> int:
        digest = hashlib.md5(token.encode("utf-8")).hexdigest()
        return int(digest, 16) % self.dimension

    def _embed_one(self, text: str) -> List[float]:
        vector = [0.0] * self.dimension
        for token in TOKEN_PATTERN.findall(text.lower()):
            vector[self._bucket(token)] += 1.0

        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0:
            return vector
        return [v / norm for v in vector]

    async def _embed_texts(self, texts: List[str]) -> List[List[float]]:
        return [self._embed_one(text) for text in texts]
