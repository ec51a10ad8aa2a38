"""
RAG Service
===========
Retrieval Augmented Generation over the local markdown corpus.

Load phase: read documents, chunk, embed all chunks in one batch, fill the
vector store. Query phase: embed the query, search, drop weak matches and
format the survivors as a numbered context block.

Author: Context Agent
"""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Union

from .document_chunker import DocumentChunker
from .embeddings import EmbeddingProvider
from .errors import NotInitializedError
from .models import RetrievedContext, SearchResult
from .vector_store import InMemoryVectorStore

logger = logging.getLogger(__name__)


class RAGService:
    """
    Retrieval service backed by an in-memory vector store.

    Query methods never see a half-built index: the store is swapped in
    only after every document has been embedded and inserted.
    """

    def __init__(
        self,
        embedding_provider: EmbeddingProvider,
        chunker: Optional[DocumentChunker] = None,
        docs_path: Union[str, Path] = "docs",
        min_similarity: float = 0.1,
        default_max_results: int = 3,
    ):
        """
        Initialize RAG service

        Args:
            embedding_provider: Provider used for chunks and queries
            chunker: Document chunker (default: 1000 chars, 200 overlap)
            docs_path: Corpus directory used by initialize()
            min_similarity: Results at or below this similarity are dropped
            default_max_results: maxResults when the caller gives none
        """
        self.embedding_provider = embedding_provider
        self.chunker = chunker or DocumentChunker()
        self.docs_path = docs_path
        self.min_similarity = min_similarity
        self.default_max_results = default_max_results

        self.vector_store = InMemoryVectorStore()
        self._initialized = False
        self._init_lock = asyncio.Lock()

    def is_initialized(self) -> bool:
        return self._initialized

    # =========================================================================
    # LOAD PHASE
    # =========================================================================

    async def initialize(self, docs_path: Optional[Union[str, Path]] = None):
        """
        Load, chunk and embed the corpus. A no-op once initialized.

        Raises:
            FileNotFoundError / OSError: Corpus missing or unreadable
            CorruptStateError: Embedding dimensions inconsistent
            DependencyTimeoutError / DependencyUnavailableError: Embedding
                failed under the FAIL policy
        """
        if self._initialized:
            return

        async with self._init_lock:
            if self._initialized:
                return

            path = docs_path or self.docs_path
            try:
                documents = self.chunker.load_documents(path)
                texts = [chunk.content for doc in documents for chunk in doc.chunks]
                vectors = await self.embedding_provider.embed_batch(texts)

                store = InMemoryVectorStore()
                offset = 0
                for document in documents:
                    count = len(document.chunks)
                    store.add_document(document, vectors[offset:offset + count])
                    offset += count
            except Exception as e:
                logger.error(f"❌ Failed to initialize RAG service from {path}: {e}")
                raise

            self.vector_store = store
            self._initialized = True
            logger.info(
                f"✅ RAG service initialized: {store.document_count()} documents, "
                f"{len(store)} chunks from {path}"
            )

    # =========================================================================
    # QUERY PHASE
    # =========================================================================

    async def search_documents(self, query: str, top_k: int = 5) -> List[SearchResult]:
        """
        Raw nearest-neighbour search, no similarity filter.

        Raises:
            NotInitializedError: If initialize() has not completed
        """
        if not self._initialized:
            raise NotInitializedError("RAG service not initialized")

        query_vector = await self.embedding_provider.embed(query)
        return self.vector_store.search(query_vector, top_k)

    async def retrieve(self, query: str, max_results: Optional[int] = None) -> RetrievedContext:
        """
        Relevant context for a query. Never raises.

        Returns:
            RetrievedContext with an empty text when nothing relevant survives
        """
        limit = max_results if max_results is not None else self.default_max_results

        if not self._initialized:
            logger.error("❌ RAG service not initialized - returning empty context")
            return RetrievedContext()

        try:
            results = await self.search_documents(query, limit)
        except Exception as e:
            logger.error(f"❌ Failed to get relevant context for '{query[:100]}': {e}")
            return RetrievedContext()

        relevant = [r for r in results if r.similarity > self.min_similarity]
        if not relevant:
            return RetrievedContext()

        text = "\n\n".join(
            f"[Context {index}] {result.chunk.content}"
            for index, result in enumerate(relevant, start=1)
        )
        sources = list(dict.fromkeys(r.chunk.title or r.chunk.source for r in relevant))

        logger.info(
            f"🔍 Retrieved {len(relevant)}/{len(results)} chunks for '{query[:100]}' "
            f"(top similarity {relevant[0].similarity:.3f})"
        )
        return RetrievedContext(text=text, sources=sources)

    async def get_relevant_context(self, query: str, max_results: Optional[int] = None) -> str:
        """Prompt-ready context block, or "" when nothing relevant was found"""
        context = await self.retrieve(query, max_results)
        return context.text
