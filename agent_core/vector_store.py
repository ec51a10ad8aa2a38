"""
In-Memory Vector Store
======================
Exhaustive cosine-similarity index over document chunks.

The index is written once during retrieval initialization and only read
afterwards. Every query scans all stored vectors (O(n * d)), which is fine
for corpora of a few thousand chunks.

Author: Context Agent
"""

import math
import logging
from typing import List, Optional, Sequence

from .errors import CorruptStateError
from .models import Document, DocumentChunk, SearchResult

logger = logging.getLogger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity in [-1, 1].

    Zero-magnitude, empty or length-mismatched vectors score 0.
    """
    if len(a) != len(b) or not a:
        return 0.0

    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0

    # Clamp float rounding so the result stays within bounds
    return max(-1.0, min(1.0, dot / (norm_a * norm_b)))


class InMemoryVectorStore:
    """
    Append-only store of (chunk, vector) pairs.

    The first insert fixes the index dimension; any later vector of a
    different length means the index is corrupt.
    """

    def __init__(self):
        self._chunks: List[DocumentChunk] = []
        self._vectors: List[List[float]] = []
        self.dimension: Optional[int] = None

    def __len__(self) -> int:
        return len(self._chunks)

    def insert(self, chunk: DocumentChunk, vector: Sequence[float]):
        """
        Add a chunk with its vector.

        Raises:
            CorruptStateError: If the vector dimension differs from the index
        """
        if self.dimension is None:
            if not vector:
                raise CorruptStateError(f"Empty vector for chunk {chunk.id}")
            self.dimension = len(vector)
        elif len(vector) != self.dimension:
            raise CorruptStateError(
                f"Vector dimension {len(vector)} for chunk {chunk.id} "
                f"does not match index dimension {self.dimension}"
            )

        chunk.set_embedding(vector)
        self._chunks.append(chunk)
        self._vectors.append(chunk.embedding)

    def add_document(self, document: Document, vectors: List[List[float]]):
        """Insert every chunk of a document with its matching vector"""
        if len(vectors) != len(document.chunks):
            raise CorruptStateError(
                f"Document {document.id} has {len(document.chunks)} chunks "
                f"but {len(vectors)} vectors"
            )

        for chunk, vector in zip(document.chunks, vectors):
            self.insert(chunk, vector)

        logger.info(f"📥 Added document {document.id} to vector store ({len(document.chunks)} chunks)")

    def search(self, query_vector: Sequence[float], top_k: int = 5) -> List[SearchResult]:
        """
        Top-k chunks by cosine similarity, most similar first.

        Ties keep insertion order. An empty index returns [].
        """
        if top_k <= 0 or not self._chunks:
            return []

        scored = [
            SearchResult(chunk=chunk, similarity=cosine_similarity(query_vector, vector))
            for chunk, vector in zip(self._chunks, self._vectors)
        ]
        scored.sort(key=lambda result: result.similarity, reverse=True)
        return scored[:top_k]

    def document_count(self) -> int:
        return len({chunk.source for chunk in self._chunks})
