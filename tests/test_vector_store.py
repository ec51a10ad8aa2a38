"""
Vector Store Tests
==================

Run with: pytest tests/test_vector_store.py -v
"""

import pytest

from agent_core.errors import CorruptStateError
from agent_core.models import Document, DocumentChunk
from agent_core.vector_store import InMemoryVectorStore, cosine_similarity


def make_chunk(index: int, source: str = "doc.md") -> DocumentChunk:
    return DocumentChunk(
        id=f"doc-chunk-{index}",
        content=f"chunk {index}",
        source=source,
        chunk_index=index,
    )


class TestCosineSimilarity:
    """Test cosine similarity properties"""

    def test_identical_vectors(self):
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_symmetric(self):
        a, b = [0.3, -1.2, 4.0], [2.0, 0.5, -0.7]
        assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))

    def test_opposite_vectors(self):
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_zero_vector_scores_zero(self):
        assert cosine_similarity([0.0, 0.0, 0.0], [1.0, 2.0, 3.0]) == 0.0
        assert cosine_similarity([1.0, 2.0, 3.0], [0.0, 0.0, 0.0]) == 0.0

    def test_length_mismatch_scores_zero(self):
        assert cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0]) == 0.0

    def test_bounded(self):
        value = cosine_similarity([1e-8, 3e8, -7.0], [2e-8, 6e8, -14.0])
        assert -1.0 <= value <= 1.0


class TestVectorStore:
    """Test InMemoryVectorStore"""

    def test_empty_index_returns_nothing(self):
        assert InMemoryVectorStore().search([1.0, 0.0], top_k=3) == []

    def test_top_k_ordering(self):
        store = InMemoryVectorStore()
        vectors = [
            [1.0, 0.0],
            [0.0, 1.0],
            [0.7, 0.7],
            [0.9, 0.1],
            [-1.0, 0.0],
        ]
        for index, vector in enumerate(vectors):
            store.insert(make_chunk(index), vector)

        results = store.search([1.0, 0.0], top_k=3)

        assert len(results) == 3
        assert [r.chunk.chunk_index for r in results] == [0, 3, 2]
        similarities = [r.similarity for r in results]
        assert similarities == sorted(similarities, reverse=True)

    def test_top_k_larger_than_index(self):
        store = InMemoryVectorStore()
        store.insert(make_chunk(0), [1.0, 0.0])
        store.insert(make_chunk(1), [0.0, 1.0])

        assert len(store.search([1.0, 1.0], top_k=10)) == 2
        assert store.search([1.0, 1.0], top_k=0) == []

    def test_ties_keep_insertion_order(self):
        store = InMemoryVectorStore()
        for index in range(3):
            store.insert(make_chunk(index), [1.0, 1.0])

        results = store.search([1.0, 1.0], top_k=3)
        assert [r.chunk.chunk_index for r in results] == [0, 1, 2]

    def test_dimension_mismatch_is_corrupt(self):
        store = InMemoryVectorStore()
        store.insert(make_chunk(0), [1.0, 0.0, 0.0])

        with pytest.raises(CorruptStateError):
            store.insert(make_chunk(1), [1.0, 0.0])
        assert len(store) == 1

    def test_embedding_assigned_once(self):
        chunk = make_chunk(0)
        store = InMemoryVectorStore()
        store.insert(chunk, [1.0, 0.0])

        assert chunk.embedding == [1.0, 0.0]
        with pytest.raises(CorruptStateError):
            store.insert(chunk, [0.0, 1.0])

    def test_add_document(self):
        document = Document(id="doc", title="Doc", content="", source="doc.md")
        document.chunks = [make_chunk(0), make_chunk(1)]
        store = InMemoryVectorStore()

        store.add_document(document, [[1.0, 0.0], [0.0, 1.0]])

        assert len(store) == 2
        assert store.document_count() == 1
        assert store.dimension == 2

    def test_add_document_vector_count_mismatch(self):
        document = Document(id="doc", title="Doc", content="", source="doc.md")
        document.chunks = [make_chunk(0), make_chunk(1)]

        with pytest.raises(CorruptStateError):
            InMemoryVectorStore().add_document(document, [[1.0, 0.0]])
