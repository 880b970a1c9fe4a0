import asyncio

import pytest

from tutor_rag.common.schemas import IndexedVector
from tutor_rag.retrieval.embedder import Embedder
from tutor_rag.retrieval.ingestor import Ingestor
from tutor_rag.retrieval.text_splitter import SentenceWindowChunker
from tutor_rag.retrieval.vector_store import (
    InMemoryVectorIndex,
    QdrantVectorIndex,
    create_vector_index,
)


def _vec(vector_id, embedding, **metadata):
    return IndexedVector(id=vector_id, content=f"content {vector_id}", embedding=embedding, metadata=metadata)


def _run(coro):
    return asyncio.run(coro)


def test_search_orders_by_cosine_similarity():
    index = InMemoryVectorIndex()

    async def scenario():
        await index.insert(_vec("a_0", [1.0, 0.0]))
        await index.insert(_vec("b_0", [0.6, 0.8]))
        await index.insert(_vec("c_0", [0.0, 1.0]))
        return await index.search([1.0, 0.0], k=2)

    results = _run(scenario())

    assert [r.document.id for r in results] == ["a_0", "b_0"]
    assert results[0].score == pytest.approx(1.0)
    assert results[1].score == pytest.approx(0.6)


def test_metadata_filter_is_applied_before_k():
    index = InMemoryVectorIndex()

    async def scenario():
        await index.insert(_vec("a_0", [1.0, 0.0], subject="HISTORY"))
        await index.insert(_vec("b_0", [0.9, 0.1], subject="SCIENCE"))
        await index.insert(_vec("c_0", [0.0, 1.0], subject="SCIENCE"))
        return await index.search([1.0, 0.0], k=2, filter={"subject": "SCIENCE"})

    results = _run(scenario())

    assert [r.document.id for r in results] == ["b_0", "c_0"]


def test_equal_scores_keep_insertion_order():
    index = InMemoryVectorIndex()

    async def scenario():
        for name in ("x_0", "y_0", "z_0"):
            await index.insert(_vec(name, [1.0, 0.0]))
        await index.optimize()
        return await index.search([1.0, 0.0], k=3)

    assert [r.document.id for r in _run(scenario())] == ["x_0", "y_0", "z_0"]


def test_dimension_mismatch_is_rejected():
    index = InMemoryVectorIndex()

    async def scenario():
        await index.insert(_vec("a_0", [1.0, 0.0]))
        await index.insert(_vec("b_0", [1.0, 0.0, 0.0]))

    with pytest.raises(ValueError):
        _run(scenario())


def test_reinserting_an_id_replaces_it():
    index = InMemoryVectorIndex()

    async def scenario():
        await index.insert(_vec("a_0", [1.0, 0.0]))
        await index.insert(_vec("a_0", [0.0, 1.0]))
        return await index.count(), await index.search([0.0, 1.0], k=1)

    count, results = _run(scenario())

    assert count == 1
    assert results[0].score == pytest.approx(1.0)


def test_empty_index_returns_no_results():
    assert _run(InMemoryVectorIndex().search([1.0, 0.0], k=5)) == []


def test_factory_selects_backend():
    assert isinstance(create_vector_index({"kind": "in-memory"}), InMemoryVectorIndex)
    assert isinstance(create_vector_index({"type": "qdrant", "location": ":memory:"}), QdrantVectorIndex)

    with pytest.raises(ValueError):
        create_vector_index({"kind": "faiss"})


def test_qdrant_point_ids_are_deterministic():
    assert QdrantVectorIndex._point_id("doc1_0") == QdrantVectorIndex._point_id("doc1_0")
    assert QdrantVectorIndex._point_id("doc1_0") != QdrantVectorIndex._point_id("doc1_1")


class YieldingQdrantClient:
    """Async client double that yields on every call and, like the server,
    rejects creating a collection that already exists."""

    def __init__(self):
        self.collections = set()
        self.create_calls = 0
        self.points = {}
        self.optimizer_updates = []

    async def collection_exists(self, collection_name):
        await asyncio.sleep(0)
        return collection_name in self.collections

    async def create_collection(self, collection_name, **kwargs):
        await asyncio.sleep(0)
        self.create_calls += 1
        if collection_name in self.collections:
            raise RuntimeError("Unexpected Response: 409 Collection already exists")
        self.collections.add(collection_name)

    async def upsert(self, collection_name, points, wait=True):
        await asyncio.sleep(0)
        for point in points:
            self.points[point.id] = point

    async def update_collection(self, collection_name, optimizers_config):
        await asyncio.sleep(0)
        self.optimizer_updates.append(optimizers_config.indexing_threshold)

    async def close(self):
        pass


def test_qdrant_concurrent_first_batch_creates_collection_once(provider, document_factory):
    client = YieldingQdrantClient()
    index = QdrantVectorIndex(collection_name="curriculum", indexing_threshold=500, client=client)
    ingestor = Ingestor(SentenceWindowChunker(), Embedder(provider), index, batch_size=10)
    docs = [document_factory(f"doc{i}") for i in range(5)]

    report = asyncio.run(ingestor.aingest(docs))

    assert report.documents_ingested == 5
    assert report.failed_document_ids == []
    assert client.create_calls == 1
    assert len(client.points) == 5
    assert client.optimizer_updates == [500]
