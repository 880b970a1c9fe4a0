import asyncio

import pytest

from tutor_rag.common.exceptions import EmbeddingProviderUnavailable, IndexUnavailable, IngestionFailed
from tutor_rag.common.schemas import Subject
from tutor_rag.retrieval.embedder import Embedder
from tutor_rag.retrieval.ingestor import Ingestor, build_chunk_metadata
from tutor_rag.retrieval.text_splitter import SentenceWindowChunker
from tutor_rag.retrieval.vector_store import InMemoryVectorIndex


class CountingIndex(InMemoryVectorIndex):
    def __init__(self):
        super().__init__()
        self.optimize_calls = 0

    async def optimize(self):
        self.optimize_calls += 1
        await super().optimize()


class PoisonedProvider:
    """Raises for any text containing ``POISON``."""

    def __init__(self, inner):
        self.inner = inner

    def embed(self, text):
        if "POISON" in text:
            raise RuntimeError("cannot embed this")
        return self.inner.embed(text)


class FlakyProvider:
    """Fails the first ``failures`` calls, then delegates."""

    def __init__(self, inner, failures=1):
        self.inner = inner
        self.failures = failures
        self.calls = 0

    def embed(self, text):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError("temporarily down")
        return self.inner.embed(text)


def _ingestor(provider, index=None, **kwargs):
    return Ingestor(
        SentenceWindowChunker(target_size=512, overlap=128),
        Embedder(provider),
        index or CountingIndex(),
        **kwargs,
    )


def test_chunk_metadata_shape(document_factory):
    doc = document_factory(
        "doc7",
        subject=Subject.HISTORY,
        title="Romans",
        source="pack-a",
        tags=("empire", "ancient"),
    )

    meta = build_chunk_metadata(doc, 1, 3)

    assert meta == {
        "subject": "HISTORY",
        "title": "Romans",
        "source": "pack-a",
        "chunk_index": "1",
        "total_chunks": "3",
        "difficulty": "medium",
        "tags": "empire,ancient",
    }


def test_ingest_indexes_every_chunk_and_optimizes_once(provider, document_factory):
    index = CountingIndex()
    ingestor = _ingestor(provider, index, batch_size=2)
    docs = [document_factory(f"doc{i}") for i in range(5)]

    report = asyncio.run(ingestor.aingest(docs))

    assert report.documents_total == 5
    assert report.documents_ingested == 5
    assert report.chunks_indexed == 5
    assert report.failed_document_ids == []
    assert asyncio.run(index.count()) == 5
    assert index.optimize_calls == 1
    assert "doc3_0" in index._vectors


def test_failed_document_does_not_stop_batch(provider, document_factory):
    index = CountingIndex()
    ingestor = _ingestor(PoisonedProvider(provider), index)
    docs = [
        document_factory("good1"),
        document_factory("bad", content="POISON pill."),
        document_factory("good2"),
    ]

    report = asyncio.run(ingestor.aingest(docs))

    assert report.documents_ingested == 2
    assert report.failed_document_ids == ["bad"]
    assert sorted(index._vectors) == ["good1_0", "good2_0"]


def test_whole_batch_failure_raises(provider, document_factory):
    index = CountingIndex()
    ingestor = _ingestor(PoisonedProvider(provider), index, batch_size=2)
    docs = [
        document_factory("ok"),
        document_factory("ok2"),
        document_factory("bad1", content="POISON one."),
        document_factory("bad2", content="POISON two."),
    ]

    with pytest.raises(IngestionFailed) as excinfo:
        asyncio.run(ingestor.aingest(docs))

    assert set(excinfo.value.failures) == {"bad1", "bad2"}
    # Earlier batches stay indexed and the index is still optimized.
    assert sorted(index._vectors) == ["ok2_0", "ok_0"]
    assert index.optimize_calls == 1


def test_transient_provider_failure_is_retried_once(provider, document_factory):
    flaky = FlakyProvider(provider, failures=1)
    ingestor = _ingestor(flaky)

    report = asyncio.run(ingestor.aingest([document_factory("doc1")]))

    assert report.documents_ingested == 1
    assert flaky.calls == 2


def test_provider_down_for_good_fails_document(provider, document_factory):
    ingestor = _ingestor(FlakyProvider(provider, failures=10))

    with pytest.raises(IngestionFailed) as excinfo:
        asyncio.run(ingestor.aingest([document_factory("doc1")]))

    assert isinstance(excinfo.value.failures["doc1"], EmbeddingProviderUnavailable)


def test_empty_document_contributes_no_chunks(provider, document_factory):
    index = CountingIndex()
    ingestor = _ingestor(provider, index)

    report = asyncio.run(ingestor.aingest([document_factory("blank", content="   ")]))

    assert report.documents_ingested == 1
    assert report.chunks_indexed == 0
    assert index.optimize_calls == 0


def test_batch_size_must_be_positive(provider):
    with pytest.raises(ValueError):
        _ingestor(provider, batch_size=0)


class TimelineIndex(InMemoryVectorIndex):
    """Records when each document's insert starts and ends around an await."""

    def __init__(self):
        super().__init__()
        self.events = []
        self.active = 0
        self.peak = 0

    async def insert_many(self, vectors):
        doc_id = vectors[0].document_id
        self.events.append(("start", doc_id))
        self.active += 1
        self.peak = max(self.peak, self.active)
        await asyncio.sleep(0.05)
        self.active -= 1
        self.events.append(("end", doc_id))
        await super().insert_many(vectors)


def test_batches_run_in_order_and_documents_within_a_batch_overlap(provider, document_factory):
    index = TimelineIndex()
    ingestor = _ingestor(provider, index, batch_size=2)
    docs = [document_factory(name) for name in ("a1", "a2", "b1", "b2")]

    report = asyncio.run(ingestor.aingest(docs))

    assert report.documents_ingested == 4
    # Two documents in flight at once: a batch is concurrent, batches are not merged.
    assert index.peak == 2
    position = {event: i for i, event in enumerate(index.events)}
    last_first_batch_end = max(position[("end", d)] for d in ("a1", "a2"))
    first_second_batch_start = min(position[("start", d)] for d in ("b1", "b2"))
    assert last_first_batch_end < first_second_batch_start


class FailingOptimizeIndex(CountingIndex):
    async def optimize(self):
        self.optimize_calls += 1
        raise IndexUnavailable("optimize failed")


def test_batch_failure_is_not_masked_by_optimize_failure(provider, document_factory):
    index = FailingOptimizeIndex()
    ingestor = _ingestor(PoisonedProvider(provider), index, batch_size=1)
    docs = [document_factory("ok"), document_factory("bad", content="POISON pill.")]

    with pytest.raises(IngestionFailed):
        asyncio.run(ingestor.aingest(docs))

    assert index.optimize_calls == 1


def test_optimize_error_surfaces_after_successful_run(provider, document_factory):
    ingestor = _ingestor(provider, FailingOptimizeIndex())

    with pytest.raises(IndexUnavailable):
        asyncio.run(ingestor.aingest([document_factory("doc1")]))


def test_nothing_indexed_skips_optimize(provider, document_factory):
    index = CountingIndex()
    ingestor = _ingestor(PoisonedProvider(provider), index)

    with pytest.raises(IngestionFailed):
        asyncio.run(ingestor.aingest([document_factory("bad", content="POISON pill.")]))
    asyncio.run(ingestor.aingest([]))

    assert index.optimize_calls == 0
