"""tutor_rag.retrieval.ingestor

Corpus ingestion: chunk, embed and index curriculum documents.

Documents are processed in fixed-size batches. Batches run one after another;
the documents inside a batch run concurrently. A failing document is logged
and skipped, but a batch in which every document fails aborts the run with
:class:`~tutor_rag.common.exceptions.IngestionFailed`. Once all batches have
been loaded the index is optimised once, provided anything was indexed.

Classes
-------
Ingestor
    Batch ingestion driver.

Functions
---------
build_chunk_metadata
    Flat string metadata stored with each indexed chunk.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from tutor_rag.common.concurrency import run_sync
from tutor_rag.common.exceptions import IngestionFailed
from tutor_rag.common.retry import DEFAULT_ATTEMPTS, retry_transient
from tutor_rag.common.schemas import Document, IndexedVector, IngestionReport
from tutor_rag.retrieval.embedder import Embedder
from tutor_rag.retrieval.text_splitter import SentenceWindowChunker
from tutor_rag.retrieval.vector_store import BaseVectorIndex

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10
DEFAULT_DIFFICULTY = "medium"


def build_chunk_metadata(document: Document, chunk_index: int, total_chunks: int) -> dict[str, str]:
    """Return the metadata stored with chunk ``chunk_index`` of ``document``."""
    meta = document.metadata
    return {
        "subject": meta.subject.value,
        "title": meta.title,
        "source": meta.source,
        "chunk_index": str(chunk_index),
        "total_chunks": str(total_chunks),
        "difficulty": meta.difficulty or DEFAULT_DIFFICULTY,
        "tags": ",".join(meta.tags),
    }


class Ingestor:
    """Chunk, embed and index documents in concurrent batches.

    Parameters
    ----------
    chunker : SentenceWindowChunker
        Splits document content into chunks.
    embedder : Embedder
        Produces unit-norm chunk embeddings.
    index : BaseVectorIndex
        Destination index.
    batch_size : int, optional
        Documents per batch. Defaults to ``10``.
    retry_attempts : int, optional
        Attempts per document when the embedding provider is unavailable.
        Defaults to ``2``.
    """

    def __init__(
            self,
            chunker: SentenceWindowChunker,
            embedder: Embedder,
            index: BaseVectorIndex,
            *,
            batch_size: int = DEFAULT_BATCH_SIZE,
            retry_attempts: int = DEFAULT_ATTEMPTS,
        ):
        if batch_size <= 0:
            raise ValueError("'batch_size' must be a positive integer.")
        self.chunker = chunker
        self.embedder = embedder
        self.index = index
        self.batch_size = int(batch_size)
        self.retry_attempts = int(retry_attempts)

    async def aingest(self, documents: Iterable[Document]) -> IngestionReport:
        """Ingest ``documents`` into the index.

        Parameters
        ----------
        documents : Iterable[Document]
            Documents to ingest.

        Returns
        -------
        IngestionReport
            Counts of ingested documents and indexed chunks, and the ids of
            documents that were skipped.

        Raises
        ------
        IngestionFailed
            If every document in a batch fails. Documents from earlier batches
            stay indexed.

        Notes
        -----
        The index is optimised once at the end, and only when at least one
        chunk was indexed. An optimize failure after an aborted run is logged
        and the ``IngestionFailed`` is raised.
        """
        docs = list(documents)
        report = IngestionReport(documents_total=len(docs))

        try:
            for start in range(0, len(docs), self.batch_size):
                batch = docs[start:start + self.batch_size]
                await self._ingest_batch(batch, report, batch_number=start // self.batch_size + 1)
        except IngestionFailed:
            if report.chunks_indexed:
                try:
                    await self.index.optimize()
                except Exception as exc:
                    logger.warning("Index optimize failed after aborted ingestion: %s", exc)
            raise

        if report.chunks_indexed:
            await self.index.optimize()

        logger.info(
            "Ingestion complete: %d/%d documents, %d chunks indexed",
            report.documents_ingested,
            report.documents_total,
            report.chunks_indexed,
        )
        return report

    def ingest(self, documents: Iterable[Document]) -> IngestionReport:
        """Synchronous form of :meth:`aingest`."""
        return run_sync(self.aingest(documents), name="ingest")

    async def _ingest_batch(
            self,
            batch: list[Document],
            report: IngestionReport,
            *,
            batch_number: int,
        ) -> None:
        outcomes = await asyncio.gather(
            *(self._ingest_document(doc) for doc in batch),
            return_exceptions=True,
        )

        failures: dict[str, BaseException] = {}
        for doc, outcome in zip(batch, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.warning("Skipping document %s: %s", doc.id, outcome)
                failures[doc.id] = outcome
                continue
            report.documents_ingested += 1
            report.chunks_indexed += outcome

        report.failed_document_ids.extend(failures)
        logger.debug(
            "Batch %d: %d documents, %d failed", batch_number, len(batch), len(failures)
        )

        if failures and len(failures) == len(batch):
            raise IngestionFailed(
                f"All {len(batch)} documents in batch {batch_number} failed", failures
            )

    async def _ingest_document(self, document: Document) -> int:
        chunks = self.chunker.chunk(document.content)
        if not chunks:
            logger.debug("Document %s produced no chunks", document.id)
            return 0

        embeddings = await retry_transient(
            self.embedder.aembed_batch,
            [chunk.text for chunk in chunks],
            attempts=self.retry_attempts,
        )

        total = len(chunks)
        vectors = [
            IndexedVector(
                id=f"{document.id}_{i}",
                content=chunk.text,
                embedding=embedding,
                metadata=build_chunk_metadata(document, i, total),
            )
            for i, (chunk, embedding) in enumerate(zip(chunks, embeddings))
        ]
        await self.index.insert_many(vectors)
        return total


__all__ = [
    "DEFAULT_BATCH_SIZE",
    "Ingestor",
    "build_chunk_metadata",
]
