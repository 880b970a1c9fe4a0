"""tutor_rag.retrieval.retriever

Query-time dense retrieval over the vector index.

Classes
-------
Retriever
    Embeds a query and returns the nearest indexed chunks.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from tutor_rag.common.concurrency import run_sync
from tutor_rag.common.retry import DEFAULT_ATTEMPTS, retry_transient
from tutor_rag.common.schemas import SearchResult, Subject
from tutor_rag.retrieval.embedder import Embedder
from tutor_rag.retrieval.vector_store import BaseVectorIndex

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 5


def _normalise_filter(filter: Optional[Mapping[str, Any]]) -> dict[str, str] | None:
    if not filter:
        return None
    out: dict[str, str] = {}
    for key, value in filter.items():
        out[str(key)] = value.value if isinstance(value, Subject) else str(value)
    return out


class Retriever:
    """Dense retriever over a :class:`~tutor_rag.retrieval.vector_store.BaseVectorIndex`.

    The retriever only ranks by embedding similarity; reranking is a separate
    stage. With ``overfetch=True`` it returns ``2 * k`` candidates so that a
    downstream reranker has room to reorder.

    Parameters
    ----------
    embedder : Embedder
        Embeds the query text.
    index : BaseVectorIndex
        Index to search.
    default_k : int, optional
        ``k`` used when a call does not pass one. Defaults to ``5``.
    retry_attempts : int, optional
        Attempts for the query embedding when the provider is unavailable.
    """

    def __init__(
            self,
            embedder: Embedder,
            index: BaseVectorIndex,
            *,
            default_k: int = DEFAULT_TOP_K,
            retry_attempts: int = DEFAULT_ATTEMPTS,
        ):
        self.embedder = embedder
        self.index = index
        self.default_k = int(default_k)
        self.retry_attempts = int(retry_attempts)

    async def aretrieve(
            self,
            query: str,
            filter: Optional[Mapping[str, Any]] = None,
            k: Optional[int] = None,
            overfetch: bool = False,
        ) -> list[SearchResult]:
        """Retrieve chunks similar to ``query``.

        Parameters
        ----------
        query : str
            Natural-language query.
        filter : Mapping[str, Any] or None, optional
            Metadata equality filter, e.g. ``{"subject": Subject.HISTORY}``.
        k : int or None, optional
            Number of results wanted. Defaults to ``default_k``.
        overfetch : bool, optional
            Return up to ``2 * k`` results. Defaults to ``False``.

        Returns
        -------
        list[SearchResult]
            Hits in descending similarity order.

        Raises
        ------
        EmbeddingProviderUnavailable
            If the query cannot be embedded after retrying.
        IndexUnavailable
            If the index cannot be searched.
        """
        k = self.default_k if k is None else int(k)
        limit = 2 * k if overfetch else k
        if limit <= 0:
            return []

        query_vector = await retry_transient(
            self.embedder.aembed, query, attempts=self.retry_attempts
        )
        results = await self.index.search(query_vector, limit, _normalise_filter(filter))
        logger.debug("Retrieved %d/%d candidates (filter=%s)", len(results), limit, filter)
        return results

    def retrieve(
            self,
            query: str,
            filter: Optional[Mapping[str, Any]] = None,
            k: Optional[int] = None,
            overfetch: bool = False,
        ) -> list[SearchResult]:
        """Synchronous form of :meth:`aretrieve`."""
        return run_sync(self.aretrieve(query, filter=filter, k=k, overfetch=overfetch), name="retrieve")


__all__ = ["DEFAULT_TOP_K", "Retriever"]
