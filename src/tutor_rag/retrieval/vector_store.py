"""tutor_rag.retrieval.vector_store

Vector index interfaces and backends for the retrieval layer.

The index stores :class:`~tutor_rag.common.schemas.IndexedVector` objects and
answers cosine-similarity queries with optional metadata equality filters.
All operations are coroutines so that ingestion and querying can share one
event loop.

Classes
-------
BaseVectorIndex
    Abstract interface for vector index backends.
InMemoryVectorIndex
    Exact cosine search over vectors held in process memory.
QdrantVectorIndex
    Qdrant-backed index using :class:`qdrant_client.AsyncQdrantClient`.

Functions
---------
create_vector_index
    Create a vector index implementation from a configuration mapping.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional, Sequence

import numpy as np
from qdrant_client import AsyncQdrantClient, models

from tutor_rag.common.exceptions import IndexUnavailable
from tutor_rag.common.schemas import IndexedVector, SearchResult

logger = logging.getLogger(__name__)

MetadataFilter = Mapping[str, str]


class BaseVectorIndex(ABC):
    """Abstract interface for vector index backends.

    Implementations must return search hits in non-increasing score order and
    apply every key of a metadata filter as an equality constraint.
    """

    @abstractmethod
    async def insert(self, vector: IndexedVector) -> None:
        """Insert or replace a single vector."""

    async def insert_many(self, vectors: Sequence[IndexedVector]) -> None:
        """Insert several vectors. Backends may override with a bulk write."""
        for vector in vectors:
            await self.insert(vector)

    @abstractmethod
    async def search(
            self,
            query_vector: Sequence[float],
            k: int,
            filter: Optional[MetadataFilter] = None,
        ) -> list[SearchResult]:
        """Return up to ``k`` hits ordered by descending cosine similarity.

        Parameters
        ----------
        query_vector : Sequence[float]
            Unit-normalised query embedding.
        k : int
            Maximum number of hits.
        filter : Mapping[str, str] or None, optional
            Metadata equality constraints; all must hold.

        Returns
        -------
        list[SearchResult]
            Hits with the similarity as ``score``.
        """

    @abstractmethod
    async def optimize(self) -> None:
        """Finalise the index after a bulk load."""

    @abstractmethod
    async def count(self) -> int:
        """Return the number of stored vectors."""

    async def close(self) -> None:
        """Release backend resources."""
        return None


class InMemoryVectorIndex(BaseVectorIndex):
    """Exact cosine-similarity index held in process memory.

    Suitable for tests, offline use and small corpora. Vectors keep insertion
    order, which also breaks score ties. :meth:`optimize` stacks the stored
    vectors into a single ``numpy`` matrix used by subsequent searches.
    """

    def __init__(self):
        self._vectors: dict[str, IndexedVector] = {}
        self._matrix: np.ndarray | None = None
        self._matrix_ids: list[str] = []
        self.dimension: int | None = None

    async def insert(self, vector: IndexedVector) -> None:
        if not vector.embedding:
            raise ValueError(f"Vector {vector.id!r} has an empty embedding.")
        if self.dimension is None:
            self.dimension = len(vector.embedding)
        elif len(vector.embedding) != self.dimension:
            raise ValueError(
                f"Vector {vector.id!r} has dimension {len(vector.embedding)}, index expects {self.dimension}."
            )
        self._vectors[vector.id] = vector
        self._matrix = None

    async def search(
            self,
            query_vector: Sequence[float],
            k: int,
            filter: Optional[MetadataFilter] = None,
        ) -> list[SearchResult]:
        if k <= 0 or not self._vectors:
            return []

        query = np.asarray(query_vector, dtype=np.float64)
        if self.dimension is not None and query.shape != (self.dimension,):
            raise ValueError(f"Query has shape {query.shape}, index expects ({self.dimension},).")

        matrix, ids = self._ensure_matrix()
        norms = np.linalg.norm(matrix, axis=1) * (np.linalg.norm(query) or 1.0)
        norms[norms == 0.0] = 1.0
        scores = (matrix @ query) / norms

        hits: list[SearchResult] = []
        # Stable sort keeps insertion order among equal scores.
        for idx in np.argsort(-scores, kind="stable"):
            vector = self._vectors[ids[idx]]
            if filter and not _matches(vector.metadata, filter):
                continue
            hits.append(SearchResult(document=vector, score=float(scores[idx])))
            if len(hits) >= k:
                break
        return hits

    async def optimize(self) -> None:
        self._ensure_matrix()
        logger.debug("In-memory index optimised: %d vectors", len(self._matrix_ids))

    async def count(self) -> int:
        return len(self._vectors)

    def _ensure_matrix(self) -> tuple[np.ndarray, list[str]]:
        if self._matrix is None:
            self._matrix_ids = list(self._vectors)
            self._matrix = np.asarray(
                [self._vectors[i].embedding for i in self._matrix_ids], dtype=np.float64
            )
        return self._matrix, self._matrix_ids


def _matches(metadata: Mapping[str, str], filter: MetadataFilter) -> bool:
    return all(metadata.get(key) == str(value) for key, value in filter.items())


class QdrantVectorIndex(BaseVectorIndex):
    """Qdrant-backed vector index.

    Point ids are deterministic UUIDs derived from the vector id, so
    re-ingesting a document overwrites its points. The original vector id,
    the chunk text and the metadata travel in the point payload.

    The collection is created on first insert with cosine distance and HNSW
    indexing deferred; :meth:`optimize` re-enables indexing once the bulk load
    is complete.

    Parameters
    ----------
    host : str, optional
        Qdrant host address. Defaults to ``"localhost"``.
    port : int, optional
        Qdrant port number. Defaults to ``6333``.
    collection_name : str, optional
        Name of the Qdrant collection. Defaults to ``"curriculum"``.
    url : str or None, optional
        Full URL; takes precedence over ``host``/``port``.
    location : str or None, optional
        ``":memory:"`` for an embedded, process-local Qdrant.
    api_key : str or None, optional
        Qdrant API key.
    indexing_threshold : int, optional
        Indexing threshold restored by :meth:`optimize`. Defaults to ``20000``.
    client : AsyncQdrantClient or None, optional
        Pre-built client; the connection arguments are ignored when given.
    """

    _PAYLOAD_ID = "vector_id"
    _PAYLOAD_CONTENT = "content"
    _PAYLOAD_METADATA = "metadata"

    @classmethod
    def from_config_dict(cls, config: Mapping[str, Any]) -> "QdrantVectorIndex":
        """Create a Qdrant index from the ``vector_index`` configuration section."""
        return cls(
            host=config.get("host", "localhost"),
            port=int(config.get("port", 6333)),
            collection_name=config.get("collection_name", "curriculum"),
            url=config.get("url"),
            location=config.get("location"),
            api_key=config.get("api_key"),
            indexing_threshold=int(config.get("indexing_threshold", 20000)),
        )

    def __init__(
            self,
            *,
            host: str = "localhost",
            port: int = 6333,
            collection_name: str = "curriculum",
            url: Optional[str] = None,
            location: Optional[str] = None,
            api_key: Optional[str] = None,
            indexing_threshold: int = 20000,
            client: AsyncQdrantClient | None = None,
        ):
        if client is None:
            if location:
                client = AsyncQdrantClient(location=location)
            elif url:
                client = AsyncQdrantClient(url=url, api_key=api_key)
            else:
                client = AsyncQdrantClient(host=host, port=port, api_key=api_key)

        self.client = client
        self.collection_name = collection_name
        self.indexing_threshold = indexing_threshold
        self._collection_ready = False
        self._collection_lock = asyncio.Lock()

    async def insert(self, vector: IndexedVector) -> None:
        await self.insert_many([vector])

    async def insert_many(self, vectors: Sequence[IndexedVector]) -> None:
        if not vectors:
            return
        await self._ensure_collection(len(vectors[0].embedding))

        points = [
            models.PointStruct(
                id=self._point_id(v.id),
                vector=list(v.embedding),
                payload={
                    self._PAYLOAD_ID: v.id,
                    self._PAYLOAD_CONTENT: v.content,
                    self._PAYLOAD_METADATA: dict(v.metadata),
                },
            )
            for v in vectors
        ]
        try:
            await self.client.upsert(collection_name=self.collection_name, points=points, wait=True)
        except Exception as exc:
            raise IndexUnavailable(
                "Qdrant upsert failed",
                {"collection": self.collection_name, "points": len(points), "error": str(exc)},
            ) from exc

    async def search(
            self,
            query_vector: Sequence[float],
            k: int,
            filter: Optional[MetadataFilter] = None,
        ) -> list[SearchResult]:
        if k <= 0:
            return []
        try:
            if not await self.client.collection_exists(self.collection_name):
                return []
            response = await self.client.query_points(
                collection_name=self.collection_name,
                query=list(query_vector),
                limit=k,
                query_filter=self._build_filter(filter),
                with_payload=True,
            )
        except Exception as exc:
            raise IndexUnavailable(
                "Qdrant search failed",
                {"collection": self.collection_name, "error": str(exc)},
            ) from exc

        return [self._to_result(point) for point in response.points]

    async def optimize(self) -> None:
        if not self._collection_ready:
            return
        try:
            await self.client.update_collection(
                collection_name=self.collection_name,
                optimizers_config=models.OptimizersConfigDiff(indexing_threshold=self.indexing_threshold),
            )
        except Exception as exc:
            raise IndexUnavailable(
                "Qdrant optimize failed",
                {"collection": self.collection_name, "error": str(exc)},
            ) from exc
        logger.info("Qdrant collection %s optimised", self.collection_name)

    async def count(self) -> int:
        try:
            if not await self.client.collection_exists(self.collection_name):
                return 0
            result = await self.client.count(collection_name=self.collection_name, exact=True)
        except Exception as exc:
            raise IndexUnavailable(
                "Qdrant count failed",
                {"collection": self.collection_name, "error": str(exc)},
            ) from exc
        return int(result.count)

    async def close(self) -> None:
        await self.client.close()

    async def _ensure_collection(self, dimension: int) -> None:
        if self._collection_ready:
            return
        # Concurrent inserts share one check-and-create.
        async with self._collection_lock:
            if self._collection_ready:
                return
            try:
                if not await self.client.collection_exists(self.collection_name):
                    await self.client.create_collection(
                        collection_name=self.collection_name,
                        vectors_config=models.VectorParams(size=dimension, distance=models.Distance.COSINE),
                        # Bulk loads defer HNSW construction until optimize().
                        optimizers_config=models.OptimizersConfigDiff(indexing_threshold=0),
                    )
                    logger.info(
                        "Created Qdrant collection %s (dimension=%d)", self.collection_name, dimension
                    )
            except Exception as exc:
                raise IndexUnavailable(
                    "Qdrant collection setup failed",
                    {"collection": self.collection_name, "error": str(exc)},
                ) from exc
            self._collection_ready = True

    def _build_filter(self, filter: Optional[MetadataFilter]) -> models.Filter | None:
        if not filter:
            return None
        return models.Filter(
            must=[
                models.FieldCondition(
                    key=f"{self._PAYLOAD_METADATA}.{key}",
                    match=models.MatchValue(value=str(value)),
                )
                for key, value in filter.items()
            ]
        )

    def _to_result(self, point: models.ScoredPoint) -> SearchResult:
        payload = point.payload or {}
        vector = IndexedVector(
            id=str(payload.get(self._PAYLOAD_ID, point.id)),
            content=str(payload.get(self._PAYLOAD_CONTENT, "")),
            embedding=list(point.vector) if isinstance(point.vector, list) else [],
            metadata={k: str(v) for k, v in (payload.get(self._PAYLOAD_METADATA) or {}).items()},
        )
        return SearchResult(document=vector, score=float(point.score))

    @staticmethod
    def _point_id(vector_id: str) -> str:
        return str(uuid.uuid5(uuid.NAMESPACE_URL, vector_id))


def _get_vector_index_kind(cfg: Mapping[str, Any]):
    for key in ("kind", "type", "provider", "backend", "impl"):
        val = cfg.get(key)
        if val is not None:
            return val
    return None


def _normalize_vector_index_kind(kind) -> str:
    """Normalise a vector index kind to a registry key (``"qdrant"`` when falsy)."""
    if not kind:
        return "qdrant"
    k = str(kind).strip().lower().replace("-", "_")
    if k in {"qdrant", "qdrantvectorindex", "qdrant_vector_index"}:
        return "qdrant"
    if k in {"memory", "in_memory", "inmemory", "inmemoryvectorindex"}:
        return "memory"
    return k


def create_vector_index(config: Mapping[str, Any] | None) -> BaseVectorIndex:
    """Create a vector index implementation from a configuration mapping.

    Parameters
    ----------
    config : Mapping[str, Any] or None
        The ``vector_index`` section. The backend is selected by one of
        ``kind``, ``type``, ``provider``, ``backend`` or ``impl`` and defaults
        to Qdrant.

    Returns
    -------
    BaseVectorIndex
        Initialised index.

    Raises
    ------
    ValueError
        If the requested backend kind is not supported.
    """
    cfg = dict(config or {})
    kind = _normalize_vector_index_kind(_get_vector_index_kind(cfg))
    if kind == "qdrant":
        return QdrantVectorIndex.from_config_dict(cfg)
    if kind == "memory":
        return InMemoryVectorIndex()
    raise ValueError(f"Unknown vector index kind: {kind!r}")


__all__ = [
    "BaseVectorIndex",
    "InMemoryVectorIndex",
    "QdrantVectorIndex",
    "create_vector_index",
]
