"""tutor_rag.retrieval.embedding_cache

Bounded text -> embedding cache owned by the :class:`~tutor_rag.retrieval.embedder.Embedder`.

The cache stores normalised vectors keyed by the exact input text. Capacity is
fixed; which entry leaves when the cache is full is decided by a pluggable
eviction policy.

Classes
-------
EvictionPolicy
    Protocol for eviction strategies.
LRUEvictionPolicy
    Evicts the least recently read or written key.
FIFOEvictionPolicy
    Evicts the oldest inserted key, ignoring reads.
EmbeddingCache
    Bounded cache with hit/miss counters.

Functions
---------
create_embedding_cache
    Build a cache from an ``embedding_cache`` configuration mapping.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Any, Hashable, Mapping, Protocol


class EvictionPolicy(Protocol):
    """Tracks key usage and nominates a victim when the cache is full."""

    def record_insert(self, key: Hashable) -> None: ...

    def record_access(self, key: Hashable) -> None: ...

    def record_remove(self, key: Hashable) -> None: ...

    def victim(self) -> Hashable: ...

    def clear(self) -> None: ...


class LRUEvictionPolicy:
    """Least-recently-used eviction."""

    def __init__(self):
        self._order: OrderedDict[Hashable, None] = OrderedDict()

    def record_insert(self, key: Hashable) -> None:
        self._order[key] = None
        self._order.move_to_end(key)

    def record_access(self, key: Hashable) -> None:
        if key in self._order:
            self._order.move_to_end(key)

    def record_remove(self, key: Hashable) -> None:
        self._order.pop(key, None)

    def victim(self) -> Hashable:
        return next(iter(self._order))

    def clear(self) -> None:
        self._order.clear()


class FIFOEvictionPolicy(LRUEvictionPolicy):
    """First-in-first-out eviction; reads do not refresh a key."""

    def record_access(self, key: Hashable) -> None:
        return None


class EmbeddingCache:
    """Bounded mapping from text to embedding vector.

    Parameters
    ----------
    max_size : int, optional
        Maximum number of cached vectors. ``0`` disables caching. Defaults
        to ``1000``.
    policy : EvictionPolicy or None, optional
        Eviction strategy. Defaults to :class:`LRUEvictionPolicy`.

    Attributes
    ----------
    hits : int
        Number of successful lookups.
    misses : int
        Number of failed lookups.
    """

    def __init__(self, max_size: int = 1000, policy: EvictionPolicy | None = None):
        if max_size < 0:
            raise ValueError("'max_size' must not be negative.")
        self.max_size = int(max_size)
        self.policy = policy or LRUEvictionPolicy()
        self._data: dict[str, list[float]] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, text: object) -> bool:
        return text in self._data

    def get(self, text: str) -> list[float] | None:
        vector = self._data.get(text)
        if vector is None:
            self.misses += 1
            return None
        self.hits += 1
        self.policy.record_access(text)
        return list(vector)

    def put(self, text: str, vector: list[float]) -> None:
        if self.max_size == 0:
            return
        if text in self._data:
            self._data[text] = list(vector)
            self.policy.record_access(text)
            return

        while len(self._data) >= self.max_size:
            victim = self.policy.victim()
            self._data.pop(victim, None)
            self.policy.record_remove(victim)

        self._data[text] = list(vector)
        self.policy.record_insert(text)

    def clear(self) -> None:
        self._data.clear()
        self.policy.clear()
        self.hits = 0
        self.misses = 0


_POLICIES = {
    "lru": LRUEvictionPolicy,
    "fifo": FIFOEvictionPolicy,
}


def create_embedding_cache(config: Mapping[str, Any] | None) -> EmbeddingCache:
    """Create an :class:`EmbeddingCache` from configuration.

    Parameters
    ----------
    config : Mapping[str, Any] or None
        The ``embedding_cache`` section; keys ``max_size`` (default ``1000``)
        and ``policy`` (``"lru"`` or ``"fifo"``, default ``"lru"``).

    Raises
    ------
    ValueError
        If the policy name is unknown.
    """
    cfg = dict(config or {})
    policy_name = str(cfg.get("policy", "lru")).lower().strip()
    policy_cls = _POLICIES.get(policy_name)
    if policy_cls is None:
        raise ValueError(
            f"Unknown embedding cache policy {policy_name!r}. Supported policies: {sorted(_POLICIES)}."
        )
    return EmbeddingCache(max_size=int(cfg.get("max_size", 1000)), policy=policy_cls())


__all__ = [
    "EvictionPolicy",
    "LRUEvictionPolicy",
    "FIFOEvictionPolicy",
    "EmbeddingCache",
    "create_embedding_cache",
]
