"""tutor_rag.retrieval.embedder

Embedding providers and the normalising :class:`Embedder` adapter.

Providers wrap a concrete embedding backend (LlamaIndex Hugging Face or
OpenAI-compatible embeddings) and return raw vectors. The :class:`Embedder`
is the only embedding surface the rest of the pipeline sees: it calls the
provider, L2-normalises the result, rejects degenerate vectors and caches
vectors by text. Swapping the provider never touches ingestion or query code.

Classes
-------
EmbeddingProvider
    Protocol for raw embedding backends.
BaseEmbeddingProvider
    Shared base for LlamaIndex-backed providers.
HuggingFaceEmbeddingProvider
    Provider backed by a Hugging Face SentenceTransformer via LlamaIndex.
OpenAILikeEmbeddingProvider
    Provider backed by an OpenAI-compatible HTTP API via LlamaIndex.
Embedder
    Normalising, caching adapter over a provider.

Functions
---------
l2_normalize
    Scale a vector to unit Euclidean norm.
create_embedding_provider
    Create a provider from a configuration mapping.
create_embedder
    Create an :class:`Embedder` (provider + cache) from configuration.
"""

from __future__ import annotations

import asyncio
import logging
import math
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional, Protocol, Sequence

import numpy as np
from llama_index.core.base.embeddings.base import BaseEmbedding as LlamaIndexBaseEmbedding

from tutor_rag.common.concurrency import run_sync
from tutor_rag.common.exceptions import EmbeddingDegenerate, EmbeddingProviderUnavailable
from tutor_rag.retrieval.embedding_cache import EmbeddingCache, create_embedding_cache

logger = logging.getLogger(__name__)


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "y", "on"}:
            return True
        if normalized in {"0", "false", "no", "n", "off"}:
            return False
    return bool(value)


def l2_normalize(vector: Sequence[float]) -> list[float]:
    """Return ``vector / ||vector||_2`` as a list of floats.

    Parameters
    ----------
    vector : Sequence[float]
        Raw embedding.

    Returns
    -------
    list[float]
        Unit-norm copy of ``vector``.

    Raises
    ------
    EmbeddingDegenerate
        If the vector is empty, not one-dimensional, or has a zero or
        non-finite norm.
    """
    arr = np.asarray(vector, dtype=np.float64)
    if arr.ndim != 1 or arr.size == 0:
        raise EmbeddingDegenerate("Embedding must be a non-empty 1-D vector", {"shape": arr.shape})

    norm = float(np.linalg.norm(arr))
    if norm == 0.0 or not math.isfinite(norm):
        raise EmbeddingDegenerate("Embedding norm is zero or non-finite", {"norm": norm})

    return (arr / norm).tolist()


class EmbeddingProvider(Protocol):
    """Raw embedding backend.

    Implementations may also expose ``embed_batch(texts) -> list[list[float]]``
    for throughput; the :class:`Embedder` uses it when present.
    """

    def embed(self, text: str) -> list[float]:
        """Return the raw embedding of ``text``. Raises ``ValueError`` on empty text."""


class BaseEmbeddingProvider(ABC):
    """Shared behaviour for providers that wrap a LlamaIndex embedding."""

    @abstractmethod
    def get_embedder(self) -> LlamaIndexBaseEmbedding:
        """Return the wrapped LlamaIndex embedding instance."""

    @classmethod
    @abstractmethod
    def from_config_dict(cls, config: Mapping[str, Any]) -> "BaseEmbeddingProvider":
        """Create a provider from a configuration mapping."""

    def embed(self, text: str) -> list[float]:
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text.")
        return list(self.get_embedder().get_text_embedding(text))

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        if any(not t or not t.strip() for t in texts):
            raise ValueError("Cannot embed empty text.")
        return [list(v) for v in self.get_embedder().get_text_embedding_batch(list(texts))]


class HuggingFaceEmbeddingProvider(BaseEmbeddingProvider):
    """Provider backed by a Hugging Face SentenceTransformer via LlamaIndex.

    Parameters
    ----------
    model_name : str
        Name or path of the embedding model.
    device : str, optional
        Device identifier (e.g., ``"cuda"``, ``"cpu"``, ``"mps"``).
    trust_remote_code : bool, optional
        Whether to allow custom model code from the Hugging Face Hub.
    max_length : int or None, optional
        Maximum input length in model tokens.
    model_kwargs : dict[str, Any] or None, optional
        Additional keyword arguments forwarded to the underlying model.
    """

    def __init__(
            self,
            model_name: str,
            *,
            device: str = "cpu",
            trust_remote_code: bool = False,
            max_length: Optional[int] = None,
            model_kwargs: dict[str, Any] | None = None,
        ):
        from llama_index.embeddings.huggingface import HuggingFaceEmbedding

        self.embedder = HuggingFaceEmbedding(
            model_name=model_name,
            device=device,
            trust_remote_code=trust_remote_code,
            max_length=max_length,
            # Normalisation is owned by the Embedder adapter.
            normalize=False,
            model_kwargs=model_kwargs or {},
        )

    def get_embedder(self) -> LlamaIndexBaseEmbedding:
        return self.embedder

    @classmethod
    def from_config_dict(cls, config: Mapping[str, Any]) -> "HuggingFaceEmbeddingProvider":
        """Create a Hugging Face provider from a configuration mapping.

        Raises
        ------
        KeyError
            If ``model_name`` is missing.
        """
        return cls(
            model_name=config["model_name"],
            device=config.get("device", "cpu"),
            trust_remote_code=_as_bool(config.get("trust_remote_code"), False),
            max_length=config.get("max_length"),
            model_kwargs=config.get("model_kwargs", {}),
        )


class OpenAILikeEmbeddingProvider(BaseEmbeddingProvider):
    """Provider backed by an OpenAI-compatible embedding API via LlamaIndex.

    Parameters
    ----------
    model_name : str
        Model identifier for the embedding endpoint.
    api_base : str
        Base URL for the OpenAI-compatible embedding API endpoint.
    api_key : str or None, optional
        API key; local deployments usually accept any value.
    timeout : float, optional
        Request timeout in seconds. Defaults to ``60.0``.
    max_retries : int, optional
        Client-level retries. Defaults to ``0``.
    embed_batch_size : int, optional
        Texts per request when embedding in batches. Defaults to ``10``.
    """

    def __init__(
            self,
            model_name: str,
            *,
            api_base: str,
            api_key: str | None = None,
            timeout: float = 60.0,
            max_retries: int = 0,
            embed_batch_size: int = 10,
            reuse_client: bool = True,
            model_kwargs: dict[str, Any] | None = None,
        ):
        from llama_index.embeddings.openai_like import OpenAILikeEmbedding

        self.embedder = OpenAILikeEmbedding(
            model_name=model_name,
            api_base=api_base,
            api_key=api_key or "fake",
            timeout=timeout,
            max_retries=max_retries,
            embed_batch_size=embed_batch_size,
            reuse_client=reuse_client,
            additional_kwargs=model_kwargs or {},
        )

    def get_embedder(self) -> LlamaIndexBaseEmbedding:
        return self.embedder

    @classmethod
    def from_config_dict(cls, config: Mapping[str, Any]) -> "OpenAILikeEmbeddingProvider":
        """Create an OpenAI-compatible provider from a configuration mapping.

        Raises
        ------
        KeyError
            If ``model_name`` or ``api_base`` is missing.
        """
        return cls(
            model_name=config["model_name"],
            api_base=config["api_base"],
            api_key=config.get("api_key"),
            timeout=float(config.get("timeout", config.get("request_timeout", 60.0))),
            max_retries=int(config.get("max_retries", 0)),
            embed_batch_size=int(config.get("embed_batch_size", 10)),
            reuse_client=_as_bool(config.get("reuse_client"), True),
            model_kwargs=config.get("model_kwargs", {}),
        )


class Embedder:
    """Normalising, caching adapter over an :class:`EmbeddingProvider`.

    Blocking provider calls are off-loaded to the default executor so that
    callers on the event loop stay responsive.

    Parameters
    ----------
    provider : EmbeddingProvider
        Raw embedding backend.
    cache : EmbeddingCache or None, optional
        Text -> vector cache. Defaults to a 1000-entry LRU cache.

    Attributes
    ----------
    dimension : int or None
        Embedding dimension, fixed by the first vector produced.
    """

    def __init__(self, provider: EmbeddingProvider, *, cache: EmbeddingCache | None = None):
        self.provider = provider
        self.cache = cache if cache is not None else EmbeddingCache()
        self.dimension: int | None = None

    async def aembed(self, text: str) -> list[float]:
        """Embed a single text.

        Parameters
        ----------
        text : str
            Text to embed.

        Returns
        -------
        list[float]
            Unit-norm embedding.

        Raises
        ------
        EmbeddingDegenerate
            If the provider returns a zero-norm vector or a vector of the
            wrong dimension.
        EmbeddingProviderUnavailable
            If the provider call fails.
        ValueError
            If ``text`` is empty.
        """
        cached = self.cache.get(text)
        if cached is not None:
            return cached

        loop = asyncio.get_running_loop()
        raw = await loop.run_in_executor(None, self._call_provider, text)
        vector = self._finalise(raw)
        self.cache.put(text, vector)
        return vector

    async def aembed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed several texts, preserving input order.

        Cached texts are served from the cache. The rest go to the provider's
        ``embed_batch`` in one call when available, otherwise one concurrent
        call per text.
        """
        texts = list(texts)
        results: dict[str, list[float]] = {}
        pending: list[str] = []
        for text in texts:
            if text in results or text in pending:
                continue
            cached = self.cache.get(text)
            if cached is not None:
                results[text] = cached
            else:
                pending.append(text)

        if pending:
            if hasattr(self.provider, "embed_batch"):
                loop = asyncio.get_running_loop()
                raws = await loop.run_in_executor(None, self._call_provider_batch, pending)
                vectors = [self._finalise(raw) for raw in raws]
                for text, vector in zip(pending, vectors):
                    self.cache.put(text, vector)
            else:
                vectors = await asyncio.gather(*(self.aembed(text) for text in pending))
            results.update(zip(pending, vectors))

        return [list(results[text]) for text in texts]

    def embed(self, text: str) -> list[float]:
        """Synchronous form of :meth:`aembed`."""
        return run_sync(self.aembed(text), name="embed")

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """Synchronous form of :meth:`aembed_batch`."""
        return run_sync(self.aembed_batch(texts), name="embed_batch")

    def _call_provider(self, text: str) -> list[float]:
        try:
            return self.provider.embed(text)
        except ValueError:
            raise
        except Exception as exc:
            raise EmbeddingProviderUnavailable(
                "Embedding provider call failed", {"error": f"{type(exc).__name__}: {exc}"}
            ) from exc

    def _call_provider_batch(self, texts: list[str]) -> list[list[float]]:
        try:
            raws = self.provider.embed_batch(texts)
        except ValueError:
            raise
        except Exception as exc:
            raise EmbeddingProviderUnavailable(
                "Embedding provider batch call failed",
                {"batch_size": len(texts), "error": f"{type(exc).__name__}: {exc}"},
            ) from exc
        if len(raws) != len(texts):
            raise EmbeddingProviderUnavailable(
                "Embedding provider returned the wrong number of vectors",
                {"expected": len(texts), "received": len(raws)},
            )
        return raws

    def _finalise(self, raw: Sequence[float]) -> list[float]:
        vector = l2_normalize(raw)
        if self.dimension is None:
            self.dimension = len(vector)
        elif len(vector) != self.dimension:
            raise EmbeddingDegenerate(
                "Embedding dimension mismatch",
                {"expected": self.dimension, "received": len(vector)},
            )
        return vector


# ----------------- Factory helpers -----------------

def _get_embedder_kind(cfg: Mapping[str, Any]) -> str:
    """Return the first non-empty kind/type/provider discriminator in ``cfg``."""
    for key in ("kind", "type", "provider", "backend", "impl"):
        val = cfg.get(key)
        if isinstance(val, str) and val.strip():
            return val.strip()
    return ""


def _normalize_embedder_kind(kind: str) -> str:
    """Normalise an embedder kind string to a stable registry key.

    CamelCase becomes snake_case, hyphens and spaces become underscores, and
    the spellings of "OpenAI-like" collapse to ``"openai_like"``.
    """
    k = kind.strip()
    if not k:
        return ""

    out: list[str] = []
    prev = ""
    for ch in k:
        if prev and prev.islower() and ch.isupper():
            out.append("_")
        out.append(ch)
        prev = ch

    k2 = "".join(out).replace("-", "_").replace(" ", "_")
    while "__" in k2:
        k2 = k2.replace("__", "_")
    k2 = k2.lower()

    for alias in ("openailike", "open_ailike", "open_ai_like"):
        k2 = k2.replace(alias, "openai_like")
    return k2


def create_embedding_provider(config: Mapping[str, Any]) -> BaseEmbeddingProvider:
    """Create an embedding provider from a configuration mapping.

    Parameters
    ----------
    config : Mapping[str, Any]
        The ``embedder`` section. The implementation is selected by one of
        ``kind``, ``type``, ``provider``, ``backend`` or ``impl``; Hugging Face
        is used when none is given.

    Returns
    -------
    BaseEmbeddingProvider
        An initialised provider.

    Raises
    ------
    TypeError
        If ``config`` is not a mapping.
    ValueError
        If the discriminator selects an unsupported implementation.
    """
    if not isinstance(config, Mapping):
        raise TypeError(f"create_embedding_provider expected a mapping/dict, got {type(config)}")

    kind_raw = _get_embedder_kind(config)
    kind = _normalize_embedder_kind(kind_raw)

    registry: dict[str, type[BaseEmbeddingProvider]] = {
        "huggingface": HuggingFaceEmbeddingProvider,
        "hugging_face": HuggingFaceEmbeddingProvider,
        "hf": HuggingFaceEmbeddingProvider,
        "openai_like": OpenAILikeEmbeddingProvider,
        "openai": OpenAILikeEmbeddingProvider,
    }

    cls = registry.get(kind) if kind else HuggingFaceEmbeddingProvider
    if cls is None:
        raise ValueError(
            f"Unknown embedder kind '{kind_raw}' (normalized to '{kind}'). "
            f"Supported kinds: {sorted(registry.keys())}."
        )

    return cls.from_config_dict(dict(config))


def create_embedder(
        config: Mapping[str, Any],
        cache_config: Mapping[str, Any] | None = None,
    ) -> Embedder:
    """Create an :class:`Embedder` from the ``embedder`` and ``embedding_cache`` sections."""
    provider = create_embedding_provider(config)
    logger.info("Embedding provider ready: %s", type(provider).__name__)
    return Embedder(provider, cache=create_embedding_cache(cache_config))


__all__ = [
    "EmbeddingProvider",
    "BaseEmbeddingProvider",
    "HuggingFaceEmbeddingProvider",
    "OpenAILikeEmbeddingProvider",
    "Embedder",
    "l2_normalize",
    "create_embedding_provider",
    "create_embedder",
]
