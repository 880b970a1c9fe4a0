"""tutor_rag.common.exceptions

Typed error taxonomy for the RAG core.

Every error raised by the core derives from :class:`TutorRAGError` and carries
a message plus an optional ``details`` mapping for logging. None of these
messages are meant to be shown to end users; presentation belongs to callers.

Classes
-------
TutorRAGError
    Base class for all core errors.
EmbeddingDegenerate
    The provider returned a vector that cannot be normalised.
EmbeddingProviderUnavailable
    The embedding provider failed; transient, retried once at the boundary.
IndexUnavailable
    The vector index could not be reached or rejected a request.
RerankScoreUnparsable
    A reranker response contained no usable score. Always recovered locally.
GenerationTimeout
    A query did not complete within its deadline.
IngestionFailed
    Every document of an ingestion batch failed.
"""

from __future__ import annotations

from typing import Any


class TutorRAGError(Exception):
    """Base exception for all RAG core errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class EmbeddingDegenerate(TutorRAGError):
    """Raised when an embedding has zero (or non-finite) norm."""


class EmbeddingProviderUnavailable(TutorRAGError):
    """Raised when the embedding provider call fails."""


class IndexUnavailable(TutorRAGError):
    """Raised when the vector index cannot serve a request."""


class RerankScoreUnparsable(TutorRAGError):
    """Raised by score parsers when a model response holds no score."""

    def __init__(self, response: str) -> None:
        super().__init__("No relevance score found in model response", {"response": response[:80]})
        self.response = response


class GenerationTimeout(TutorRAGError, TimeoutError):
    """Raised when a query exceeds its deadline."""


class IngestionFailed(TutorRAGError):
    """Raised when all documents in an ingestion batch fail.

    Parameters
    ----------
    message : str
        Summary message.
    failures : dict[str, BaseException]
        Mapping of document id to the exception that failed it.
    """

    def __init__(self, message: str, failures: dict[str, BaseException]) -> None:
        super().__init__(
            message,
            {doc_id: f"{type(exc).__name__}: {exc}" for doc_id, exc in failures.items()},
        )
        self.failures = failures


__all__ = [
    "TutorRAGError",
    "EmbeddingDegenerate",
    "EmbeddingProviderUnavailable",
    "IndexUnavailable",
    "RerankScoreUnparsable",
    "GenerationTimeout",
    "IngestionFailed",
]
