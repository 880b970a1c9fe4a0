"""tutor_rag

Offline-first curriculum tutoring RAG package.

This package contains the building blocks for a Retrieval-Augmented
Generation (RAG) tutor: curriculum ingestion (chunking, embedding, indexing),
query-time retrieval, LLM reranking, token-budgeted context assembly and
tiered answer generation.

Attributes
----------
__version__ : str
    Package version string. Defaults to ``"0.0.0-dev"`` when package metadata is
    unavailable.

Modules
-------
config
    Global configuration loader and cached accessors.
app
    Application container, HTTP API and composition root.
pipelines
    Query orchestration (retrieval → reranking → context → generation).
retrieval
    Curriculum loading, chunking, embedding, vector indexes, retrieval and reranking.
generation
    Model tiers, LLM wrappers, prompt templates and context assembly.
common
    Shared schemas, errors, token estimation and logging setup.

Exports
-------
GlobalConfig
    Global configuration loader and accessor.
TutorContainer
    Cached runtime component container for applications.
build_container
    Factory function to construct a configured :class:`~tutor_rag.app.container.TutorContainer`.
RAGOrchestrator
    End-to-end query orchestrator.
Document
    Canonical curriculum document schema.
Subject
    Curriculum subject enum.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("tutor-rag")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from .config import GlobalConfig
from .app.container import TutorContainer, build_container
from .pipelines.rag_pipeline import RAGOrchestrator
from .common import Document, Subject

__all__ = [
    "__version__",
    "GlobalConfig",
    "TutorContainer",
    "build_container",
    "RAGOrchestrator",
    "Document",
    "Subject",
]
