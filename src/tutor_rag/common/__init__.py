"""
Common building blocks shared across the RAG stack.

This package provides small, widely-used primitives (schemas, the error
taxonomy, token estimation and logging setup) intended to be imported by
multiple layers of the system.

Classes
-------
Subject
    Curriculum subject enum.
Document
    Canonical curriculum document container.
Chunk
    Sentence-bounded window of a document.
IndexedVector
    Embedded chunk as stored in the index.
SearchResult
    Scored retrieval hit.

Attributes
----------
DocId : TypeAlias
    Type alias for document identifiers.
VectorId : TypeAlias
    Type alias for indexed vector identifiers.
"""
from __future__ import annotations
from typing import TypeAlias

from .schemas import (
    Chunk,
    Document,
    DocumentMetadata,
    IndexedVector,
    IngestionReport,
    RAGResponse,
    SearchResult,
    Subject,
)

DocId: TypeAlias = str
VectorId: TypeAlias = str

__all__ = [
    "Chunk",
    "Document",
    "DocumentMetadata",
    "IndexedVector",
    "IngestionReport",
    "RAGResponse",
    "SearchResult",
    "Subject",
    "DocId",
    "VectorId",
]
