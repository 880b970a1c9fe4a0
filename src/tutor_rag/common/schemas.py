"""tutor_rag.common.schemas

Core data schemas shared across the RAG pipeline.

These lightweight dataclasses describe the canonical shapes for curriculum
documents, the ephemeral chunks cut from them during ingestion, the vectors
stored in the index, and the scored hits returned at query time.

Classes
-------
Subject
    Curriculum subject used for metadata filtering and prompt instructions.
DocumentMetadata
    Descriptive metadata attached to a :class:`Document`.
Document
    A full, un-split curriculum document.
Chunk
    A sentence-bounded window of a document's text.
IndexedVector
    An embedded chunk as stored in the vector index.
SearchResult
    An indexed vector paired with a relevance score.
RAGResponse
    Answer, rendered prompt and sources for a single query.
IngestionReport
    Summary of a corpus ingestion run.

Notes
-----
``IndexedVector.metadata`` is a flat ``str -> str`` mapping so that it can be
stored by any vector index backend and matched by equality filters.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


class Subject(str, Enum):
    """Curriculum subject."""

    MATHEMATICS = "MATHEMATICS"
    SCIENCE = "SCIENCE"
    HISTORY = "HISTORY"
    LANGUAGE_ARTS = "LANGUAGE_ARTS"
    GEOGRAPHY = "GEOGRAPHY"
    GENERAL = "GENERAL"

    @classmethod
    def parse(cls, value: "Subject | str") -> "Subject":
        """Parse a subject from an enum member or a loosely formatted string.

        Parameters
        ----------
        value : Subject or str
            Subject member, or a name such as ``"language arts"`` or
            ``"Language-Arts"``.

        Returns
        -------
        Subject
            The matching subject.

        Raises
        ------
        ValueError
            If ``value`` does not name a known subject.
        """
        if isinstance(value, cls):
            return value
        key = str(value).strip().upper().replace("-", "_").replace(" ", "_")
        try:
            return cls[key]
        except KeyError:
            raise ValueError(
                f"Unknown subject {value!r}. Supported subjects: {[s.name for s in cls]}."
            ) from None

    @property
    def label(self) -> str:
        """Human-readable lower-case label (``LANGUAGE_ARTS`` -> ``"language arts"``)."""
        return self.name.lower().replace("_", " ")


@dataclass(frozen=True)
class DocumentMetadata:
    """Descriptive metadata for a curriculum document.

    Attributes
    ----------
    subject : Subject
        Subject the document belongs to.
    title : str
        Human-readable title, surfaced in assembled context.
    source : str
        Provenance of the document (e.g. a content pack name).
    difficulty : str or None
        Optional difficulty label. Indexed as ``"medium"`` when absent.
    tags : tuple[str, ...]
        Ordered free-form tags.
    """

    subject: Subject
    title: str
    source: str
    difficulty: str | None = None
    tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class Document:
    """Container for a raw curriculum document.

    Attributes
    ----------
    id : str
        Stable document identifier. Used as the prefix of every vector id
        derived from this document.
    content : str
        Full textual content, prior to chunking.
    metadata : DocumentMetadata
        Descriptive metadata.
    """

    id: str
    content: str
    metadata: DocumentMetadata

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Document":
        """Build a document from a plain mapping.

        Metadata may be nested under ``"metadata"`` or given at the top level.

        Raises
        ------
        KeyError
            If ``id``, ``content``, ``subject`` or ``title`` is missing.
        ValueError
            If the subject is unknown.
        """
        meta = data.get("metadata") or data
        tags = meta.get("tags") or ()
        if isinstance(tags, str):
            tags = [t.strip() for t in tags.split(",") if t.strip()]

        return cls(
            id=str(data["id"]),
            content=str(data["content"]),
            metadata=DocumentMetadata(
                subject=Subject.parse(meta["subject"]),
                title=str(meta["title"]),
                source=str(meta.get("source", "")),
                difficulty=meta.get("difficulty"),
                tags=tuple(str(t) for t in tags),
            ),
        )


@dataclass(frozen=True)
class Chunk:
    """A contiguous, sentence-bounded window of a document's text.

    Attributes
    ----------
    text : str
        Chunk text, including any overlap tail carried over from the previous
        chunk.
    start_offset : int
        Offset in the source text where this chunk's own sentences begin.
    end_offset : int
        Offset in the source text where this chunk's own sentences end
        (exclusive). Consecutive chunks tile the source text.
    """

    text: str
    start_offset: int
    end_offset: int


@dataclass(frozen=True)
class IndexedVector:
    """An embedded chunk stored in the vector index.

    Attributes
    ----------
    id : str
        ``"<document_id>_<chunk_index>"``.
    content : str
        Chunk text.
    embedding : list[float]
        Unit-normalised embedding vector.
    metadata : dict[str, str]
        Flat string metadata used for filtering and context assembly.
    """

    id: str
    content: str
    embedding: list[float]
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def document_id(self) -> str:
        """Identifier of the parent document."""
        return self.id.rsplit("_", 1)[0]


@dataclass(frozen=True)
class SearchResult:
    """A scored hit from retrieval or reranking."""

    document: IndexedVector
    score: float

    def with_score(self, score: float) -> "SearchResult":
        return SearchResult(document=self.document, score=float(score))


@dataclass
class RAGResponse:
    """Result of a single orchestrated query.

    Attributes
    ----------
    answer : str
        Generated answer, verbatim.
    prompt : str
        Rendered prompt sent to the generation tier.
    sources : list[SearchResult]
        Results that were offered to the context builder, in rank order.
    """

    answer: str
    prompt: str
    sources: list[SearchResult] = field(default_factory=list)


@dataclass
class IngestionReport:
    """Summary of an ingestion run."""

    documents_total: int = 0
    documents_ingested: int = 0
    chunks_indexed: int = 0
    failed_document_ids: list[str] = field(default_factory=list)


__all__ = [
    "Subject",
    "DocumentMetadata",
    "Document",
    "Chunk",
    "IndexedVector",
    "SearchResult",
    "RAGResponse",
    "IngestionReport",
]
