"""tutor_rag.retrieval.document_loader

Curriculum pack loading.

A curriculum pack is a JSON or YAML file holding either a list of document
records or a mapping with a ``documents`` list. Each record needs ``id``,
``content``, ``subject`` and ``title``; ``source``, ``difficulty`` and
``tags`` are optional. Metadata may sit at the top level of the record or
under a ``metadata`` key.

Functions
---------
parse_curriculum_records
    Convert raw records into :class:`~tutor_rag.common.schemas.Document` objects.
load_curriculum_file
    Load the documents in one pack file.
load_curriculum_documents
    Load a pack file, or every pack file in a directory.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable, Mapping

import yaml

from tutor_rag.common.schemas import Document

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = (".json", ".yaml", ".yml")


def parse_curriculum_records(records: Iterable[Mapping[str, Any]], *, origin: str = "<records>") -> list[Document]:
    """Validate raw records and return documents.

    Raises
    ------
    ValueError
        If a record is not a mapping, lacks a required field, names an unknown
        subject, or repeats an earlier document id.
    """
    documents: list[Document] = []
    seen: set[str] = set()
    for i, record in enumerate(records):
        if not isinstance(record, Mapping):
            raise ValueError(f"{origin}: record #{i} must be a mapping, got {type(record).__name__}")
        try:
            doc = Document.from_dict(record)
        except KeyError as exc:
            raise ValueError(f"{origin}: record #{i} is missing required field {exc.args[0]!r}") from exc
        except ValueError as exc:
            raise ValueError(f"{origin}: record #{i}: {exc}") from exc
        if doc.id in seen:
            raise ValueError(f"{origin}: duplicate document id {doc.id!r}")
        seen.add(doc.id)
        documents.append(doc)
    return documents


def load_curriculum_file(path: str | Path) -> list[Document]:
    """Load the documents in a single JSON or YAML pack.

    Raises
    ------
    FileNotFoundError
        If ``path`` does not exist.
    ValueError
        If the file type is unsupported or the content is malformed.
    """
    p = Path(path)
    if not p.is_file():
        raise FileNotFoundError(f"Curriculum file not found: {p}")

    suffix = p.suffix.lower()
    with p.open("r", encoding="utf-8") as f:
        if suffix == ".json":
            data = json.load(f)
        elif suffix in (".yaml", ".yml"):
            data = yaml.safe_load(f)
        else:
            raise ValueError(f"Unsupported curriculum file type: {p.suffix}")

    if isinstance(data, Mapping):
        data = data.get("documents")
    if not isinstance(data, list):
        raise ValueError(f"{p}: expected a list of documents or a mapping with a 'documents' list")

    documents = parse_curriculum_records(data, origin=str(p))
    logger.info("Loaded %d document(s) from %s", len(documents), p)
    return documents


def load_curriculum_documents(path: str | Path) -> list[Document]:
    """Load curriculum documents from a pack file or a directory of packs.

    Directories are scanned (non-recursively) for supported files in name
    order. Document ids must be unique across all files.

    Parameters
    ----------
    path : str or Path
        Pack file or directory.

    Returns
    -------
    list[Document]
        Documents in file order.
    """
    p = Path(path).expanduser()
    if not p.is_dir():
        return load_curriculum_file(p)

    documents: list[Document] = []
    seen: set[str] = set()
    for file in sorted(p.iterdir()):
        if not file.is_file() or file.suffix.lower() not in SUPPORTED_SUFFIXES:
            continue
        for doc in load_curriculum_file(file):
            if doc.id in seen:
                raise ValueError(f"{file}: duplicate document id {doc.id!r}")
            seen.add(doc.id)
            documents.append(doc)
    return documents


__all__ = [
    "parse_curriculum_records",
    "load_curriculum_file",
    "load_curriculum_documents",
]
