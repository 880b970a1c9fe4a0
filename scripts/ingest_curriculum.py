"""Curriculum ingestion entrypoint.

This script loads a curriculum pack (a JSON/YAML file or a directory of them),
chunks and embeds every document, and writes the vectors to the configured
index.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = REPO_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from tutor_rag.app.container import build_container
from tutor_rag.common.concurrency import run_sync
from tutor_rag.common.logging_utils import configure_logging
from tutor_rag.config import GlobalConfig
from tutor_rag.retrieval.document_loader import load_curriculum_documents


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Ingest curriculum documents into the vector index")

    parser.add_argument(
        "--config-file",
        "-c",
        required=True,
        type=str,
        help="Path to the YAML configuration file.",
    )

    parser.add_argument(
        "--source",
        "-s",
        required=True,
        type=str,
        help="Curriculum pack file (.json/.yaml) or a directory of pack files.",
    )

    parser.add_argument(
        "--collection-name",
        required=False,
        type=str,
        default=None,
        help="Override the vector index collection name from config (optional).",
    )

    parser.add_argument(
        "--batch-size",
        "-b",
        required=False,
        type=int,
        default=None,
        help="Documents per ingestion batch (default: from config, 10).",
    )

    parser.add_argument(
        "--log-level",
        required=False,
        type=str,
        default="INFO",
        help="Logging level (default: INFO).",
    )

    return parser.parse_args()


def _apply_overrides(cfg: GlobalConfig, args: argparse.Namespace) -> None:
    if args.collection_name:
        section = cfg.raw.setdefault("vector_index", {})
        if not isinstance(section, dict):
            raise TypeError("'vector_index' config must be a mapping to override collection_name.")
        section["collection_name"] = args.collection_name

    if args.batch_size is not None:
        if args.batch_size < 1:
            raise ValueError("--batch-size must be >= 1 when provided.")
        section = cfg.raw.setdefault("ingestion", {})
        if not isinstance(section, dict):
            raise TypeError("'ingestion' config must be a mapping to override batch_size.")
        section["batch_size"] = int(args.batch_size)


async def _ingest(container, documents):
    try:
        return await container.ingestor.aingest(documents)
    finally:
        await container.vector_index.close()


def main() -> None:
    args = parse_args()
    configure_logging(getattr(logging, args.log_level.upper(), logging.INFO))

    cfg = GlobalConfig.load(args.config_file)
    _apply_overrides(cfg, args)
    container = build_container(cfg)

    documents = load_curriculum_documents(args.source)
    print(f"Loaded {len(documents)} document(s) from {args.source}")

    report = run_sync(_ingest(container, documents), name="ingest")

    print(
        f"Ingested {report.documents_ingested}/{report.documents_total} documents "
        f"({report.chunks_indexed} chunks)."
    )
    if report.failed_document_ids:
        print(f"Skipped: {', '.join(report.failed_document_ids)}")


if __name__ == "__main__":
    main()
