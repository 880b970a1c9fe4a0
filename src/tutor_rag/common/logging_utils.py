"""tutor_rag.common.logging_utils

Logging configuration for entrypoints (API startup, ingestion scripts).

Library modules only ever call ``logging.getLogger(__name__)``; handlers are
installed here, once, by whichever process hosts the package.
"""

from __future__ import annotations

import logging
import sys

NOISY_LOGGERS = ("httpx", "httpcore", "urllib3", "openai", "qdrant_client")


def configure_logging(level: int | str = logging.INFO) -> None:
    """Install a single stdout handler on the root logger.

    Parameters
    ----------
    level : int or str, optional
        Level for the root logger. Defaults to ``logging.INFO``.
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )
    )

    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


__all__ = ["configure_logging"]
