"""tutor_rag.common.tokenisation

Token estimation utilities.

Chunk sizing and context budgeting both work in *estimated tokens*. This
module keeps that estimate behind a minimal interface so a real tokenizer can
replace the character heuristic without touching any budget logic.

Classes
-------
TokenEstimator
    Minimal protocol defining the token-estimation interface.
HeuristicTokenCounter
    Dependency-free character-ratio estimator (the default).
TiktokenTokenCounter
    Exact token counter backed by the ``tiktoken`` library.
HuggingFaceTokenCounter
    Token counter backed by a Hugging Face tokenizer instance.

Functions
---------
create_token_counter
    Build an estimator from a ``tokenization`` configuration mapping.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping, Protocol


class TokenEstimator(Protocol):
    """A minimal interface for token-based sizing."""

    def count(self, text: str) -> int:
        """Return the (estimated) number of tokens in ``text``."""


@dataclass(frozen=True)
class HeuristicTokenCounter:
    """Dependency-free, approximate token counter.

    Estimates ``ceil(len(text) / chars_per_token)``. Rounding up keeps the
    estimate of a concatenation no larger than the sum of its parts'
    estimates, which budget enforcement relies on.

    Attributes
    ----------
    chars_per_token : int
        Approximate number of characters per token. Defaults to ``4``.
    """

    chars_per_token: int = 4

    def count(self, text: str) -> int:
        if not text:
            return 0
        cpt = max(1, int(self.chars_per_token))
        return math.ceil(len(text) / cpt)


@dataclass(frozen=True)
class TiktokenTokenCounter:
    """Token counter backed by the ``tiktoken`` library.

    Attributes
    ----------
    encoding_name : str
        Name of the ``tiktoken`` encoding.
    _enc : Any
        Internal ``tiktoken`` encoding object.
    """

    encoding_name: str
    _enc: Any

    @classmethod
    def from_encoding_name(cls, encoding_name: str) -> "TiktokenTokenCounter":
        import tiktoken  # type: ignore

        return cls(encoding_name=encoding_name, _enc=tiktoken.get_encoding(encoding_name))

    def count(self, text: str) -> int:
        if not text:
            return 0
        return len(self._enc.encode(text))


@dataclass(frozen=True)
class HuggingFaceTokenCounter:
    """Token counter backed by a Hugging Face tokenizer.

    The ``transformers`` library is not imported at module import time; the
    tokenizer instance is constructed by the caller (see
    :func:`create_token_counter`).
    """

    tokenizer: Any

    def count(self, text: str) -> int:
        if not text:
            return 0
        return len(self.tokenizer.encode(text))


def create_token_counter(config: Mapping[str, Any] | None) -> TokenEstimator:
    """Create a token estimator from configuration.

    Parameters
    ----------
    config : Mapping[str, Any] or None
        The ``tokenization`` section. Recognised ``type`` values are
        ``heuristic`` (default), ``tiktoken`` and ``huggingface``.

    Returns
    -------
    TokenEstimator
        The configured estimator.

    Raises
    ------
    ValueError
        If the type is unknown or required keys are missing.
    """
    cfg = dict(config or {})
    kind = str(cfg.get("type") or "heuristic").lower().replace("-", "_")

    if kind in {"heuristic", "char", "chars"}:
        try:
            cpt = int(cfg.get("chars_per_token", 4))
        except (TypeError, ValueError):
            cpt = 4
        return HeuristicTokenCounter(chars_per_token=cpt)

    if kind in {"tiktoken", "openai"}:
        return TiktokenTokenCounter.from_encoding_name(str(cfg.get("encoding") or "cl100k_base"))

    if kind in {"huggingface", "hf", "transformers"}:
        model_name = cfg.get("model_name")
        if not model_name:
            raise ValueError("tokenization.model_name is required for huggingface tokenization")

        from transformers import AutoTokenizer  # type: ignore

        return HuggingFaceTokenCounter(tokenizer=AutoTokenizer.from_pretrained(str(model_name)))

    raise ValueError(f"Unknown tokenization type: {kind!r}")


__all__ = [
    "TokenEstimator",
    "HeuristicTokenCounter",
    "TiktokenTokenCounter",
    "HuggingFaceTokenCounter",
    "create_token_counter",
]
