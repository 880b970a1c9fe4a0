"""tutor_rag.config.global_config

Global configuration loader and accessors.

This module defines a lightweight wrapper around a raw YAML configuration
dictionary, providing validated, cached access to the configuration sections
used across the RAG pipeline. Optional sections are merged over built-in
defaults, so a minimal file only needs ``model_tiers`` and ``embedder``.

Environment variables of the form ``${VAR}`` are expanded recursively in all
string values at load time.

Classes
-------
GlobalConfig
    Loader and accessor for global project configuration.
"""

from __future__ import annotations

import os
from functools import cached_property
from pathlib import Path
from typing import Any, Mapping

import yaml

from tutor_rag.generation.prompt_builder import DEFAULT_PROMPT_SOURCE

DEFAULTS: dict[str, dict[str, Any]] = {
    "embedding_cache": {"max_size": 1000, "policy": "lru"},
    "vector_index": {"kind": "qdrant", "host": "localhost", "port": 6333, "collection_name": "curriculum"},
    "tokenization": {"type": "heuristic", "chars_per_token": 4},
    "chunking": {"target_size": 512, "overlap": 128},
    "ingestion": {"batch_size": 10, "retry_attempts": 2},
    "retrieval": {"top_k": 5, "retry_attempts": 2},
    "reranker": {
        "enabled": True,
        "tier": "fast",
        "max_concurrency": None,
        "max_tokens": 10,
        "temperature": 0.1,
        "score_range": [0, 10],
    },
    "context": {"max_tokens": 2048},
    "generation": {"tier": "balanced", "prompt_name": "rag_answer", "max_tokens": 512, "temperature": 0.7},
    "orchestrator": {"query_timeout": 60},
}


def _expand_env(obj):
    """Recursively expand ``${VAR}`` environment references in string values.

    Dictionaries and lists are walked; other non-string values are returned
    unchanged.
    """
    if isinstance(obj, dict):
        return {k: _expand_env(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_expand_env(v) for v in obj]
    if isinstance(obj, str):
        return os.path.expandvars(obj)
    return obj


class GlobalConfig:
    """Loader and accessor for global project configuration.

    Parameters
    ----------
    raw : dict
        Raw configuration data as loaded from a YAML file.
    config_path : Path or None, optional
        Absolute path of the loaded file, used to resolve relative paths.
    """

    def __init__(
            self,
            raw: dict,
            config_path: Path | None = None,
        ):
        if not isinstance(raw, dict):
            raise TypeError(f"Configuration root must be a mapping, got {type(raw)!r}")
        self.raw = raw
        self.config_path = config_path

    @classmethod
    def load(
            cls,
            path: str | Path,
        ) -> "GlobalConfig":
        """Load configuration from a YAML file.

        Parameters
        ----------
        path : str or Path
            Path to the YAML configuration file.

        Returns
        -------
        GlobalConfig
            An instance initialised with the loaded and environment-expanded data.
        """
        cfg_path = Path(path).expanduser().resolve()
        with cfg_path.open("r") as f:
            data = yaml.safe_load(f) or {}
        data = _expand_env(data)
        return cls(data, config_path=cfg_path)

    @property
    def base_dir(self) -> Path | None:
        """Directory of the loaded config file, if known."""
        return self.config_path.parent if self.config_path else None

    def _section(self, name: str) -> dict:
        value = self.raw.get(name)
        if value is None:
            value = {}
        if not isinstance(value, Mapping):
            raise TypeError(f"'{name}' must be a mapping, got {type(value)!r}.")
        return {**DEFAULTS.get(name, {}), **value}

    @cached_property
    def model_tiers(self) -> dict[str, dict]:
        """Return the model tier configuration.

        Returns
        -------
        dict[str, dict]
            Mapping of tier name to LLM config.

        Raises
        ------
        KeyError
            If ``model_tiers`` is missing.
        TypeError
            If it is not a mapping of non-empty names to mappings.
        ValueError
            If it is empty.
        """
        tiers = self.raw.get("model_tiers")
        if tiers is None:
            raise KeyError("Missing 'model_tiers' in configuration.")
        if not isinstance(tiers, dict):
            raise TypeError("'model_tiers' must be a mapping of tier_name -> llm config.")
        if not tiers:
            raise ValueError("'model_tiers' must define at least one tier.")

        for tier_name, tier_cfg in tiers.items():
            if not isinstance(tier_name, str) or not tier_name.strip():
                raise TypeError("Each 'model_tiers' key must be a non-empty string.")
            if not isinstance(tier_cfg, dict):
                raise TypeError(f"'model_tiers.{tier_name}' must be a mapping, got {type(tier_cfg)}.")
        return tiers

    @cached_property
    def embedder(self) -> dict:
        """Return the ``embedder`` section.

        Raises
        ------
        KeyError
            If the section is missing.
        """
        if "embedder" not in self.raw:
            raise KeyError("Missing 'embedder' in configuration.")
        return self._section("embedder")

    @cached_property
    def embedding_cache(self) -> dict:
        return self._section("embedding_cache")

    @cached_property
    def vector_index(self) -> dict:
        return self._section("vector_index")

    @cached_property
    def tokenization(self) -> dict:
        return self._section("tokenization")

    @cached_property
    def chunking(self) -> dict:
        """Return the ``chunking`` section (``target_size``, ``overlap``).

        Raises
        ------
        ValueError
            If ``target_size`` is not positive or ``overlap`` is negative.
        """
        section = self._section("chunking")
        if int(section["target_size"]) <= 0:
            raise ValueError("'chunking.target_size' must be a positive integer.")
        if int(section["overlap"]) < 0:
            raise ValueError("'chunking.overlap' must not be negative.")
        return section

    @cached_property
    def ingestion(self) -> dict:
        section = self._section("ingestion")
        if int(section["batch_size"]) <= 0:
            raise ValueError("'ingestion.batch_size' must be a positive integer.")
        return section

    @cached_property
    def retrieval(self) -> dict:
        section = self._section("retrieval")
        if int(section["top_k"]) <= 0:
            raise ValueError("'retrieval.top_k' must be a positive integer.")
        return section

    @cached_property
    def reranker(self) -> dict:
        """Return the ``reranker`` section.

        Raises
        ------
        ValueError
            If ``score_range`` is not a ``[low, high]`` pair with ``low <= high``.
        """
        section = self._section("reranker")
        score_range = section.get("score_range")
        if (
            not isinstance(score_range, (list, tuple))
            or len(score_range) != 2
            or float(score_range[0]) > float(score_range[1])
        ):
            raise ValueError("'reranker.score_range' must be a [low, high] pair with low <= high.")
        return section

    @cached_property
    def context(self) -> dict:
        return self._section("context")

    @cached_property
    def generation(self) -> dict:
        return self._section("generation")

    @cached_property
    def orchestrator(self) -> dict:
        return self._section("orchestrator")

    @cached_property
    def prompts(self) -> list[str]:
        """Return prompt template sources.

        Returns
        -------
        list[str]
            Configured sources (a single string is wrapped in a list), or the
            packaged default templates when none are configured.
        """
        value = self.raw.get("prompts")
        if value is None:
            return [DEFAULT_PROMPT_SOURCE]
        if isinstance(value, str):
            return [value]
        if isinstance(value, list) and all(isinstance(v, str) for v in value):
            return list(value)
        raise TypeError("'prompts' must be a string or a list of strings.")


__all__ = ["GlobalConfig"]
