"""tutor_rag.generation.model_tiers

Named generative model tiers.

A tier is a capability handle such as ``"fast"`` (cheap, low latency, used for
reranking) or ``"balanced"`` (used for answers). Tiers are declared in
configuration, so adding one needs no code change.

Classes
-------
ModelTierRegistry
    Mapping from tier name to :class:`~tutor_rag.generation.llm_interface.BaseLLM`.
"""

from __future__ import annotations

import logging
from typing import Any, Iterator, Mapping, Optional

from langchain_core.callbacks import BaseCallbackHandler

from tutor_rag.generation.llm_interface import BaseLLM, create_llm

logger = logging.getLogger(__name__)

FAST = "fast"
BALANCED = "balanced"
QUALITY = "quality"


class ModelTierRegistry:
    """Registry of generative model tiers.

    Parameters
    ----------
    tiers : Mapping[str, BaseLLM] or None, optional
        Initial tier handles.
    """

    def __init__(self, tiers: Mapping[str, BaseLLM] | None = None):
        self._tiers: dict[str, BaseLLM] = dict(tiers or {})

    @classmethod
    def from_config(
            cls,
            config: Mapping[str, Mapping[str, Any]],
            callback_manager: Optional[BaseCallbackHandler] = None,
        ) -> "ModelTierRegistry":
        """Build every tier in the ``model_tiers`` configuration section.

        Raises
        ------
        TypeError
            If ``config`` or one of its entries is not a mapping.
        ValueError
            If ``config`` is empty or a tier's LLM config is invalid.
        """
        if not isinstance(config, Mapping):
            raise TypeError(f"'model_tiers' must be a mapping, got {type(config)!r}")
        if not config:
            raise ValueError("'model_tiers' must declare at least one tier.")

        registry = cls()
        for name, llm_cfg in config.items():
            registry.register(str(name), create_llm(llm_cfg, callback_manager=callback_manager))
            logger.debug("Registered model tier %r", name)
        return registry

    def register(self, name: str, llm: BaseLLM) -> None:
        self._tiers[name] = llm

    def get(self, name: str) -> BaseLLM:
        """Return the model registered for tier ``name``.

        Raises
        ------
        KeyError
            If no such tier is configured.
        """
        try:
            return self._tiers[name]
        except KeyError:
            raise KeyError(
                f"No model tier named {name!r}. Available tiers: {sorted(self._tiers)}"
            ) from None

    def names(self) -> list[str]:
        return sorted(self._tiers)

    def __contains__(self, name: object) -> bool:
        return name in self._tiers

    def __iter__(self) -> Iterator[str]:
        return iter(self._tiers)

    def __len__(self) -> int:
        return len(self._tiers)


__all__ = ["FAST", "BALANCED", "QUALITY", "ModelTierRegistry"]
