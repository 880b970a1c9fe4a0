"""tutor_rag.generation.llm_interface

Unified interface and factory for generative model backends.

Every backend exposes the same narrow contract used by the pipeline:
``generate(prompt, max_tokens=..., temperature=...) -> str`` and its async
twin ``agenerate``. Concrete implementations wrap LangChain LLM clients.

Classes
-------
BaseLLM
    Abstract interface used by the reranker and the orchestrator.
OpenAILikeLLM
    Text completion using an OpenAI-compatible HTTP API via LangChain.
OpenAIChatLikeLLM
    Chat completions using an OpenAI-compatible HTTP API via LangChain.
HuggingFaceTGI
    Text generation using Hugging Face Text Generation Inference (TGI) via LangChain.

Functions
---------
create_llm
    Construct an LLM implementation from a configuration mapping.
"""

from __future__ import annotations

import asyncio
import warnings
from abc import ABC, abstractmethod
from functools import partial
from typing import Any, Mapping, Optional

from langchain_community.llms import HuggingFaceTextGenInference
from langchain_core.callbacks import BaseCallbackHandler
from langchain_openai import ChatOpenAI, OpenAI

DEFAULT_STOP = ["User:"]


def _is_gemini_openai_compat(api_base: str | None) -> bool:
    """Return ``True`` when the API base points to Gemini's OpenAI-compatible endpoint."""
    if not api_base:
        return False
    base = api_base.lower()
    return "generativelanguage.googleapis.com" in base and "/openai" in base


def _sanitize_openai_kwargs(
    api_base: str | None,
    kwargs: dict[str, Any],
    *,
    context: str,
) -> dict[str, Any]:
    """Drop provider-incompatible OpenAI kwargs for known OpenAI-compatible backends."""
    sanitized = dict(kwargs)

    if _is_gemini_openai_compat(api_base):
        removed = sorted(k for k in ("frequency_penalty", "presence_penalty") if k in sanitized)
        for key in removed:
            sanitized.pop(key, None)
        if removed:
            warnings.warn(
                "Dropping unsupported Gemini OpenAI-compatible params "
                f"during {context}: {', '.join(removed)}",
                UserWarning,
            )

    return sanitized


def _coerce_top_p(top_p: Any) -> float | None:
    if top_p is None:
        return None
    try:
        value = float(top_p)
    except (TypeError, ValueError):
        return None
    return value if 0.0 < value < 1.0 else None


class BaseLLM(ABC):
    """Abstract interface for generative model backends.

    Subclasses implement :meth:`generate`; :meth:`agenerate` defaults to
    running it in the default executor and is overridden where the wrapped
    client has a native async path.
    """

    default_stop_list: list[str] | None = None

    @classmethod
    @abstractmethod
    def from_config_dict(
            cls,
            config: Mapping[str, Any],
            callback_manager: BaseCallbackHandler | None = None,
        ) -> "BaseLLM":
        """Create an instance from a configuration mapping."""

    @abstractmethod
    def get_llm(self) -> Any:
        """Return the underlying LangChain model object."""

    @abstractmethod
    def generate(
            self,
            prompt: str,
            *,
            max_tokens: Optional[int] = None,
            temperature: Optional[float] = None,
            **kwargs: Any,
        ) -> str:
        """Generate text for a single prompt.

        Parameters
        ----------
        prompt : str
            Prompt text.
        max_tokens : int or None, optional
            Upper bound on generated tokens. Backend default when ``None``.
        temperature : float or None, optional
            Sampling temperature. Backend default when ``None``.
        **kwargs : Any
            Backend-specific generation parameters (e.g. ``stop``).

        Returns
        -------
        str
            Generated text.
        """

    async def agenerate(
            self,
            prompt: str,
            *,
            max_tokens: Optional[int] = None,
            temperature: Optional[float] = None,
            **kwargs: Any,
        ) -> str:
        """Asynchronously generate text for a single prompt."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            partial(self.generate, prompt, max_tokens=max_tokens, temperature=temperature, **kwargs),
        )

    def get_stop_list(self) -> list[str] | None:
        """Return the configured default stop sequences."""
        return self.default_stop_list

    def _resolve_stop(self, run_kwargs: dict[str, Any]) -> list[str]:
        explicit_stop = run_kwargs.pop("stop", None)
        alt_stop_list = run_kwargs.pop("stop_list", None)
        return explicit_stop or alt_stop_list or self.default_stop_list or DEFAULT_STOP


def _sampling_kwargs(
        max_tokens: Optional[int],
        temperature: Optional[float],
        *,
        max_tokens_key: str = "max_tokens",
    ) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if max_tokens is not None:
        out[max_tokens_key] = int(max_tokens)
    if temperature is not None:
        out["temperature"] = float(temperature)
    return out


class OpenAILikeLLM(BaseLLM):
    """LLM interface using an OpenAI-compatible completions API.

    Parameters
    ----------
    model_name : str
        Model identifier.
    api_base : str
        Base URL for the OpenAI-compatible API endpoint.
    api_key : str, optional
        API key value. Defaults to ``"fake"`` for local deployments that do
        not require authentication.
    callback_manager : BaseCallbackHandler, optional
        Optional callback handler for logging/telemetry.
    **model_kwargs : Any
        Additional keyword arguments forwarded to :class:`langchain_openai.OpenAI`.
        ``stop_list`` sets the default stop sequences.
    """

    def __init__(
        self,
        model_name: str,
        api_base: str,
        api_key: str = "fake",
        callback_manager: BaseCallbackHandler = None,
        **model_kwargs: Any,
    ):
        self.api_base = api_base
        model_kwargs = _sanitize_openai_kwargs(api_base, model_kwargs, context="model init")
        self.default_stop_list = model_kwargs.pop("stop_list", None)
        top_p = _coerce_top_p(model_kwargs.pop("top_p", None))

        self.llm = OpenAI(
            model_name=model_name,
            openai_api_base=api_base,
            openai_api_key=api_key or "fake",
            top_p=top_p or 1,
            callbacks=[callback_manager] if callback_manager else None,
            **model_kwargs,
        )

    @classmethod
    def from_config_dict(
            cls,
            config: Mapping[str, Any],
            callback_manager: BaseCallbackHandler | None = None,
        ) -> "OpenAILikeLLM":
        """Create an :class:`OpenAILikeLLM` from a mapping with ``model_name`` and ``api_base``."""
        return cls(
            model_name=config.get("model_name"),
            api_base=config.get("api_base"),
            api_key=config.get("api_key"),
            callback_manager=callback_manager,
            **dict(config.get("model_kwargs") or {}),
        )

    def get_llm(self) -> OpenAI:
        return self.llm

    def generate(self, prompt, *, max_tokens=None, temperature=None, **kwargs) -> str:
        run_kwargs = _sanitize_openai_kwargs(self.api_base, kwargs, context="generation")
        stop = self._resolve_stop(run_kwargs)
        run_kwargs.update(_sampling_kwargs(max_tokens, temperature))
        response = self.llm.generate([str(prompt)], stop=stop, **run_kwargs)
        return response.generations[0][0].text

    async def agenerate(self, prompt, *, max_tokens=None, temperature=None, **kwargs) -> str:
        run_kwargs = _sanitize_openai_kwargs(self.api_base, kwargs, context="generation")
        stop = self._resolve_stop(run_kwargs)
        run_kwargs.update(_sampling_kwargs(max_tokens, temperature))
        response = await self.llm.agenerate([str(prompt)], stop=stop, **run_kwargs)
        return response.generations[0][0].text


class OpenAIChatLikeLLM(BaseLLM):
    """LLM interface using an OpenAI-compatible Chat Completions API.

    Parameters are as for :class:`OpenAILikeLLM`; the wrapped client is
    :class:`langchain_openai.ChatOpenAI` and the prompt is sent as a single
    user message.
    """

    def __init__(
        self,
        model_name: str,
        api_base: str,
        api_key: str = "fake",
        callback_manager: BaseCallbackHandler = None,
        **model_kwargs: Any,
    ):
        self.api_base = api_base
        model_kwargs = _sanitize_openai_kwargs(api_base, model_kwargs, context="model init")
        self.default_stop_list = model_kwargs.pop("stop_list", None)
        top_p = _coerce_top_p(model_kwargs.pop("top_p", None))

        init_kwargs: dict[str, Any] = dict(model_kwargs)
        if top_p is not None:
            init_kwargs["top_p"] = top_p
        if callback_manager is not None:
            init_kwargs["callbacks"] = [callback_manager]

        self.llm = ChatOpenAI(
            model=model_name,
            base_url=api_base,
            api_key=api_key or "fake",
            **init_kwargs,
        )

    @classmethod
    def from_config_dict(
            cls,
            config: Mapping[str, Any],
            callback_manager: BaseCallbackHandler | None = None,
        ) -> "OpenAIChatLikeLLM":
        """Create an OpenAI-compatible chat LLM from a mapping."""
        return cls(
            model_name=config.get("model_name"),
            api_base=config.get("api_base"),
            api_key=config.get("api_key"),
            callback_manager=callback_manager,
            **dict(config.get("model_kwargs") or {}),
        )

    def get_llm(self) -> ChatOpenAI:
        return self.llm

    def generate(self, prompt, *, max_tokens=None, temperature=None, **kwargs) -> str:
        run_kwargs = _sanitize_openai_kwargs(self.api_base, kwargs, context="generation")
        stop = self._resolve_stop(run_kwargs)
        run_kwargs.update(_sampling_kwargs(max_tokens, temperature))
        response = self.llm.invoke(str(prompt), stop=stop, **run_kwargs)
        return response.content if hasattr(response, "content") else str(response)

    async def agenerate(self, prompt, *, max_tokens=None, temperature=None, **kwargs) -> str:
        run_kwargs = _sanitize_openai_kwargs(self.api_base, kwargs, context="generation")
        stop = self._resolve_stop(run_kwargs)
        run_kwargs.update(_sampling_kwargs(max_tokens, temperature))
        response = await self.llm.ainvoke(str(prompt), stop=stop, **run_kwargs)
        return response.content if hasattr(response, "content") else str(response)


class HuggingFaceTGI(BaseLLM):
    """LLM interface using Hugging Face Text Generation Inference (TGI).

    Parameters
    ----------
    inference_server_url : str
        Base URL of the TGI server, for example ``"http://localhost:8080"``.
    callback_manager : BaseCallbackHandler, optional
        Callback handler passed to the underlying LangChain LLM.
    stop_sequences : list of str or None, optional
        Default stop sequences.
    temperature : float or None, optional
        Default sampling temperature.
    repetition_penalty : float or None, optional
        Penalty applied to previously generated tokens.
    max_new_tokens : int or None, optional
        Default maximum number of generated tokens.
    **model_kwargs
        Additional generation parameters forwarded to the TGI backend.
    """

    def __init__(
        self,
        inference_server_url: str,
        callback_manager: BaseCallbackHandler = None,
        stop_sequences: list[str] | None = None,
        temperature: float | None = None,
        repetition_penalty: float | None = None,
        max_new_tokens: int | None = None,
        **model_kwargs: Any,
    ):
        tgi_kwargs: dict[str, Any] = dict(model_kwargs)
        if temperature is not None:
            tgi_kwargs["temperature"] = temperature
        if repetition_penalty is not None:
            tgi_kwargs["repetition_penalty"] = repetition_penalty
        if max_new_tokens is not None:
            tgi_kwargs["max_new_tokens"] = max_new_tokens

        self.llm = HuggingFaceTextGenInference(
            inference_server_url=inference_server_url,
            callbacks=[callback_manager] if callback_manager else None,
            stop_sequences=stop_sequences or [],
            **tgi_kwargs,
        )
        self.default_stop_list = stop_sequences

    @classmethod
    def from_config_dict(
            cls,
            config: Mapping[str, Any],
            callback_manager: BaseCallbackHandler | None = None,
        ) -> "HuggingFaceTGI":
        """Create a ``HuggingFaceTGI`` instance from a configuration mapping.

        Raises
        ------
        ValueError
            If ``inference_server_url`` is missing or empty.
        """
        inference_server_url = config.get("inference_server_url")
        if not inference_server_url:
            raise ValueError("HuggingFaceTGI requires 'inference_server_url'.")
        return cls(
            inference_server_url=inference_server_url,
            callback_manager=callback_manager,
            stop_sequences=config.get("stop_sequences"),
            temperature=config.get("temperature"),
            repetition_penalty=config.get("repetition_penalty"),
            max_new_tokens=config.get("max_new_tokens"),
            **dict(config.get("model_kwargs") or {}),
        )

    def get_llm(self) -> HuggingFaceTextGenInference:
        return self.llm

    def generate(self, prompt, *, max_tokens=None, temperature=None, **kwargs) -> str:
        run_kwargs = dict(kwargs)
        stop = self._resolve_stop(run_kwargs)
        run_kwargs.update(_sampling_kwargs(max_tokens, temperature, max_tokens_key="max_new_tokens"))
        return self.llm.invoke(str(prompt), stop=stop, **run_kwargs)

    async def agenerate(self, prompt, *, max_tokens=None, temperature=None, **kwargs) -> str:
        run_kwargs = dict(kwargs)
        stop = self._resolve_stop(run_kwargs)
        run_kwargs.update(_sampling_kwargs(max_tokens, temperature, max_tokens_key="max_new_tokens"))
        return await self.llm.ainvoke(str(prompt), stop=stop, **run_kwargs)


# ----------------- Factory helpers -----------------

def _get_llm_kind(cfg: Mapping[str, Any]) -> str:
    """Return the first non-empty kind/type/provider discriminator in ``cfg``."""
    for key in ("kind", "type", "provider", "backend", "impl"):
        val = cfg.get(key)
        if isinstance(val, str) and val.strip():
            return val.strip()
    return ""


def _normalize_llm_kind(kind: str) -> str:
    """Normalise an LLM kind/type string to a stable registry key.

    CamelCase becomes snake_case, hyphens and spaces become underscores,
    repeated underscores collapse, and known provider spellings are aliased
    (e.g. ``"OpenAILike"`` -> ``"openai_like"``, ``"ChatOpenAI"`` -> ``"openai_chat"``).
    """
    k = kind.strip()
    if not k:
        return ""

    out: list[str] = []
    prev = ""
    for ch in k:
        if prev and prev.islower() and ch.isupper():
            out.append("_")
        out.append(ch)
        prev = ch

    k2 = "".join(out).replace("-", "_").replace(" ", "_")
    while "__" in k2:
        k2 = k2.replace("__", "_")
    k2 = k2.lower()

    for alias in ("openailike", "open_ailike", "open_ai_like"):
        k2 = k2.replace(alias, "openai_like")
    for alias in (
        "chatopenai",
        "chat_openai",
        "chat_open_ai",
        "openai_like_chat",
        "openai_chatlike",
        "open_ai_chatlike",
        "openai_chat_like",
        "open_aichat_like",
        "open_ai_chat_like",
    ):
        k2 = k2.replace(alias, "openai_chat")
    k2 = k2.replace("huggingfacetgi", "huggingface_tgi").replace("hugging_face_tgi", "huggingface_tgi")

    return k2


def create_llm(config: Mapping[str, Any], callback_manager: Optional[BaseCallbackHandler] = None) -> BaseLLM:
    """Create an LLM implementation from a configuration mapping.

    The concrete implementation is selected by a discriminator field (one of
    ``kind``, ``type``, ``provider``, ``backend`` or ``impl``).

    Parameters
    ----------
    config : Mapping[str, Any]
        Configuration mapping used to construct the LLM.
    callback_manager : BaseCallbackHandler, optional
        Optional callback handler for logging/telemetry.

    Returns
    -------
    BaseLLM
        An initialised LLM implementation.

    Raises
    ------
    TypeError
        If ``config`` is not a mapping.
    ValueError
        If the discriminator field is missing or selects an unsupported
        implementation.
    """
    if not isinstance(config, Mapping):
        raise TypeError(f"create_llm expected a mapping/dict, got {type(config)}")

    kind_raw = _get_llm_kind(config)
    kind = _normalize_llm_kind(kind_raw)

    if not kind:
        raise ValueError(
            "LLM config is missing a discriminator field (type/kind/provider/etc.). "
            "Add e.g. type: OpenAILike or type: HuggingFaceTGI."
        )

    registry: dict[str, type[BaseLLM]] = {
        "openai_like": OpenAILikeLLM,
        "openai": OpenAILikeLLM,
        "openai_chat": OpenAIChatLikeLLM,
        "huggingface_tgi": HuggingFaceTGI,
        "tgi": HuggingFaceTGI,
    }

    cls = registry.get(kind)
    if cls is None:
        raise ValueError(
            f"Unknown LLM kind '{kind_raw}' (normalized to '{kind}'). Supported kinds: {sorted(registry.keys())}."
        )

    return cls.from_config_dict(dict(config), callback_manager=callback_manager)


__all__ = [
    "BaseLLM",
    "OpenAILikeLLM",
    "OpenAIChatLikeLLM",
    "HuggingFaceTGI",
    "create_llm",
]
