"""tutor_rag.app.container

Composition root for the tutoring RAG system.

This module is the single place where concrete implementations are wired
together from configuration (model tiers, embedder, vector index, ingestor,
retriever, reranker and the query orchestrator). Components are constructed
lazily and cached on first access to avoid repeated expensive initialisation.

Notes
-----
- Keep this module importable with minimal side effects:
  - do not perform network calls at import time
  - do not read files at import time
  - construct expensive objects lazily (cached on first access)

Examples
--------
>>> from tutor_rag.config import GlobalConfig
>>> from tutor_rag.app.container import build_container
>>> cfg = GlobalConfig.load("config.yaml")
>>> c = build_container(cfg)
>>> answer = c.orchestrator.query("What is photosynthesis?", subject="science")
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property
from typing import Any

from tutor_rag.common.tokenisation import TokenEstimator, create_token_counter
from tutor_rag.config import GlobalConfig
from tutor_rag.generation.context_builder import ContextBuilder
from tutor_rag.generation.llm_interface import BaseLLM
from tutor_rag.generation.model_tiers import ModelTierRegistry
from tutor_rag.generation.prompt_builder import PromptBuilder
from tutor_rag.pipelines.rag_pipeline import RAGOrchestrator
from tutor_rag.retrieval.embedder import Embedder, create_embedder
from tutor_rag.retrieval.ingestor import Ingestor
from tutor_rag.retrieval.reranker import LLMReranker
from tutor_rag.retrieval.retriever import Retriever
from tutor_rag.retrieval.text_splitter import SentenceWindowChunker
from tutor_rag.retrieval.vector_store import BaseVectorIndex, create_vector_index


@dataclass(frozen=True)
class TutorContainer:
    """Holds the configured, cached runtime components for the application.

    Parameters
    ----------
    config : GlobalConfig
        Loaded global configuration.
    """

    config: GlobalConfig

    @cached_property
    def model_tiers(self) -> ModelTierRegistry:
        return ModelTierRegistry.from_config(self.config.model_tiers)

    @cached_property
    def answer_llm(self) -> BaseLLM:
        """Return the model tier that generates final answers."""
        return self.model_tiers.get(str(self.config.generation["tier"]))

    @cached_property
    def prompt_builder(self) -> PromptBuilder:
        """Return the prompt builder.

        Prompt sources are resolved relative to the loaded config file
        directory (when available), not the current working directory.
        """
        return PromptBuilder.from_sources(self.config.prompts, base_dir=self.config.base_dir)

    @cached_property
    def token_counter(self) -> TokenEstimator:
        return create_token_counter(self.config.tokenization)

    @cached_property
    def chunker(self) -> SentenceWindowChunker:
        section = self.config.chunking
        return SentenceWindowChunker(
            target_size=int(section["target_size"]),
            overlap=int(section["overlap"]),
            token_counter=self.token_counter,
        )

    @cached_property
    def embedder(self) -> Embedder:
        return create_embedder(self.config.embedder, self.config.embedding_cache)

    @cached_property
    def vector_index(self) -> BaseVectorIndex:
        return create_vector_index(self.config.vector_index)

    @cached_property
    def ingestor(self) -> Ingestor:
        section = self.config.ingestion
        return Ingestor(
            self.chunker,
            self.embedder,
            self.vector_index,
            batch_size=int(section["batch_size"]),
            retry_attempts=int(section["retry_attempts"]),
        )

    @cached_property
    def retriever(self) -> Retriever:
        section = self.config.retrieval
        return Retriever(
            self.embedder,
            self.vector_index,
            default_k=int(section["top_k"]),
            retry_attempts=int(section["retry_attempts"]),
        )

    @cached_property
    def reranker(self) -> LLMReranker | None:
        """Return the LLM reranker, or ``None`` when ``reranker.enabled`` is false."""
        section = self.config.reranker
        if not section.get("enabled", True):
            return None
        return LLMReranker.from_config_dict(
            section,
            llm=self.model_tiers.get(str(section["tier"])),
            prompt_builder=self.prompt_builder,
        )

    @cached_property
    def context_builder(self) -> ContextBuilder:
        return ContextBuilder(self.token_counter)

    @cached_property
    def orchestrator(self) -> RAGOrchestrator:
        """Return the fully wired query orchestrator."""
        generation = self.config.generation
        return RAGOrchestrator(
            retriever=self.retriever,
            context_builder=self.context_builder,
            prompt_builder=self.prompt_builder,
            llm=self.answer_llm,
            reranker=self.reranker,
            prompt_name=str(generation["prompt_name"]),
            top_k=int(self.config.retrieval["top_k"]),
            max_context_tokens=int(self.config.context["max_tokens"]),
            llm_generate_defaults={
                "max_tokens": int(generation["max_tokens"]),
                "temperature": float(generation["temperature"]),
            },
            query_timeout=self.config.orchestrator.get("query_timeout"),
        )


def build_container(config: Any) -> TutorContainer:
    """Create a :class:`TutorContainer`.

    A single entry point for FastAPI lifespan hooks, CLI scripts and tests.

    Parameters
    ----------
    config : GlobalConfig or dict
        Loaded configuration, or a raw mapping to wrap in :class:`GlobalConfig`.
    """
    if not isinstance(config, GlobalConfig):
        config = GlobalConfig(dict(config))
    return TutorContainer(config=config)


__all__ = ["TutorContainer", "build_container"]
