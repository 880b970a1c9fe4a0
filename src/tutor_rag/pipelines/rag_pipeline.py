"""tutor_rag.pipelines.rag_pipeline

End-to-end Retrieval-Augmented Generation (RAG) query orchestration.

Classes
-------
RAGOrchestrator
    Orchestrates retrieval → reranking → context assembly → prompt → generation.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from tutor_rag.common.concurrency import run_sync
from tutor_rag.common.exceptions import GenerationTimeout
from tutor_rag.common.schemas import RAGResponse, Subject
from tutor_rag.generation.context_builder import DEFAULT_MAX_CONTEXT_TOKENS, ContextBuilder
from tutor_rag.generation.llm_interface import BaseLLM
from tutor_rag.generation.prompt_builder import PromptBuilder
from tutor_rag.retrieval.reranker import LLMReranker
from tutor_rag.retrieval.retriever import DEFAULT_TOP_K, Retriever

logger = logging.getLogger(__name__)

ANSWER_PROMPT = "rag_answer"
DEFAULT_QUERY_TIMEOUT = 60.0


class RAGOrchestrator:
    """Retrieval-Augmented Generation orchestrator.

    A query flows through:

    1. dense retrieval of ``top_k`` results, or ``2 * top_k`` when reranking;
    2. optional LLM reranking, truncated back to ``top_k``;
    3. token-budgeted context assembly;
    4. rendering of the ``rag_answer`` prompt, with a subject instruction when
       a subject is given;
    5. generation on the answer model tier.

    The orchestrator holds no per-query state and is safe to reuse across
    requests. The whole query runs under a single deadline.

    Parameters
    ----------
    retriever : Retriever
        Dense retriever.
    context_builder : ContextBuilder
        Context assembler.
    prompt_builder : PromptBuilder
        Must provide the ``rag_answer`` template.
    llm : BaseLLM
        Answer model (the balanced tier by default).
    reranker : LLMReranker or None, optional
        Reranker; without one, ``use_reranking`` has no effect.
    prompt_name : str, optional
        Answer template name. Defaults to ``"rag_answer"``.
    top_k : int, optional
        Number of results used for context. Defaults to ``5``.
    max_context_tokens : int, optional
        Context budget. Defaults to ``2048``.
    llm_generate_defaults : dict or None, optional
        Keyword arguments for ``llm.agenerate``. Defaults to
        ``{"max_tokens": 512, "temperature": 0.7}``.
    query_timeout : float or None, optional
        Deadline in seconds for one query; ``None`` disables it. Defaults to
        ``60``.
    """

    def __init__(
            self,
            retriever: Retriever,
            context_builder: ContextBuilder,
            prompt_builder: PromptBuilder,
            llm: BaseLLM,
            *,
            reranker: LLMReranker | None = None,
            prompt_name: str = ANSWER_PROMPT,
            top_k: int = DEFAULT_TOP_K,
            max_context_tokens: int = DEFAULT_MAX_CONTEXT_TOKENS,
            llm_generate_defaults: dict | None = None,
            query_timeout: Optional[float] = DEFAULT_QUERY_TIMEOUT,
        ):
        self.retriever = retriever
        self.context_builder = context_builder
        self.prompt_builder = prompt_builder
        self.llm = llm
        self.reranker = reranker
        self.prompt_name = prompt_name
        self.top_k = int(top_k)
        self.max_context_tokens = int(max_context_tokens)
        self.llm_generate_defaults = llm_generate_defaults or {
            "max_tokens": 512,
            "temperature": 0.7,
        }
        self.query_timeout = query_timeout if query_timeout and query_timeout > 0 else None

    async def arun(
            self,
            query: str,
            subject: Subject | str | None = None,
            use_reranking: bool = True,
            **llm_generate: Any,
        ) -> RAGResponse:
        """Answer ``query`` and return the answer with its prompt and sources.

        Parameters
        ----------
        query : str
            User's natural-language question.
        subject : Subject, str or None, optional
            Restricts retrieval to one subject and adds a subject instruction
            to the prompt.
        use_reranking : bool, optional
            Over-fetch and rerank before building context. Defaults to ``True``.
        **llm_generate : Any
            Per-call overrides for generation parameters.

        Returns
        -------
        RAGResponse
            Generated answer (verbatim), rendered prompt and the ranked sources.

        Raises
        ------
        GenerationTimeout
            If the query does not finish within ``query_timeout`` seconds.
        ValueError
            If ``subject`` is not a known subject.
        """
        subject = Subject.parse(subject) if subject is not None else None
        coro = self._run(query, subject, use_reranking, llm_generate)
        if self.query_timeout is None:
            return await coro
        try:
            return await asyncio.wait_for(coro, timeout=self.query_timeout)
        except asyncio.TimeoutError as exc:
            raise GenerationTimeout(
                "Query did not complete in time", {"timeout_s": self.query_timeout}
            ) from exc

    async def aquery(
            self,
            query: str,
            subject: Subject | str | None = None,
            use_reranking: bool = True,
            **llm_generate: Any,
        ) -> str:
        """Answer ``query`` and return only the generated text."""
        response = await self.arun(query, subject=subject, use_reranking=use_reranking, **llm_generate)
        return response.answer

    def query(
            self,
            query: str,
            subject: Subject | str | None = None,
            use_reranking: bool = True,
            **llm_generate: Any,
        ) -> str:
        """Synchronous form of :meth:`aquery`.

        Raises
        ------
        RuntimeError
            If called from inside a running event loop.
        """
        return run_sync(
            self.aquery(query, subject=subject, use_reranking=use_reranking, **llm_generate),
            name="query",
        )

    def __call__(self, query: str, **kwargs: Any) -> str:
        """Convenience wrapper around :meth:`query`."""
        return self.query(query, **kwargs)

    async def _run(
            self,
            query: str,
            subject: Subject | None,
            use_reranking: bool,
            llm_generate: dict[str, Any],
        ) -> RAGResponse:
        rerank = use_reranking and self.reranker is not None
        filter = {"subject": subject} if subject is not None else None

        results = await self.retriever.aretrieve(query, filter=filter, k=self.top_k, overfetch=rerank)
        if rerank:
            results = (await self.reranker.arerank(query, results))[:self.top_k]

        context = self.context_builder.build(results, self.max_context_tokens)
        prompt = self.prompt_builder.build(
            self.prompt_name,
            subject=subject.label if subject is not None else None,
            context=context.strip(),
            question=query,
        )

        gen_kwargs = {**self.llm_generate_defaults, **llm_generate}
        answer = await self.llm.agenerate(prompt, **gen_kwargs)
        logger.info(
            "Answered query with %d source(s) (subject=%s, reranked=%s)",
            len(results), subject.value if subject else None, rerank,
        )
        return RAGResponse(answer=answer, prompt=prompt, sources=list(results))


__all__ = ["RAGOrchestrator"]
