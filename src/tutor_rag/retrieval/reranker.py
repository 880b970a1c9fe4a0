"""tutor_rag.retrieval.reranker

LLM relevance reranking for retrieved candidates.

Each candidate is scored independently by a fast model tier that is asked for
a single number between 0 and 10. The scores replace the retrieval
similarities and the candidates are re-sorted. Scoring runs concurrently;
the final sort is stable, so candidates with equal scores keep their
retrieval order.

Classes
-------
ScoreParser
    Strategy that turns a model response into a score.
FirstNumberScoreParser
    Takes the first number in the response, clamped to the score range.
LLMReranker
    Scores and reorders candidates with a generative model.
"""

from __future__ import annotations

import asyncio
import logging
import re
from contextlib import AsyncExitStack
from typing import Any, Mapping, Optional, Protocol, Sequence

from tutor_rag.common.concurrency import run_sync
from tutor_rag.common.exceptions import RerankScoreUnparsable
from tutor_rag.common.schemas import SearchResult
from tutor_rag.generation.llm_interface import BaseLLM
from tutor_rag.generation.prompt_builder import PromptBuilder

logger = logging.getLogger(__name__)

RERANK_PROMPT = "rerank_score"
DOCUMENT_PREVIEW_CHARS = 256
DEFAULT_SCORE = 0.0

_NUMBER = re.compile(r"[-+]?(?:\d+(?:\.\d*)?|\.\d+)")


class ScoreParser(Protocol):
    """Turns a raw model response into a relevance score."""

    def parse(self, response: str) -> float:
        """Return the score in ``response``. Raises ``RerankScoreUnparsable`` if there is none."""


class FirstNumberScoreParser:
    """Parse the first number in a response.

    ``"7"``, ``" 7.5\\n"`` and ``"7 out of 10"`` all parse (to 7, 7.5 and 7).
    Values are clamped to ``[min_score, max_score]``.

    Parameters
    ----------
    min_score : float, optional
        Lower bound. Defaults to ``0``.
    max_score : float, optional
        Upper bound. Defaults to ``10``.
    """

    def __init__(self, min_score: float = 0.0, max_score: float = 10.0):
        if min_score > max_score:
            raise ValueError("'min_score' must not exceed 'max_score'.")
        self.min_score = float(min_score)
        self.max_score = float(max_score)

    def parse(self, response: str) -> float:
        match = _NUMBER.search(response or "")
        if match is None:
            raise RerankScoreUnparsable(response or "")
        return min(self.max_score, max(self.min_score, float(match.group())))


class LLMReranker:
    """Rerank candidates by LLM-judged relevance.

    Parameters
    ----------
    llm : BaseLLM
        Fast model tier used for scoring.
    prompt_builder : PromptBuilder
        Must provide the ``rerank_score`` template.
    score_parser : ScoreParser or None, optional
        Response parser. Defaults to :class:`FirstNumberScoreParser`.
    max_concurrency : int or None, optional
        Upper bound on in-flight scoring calls. ``None`` scores every
        candidate at once.
    max_tokens : int, optional
        Token limit for each scoring call. Defaults to ``10``.
    temperature : float, optional
        Sampling temperature for scoring. Defaults to ``0.1``.
    """

    def __init__(
            self,
            llm: BaseLLM,
            prompt_builder: PromptBuilder,
            *,
            score_parser: ScoreParser | None = None,
            max_concurrency: Optional[int] = None,
            max_tokens: int = 10,
            temperature: float = 0.1,
        ):
        if max_concurrency is not None and max_concurrency <= 0:
            raise ValueError("'max_concurrency' must be a positive integer or None.")
        self.llm = llm
        self.prompt_builder = prompt_builder
        self.score_parser = score_parser or FirstNumberScoreParser()
        self.max_concurrency = max_concurrency
        self.max_tokens = int(max_tokens)
        self.temperature = float(temperature)

    @classmethod
    def from_config_dict(
            cls,
            config: Mapping[str, Any],
            *,
            llm: BaseLLM,
            prompt_builder: PromptBuilder,
        ) -> "LLMReranker":
        """Create a reranker from the ``reranker`` configuration section."""
        score_range = config.get("score_range") or [0, 10]
        return cls(
            llm,
            prompt_builder,
            score_parser=FirstNumberScoreParser(float(score_range[0]), float(score_range[1])),
            max_concurrency=config.get("max_concurrency"),
            max_tokens=int(config.get("max_tokens", 10)),
            temperature=float(config.get("temperature", 0.1)),
        )

    async def arerank(self, query: str, candidates: Sequence[SearchResult]) -> list[SearchResult]:
        """Score ``candidates`` against ``query`` and sort by score.

        Parameters
        ----------
        query : str
            User query.
        candidates : Sequence[SearchResult]
            Retrieved candidates in retrieval order.

        Returns
        -------
        list[SearchResult]
            New results carrying the reranker score, in descending score
            order. Unscorable candidates get score ``0``.
        """
        if not candidates:
            return []

        semaphore = asyncio.Semaphore(self.max_concurrency) if self.max_concurrency else None
        scores = await asyncio.gather(
            *(self._score(query, candidate, semaphore) for candidate in candidates)
        )

        rescored = [c.with_score(s) for c, s in zip(candidates, scores)]
        # sorted() is stable: equal scores keep retrieval order.
        return sorted(rescored, key=lambda r: r.score, reverse=True)

    def rerank(self, query: str, candidates: Sequence[SearchResult]) -> list[SearchResult]:
        """Synchronous form of :meth:`arerank`."""
        return run_sync(self.arerank(query, candidates), name="rerank")

    async def _score(
            self,
            query: str,
            candidate: SearchResult,
            semaphore: asyncio.Semaphore | None,
        ) -> float:
        prompt = self.prompt_builder.build(
            RERANK_PROMPT,
            query=query,
            document=candidate.document.content[:DOCUMENT_PREVIEW_CHARS],
        )
        try:
            async with AsyncExitStack() as stack:
                if semaphore is not None:
                    await stack.enter_async_context(semaphore)
                response = await self.llm.agenerate(
                    prompt, max_tokens=self.max_tokens, temperature=self.temperature
                )
            return self.score_parser.parse(response)
        except RerankScoreUnparsable as exc:
            logger.warning(
                "Unparsable rerank score for %s: %r", candidate.document.id, exc.response[:80]
            )
        except Exception as exc:
            logger.warning("Rerank scoring failed for %s: %s", candidate.document.id, exc)
        return DEFAULT_SCORE


__all__ = [
    "ScoreParser",
    "FirstNumberScoreParser",
    "LLMReranker",
]
