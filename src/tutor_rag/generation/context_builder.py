"""tutor_rag.generation.context_builder

Token-budgeted assembly of retrieved chunks into prompt context.

Classes
-------
ContextBuilder
    Concatenates numbered source snippets until the token budget is reached.
"""

from __future__ import annotations

import logging
from typing import Sequence

from tutor_rag.common.schemas import SearchResult
from tutor_rag.common.tokenisation import HeuristicTokenCounter, TokenEstimator

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONTEXT_TOKENS = 2048


class ContextBuilder:
    """Build a context string from ranked results under a token budget.

    Each result becomes a snippet ``"[Source i: {title}]\\n{content}\\n"``
    (``i`` counts from 1). Snippets are added in order while the running token
    estimate stays within the budget; the first snippet that would overflow
    ends assembly, so every emitted snippet is complete and lower-ranked
    results are the ones dropped.

    Parameters
    ----------
    token_counter : TokenEstimator or None, optional
        Estimator for snippet cost. Defaults to
        :class:`~tutor_rag.common.tokenisation.HeuristicTokenCounter`.
    """

    def __init__(self, token_counter: TokenEstimator | None = None):
        self.token_counter = token_counter or HeuristicTokenCounter()

    @staticmethod
    def format_snippet(position: int, result: SearchResult) -> str:
        vector = result.document
        title = vector.metadata.get("title") or vector.id
        return f"[Source {position}: {title}]\n{vector.content}\n"

    def build(self, results: Sequence[SearchResult], max_tokens: int = DEFAULT_MAX_CONTEXT_TOKENS) -> str:
        """Assemble the context for ``results``.

        Parameters
        ----------
        results : Sequence[SearchResult]
            Results in rank order.
        max_tokens : int, optional
            Token budget. Defaults to ``2048``.

        Returns
        -------
        str
            Concatenated snippets; empty when nothing fits.
        """
        snippets: list[str] = []
        used = 0
        for position, result in enumerate(results, start=1):
            snippet = self.format_snippet(position, result)
            cost = self.token_counter.count(snippet)
            if used + cost > max_tokens:
                logger.debug(
                    "Context budget reached at source %d (%d + %d > %d); dropping %d result(s)",
                    position, used, cost, max_tokens, len(results) - position + 1,
                )
                break
            snippets.append(snippet)
            used += cost
        return "".join(snippets)


__all__ = ["DEFAULT_MAX_CONTEXT_TOKENS", "ContextBuilder"]
