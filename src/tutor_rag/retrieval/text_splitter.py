"""tutor_rag.retrieval.text_splitter

Sentence-aware text chunking for the ingestion path.

Documents are cut into overlapping windows of whole sentences, each sized to
a token budget. Each boundary between two chunks is straddled by a short tail
of words from the earlier chunk so that retrieval keeps recent context.

Classes
-------
SentenceWindowChunker
    Splits text into sentence-bounded, overlapping :class:`~tutor_rag.common.schemas.Chunk` objects.

Functions
---------
split_sentence_spans
    Return ``(start, end)`` spans of the sentences in a text.
"""

from __future__ import annotations

import logging
import re

from tutor_rag.common.schemas import Chunk
from tutor_rag.common.tokenisation import HeuristicTokenCounter, TokenEstimator

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 512
DEFAULT_OVERLAP = 128

_SENTENCE_BOUNDARY = re.compile(r"[.!?]+\s+")


def split_sentence_spans(text: str) -> list[tuple[int, int]]:
    """Return sentence spans that tile ``text``.

    A sentence ends after a run of ``.``, ``!`` or ``?`` followed by
    whitespace; the terminator and the trailing whitespace belong to the
    sentence, so the spans cover every character of ``text`` exactly once.

    Parameters
    ----------
    text : str
        Source text.

    Returns
    -------
    list[tuple[int, int]]
        Half-open ``(start, end)`` offsets, in order.
    """
    spans: list[tuple[int, int]] = []
    start = 0
    for match in _SENTENCE_BOUNDARY.finditer(text):
        spans.append((start, match.end()))
        start = match.end()
    if start < len(text):
        spans.append((start, len(text)))
    return spans


class SentenceWindowChunker:
    """Split text into overlapping windows of whole sentences.

    Parameters
    ----------
    target_size : int, optional
        Default token budget per chunk. Defaults to ``512``.
    overlap : int, optional
        Default overlap, in tokens. The overlap tail carried into the next
        chunk is ``overlap // 2`` words. Defaults to ``128``.
    token_counter : TokenEstimator or None, optional
        Estimator used for sizing. Defaults to
        :class:`~tutor_rag.common.tokenisation.HeuristicTokenCounter`.
    """

    def __init__(
            self,
            *,
            target_size: int = DEFAULT_CHUNK_SIZE,
            overlap: int = DEFAULT_OVERLAP,
            token_counter: TokenEstimator | None = None,
        ):
        if target_size <= 0:
            raise ValueError("'target_size' must be a positive integer.")
        if overlap < 0:
            raise ValueError("'overlap' must not be negative.")
        self.target_size = int(target_size)
        self.overlap = int(overlap)
        self.token_counter = token_counter or HeuristicTokenCounter()

    def chunk(
            self,
            text: str,
            target_size: int | None = None,
            overlap: int | None = None,
        ) -> list[Chunk]:
        """Chunk ``text`` into sentence-bounded windows.

        When adding the next sentence would push the current window above
        ``target_size`` estimated tokens, the window is closed and the next
        one is seeded with the last ``overlap // 2`` words of the closed
        window. A sentence that alone exceeds the budget is emitted as its
        own oversized chunk rather than split mid-sentence.

        Parameters
        ----------
        text : str
            Text to chunk.
        target_size : int or None, optional
            Token budget override for this call.
        overlap : int or None, optional
            Overlap override for this call.

        Returns
        -------
        list[Chunk]
            Chunks in document order. Empty or whitespace-only text yields an
            empty list.
        """
        target = self.target_size if target_size is None else int(target_size)
        overlap_tokens = self.overlap if overlap is None else int(overlap)

        if not text or not text.strip():
            return []

        chunks: list[Chunk] = []
        parts: list[str] = []
        new_sentences = 0
        chunk_start: int | None = None
        chunk_end = 0

        for start, end in split_sentence_spans(text):
            sentence = text[start:end].strip()
            if not sentence:
                chunk_end = end
                continue

            candidate = " ".join(parts + [sentence])
            if new_sentences and self.token_counter.count(candidate) > target:
                closed = " ".join(parts)
                chunks.append(Chunk(text=closed, start_offset=chunk_start, end_offset=start))

                tail = self._overlap_tail(closed, overlap_tokens, sentence, target)
                parts = [tail] if tail else []
                new_sentences = 0
                chunk_start = start

            if chunk_start is None:
                chunk_start = 0
            parts.append(sentence)
            new_sentences += 1
            chunk_end = end

        if new_sentences:
            chunks.append(Chunk(text=" ".join(parts), start_offset=chunk_start, end_offset=chunk_end))

        return chunks

    def _overlap_tail(
            self,
            closed: str,
            overlap_tokens: int,
            next_sentence: str,
            target: int,
        ) -> str:
        """Return the overlap tail for the window after ``closed``.

        The tail is shortened from the front only as far as needed to keep the
        tail plus ``next_sentence`` within ``target``.
        """
        n_words = overlap_tokens // 2
        if n_words <= 0:
            return ""

        tail_words = closed.split()[-n_words:]
        available = len(tail_words)
        while tail_words and self.token_counter.count(" ".join(tail_words + [next_sentence])) > target:
            tail_words = tail_words[1:]
        if len(tail_words) < available:
            logger.debug(
                "Overlap tail shortened from %d to %d words to fit the chunk budget",
                available,
                len(tail_words),
            )
        return " ".join(tail_words)


__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_OVERLAP",
    "SentenceWindowChunker",
    "split_sentence_spans",
]
