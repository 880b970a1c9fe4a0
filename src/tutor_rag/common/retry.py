"""tutor_rag.common.retry

Retry policy for transient embedding provider failures.

Only :class:`~tutor_rag.common.exceptions.EmbeddingProviderUnavailable` is
retried, and only once by default. Every other error propagates on the first
attempt.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from tutor_rag.common.exceptions import EmbeddingProviderUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_ATTEMPTS = 2


def _log_retry(retry_state) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Embedding provider unavailable; retry %d after: %s",
        retry_state.attempt_number,
        exc,
    )


async def retry_transient(
        fn: Callable[..., Awaitable[T]],
        *args: Any,
        attempts: int = DEFAULT_ATTEMPTS,
        wait_seconds: float = 0.0,
        **kwargs: Any,
    ) -> T:
    """Await ``fn(*args, **kwargs)``, retrying on provider unavailability.

    Parameters
    ----------
    fn : Callable[..., Awaitable[T]]
        Coroutine function to call.
    attempts : int, optional
        Total number of attempts. Defaults to ``2`` (one retry).
    wait_seconds : float, optional
        Pause between attempts. Defaults to ``0``.

    Returns
    -------
    T
        Result of the first successful attempt.

    Raises
    ------
    EmbeddingProviderUnavailable
        If every attempt fails with it.
    """
    async for attempt in AsyncRetrying(
        retry=retry_if_exception_type(EmbeddingProviderUnavailable),
        stop=stop_after_attempt(max(1, int(attempts))),
        wait=wait_fixed(wait_seconds),
        before_sleep=_log_retry,
        reraise=True,
    ):
        with attempt:
            result = await fn(*args, **kwargs)
    return result


__all__ = ["DEFAULT_ATTEMPTS", "retry_transient"]
