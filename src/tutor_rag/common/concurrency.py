"""tutor_rag.common.concurrency

Helpers for exposing the async core through synchronous entry points.
"""

from __future__ import annotations

import asyncio
from typing import Any, Coroutine, TypeVar

T = TypeVar("T")


def run_sync(coro: Coroutine[Any, Any, T], *, name: str = "operation") -> T:
    """Run ``coro`` to completion on a fresh event loop.

    Parameters
    ----------
    coro : Coroutine
        Coroutine to execute.
    name : str, optional
        Name used in the error message when called from async code.

    Returns
    -------
    T
        The coroutine's result.

    Raises
    ------
    RuntimeError
        If an event loop is already running in this thread; async callers
        must ``await`` the async variant instead.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    coro.close()
    raise RuntimeError(
        f"{name}() cannot run inside an active event loop; await the async variant instead."
    )


__all__ = ["run_sync"]
