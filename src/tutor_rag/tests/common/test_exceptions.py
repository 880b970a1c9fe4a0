import asyncio

import pytest

from tutor_rag.common.exceptions import (
    EmbeddingProviderUnavailable,
    GenerationTimeout,
    IngestionFailed,
    RerankScoreUnparsable,
    TutorRAGError,
)
from tutor_rag.common.retry import retry_transient


def test_error_details_render_in_message():
    err = EmbeddingProviderUnavailable("provider down", {"error": "ConnectionError: refused"})

    assert isinstance(err, TutorRAGError)
    assert str(err) == "provider down | Details: {'error': 'ConnectionError: refused'}"
    assert str(TutorRAGError("plain")) == "plain"


def test_specialised_errors():
    assert isinstance(GenerationTimeout("late"), TimeoutError)

    failed = IngestionFailed("batch failed", {"doc1": ValueError("bad")})
    assert failed.details == {"doc1": "ValueError: bad"}

    unparsable = RerankScoreUnparsable("no number")
    assert unparsable.response == "no number"


def test_retry_transient_retries_once():
    calls = []

    async def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise EmbeddingProviderUnavailable("down")
        return "ok"

    assert asyncio.run(retry_transient(flaky)) == "ok"
    assert len(calls) == 2


def test_retry_transient_gives_up_and_reraises():
    calls = []

    async def down():
        calls.append(1)
        raise EmbeddingProviderUnavailable("down")

    with pytest.raises(EmbeddingProviderUnavailable):
        asyncio.run(retry_transient(down))
    assert len(calls) == 2


def test_retry_transient_ignores_other_errors():
    calls = []

    async def broken():
        calls.append(1)
        raise ValueError("bad input")

    with pytest.raises(ValueError):
        asyncio.run(retry_transient(broken, attempts=5))
    assert len(calls) == 1
