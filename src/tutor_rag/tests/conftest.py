import string

import pytest

from tutor_rag.common.schemas import Document, DocumentMetadata, IndexedVector, SearchResult, Subject
from tutor_rag.generation.llm_interface import BaseLLM
from tutor_rag.generation.prompt_builder import PromptBuilder


class LetterCountProvider:
    """
    Deterministic embedding provider for tests: a 27-d vector of letter
    counts plus a constant component, so no text embeds to zero.
    """

    def __init__(self):
        self.calls = []

    def embed(self, text):
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text.")
        self.calls.append(text)
        lowered = text.lower()
        return [float(lowered.count(ch)) for ch in string.ascii_lowercase] + [1.0]


class ScriptedLLM(BaseLLM):
    """
    Fake model tier. ``responder`` maps a prompt to a response string, or
    raises to simulate a failed call. Every call is recorded.
    """

    def __init__(self, responder=None):
        self.responder = responder or (lambda prompt: "ok")
        self.calls = []

    @classmethod
    def from_config_dict(cls, config, callback_manager=None):
        return cls()

    def get_llm(self):
        return self

    def generate(self, prompt, *, max_tokens=None, temperature=None, **kwargs):
        self.calls.append({"prompt": prompt, "max_tokens": max_tokens, "temperature": temperature, **kwargs})
        return self.responder(prompt)

    async def agenerate(self, prompt, *, max_tokens=None, temperature=None, **kwargs):
        return self.generate(prompt, max_tokens=max_tokens, temperature=temperature, **kwargs)


def make_document(doc_id="doc1", content="Cats are mammals. Cats have fur.", subject=Subject.SCIENCE, **meta):
    return Document(
        id=doc_id,
        content=content,
        metadata=DocumentMetadata(
            subject=subject,
            title=meta.pop("title", f"Title {doc_id}"),
            source=meta.pop("source", "tests"),
            **meta,
        ),
    )


def make_result(vector_id, content="text", score=0.5, title=None):
    metadata = {"title": title} if title is not None else {}
    return SearchResult(
        document=IndexedVector(id=vector_id, content=content, embedding=[1.0, 0.0], metadata=metadata),
        score=score,
    )


@pytest.fixture
def provider():
    return LetterCountProvider()


@pytest.fixture
def prompt_builder():
    return PromptBuilder.from_sources()


@pytest.fixture
def scripted_llm():
    return ScriptedLLM


@pytest.fixture
def document_factory():
    return make_document


@pytest.fixture
def result_factory():
    return make_result
