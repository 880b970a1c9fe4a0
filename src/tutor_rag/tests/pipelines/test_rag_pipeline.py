import asyncio

import pytest

from tutor_rag.common.exceptions import GenerationTimeout
from tutor_rag.common.schemas import Subject
from tutor_rag.generation.context_builder import ContextBuilder
from tutor_rag.pipelines.rag_pipeline import RAGOrchestrator
from tutor_rag.retrieval.embedder import Embedder
from tutor_rag.retrieval.ingestor import Ingestor
from tutor_rag.retrieval.reranker import LLMReranker
from tutor_rag.retrieval.retriever import Retriever
from tutor_rag.retrieval.text_splitter import SentenceWindowChunker
from tutor_rag.retrieval.vector_store import InMemoryVectorIndex


def _orchestrator(provider, prompt_builder, documents, answer_llm, rerank_llm=None, **kwargs):
    embedder = Embedder(provider)
    index = InMemoryVectorIndex()
    asyncio.run(Ingestor(SentenceWindowChunker(), embedder, index).aingest(documents))
    reranker = LLMReranker(rerank_llm, prompt_builder) if rerank_llm is not None else None
    return RAGOrchestrator(
        Retriever(embedder, index),
        ContextBuilder(),
        prompt_builder,
        answer_llm,
        reranker=reranker,
        **kwargs,
    )


def test_answers_with_subject_instruction(provider, prompt_builder, scripted_llm, document_factory):
    llm = scripted_llm(lambda prompt: "Cats are furry mammals.")
    orchestrator = _orchestrator(
        provider,
        prompt_builder,
        [document_factory("doc1", "Cats are mammals. Cats have fur.", title="Cats")],
        llm,
    )

    response = asyncio.run(orchestrator.arun("What are cats?", subject=Subject.SCIENCE))

    assert response.answer == "Cats are furry mammals."
    assert response.prompt == (
        "You are answering a question about science. "
        "Use the context below to answer. If unsure, say so.\n\n"
        "Context:\n[Source 1: Cats]\nCats are mammals. Cats have fur.\n\n"
        "Question: What are cats?\n\n"
        "Answer:"
    )
    assert [s.document.id for s in response.sources] == ["doc1_0"]
    assert llm.calls[0]["max_tokens"] == 512
    assert llm.calls[0]["temperature"] == pytest.approx(0.7)


def test_subject_filters_retrieval(provider, prompt_builder, scripted_llm, document_factory):
    llm = scripted_llm()
    docs = [
        document_factory("sci", "Plants need light.", subject=Subject.SCIENCE),
        document_factory("his", "Plants were traded.", subject=Subject.HISTORY, title="Trade"),
    ]
    orchestrator = _orchestrator(provider, prompt_builder, docs, llm)

    response = asyncio.run(orchestrator.arun("plants", subject="history"))

    assert [s.document.id for s in response.sources] == ["his_0"]
    assert response.prompt.startswith("You are answering a question about history.")


def test_no_subject_omits_instruction(provider, prompt_builder, scripted_llm, document_factory):
    llm = scripted_llm(lambda prompt: "answer")
    orchestrator = _orchestrator(provider, prompt_builder, [document_factory()], llm)

    assert orchestrator.query("What are cats?") == "answer"
    assert llm.calls[0]["prompt"].startswith("Use the context below to answer.")


def test_reranking_overfetches_and_truncates(provider, prompt_builder, scripted_llm, document_factory):
    docs = [
        document_factory("a", "Cats sleep a lot."),
        document_factory("b", "Cats chase mice."),
        document_factory("c", "Zebras have stripes."),
        document_factory("d", "Cats purr softly."),
    ]
    rerank_llm = scripted_llm(lambda prompt: "10" if "Zebras" in prompt else "2")
    orchestrator = _orchestrator(
        provider, prompt_builder, docs, scripted_llm(), rerank_llm=rerank_llm, top_k=2
    )

    response = asyncio.run(orchestrator.arun("cats"))

    assert len(rerank_llm.calls) == 4
    assert len(response.sources) == 2
    assert response.sources[0].document.id == "c_0"
    assert response.sources[0].score == 10.0


def test_reranking_can_be_disabled(provider, prompt_builder, scripted_llm, document_factory):
    docs = [document_factory(f"d{i}", f"Fact {i} about cats.") for i in range(4)]
    rerank_llm = scripted_llm(lambda prompt: "5")
    orchestrator = _orchestrator(
        provider, prompt_builder, docs, scripted_llm(), rerank_llm=rerank_llm, top_k=2
    )

    response = asyncio.run(orchestrator.arun("cats", use_reranking=False))

    assert rerank_llm.calls == []
    assert len(response.sources) == 2


def test_generation_overrides(provider, prompt_builder, scripted_llm, document_factory):
    llm = scripted_llm()
    orchestrator = _orchestrator(provider, prompt_builder, [document_factory()], llm)

    asyncio.run(orchestrator.aquery("cats", max_tokens=64))

    assert llm.calls[0]["max_tokens"] == 64
    assert llm.calls[0]["temperature"] == pytest.approx(0.7)


def test_empty_index_still_generates(provider, prompt_builder, scripted_llm):
    llm = scripted_llm(lambda prompt: "I am not sure.")
    orchestrator = _orchestrator(provider, prompt_builder, [], llm)

    response = asyncio.run(orchestrator.arun("What is gravity?"))

    assert response.sources == []
    assert "Context:\n\n\nQuestion: What is gravity?" in response.prompt
    assert response.answer == "I am not sure."


def test_query_timeout(provider, prompt_builder, scripted_llm, document_factory):
    class SlowLLM(scripted_llm):
        async def agenerate(self, prompt, **kwargs):
            await asyncio.sleep(1)
            return "late"

    orchestrator = _orchestrator(
        provider, prompt_builder, [document_factory()], SlowLLM(), query_timeout=0.05
    )

    with pytest.raises(GenerationTimeout):
        asyncio.run(orchestrator.arun("cats"))


def test_unknown_subject(provider, prompt_builder, scripted_llm, document_factory):
    orchestrator = _orchestrator(provider, prompt_builder, [document_factory()], scripted_llm())

    with pytest.raises(ValueError):
        asyncio.run(orchestrator.arun("cats", subject="astrology"))


def test_sync_query_refuses_running_loop(provider, prompt_builder, scripted_llm, document_factory):
    orchestrator = _orchestrator(provider, prompt_builder, [document_factory()], scripted_llm())

    async def call_sync():
        return orchestrator.query("cats")

    with pytest.raises(RuntimeError, match="active event loop"):
        asyncio.run(call_sync())
