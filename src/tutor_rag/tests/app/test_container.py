import asyncio

from tutor_rag.app.container import build_container
from tutor_rag.config import GlobalConfig
from tutor_rag.retrieval.embedder import Embedder
from tutor_rag.retrieval.vector_store import InMemoryVectorIndex

LLM = {"type": "OpenAIChatLike", "model_name": "m", "api_base": "http://localhost:1/v1", "api_key": "k"}

RAW = {
    "model_tiers": {"fast": dict(LLM), "balanced": dict(LLM)},
    "embedder": {"type": "OpenAILike", "model_name": "e", "api_base": "http://localhost:2/v1"},
    "vector_index": {"kind": "memory"},
    "retrieval": {"top_k": 3},
    "generation": {"max_tokens": 256},
}


def test_components_are_wired_from_config():
    container = build_container(dict(RAW))

    assert isinstance(container.config, GlobalConfig)
    assert isinstance(container.vector_index, InMemoryVectorIndex)
    assert container.ingestor.index is container.vector_index
    assert container.retriever.embedder is container.embedder
    assert container.reranker.llm is container.model_tiers.get("fast")
    assert container.reranker.max_tokens == 10

    orchestrator = container.orchestrator
    assert orchestrator is container.orchestrator
    assert orchestrator.llm is container.model_tiers.get("balanced")
    assert orchestrator.top_k == 3
    assert orchestrator.max_context_tokens == 2048
    assert orchestrator.llm_generate_defaults == {"max_tokens": 256, "temperature": 0.7}
    assert orchestrator.query_timeout == 60


def test_reranker_can_be_disabled():
    container = build_container({**RAW, "reranker": {"enabled": False}})

    assert container.reranker is None
    assert container.orchestrator.reranker is None


def test_ingest_then_query(provider, scripted_llm, document_factory):
    container = build_container(dict(RAW))
    container.__dict__["embedder"] = Embedder(provider)
    container.model_tiers.register("fast", scripted_llm(lambda prompt: "6"))
    answer_llm = scripted_llm(lambda prompt: "Cats are mammals.")
    container.model_tiers.register("balanced", answer_llm)

    report = container.ingestor.ingest([document_factory("doc1", title="Cats")])
    answer = container.orchestrator.query("What are cats?", subject="science")

    assert report.chunks_indexed == 1
    assert answer == "Cats are mammals."
    assert "[Source 1: Cats]" in answer_llm.calls[0]["prompt"]
    assert asyncio.run(container.vector_index.count()) == 1
