# tutor_rag/app/api.py
from __future__ import annotations

import logging
import os

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from tutor_rag.app.container import build_container
from tutor_rag.common.exceptions import (
    EmbeddingProviderUnavailable,
    GenerationTimeout,
    IndexUnavailable,
    IngestionFailed,
    TutorRAGError,
)
from tutor_rag.common.logging_utils import configure_logging
from tutor_rag.common.schemas import SearchResult
from tutor_rag.config import GlobalConfig
from tutor_rag.retrieval.document_loader import parse_curriculum_records

app = FastAPI(title="Tutor RAG API", version="0.1.0")
logger = logging.getLogger("tutor_rag.api")


class QueryRequest(BaseModel):
    query: str = Field(min_length=1)
    subject: str | None = None
    use_reranking: bool = True


class RetrievedContextChunk(BaseModel):
    rank: int
    doc_id: str
    text: str
    score: float | None = None
    title: str | None = None


class QueryResponse(BaseModel):
    answer: str
    context: list[RetrievedContextChunk] = Field(default_factory=list)


class IngestRequest(BaseModel):
    documents: list[dict] = Field(default_factory=list)


class IngestResponse(BaseModel):
    documents_total: int
    documents_ingested: int
    chunks_indexed: int
    failed_document_ids: list[str] = Field(default_factory=list)


def _serialize_context(sources: list[SearchResult]) -> list[RetrievedContextChunk]:
    return [
        RetrievedContextChunk(
            rank=idx,
            doc_id=result.document.id,
            text=result.document.content,
            score=result.score,
            title=result.document.metadata.get("title"),
        )
        for idx, result in enumerate(sources, start=1)
    ]


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, GenerationTimeout):
        status = 504
    elif isinstance(exc, (IndexUnavailable, EmbeddingProviderUnavailable)):
        status = 503
    elif isinstance(exc, IngestionFailed):
        status = 502
    elif isinstance(exc, ValueError):
        status = 422
    else:
        status = 500

    detail: dict = {"error": f"{type(exc).__name__}: {exc}"}
    if isinstance(exc, TutorRAGError):
        detail = {"error": type(exc).__name__, "message": exc.message, "details": exc.details}
    return HTTPException(status_code=status, detail=detail)


@app.on_event("startup")
def startup():
    if getattr(app.state, "container", None) is not None:
        return
    configure_logging(os.environ.get("TUTOR_RAG_LOG_LEVEL", "INFO"))
    # Env var so deployments can pass the config location.
    cfg_path = os.environ.get("TUTOR_RAG_CONFIG", "/app/config/config.yaml")
    cfg = GlobalConfig.load(cfg_path)
    app.state.container = build_container(cfg)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/v1/query", response_model=QueryResponse)
async def query(req: QueryRequest):
    try:
        result = await app.state.container.orchestrator.arun(
            req.query,
            subject=req.subject,
            use_reranking=req.use_reranking,
        )
        return QueryResponse(answer=result.answer, context=_serialize_context(result.sources))
    except Exception as e:
        logger.exception("Error while handling /v1/query")
        raise _http_error(e) from e


@app.post("/v1/ingest", response_model=IngestResponse)
async def ingest(req: IngestRequest):
    try:
        documents = parse_curriculum_records(req.documents, origin="request")
        report = await app.state.container.ingestor.aingest(documents)
        return IngestResponse(
            documents_total=report.documents_total,
            documents_ingested=report.documents_ingested,
            chunks_indexed=report.chunks_indexed,
            failed_document_ids=report.failed_document_ids,
        )
    except Exception as e:
        logger.exception("Error while handling /v1/ingest")
        raise _http_error(e) from e
