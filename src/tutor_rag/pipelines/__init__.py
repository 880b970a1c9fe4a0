"""tutor_rag.pipelines

Pipeline orchestration components.

The orchestrator coordinates retrieval, reranking, context assembly and
generation. It holds no per-query state and is safe to reuse across
requests.

Modules
-------
rag_pipeline
    End-to-end Retrieval-Augmented Generation (RAG) query orchestration.
"""
