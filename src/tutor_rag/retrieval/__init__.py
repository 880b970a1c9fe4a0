"""
Retrieval layer of the RAG pipeline.

This package covers everything needed to turn curriculum documents into
searchable vectors and to fetch the most relevant chunks for a query.

Submodules
----------
document_loader
    Loads curriculum packs from JSON or YAML files.
text_splitter
    Sentence-window chunking with overlap.
embedding_cache
    Bounded text -> vector cache with pluggable eviction.
embedder
    Embedding providers and the normalising Embedder adapter.
vector_store
    Vector index contract and backends (Qdrant, in-memory).
ingestor
    Batched, concurrent corpus ingestion.
retriever
    Query embedding and nearest-neighbour retrieval.
reranker
    LLM relevance reranking.
"""
