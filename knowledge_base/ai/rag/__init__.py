"""
RAG (Retrieval-Augmented Generation) Module

Building blocks of the ingestion pipeline.

CHUNKING:
    from knowledge_base.ai.rag import TextChunker, ChunkerConfig

    chunker = TextChunker(ChunkerConfig(chunk_size=1000))
    chunks = await chunker.chunk(text)

EMBEDDING:
    from knowledge_base.ai.rag import Embedder

The pipeline facade lives in knowledge_base.ai.rag.pipeline and is not
re-exported here (it depends on the vector store, which depends on the
embedder).
"""

# Chunker
from knowledge_base.ai.rag.chunker import (
    TextChunker,
    ChunkerConfig,
    TextChunk,
    split_text,
)

# Overlap
from knowledge_base.ai.rag.overlap import last_fragment

# Embedder
from knowledge_base.ai.rag.embedder import (
    Embedder,
    create_embeddings,
    create_query_embedding,
    warmup_model,
    get_model_info,
)

__all__ = [
    # Chunker
    "TextChunker",
    "ChunkerConfig",
    "TextChunk",
    "split_text",

    # Overlap
    "last_fragment",

    # Embedder
    "Embedder",
    "create_embeddings",
    "create_query_embedding",
    "warmup_model",
    "get_model_info",
]
