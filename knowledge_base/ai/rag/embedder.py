"""
Embedding Service

Creates vector embeddings from text using Google Gemini API.

Google Gemini Embeddings:
------------------------
- Model: gemini-embedding-001
- Dimension: configurable via output_dimensionality (768 by default)
- API-based, no local model loading

Chunks are embedded with the RETRIEVAL_DOCUMENT task type and
queries with RETRIEVAL_QUERY, as the Gemini docs recommend.
"""

import logging
from typing import List, Optional

from google import genai
from google.genai import types

from knowledge_base.core.config import settings

logger = logging.getLogger(__name__)

_client: Optional[genai.Client] = None


def _get_client() -> genai.Client:
    """Get or create the Gemini API client (singleton)."""
    global _client

    if _client is not None:
        return _client

    if not settings.GEMINI_API_KEY:
        raise ValueError(
            "GEMINI_API_KEY is required for embeddings. "
            "Get one at: https://aistudio.google.com/apikey"
        )

    _client = genai.Client(api_key=settings.GEMINI_API_KEY)
    logger.info("Gemini embedding client initialized")
    return _client


def get_model_info() -> dict:
    """Get information about the embedding model."""
    return {
        "name": settings.EMBEDDING_MODEL,
        "dimension": settings.EMBEDDING_DIMENSION,
        "provider": "google-gemini",
    }


def _embed_batch(texts: List[str], task_type: str) -> List[List[float]]:
    client = _get_client()
    result = client.models.embed_content(
        model=settings.EMBEDDING_MODEL,
        contents=texts,
        config=types.EmbedContentConfig(
            task_type=task_type,
            output_dimensionality=settings.EMBEDDING_DIMENSION,
        ),
    )
    return [list(emb.values) for emb in result.embeddings]


# ============================================================
# EMBEDDING FUNCTIONS
# ============================================================

def create_embeddings(
    texts: List[str],
    batch_size: Optional[int] = None,
) -> List[List[float]]:
    """
    Create document embeddings for multiple texts with automatic batching.

    Args:
        texts: List of texts to embed
        batch_size: Texts per API call (default from config)

    Returns:
        List of embedding vectors, same order as texts
    """
    if not texts:
        return []

    if batch_size is None:
        batch_size = settings.EMBEDDING_BATCH_SIZE

    all_embeddings: List[List[float]] = []

    # Replace empty texts with a placeholder
    processed_texts = []
    empty_indices = set()

    for i, text in enumerate(texts):
        if not text or not text.strip():
            empty_indices.add(i)
            processed_texts.append(" ")
        else:
            processed_texts.append(text)

    logger.info(f"Creating embeddings for {len(processed_texts)} texts (batch_size={batch_size})")

    for start in range(0, len(processed_texts), batch_size):
        batch = processed_texts[start : start + batch_size]
        all_embeddings.extend(_embed_batch(batch, "RETRIEVAL_DOCUMENT"))

    # Zero out embeddings for originally empty texts
    if empty_indices:
        zero_vector = [0.0] * settings.EMBEDDING_DIMENSION
        for idx in empty_indices:
            all_embeddings[idx] = zero_vector

    logger.info(f"Created {len(all_embeddings)} embeddings")
    return all_embeddings


def create_query_embedding(query: str) -> List[float]:
    """
    Create embedding for a search query.

    Args:
        query: Search query text

    Returns:
        Query embedding vector
    """
    if not query or not query.strip():
        return [0.0] * settings.EMBEDDING_DIMENSION

    return _embed_batch([query], "RETRIEVAL_QUERY")[0]


# ============================================================
# EMBEDDING CLASS (OOP Interface)
# ============================================================

class Embedder:
    """
    Object-oriented interface for embedding operations.

    The vector store takes one of these so tests can pass a fake.

    Usage:
        embedder = Embedder()
        embeddings = embedder.embed_batch(["Text 1", "Text 2"])
        query_embedding = embedder.embed_query("Search query")
    """

    @property
    def dimension(self) -> int:
        return settings.EMBEDDING_DIMENSION

    def embed_batch(self, texts: List[str], batch_size: Optional[int] = None) -> List[List[float]]:
        return create_embeddings(texts, batch_size)

    def embed_query(self, query: str) -> List[float]:
        return create_query_embedding(query)


# ============================================================
# MODEL WARMUP
# ============================================================

def warmup_model() -> dict:
    """
    Verify the Gemini embedding API is reachable.
    Creates one test embedding to validate the API key.

    Returns:
        Model info dictionary
    """
    logger.info("Warming up Gemini embedding API...")

    info = get_model_info()

    _ = create_query_embedding("warmup test")

    logger.info(f"Gemini embedding API ready: {info['name']}")
    return info
