"""
Shared test fixtures and configuration for entire test suite.

Provides: in-memory SQLite database, fake ChromaDB clients, fake embedder,
local storage in a temp dir, a ready-made pipeline
"""

import os
import tempfile

# Settings are read at import time; point them at test resources first
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="kb-uploads-")
os.environ["GEMINI_API_KEY"] = ""
os.environ["REDIS_URL"] = "redis://localhost:6399/0"
os.environ["KNOWLEDGE_FILES_ENABLED"] = "false"

from typing import Any, Dict, List, Optional

import pytest
from chromadb.errors import NotFoundError
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from knowledge_base.core.indexes import VectorIndexConfig, VectorIndexRegistry
from knowledge_base.db.database import Base
from knowledge_base.db.vector_store import VectorStore
from knowledge_base.models import User
from knowledge_base.storage.local import LocalStorage
from knowledge_base.ai.rag.chunker import ChunkerConfig, TextChunker
from knowledge_base.ai.rag.pipeline import DocumentPipeline


# ============================================================
# FAKE CHROMADB
# ============================================================

class FakeCollection:
    """In-memory stand-in for a chromadb Collection."""

    def __init__(self, name: str, fail_upsert: bool = False):
        self.name = name
        self.fail_upsert = fail_upsert
        self.items: Dict[str, Dict[str, Any]] = {}

    def upsert(self, ids, embeddings, documents, metadatas):
        if self.fail_upsert:
            raise ConnectionError(f"index {self.name} unreachable")
        for i, vector_id in enumerate(ids):
            self.items[vector_id] = {
                "embedding": embeddings[i],
                "document": documents[i],
                "metadata": metadatas[i],
            }

    def delete(self, ids=None, where=None):
        if ids is not None:
            for vector_id in ids:
                self.items.pop(vector_id, None)
            return
        for vector_id in list(self.items):
            metadata = self.items[vector_id]["metadata"]
            if all(metadata.get(key) == value for key, value in where.items()):
                del self.items[vector_id]

    def query(self, query_embeddings, n_results, include=None):
        selected = list(self.items.items())[:n_results]
        return {
            "ids": [[vector_id for vector_id, _ in selected]],
            "documents": [[item["document"] for _, item in selected]],
            "metadatas": [[item["metadata"] for _, item in selected]],
            "distances": [[0.1 * i for i in range(len(selected))]],
        }


class FakeChromaClient:
    """In-memory stand-in for chromadb.HttpClient."""

    def __init__(self, fail_upsert: bool = False):
        self.fail_upsert = fail_upsert
        self.collections: Dict[str, FakeCollection] = {}

    def get_or_create_collection(self, name, metadata=None, embedding_function=None):
        if name not in self.collections:
            self.collections[name] = FakeCollection(name, fail_upsert=self.fail_upsert)
        return self.collections[name]

    def get_collection(self, name, embedding_function=None):
        if name not in self.collections:
            raise NotFoundError(f"Collection {name} does not exist.")
        return self.collections[name]

    def heartbeat(self):
        return 1

    def vectors(self, collection: str = "document_chunks") -> Dict[str, Dict[str, Any]]:
        """Stored items of a collection ({} if never created)."""
        found = self.collections.get(collection)
        return found.items if found else {}


class FakeEmbedder:
    """Deterministic embeddings, no network."""

    dimension = 3

    def embed_batch(self, texts: List[str], batch_size: Optional[int] = None) -> List[List[float]]:
        return [[float(len(text)), 1.0, 0.0] for text in texts]

    def embed_query(self, query: str) -> List[float]:
        return [float(len(query)), 1.0, 0.0]


# ============================================================
# VECTOR STORE
# ============================================================

@pytest.fixture
def index_registry() -> VectorIndexRegistry:
    return VectorIndexRegistry(
        default=VectorIndexConfig(name="default", url="http://chroma-1:8000"),
        extras=(VectorIndexConfig(name="archive", url="http://chroma-2:8000"),),
    )


@pytest.fixture
def chroma_clients() -> Dict[str, FakeChromaClient]:
    return {"default": FakeChromaClient(), "archive": FakeChromaClient()}


@pytest.fixture
def vector_store(index_registry, chroma_clients) -> VectorStore:
    return VectorStore(
        index_registry,
        embedder=FakeEmbedder(),
        client_factory=lambda index: chroma_clients[index.name],
        top_k=3,
        timeout=5,
    )


# ============================================================
# DATABASE
# ============================================================

@pytest.fixture
async def session_factory():
    """
    In-memory SQLite database shared by every session of one test.

    Yields:
        async_sessionmaker bound to the test engine
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # ON DELETE CASCADE needs foreign keys switched on in SQLite
    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def user(db_session) -> User:
    account = User(email="ana@example.com", name="Ana")
    db_session.add(account)
    await db_session.commit()
    await db_session.refresh(account)
    return account


@pytest.fixture
async def other_user(db_session) -> User:
    account = User(email="ben@example.com", name="Ben")
    db_session.add(account)
    await db_session.commit()
    await db_session.refresh(account)
    return account


# ============================================================
# STORAGE & PIPELINE
# ============================================================

@pytest.fixture
def storage(tmp_path) -> LocalStorage:
    return LocalStorage(base_path=str(tmp_path / "uploads"))


@pytest.fixture
def pipeline(vector_store) -> DocumentPipeline:
    """Pipeline with the deterministic chunker only (no Gemini)."""
    return DocumentPipeline(
        chunker=TextChunker(ChunkerConfig(chunk_size=200, overlap_ratio=0.1)),
        vector_store=vector_store,
        timeout=10,
    )


@pytest.fixture
def task_ctx(session_factory, pipeline, storage) -> Dict[str, Any]:
    """ARQ-style context with injected collaborators."""
    return {
        "job_id": "test-job",
        "job_try": 1,
        "session_factory": session_factory,
        "pipeline": pipeline,
        "storage": storage,
    }
