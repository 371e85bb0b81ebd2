"""
Vector Store Module

Keeps document chunks synchronized across every configured ChromaDB index.

Replication:
-----------
Each configured index (the default plus any named extras) receives the
same upserts and deletes, so a query against any index sees the same
chunks. A query targets one index, selected by name; unknown names fall
back to the default index.

Metadata:
--------
ChromaDB metadata values must be flat scalars. We store two keys per
vector:
- ``document_id``: plain string, used for filtered deletes
- ``category``: JSON encoding of ChunkVectorMetadata

Vectors written by older clients may hold a bare document id in
``category``; decoding turns those into LegacyVectorMetadata instead of
failing.

Embeddings are created by the Gemini embedder before the write, so the
collections never run an embedding function of their own.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

import chromadb
from chromadb.api import ClientAPI
from chromadb.api.models.Collection import Collection
from chromadb.config import Settings as ChromaSettings
from chromadb.errors import NotFoundError

from knowledge_base.core.config import settings
from knowledge_base.core.indexes import VectorIndexConfig, VectorIndexRegistry
from knowledge_base.ai.rag.embedder import Embedder
from knowledge_base.schemas.vector import (
    METADATA_FIELD,
    Hit,
    VectorRecord,
    decode_vector_metadata,
)

logger = logging.getLogger(__name__)

ClientFactory = Callable[[VectorIndexConfig], ClientAPI]


class VectorSyncError(Exception):
    """Raised when an operation could not be applied to every index."""

    def __init__(self, message: str, index_name: Optional[str] = None):
        self.index_name = index_name
        super().__init__(message)


# ============================================================
# CHROMADB CLIENTS
# ============================================================

def create_http_client(index: VectorIndexConfig) -> ClientAPI:
    """
    Connect to the ChromaDB server behind an index.

    Args:
        index: Index configuration with the server URL

    Returns:
        ChromaDB HTTP client
    """
    logger.info(f"Connecting to ChromaDB index '{index.name}' at {index.host}:{index.port}")
    return chromadb.HttpClient(
        host=index.host,
        port=index.port,
        ssl=index.ssl,
        settings=ChromaSettings(anonymized_telemetry=False),
    )


# ============================================================
# VECTOR STORE CLASS
# ============================================================

class VectorStore:
    """
    Replicated vector storage for document chunks.

    Usage:
        store = VectorStore(settings.vector_indexes)

        ids = await store.upsert(records)
        hits = await store.query("How do refunds work?", index_name="archive")
        await store.delete(ids)
        await store.delete_document(document_id)

    Clients are created lazily, one per index, and reused.
    """

    def __init__(
        self,
        indexes: VectorIndexRegistry,
        embedder: Optional[Embedder] = None,
        client_factory: Optional[ClientFactory] = None,
        top_k: int = 3,
        timeout: Optional[float] = None,
    ):
        self.indexes = indexes
        self.embedder = embedder or Embedder()
        self.client_factory = client_factory or create_http_client
        self.top_k = top_k
        self.timeout = timeout
        self._clients: Dict[str, ClientAPI] = {}

    # ============================================================
    # CLIENT / COLLECTION ACCESS
    # ============================================================

    def _client(self, index: VectorIndexConfig) -> ClientAPI:
        client = self._clients.get(index.name)
        if client is None:
            client = self.client_factory(index)
            self._clients[index.name] = client
        return client

    def _get_or_create_collection(self, index: VectorIndexConfig) -> Collection:
        return self._client(index).get_or_create_collection(
            name=index.collection,
            metadata={"hnsw:space": "cosine"},
            embedding_function=None,
        )

    def _get_collection(self, index: VectorIndexConfig) -> Optional[Collection]:
        """Existing collection, or None if it was never created."""
        try:
            return self._client(index).get_collection(
                name=index.collection,
                embedding_function=None,
            )
        except NotFoundError:
            return None

    async def _run(self, func: Callable[..., Any], *args, **kwargs) -> Any:
        """Run a blocking client call in a thread, bounded by the timeout."""
        return await asyncio.wait_for(
            asyncio.to_thread(func, *args, **kwargs),
            timeout=self.timeout,
        )

    # ============================================================
    # WRITE OPERATIONS
    # ============================================================

    async def upsert(self, records: List[VectorRecord]) -> List[str]:
        """
        Write chunks to every configured index.

        All indexes receive the identical batch. If any index fails, the
        ids are removed again from the indexes that already accepted
        them and VectorSyncError is raised.

        Args:
            records: Chunks with their structured metadata

        Returns:
            Accepted ids, in input order

        Raises:
            VectorSyncError: If any index rejected the batch
        """
        if not records:
            return []

        ids = [record.id for record in records]
        texts = [record.text for record in records]
        metadatas = [
            {
                "document_id": record.metadata.document_id or "",
                METADATA_FIELD: record.metadata.encode(),
            }
            for record in records
        ]

        try:
            embeddings = await self._run(self.embedder.embed_batch, texts)
        except Exception as e:
            raise VectorSyncError(f"Embedding failed: {e}") from e

        written: List[VectorIndexConfig] = []

        for index in self.indexes:
            try:
                await self._run(self._upsert_one, index, ids, embeddings, texts, metadatas)
            except Exception as e:
                logger.error(f"Upsert of {len(ids)} vectors to index '{index.name}' failed: {e}")
                await self._compensate(written, ids)
                raise VectorSyncError(
                    f"Upsert to vector index '{index.name}' failed: {e}",
                    index_name=index.name,
                ) from e
            written.append(index)

        logger.info(f"Upserted {len(ids)} vectors to {len(written)} index(es)")
        return ids

    def _upsert_one(
        self,
        index: VectorIndexConfig,
        ids: List[str],
        embeddings: List[List[float]],
        documents: List[str],
        metadatas: List[Dict[str, Any]],
    ) -> None:
        collection = self._get_or_create_collection(index)
        collection.upsert(
            ids=ids,
            embeddings=embeddings,
            documents=documents,
            metadatas=metadatas,
        )

    async def _compensate(self, indexes: List[VectorIndexConfig], ids: List[str]) -> None:
        """Best-effort removal of a partially replicated batch."""
        for index in indexes:
            try:
                await self._run(self._delete_one, index, ids, None)
                logger.info(f"Rolled back {len(ids)} vectors on index '{index.name}'")
            except Exception as e:
                logger.error(f"Rollback on index '{index.name}' failed, vectors may be orphaned: {e}")

    # ============================================================
    # DELETE OPERATIONS
    # ============================================================

    async def delete(self, ids: List[str]) -> None:
        """
        Remove vectors by id from every index.

        Ids that do not exist, or a collection that was never created,
        count as already deleted.

        Raises:
            VectorSyncError: If any index could not be reached
        """
        if not ids:
            return
        await self._delete_everywhere(ids=ids, where=None)
        logger.info(f"Deleted {len(ids)} vectors from {len(self.indexes)} index(es)")

    async def delete_document(self, document_id: str) -> None:
        """
        Remove every vector of a document from every index.

        Catches vectors whose ids were never recorded locally, e.g. from
        an attempt that failed after the upsert.
        """
        await self._delete_everywhere(ids=None, where={"document_id": str(document_id)})
        logger.info(f"Deleted vectors of document {document_id} from all indexes")

    async def _delete_everywhere(
        self,
        ids: Optional[List[str]],
        where: Optional[Dict[str, Any]],
    ) -> None:
        failures = []
        for index in self.indexes:
            try:
                await self._run(self._delete_one, index, ids, where)
            except Exception as e:
                logger.error(f"Delete on vector index '{index.name}' failed: {e}")
                failures.append(index.name)

        if failures:
            raise VectorSyncError(f"Delete failed on vector index(es): {', '.join(failures)}")

    def _delete_one(
        self,
        index: VectorIndexConfig,
        ids: Optional[List[str]],
        where: Optional[Dict[str, Any]],
    ) -> None:
        collection = self._get_collection(index)
        if collection is None:
            logger.debug(f"Index '{index.name}' has no collection yet, nothing to delete")
            return
        if ids is not None:
            collection.delete(ids=ids)
        else:
            collection.delete(where=where)

    # ============================================================
    # SEARCH OPERATIONS
    # ============================================================

    async def query(
        self,
        text: str,
        index_name: Optional[str] = None,
        top_k: Optional[int] = None,
    ) -> List[Hit]:
        """
        Similarity search against one index.

        Args:
            text: Query text
            index_name: Target index; unknown or missing names use the default
            top_k: Number of hits (defaults to the configured top-K)

        Returns:
            Hits ordered by decreasing score
        """
        index = self.indexes.resolve(index_name)
        if index_name and index.name != index_name:
            logger.warning(f"Unknown vector index '{index_name}', querying '{index.name}'")

        query_embedding = await self._run(self.embedder.embed_query, text)
        results = await self._run(self._query_one, index, query_embedding, top_k or self.top_k)

        if not results or not results.get("ids") or not results["ids"][0]:
            return []

        hits = []
        documents = (results.get("documents") or [[]])[0]
        metadatas = (results.get("metadatas") or [[]])[0]
        distances = (results.get("distances") or [[]])[0]

        for i, vector_id in enumerate(results["ids"][0]):
            metadata = (metadatas[i] if i < len(metadatas) else None) or {}
            raw = metadata.get(METADATA_FIELD) or metadata.get("document_id") or ""
            distance = distances[i] if i < len(distances) else 1.0

            hits.append(Hit(
                id=vector_id,
                # Cosine distance: 0 is identical
                score=1.0 - float(distance),
                text=(documents[i] if i < len(documents) else None) or "",
                metadata=decode_vector_metadata(raw),
            ))

        logger.debug(f"Query on '{index.name}' returned {len(hits)} hits")
        return hits

    def _query_one(
        self,
        index: VectorIndexConfig,
        query_embedding: List[float],
        top_k: int,
    ) -> Optional[Dict[str, Any]]:
        collection = self._get_collection(index)
        if collection is None:
            return None
        return collection.query(
            query_embeddings=[query_embedding],
            n_results=top_k,
            include=["documents", "metadatas", "distances"],
        )

    # ============================================================
    # HEALTH
    # ============================================================

    def health(self) -> Dict[str, bool]:
        """Heartbeat every index; name -> reachable."""
        status = {}
        for index in self.indexes:
            try:
                self._client(index).heartbeat()
                status[index.name] = True
            except Exception as e:
                logger.error(f"Vector index '{index.name}' health check failed: {e}")
                status[index.name] = False
        return status


# ============================================================
# SINGLETON INSTANCE
# ============================================================

_vector_store: Optional[VectorStore] = None


def get_vector_store() -> VectorStore:
    """Get or create VectorStore singleton."""
    global _vector_store

    if _vector_store is None:
        _vector_store = VectorStore(
            indexes=settings.vector_indexes,
            top_k=settings.VECTOR_QUERY_TOP_K,
            timeout=settings.EXTERNAL_CALL_TIMEOUT_SECONDS,
        )

    return _vector_store


def reset_vector_store() -> None:
    """Reset VectorStore singleton."""
    global _vector_store
    _vector_store = None
