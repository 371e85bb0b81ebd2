"""Tests for the background processing task."""

from uuid import uuid4

import pytest
from sqlalchemy import select

from knowledge_base.ai.rag.chunker import ChunkerConfig, TextChunker
from knowledge_base.models import Chunk, Document
from knowledge_base.repositories.document_repo import DocumentRepository
from knowledge_base.schemas.document import DocumentStatus
from knowledge_base.schemas.vector import ChunkVectorMetadata, decode_vector_metadata, METADATA_FIELD
from knowledge_base.tasks.document_tasks import process_document

from tests.application.conftest import paragraphs


async def _reload(db_session, document_id) -> Document:
    document = await db_session.get(Document, document_id)
    if document is not None:
        await db_session.refresh(document)
    return document


async def _chunk_rows(db_session, document_id):
    result = await db_session.execute(
        select(Chunk).where(Chunk.document_id == document_id).order_by(Chunk.chunk_index)
    )
    return list(result.scalars().all())


class TestProcessDocument:
    @pytest.mark.asyncio
    async def test_success_marks_ready_and_replicates(
        self, upload, user, task_ctx, db_session, chroma_clients, storage
    ):
        uploaded = await upload(user, paragraphs(4).encode(), "handbook.txt")

        result = await process_document(task_ctx, str(uploaded.id))

        assert result["success"] is True
        assert result["chunks_created"] == 4

        document = await _reload(db_session, uploaded.id)
        assert document.status == DocumentStatus.READY.value
        assert document.chunk_count == 4
        assert document.error_message is None
        assert document.processed_at is not None
        assert await storage.exists(document.text_path)

        rows = await _chunk_rows(db_session, uploaded.id)
        expected_ids = [f"{uploaded.id}_chunk_{i}" for i in range(4)]
        assert [row.chunk_index for row in rows] == [0, 1, 2, 3]
        assert [row.vector_id for row in rows] == expected_ids

        for client in chroma_clients.values():
            stored = client.vectors()
            assert sorted(stored) == sorted(expected_ids)
            metadata = decode_vector_metadata(stored[expected_ids[2]]["metadata"][METADATA_FIELD])
            assert isinstance(metadata, ChunkVectorMetadata)
            assert metadata.document_id == str(uploaded.id)
            assert metadata.user_id == str(user.id)
            assert metadata.chunk_index == 2
            assert metadata.total_chunks == 4
            assert metadata.file_type == "text/plain"

    @pytest.mark.asyncio
    async def test_text_without_content_is_ready_with_no_chunks(self, upload, user, task_ctx, db_session):
        uploaded = await upload(user, b"   \n\n   ", "blank.txt")

        result = await process_document(task_ctx, str(uploaded.id))

        assert result["success"] is True
        document = await _reload(db_session, uploaded.id)
        assert document.status == DocumentStatus.READY.value
        assert document.chunk_count == 0

    @pytest.mark.asyncio
    async def test_corrupt_file_marks_error(self, upload, user, task_ctx, db_session, chroma_clients):
        uploaded = await upload(user, b"%PDF-1.4\nthis is not really a pdf", "broken.pdf")

        result = await process_document(task_ctx, str(uploaded.id))

        assert result["success"] is False
        document = await _reload(db_session, uploaded.id)
        assert document.status == DocumentStatus.ERROR.value
        assert document.error_message.startswith("Text extraction failed (corrupt)")
        assert document.chunk_count == 0
        assert chroma_clients["default"].vectors() == {}

    @pytest.mark.asyncio
    async def test_sync_failure_leaves_no_chunks_or_vectors(
        self, upload, user, task_ctx, db_session, chroma_clients
    ):
        chroma_clients["archive"].fail_upsert = True
        uploaded = await upload(user, paragraphs(2).encode(), "faq.txt")

        result = await process_document(task_ctx, str(uploaded.id))

        assert result["success"] is False
        document = await _reload(db_session, uploaded.id)
        assert document.status == DocumentStatus.ERROR.value
        assert "archive" in document.error_message
        assert await _chunk_rows(db_session, uploaded.id) == []
        for client in chroma_clients.values():
            assert client.vectors() == {}

    @pytest.mark.asyncio
    async def test_missing_original_file_marks_error(self, upload, user, task_ctx, db_session, storage):
        uploaded = await upload(user, b"soon gone", "gone.txt")
        stored = await _reload(db_session, uploaded.id)
        await storage.delete(stored.storage_path)

        await process_document(task_ctx, str(uploaded.id))

        document = await _reload(db_session, uploaded.id)
        assert document.status == DocumentStatus.ERROR.value
        assert "Failed to read original file" in document.error_message

    @pytest.mark.asyncio
    async def test_document_deleted_during_upsert(
        self, upload, user, task_ctx, session_factory, pipeline, chroma_clients, monkeypatch, db_session
    ):
        uploaded = await upload(user, paragraphs(3).encode(), "race.txt")
        real_upsert = pipeline.vector_store.upsert

        async def upsert_then_delete(records):
            ids = await real_upsert(records)
            async with session_factory() as other:
                await DocumentRepository(other).delete(uploaded.id)
            return ids

        monkeypatch.setattr(pipeline.vector_store, "upsert", upsert_then_delete)

        result = await process_document(task_ctx, str(uploaded.id))

        assert result["success"] is False
        assert result["error"] == "Document deleted during processing"
        for client in chroma_clients.values():
            assert client.vectors() == {}
        assert await _chunk_rows(db_session, uploaded.id) == []

    @pytest.mark.asyncio
    async def test_reprocess_replaces_previous_chunks(
        self, upload, service, user, task_ctx, pipeline, db_session, chroma_clients
    ):
        uploaded = await upload(user, paragraphs(4).encode(), "handbook.txt")
        await process_document(task_ctx, str(uploaded.id))
        assert len(chroma_clients["default"].vectors()) == 4

        await service.reprocess_document(uploaded.id, user.id)
        pipeline.chunker = TextChunker(ChunkerConfig(chunk_size=400, overlap_ratio=0.1))
        result = await process_document(task_ctx, str(uploaded.id))

        assert result["success"] is True
        document = await _reload(db_session, uploaded.id)
        assert document.status == DocumentStatus.READY.value

        rows = await _chunk_rows(db_session, uploaded.id)
        assert 0 < len(rows) < 4
        assert document.chunk_count == len(rows)
        expected_ids = {row.vector_id for row in rows}
        for client in chroma_clients.values():
            assert set(client.vectors()) == expected_ids

    @pytest.mark.asyncio
    async def test_document_not_processing_is_skipped(self, upload, user, task_ctx, db_session):
        uploaded = await upload(user, b"processed once", "once.txt")
        await process_document(task_ctx, str(uploaded.id))

        result = await process_document(task_ctx, str(uploaded.id))

        assert result["success"] is False
        assert result["error"] == "Document not in processing"
        document = await _reload(db_session, uploaded.id)
        assert document.status == DocumentStatus.READY.value

    @pytest.mark.asyncio
    async def test_missing_document_ends_quietly(self, task_ctx):
        result = await process_document(task_ctx, str(uuid4()))

        assert result["success"] is False
        assert result["error"] == "Document not found"

    @pytest.mark.asyncio
    async def test_invalid_document_id(self, task_ctx):
        result = await process_document(task_ctx, "not-a-uuid")
        assert result == {"success": False, "error": "Invalid document ID"}
