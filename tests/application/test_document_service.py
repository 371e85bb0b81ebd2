"""Tests for DocumentService: upload, dedup, reprocess, delete, search."""

import io
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi import UploadFile
from sqlalchemy import func, select

from knowledge_base.core.config import settings
from knowledge_base.models import Category, Document
from knowledge_base.schemas.document import DocumentQueryParams, DocumentStatus
from knowledge_base.services import document_service
from knowledge_base.services.document_service import (
    DocumentBusyError,
    DocumentNotFoundError,
    DocumentService,
    DocumentValidationError,
    DuplicateDocumentError,
)
from knowledge_base.tasks.document_tasks import process_document

from tests.application.conftest import paragraphs


async def _document_count(db_session) -> int:
    result = await db_session.execute(select(func.count(Document.id)))
    return result.scalar()


class TestUpload:
    @pytest.mark.asyncio
    async def test_creates_processing_document_and_enqueues(self, upload, user, storage, enqueue, db_session):
        document = await upload(user, b"Refunds are issued within 30 days.", "policy.txt")

        assert document.status == DocumentStatus.PROCESSING
        assert document.name == "policy.txt"
        assert document.media_type == "text/plain"
        assert document.size == 34
        assert document.user_id == user.id
        enqueue.assert_awaited_once_with(document.id)

        stored = await db_session.get(Document, document.id)
        assert len(stored.fingerprint) == 64
        assert await storage.exists(stored.storage_path)

    @pytest.mark.asyncio
    async def test_repairs_mojibake_filename(self, upload, user):
        document = await upload(user, b"Curriculum vitae", "RÃ©sumÃ©.txt")
        assert document.name == "Résumé.txt"

    @pytest.mark.asyncio
    async def test_duplicate_content_is_rejected(self, upload, user, other_user, enqueue, db_session):
        first = await upload(user, b"Same bytes, different uploader.", "a.txt")

        with pytest.raises(DuplicateDocumentError) as exc_info:
            await upload(other_user, b"Same bytes, different uploader.", "b.txt")

        error = exc_info.value
        assert error.existing_document.id == first.id
        assert error.existing_document.name == "a.txt"
        assert error.uploaded_by.email == "ana@example.com"
        assert error.uploaded_by.name == "Ana"
        assert await _document_count(db_session) == 1
        assert enqueue.await_count == 1

    @pytest.mark.asyncio
    async def test_oversize_file(self, upload, user, monkeypatch):
        monkeypatch.setattr(settings, "MAX_FILE_SIZE_MB", 1)

        with pytest.raises(DocumentValidationError) as exc_info:
            await upload(user, b"x" * (1024 * 1024 + 1), "big.txt")

        assert exc_info.value.too_large is True

    @pytest.mark.asyncio
    async def test_disallowed_type(self, upload, user, db_session):
        with pytest.raises(DocumentValidationError) as exc_info:
            await upload(user, b"MZ\x90\x00\x03\x00binary", "setup.exe")

        assert exc_info.value.too_large is False
        assert await _document_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_empty_file(self, upload, user):
        with pytest.raises(DocumentValidationError):
            await upload(user, b"", "empty.txt")

    @pytest.mark.asyncio
    async def test_unknown_category(self, upload, user):
        from uuid import uuid4

        with pytest.raises(DocumentValidationError):
            await upload(user, b"tagged", "tagged.txt", category_id=uuid4())

    @pytest.mark.asyncio
    async def test_with_category(self, upload, user, db_session):
        category = Category(name="Policies")
        db_session.add(category)
        await db_session.commit()

        document = await upload(user, b"tagged", "tagged.txt", category_id=category.id)

        assert document.category_id == category.id


class TestRead:
    @pytest.mark.asyncio
    async def test_other_user_cannot_see_document(self, upload, service, user, other_user):
        document = await upload(user, b"private notes", "private.txt")

        with pytest.raises(DocumentNotFoundError):
            await service.get_document(document.id, other_user.id)

    @pytest.mark.asyncio
    async def test_list_filters_by_status(self, upload, service, user, task_ctx, db_session):
        ready = await upload(user, b"first document", "one.txt")
        await upload(user, b"second document", "two.txt")
        await process_document(task_ctx, str(ready.id))

        everything = await service.list_documents(user.id)
        only_ready = await service.list_documents(user.id, DocumentQueryParams(status=DocumentStatus.READY))

        assert everything.total == 2
        assert only_ready.total == 1
        assert only_ready.documents[0].id == ready.id

    @pytest.mark.asyncio
    async def test_content_available_after_processing(self, upload, service, user, task_ctx):
        document = await upload(user, b"Line one.\r\n\r\n\r\nLine two.", "lines.txt")

        with pytest.raises(DocumentNotFoundError):
            await service.get_document_content(document.id, user.id)

        await process_document(task_ctx, str(document.id))
        service.db.expire_all()

        content = await service.get_document_content(document.id, user.id)
        assert content.content == "Line one.\n\nLine two."

    @pytest.mark.asyncio
    async def test_download_points_at_original(self, upload, service, user):
        document = await upload(user, b"download me", "me.txt")

        path, name, media_type = await service.get_download(document.id, user.id)

        assert name == "me.txt"
        assert media_type == "text/plain"
        with open(path, "rb") as f:
            assert f.read() == b"download me"


class TestReprocess:
    @pytest.mark.asyncio
    async def test_busy_while_processing(self, upload, service, user):
        document = await upload(user, b"still working", "busy.txt")

        with pytest.raises(DocumentBusyError):
            await service.reprocess_document(document.id, user.id)

    @pytest.mark.asyncio
    async def test_ready_document_is_requeued(self, upload, service, user, task_ctx, enqueue):
        document = await upload(user, b"finished work", "done.txt")
        await process_document(task_ctx, str(document.id))

        response = await service.reprocess_document(document.id, user.id)

        assert response.status == DocumentStatus.PROCESSING
        assert response.error_message is None
        assert response.processed_at is None
        assert enqueue.await_count == 2

        with pytest.raises(DocumentBusyError):
            await service.reprocess_document(document.id, user.id)

    @pytest.mark.asyncio
    async def test_other_user(self, upload, service, user, other_user):
        document = await upload(user, b"not yours", "mine.txt")

        with pytest.raises(DocumentNotFoundError):
            await service.reprocess_document(document.id, other_user.id)


class TestDelete:
    @pytest.mark.asyncio
    async def test_removes_everything_and_is_idempotent(
        self, upload, service, user, task_ctx, chroma_clients, storage, db_session
    ):
        document = await upload(user, paragraphs(3).encode(), "handbook.txt")
        await process_document(task_ctx, str(document.id))
        stored = await db_session.get(Document, document.id)
        await db_session.refresh(stored)
        original_path, text_path = stored.storage_path, stored.text_path
        assert chroma_clients["default"].vectors()

        assert await service.delete_document(document.id, user.id) is True
        assert await service.delete_document(document.id, user.id) is False

        assert await _document_count(db_session) == 0
        for client in chroma_clients.values():
            assert client.vectors() == {}
        assert not await storage.exists(original_path)
        assert not await storage.exists(text_path)

    @pytest.mark.asyncio
    async def test_other_user_cannot_delete(self, upload, service, user, other_user, db_session):
        document = await upload(user, b"keep me", "keep.txt")

        with pytest.raises(DocumentNotFoundError):
            await service.delete_document(document.id, other_user.id)

        assert await _document_count(db_session) == 1

    @pytest.mark.asyncio
    async def test_same_content_can_be_uploaded_again(self, upload, service, user):
        document = await upload(user, b"come back later", "again.txt")
        await service.delete_document(document.id, user.id)

        again = await upload(user, b"come back later", "again.txt")

        assert again.id != document.id

    @pytest.mark.asyncio
    async def test_job_finishing_between_sweep_and_row_delete(
        self, upload, service, user, task_ctx, pipeline, chroma_clients, monkeypatch, db_session
    ):
        document = await upload(user, paragraphs(3).encode(), "late.txt")
        real_sweep = pipeline.vector_store.delete_document
        sweeps = []
        job_results = []

        async def sweep_then_run_job(document_id):
            sweeps.append(document_id)
            await real_sweep(document_id)
            # The job sweeps too; only the first sweep lets it run
            if len(sweeps) == 1:
                job_results.append(await process_document(task_ctx, document_id))

        monkeypatch.setattr(pipeline.vector_store, "delete_document", sweep_then_run_job)

        assert await service.delete_document(document.id, user.id) is True

        assert len(sweeps) == 3
        assert job_results[0]["success"] is True
        assert job_results[0]["chunks_created"] > 0
        assert await _document_count(db_session) == 0
        for client in chroma_clients.values():
            assert client.vectors() == {}


class RecordingArqPool:
    """Refuses a job id it has already seen, as ARQ does while a result is kept."""

    def __init__(self):
        self.job_ids = []

    async def enqueue_job(self, function, *args, _job_id=None, **kwargs):
        if _job_id in self.job_ids:
            return None
        self.job_ids.append(_job_id)
        return SimpleNamespace(job_id=_job_id)


class RefusingArqPool:
    async def enqueue_job(self, function, *args, **kwargs):
        return None


class TestEnqueue:
    """The real queue path, with the ARQ pool replaced."""

    @pytest.fixture
    def queued_service(self, db_session, storage, pipeline):
        return DocumentService(db_session, storage=storage, pipeline=pipeline)

    async def _upload(self, queued_service, user, data: bytes):
        file = UploadFile(file=io.BytesIO(data), filename="queued.txt")
        result = await queued_service.upload_document(file=file, user_id=user.id)
        return result.document

    @pytest.mark.asyncio
    async def test_reprocess_right_after_a_run_gets_a_new_job(
        self, queued_service, user, task_ctx, monkeypatch, db_session
    ):
        pool = RecordingArqPool()
        monkeypatch.setattr(document_service, "get_arq_pool", AsyncMock(return_value=pool))
        document = await self._upload(queued_service, user, paragraphs(2).encode())
        await process_document(task_ctx, str(document.id))

        response = await queued_service.reprocess_document(document.id, user.id)
        assert response.status == DocumentStatus.PROCESSING

        assert len(pool.job_ids) == 2
        assert len(set(pool.job_ids)) == 2
        assert all(job_id.startswith(f"process_document:{document.id}:") for job_id in pool.job_ids)

        result = await process_document(task_ctx, str(document.id))
        assert result["success"] is True
        stored = await db_session.get(Document, document.id)
        await db_session.refresh(stored)
        assert stored.status == DocumentStatus.READY.value

    @pytest.mark.asyncio
    async def test_refused_job_runs_in_process(self, queued_service, user, monkeypatch):
        monkeypatch.setattr(document_service, "get_arq_pool", AsyncMock(return_value=RefusingArqPool()))
        run_inline = Mock()
        monkeypatch.setattr(queued_service, "_process_inline", run_inline)

        document = await self._upload(queued_service, user, b"refused by the queue")

        run_inline.assert_called_once_with(document.id)

    @pytest.mark.asyncio
    async def test_redis_unavailable_runs_in_process(self, queued_service, user, monkeypatch):
        monkeypatch.setattr(
            document_service, "get_arq_pool", AsyncMock(side_effect=ConnectionError("redis down"))
        )
        run_inline = Mock()
        monkeypatch.setattr(queued_service, "_process_inline", run_inline)

        document = await self._upload(queued_service, user, b"no redis today")

        run_inline.assert_called_once_with(document.id)


class TestSearch:
    @pytest.mark.asyncio
    async def test_hits_carry_document_metadata(self, upload, service, user, task_ctx):
        document = await upload(user, paragraphs(2).encode(), "faq.txt")
        await process_document(task_ctx, str(document.id))

        response = await service.search("refunds", index_name="archive")

        assert response.index == "archive"
        assert response.hits
        assert {hit.metadata.document_id for hit in response.hits} == {str(document.id)}
        assert response.hits[0].metadata.file_name == "faq.txt"

    @pytest.mark.asyncio
    async def test_unknown_index_reports_default(self, service):
        response = await service.search("anything", index_name="nope")

        assert response.index == "default"
        assert response.hits == []
