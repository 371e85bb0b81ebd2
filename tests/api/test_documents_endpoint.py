"""HTTP tests for the /documents endpoints with the service mocked out."""

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from knowledge_base.api.deps import get_current_user, get_document_service
from knowledge_base.main import app
from knowledge_base.models import Document
from knowledge_base.schemas.document import (
    DocumentListResponse,
    DocumentResponse,
    DocumentUploadResponse,
    UploaderInfo,
)
from knowledge_base.schemas.vector import ChunkVectorMetadata, Hit, SearchResponse
from knowledge_base.services.document_service import (
    DocumentBusyError,
    DocumentNotFoundError,
    DocumentService,
    DocumentServiceError,
    DocumentValidationError,
    DuplicateDocumentError,
)

PREFIX = "/api/v1/documents"
CALLER = SimpleNamespace(id=uuid4(), email="ana@example.com", name="Ana")


def _document(**overrides) -> Document:
    values = dict(
        id=uuid4(),
        user_id=CALLER.id,
        category_id=None,
        name="policy.txt",
        media_type="text/plain",
        size=34,
        status="processing",
        error_message=None,
        chunk_count=0,
        created_at=datetime.now(timezone.utc),
        processed_at=None,
    )
    values.update(overrides)
    return Document(**values)


@pytest.fixture
def service() -> AsyncMock:
    return AsyncMock(spec=DocumentService)


@pytest.fixture
def client(service):
    app.dependency_overrides[get_current_user] = lambda: CALLER
    app.dependency_overrides[get_document_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestUploadEndpoint:
    def test_created(self, client, service):
        document = _document()
        service.upload_document.return_value = DocumentUploadResponse(
            document=DocumentResponse.model_validate(document)
        )

        response = client.post(PREFIX, files={"file": ("policy.txt", b"Refunds are issued within 30 days.", "text/plain")})

        assert response.status_code == 201
        body = response.json()
        assert body["document"]["id"] == str(document.id)
        assert body["document"]["status"] == "processing"
        kwargs = service.upload_document.await_args.kwargs
        assert kwargs["user_id"] == CALLER.id
        assert kwargs["category_id"] is None

    def test_duplicate_returns_existing_document(self, client, service):
        existing = _document(status="ready", chunk_count=3)
        service.upload_document.side_effect = DuplicateDocumentError(
            existing, UploaderInfo(email="ben@example.com", name="Ben")
        )

        response = client.post(PREFIX, files={"file": ("copy.txt", b"same", "text/plain")})

        assert response.status_code == 409
        body = response.json()
        assert body["existing_document"]["id"] == str(existing.id)
        assert body["existing_document"]["status"] == "ready"
        assert body["uploaded_by"] == {"email": "ben@example.com", "name": "Ben"}

    def test_too_large(self, client, service):
        service.upload_document.side_effect = DocumentValidationError("File exceeds maximum size", too_large=True)

        response = client.post(PREFIX, files={"file": ("big.txt", b"x", "text/plain")})

        assert response.status_code == 413

    def test_invalid_file(self, client, service):
        service.upload_document.side_effect = DocumentValidationError("File type '.exe' not allowed")

        response = client.post(PREFIX, files={"file": ("setup.exe", b"MZ", "application/octet-stream")})

        assert response.status_code == 400
        assert "not allowed" in response.json()["detail"]

    def test_storage_failure(self, client, service):
        service.upload_document.side_effect = DocumentServiceError("disk full")

        response = client.post(PREFIX, files={"file": ("a.txt", b"a", "text/plain")})

        assert response.status_code == 500


class TestReadEndpoints:
    def test_get_document(self, client, service):
        document = _document(status="error", error_message="Text extraction failed (corrupt): bad xref")
        service.get_document.return_value = DocumentResponse.model_validate(document)

        response = client.get(f"{PREFIX}/{document.id}")

        assert response.status_code == 200
        assert response.json()["status"] == "error"
        assert response.json()["error_message"].startswith("Text extraction failed")

    def test_get_missing_document(self, client, service):
        service.get_document.side_effect = DocumentNotFoundError("Document not found")

        response = client.get(f"{PREFIX}/{uuid4()}")

        assert response.status_code == 404
        assert response.json()["detail"] == "Document not found"

    def test_list_passes_filters(self, client, service):
        service.list_documents.return_value = DocumentListResponse(documents=[], total=0)

        response = client.get(PREFIX, params={"status": "ready", "limit": 5})

        assert response.status_code == 200
        params = service.list_documents.await_args.kwargs["params"]
        assert params.status == "ready"
        assert params.limit == 5

    def test_search(self, client, service):
        service.search.return_value = SearchResponse(
            query="refunds",
            index="archive",
            hits=[Hit(id="d_chunk_0", score=0.9, text="Refunds...", metadata=ChunkVectorMetadata(document_id="d"))],
        )

        response = client.get(f"{PREFIX}/search", params={"q": "refunds", "index": "archive"})

        assert response.status_code == 200
        assert response.json()["hits"][0]["metadata"]["document_id"] == "d"
        service.search.assert_awaited_once_with("refunds", index_name="archive", top_k=None)

    def test_allowed_types(self, client):
        response = client.get(f"{PREFIX}/info/allowed-types")

        assert response.status_code == 200
        assert set(response.json()["allowed_extensions"]) == {"pdf", "docx", "txt"}


class TestReprocessEndpoint:
    def test_accepted(self, client, service):
        document = _document(status="processing")
        service.reprocess_document.return_value = DocumentResponse.model_validate(document)

        response = client.post(f"{PREFIX}/{document.id}/reprocess")

        assert response.status_code == 202
        assert response.json()["status"] == "processing"

    def test_busy(self, client, service):
        service.reprocess_document.side_effect = DocumentBusyError("Document is processing")

        response = client.post(f"{PREFIX}/{uuid4()}/reprocess")

        assert response.status_code == 409


class TestDeleteEndpoint:
    def test_no_content(self, client, service):
        service.delete_document.return_value = True

        response = client.delete(f"{PREFIX}/{uuid4()}")

        assert response.status_code == 204
        assert response.content == b""

    def test_already_deleted_still_succeeds(self, client, service):
        service.delete_document.return_value = False

        assert client.delete(f"{PREFIX}/{uuid4()}").status_code == 204

    def test_other_users_document(self, client, service):
        service.delete_document.side_effect = DocumentNotFoundError("Document not found")

        assert client.delete(f"{PREFIX}/{uuid4()}").status_code == 404

    def test_vector_cleanup_failure(self, client, service):
        service.delete_document.side_effect = DocumentServiceError("index down")

        assert client.delete(f"{PREFIX}/{uuid4()}").status_code == 500


class TestCurrentUser:
    @pytest.mark.asyncio
    async def test_malformed_header(self, db_session):
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(x_user_id="not-a-uuid", db=db_session)
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_unknown_user(self, db_session):
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(x_user_id=str(uuid4()), db=db_session)
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_known_user(self, db_session, user):
        resolved = await get_current_user(x_user_id=str(user.id), db=db_session)
        assert resolved.id == user.id
