"""Fixtures for service and background-task tests."""

import io
from unittest.mock import AsyncMock

import pytest
from fastapi import UploadFile

from knowledge_base.services.document_service import DocumentService


@pytest.fixture
def enqueue() -> AsyncMock:
    """Stands in for the job queue; tests run the task themselves."""
    return AsyncMock()


@pytest.fixture
def service(db_session, storage, pipeline, enqueue) -> DocumentService:
    return DocumentService(db_session, storage=storage, pipeline=pipeline, enqueue=enqueue)


@pytest.fixture
def upload(service):
    """Upload bytes as a user; returns the created document's response."""

    async def _upload(user, data: bytes, filename: str = "notes.txt", category_id=None):
        file = UploadFile(file=io.BytesIO(data), filename=filename)
        result = await service.upload_document(file=file, user_id=user.id, category_id=category_id)
        return result.document

    return _upload


def paragraphs(count: int, length: int = 150) -> str:
    """Distinct paragraphs of roughly ``length`` characters."""
    blocks = []
    for i in range(count):
        sentence = f"Paragraph {i} talks about refunds and returns. "
        body = (sentence * (length // len(sentence) + 1))[:length].rstrip()
        blocks.append(body.rstrip(".") + ".")
    return "\n\n".join(blocks)
