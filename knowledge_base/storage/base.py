"""
Storage Backend Abstract Base Class

Interface every file storage backend implements. The document service
and the ingestion task only talk to this interface, so the backend can
be swapped through configuration.

Paths are relative keys such as ``documents/{id}/original.pdf``; the
backend decides where they physically live.
"""
from abc import ABC, abstractmethod
from typing import Optional
from dataclasses import dataclass
from datetime import datetime


@dataclass
class StoredFile:
    """
    Metadata about a stored file.

    Attributes:
        path: The storage path where file was saved
        size: File size in bytes
        content_type: MIME type of the file (e.g., "application/pdf")
        stored_at: When the file was stored
        checksum: SHA-256 of the content
    """
    path: str
    size: int
    content_type: str
    stored_at: datetime
    checksum: Optional[str] = None


class StorageError(Exception):
    """
    Base exception for storage operations.

        try:
            await storage.save(...)
        except StorageError as e:
            # Handle any storage error
    """
    pass


class FileNotFoundError(StorageError):
    """Raised when a requested file doesn't exist."""
    pass


class StorageBackend(ABC):
    """
    Abstract base class for file storage backends.

    Usage:
        storage = LocalStorage(base_path="/uploads")
        await storage.save(file_content, "documents/abc/original.pdf")
    """

    @abstractmethod
    async def save(
        self,
        file_content: bytes,
        destination_path: str,
        content_type: Optional[str] = None
    ) -> StoredFile:
        """
        Save file content to storage, creating directories as needed.

        Raises:
            StorageError: If the file cannot be saved
        """
        pass

    @abstractmethod
    async def get(self, path: str) -> bytes:
        """
        Retrieve file content from storage.

        Raises:
            FileNotFoundError: If the file doesn't exist
            StorageError: If the file cannot be retrieved
        """
        pass

    @abstractmethod
    async def delete(self, path: str) -> bool:
        """
        Delete a file from storage.

        Returns:
            True if file was deleted, False if it didn't exist

        Note:
            Must NOT raise if the file doesn't exist, so repeated
            deletes are safe.
        """
        pass

    @abstractmethod
    async def exists(self, path: str) -> bool:
        """Check if a file exists in storage."""
        pass

    @abstractmethod
    def local_path(self, path: str) -> str:
        """
        Filesystem path of a stored file.

        Used to stream downloads and to hand files to SDKs that
        only accept paths.
        """
        pass
