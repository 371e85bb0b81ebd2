"""
Local Filesystem Storage Backend

Stores files under a base directory on the local machine.

Directory Structure:
-------------------
{base_path}/
└── documents/
    └── {document_id}/
        ├── original.{ext}
        └── text.txt

Security Considerations:
-----------------------
1. NEVER trust user-provided filenames directly
2. Storage keys are generated from document ids, not filenames
3. Every key is resolved and checked to stay under base_path
"""

import logging
import aiofiles
import aiofiles.os
from pathlib import Path
from datetime import datetime, timezone
from typing import Optional

from knowledge_base.storage.base import (
    StorageBackend,
    StoredFile,
    StorageError,
    FileNotFoundError as StorageFileNotFoundError,
)
from knowledge_base.utils.fingerprint import fingerprint

logger = logging.getLogger(__name__)


class LocalStorage(StorageBackend):
    """
    Local filesystem storage implementation.

    Uses async file I/O to avoid blocking the event loop.

    Attributes:
        base_path: Root directory for all file storage
    """

    def __init__(self, base_path: str):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

        logger.info(f"LocalStorage initialized at: {self.base_path.absolute()}")

    def _get_full_path(self, relative_path: str) -> Path:
        """
        Resolve a storage key to an absolute path under base_path.

        Raises:
            StorageError: If path would escape base_path
        """
        resolved = (self.base_path / relative_path).resolve()

        try:
            resolved.relative_to(self.base_path.resolve())
        except ValueError:
            logger.warning(f"Path traversal attempt detected: {relative_path}")
            raise StorageError(f"Invalid path: {relative_path}")

        return resolved

    def local_path(self, path: str) -> str:
        return str(self._get_full_path(path))

    async def save(
        self,
        file_content: bytes,
        destination_path: str,
        content_type: Optional[str] = None
    ) -> StoredFile:
        """
        Save file to local filesystem.

        Args:
            file_content: Raw bytes to save
            destination_path: Where to save (relative to base_path)
            content_type: MIME type (stored in metadata)

        Returns:
            StoredFile with path, size and checksum
        """
        try:
            full_path = self._get_full_path(destination_path)
            full_path.parent.mkdir(parents=True, exist_ok=True)

            async with aiofiles.open(full_path, 'wb') as f:
                await f.write(file_content)

            size = len(file_content)
            checksum = fingerprint(file_content)

            logger.info(
                f"File saved: {destination_path} "
                f"({size} bytes, checksum: {checksum[:8]}...)"
            )

            return StoredFile(
                path=destination_path,
                size=size,
                content_type=content_type or "application/octet-stream",
                stored_at=datetime.now(timezone.utc),
                checksum=checksum
            )

        except OSError as e:
            # Disk full, permission denied, ...
            logger.error(f"Failed to save file {destination_path}: {e}")
            raise StorageError(f"Failed to save file: {e}")

    async def get(self, path: str) -> bytes:
        """
        Read file content from storage.

        Raises:
            FileNotFoundError: If file doesn't exist
        """
        full_path = self._get_full_path(path)

        if not full_path.exists():
            logger.warning(f"File not found: {path}")
            raise StorageFileNotFoundError(f"File not found: {path}")

        if not full_path.is_file():
            raise StorageError(f"Path is not a file: {path}")

        try:
            async with aiofiles.open(full_path, 'rb') as f:
                content = await f.read()

            logger.debug(f"File read: {path} ({len(content)} bytes)")
            return content

        except OSError as e:
            logger.error(f"Failed to read file {path}: {e}")
            raise StorageError(f"Failed to read file: {e}")

    async def delete(self, path: str) -> bool:
        """
        Delete a file and, if it becomes empty, its parent directory.

        Idempotent: Returns False if file didn't exist (no error).
        """
        full_path = self._get_full_path(path)

        if not full_path.exists():
            logger.debug(f"File already doesn't exist: {path}")
            return False

        try:
            await aiofiles.os.remove(full_path)
            logger.info(f"File deleted: {path}")
        except FileNotFoundError:
            # Removed concurrently
            return False
        except OSError as e:
            logger.error(f"Failed to delete file {path}: {e}")
            raise StorageError(f"Failed to delete file: {e}")

        parent = full_path.parent
        if parent != self.base_path.resolve():
            try:
                await aiofiles.os.rmdir(parent)
            except OSError:
                # Not empty yet, or already gone
                pass

        return True

    async def exists(self, path: str) -> bool:
        """Check if file exists; invalid keys count as missing."""
        try:
            full_path = self._get_full_path(path)
            return full_path.exists() and full_path.is_file()
        except StorageError:
            return False
