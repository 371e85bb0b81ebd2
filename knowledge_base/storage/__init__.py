"""
Storage Module

File storage abstraction using the Strategy Pattern.
The active backend is determined by configuration (STORAGE_BACKEND setting).

Adding New Backends:
-------------------
1. Create new file: storage/s3.py
2. Implement S3Storage(StorageBackend)
3. Add to _create_storage_backend()
4. Allow the value in Settings.validate_storage_backend
"""

from knowledge_base.storage.base import (
    StorageBackend,
    StoredFile,
    StorageError,
    FileNotFoundError,
)
from knowledge_base.storage.local import LocalStorage
from knowledge_base.core.config import settings

# Created on first access, reused thereafter
_storage_instance: StorageBackend | None = None


def get_storage() -> StorageBackend:
    """
    Return the configured storage backend (singleton).

    Example:
        storage = get_storage()
        await storage.save(content, "documents/abc/original.pdf")
    """
    global _storage_instance

    if _storage_instance is None:
        _storage_instance = _create_storage_backend()

    return _storage_instance


def _create_storage_backend() -> StorageBackend:
    backend = settings.STORAGE_BACKEND.lower()

    if backend == "local":
        return LocalStorage(base_path=settings.UPLOAD_DIR)

    raise ValueError(
        f"Unknown storage backend: {backend}. "
        f"Valid options: local"
    )


def reset_storage() -> None:
    """
    Reset the storage singleton.

    After calling this, the next get_storage() call
    will create a new instance with current config.
    """
    global _storage_instance
    _storage_instance = None


__all__ = [
    "get_storage",
    "reset_storage",
    "StorageBackend",
    "StoredFile",
    "StorageError",
    "FileNotFoundError",
    "LocalStorage",
]
