"""
Storage Factory

Selects the storage backend (S3 | mock) based on config.
The rest of the app only imports get_storage() — never touches
the concrete classes directly.
"""

from __future__ import annotations

from question_seeker.core.config import Settings
from question_seeker.storage.base import BaseStorage


def get_storage(settings: Settings) -> BaseStorage:
    """Return the storage backend named by settings.storage_backend."""
    backend = settings.storage_backend.lower()

    if backend == "s3":
        from question_seeker.storage.s3 import S3StorageService
        return S3StorageService(
            bucket=settings.s3_bucket,
            region=settings.aws_region,
            access_key_id=settings.aws_access_key_id,
            secret_access_key=settings.aws_secret_access_key,
            connect_timeout=settings.aws_connect_timeout_seconds,
            read_timeout=settings.aws_read_timeout_seconds,
        )

    if backend == "mock":
        from question_seeker.storage.s3 import MockStorageService
        return MockStorageService()

    raise ValueError(
        f"Unknown storage backend: '{backend}'. "
        f"Valid options: 's3', 'mock'"
    )
