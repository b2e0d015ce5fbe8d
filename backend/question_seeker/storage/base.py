"""
Abstract base class for blob storage backends.

All concrete backends (S3, mock) implement this interface so the pipeline
only ever depends on BaseStorage — never on a concrete class.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class BaseStorage(ABC):
    """Durable storage for uploaded documents."""

    @abstractmethod
    async def upload(self, local_path: str, file_name: str) -> str:
        """
        Store the file at local_path under a fresh unique key.

        Args:
            local_path: Path of the staged file on local disk.
            file_name:  Original file name; its extension is kept in the key.

        Returns:
            The publicly addressable URL of the stored object.

        Raises:
            ConfigurationError: Bucket or credentials are not configured.
            StorageError:       The object could not be written.
        """
