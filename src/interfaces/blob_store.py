"""Abstract base class for raw-document blob storage.

Uploaded bytes are stored verbatim under tenant-scoped keys of the form
``{accountant}/{client}/{epoch_ms}-{filename}``.  The store is also the
source of truth for the document listing shown to accountants, which
links each file through a time-limited signed URL.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.documents import BlobEntry


# Concrete implementations: LocalBlobStore (filesystem), S3BlobStore (boto3)
# Located in: src/providers/blob/
class IBlobStore(ABC):
    """Contract for the object store holding uploaded originals."""

    @abstractmethod
    async def put(self, key: str, data: bytes, content_type: str) -> str:
        """Store *data* under *key*, returning the key that was written.

        Raises
        ------
        src.utils.errors.BlobStoreError
            If the write fails.
        """

    @abstractmethod
    async def list(self, prefix: str) -> list[BlobEntry]:
        """Return every object whose key starts with *prefix*.

        A prefix of ``"jane/"`` lists all clients of one accountant;
        ``"jane/acme/"`` lists one client.
        """

    @abstractmethod
    async def sign_url(self, key: str, ttl_seconds: int = 3600) -> str:
        """Return a URL granting read access to *key* for *ttl_seconds*."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"local"`` or ``"s3"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the store is configured and writable."""
