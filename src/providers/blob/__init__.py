"""Blob store implementations for uploaded originals.

    LocalBlobStore -- directory tree under ``uploads/`` with HMAC-signed links.
    S3BlobStore    -- one S3 bucket via boto3, presigned download links.
"""

from src.providers.blob.local_blob_store import LocalBlobStore
from src.providers.blob.s3_blob_store import S3BlobStore

__all__ = ["LocalBlobStore", "S3BlobStore"]
