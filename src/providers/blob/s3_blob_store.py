"""S3 blob store adapter.

Stores uploaded originals with ``put_object``, lists them with the
paginated ``list_objects_v2`` API and hands out presigned ``get_object``
URLs for the document library.  boto3 is synchronous, so every call runs
in a worker thread.
"""

from __future__ import annotations

import asyncio
from typing import Any

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from src.interfaces.blob_store import IBlobStore
from src.models.documents import BlobEntry
from src.utils.errors import BlobStoreError

logger = structlog.get_logger(logger_name=__name__)


class S3BlobStore(IBlobStore):
    """Blob store backed by a single S3 bucket."""

    def __init__(self, bucket: str, region: str = "", client: Any | None = None) -> None:
        self._bucket = bucket
        self._region = region
        if client is None:
            client = boto3.client("s3", region_name=region) if region else boto3.client("s3")
        self._s3_client = client

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        try:
            await asyncio.to_thread(
                self._s3_client.put_object,
                Bucket=self._bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as exc:
            raise BlobStoreError(
                message=f"S3 put_object failed for {key}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.info("blob_stored", bucket=self._bucket, key=key, size=len(data))
        return key

    async def list(self, prefix: str) -> list[BlobEntry]:
        try:
            return await asyncio.to_thread(self._list_sync, prefix)
        except (ClientError, BotoCoreError) as exc:
            raise BlobStoreError(
                message=f"S3 list_objects_v2 failed for {prefix}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def sign_url(self, key: str, ttl_seconds: int = 3600) -> str:
        try:
            return await asyncio.to_thread(
                self._s3_client.generate_presigned_url,
                ClientMethod="get_object",
                Params={"Bucket": self._bucket, "Key": key},
                ExpiresIn=ttl_seconds,
            )
        except (ClientError, BotoCoreError) as exc:
            raise BlobStoreError(
                message=f"S3 presign failed for {key}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    def get_provider_name(self) -> str:
        return "s3"

    def is_available(self) -> bool:
        """Return ``True`` if a bucket is configured."""
        return bool(self._bucket)

    def _list_sync(self, prefix: str) -> list[BlobEntry]:
        paginator = self._s3_client.get_paginator("list_objects_v2")
        entries: list[BlobEntry] = []
        for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix):
            for obj in page.get("Contents", []):
                entries.append(
                    BlobEntry(
                        key=obj["Key"],
                        size=obj.get("Size", 0),
                        last_modified=obj.get("LastModified"),
                    )
                )
        return entries
