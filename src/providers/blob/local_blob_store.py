"""Filesystem blob store with HMAC-signed download links.

Objects are written under a root directory (``uploads/`` by default) at
``{root}/{accountant}/{client}/{epoch_ms}-{filename}``.  Download links
carry an expiry timestamp and an HMAC-SHA256 signature:

    {base_url}/{key}?expires={unix_ts}&signature={hmac_hex}

where ``hmac_hex = HMAC-SHA256(secret, f"{key}:{unix_ts}")``.  Whatever
serves the files checks the link with :meth:`LocalBlobStore.verify_signature`.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import secrets
import time
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from urllib.parse import quote, urlencode

import structlog

from src.interfaces.blob_store import IBlobStore
from src.models.documents import BlobEntry
from src.utils.errors import BlobStoreError

logger = structlog.get_logger(logger_name=__name__)


class LocalBlobStore(IBlobStore):
    """Blob store backed by a local directory tree."""

    def __init__(
        self,
        root: str | Path = "uploads",
        signing_secret: str = "",
        base_url: str = "",
    ) -> None:
        self._root = Path(root)
        self._base_url = base_url.rstrip("/")
        if not signing_secret:
            # Links signed with a per-process secret stop verifying after a restart.
            signing_secret = secrets.token_hex(32)
            logger.warning("blob_signing_secret_generated", root=str(self._root))
        self._secret = signing_secret.encode("utf-8")

    # ------------------------------------------------------------------
    # IBlobStore implementation
    # ------------------------------------------------------------------

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        path = self._resolve(key)
        try:
            await asyncio.to_thread(self._write, path, data)
        except OSError as exc:
            raise BlobStoreError(
                message=f"Failed to write {key}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.info("blob_stored", key=key, size=len(data), content_type=content_type)
        return key

    async def list(self, prefix: str) -> list[BlobEntry]:
        """List files under *prefix*; a missing directory lists as empty."""
        base = self._resolve(prefix.rstrip("/")) if prefix.strip("/") else self._root
        try:
            return await asyncio.to_thread(self._scan, base)
        except OSError as exc:
            raise BlobStoreError(
                message=f"Failed to list {prefix}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def sign_url(self, key: str, ttl_seconds: int = 3600) -> str:
        expires = int(time.time()) + ttl_seconds
        query = urlencode({"expires": expires, "signature": self._signature(key, expires)})
        return f"{self._base_url}/{quote(key)}?{query}"

    def get_provider_name(self) -> str:
        return "local"

    def is_available(self) -> bool:
        try:
            self._root.mkdir(parents=True, exist_ok=True)
        except OSError:
            return False
        return True

    # ------------------------------------------------------------------
    # Link verification
    # ------------------------------------------------------------------

    def verify_signature(
        self,
        key: str,
        expires: int | str,
        signature: str,
        now: float | None = None,
    ) -> bool:
        """Return ``True`` if *signature* is valid for *key* and not expired.

        Uses a constant-time comparison.
        """
        try:
            expires_at = int(expires)
        except (TypeError, ValueError):
            return False
        current = time.time() if now is None else now
        if current > expires_at:
            return False
        expected = self._signature(key, expires_at)
        return hmac.compare_digest(expected, signature)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _signature(self, key: str, expires: int) -> str:
        message = f"{key}:{expires}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    def _resolve(self, key: str) -> Path:
        parts = PurePosixPath(key).parts
        if not parts or any(part in ("..", "") for part in parts) or key.startswith("/"):
            raise BlobStoreError(
                message=f"Invalid blob key: {key!r}",
                provider_name=self.get_provider_name(),
            )
        return self._root.joinpath(*parts)

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    def _scan(self, base: Path) -> list[BlobEntry]:
        if not base.is_dir():
            return []
        entries: list[BlobEntry] = []
        for path in sorted(base.rglob("*")):
            if not path.is_file():
                continue
            stat = path.stat()
            entries.append(
                BlobEntry(
                    key=path.relative_to(self._root).as_posix(),
                    size=stat.st_size,
                    last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                )
            )
        return entries
