"""Listing of uploaded originals with time-limited download links.

When a chunk store is supplied, each listed document also carries the note
stored with its chunks, so the listing shows what was said about an upload
without reading the original.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone

import structlog

from src.interfaces.blob_store import IBlobStore
from src.interfaces.chunk_store import IChunkStore
from src.models.documents import StoredDocument, Tenant, check_key_segment
from src.utils.errors import InputValidationError

logger = structlog.get_logger(logger_name=__name__)

_TIMESTAMPED_NAME = re.compile(r"^(?P<ms>\d{10,})-(?P<original>.+)$")


def parse_source_filename(source_filename: str) -> tuple[datetime | None, str]:
    """Split ``{epoch_ms}-{original}`` into upload time and original name.

    Names without a timestamp prefix come back unchanged with no time.
    """
    match = _TIMESTAMPED_NAME.match(source_filename)
    if match is None:
        return None, source_filename
    uploaded = datetime.fromtimestamp(int(match["ms"]) / 1000, tz=timezone.utc)
    return uploaded, match["original"]


class DocumentLibrary:
    """Lists an accountant's uploads, optionally for one client.

    Parameters
    ----------
    blob_store:
        Holds the originals and signs their download links.
    chunk_store:
        Optional; the report sink is the natural choice since it is read
        in full per tenant anyway.
    """

    def __init__(self, blob_store: IBlobStore, chunk_store: IChunkStore | None = None) -> None:
        self._blob_store = blob_store
        self._chunk_store = chunk_store

    async def list_documents(
        self,
        accountant: str,
        client: str | None = None,
        url_ttl: int = 3600,
    ) -> list[StoredDocument]:
        """Return stored documents newest first, each with a signed URL."""
        try:
            accountant = check_key_segment(accountant or "")
        except ValueError as exc:
            raise InputValidationError("Missing or invalid accountant name.") from exc
        prefix = f"{accountant}/"
        if client is not None:
            try:
                client = check_key_segment(client)
            except ValueError as exc:
                raise InputValidationError("Invalid client name.") from exc
            prefix = f"{accountant}/{client}/"

        notes_by_client: dict[str, dict[str, str | None]] = {}
        documents: list[StoredDocument] = []
        for entry in await self._blob_store.list(prefix):
            parts = entry.key.split("/")
            if len(parts) != 3:
                continue
            _, entry_client, source_filename = parts
            uploaded_at, original = parse_source_filename(source_filename)
            note = None
            if self._chunk_store is not None:
                if entry_client not in notes_by_client:
                    notes_by_client[entry_client] = await self._stored_notes(
                        accountant, entry_client
                    )
                note = notes_by_client[entry_client].get(source_filename)
            documents.append(
                StoredDocument(
                    key=entry.key,
                    accountant=accountant,
                    client=entry_client,
                    source_filename=source_filename,
                    original_filename=original,
                    uploaded_at=uploaded_at or entry.last_modified,
                    size=entry.size,
                    url=await self._blob_store.sign_url(entry.key, url_ttl),
                    note=note,
                )
            )

        epoch = datetime.min.replace(tzinfo=timezone.utc)
        documents.sort(key=lambda d: (d.uploaded_at or epoch, d.key), reverse=True)
        logger.info("documents_listed", prefix=prefix, count=len(documents))
        return documents

    async def _stored_notes(self, accountant: str, client: str) -> dict[str, str | None]:
        """Map each source filename of the tenant to the note on its chunks."""
        try:
            tenant = Tenant(accountant=accountant, client=client)
        except ValueError:
            return {}
        notes: dict[str, str | None] = {}
        for chunk in await self._chunk_store.list_chunks(tenant):
            notes.setdefault(chunk.source_filename, chunk.note)
        return notes
