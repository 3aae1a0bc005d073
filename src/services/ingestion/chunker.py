"""Fixed-size character chunking.

Splits extracted document text into contiguous, non-overlapping slices of
``chunk_size`` characters.  The last slice may be shorter.  Concatenating
the slices always gives back the original text exactly, so no character of
a client document is lost or duplicated between chunks.
"""

from __future__ import annotations

from datetime import datetime, timezone

import structlog

from src.models.documents import DocumentChunk, Tenant

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_CHUNK_SIZE = 500


def chunk_text(text: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> list[str]:
    """Split *text* into slices of at most *chunk_size* characters.

    >>> chunk_text("abcdefg", 3)
    ['abc', 'def', 'g']

    Raises
    ------
    ValueError
        If *chunk_size* is smaller than 1.
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
    return [text[i : i + chunk_size] for i in range(0, len(text), chunk_size)]


class TextChunker:
    """Configured chunker used by the ingestion pipeline.

    Parameters
    ----------
    chunk_size:
        Characters per chunk (default 500).
    """

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
        self._chunk_size = chunk_size

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    def chunk(self, text: str) -> list[str]:
        """Split *text* into ordered chunk texts."""
        pieces = chunk_text(text, self._chunk_size)
        logger.debug("text_chunked", chars=len(text), chunks=len(pieces), chunk_size=self._chunk_size)
        return pieces

    @staticmethod
    def build_chunk(
        tenant: Tenant,
        source_filename: str,
        chunk_index: int,
        sequence_text: str,
        embedding: list[float],
        note: str | None = None,
        created_at: datetime | None = None,
    ) -> DocumentChunk:
        """Assemble the stored record for one embedded chunk.

        ``category`` is always ``None`` at this stage; labels are applied
        later by a separate backfill.
        """
        return DocumentChunk(
            tenant=tenant,
            source_filename=source_filename,
            chunk_index=chunk_index,
            sequence_text=sequence_text,
            embedding=embedding,
            category=None,
            note=note,
            created_at=created_at or datetime.now(tz=timezone.utc),
        )
