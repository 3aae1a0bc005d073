"""Orchestrator for the client document ingestion pipeline.

Pipeline stages: **store -> extract -> chunk -> embed -> write -> annotate**.

The :class:`IngestionPipeline` coordinates its collaborators (blob store,
text extractor, chunker, embedding provider, the two chunk sinks and the
optional annotator) without any of them knowing about each other:

    1. IBlobStore -- keeps the original bytes under
       ``{accountant}/{client}/{epoch_ms}-{filename}``
    2. TextExtractor -- PDF text layer, OCR fallback, text decode, or the
       "No text extracted" placeholder for any other media type
    3. TextChunker -- fixed-size character slices
    4. IEmbeddingProvider + IChunkStore x2 -- per chunk, in order: embed,
       then write to the report sink and the chat sink
    5. DocumentAnnotator -- best-effort summary and category label

Blank extracted text yields no chunks.  A failure in step 4 stops the run
and leaves the earlier chunks in place; nothing is rolled back.  Step 5
can never fail an ingestion, and its summary is only returned on the
result because the chunks are already written by then.

All dependencies are injected via constructor, so providers can be swapped
(e.g. ChromaDB -> in-memory stores in tests) without changing this class.
"""

from __future__ import annotations

import asyncio
import re
import time
from typing import TYPE_CHECKING, Callable

import structlog

from src.models.documents import DocumentChunk, ExtractionResult, IngestionResult, Tenant
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.document_annotator import UNCLEAR
from src.utils.concurrency import first_failure, throttled_gather, with_timeout
from src.utils.errors import (
    BlobStoreError,
    EmbeddingError,
    ExtractionError,
    InputValidationError,
    PartialIngestionError,
    ServiceTimeoutError,
    UnsupportedMediaTypeError,
)

if TYPE_CHECKING:
    from src.interfaces.blob_store import IBlobStore
    from src.interfaces.chunk_store import IChunkStore
    from src.interfaces.embedding_provider import IEmbeddingProvider
    from src.services.ingestion.document_annotator import DocumentAnnotator
    from src.services.ingestion.text_extractor import TextExtractor

logger = structlog.get_logger(logger_name=__name__)

# Path separators and control characters never reach a blob key.
_UNSAFE_FILENAME_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def _epoch_ms() -> int:
    return time.time_ns() // 1_000_000


def sanitize_filename(original_filename: str) -> str:
    """Reduce an uploaded filename to a safe single path segment.

    Directory components (``/`` or ``\\``) are dropped and control
    characters removed.  Returns ``""`` when nothing usable is left.
    """
    name = original_filename.replace("\\", "/").rsplit("/", 1)[-1]
    name = _UNSAFE_FILENAME_CHARS.sub("", name).strip()
    if name in (".", ".."):
        return ""
    return name


class IngestionPipeline:
    """Runs one uploaded document through storage, extraction and indexing.

    Parameters
    ----------
    blob_store:
        Keeps the original upload bytes.
    extractor:
        Turns bytes into text according to the media type.
    chunker:
        Splits extracted text into fixed-size pieces.
    embedding_provider:
        Embeds each piece.
    report_store:
        Sink read in full by the report service.
    chat_store:
        Sink queried by similarity when answering questions.
    annotator:
        Optional best-effort summarizer/categorizer.
    embed_concurrency:
        How many chunk embeddings may be in flight at once (default 1).
    call_timeout:
        Seconds allowed for each external call; ``0`` disables timeouts.
    clock:
        Millisecond epoch clock used for upload names.
    """

    def __init__(
        self,
        blob_store: IBlobStore,
        extractor: TextExtractor,
        chunker: TextChunker,
        embedding_provider: IEmbeddingProvider,
        report_store: IChunkStore,
        chat_store: IChunkStore,
        annotator: DocumentAnnotator | None = None,
        embed_concurrency: int = 1,
        call_timeout: float = 60.0,
        clock: Callable[[], int] = _epoch_ms,
    ) -> None:
        self._blob_store = blob_store
        self._extractor = extractor
        self._chunker = chunker
        self._embedding_provider = embedding_provider
        self._report_store = report_store
        self._chat_store = chat_store
        self._annotator = annotator
        self._embed_concurrency = max(1, embed_concurrency)
        self._call_timeout = call_timeout
        self._clock = clock
        self._last_timestamp = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def ingest(
        self,
        data: bytes,
        media_type: str,
        tenant: Tenant,
        original_filename: str,
        user_note: str | None = None,
    ) -> IngestionResult:
        """Store, extract, chunk, embed and index one uploaded document.

        Returns
        -------
        IngestionResult
            Storage key, chunk count, extraction method and the
            (possibly degraded) note and category.

        Raises
        ------
        InputValidationError
            Empty upload, missing filename, or bad tenant; nothing stored.
        UnsupportedMediaTypeError
            No media type declared; nothing stored.
        BlobStoreError
            The original could not be stored; nothing else happened.
        ExtractionError
            Text could not be extracted; the blob stays, no chunks written.
        PartialIngestionError
            Embedding or writing chunk *i* failed; chunks before *i* stay
            in both sinks.
        """
        start = time.monotonic()
        filename = self._validate(data, media_type, tenant, original_filename)
        note = (user_note.strip() or None) if user_note is not None else None

        source_filename = f"{self._next_timestamp()}-{filename}"
        storage_key = f"{tenant.prefix}/{source_filename}"

        with structlog.contextvars.bound_contextvars(
            storage_key=storage_key,
            source_filename=source_filename,
        ):
            logger.info("ingestion_started", media_type=media_type, size=len(data))

            await self._store_blob(storage_key, data, media_type)
            extraction = await self._extract(data, media_type)
            pieces = self._chunker.chunk(extraction.text) if extraction.text.strip() else []

            written = await self._embed_and_write(
                pieces, tenant, source_filename, storage_key, note
            )

            result_note, category = await self._annotate(extraction, note)

            elapsed = time.monotonic() - start
            logger.info(
                "ingestion_complete",
                chunks=written,
                extraction_method=extraction.method,
                category=category,
                elapsed_s=round(elapsed, 3),
            )
            return IngestionResult(
                storage_key=storage_key,
                source_filename=source_filename,
                chunk_count=written,
                extraction_method=extraction.method,
                note=result_note,
                category=category,
                ingestion_time=elapsed,
            )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _validate(
        self, data: bytes, media_type: str, tenant: Tenant, original_filename: str
    ) -> str:
        if not isinstance(tenant, Tenant):
            raise InputValidationError("Missing accountant or client name.")
        if not data:
            raise InputValidationError("No file uploaded.")
        filename = sanitize_filename(original_filename or "")
        if not filename:
            raise InputValidationError("Missing or invalid filename.")
        if not media_type or not self._extractor.supports(media_type):
            raise UnsupportedMediaTypeError(f"Missing media type: {media_type!r}")
        return filename

    def _next_timestamp(self) -> int:
        """Millisecond timestamp, strictly increasing for this pipeline."""
        now = self._clock()
        if now <= self._last_timestamp:
            now = self._last_timestamp + 1
        self._last_timestamp = now
        return now

    async def _store_blob(self, storage_key: str, data: bytes, media_type: str) -> None:
        provider = self._blob_store.get_provider_name()
        try:
            await with_timeout(
                self._blob_store.put(storage_key, data, media_type),
                self._call_timeout,
                "blob put",
                provider,
            )
        except BlobStoreError:
            logger.error("blob_store_failed")
            raise
        except (ServiceTimeoutError, OSError) as exc:
            logger.error("blob_store_failed", error=str(exc))
            raise BlobStoreError(
                message=f"Failed to store {storage_key}: {exc}", provider_name=provider
            ) from exc

    async def _extract(self, data: bytes, media_type: str) -> ExtractionResult:
        # OCR calls are time-limited per page inside the extractor.
        try:
            return await self._extractor.extract(data, media_type)
        except ExtractionError as exc:
            logger.error("extraction_failed", error=str(exc))
            raise

    async def _embed_and_write(
        self,
        pieces: list[str],
        tenant: Tenant,
        source_filename: str,
        storage_key: str,
        note: str | None,
    ) -> int:
        """Embed and write chunks in order, stopping at the first failure.

        Embeddings are computed in windows of ``embed_concurrency``; writes
        always happen one chunk at a time in chunk order.
        """
        written = 0
        window = self._embed_concurrency
        semaphore = asyncio.Semaphore(window)
        try:
            for start in range(0, len(pieces), window):
                batch = pieces[start : start + window]
                vectors = await throttled_gather(
                    [self._embed(piece) for piece in batch], semaphore
                )
                failed = first_failure(vectors)
                ready = vectors if failed is None else vectors[:failed]

                for offset, vector in enumerate(ready):
                    index = start + offset
                    chunk = self._chunker.build_chunk(
                        tenant=tenant,
                        source_filename=source_filename,
                        chunk_index=index,
                        sequence_text=batch[offset],
                        embedding=vector,
                        note=note,
                    )
                    try:
                        await self._write(chunk)
                    except Exception as exc:
                        raise self._partial_failure(
                            exc, "write", index, written, source_filename, storage_key
                        ) from exc
                    written += 1

                if failed is not None:
                    exc = vectors[failed]
                    raise self._partial_failure(
                        exc, "embed", start + failed, written, source_filename, storage_key
                    ) from exc
        except asyncio.CancelledError:
            logger.warning("ingestion_cancelled", chunks_written=written, chunks_total=len(pieces))
            raise
        return written

    async def _embed(self, text: str) -> list[float]:
        vector = await with_timeout(
            self._embedding_provider.embed_single(text),
            self._call_timeout,
            "embedding",
            self._embedding_provider.get_provider_name(),
        )
        if not vector:
            raise EmbeddingError(
                message="Embedding service returned an empty vector",
                provider_name=self._embedding_provider.get_provider_name(),
            )
        return vector

    async def _write(self, chunk: DocumentChunk) -> None:
        for store in (self._report_store, self._chat_store):
            await with_timeout(
                store.add_chunk(chunk),
                self._call_timeout,
                "chunk write",
                store.get_provider_name(),
            )

    @staticmethod
    def _partial_failure(
        exc: BaseException,
        stage: str,
        index: int,
        written: int,
        source_filename: str,
        storage_key: str,
    ) -> PartialIngestionError:
        logger.error(
            "chunk_ingestion_failed",
            stage=stage,
            failed_chunk_index=index,
            chunks_written=written,
            error=str(exc),
        )
        return PartialIngestionError(
            message=f"Chunk {index} {stage} failed: {exc}",
            source_filename=source_filename,
            storage_key=storage_key,
            failed_chunk_index=index,
            chunks_written=written,
            provider_name=getattr(exc, "provider_name", None),
        )

    async def _annotate(
        self, extraction: ExtractionResult, note: str | None
    ) -> tuple[str | None, str]:
        """Summary and category for the result; degrade on any failure."""
        if self._annotator is None or extraction.method == "placeholder" or not extraction.text.strip():
            return note, UNCLEAR

        summary: str | None = note
        category = UNCLEAR
        try:
            summary = await with_timeout(
                self._annotator.summarize(extraction.text),
                self._call_timeout,
                "summarize",
            ) or note
        except Exception as exc:
            logger.warning("summary_generation_failed", error=str(exc))
        try:
            category = await with_timeout(
                self._annotator.categorize(extraction.text),
                self._call_timeout,
                "categorize",
            )
        except Exception as exc:
            logger.warning("category_generation_failed", error=str(exc))
        return summary, category
