"""Integration tests for the document ingestion pipeline.

Runs uploads end to end through a real local blob store, the PyMuPDF
extractor, fixed-size chunking and the in-memory chunk sinks, with
deterministic embedding and OCR doubles (no real API calls).
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from src.interfaces.llm_provider import ILLMProvider
from src.models.documents import NO_TEXT_PLACEHOLDER, DocumentChunk, Tenant
from src.providers.blob.local_blob_store import LocalBlobStore
from src.providers.vector_store.memory_store import InMemoryChunkStore
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.document_annotator import DocumentAnnotator
from src.services.ingestion.ingestion_service import IngestionPipeline, sanitize_filename
from src.services.ingestion.text_extractor import TextExtractor
from src.utils.errors import (
    BlobStoreError,
    ChunkStoreError,
    ExtractionError,
    InputValidationError,
    LLMError,
    OCRExtractionError,
    PartialIngestionError,
    UnsupportedMediaTypeError,
)
from tests.conftest import MockEmbeddingProvider, RecordingOCRProvider, make_pdf

# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


class FailingChunkStore(InMemoryChunkStore):
    """In-memory sink that rejects the write of one chunk index."""

    def __init__(self, name: str, fail_on_index: int) -> None:
        super().__init__(name=name)
        self._fail_on_index = fail_on_index

    async def add_chunk(self, chunk: DocumentChunk) -> None:
        if chunk.chunk_index == self._fail_on_index:
            raise ChunkStoreError("write rejected", provider_name=self.get_provider_name())
        await super().add_chunk(chunk)


class BlockingEmbeddingProvider(MockEmbeddingProvider):
    """Blocks forever on the n-th call and signals when it gets there."""

    def __init__(self, block_on_call: int) -> None:
        super().__init__()
        self._block_on_call = block_on_call
        self.reached = asyncio.Event()

    async def embed_single(self, text: str) -> list[float]:
        if len(self.calls) + 1 == self._block_on_call:
            self.calls.append(text)
            self.reached.set()
            await asyncio.Event().wait()
        return await super().embed_single(text)


def _build_pipeline(
    blob_store: LocalBlobStore,
    extractor: TextExtractor,
    embedding_provider: MockEmbeddingProvider,
    report_store: InMemoryChunkStore,
    chat_store: InMemoryChunkStore,
    **kwargs,
) -> IngestionPipeline:
    return IngestionPipeline(
        blob_store=blob_store,
        extractor=extractor,
        chunker=TextChunker(chunk_size=500),
        embedding_provider=embedding_provider,
        report_store=report_store,
        chat_store=chat_store,
        clock=lambda: 1_700_000_000_000,
        **kwargs,
    )


def _text(n: int) -> bytes:
    return ("Rental income 2023: EUR 14,400. " * (n // 32 + 1))[:n].encode("utf-8")


# ---------------------------------------------------------------------------
# Happy paths
# ---------------------------------------------------------------------------


class TestIngestionHappyPath:
    @pytest.mark.asyncio
    async def test_text_upload_writes_every_chunk_to_both_sinks(
        self,
        pipeline: IngestionPipeline,
        tenant: Tenant,
        report_store: InMemoryChunkStore,
        chat_store: InMemoryChunkStore,
        tmp_path: Path,
    ) -> None:
        result = await pipeline.ingest(_text(1200), "text/plain", tenant, "rent.txt", user_note="2023 rent")

        assert result.chunk_count == 3
        assert result.source_filename == "1700000000000-rent.txt"
        assert result.storage_key == "maria/acme-ltd/1700000000000-rent.txt"
        assert result.extraction_method == "plain_text"
        assert result.note == "2023 rent"
        assert result.category == "unclear"

        report_rows = await report_store.list_chunks(tenant)
        chat_rows = await chat_store.list_chunks(tenant)
        assert await report_store.count() + await chat_store.count() == 6
        assert [c.chunk_index for c in report_rows] == [0, 1, 2]
        assert [len(c.sequence_text) for c in chat_rows] == [500, 500, 200]
        assert {c.chunk_id for c in report_rows} == {c.chunk_id for c in chat_rows}
        assert all(c.note == "2023 rent" and c.category is None for c in chat_rows)
        assert (tmp_path / "uploads" / "maria" / "acme-ltd" / "1700000000000-rent.txt").read_bytes() == _text(1200)

    @pytest.mark.asyncio
    async def test_text_pdf(
        self, pipeline: IngestionPipeline, tenant: Tenant, chat_store: InMemoryChunkStore,
        ocr_provider: RecordingOCRProvider,
    ) -> None:
        data = make_pdf(["Payslip March 2024 gross salary EUR 3,500", "Employer: Acme Ltd"])

        result = await pipeline.ingest(data, "application/pdf", tenant, "payslip.pdf")

        assert result.extraction_method == "direct"
        assert result.chunk_count == 1
        [chunk] = await chat_store.list_chunks(tenant)
        assert "gross salary" in chunk.sequence_text
        assert ocr_provider.paths == []

    @pytest.mark.asyncio
    async def test_scanned_pdf_goes_through_ocr(
        self,
        pipeline: IngestionPipeline,
        tenant: Tenant,
        chat_store: InMemoryChunkStore,
        extractor: TextExtractor,
        ocr_provider: RecordingOCRProvider,
    ) -> None:
        result = await pipeline.ingest(make_pdf(["", ""]), "application/pdf", tenant, "scan.pdf")

        assert result.extraction_method == "ocr"
        assert len(ocr_provider.paths) == 2
        [chunk] = await chat_store.list_chunks(tenant)
        assert chunk.sequence_text == "ocr page 1\n\nocr page 2"
        assert list(Path(extractor._work_dir).iterdir()) == []

    @pytest.mark.asyncio
    async def test_image_stored_with_placeholder(
        self, pipeline: IngestionPipeline, tenant: Tenant, chat_store: InMemoryChunkStore
    ) -> None:
        result = await pipeline.ingest(b"\xff\xd8\xff\xe0jpeg", "image/jpeg", tenant, "receipt.jpg")

        assert result.extraction_method == "placeholder"
        [chunk] = await chat_store.list_chunks(tenant)
        assert chunk.sequence_text == NO_TEXT_PLACEHOLDER

    @pytest.mark.asyncio
    async def test_unrecognized_type_stored_with_placeholder(
        self,
        pipeline: IngestionPipeline,
        tenant: Tenant,
        blob_store: LocalBlobStore,
        report_store: InMemoryChunkStore,
        chat_store: InMemoryChunkStore,
    ) -> None:
        result = await pipeline.ingest(
            b"PK\x03\x04docx", "application/octet-stream", tenant, "ledger.docx"
        )

        assert result.extraction_method == "placeholder"
        assert result.chunk_count == 1
        assert [e.key for e in await blob_store.list("maria/")] == [result.storage_key]
        for store in (report_store, chat_store):
            [chunk] = await store.list_chunks(tenant)
            assert chunk.sequence_text == NO_TEXT_PLACEHOLDER

    @pytest.mark.asyncio
    async def test_blank_scan_produces_no_chunks(
        self,
        blob_store: LocalBlobStore,
        embedding_provider: MockEmbeddingProvider,
        report_store: InMemoryChunkStore,
        chat_store: InMemoryChunkStore,
        tenant: Tenant,
        tmp_path: Path,
    ) -> None:
        ocr = RecordingOCRProvider(blank_pages=(1, 2))
        extractor = TextExtractor(ocr_provider=ocr, ocr_dpi=72, work_dir=tmp_path)
        pipeline = _build_pipeline(
            blob_store, extractor, embedding_provider, report_store, chat_store
        )

        result = await pipeline.ingest(make_pdf(["", ""]), "application/pdf", tenant, "blank.pdf")

        assert result.extraction_method == "ocr"
        assert result.chunk_count == 0
        assert await report_store.count() == 0
        assert await chat_store.count() == 0
        assert embedding_provider.calls == []
        assert len(await blob_store.list("maria/acme-ltd/")) == 1

    @pytest.mark.asyncio
    async def test_whitespace_text_produces_no_chunks(
        self,
        pipeline: IngestionPipeline,
        tenant: Tenant,
        embedding_provider: MockEmbeddingProvider,
        chat_store: InMemoryChunkStore,
    ) -> None:
        result = await pipeline.ingest(b" \n\t \n", "text/plain", tenant, "empty.txt")

        assert result.chunk_count == 0
        assert await chat_store.count() == 0
        assert embedding_provider.calls == []

    @pytest.mark.asyncio
    async def test_reupload_gets_distinct_name(
        self, pipeline: IngestionPipeline, tenant: Tenant, report_store: InMemoryChunkStore
    ) -> None:
        first = await pipeline.ingest(_text(100), "text/plain", tenant, "same.txt")
        second = await pipeline.ingest(_text(100), "text/plain", tenant, "same.txt")

        assert first.source_filename != second.source_filename
        assert second.source_filename == "1700000000001-same.txt"
        assert await report_store.count(tenant) == 2

    @pytest.mark.asyncio
    async def test_tenants_stay_separate(
        self,
        pipeline: IngestionPipeline,
        tenant: Tenant,
        other_tenant: Tenant,
        chat_store: InMemoryChunkStore,
    ) -> None:
        await pipeline.ingest(_text(600), "text/plain", tenant, "a.txt")
        await pipeline.ingest(_text(300), "text/plain", other_tenant, "b.txt")

        assert await chat_store.count(tenant) == 2
        assert await chat_store.count(other_tenant) == 1


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestIngestionValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("data", "media_type", "filename", "error"),
        [
            (b"", "text/plain", "a.txt", InputValidationError),
            (b"data", "text/plain", "", InputValidationError),
            (b"data", "text/plain", "..", InputValidationError),
            (b"data", "", "a.zip", UnsupportedMediaTypeError),
        ],
    )
    async def test_rejected_before_anything_is_stored(
        self,
        pipeline: IngestionPipeline,
        tenant: Tenant,
        blob_store: LocalBlobStore,
        embedding_provider: MockEmbeddingProvider,
        data: bytes,
        media_type: str,
        filename: str,
        error: type[Exception],
    ) -> None:
        with pytest.raises(error):
            await pipeline.ingest(data, media_type, tenant, filename)

        assert await blob_store.list("maria/") == []
        assert embedding_provider.calls == []

    @pytest.mark.asyncio
    async def test_missing_tenant(self, pipeline: IngestionPipeline) -> None:
        with pytest.raises(InputValidationError):
            await pipeline.ingest(b"data", "text/plain", None, "a.txt")  # type: ignore[arg-type]

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("invoice.pdf", "invoice.pdf"),
            ("../../etc/passwd", "passwd"),
            ("C:\\Users\\maria\\scan 01.pdf", "scan 01.pdf"),
            ("bad\x00name.txt", "badname.txt"),
            ("folder/", ""),
        ],
    )
    def test_sanitize_filename(self, raw: str, expected: str) -> None:
        assert sanitize_filename(raw) == expected


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestIngestionFailures:
    @pytest.mark.asyncio
    async def test_embedding_failure_keeps_earlier_chunks(
        self,
        blob_store: LocalBlobStore,
        extractor: TextExtractor,
        tenant: Tenant,
        report_store: InMemoryChunkStore,
        chat_store: InMemoryChunkStore,
    ) -> None:
        embedder = MockEmbeddingProvider(fail_on_call=3)
        pipeline = _build_pipeline(blob_store, extractor, embedder, report_store, chat_store)

        with pytest.raises(PartialIngestionError) as exc_info:
            await pipeline.ingest(_text(2500), "text/plain", tenant, "ledger.txt")

        err = exc_info.value
        assert err.failed_chunk_index == 2
        assert err.chunks_written == 2
        assert err.source_filename == "1700000000000-ledger.txt"
        assert err.provider_name == "mock-embedding"
        assert [c.chunk_index for c in await report_store.list_chunks(tenant)] == [0, 1]
        assert [c.chunk_index for c in await chat_store.list_chunks(tenant)] == [0, 1]
        assert len(embedder.calls) == 3
        assert len(await blob_store.list("maria/acme-ltd/")) == 1

    @pytest.mark.asyncio
    async def test_chat_write_failure(
        self,
        blob_store: LocalBlobStore,
        extractor: TextExtractor,
        embedding_provider: MockEmbeddingProvider,
        tenant: Tenant,
        report_store: InMemoryChunkStore,
    ) -> None:
        chat_store = FailingChunkStore(name="chat", fail_on_index=1)
        pipeline = _build_pipeline(blob_store, extractor, embedding_provider, report_store, chat_store)

        with pytest.raises(PartialIngestionError) as exc_info:
            await pipeline.ingest(_text(1200), "text/plain", tenant, "ledger.txt")

        assert exc_info.value.failed_chunk_index == 1
        assert exc_info.value.chunks_written == 1
        assert isinstance(exc_info.value.__cause__, ChunkStoreError)
        # Report write for chunk 1 already happened; chunk 2 never started.
        assert [c.chunk_index for c in await report_store.list_chunks(tenant)] == [0, 1]
        assert [c.chunk_index for c in await chat_store.list_chunks(tenant)] == [0]

    @pytest.mark.asyncio
    async def test_concurrent_embedding_stops_at_first_failed_index(
        self,
        blob_store: LocalBlobStore,
        extractor: TextExtractor,
        tenant: Tenant,
        report_store: InMemoryChunkStore,
        chat_store: InMemoryChunkStore,
    ) -> None:
        embedder = MockEmbeddingProvider(fail_on_call=4)
        pipeline = _build_pipeline(
            blob_store, extractor, embedder, report_store, chat_store, embed_concurrency=3
        )

        with pytest.raises(PartialIngestionError) as exc_info:
            await pipeline.ingest(_text(2500), "text/plain", tenant, "ledger.txt")

        assert exc_info.value.failed_chunk_index == 3
        assert exc_info.value.chunks_written == 3
        assert [c.chunk_index for c in await chat_store.list_chunks(tenant)] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_concurrent_embedding_writes_in_order(
        self,
        blob_store: LocalBlobStore,
        extractor: TextExtractor,
        embedding_provider: MockEmbeddingProvider,
        tenant: Tenant,
        report_store: InMemoryChunkStore,
        chat_store: InMemoryChunkStore,
    ) -> None:
        pipeline = _build_pipeline(
            blob_store, extractor, embedding_provider, report_store, chat_store, embed_concurrency=4
        )

        result = await pipeline.ingest(_text(2500), "text/plain", tenant, "ledger.txt")

        assert result.chunk_count == 5
        chunks = await chat_store.list_chunks(tenant)
        assert "".join(c.sequence_text for c in chunks) == _text(2500).decode()

    @pytest.mark.asyncio
    async def test_blob_failure_stops_everything(
        self,
        extractor: TextExtractor,
        embedding_provider: MockEmbeddingProvider,
        tenant: Tenant,
        report_store: InMemoryChunkStore,
        chat_store: InMemoryChunkStore,
        tmp_path: Path,
    ) -> None:
        # A file where the root directory should be makes every write fail.
        blocked_root = tmp_path / "blocked"
        blocked_root.write_text("not a directory")
        blob_store = LocalBlobStore(root=blocked_root, signing_secret="s")
        pipeline = _build_pipeline(blob_store, extractor, embedding_provider, report_store, chat_store)

        with pytest.raises(BlobStoreError):
            await pipeline.ingest(_text(600), "text/plain", tenant, "a.txt")

        assert embedding_provider.calls == []
        assert await chat_store.count() == 0

    @pytest.mark.asyncio
    async def test_extraction_failure_keeps_blob_only(
        self,
        pipeline: IngestionPipeline,
        tenant: Tenant,
        blob_store: LocalBlobStore,
        embedding_provider: MockEmbeddingProvider,
        report_store: InMemoryChunkStore,
    ) -> None:
        with pytest.raises(ExtractionError):
            await pipeline.ingest(b"definitely not a pdf", "application/pdf", tenant, "broken.pdf")

        assert len(await blob_store.list("maria/acme-ltd/")) == 1
        assert embedding_provider.calls == []
        assert await report_store.count() == 0

    @pytest.mark.asyncio
    async def test_slow_scan_not_bound_by_call_timeout(
        self,
        blob_store: LocalBlobStore,
        embedding_provider: MockEmbeddingProvider,
        report_store: InMemoryChunkStore,
        chat_store: InMemoryChunkStore,
        tenant: Tenant,
        tmp_path: Path,
    ) -> None:
        ocr = RecordingOCRProvider(slow_page=1, delay=0.3)
        extractor = TextExtractor(
            ocr_provider=ocr, ocr_dpi=72, work_dir=tmp_path, ocr_page_timeout=5.0
        )
        pipeline = _build_pipeline(
            blob_store, extractor, embedding_provider, report_store, chat_store, call_timeout=0.2
        )

        result = await pipeline.ingest(make_pdf(["", ""]), "application/pdf", tenant, "scan.pdf")

        assert result.chunk_count == 1
        assert await chat_store.count(tenant) == 1

    @pytest.mark.asyncio
    async def test_ocr_page_timeout_is_an_extraction_error(
        self,
        blob_store: LocalBlobStore,
        embedding_provider: MockEmbeddingProvider,
        report_store: InMemoryChunkStore,
        chat_store: InMemoryChunkStore,
        tenant: Tenant,
        tmp_path: Path,
    ) -> None:
        work_dir = tmp_path / "ocr"
        work_dir.mkdir()
        ocr = RecordingOCRProvider(slow_page=1, delay=5.0)
        extractor = TextExtractor(
            ocr_provider=ocr, ocr_dpi=72, work_dir=work_dir, ocr_page_timeout=0.1
        )
        pipeline = _build_pipeline(
            blob_store, extractor, embedding_provider, report_store, chat_store
        )

        with pytest.raises(OCRExtractionError) as exc_info:
            await pipeline.ingest(make_pdf(["", ""]), "application/pdf", tenant, "scan.pdf")

        assert exc_info.value.to_dict()["error_type"] == "extraction_error"
        assert exc_info.value.provider_name == "mock-ocr"
        assert list(work_dir.iterdir()) == []
        assert len(await blob_store.list("maria/acme-ltd/")) == 1
        assert embedding_provider.calls == []
        assert await report_store.count() == 0

    @pytest.mark.asyncio
    async def test_cancellation_keeps_written_chunks(
        self,
        blob_store: LocalBlobStore,
        extractor: TextExtractor,
        tenant: Tenant,
        report_store: InMemoryChunkStore,
        chat_store: InMemoryChunkStore,
    ) -> None:
        embedder = BlockingEmbeddingProvider(block_on_call=3)
        pipeline = _build_pipeline(blob_store, extractor, embedder, report_store, chat_store)

        task = asyncio.create_task(pipeline.ingest(_text(2500), "text/plain", tenant, "ledger.txt"))
        await asyncio.wait_for(embedder.reached.wait(), timeout=5)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert [c.chunk_index for c in await chat_store.list_chunks(tenant)] == [0, 1]
        assert await report_store.count(tenant) == 2


# ---------------------------------------------------------------------------
# Annotation
# ---------------------------------------------------------------------------


class TestIngestionAnnotation:
    @pytest.mark.asyncio
    async def test_summary_and_category_returned(
        self,
        blob_store: LocalBlobStore,
        extractor: TextExtractor,
        embedding_provider: MockEmbeddingProvider,
        tenant: Tenant,
        report_store: InMemoryChunkStore,
        chat_store: InMemoryChunkStore,
        mock_llm_provider: ILLMProvider,
    ) -> None:
        mock_llm_provider.complete.side_effect = ["Rental income statement for 2023.", "Income"]
        pipeline = _build_pipeline(
            blob_store, extractor, embedding_provider, report_store, chat_store,
            annotator=DocumentAnnotator(llm=mock_llm_provider),
        )

        result = await pipeline.ingest(_text(700), "text/plain", tenant, "rent.txt", user_note="from bank")

        assert result.note == "Rental income statement for 2023."
        assert result.category == "income"
        # Stored rows keep what was known at write time.
        assert all(c.note == "from bank" and c.category is None for c in await chat_store.list_chunks(tenant))

    @pytest.mark.asyncio
    async def test_llm_failure_degrades(
        self,
        blob_store: LocalBlobStore,
        extractor: TextExtractor,
        embedding_provider: MockEmbeddingProvider,
        tenant: Tenant,
        report_store: InMemoryChunkStore,
        chat_store: InMemoryChunkStore,
        mock_llm_provider: ILLMProvider,
    ) -> None:
        mock_llm_provider.complete.side_effect = LLMError("quota exceeded", provider_name="mock-llm")
        pipeline = _build_pipeline(
            blob_store, extractor, embedding_provider, report_store, chat_store,
            annotator=DocumentAnnotator(llm=mock_llm_provider),
        )

        result = await pipeline.ingest(_text(700), "text/plain", tenant, "rent.txt", user_note="from bank")

        assert result.note == "from bank"
        assert result.category == "unclear"
        assert result.chunk_count == 2

    @pytest.mark.asyncio
    async def test_only_summary_fails(
        self,
        blob_store: LocalBlobStore,
        extractor: TextExtractor,
        embedding_provider: MockEmbeddingProvider,
        tenant: Tenant,
        report_store: InMemoryChunkStore,
        chat_store: InMemoryChunkStore,
        mock_llm_provider: ILLMProvider,
    ) -> None:
        mock_llm_provider.complete.side_effect = [LLMError("timeout"), "tax"]
        pipeline = _build_pipeline(
            blob_store, extractor, embedding_provider, report_store, chat_store,
            annotator=DocumentAnnotator(llm=mock_llm_provider),
        )

        result = await pipeline.ingest(_text(300), "text/plain", tenant, "t.txt")

        assert result.note is None
        assert result.category == "tax"

    @pytest.mark.asyncio
    async def test_placeholder_not_annotated(
        self,
        blob_store: LocalBlobStore,
        extractor: TextExtractor,
        embedding_provider: MockEmbeddingProvider,
        tenant: Tenant,
        report_store: InMemoryChunkStore,
        chat_store: InMemoryChunkStore,
        mock_llm_provider: ILLMProvider,
    ) -> None:
        pipeline = _build_pipeline(
            blob_store, extractor, embedding_provider, report_store, chat_store,
            annotator=DocumentAnnotator(llm=mock_llm_provider),
        )

        result = await pipeline.ingest(b"\x89PNG", "image/png", tenant, "photo.png", user_note="  ")

        assert result.category == "unclear"
        assert result.note is None
        mock_llm_provider.complete.assert_not_called()
