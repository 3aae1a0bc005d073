"""Shared pytest fixtures for the document pipeline test suite."""

from __future__ import annotations

import asyncio
import hashlib
import struct
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import fitz
import pytest

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider
from src.interfaces.ocr_provider import IOCRProvider
from src.models.documents import DocumentChunk, Tenant
from src.providers.blob.local_blob_store import LocalBlobStore
from src.providers.vector_store.memory_store import InMemoryChunkStore
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.document_annotator import DocumentAnnotator
from src.services.ingestion.ingestion_service import IngestionPipeline
from src.services.ingestion.text_extractor import TextExtractor
from src.utils.errors import EmbeddingError, OCRExtractionError

_EMBEDDING_DIM = 32


# ---------------------------------------------------------------------------
# Deterministic doubles
# ---------------------------------------------------------------------------


def _hash_to_vector(text: str, dim: int = _EMBEDDING_DIM) -> list[float]:
    """Generate a deterministic fixed-length vector by hashing *text*.

    Uses SHA-256 to hash the text, then unpacks bytes into floats and
    normalises to unit length.  Same text always produces the same vector.
    """
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    raw = digest
    while len(raw) < dim * 4:
        raw += hashlib.sha256(raw).digest()
    raw = raw[: dim * 4]
    # Bytes -> unsigned ints -> [-1, 1) floats; avoids NaN/inf bit patterns.
    values = [(v / 2**31) - 1.0 for v in struct.unpack(f"<{dim}I", raw)]
    magnitude = max(sum(v * v for v in values) ** 0.5, 1e-10)
    return [v / magnitude for v in values]


class MockEmbeddingProvider(IEmbeddingProvider):
    """In-memory deterministic embedding provider for tests.

    ``fail_on_call`` makes the n-th ``embed_single`` call (1-based) raise
    :class:`EmbeddingError`.
    """

    def __init__(self, fail_on_call: int | None = None) -> None:
        self.calls: list[str] = []
        self._fail_on_call = fail_on_call

    async def embed(self, texts: list[str]) -> list[list[float]]:
        return [await self.embed_single(t) for t in texts]

    async def embed_single(self, text: str) -> list[float]:
        self.calls.append(text)
        if self._fail_on_call is not None and len(self.calls) == self._fail_on_call:
            raise EmbeddingError("embedding service unavailable", provider_name="mock-embedding")
        return _hash_to_vector(text)

    def get_dimension(self) -> int:
        return _EMBEDDING_DIM

    def get_provider_name(self) -> str:
        return "mock-embedding"

    def is_available(self) -> bool:
        return True


class RecordingOCRProvider(IOCRProvider):
    """OCR double that returns ``"ocr page N"`` and records every image path.

    Pages in ``blank_pages`` come back as a lone form feed, the way
    Tesseract reports an empty page.  ``slow_page`` sleeps ``delay`` seconds.
    """

    def __init__(
        self,
        fail_on_page: int | None = None,
        blank_pages: tuple[int, ...] = (),
        slow_page: int | None = None,
        delay: float = 0.0,
    ) -> None:
        self.paths: list[Path] = []
        self.existed: list[bool] = []
        self._fail_on_page = fail_on_page
        self._blank_pages = blank_pages
        self._slow_page = slow_page
        self._delay = delay

    async def recognize(self, image_path: str | Path) -> str:
        path = Path(image_path)
        self.paths.append(path)
        self.existed.append(path.exists())
        page = len(self.paths)
        if self._fail_on_page is not None and page == self._fail_on_page:
            raise OCRExtractionError("tesseract crashed", provider_name="mock-ocr")
        if page == self._slow_page:
            await asyncio.sleep(self._delay)
        if page in self._blank_pages:
            return "\x0c"
        return f"ocr page {page}"

    def get_provider_name(self) -> str:
        return "mock-ocr"

    def is_available(self) -> bool:
        return True


def make_pdf(pages: list[str]) -> bytes:
    """Build an in-memory PDF with one page per entry; ``""`` gives a blank page."""
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


def make_chunk(
    tenant: Tenant,
    text: str = "chunk text",
    source_filename: str = "1700000000000-doc.pdf",
    chunk_index: int = 0,
    embedding: list[float] | None = None,
    note: str | None = None,
) -> DocumentChunk:
    return DocumentChunk(
        tenant=tenant,
        source_filename=source_filename,
        chunk_index=chunk_index,
        sequence_text=text,
        embedding=embedding if embedding is not None else _hash_to_vector(text),
        note=note,
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def tenant() -> Tenant:
    return Tenant(accountant="maria", client="acme-ltd")


@pytest.fixture
def other_tenant() -> Tenant:
    return Tenant(accountant="maria", client="zeta-holdings")


@pytest.fixture
def embedding_provider() -> MockEmbeddingProvider:
    return MockEmbeddingProvider()


@pytest.fixture
def ocr_provider() -> RecordingOCRProvider:
    return RecordingOCRProvider()


@pytest.fixture
def mock_llm_provider() -> ILLMProvider:
    """Mock ILLMProvider; override ``complete.return_value`` / ``side_effect`` per test."""
    mock = MagicMock(spec=ILLMProvider)
    mock.get_provider_name.return_value = "mock-llm"
    mock.is_available.return_value = True
    mock.complete = AsyncMock(return_value="A mock answer.")
    return mock


@pytest.fixture
def report_store() -> InMemoryChunkStore:
    return InMemoryChunkStore(name="report")


@pytest.fixture
def chat_store() -> InMemoryChunkStore:
    return InMemoryChunkStore(name="chat")


@pytest.fixture
def blob_store(tmp_path: Path) -> LocalBlobStore:
    return LocalBlobStore(root=tmp_path / "uploads", signing_secret="test-secret")


@pytest.fixture
def extractor(ocr_provider: RecordingOCRProvider, tmp_path: Path) -> TextExtractor:
    work_dir = tmp_path / "ocr-work"
    work_dir.mkdir()
    return TextExtractor(ocr_provider=ocr_provider, ocr_dpi=72, work_dir=work_dir)


@pytest.fixture
def clock():
    """Fixed millisecond clock; the pipeline must still hand out unique names."""
    return lambda: 1_700_000_000_000


@pytest.fixture
def pipeline(
    blob_store: LocalBlobStore,
    extractor: TextExtractor,
    embedding_provider: MockEmbeddingProvider,
    report_store: InMemoryChunkStore,
    chat_store: InMemoryChunkStore,
    clock,
) -> IngestionPipeline:
    return IngestionPipeline(
        blob_store=blob_store,
        extractor=extractor,
        chunker=TextChunker(chunk_size=500),
        embedding_provider=embedding_provider,
        report_store=report_store,
        chat_store=chat_store,
        clock=clock,
    )


@pytest.fixture
def annotator(mock_llm_provider: ILLMProvider) -> DocumentAnnotator:
    return DocumentAnnotator(llm=mock_llm_provider)
