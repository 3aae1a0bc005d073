"""Data models for client document ingestion and retrieval.

Defines Pydantic v2 models for tenants, document chunks, retrieval results,
and the result payloads of the ingestion, answer, report, and library
services.  All models use frozen config so a chunk cannot drift after it has
been written to one sink but before it reaches the other.

Lifecycle overview:

    1. An accountant uploads a client document -> raw bytes go to the blob
       store under ``{accountant}/{client}/{epoch_ms}-{filename}``.
    2. Text is extracted (ExtractionResult), cut into fixed-size pieces,
       and each piece is embedded -> one DocumentChunk per piece.
    3. Every DocumentChunk is written to the report sink and the chat sink.
    4. A question for one tenant -> RetrievalResult -> ComposedAnswer.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from src.utils.errors import InputValidationError

# Returned instead of extracted text for uploads that are neither PDF nor
# text (photos of receipts, office files).
NO_TEXT_PLACEHOLDER = "No text extracted"

ExtractionMethod = Literal["direct", "ocr", "plain_text", "placeholder"]

# Tenant names become blob key segments.
_FORBIDDEN_SEGMENT_CHARS = re.compile(r"[/\\\x00-\x1f\x7f]")


def check_key_segment(value: str) -> str:
    """Strip *value* and raise ``ValueError`` unless it is a safe key segment."""
    value = value.strip()
    if not value:
        raise ValueError("must not be empty")
    if value in (".", ".."):
        raise ValueError("must not be a relative path segment")
    if _FORBIDDEN_SEGMENT_CHARS.search(value):
        raise ValueError("must not contain path separators or control characters")
    return value


# ---------------------------------------------------------------------------
# Tenant -- the (accountant, client) pair scoping all data isolation.
# ---------------------------------------------------------------------------
class Tenant(BaseModel):
    """The access scope of every stored chunk and every query."""

    model_config = ConfigDict(frozen=True)

    accountant: str = Field(description="Accountant identifier (first key segment).")
    client: str = Field(description="Client identifier (second key segment).")

    @field_validator("accountant", "client")
    @classmethod
    def _validate_segment(cls, value: str) -> str:
        return check_key_segment(value)

    @property
    def prefix(self) -> str:
        """Blob-store key prefix for this tenant, e.g. ``"jane/acme-ltd"``."""
        return f"{self.accountant}/{self.client}"

    def __str__(self) -> str:
        return self.prefix


def make_tenant(accountant: str | None, client: str | None) -> Tenant:
    """Build a :class:`Tenant` from raw caller input.

    Raises
    ------
    InputValidationError
        If either identifier is missing or malformed.
    """
    if not accountant or not client:
        raise InputValidationError("Missing accountant or client name.")
    try:
        return Tenant(accountant=accountant, client=client)
    except ValidationError as exc:
        raise InputValidationError(f"Invalid tenant: {exc.errors()[0]['msg']}") from exc


# ---------------------------------------------------------------------------
# DocumentChunk -- the atomic retrievable unit.
# ---------------------------------------------------------------------------
class DocumentChunk(BaseModel):
    """One fixed-size slice of a document's text with its embedding.

    Chunks from the same upload share ``tenant``, ``source_filename`` and
    ``note`` and differ only by ``chunk_index``, ``sequence_text`` and
    ``embedding``.  ``category`` is ``None`` at ingestion time.  ``note`` is
    the uploader's note: the AI summary is produced after every chunk has
    been written and is reported on :class:`IngestionResult` only.
    """

    model_config = ConfigDict(frozen=True)

    chunk_id: str = Field(default_factory=lambda: str(uuid4()))
    tenant: Tenant
    source_filename: str = Field(min_length=1)
    chunk_index: int = Field(default=0, ge=0)
    sequence_text: str
    embedding: list[float] = Field(min_length=1)
    category: str | None = None
    note: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(tz=timezone.utc))

    @property
    def storage_key(self) -> str:
        return f"{self.tenant.prefix}/{self.source_filename}"


# ---------------------------------------------------------------------------
# Retrieval models
# ---------------------------------------------------------------------------
class RetrievedChunk(BaseModel):
    """A stored chunk returned by a similarity query, with its score."""

    model_config = ConfigDict(frozen=True)

    chunk: DocumentChunk
    similarity_score: float = Field(
        default=0.0,
        description="Cosine similarity between the query and this chunk.",
    )


class RetrievalResult(BaseModel):
    """Ranked chunks for one query, scoped to exactly one tenant."""

    model_config = ConfigDict(frozen=True)

    tenant: Tenant
    query_text: str
    results: list[RetrievedChunk] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_scope_and_order(self) -> RetrievalResult:
        for item in self.results:
            if item.chunk.tenant != self.tenant:
                raise ValueError(
                    f"result chunk {item.chunk.chunk_id} belongs to {item.chunk.tenant}, "
                    f"not {self.tenant}"
                )
        scores = [item.similarity_score for item in self.results]
        if any(a < b for a, b in zip(scores, scores[1:])):
            raise ValueError("results must be sorted by descending similarity")
        return self

    @property
    def chunks(self) -> list[DocumentChunk]:
        return [item.chunk for item in self.results]

    def __len__(self) -> int:
        return len(self.results)


# ---------------------------------------------------------------------------
# Extraction / ingestion results
# ---------------------------------------------------------------------------
class ExtractionResult(BaseModel):
    """Text produced by the extractor and how it was obtained."""

    model_config = ConfigDict(frozen=True)

    text: str
    method: ExtractionMethod
    page_count: int = Field(default=0, ge=0)
    ocr_pages: int = Field(default=0, ge=0)


class IngestionResult(BaseModel):
    """Outcome of one successful ingestion run."""

    model_config = ConfigDict(frozen=True)

    storage_key: str
    source_filename: str
    chunk_count: int = Field(default=0, ge=0)
    extraction_method: ExtractionMethod
    note: str | None = Field(
        default=None,
        description="One-sentence AI summary, or the user's note when summarizing failed.",
    )
    category: str = Field(
        default="unclear",
        description="AI category label, or 'unclear' when categorizing failed.",
    )
    ingestion_time: float = Field(default=0.0, ge=0.0)


# ---------------------------------------------------------------------------
# Answer / report / library payloads
# ---------------------------------------------------------------------------
class ComposedAnswer(BaseModel):
    """A grounded answer plus the chunks that were placed in its context."""

    model_config = ConfigDict(frozen=True)

    answer: str
    sources: list[RetrievedChunk] = Field(default_factory=list)
    context_chars: int = Field(default=0, ge=0)
    truncated: bool = False


class TaxReport(BaseModel):
    """A generated report over every stored chunk of one tenant."""

    model_config = ConfigDict(frozen=True)

    tenant: Tenant
    report: str
    source_filenames: list[str] = Field(default_factory=list)
    chunk_count: int = Field(default=0, ge=0)
    truncated: bool = False


class BlobEntry(BaseModel):
    """One object listed from the blob store."""

    model_config = ConfigDict(frozen=True)

    key: str
    size: int = Field(default=0, ge=0)
    last_modified: datetime | None = None


class StoredDocument(BaseModel):
    """An uploaded document as shown to the accountant, with a signed link."""

    model_config = ConfigDict(frozen=True)

    key: str
    accountant: str
    client: str
    source_filename: str
    original_filename: str
    uploaded_at: datetime | None = None
    size: int = Field(default=0, ge=0)
    url: str
    note: str | None = Field(
        default=None,
        description="Note stored with the document's chunks, when a chunk store is consulted.",
    )
