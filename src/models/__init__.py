"""Domain models -- re-exports all public model classes.

Import from ``src.models`` rather than the submodule, e.g.
``from src.models import DocumentChunk, Tenant``.
"""

from __future__ import annotations

from src.models.documents import (
    NO_TEXT_PLACEHOLDER,
    BlobEntry,
    ComposedAnswer,
    DocumentChunk,
    ExtractionMethod,
    ExtractionResult,
    IngestionResult,
    RetrievalResult,
    RetrievedChunk,
    StoredDocument,
    TaxReport,
    Tenant,
    check_key_segment,
    make_tenant,
)

__all__ = [
    "NO_TEXT_PLACEHOLDER",
    "BlobEntry",
    "ComposedAnswer",
    "DocumentChunk",
    "ExtractionMethod",
    "ExtractionResult",
    "IngestionResult",
    "RetrievalResult",
    "RetrievedChunk",
    "StoredDocument",
    "TaxReport",
    "Tenant",
    "check_key_segment",
    "make_tenant",
]
