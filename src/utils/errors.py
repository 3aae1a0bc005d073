"""Custom exception hierarchy for the document ingestion pipeline.

All application exceptions inherit from :class:`DocumentPipelineError`,
which carries an optional ``provider_name`` so error handlers can identify
which external service (e.g. "openai", "tesseract", "chromadb", "s3")
caused the failure, and a class-level ``error_type`` that callers can return
to clients as a machine-readable classification.

The hierarchy is organized by failure domain:

    DocumentPipelineError  (base -- catch-all)
    +-- InputValidationError        (rejected before any side effect)
    |   +-- UnsupportedMediaTypeError
    +-- ExtractionError             (corrupt document, unreadable pages)
    |   +-- OCRExtractionError      (OCR engine failure)
    +-- DependentServiceError       (an external collaborator failed)
    |   +-- EmbeddingError
    |   +-- LLMError
    |   +-- ServiceTimeoutError
    |   +-- StorageError
    |       +-- BlobStoreError
    |       +-- ChunkStoreError
    +-- PartialIngestionError       (chunk loop aborted mid-document)
    +-- ConfigurationError          (startup / missing config)

Summary and category generation failures are deliberately absent: they are
caught at the call site and degraded to defaults, never raised.
"""

from __future__ import annotations

from typing import Any


class DocumentPipelineError(Exception):
    """Base exception for all pipeline errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[openai] Rate limit exceeded``.
    """

    error_type = "internal_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message

    def to_dict(self, debug: bool = False) -> dict[str, Any]:
        """Return a client-facing error payload.

        Internal details (the chained cause) are only included under the
        ``debug`` key when explicitly requested.
        """
        payload: dict[str, Any] = {
            "error": self._message,
            "error_type": self.error_type,
        }
        if self._provider_name:
            payload["provider"] = self._provider_name
        if debug and self.__cause__ is not None:
            payload["debug"] = repr(self.__cause__)
        return payload


# ---------------------------------------------------------------------------
# Input errors
# ---------------------------------------------------------------------------

class InputValidationError(DocumentPipelineError):
    """Raised when a request is rejected before any side effect happens."""

    error_type = "input_error"

    def __init__(
        self,
        message: str = "Invalid input",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class UnsupportedMediaTypeError(InputValidationError):
    """Raised when an upload arrives without a declared media type."""

    def __init__(
        self,
        message: str = "Unsupported media type",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Extraction errors
# ---------------------------------------------------------------------------

class ExtractionError(DocumentPipelineError):
    """Raised when text cannot be extracted from an otherwise valid upload."""

    error_type = "extraction_error"

    def __init__(
        self,
        message: str = "Text extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class OCRExtractionError(ExtractionError):
    """Raised when the OCR engine fails on a rendered page."""

    def __init__(
        self,
        message: str = "OCR text extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Dependent-service errors
# ---------------------------------------------------------------------------

class DependentServiceError(DocumentPipelineError):
    """Raised when an external collaborator (embedding, LLM, storage) fails."""

    error_type = "dependent_service_error"

    def __init__(
        self,
        message: str = "External service call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingError(DependentServiceError):
    """Raised when the embedding service fails or returns an unusable vector."""

    def __init__(
        self,
        message: str = "Embedding generation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class LLMError(DependentServiceError):
    """Raised when an LLM API call fails or returns an empty response."""

    def __init__(
        self,
        message: str = "LLM API call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ServiceTimeoutError(DependentServiceError):
    """Raised when an external call exceeds its configured timeout."""

    def __init__(
        self,
        message: str = "External service call timed out",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class StorageError(DependentServiceError):
    """Raised when a storage backend rejects a read or write."""

    def __init__(
        self,
        message: str = "Storage operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class BlobStoreError(StorageError):
    """Raised when raw document bytes cannot be stored, listed, or signed."""

    def __init__(
        self,
        message: str = "Blob store operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ChunkStoreError(StorageError):
    """Raised when a chunk record store write or query fails."""

    def __init__(
        self,
        message: str = "Chunk store operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Ingestion outcome errors
# ---------------------------------------------------------------------------

class PartialIngestionError(DocumentPipelineError):
    """Raised when the per-chunk loop stops after the blob was stored.

    Chunks before ``failed_chunk_index`` remain persisted in both sinks;
    nothing is rolled back.  Callers may re-run ingestion, which produces
    a new ``source_filename``.
    """

    error_type = "partial_ingestion"

    def __init__(
        self,
        message: str,
        source_filename: str,
        storage_key: str,
        failed_chunk_index: int,
        chunks_written: int,
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._source_filename = source_filename
        self._storage_key = storage_key
        self._failed_chunk_index = failed_chunk_index
        self._chunks_written = chunks_written

    @property
    def source_filename(self) -> str:
        return self._source_filename

    @property
    def storage_key(self) -> str:
        return self._storage_key

    @property
    def failed_chunk_index(self) -> int:
        return self._failed_chunk_index

    @property
    def chunks_written(self) -> int:
        return self._chunks_written

    def to_dict(self, debug: bool = False) -> dict[str, Any]:
        payload = super().to_dict(debug=debug)
        payload.update(
            {
                "source_filename": self._source_filename,
                "failed_chunk_index": self._failed_chunk_index,
                "chunks_written": self._chunks_written,
            }
        )
        return payload


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------

class ConfigurationError(DocumentPipelineError):
    """Raised when configuration is invalid or missing at startup."""

    error_type = "configuration_error"

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
