"""Utility modules for the document pipeline.

- **errors** -- Exception hierarchy rooted at DocumentPipelineError; every
  class carries a machine-readable ``error_type`` for client payloads.
- **logging** -- structlog setup with console output in development and
  JSON in production.
- **concurrency** -- Semaphore-bounded gather used for optional parallel
  chunk embedding, and the per-call timeout wrapper.
"""

from src.utils.concurrency import first_failure, throttled_gather, with_timeout
from src.utils.errors import (
    BlobStoreError,
    ChunkStoreError,
    ConfigurationError,
    DependentServiceError,
    DocumentPipelineError,
    EmbeddingError,
    ExtractionError,
    InputValidationError,
    LLMError,
    OCRExtractionError,
    PartialIngestionError,
    ServiceTimeoutError,
    StorageError,
    UnsupportedMediaTypeError,
)
from src.utils.logging import configure_logging, get_logger

__all__ = [
    "BlobStoreError",
    "ChunkStoreError",
    "ConfigurationError",
    "DependentServiceError",
    "DocumentPipelineError",
    "EmbeddingError",
    "ExtractionError",
    "InputValidationError",
    "LLMError",
    "OCRExtractionError",
    "PartialIngestionError",
    "ServiceTimeoutError",
    "StorageError",
    "UnsupportedMediaTypeError",
    "configure_logging",
    "first_failure",
    "get_logger",
    "throttled_gather",
    "with_timeout",
]
