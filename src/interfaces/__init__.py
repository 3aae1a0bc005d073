"""Public interface definitions for all external service providers.

Every external service used by the document pipeline (object storage,
OCR, embeddings, the chat model, the vector stores) is accessed only
through the abstract base classes defined here.  Concrete adapters live in
``src/providers/`` and are wired together in ``src/main.py``; tests inject
fakes implementing the same contracts.

CONCRETE PROVIDER MAP:
    Interface             ->  Concrete implementations (in src/providers/)
    -----------------------------------------------------------------
    IBlobStore            ->  LocalBlobStore, S3BlobStore
    IOCRProvider          ->  TesseractOCRProvider
    IEmbeddingProvider    ->  OpenAIEmbeddingProvider
    ILLMProvider          ->  OpenAILLMProvider
    IChunkStore           ->  ChromaDBChunkStore, InMemoryChunkStore
"""

from src.interfaces.blob_store import IBlobStore
from src.interfaces.chunk_store import IChunkStore
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider
from src.interfaces.ocr_provider import IOCRProvider

__all__ = [
    "IBlobStore",
    "IChunkStore",
    "IEmbeddingProvider",
    "ILLMProvider",
    "IOCRProvider",
]
