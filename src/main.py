"""Composition root for the document pipeline.

Wires providers and services together via constructor injection.  Loads
configuration from ``.env`` and ``config/config.yaml`` and configures
structured logging.  The HTTP layer (or a script) calls
:func:`build_services` once at startup and keeps the returned dict.

Also provides :func:`answer_question`, the retrieve-then-compose helper
used to answer one question for one client.
"""

from __future__ import annotations

from typing import Any

import chromadb
import structlog

from src.config.loader import load_config
from src.config.settings import Settings
from src.interfaces.blob_store import IBlobStore
from src.interfaces.chunk_store import IChunkStore
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.llm_provider import ILLMProvider
from src.models.documents import ComposedAnswer, Tenant
from src.providers.blob.local_blob_store import LocalBlobStore
from src.providers.blob.s3_blob_store import S3BlobStore
from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from src.providers.llm.openai_provider import OpenAILLMProvider
from src.providers.ocr.tesseract_provider import TesseractOCRProvider
from src.providers.vector_store.chromadb_provider import ChromaDBChunkStore
from src.providers.vector_store.memory_store import InMemoryChunkStore
from src.services.answer_composer import (
    DEFAULT_PREAMBLE,
    DEFAULT_SYSTEM_PROMPT,
    AnswerComposer,
)
from src.services.document_library import DocumentLibrary
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.document_annotator import DEFAULT_CATEGORIES, DocumentAnnotator
from src.services.ingestion.ingestion_service import IngestionPipeline
from src.services.ingestion.text_extractor import TextExtractor
from src.services.report_service import DEFAULT_REPORT_SYSTEM_PROMPT, ReportService
from src.services.retrieval_service import RetrievalService
from src.utils.errors import ConfigurationError
from src.utils.logging import configure_logging, get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_llm_provider(app_settings: Settings) -> ILLMProvider:
    """Build the chat-completion provider; an API key is required."""
    if not app_settings.openai_api_key:
        raise ConfigurationError(
            "OPENAI_API_KEY is not set; answers, reports and annotations need an LLM.",
            provider_name="openai",
        )
    return OpenAILLMProvider(settings=app_settings)


def _build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    """Build the embedding provider; an API key is required."""
    if not app_settings.openai_api_key:
        raise ConfigurationError(
            "OPENAI_API_KEY is not set; ingestion and retrieval need embeddings.",
            provider_name="openai_embedding",
        )
    return OpenAIEmbeddingProvider(settings=app_settings)


def _build_blob_store(app_settings: Settings) -> IBlobStore:
    """Select the blob backend named by ``BLOB_BACKEND``."""
    if app_settings.blob_backend == "s3":
        if not app_settings.s3_bucket:
            raise ConfigurationError("BLOB_BACKEND=s3 requires S3_BUCKET.", provider_name="s3")
        return S3BlobStore(bucket=app_settings.s3_bucket, region=app_settings.s3_region)
    return LocalBlobStore(
        root=app_settings.blob_local_root,
        signing_secret=app_settings.blob_signing_secret,
        base_url=app_settings.blob_public_base_url,
    )


def _build_chunk_stores(app_settings: Settings) -> tuple[IChunkStore, IChunkStore]:
    """Return ``(report_store, chat_store)``.

    With ChromaDB both sinks share one persistent client and live as two
    collections in the same directory.
    """
    if app_settings.chunk_store_backend == "memory":
        return InMemoryChunkStore(name="report"), InMemoryChunkStore(name="chat")

    if app_settings.report_collection == app_settings.chat_collection:
        raise ConfigurationError(
            "REPORT_COLLECTION and CHAT_COLLECTION must differ.", provider_name="chromadb"
        )
    client = chromadb.PersistentClient(
        path=app_settings.chromadb_persist_dir,
        settings=chromadb.config.Settings(anonymized_telemetry=False),
    )
    report_store = ChromaDBChunkStore(
        persist_directory=app_settings.chromadb_persist_dir,
        collection_name=app_settings.report_collection,
        client=client,
    )
    chat_store = ChromaDBChunkStore(
        persist_directory=app_settings.chromadb_persist_dir,
        collection_name=app_settings.chat_collection,
        client=client,
    )
    return report_store, chat_store


# ---------------------------------------------------------------------------
# Full DI assembly
# ---------------------------------------------------------------------------


def build_services(
    app_settings: Settings | None = None,
    config_path: str = "config/config.yaml",
) -> dict[str, Any]:
    """Construct every provider and service instance.

    Returns
    -------
    dict
        Named components: ``ingestion``, ``retrieval``, ``answer_composer``,
        ``report_service``, ``document_library``, the providers they share,
        ``settings`` and the merged ``config``.
    """
    s = app_settings or Settings()
    config = load_config(config_path, settings=s)
    configure_logging(log_level=s.log_level, json_output=(s.app_env == "production"))

    prompts: dict[str, str] = config.get("prompts", {}) or {}
    categories = config.get("categories") or list(DEFAULT_CATEGORIES)

    llm = _build_llm_provider(s)
    embedding_provider = _build_embedding_provider(s)
    blob_store = _build_blob_store(s)
    report_store, chat_store = _build_chunk_stores(s)
    ocr_provider = TesseractOCRProvider(lang=s.tesseract_lang)

    if not ocr_provider.is_available():
        _logger.warning("ocr_unavailable", provider=ocr_provider.get_provider_name())

    extractor = TextExtractor(
        ocr_provider=ocr_provider,
        ocr_dpi=s.ocr_dpi,
        min_text_chars=s.ocr_min_text_chars,
        work_dir=s.ocr_work_dir or None,
        ocr_page_timeout=s.external_call_timeout,
    )
    annotator_kwargs: dict[str, Any] = {"categories": categories}
    if prompts.get("summary_system"):
        annotator_kwargs["summary_system_prompt"] = prompts["summary_system"]
    annotator = DocumentAnnotator(llm=llm, **annotator_kwargs)

    ingestion = IngestionPipeline(
        blob_store=blob_store,
        extractor=extractor,
        chunker=TextChunker(chunk_size=s.chunk_size),
        embedding_provider=embedding_provider,
        report_store=report_store,
        chat_store=chat_store,
        annotator=annotator,
        embed_concurrency=s.embed_concurrency,
        call_timeout=s.external_call_timeout,
    )
    retrieval = RetrievalService(
        embedding_provider=embedding_provider,
        chat_store=chat_store,
        default_k=s.retrieval_top_k,
        call_timeout=s.external_call_timeout,
    )
    answer_composer = AnswerComposer(
        llm=llm,
        max_context_chars=s.answer_context_max_chars,
        system_prompt=prompts.get("answer_system", DEFAULT_SYSTEM_PROMPT),
        preamble=prompts.get("answer_preamble", DEFAULT_PREAMBLE),
        call_timeout=s.external_call_timeout,
    )
    report_service = ReportService(
        llm=llm,
        report_store=report_store,
        max_context_chars=s.report_context_max_chars,
        system_prompt=prompts.get("report_system", DEFAULT_REPORT_SYSTEM_PROMPT),
        call_timeout=s.external_call_timeout,
    )
    document_library = DocumentLibrary(blob_store=blob_store, chunk_store=report_store)

    _logger.info(
        "services_built",
        llm=llm.get_provider_name(),
        embedding=embedding_provider.get_provider_name(),
        blob_store=blob_store.get_provider_name(),
        report_store=report_store.get_provider_name(),
        chat_store=chat_store.get_provider_name(),
    )

    return {
        "ingestion": ingestion,
        "retrieval": retrieval,
        "answer_composer": answer_composer,
        "report_service": report_service,
        "document_library": document_library,
        "llm": llm,
        "embedding_provider": embedding_provider,
        "blob_store": blob_store,
        "report_store": report_store,
        "chat_store": chat_store,
        "ocr_provider": ocr_provider,
        "settings": s,
        "config": config,
    }


async def answer_question(
    services: dict[str, Any],
    question: str,
    tenant: Tenant,
    k: int | None = None,
) -> ComposedAnswer:
    """Retrieve *tenant*'s nearest chunks for *question* and compose an answer."""
    retrieval_result = await services["retrieval"].retrieve(question, tenant, k)
    return await services["answer_composer"].compose(question, retrieval_result)
