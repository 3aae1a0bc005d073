"""Tenant-scoped similarity retrieval over the chat sink.

The question is embedded with the same provider used at ingestion time and
the chat sink is asked for the nearest chunks of one ``(accountant,
client)`` tenant.  Whatever the store returns is re-checked: chunks of any
other tenant are dropped, results are sorted by descending similarity with
a stable tie-break on ``(source_filename, chunk_index)``, and the list is
cut to ``k``.  Repeating a query therefore returns the same ordering.
"""

from __future__ import annotations

import structlog

from src.interfaces.chunk_store import IChunkStore
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.models.documents import RetrievalResult, RetrievedChunk, Tenant
from src.utils.concurrency import with_timeout
from src.utils.errors import InputValidationError

logger = structlog.get_logger(logger_name=__name__)


def rank_key(item: RetrievedChunk) -> tuple[float, str, int]:
    """Sort key: highest score first, then file name, then chunk index."""
    return (-item.similarity_score, item.chunk.source_filename, item.chunk.chunk_index)


class RetrievalService:
    """Embeds a question and returns the tenant's nearest chunks."""

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        chat_store: IChunkStore,
        default_k: int = 10,
        call_timeout: float = 60.0,
    ) -> None:
        self._embedding_provider = embedding_provider
        self._chat_store = chat_store
        self._default_k = default_k
        self._call_timeout = call_timeout

    async def retrieve(
        self,
        query_text: str,
        tenant: Tenant,
        k: int | None = None,
    ) -> RetrievalResult:
        """Return up to *k* chunks of *tenant* most similar to *query_text*.

        An unknown tenant or an empty sink yields an empty result.

        Raises
        ------
        InputValidationError
            If *k* is below 1 or the question is blank.
        """
        k = self._default_k if k is None else k
        if k < 1:
            raise InputValidationError(f"k must be >= 1, got {k}")
        if not query_text or not query_text.strip():
            raise InputValidationError("Question must not be empty.")

        vector = await with_timeout(
            self._embedding_provider.embed_single(query_text),
            self._call_timeout,
            "query embedding",
            self._embedding_provider.get_provider_name(),
        )
        raw = await with_timeout(
            self._chat_store.query(tenant, vector, k),
            self._call_timeout,
            "chat sink query",
            self._chat_store.get_provider_name(),
        )

        scoped = [item for item in raw if item.chunk.tenant == tenant]
        if len(scoped) != len(raw):
            logger.warning(
                "foreign_tenant_chunks_dropped",
                tenant=tenant.prefix,
                dropped=len(raw) - len(scoped),
            )
        ranked = sorted(scoped, key=rank_key)[:k]

        logger.info(
            "retrieval_complete",
            tenant=tenant.prefix,
            k=k,
            results=len(ranked),
            top_score=round(ranked[0].similarity_score, 4) if ranked else None,
        )
        return RetrievalResult(tenant=tenant, query_text=query_text, results=ranked)
