"""In-memory chunk store for local development and tests.

Keeps chunks in a plain list and ranks them with numpy cosine similarity,
so scores are comparable with the ChromaDB store (``1 - cosine distance``).
Not persistent and not shared between processes.
"""

from __future__ import annotations

import numpy as np
import structlog

from src.interfaces.chunk_store import IChunkStore
from src.models.documents import DocumentChunk, RetrievedChunk, Tenant

logger = structlog.get_logger(logger_name=__name__)


class InMemoryChunkStore(IChunkStore):
    """List-backed :class:`IChunkStore` with brute-force cosine search."""

    def __init__(self, name: str = "memory") -> None:
        self._name = name
        self._chunks: dict[str, DocumentChunk] = {}

    async def add_chunk(self, chunk: DocumentChunk) -> None:
        self._chunks[chunk.chunk_id] = chunk

    async def add_chunks(self, chunks: list[DocumentChunk]) -> int:
        for chunk in chunks:
            self._chunks[chunk.chunk_id] = chunk
        return len(chunks)

    async def query(
        self,
        tenant: Tenant,
        embedding: list[float],
        top_k: int = 10,
    ) -> list[RetrievedChunk]:
        candidates = [c for c in self._chunks.values() if c.tenant == tenant]
        if not candidates or top_k < 1:
            return []

        query_vec = np.asarray(embedding, dtype=np.float64)
        matrix = np.asarray([c.embedding for c in candidates], dtype=np.float64)
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query_vec)
        # Zero vectors score 0 rather than NaN.
        scores = np.divide(
            matrix @ query_vec, norms, out=np.zeros(len(candidates)), where=norms > 0
        )

        ranked = sorted(
            zip(candidates, scores.tolist()),
            key=lambda pair: (-pair[1], pair[0].source_filename, pair[0].chunk_index),
        )[:top_k]
        logger.debug("memory_store_query", store=self._name, tenant=tenant.prefix, results=len(ranked))
        return [RetrievedChunk(chunk=c, similarity_score=s) for c, s in ranked]

    async def list_chunks(
        self,
        tenant: Tenant,
        source_filename: str | None = None,
    ) -> list[DocumentChunk]:
        chunks = [
            c
            for c in self._chunks.values()
            if c.tenant == tenant
            and (source_filename is None or c.source_filename == source_filename)
        ]
        return sorted(chunks, key=lambda c: (c.source_filename, c.chunk_index))

    async def count(self, tenant: Tenant | None = None) -> int:
        if tenant is None:
            return len(self._chunks)
        return sum(1 for c in self._chunks.values() if c.tenant == tenant)

    def get_provider_name(self) -> str:
        return f"memory:{self._name}"

    def is_available(self) -> bool:
        return True
