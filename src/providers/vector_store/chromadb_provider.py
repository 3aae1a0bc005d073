"""ChromaDB chunk store adapter.

Wraps ``chromadb.PersistentClient`` to implement :class:`IChunkStore`.
Each sink (report, chat) is one collection using cosine distance.  Every
read carries a ``where`` clause on ``accountant`` and ``client`` so a query
can only ever see its own tenant's chunks.
"""

from __future__ import annotations

import os
from datetime import datetime
from typing import Any

# Must be set before chromadb is imported; the client Settings below
# repeat the opt-out for versions that ignore the env var.
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import chromadb
import structlog

from src.interfaces.chunk_store import IChunkStore
from src.models.documents import DocumentChunk, RetrievedChunk, Tenant
from src.utils.errors import ChunkStoreError

logger = structlog.get_logger(logger_name=__name__)


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """Stand-in embedding function for collections that only receive vectors.

    Every chunk and every query arrives already embedded.  Passing this
    keeps ChromaDB from fetching its default ONNX model when the
    collection is created.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError(
            "Chunk and query vectors come from the embedding provider; "
            "collection-side embedding is disabled."
        )

    def name(self) -> str:
        return "precomputed_only"


class ChromaDBChunkStore(IChunkStore):
    """Chunk store backed by one persistent ChromaDB collection.

    Two instances with different ``collection_name`` values serve as the
    report sink and the chat sink.  They may share a ``client`` so both
    collections live in one persist directory.
    """

    def __init__(
        self,
        persist_directory: str = "./data/chromadb",
        collection_name: str = "chat_chunks",
        client: Any | None = None,
    ) -> None:
        self._persist_directory = persist_directory
        self._collection_name = collection_name
        self._client = client or chromadb.PersistentClient(
            path=persist_directory,
            settings=chromadb.config.Settings(anonymized_telemetry=False),
        )
        try:
            self._collection = self._client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
                embedding_function=_NoopEmbeddingFunction(),
            )
        except ValueError:
            # Collections persisted with another embedding function refuse
            # the no-op one; embeddings are always supplied anyway.
            self._collection = self._client.get_or_create_collection(
                name=collection_name,
                metadata={"hnsw:space": "cosine"},
            )

    # ------------------------------------------------------------------
    # IChunkStore implementation
    # ------------------------------------------------------------------

    async def add_chunk(self, chunk: DocumentChunk) -> None:
        await self.add_chunks([chunk])

    async def add_chunks(self, chunks: list[DocumentChunk]) -> int:
        """Upsert chunks keyed by ``chunk_id``."""
        if not chunks:
            return 0
        try:
            self._collection.upsert(
                ids=[c.chunk_id for c in chunks],
                embeddings=[c.embedding for c in chunks],
                documents=[c.sequence_text for c in chunks],
                metadatas=[self._chunk_to_metadata(c) for c in chunks],
            )
        except Exception as exc:
            raise ChunkStoreError(
                message=f"ChromaDB add_chunks failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.debug(
            "chromadb_add_chunks",
            collection=self._collection_name,
            count=len(chunks),
        )
        return len(chunks)

    async def query(
        self,
        tenant: Tenant,
        embedding: list[float],
        top_k: int = 10,
    ) -> list[RetrievedChunk]:
        """Return the *top_k* nearest chunks of *tenant* by cosine similarity."""
        try:
            available = self._collection.count()
            if available == 0 or top_k < 1:
                return []

            results = self._collection.query(
                query_embeddings=[embedding],
                n_results=min(top_k, available),
                where=self._tenant_where(tenant),
                include=["documents", "metadatas", "distances", "embeddings"],
            )
        except Exception as exc:
            raise ChunkStoreError(
                message=f"ChromaDB query failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        ids = results["ids"][0] if results.get("ids") else []
        if not ids:
            return []

        documents = results["documents"][0]
        metadatas = results["metadatas"][0]
        distances = results["distances"][0]
        embeddings = results["embeddings"][0]

        retrieved: list[RetrievedChunk] = []
        for chunk_id, doc_text, meta, distance, vector in zip(
            ids, documents, metadatas, distances, embeddings, strict=True
        ):
            chunk = self._metadata_to_chunk(chunk_id, meta, doc_text, vector)
            if chunk.tenant != tenant:
                continue
            retrieved.append(
                RetrievedChunk(chunk=chunk, similarity_score=1.0 - float(distance))
            )

        retrieved.sort(key=lambda rc: rc.similarity_score, reverse=True)
        logger.info(
            "chromadb_query",
            collection=self._collection_name,
            tenant=tenant.prefix,
            results_count=len(retrieved),
            top_score=retrieved[0].similarity_score if retrieved else 0.0,
        )
        return retrieved

    async def list_chunks(
        self,
        tenant: Tenant,
        source_filename: str | None = None,
    ) -> list[DocumentChunk]:
        """Return every chunk of *tenant* ordered by file then chunk index."""
        where = self._tenant_where(tenant, source_filename)
        try:
            results = self._collection.get(
                where=where,
                include=["documents", "metadatas", "embeddings"],
            )
        except Exception as exc:
            raise ChunkStoreError(
                message=f"ChromaDB list_chunks failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        ids = results.get("ids") or []
        chunks = [
            self._metadata_to_chunk(chunk_id, meta, doc_text, vector)
            for chunk_id, doc_text, meta, vector in zip(
                ids,
                results["documents"],
                results["metadatas"],
                results["embeddings"],
                strict=True,
            )
        ]
        chunks.sort(key=lambda c: (c.source_filename, c.chunk_index))
        return chunks

    async def count(self, tenant: Tenant | None = None) -> int:
        try:
            if tenant is None:
                return self._collection.count()
            results = self._collection.get(where=self._tenant_where(tenant), include=[])
        except Exception as exc:
            raise ChunkStoreError(
                message=f"ChromaDB count failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return len(results.get("ids") or [])

    def get_provider_name(self) -> str:
        return f"chromadb:{self._collection_name}"

    def is_available(self) -> bool:
        """Return ``True`` if the collection answers a count request."""
        try:
            self._collection.count()
            return True
        except Exception:
            return False

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _tenant_where(tenant: Tenant, source_filename: str | None = None) -> dict[str, Any]:
        clauses: list[dict[str, Any]] = [
            {"accountant": tenant.accountant},
            {"client": tenant.client},
        ]
        if source_filename is not None:
            clauses.append({"source_filename": source_filename})
        return {"$and": clauses}

    @staticmethod
    def _chunk_to_metadata(chunk: DocumentChunk) -> dict[str, str | int | float | bool]:
        """Flatten *chunk* into the scalar-only metadata ChromaDB accepts.

        ChromaDB metadata values must be str, int, float, or bool, so
        ``None`` fields are omitted rather than stored.
        """
        meta: dict[str, str | int | float | bool] = {
            "accountant": chunk.tenant.accountant,
            "client": chunk.tenant.client,
            "source_filename": chunk.source_filename,
            "chunk_index": chunk.chunk_index,
            "created_at": chunk.created_at.isoformat(),
        }
        if chunk.note is not None:
            meta["note"] = chunk.note
        if chunk.category is not None:
            meta["category"] = chunk.category
        return meta

    @staticmethod
    def _metadata_to_chunk(
        chunk_id: str,
        meta: dict[str, Any],
        text: str | None,
        embedding: Any,
    ) -> DocumentChunk:
        """Reverse :meth:`_chunk_to_metadata`, reattaching text and vector."""
        created_raw = meta.get("created_at")
        extra: dict[str, Any] = {}
        if created_raw:
            extra["created_at"] = datetime.fromisoformat(created_raw)
        return DocumentChunk(
            chunk_id=chunk_id,
            tenant=Tenant(accountant=meta["accountant"], client=meta["client"]),
            source_filename=meta["source_filename"],
            chunk_index=int(meta.get("chunk_index", 0)),
            sequence_text=text or "",
            # Newer chromadb versions return numpy arrays here.
            embedding=[float(x) for x in embedding],
            note=meta.get("note"),
            category=meta.get("category"),
            **extra,
        )
