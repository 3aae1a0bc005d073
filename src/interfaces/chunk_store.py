"""Abstract base class for embedded-chunk storage.

Two independent stores are wired at startup: the *report sink*, read in
full when generating a tenant report, and the *chat sink*, queried by
vector similarity when answering questions.  Both receive every chunk.

Every read is tenant-scoped.  Implementations must never return a chunk
whose ``(accountant, client)`` differs from the requested tenant, and
must compute ``similarity_score`` as cosine similarity so scores from
different backends are comparable.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.documents import DocumentChunk, RetrievedChunk, Tenant


# Concrete implementations: ChromaDBChunkStore, InMemoryChunkStore
# Located in: src/providers/vector_store/
class IChunkStore(ABC):
    """Contract for chunk stores used as report and chat sinks."""

    @abstractmethod
    async def add_chunk(self, chunk: DocumentChunk) -> None:
        """Persist one embedded chunk.

        Raises
        ------
        src.utils.errors.ChunkStoreError
            If the write fails.
        """

    @abstractmethod
    async def add_chunks(self, chunks: list[DocumentChunk]) -> int:
        """Persist several chunks, returning how many were written."""

    @abstractmethod
    async def query(
        self,
        tenant: Tenant,
        embedding: list[float],
        top_k: int = 10,
    ) -> list[RetrievedChunk]:
        """Return up to *top_k* chunks of *tenant* nearest to *embedding*.

        Parameters
        ----------
        tenant:
            The only tenant whose chunks may be returned.
        embedding:
            The query vector, produced by the same embedding provider as the
            stored chunks.
        top_k:
            Maximum number of results.

        Returns
        -------
        list[RetrievedChunk]
            Results ranked by cosine similarity, highest first.

        Raises
        ------
        src.utils.errors.ChunkStoreError
            If the backend query fails.
        """

    @abstractmethod
    async def list_chunks(
        self,
        tenant: Tenant,
        source_filename: str | None = None,
    ) -> list[DocumentChunk]:
        """Return every stored chunk of *tenant*, optionally for one file.

        Results are ordered by ``(source_filename, chunk_index)``.
        """

    @abstractmethod
    async def count(self, tenant: Tenant | None = None) -> int:
        """Return the number of stored chunks, optionally for one tenant."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"chromadb:chat_chunks"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the store is reachable."""
