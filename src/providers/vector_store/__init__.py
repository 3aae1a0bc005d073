"""Chunk store implementations.

Two instances are wired at startup, one per sink (report and chat):

    ChromaDBChunkStore  -- persistent collection per sink, cosine HNSW,
                           tenant ``where`` clause on every read.
    InMemoryChunkStore  -- numpy cosine over a dict; local runs and tests.
"""

from src.providers.vector_store.chromadb_provider import ChromaDBChunkStore
from src.providers.vector_store.memory_store import InMemoryChunkStore

__all__ = ["ChromaDBChunkStore", "InMemoryChunkStore"]
