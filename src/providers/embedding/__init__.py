"""Embedding provider implementations.

Embeddings convert chunk and question text into vectors that the chunk
stores compare by cosine similarity.

    OpenAIEmbeddingProvider -- text-embedding-3-small (1536 dims).
"""

from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["OpenAIEmbeddingProvider"]
