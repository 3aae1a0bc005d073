"""Interface for turning chunk and question text into vectors.

Ingestion embeds every stored chunk and retrieval embeds every question
through the same provider instance, so both sides of a similarity search
live in one vector space.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Implemented by OpenAIEmbeddingProvider in src/providers/embedding/.
class IEmbeddingProvider(ABC):
    """Vectorizes text for the chunk stores."""

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Return one vector per entry of *texts*, in the same order.

        Splitting into requests the backend can accept is the provider's
        job.  Raises :class:`~src.utils.errors.EmbeddingError` when the
        backend fails or hands back something other than one non-empty
        vector per input.
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Vector for one chunk or one question."""

    @abstractmethod
    def get_dimension(self) -> int:
        """Vector length; fixed for the provider's lifetime."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Label used in logs and error payloads."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether credentials are configured. No network call is made."""
