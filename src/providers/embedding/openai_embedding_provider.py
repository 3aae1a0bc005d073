"""OpenAI embeddings for chunk and question text.

Implements :class:`IEmbeddingProvider` on top of ``openai.AsyncOpenAI``.
Setting ``OPENAI_BASE_URL`` points the client at any OpenAI-compatible
embeddings endpoint; ``OPENAI_EMBEDDING_MODEL`` picks the model.
"""

from __future__ import annotations

import openai
import structlog

from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.utils.errors import EmbeddingError

logger = structlog.get_logger(logger_name=__name__)

# The embeddings endpoint accepts at most this many inputs per request.
_MAX_INPUTS_PER_REQUEST = 2048

_DEFAULT_MODEL = "text-embedding-3-small"

_MODEL_DIMENSIONS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Embeds text with ``text-embedding-3-small`` (1536 dims) unless configured otherwise.

    A response with the wrong number of vectors, or with an empty vector,
    is treated as a failed call so nothing unusable reaches a chunk store.
    """

    def __init__(self, settings: Settings) -> None:
        self._api_key = settings.openai_api_key
        client_kwargs: dict = {"api_key": self._api_key}
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url
        self._client = openai.AsyncOpenAI(**client_kwargs)

        self._model = settings.openai_embedding_model or _DEFAULT_MODEL
        self._dimension = _MODEL_DIMENSIONS.get(self._model, 1536)
        self._name = (
            "openai-compatible_embedding" if settings.openai_base_url else "openai_embedding"
        )

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []

        vectors: list[list[float]] = []
        for offset in range(0, len(texts), _MAX_INPUTS_PER_REQUEST):
            vectors.extend(await self._request(texts[offset : offset + _MAX_INPUTS_PER_REQUEST]))

        if len(vectors) != len(texts) or any(not v for v in vectors):
            raise EmbeddingError(
                message=(
                    f"{self._name} returned {len(vectors)} vectors "
                    f"for {len(texts)} inputs, or an empty vector"
                ),
                provider_name=self._name,
            )
        return vectors

    async def embed_single(self, text: str) -> list[float]:
        [vector] = await self.embed([text])
        return vector

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return self._name

    def is_available(self) -> bool:
        """``True`` when an API key is set; the key itself is not checked."""
        return bool(self._api_key)

    async def _request(self, batch: list[str]) -> list[list[float]]:
        try:
            response = await self._client.embeddings.create(input=batch, model=self._model)
        except openai.APIError as exc:
            raise EmbeddingError(
                message=f"{self._name} API error: {exc}",
                provider_name=self._name,
            ) from exc

        logger.info(
            "embedding_request",
            model=self._model,
            provider=self._name,
            inputs=len(batch),
            tokens=response.usage.total_tokens if response.usage else None,
        )
        return [list(item.embedding) for item in response.data]
