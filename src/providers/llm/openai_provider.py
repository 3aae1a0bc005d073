"""Chat completions for answers, reports and document annotation.

Implements :class:`ILLMProvider` with ``openai.AsyncOpenAI``.  A non-empty
``OPENAI_BASE_URL`` routes requests to another OpenAI-compatible server.
"""

from __future__ import annotations

import openai
import structlog

from src.config.settings import Settings
from src.interfaces.llm_provider import ILLMProvider
from src.utils.errors import LLMError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_TEXT_MODEL = "gpt-4.1-mini"

# Added to external_call_timeout so asyncio.wait_for in the services expires
# before the SDK gives up on its own.
_SDK_TIMEOUT_MARGIN = 5.0


class OpenAILLMProvider(ILLMProvider):
    """Sends a system/user message pair to ``gpt-4.1-mini`` or ``OPENAI_TEXT_MODEL``."""

    def __init__(self, settings: Settings) -> None:
        self._api_key = settings.openai_api_key
        self._model = settings.openai_text_model or _DEFAULT_TEXT_MODEL
        self._name = "openai-compatible" if settings.openai_base_url else "openai"

        client_kwargs: dict = {
            "api_key": self._api_key,
            "timeout": openai.Timeout(
                settings.external_call_timeout + _SDK_TIMEOUT_MARGIN, connect=5.0
            ),
        }
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url
        self._client = openai.AsyncOpenAI(**client_kwargs)

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 4000,
    ) -> str:
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.APITimeoutError as exc:
            raise LLMError(
                message=f"{self._name} request timed out", provider_name=self._name
            ) from exc
        except openai.APIError as exc:
            raise LLMError(
                message=f"{self._name} API error: {exc}", provider_name=self._name
            ) from exc

        reply = response.choices[0].message.content if response.choices else None
        if reply is None:
            raise LLMError(
                message=f"{self._name} returned empty response", provider_name=self._name
            )

        logger.info(
            "llm_completion",
            model=self._model,
            provider=self._name,
            prompt_chars=len(system_prompt) + len(user_prompt),
            tokens=response.usage.total_tokens if response.usage else None,
        )
        return reply

    def get_provider_name(self) -> str:
        return self._name

    def is_available(self) -> bool:
        return bool(self._api_key)
