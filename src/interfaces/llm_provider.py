"""Interface for the chat-completion backend.

One provider serves three callers: the answer composer (question plus
retrieved excerpts), the report service (every chunk a client has) and
the document annotator (summary and category for a fresh upload).
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Implemented by OpenAILLMProvider in src/providers/llm/.
class ILLMProvider(ABC):
    """Produces text from a system prompt and a user prompt."""

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 4000,
    ) -> str:
        """Run one completion and return the reply text.

        Parameters
        ----------
        system_prompt:
            Instructions for the model.
        user_prompt:
            The question or document text, with any context already inlined.
        temperature:
            Sampling temperature; callers that need repeatable output pass 0.
        max_tokens:
            Cap on reply length.

        Raises
        ------
        src.utils.errors.LLMError
            The backend failed or replied with nothing.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Label used in logs and error payloads."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether an API key is configured. No completion is attempted."""
