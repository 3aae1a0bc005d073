"""Grounded answer generation from retrieved chunks.

Retrieved chunk texts are placed, in retrieval order, into a bounded
context block separated by ``"\\n---\\n"``.  Whole chunks are added while
they fit in ``max_context_chars``; when even the first chunk is too long it
is cut to the budget.  The LLM is asked to answer as a Cyprus-based
accounting assistant using only that context.
"""

from __future__ import annotations

import structlog

from src.interfaces.llm_provider import ILLMProvider
from src.models.documents import ComposedAnswer, RetrievalResult, RetrievedChunk
from src.utils.concurrency import with_timeout
from src.utils.errors import InputValidationError

logger = structlog.get_logger(logger_name=__name__)

CONTEXT_SEPARATOR = "\n---\n"

DEFAULT_SYSTEM_PROMPT = "You are a helpful Cyprus tax assistant."
DEFAULT_PREAMBLE = "You are a Cyprus-based accounting assistant."


def build_context(
    results: list[RetrievedChunk],
    max_chars: int,
) -> tuple[str, list[RetrievedChunk], bool]:
    """Join chunk texts up to *max_chars*.

    Returns
    -------
    tuple[str, list[RetrievedChunk], bool]
        The context string, the chunks that contributed to it, and whether
        any chunk was dropped or cut.
    """
    parts: list[str] = []
    used: list[RetrievedChunk] = []
    length = 0
    for item in results:
        text = item.chunk.sequence_text
        extra = len(text) + (len(CONTEXT_SEPARATOR) if parts else 0)
        if length + extra <= max_chars:
            parts.append(text)
            used.append(item)
            length += extra
            continue
        if not parts and max_chars > 0:
            parts.append(text[:max_chars])
            used.append(item)
        return CONTEXT_SEPARATOR.join(parts), used, True
    return CONTEXT_SEPARATOR.join(parts), used, False


class AnswerComposer:
    """Turns a question plus its retrieval result into a grounded answer."""

    def __init__(
        self,
        llm: ILLMProvider,
        max_context_chars: int = 12000,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        preamble: str = DEFAULT_PREAMBLE,
        temperature: float = 0.3,
        max_tokens: int = 1500,
        call_timeout: float = 60.0,
    ) -> None:
        self._llm = llm
        self._max_context_chars = max_context_chars
        self._system_prompt = system_prompt
        self._preamble = preamble
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._call_timeout = call_timeout

    async def compose(self, query_text: str, retrieval: RetrievalResult) -> ComposedAnswer:
        """Ask the LLM to answer *query_text* from *retrieval*'s chunks.

        An empty retrieval result still produces an LLM call with an empty
        context.
        """
        if not query_text or not query_text.strip():
            raise InputValidationError("Question must not be empty.")

        context, used, truncated = build_context(retrieval.results, self._max_context_chars)
        user_prompt = (
            f"{self._preamble}\n\n"
            "Use the following context to answer the question.\n\n"
            f"Context:\n{context}\n\n"
            f"Question: {query_text}\n"
            "Answer:"
        )
        answer = await with_timeout(
            self._llm.complete(
                system_prompt=self._system_prompt,
                user_prompt=user_prompt,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            ),
            self._call_timeout,
            "answer generation",
            self._llm.get_provider_name(),
        )

        logger.info(
            "answer_composed",
            tenant=retrieval.tenant.prefix,
            sources=len(used),
            context_chars=len(context),
            truncated=truncated,
        )
        return ComposedAnswer(
            answer=answer.strip(),
            sources=used,
            context_chars=len(context),
            truncated=truncated,
        )
