"""Best-effort summary and category labels for an ingested document.

Both calls go to the LLM after the document's chunks are stored.  Callers
treat any exception as "no annotation" and fall back to the user's note
and the ``"unclear"`` category; nothing here is allowed to fail an
ingestion.
"""

from __future__ import annotations

import re

import structlog

from src.interfaces.llm_provider import ILLMProvider

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_CATEGORIES: tuple[str, ...] = (
    "income",
    "expenses",
    "tax",
    "salary",
    "insurance",
    "receipt",
    "unclear",
)
UNCLEAR = "unclear"

_SUMMARY_CHARS = 3000
_CATEGORY_CHARS = 1000

_DEFAULT_SUMMARY_SYSTEM = (
    "You are an AI assistant for accountants. Summarize the document in one sentence."
)
_CATEGORY_SYSTEM = "You are an AI assistant for accountants."
_NON_ALPHA = re.compile(r"[^a-z]")


class DocumentAnnotator:
    """Produces a one-sentence note and a category label for a document."""

    def __init__(
        self,
        llm: ILLMProvider,
        categories: tuple[str, ...] | list[str] = DEFAULT_CATEGORIES,
        summary_system_prompt: str = _DEFAULT_SUMMARY_SYSTEM,
    ) -> None:
        self._llm = llm
        labels = tuple(dict.fromkeys(c.strip().lower() for c in categories if c.strip()))
        if UNCLEAR not in labels:
            labels = (*labels, UNCLEAR)
        self._categories = labels
        self._summary_system_prompt = summary_system_prompt

    @property
    def categories(self) -> tuple[str, ...]:
        return self._categories

    async def summarize(self, text: str) -> str:
        """Return a one-sentence summary of the start of *text*."""
        reply = await self._llm.complete(
            system_prompt=self._summary_system_prompt,
            user_prompt=f'Document content:\n"""{text[:_SUMMARY_CHARS]}"""',
            temperature=0.3,
            max_tokens=120,
        )
        return reply.strip()

    async def categorize(self, text: str) -> str:
        """Return one of :attr:`categories` for the start of *text*."""
        reply = await self._llm.complete(
            system_prompt=_CATEGORY_SYSTEM,
            user_prompt=self._category_prompt(text[:_CATEGORY_CHARS]),
            temperature=0.0,
            max_tokens=10,
        )
        label = self.normalize_label(reply)
        logger.debug("document_categorized", raw=reply.strip()[:40], category=label)
        return label

    def normalize_label(self, raw: str) -> str:
        """Lower-case, keep ``a-z`` only, map unknown labels to ``unclear``."""
        label = _NON_ALPHA.sub("", raw.strip().lower())
        return label if label in self._categories else UNCLEAR

    def _category_prompt(self, excerpt: str) -> str:
        options = "\n".join(f"- {c}" for c in self._categories)
        return (
            "You are an AI assistant for accountants. Categorize the following "
            f"document into one of these categories:\n{options}\n\n"
            "Respond ONLY with the category name.\n\n"
            f'Document content:\n"""{excerpt}"""'
        )
