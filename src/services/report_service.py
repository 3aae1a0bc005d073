"""Tax report generation over every stored chunk of one client.

Reads the report sink (never the chat sink) for one tenant, joins the
chunk texts in file and chunk order, and asks the LLM for a structured
report based only on that text.
"""

from __future__ import annotations

import structlog

from src.interfaces.chunk_store import IChunkStore
from src.interfaces.llm_provider import ILLMProvider
from src.models.documents import TaxReport, Tenant
from src.utils.concurrency import with_timeout

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_REPORT_SYSTEM_PROMPT = (
    "You are a Cyprus tax accountant. Generate a structured tax report for a "
    "client using only the provided text below."
)


class ReportService:
    """Generates a :class:`TaxReport` from the report sink."""

    def __init__(
        self,
        llm: ILLMProvider,
        report_store: IChunkStore,
        max_context_chars: int = 60000,
        system_prompt: str = DEFAULT_REPORT_SYSTEM_PROMPT,
        call_timeout: float = 60.0,
    ) -> None:
        self._llm = llm
        self._report_store = report_store
        self._max_context_chars = max_context_chars
        self._system_prompt = system_prompt
        self._call_timeout = call_timeout

    async def generate_report(self, tenant: Tenant) -> TaxReport:
        """Generate a report for *tenant*; empty when nothing is stored."""
        chunks = await self._report_store.list_chunks(tenant)
        if not chunks:
            logger.info("report_skipped_no_chunks", tenant=tenant.prefix)
            return TaxReport(tenant=tenant, report="", chunk_count=0)

        full_text = "\n".join(c.sequence_text for c in chunks)
        truncated = len(full_text) > self._max_context_chars
        content = full_text[: self._max_context_chars]

        report = await with_timeout(
            self._llm.complete(
                system_prompt=self._system_prompt,
                user_prompt=content,
                temperature=0.3,
            ),
            self._call_timeout,
            "report generation",
            self._llm.get_provider_name(),
        )

        source_filenames = list(dict.fromkeys(c.source_filename for c in chunks))
        logger.info(
            "report_generated",
            tenant=tenant.prefix,
            chunks=len(chunks),
            documents=len(source_filenames),
            truncated=truncated,
        )
        return TaxReport(
            tenant=tenant,
            report=report.strip(),
            source_filenames=source_filenames,
            chunk_count=len(chunks),
            truncated=truncated,
        )
