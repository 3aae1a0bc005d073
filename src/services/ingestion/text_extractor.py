"""Text extraction from uploaded client documents.

Turns raw upload bytes into plain text according to the declared media type:

* ``application/pdf`` -- the text layer is read page by page with PyMuPDF.
  When it holds fewer than ``min_text_chars`` characters once stripped
  (a scan, or a photo saved as PDF), every page is rendered to a PNG at a
  fixed DPI inside a temporary directory and run through the OCR provider,
  one call per page, each under its own ``ocr_page_timeout``.  Pages whose
  OCR text is blank are dropped.  The directory is removed whether OCR
  succeeds or fails.
* ``text/*`` -- decoded as UTF-8, undecodable bytes replaced.
* anything else (photos, office files, archives) -- not extracted; the
  placeholder ``"No text extracted"`` is returned so the upload is still
  stored and indexed.

Only a missing media type is rejected.
"""

from __future__ import annotations

import asyncio
import tempfile
from pathlib import Path

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog

from src.interfaces.ocr_provider import IOCRProvider
from src.models.documents import NO_TEXT_PLACEHOLDER, ExtractionResult
from src.utils.concurrency import with_timeout
from src.utils.errors import (
    ExtractionError,
    OCRExtractionError,
    ServiceTimeoutError,
    UnsupportedMediaTypeError,
)

logger = structlog.get_logger(logger_name=__name__)

PDF_MEDIA_TYPE = "application/pdf"

# PDF user space is 72 points per inch.
_PDF_POINTS_PER_INCH = 72.0


def normalize_media_type(media_type: str) -> str:
    """Lower-case *media_type* and drop parameters such as ``charset``."""
    return media_type.split(";", 1)[0].strip().lower()


class TextExtractor:
    """Extracts plain text from PDF and text uploads; other types get a placeholder.

    Parameters
    ----------
    ocr_provider:
        Engine used for the scanned-PDF fallback.
    ocr_dpi:
        Resolution at which pages are rendered for OCR.
    min_text_chars:
        A PDF whose stripped text layer is shorter than this goes to OCR.
    work_dir:
        Parent directory for the per-call temporary directory; the system
        temp location when ``None``.
    ocr_page_timeout:
        Seconds allowed for one page's OCR call; ``0`` disables the limit.
    """

    def __init__(
        self,
        ocr_provider: IOCRProvider,
        ocr_dpi: int = 200,
        min_text_chars: int = 10,
        work_dir: str | Path | None = None,
        ocr_page_timeout: float = 60.0,
    ) -> None:
        self._ocr = ocr_provider
        self._ocr_dpi = ocr_dpi
        self._min_text_chars = min_text_chars
        self._work_dir = str(work_dir) if work_dir else None
        self._ocr_page_timeout = ocr_page_timeout

    @staticmethod
    def supports(media_type: str) -> bool:
        """Return ``True`` for any declared media type; only a blank one is unusable."""
        return bool(normalize_media_type(media_type or ""))

    async def extract(self, data: bytes, media_type: str) -> ExtractionResult:
        """Extract text from *data* according to *media_type*.

        Raises
        ------
        UnsupportedMediaTypeError
            If no media type was declared.
        ExtractionError
            If the PDF cannot be parsed or rendered.
        OCRExtractionError
            If the OCR engine fails or times out on a page.
        """
        kind = normalize_media_type(media_type or "")
        if not kind:
            raise UnsupportedMediaTypeError(f"Missing media type: {media_type!r}")
        if kind == PDF_MEDIA_TYPE:
            return await self._extract_pdf(data)
        if kind.startswith("text/"):
            return ExtractionResult(
                text=data.decode("utf-8", errors="replace"), method="plain_text"
            )
        logger.info("extraction_skipped", media_type=kind)
        return ExtractionResult(text=NO_TEXT_PLACEHOLDER, method="placeholder")

    # ------------------------------------------------------------------
    # PDF path
    # ------------------------------------------------------------------

    async def _extract_pdf(self, data: bytes) -> ExtractionResult:
        text, page_count = await asyncio.to_thread(self._read_text_layer, data)
        if len(text.strip()) >= self._min_text_chars:
            logger.info("pdf_text_extracted", pages=page_count, chars=len(text))
            return ExtractionResult(text=text, method="direct", page_count=page_count)

        logger.info(
            "ocr_fallback_triggered",
            pages=page_count,
            text_layer_chars=len(text.strip()),
            threshold=self._min_text_chars,
        )
        with tempfile.TemporaryDirectory(prefix="ocr-", dir=self._work_dir) as tmp:
            images = await asyncio.to_thread(self._render_pages, data, Path(tmp))
            page_texts: list[str] = []
            for page_number, image_path in enumerate(images, start=1):
                page_text = await self._recognize_page(image_path, page_number, len(images))
                if page_text.strip():
                    page_texts.append(page_text)

        ocr_text = "\n\n".join(page_texts)
        logger.info(
            "ocr_fallback_complete",
            pages=len(images),
            pages_with_text=len(page_texts),
            chars=len(ocr_text),
        )
        return ExtractionResult(
            text=ocr_text,
            method="ocr",
            page_count=page_count,
            ocr_pages=len(images),
        )

    async def _recognize_page(self, image_path: Path, page_number: int, pages: int) -> str:
        provider = self._ocr.get_provider_name()
        try:
            return await with_timeout(
                self._ocr.recognize(image_path),
                self._ocr_page_timeout,
                f"OCR of page {page_number}",
                provider,
            )
        except OCRExtractionError:
            logger.error("ocr_page_failed", page=page_number, pages=pages)
            raise
        except ServiceTimeoutError as exc:
            logger.error("ocr_page_timed_out", page=page_number, pages=pages)
            raise OCRExtractionError(
                message=f"OCR timed out on page {page_number} of {pages}",
                provider_name=provider,
            ) from exc

    @staticmethod
    def _open(data: bytes) -> fitz.Document:
        try:
            return fitz.open(stream=data, filetype="pdf")
        except Exception as exc:
            raise ExtractionError(
                f"Could not open PDF: {exc}", provider_name="pymupdf"
            ) from exc

    def _read_text_layer(self, data: bytes) -> tuple[str, int]:
        doc = self._open(data)
        if doc.page_count == 0:
            doc.close()
            raise ExtractionError("PDF has no pages", provider_name="pymupdf")
        try:
            pages = [page.get_text("text") for page in doc]
        except Exception as exc:
            raise ExtractionError(
                f"Could not read PDF text: {exc}", provider_name="pymupdf"
            ) from exc
        finally:
            doc.close()
        return "\n\n".join(pages), len(pages)

    def _render_pages(self, data: bytes, out_dir: Path) -> list[Path]:
        zoom = self._ocr_dpi / _PDF_POINTS_PER_INCH
        matrix = fitz.Matrix(zoom, zoom)
        doc = self._open(data)
        paths: list[Path] = []
        try:
            for index, page in enumerate(doc, start=1):
                pixmap = page.get_pixmap(matrix=matrix)
                path = out_dir / f"page-{index:04d}.png"
                pixmap.save(str(path))
                paths.append(path)
        except Exception as exc:
            raise ExtractionError(
                f"Could not render PDF page for OCR: {exc}", provider_name="pymupdf"
            ) from exc
        finally:
            doc.close()
        return paths
