"""Tesseract OCR provider for scanned client documents.

Wraps pytesseract to read one rendered page image at a time.  The text
extractor renders pages at a fixed DPI into a temporary directory and
calls :meth:`TesseractOCRProvider.recognize` once per page.
"""

from __future__ import annotations

import asyncio
import time
from pathlib import Path

import pytesseract
from PIL import Image

from src.interfaces.ocr_provider import IOCRProvider
from src.utils.errors import OCRExtractionError
from src.utils.logging import get_logger


class TesseractOCRProvider(IOCRProvider):
    """OCR provider backed by Google Tesseract via pytesseract."""

    def __init__(self, lang: str = "eng", config: str = "") -> None:
        self._lang = lang
        self._config = config
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # IOCRProvider interface
    # ------------------------------------------------------------------

    async def recognize(self, image_path: str | Path) -> str:
        """Run Tesseract on the page image at *image_path*.

        The blocking pytesseract call runs in a worker thread.
        """
        start = time.perf_counter()
        try:
            text = await asyncio.to_thread(self._run_tesseract, Path(image_path))
        except Exception as exc:
            elapsed = time.perf_counter() - start
            self._logger.error(
                "ocr_page_failed",
                provider="tesseract",
                image=str(image_path),
                error=str(exc),
                processing_time=round(elapsed, 3),
            )
            raise OCRExtractionError(
                f"Tesseract OCR failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        self._logger.debug(
            "ocr_page_complete",
            provider="tesseract",
            chars=len(text),
            processing_time=round(time.perf_counter() - start, 3),
        )
        return text

    def get_provider_name(self) -> str:
        return "tesseract"

    def is_available(self) -> bool:
        """Check that the Tesseract binary is installed."""
        try:
            pytesseract.get_tesseract_version()
            return True
        except (pytesseract.TesseractNotFoundError, OSError):
            return False

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _run_tesseract(self, image_path: Path) -> str:
        with Image.open(image_path) as image:
            return pytesseract.image_to_string(
                image.convert("RGB"), lang=self._lang, config=self._config
            )
