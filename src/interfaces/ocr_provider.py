"""Abstract base class for OCR service providers.

Defines the contract for the OCR engine the text extractor falls back to
when a PDF has no usable text layer.  The extractor renders each page to an
image file and hands the path to :meth:`IOCRProvider.recognize`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path


# Concrete implementation: TesseractOCRProvider
# Located in: src/providers/ocr/
class IOCRProvider(ABC):
    """Contract for OCR services that read text from a rendered page image."""

    @abstractmethod
    async def recognize(self, image_path: str | Path) -> str:
        """Run OCR on the image at *image_path* and return its text.

        Parameters
        ----------
        image_path:
            Path to a PNG rendering of one page.

        Returns
        -------
        str
            Recognised text; may be empty for a blank page.

        Raises
        ------
        src.utils.errors.OCRExtractionError
            If the OCR engine fails.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"tesseract"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the OCR engine binary is installed."""
