"""OCR provider implementations.

    TesseractOCRProvider -- Google Tesseract via pytesseract; reads the page
    images rendered by the text extractor when a PDF has no text layer.
"""

from src.providers.ocr.tesseract_provider import TesseractOCRProvider

__all__ = ["TesseractOCRProvider"]
