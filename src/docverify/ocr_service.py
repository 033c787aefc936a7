#!/usr/bin/env python3
"""
OCR Service Module

Extracts text from uploaded document images with Tesseract and reports a
normalised confidence. PDFs are not rasterised; they get a placeholder text.
"""

import io
import logging
import re
from dataclasses import dataclass
from typing import Optional

import pytesseract
from PIL import Image

from .config import OCRConfig

logger = logging.getLogger(__name__)

PDF_PLACEHOLDER_TEXT = "PDF text extraction requires server-side processing."
NO_TEXT_MESSAGE = "No meaningful text could be extracted from this document."
FAILURE_MESSAGE = (
    "Text extraction failed. The document may be encrypted, damaged, "
    "or in an unsupported format."
)

@dataclass
class OCRResult:
    """Text and confidence (0-1) for one document."""
    text: str
    confidence: float

class OCRService:
    """
    OCR service providing text extraction from document images.

    Features:
    - Tesseract word-level extraction via image_to_data
    - Whitespace normalisation
    - Fixed messages for PDFs, empty results and failures
    """

    def __init__(self, config: Optional[OCRConfig] = None):
        self.config = config or OCRConfig()

        # Set tesseract path if provided
        if self.config.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = self.config.tesseract_cmd

    def extract_text(self, content: bytes, mime_type: str, filename: str = "") -> OCRResult:
        """
        Extract text from a document. Never raises.

        Args:
            content: Raw file bytes
            mime_type: Declared content type of the upload
            filename: Original filename, used for logging only

        Returns:
            OCRResult with normalised text and confidence
        """
        if mime_type == "application/pdf":
            return OCRResult(text=PDF_PLACEHOLDER_TEXT, confidence=0.5)

        try:
            text, confidence = self._run_tesseract(content)
        except Exception as e:
            logger.error(f"OCR failed for {filename or 'upload'}: {e}")
            return OCRResult(text=FAILURE_MESSAGE, confidence=0.0)

        text = re.sub(r'\s+', ' ', text).strip()

        if len(text) < self.config.min_text_length and confidence < self.config.min_confidence:
            return OCRResult(text=NO_TEXT_MESSAGE, confidence=0.1)

        return OCRResult(text=text, confidence=confidence)

    def _run_tesseract(self, content: bytes) -> "tuple[str, float]":
        with Image.open(io.BytesIO(content)) as image:
            image = image.convert("RGB")
            data = pytesseract.image_to_data(
                image,
                lang=self.config.language,
                config=self.config.tesseract_config,
                output_type=pytesseract.Output.DICT,
            )

        words = []
        confidences = []
        for word, conf in zip(data.get("text", []), data.get("conf", [])):
            try:
                conf = float(conf)
            except (TypeError, ValueError):
                continue
            if word and word.strip():
                words.append(word.strip())
            if conf >= 0:
                confidences.append(conf)

        confidence = (sum(confidences) / len(confidences) / 100.0) if confidences else 0.0
        return " ".join(words), confidence
