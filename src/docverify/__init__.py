#!/usr/bin/env python3
"""
DocVerify

Document authenticity verification service: users upload images, PDFs or
Word documents and receive a genuine / AI-generated verdict.

Features:
- Server-side OCR (Tesseract) and image features (MobileNetV2)
- Structural heuristics for PDFs and Word documents
- AI review through Google Gemini with mock fallbacks
- Authenticated FastAPI service with admin panels

Author: DocVerify Team
Version: 1.0.0
"""

__version__ = "1.0.0"
__author__ = "DocVerify Team"

# Core modules
from .authenticity import VerificationResult, analyze_pdf, analyze_office_document, heuristic_verdict
from .ocr_service import OCRService, OCRResult

__all__ = [
    "OCRResult",
    "OCRService",
    "VerificationResult",
    "analyze_office_document",
    "analyze_pdf",
    "heuristic_verdict",
]
