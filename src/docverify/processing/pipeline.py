#!/usr/bin/env python3
"""
Verification Pipeline

Per-file verification for uploads: dispatches on content type, runs OCR,
feature extraction and structural heuristics, then asks the AI verifier
for a verdict, falling back to heuristics where the verifier fails.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from ..authenticity import (
    PDF_MIME_TYPE,
    WORD_MIME_TYPES,
    VerificationResult,
    analyze_office_document,
    analyze_pdf,
    clamp_score,
    find_text_anomalies,
    build_image_metadata,
    format_file_size,
    heuristic_verdict,
)
from ..config import GeminiConfig
from ..document_classifier import DocumentClassifier
from ..gemini_service import (
    GeminiVerifier,
    UploadedImage,
    VerificationForm,
    optimized_pdf_upload,
    result_from_model,
)
from ..ocr_service import OCRService

logger = logging.getLogger(__name__)

class VerificationError(Exception):
    """The AI verifier returned an error envelope."""
    pass

@dataclass
class FileVerification:
    """Verification outcome for one uploaded file."""
    name: str
    mime_type: str
    size: int
    moderation_status: str
    result: VerificationResult
    metadata: Dict[str, str] = field(default_factory=dict)
    extracted_text: str = ""
    text_confidence: float = 0.0
    mock_implementation: bool = False

    def to_dict(self) -> Dict[str, Any]:
        details = self.result.to_dict()
        details.update({
            "metadata": dict(self.metadata),
            "extractedText": self.extracted_text,
            "textConfidence": self.text_confidence,
        })
        return {
            "name": self.name,
            "size": self.size,
            "type": self.mime_type,
            "moderationStatus": self.moderation_status,
            "verificationDetails": details,
        }

    def to_record(self, user_id: str) -> Dict[str, Any]:
        """Column values for the documents table."""
        return {
            "user_id": user_id,
            "name": self.name,
            "mime_type": self.mime_type,
            "size": self.size,
            "moderation_status": self.moderation_status,
            "is_likely_genuine": self.result.is_likely_genuine,
            "is_likely_ai_generated": self.result.is_likely_ai_generated,
            "confidence_score": self.result.confidence_score,
            "detected_anomalies": list(self.result.detected_anomalies),
            "analysis_explanation": self.result.analysis_explanation,
            "document_metadata": dict(self.metadata),
            "extracted_text": self.extracted_text,
            "text_confidence": self.text_confidence,
            "mock_implementation": self.mock_implementation,
        }

class VerificationPipeline:
    """Runs the verification steps for each uploaded file."""

    def __init__(
        self,
        ocr: OCRService,
        classifier: Optional[DocumentClassifier],
        verifier: GeminiVerifier,
        config: Optional[GeminiConfig] = None,
    ):
        self.ocr = ocr
        self.classifier = classifier
        self.verifier = verifier
        self.config = config or verifier.config

    async def verify_file(
        self,
        upload: UploadedImage,
        call_budget: Optional[int] = None,
        mock_mode: bool = False,
        last_modified: Optional[datetime] = None,
    ) -> FileVerification:
        """
        Verify a single upload. Never raises; failures become flagged results.

        Args:
            upload: File name, content type and bytes
            call_budget: AI calls allowed per window
            mock_mode: Force mock AI verdicts
            last_modified: Client-reported modification time

        Returns:
            FileVerification for the upload
        """
        logger.info(f"Processing file: {upload.filename} ({upload.content_type}, {upload.size} bytes)")
        try:
            if upload.content_type.startswith("image/"):
                return await self._verify_image(upload, call_budget, mock_mode)
            if upload.content_type == PDF_MIME_TYPE:
                return await self._verify_pdf(upload, call_budget, mock_mode, last_modified)
            if upload.content_type in WORD_MIME_TYPES:
                return self._verify_office_document(upload)
            return self._unsupported(upload)
        except Exception as e:
            logger.error(f"Error processing file {upload.filename}: {e}", exc_info=True)
            return FileVerification(
                name=upload.filename,
                mime_type=upload.content_type,
                size=upload.size,
                moderation_status="flagged",
                result=VerificationResult(
                    is_likely_genuine=False,
                    is_likely_ai_generated=False,
                    detected_anomalies=["Analysis failed"],
                    confidence_score=0,
                    analysis_explanation=f"Error analyzing document: {e}",
                ),
            )

    async def _request_verdict(
        self,
        form: VerificationForm,
        call_budget: Optional[int],
        mock_mode: bool,
    ) -> "tuple[VerificationResult, bool]":
        envelope = await self.verifier.verify(form, call_budget=call_budget, mock_mode=mock_mode)
        if envelope.get("error"):
            raise VerificationError(envelope.get("message") or "Unknown error from Gemini API")
        result = result_from_model(envelope["verification"])
        return result, bool(envelope.get("mockImplementation"))

    async def _verify_image(self, upload: UploadedImage, call_budget, mock_mode) -> FileVerification:
        ocr_result = await asyncio.to_thread(
            self.ocr.extract_text, upload.content, upload.content_type, upload.filename
        )
        metadata = build_image_metadata(upload.filename, upload.size, upload.content_type, ocr_result)

        features = []
        if self.classifier is not None:
            features = await asyncio.to_thread(self.classifier.extract_features, upload.content)

        form = VerificationForm(
            image=upload,
            features=json.dumps(features) if features else None,
            metadata=json.dumps(metadata),
            extracted_text=ocr_result.text,
        )
        result, is_mock = await self._request_verdict(form, call_budget, mock_mode)

        return FileVerification(
            name=upload.filename,
            mime_type=upload.content_type,
            size=upload.size,
            moderation_status="flagged" if result.is_likely_ai_generated else "safe",
            result=result,
            metadata=metadata,
            extracted_text=ocr_result.text,
            text_confidence=ocr_result.confidence,
            mock_implementation=is_mock,
        )

    async def _verify_pdf(self, upload: UploadedImage, call_budget, mock_mode, last_modified) -> FileVerification:
        ocr_result = await asyncio.to_thread(
            self.ocr.extract_text, upload.content, upload.content_type, upload.filename
        )
        extracted_text = ocr_result.text
        text_confidence = ocr_result.confidence

        try:
            analysis = analyze_pdf(upload.filename, upload.size, upload.content_type,
                                   upload.content, last_modified)
            metadata = analysis.metadata
            anomalies = list(analysis.anomalies)
            score = analysis.confidence_score

            if extracted_text:
                metadata["OCR Text Length"] = f"{len(extracted_text)} characters"
                metadata["OCR Confidence"] = f"{round(text_confidence * 100)}%"
                for description in find_text_anomalies(extracted_text):
                    anomalies.append(description)
                    score -= 0.2

            if upload.size > self.config.large_pdf_threshold:
                logger.info(f"PDF {upload.filename} is large, sending metadata-only representation")
                form_image = optimized_pdf_upload(upload.filename, upload.size)
            else:
                form_image = upload

            form = VerificationForm(
                image=form_image,
                metadata=json.dumps(metadata) if metadata else None,
                extracted_text=extracted_text,
            )
            try:
                result, is_mock = await self._request_verdict(form, call_budget, mock_mode)
                return FileVerification(
                    name=upload.filename,
                    mime_type=upload.content_type,
                    size=upload.size,
                    moderation_status="flagged" if result.is_likely_ai_generated else "safe",
                    result=result,
                    metadata=metadata,
                    extracted_text=extracted_text,
                    text_confidence=text_confidence,
                    mock_implementation=is_mock,
                )
            except VerificationError as e:
                logger.error(f"Error analyzing PDF with Gemini: {e}")

        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Error in PDF processing pipeline: {e}")
            metadata = {
                "File Name": upload.filename,
                "File Size": format_file_size(upload.size),
                "File Type": upload.content_type,
                "Status": "Limited analysis - PDF may be encrypted or damaged",
            }
            anomalies = ["Could not fully analyze PDF structure"]
            score = 0.7

        return self._heuristic_result(upload, anomalies, score, metadata, extracted_text, text_confidence)

    def _verify_office_document(self, upload: UploadedImage) -> FileVerification:
        analysis = analyze_office_document(upload.filename, upload.size, upload.content_type)
        return self._heuristic_result(upload, analysis.anomalies, analysis.confidence_score,
                                      analysis.metadata, "", 0.0)

    def _heuristic_result(self, upload, anomalies, score, metadata, extracted_text, text_confidence):
        result = heuristic_verdict(anomalies, clamp_score(score))
        return FileVerification(
            name=upload.filename,
            mime_type=upload.content_type,
            size=upload.size,
            moderation_status="flagged" if result.is_likely_ai_generated else "safe",
            result=result,
            metadata=metadata,
            extracted_text=extracted_text,
            text_confidence=text_confidence,
        )

    def _unsupported(self, upload: UploadedImage) -> FileVerification:
        logger.info(f"Unsupported file type: {upload.filename} ({upload.content_type})")
        return FileVerification(
            name=upload.filename,
            mime_type=upload.content_type,
            size=upload.size,
            moderation_status="safe",
            result=VerificationResult(
                is_likely_genuine=True,
                is_likely_ai_generated=False,
                detected_anomalies=[],
                confidence_score=0.5,
                analysis_explanation=f"This file type ({upload.content_type}) cannot be verified automatically.",
            ),
        )
