#!/usr/bin/env python3
"""
Document Authenticity Heuristics

Deterministic checks on file characteristics, PDF structure and extracted
text. These run before the AI review and stand in for it when the model
is unavailable for PDFs and Word documents.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import unquote

from .ocr_service import OCRResult

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"
DOC_MIME_TYPE = "application/msword"
DOCX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
WORD_MIME_TYPES = (DOC_MIME_TYPE, DOCX_MIME_TYPE)

SMALL_FILE_THRESHOLD = 10000  # bytes

SUSPICIOUS_NAME_PATTERN = re.compile(r"temp|untitled|unnamed|copy|fake|test|sample", re.IGNORECASE)

SUSPICIOUS_TEXT_PATTERNS = [
    (re.compile(r"fake|copy|specimen|sample|test", re.IGNORECASE),
     "Contains terms like 'fake', 'copy', 'specimen'"),
    (re.compile(r"\b(not|non)[\s-]?(valid|official)\b", re.IGNORECASE),
     "Contains disclaimers like 'not valid'"),
]

AI_GENERATOR_TERMS = ["AI", "Generated", "GPT", "DALL-E", "Midjourney", "Stable Diffusion"]

PDF_INFO_FIELDS = ["Title", "Author", "Creator", "Producer"]

EXTENSION_MIME_TYPES = {
    "doc": DOC_MIME_TYPE,
    "docx": DOCX_MIME_TYPE,
}

# Any of these in an anomaly marks the document as likely AI generated
CRITICAL_ANOMALY_MARKERS = [
    "does not have a valid PDF header",
    "File extension doesn't match",
    "fake",
    "specimen",
]

_HEX_ESCAPE = re.compile(r"\\([0-9a-f]{2})")
_BARE_PERCENT = re.compile(r"%(?![0-9A-Fa-f]{2})")

@dataclass
class VerificationResult:
    """Outcome of a document review, heuristic or AI."""
    is_likely_genuine: bool
    is_likely_ai_generated: bool
    detected_anomalies: List[str]
    confidence_score: float
    analysis_explanation: str
    # Set when the result is a stand-in for an unavailable model
    mock_reason: Optional[str] = None

    @property
    def moderation_status(self) -> str:
        return "safe" if self.is_likely_genuine else "flagged"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isLikelyGenuine": self.is_likely_genuine,
            "isLikelyAiGenerated": self.is_likely_ai_generated,
            "detectedAnomalies": list(self.detected_anomalies),
            "confidenceScore": self.confidence_score,
            "analysisExplanation": self.analysis_explanation,
        }

@dataclass
class PdfAnalysis:
    """Structural analysis of a PDF upload."""
    metadata: Dict[str, str]
    anomalies: List[str] = field(default_factory=list)
    confidence_score: float = 0.95

def clamp_score(score: float, lower: float = 0.1, upper: float = 1.0) -> float:
    return max(lower, min(upper, score))

def format_file_size(size: int) -> str:
    return f"{size / 1024:.2f} KB"

def has_suspicious_name(filename: str) -> bool:
    return bool(SUSPICIOUS_NAME_PATTERN.search(filename or ""))

def find_text_anomalies(text: str) -> List[str]:
    """Return the description of each suspicious pattern found in text."""
    return [description for pattern, description in SUSPICIOUS_TEXT_PATTERNS if pattern.search(text or "")]

def build_image_metadata(filename: str, size: int, mime_type: str, ocr: OCRResult) -> Dict[str, str]:
    metadata = {
        "File Name": filename,
        "File Size": format_file_size(size),
        "File Type": mime_type,
        "OCR Text Length": f"{len(ocr.text)} characters",
        "OCR Confidence": f"{round(ocr.confidence * 100)}%",
    }

    text_anomalies = find_text_anomalies(ocr.text)
    if text_anomalies:
        metadata["Text Anomalies"] = ", ".join(text_anomalies)

    return metadata

def _decode_pdf_string(value: str) -> str:
    # Strict decoding: malformed escapes abort content extraction
    escaped = _HEX_ESCAPE.sub(r"%\1", value)
    if _BARE_PERCENT.search(escaped):
        raise ValueError(f"Malformed percent escape in {value!r}")
    return unquote(escaped, errors="strict")

def _contains_ai_term(value: Optional[str]) -> bool:
    return bool(value) and any(term in value for term in AI_GENERATOR_TERMS)

def _extract_info_fields(content: bytes, metadata: Dict[str, str]) -> None:
    text = content.decode("latin-1")
    for name in PDF_INFO_FIELDS:
        match = re.search(r"/" + name + r"\s*\((.*?)\)", text)
        if match and match.group(1):
            metadata[name] = _decode_pdf_string(match.group(1))

def analyze_pdf(
    filename: str,
    size: int,
    mime_type: str,
    content: bytes,
    last_modified: Optional[datetime] = None,
) -> PdfAnalysis:
    """
    Check a PDF's header, size, name, MIME type and document info fields.

    Args:
        filename: Original filename
        size: File size in bytes
        mime_type: Declared content type
        content: Raw file bytes
        last_modified: Client-reported modification time, defaults to now

    Returns:
        PdfAnalysis with metadata, anomalies and a score clamped to [0.1, 1]
    """
    try:
        is_small = size < SMALL_FILE_THRESHOLD
        has_header = content[:5] == b"%PDF-"
        has_correct_type = mime_type == PDF_MIME_TYPE
        suspicious_name = has_suspicious_name(filename)

        anomalies = []
        if is_small:
            anomalies.append("Unusually small file size for a PDF")
        if not has_header:
            anomalies.append("File does not have a valid PDF header")
        if not has_correct_type:
            anomalies.append("File does not have the correct PDF MIME type")
        if suspicious_name:
            anomalies.append("Document has a potentially suspicious filename")

        score = 0.95
        if is_small:
            score -= 0.2
        if not has_header:
            score -= 0.5
        if not has_correct_type:
            score -= 0.3
        if suspicious_name:
            score -= 0.2

        metadata = {
            "File Name": filename,
            "File Size": format_file_size(size),
            "File Type": mime_type,
            "Valid PDF Header": "Yes" if has_header else "No",
            "Last Modified": (last_modified or datetime.now()).strftime("%Y-%m-%d %H:%M:%S"),
        }

        try:
            if has_header:
                _extract_info_fields(content, metadata)

                if _contains_ai_term(metadata.get("Creator")):
                    anomalies.append("Document creator suggests AI generation")
                    score -= 0.3

                if _contains_ai_term(metadata.get("Producer")):
                    anomalies.append("Document producer suggests AI generation")
                    score -= 0.3

                missing = [name for name in PDF_INFO_FIELDS if not metadata.get(name)]
                if len(missing) >= 3:
                    anomalies.append("Document is missing most standard metadata fields")
                    score -= 0.2
        except (UnicodeDecodeError, ValueError) as e:
            logger.warning(f"Error extracting PDF metadata from content of {filename}: {e}")
            metadata["Status"] = "Limited metadata extraction"

        return PdfAnalysis(metadata=metadata, anomalies=anomalies, confidence_score=clamp_score(score))

    except Exception as e:
        logger.error(f"Error analyzing PDF {filename}: {e}")
        return PdfAnalysis(
            metadata={
                "Error": "Failed to analyze document structure",
                "File Size": format_file_size(size),
                "File Type": mime_type,
            },
            anomalies=["Error analyzing PDF structure"],
            confidence_score=0.5,
        )

def analyze_office_document(filename: str, size: int, mime_type: str) -> PdfAnalysis:
    """Size, name and extension checks for Word documents."""
    anomalies = []
    score = 0.9

    is_small = size < SMALL_FILE_THRESHOLD
    suspicious_name = has_suspicious_name(filename)
    extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    expected_type = EXTENSION_MIME_TYPES.get(extension)
    type_mismatch = bool(expected_type) and expected_type != mime_type

    if is_small:
        anomalies.append("Unusually small file size for a document")
        score -= 0.3
    if suspicious_name:
        anomalies.append("Document has a potentially suspicious filename")
        score -= 0.2
    if type_mismatch:
        anomalies.append("File extension doesn't match the actual file type")
        score -= 0.4

    metadata = {
        "File Size": format_file_size(size),
        "File Type": mime_type,
        "File Name": filename,
    }
    return PdfAnalysis(metadata=metadata, anomalies=anomalies, confidence_score=score)

def heuristic_verdict(anomalies: List[str], score: float) -> VerificationResult:
    """Turn heuristic anomalies into a verdict."""
    is_ai_generated = any(
        marker in anomaly for anomaly in anomalies for marker in CRITICAL_ANOMALY_MARKERS
    )
    is_genuine = not is_ai_generated

    if anomalies:
        count = len(anomalies)
        plural = "" if count == 1 else "s"
        tail = "these are not critical to authenticity" if is_genuine else "some critical issues were detected"
        explanation = f"Document verification found {count} potential issue{plural}, but {tail}."
    else:
        explanation = "Document appears to be genuine based on file characteristics."

    return VerificationResult(
        is_likely_genuine=is_genuine,
        is_likely_ai_generated=is_ai_generated,
        detected_anomalies=list(anomalies),
        confidence_score=clamp_score(score),
        analysis_explanation=explanation,
    )
