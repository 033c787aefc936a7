#!/usr/bin/env python3
"""
Gemini Verification Service

AI authenticity review of a document through Google's Gemini model.
Builds a compact prompt from extracted text, image features and metadata,
parses the JSON verdict out of the model reply, and substitutes mock
verdicts when the model is unavailable, rate limited or disabled.
"""

import asyncio
import json
import logging
import random
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import google.generativeai as genai
from redis.exceptions import RedisError

from .api.rate_limiting import FixedWindowCounter, WindowStatus
from .authenticity import PDF_MIME_TYPE, VerificationResult, format_file_size
from .config import GeminiConfig
from .ocr_service import OCRService

logger = logging.getLogger(__name__)

MAX_PROMPT_TEXT_LENGTH = 1000
MAX_METADATA_ENTRIES = 10
MAX_EXTRA_METADATA_ENTRIES = 5
MAX_PROMPT_FEATURES = 5

IMPORTANT_METADATA_FIELDS = [
    "Title", "Author", "Creator", "Producer", "Creation Date", "File Type", "Valid PDF Header",
]

MOCK_PREFIX = "This is a mock verification result. Reason: "

MOCK_FLAGGED_ANOMALIES = [
    "Inconsistent text formatting",
    "Potential digital manipulation detected",
    "Unusual metadata patterns",
]

LARGE_PDF_TEXT = "Large PDF document - metadata-only analysis"
CALL_COUNTER_ID = "gemini"

PROMPT_TEMPLATE = """
I need you to analyze a document for authenticity verification.

Document type: {document_type}

Extracted text summary: {text}

{metadata}

{features}

Please analyze this document for authenticity using the following criteria:

1. ASSUME THE DOCUMENT IS AUTHENTIC BY DEFAULT unless there are clear indicators otherwise.
2. Look for specific signs of AI generation such as:
   - Unnatural or inconsistent lighting, shadows, or reflections
   - Irregular or impossible geometry
   - Unusual artifacts or distortions
   - Inconsistent text formatting or alignment
3. Consider the document metadata:
   - Check for suspicious creators or producers that might indicate AI generation
   - Examine creation and modification dates for inconsistencies
   - Verify that metadata is consistent with document content
4. DO NOT flag a document as non-authentic simply due to:
   - Low quality or resolution
   - Lack of some metadata (this is normal for many legitimate documents)
   - Simple or basic content

Provide your analysis in JSON format with the following structure:
{{
  "isLikelyGenuine": boolean, // Default to true unless clear evidence suggests otherwise
  "isLikelyAiGenerated": boolean, // Only true if specific AI generation indicators are present
  "detectedAnomalies": [list of specific anomalies found, if any],
  "confidenceScore": number (0-1), // Start at 0.9 and reduce only for specific issues
  "analysisExplanation": string // Brief explanation of your assessment
}}

Be conservative in flagging documents as non-authentic. Only flag if there are clear indicators of manipulation or AI generation.
"""

class ModelResponseError(Exception):
    """The model reply carried no usable JSON verdict."""
    pass

@dataclass
class UploadedImage:
    """File part of a verification request."""
    filename: str
    content_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)

@dataclass
class VerificationForm:
    """Multipart verification request: the file plus optional JSON fields."""
    image: Optional[UploadedImage] = None
    features: Optional[str] = None
    metadata: Optional[str] = None
    # Text already extracted by the caller; skips OCR when set
    extracted_text: Optional[str] = None

# Prompt construction

def build_prompt(
    document_type: str,
    extracted_text: str,
    image_features: Optional[List[float]] = None,
    metadata: Optional[Dict[str, str]] = None,
) -> str:
    """Build the model prompt, trimming text, metadata and features."""
    extracted_text = extracted_text or ""
    if len(extracted_text) > MAX_PROMPT_TEXT_LENGTH:
        extracted_text = extracted_text[:MAX_PROMPT_TEXT_LENGTH] + "... (text truncated for brevity)"

    entries = list((metadata or {}).items())
    prioritized = [item for item in entries if item[0] in IMPORTANT_METADATA_FIELDS]
    prioritized += [item for item in entries if item[0] not in IMPORTANT_METADATA_FIELDS][:MAX_EXTRA_METADATA_ENTRIES]
    prioritized = prioritized[:MAX_METADATA_ENTRIES]

    if prioritized:
        metadata_block = "Document metadata:\n" + "\n".join(f"{key}: {value}" for key, value in prioritized)
    else:
        metadata_block = "No metadata available for this document."

    features = list(image_features or [])
    if features:
        values = ", ".join(str(value) for value in features[:MAX_PROMPT_FEATURES])
        features_block = f"Image features extracted using neural network (first 5 values):\n{values}"
    else:
        features_block = "No AI feature extraction available for this image."

    return PROMPT_TEMPLATE.format(
        document_type=document_type,
        text=extracted_text,
        metadata=metadata_block,
        features=features_block,
    )

# Response handling

def parse_model_response(text: str) -> Dict[str, Any]:
    """Extract the JSON object from a model reply."""
    match = re.search(r"\{[\s\S]*\}", text or "")
    if not match:
        raise ModelResponseError("Failed to parse Gemini API response")

    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ModelResponseError("Failed to parse Gemini API JSON response") from e

    if not isinstance(data, dict):
        raise ModelResponseError("Gemini API response is not a JSON object")
    return data

def result_from_model(data: Dict[str, Any]) -> VerificationResult:
    """Normalise a parsed model verdict."""
    try:
        anomalies = data.get("detectedAnomalies") or []
        if not isinstance(anomalies, list):
            anomalies = [str(anomalies)]
        return VerificationResult(
            is_likely_genuine=bool(data.get("isLikelyGenuine", True)),
            is_likely_ai_generated=bool(data.get("isLikelyAiGenerated", False)),
            detected_anomalies=[str(item) for item in anomalies],
            confidence_score=float(data.get("confidenceScore", 0.9)),
            analysis_explanation=str(data.get("analysisExplanation", "")),
        )
    except (TypeError, ValueError) as e:
        raise ModelResponseError(f"Invalid verdict in Gemini API response: {e}") from e

# Mock verdicts

def friendly_reason(reason: str) -> str:
    """User-facing phrase for why a mock verdict was returned."""
    if "API key missing" in reason or "empty" in reason:
        return "API configuration issue"
    if "Rate limit" in reason or "429" in reason or "quota" in reason:
        return "API rate limit reached"
    if "timeout" in reason:
        return "API request timed out - document may be too complex"
    return "API temporarily unavailable"

def fallback_reason(error_message: str) -> str:
    """Reason phrase for the fixed fallback after a failed model call."""
    if "429" in error_message or "quota" in error_message:
        return "API rate limit reached"
    if "401" in error_message or "403" in error_message:
        return "API authentication error"
    if "timeout" in error_message:
        return "API request timed out"
    return "API connection issue"

def mock_verification(
    reason: str,
    metadata: Optional[Dict[str, str]] = None,
    rng: Optional[random.Random] = None,
) -> Dict[str, Any]:
    """
    Randomised stand-in verdict, mostly safe.

    Args:
        reason: Internal reason the model was not used
        metadata: Document metadata, mentioned in the explanation when present
        rng: Random source, injectable for determinism

    Returns:
        Verification dict including moderationStatus
    """
    rng = rng or random
    user_reason = friendly_reason(reason)
    flag_chance = 0.05 if "timeout" in reason else 0.2

    if rng.random() < flag_chance:
        return {
            "isLikelyGenuine": False,
            "isLikelyAiGenerated": rng.random() < 0.7,
            "detectedAnomalies": list(MOCK_FLAGGED_ANOMALIES),
            "confidenceScore": 0.75 + rng.random() * 0.2,
            "analysisExplanation": (
                f"{MOCK_PREFIX}{user_reason}. "
                "The document contains some suspicious elements that warrant further review."
            ),
            "moderationStatus": "flagged",
        }

    properties = " and document properties" if metadata else ""
    return {
        "isLikelyGenuine": True,
        "isLikelyAiGenerated": False,
        "detectedAnomalies": [],
        "confidenceScore": 0.85 + rng.random() * 0.15,
        "analysisExplanation": (
            f"{MOCK_PREFIX}{user_reason}. "
            f"Based on available metadata{properties}, no suspicious elements were detected."
        ),
        "moderationStatus": "safe",
    }

def missing_image_response() -> Dict[str, Any]:
    return {
        "status": "success",
        "mockImplementation": True,
        "verification": {
            "isLikelyGenuine": False,
            "isLikelyAiGenerated": False,
            "detectedAnomalies": ["No image provided"],
            "confidenceScore": 0,
            "analysisExplanation": "No image file was provided for verification.",
            "moderationStatus": "flagged",
        },
        "error": True,
        "message": "No image file provided",
    }

def _parse_json_field(raw: Optional[str], name: str, expected: type):
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse {name}: {e}")
        return None
    if not isinstance(value, expected):
        logger.error(f"Ignoring {name}: expected {expected.__name__}")
        return None
    return value

def _optimized_pdf_info(image: UploadedImage) -> Optional[Dict[str, Any]]:
    """Decode the metadata-only stand-in clients send for large PDFs."""
    if image.content_type != "application/json":
        return None
    try:
        info = json.loads(image.content.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.error(f"Failed to parse optimized PDF data: {e}")
        return None
    if isinstance(info, dict) and info.get("isPdf") and info.get("fileName") and info.get("fileType") == PDF_MIME_TYPE:
        return info
    return None

def optimized_pdf_upload(filename: str, size: int) -> UploadedImage:
    """Metadata-only representation of a large PDF."""
    payload = {"fileName": filename, "fileType": PDF_MIME_TYPE, "fileSize": size, "isPdf": True}
    return UploadedImage(filename=filename, content_type="application/json",
                         content=json.dumps(payload).encode("utf-8"))

class GeminiVerifier:
    """
    Runs AI verification requests against Gemini.

    Every request is counted in a shared fixed window; requests over the
    per-minute budget, without an API key, or in mock mode get a mock verdict.
    """

    def __init__(
        self,
        config: GeminiConfig,
        ocr: OCRService,
        counter: FixedWindowCounter,
        model: Any = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config
        self.ocr = ocr
        self.counter = counter
        self.rng = rng or random.Random()
        self._model = model

    @property
    def model(self):
        """Gemini model, created on first use."""
        if self._model is None:
            genai.configure(api_key=self.config.api_key)
            self._model = genai.GenerativeModel(self.config.model_name)
            logger.info(f"Gemini model {self.config.model_name} initialized")
        return self._model

    async def _count_call(self, budget: int) -> WindowStatus:
        try:
            return await self.counter.hit(CALL_COUNTER_ID, self.config.rate_limit_window, limit=budget)
        except RedisError as e:
            logger.error(f"Could not record Gemini call: {e}")
            return WindowStatus(count=0, limit=budget, window_size=self.config.rate_limit_window,
                                reset_in_ms=self.config.rate_limit_window * 1000)

    def _mock_envelope(self, window: WindowStatus, reason: str,
                       metadata: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        logger.info(f"Generating mock verification response (reason: {reason})")
        return {
            "status": "success",
            "verification": mock_verification(reason, metadata, self.rng),
            "mockImplementation": True,
            "mockReason": reason,
            "rateLimit": window.to_dict(),
        }

    async def verify(
        self,
        form: VerificationForm,
        call_budget: Optional[int] = None,
        mock_mode: bool = False,
    ) -> Dict[str, Any]:
        """
        Verify one upload and return the response envelope.

        Args:
            form: Uploaded file with optional features and metadata JSON
            call_budget: Calls allowed per window, defaults to configuration
            mock_mode: Skip the model and return a mock verdict

        Returns:
            Dict with status, verification, rateLimit and mock markers
        """
        budget = call_budget if call_budget is not None else self.config.max_calls_per_minute
        window = await self._count_call(budget)

        try:
            return await self._verify(form, window, mock_mode)
        except Exception as e:
            logger.error(f"Error in document verification: {e}", exc_info=True)
            return self._mock_envelope(window, str(e) or "Unknown error")

    async def _verify(self, form: VerificationForm, window: WindowStatus, mock_mode: bool) -> Dict[str, Any]:
        if not self.config.has_api_key and self._model is None:
            logger.error("Missing Gemini API key")
            return self._mock_envelope(window, "API key missing")

        if form.image is None:
            logger.error("No image file provided in the request")
            return missing_image_response()

        features = _parse_json_field(form.features, "image features", list) or []
        metadata = _parse_json_field(form.metadata, "document metadata", dict) or {}

        image = form.image
        pdf_info = _optimized_pdf_info(image)
        if pdf_info is not None:
            logger.info(f"Detected optimized PDF representation: {pdf_info['fileName']}")
            metadata.setdefault("File Name", pdf_info["fileName"])
            metadata.setdefault("File Size", format_file_size(float(pdf_info.get("fileSize") or 0)))
            metadata.setdefault("File Type", pdf_info["fileType"])
            metadata["Optimized"] = "Yes - Large PDF file"

        logger.info(
            f"Processing image: {image.filename}, Size: {image.size}, Type: {image.content_type}"
            f"{' (Optimized PDF)' if pdf_info else ''}"
        )

        if mock_mode:
            return self._mock_envelope(window, "Mock mode enabled", metadata)

        if window.exceeded:
            logger.info("Rate limit exceeded, using mock implementation")
            return self._mock_envelope(window, "Rate limit exceeded", metadata)

        if pdf_info is not None:
            extracted_text = LARGE_PDF_TEXT
            document_type = PDF_MIME_TYPE
        elif form.extracted_text is not None:
            extracted_text = form.extracted_text
            document_type = image.content_type
        else:
            ocr_result = await asyncio.to_thread(
                self.ocr.extract_text, image.content, image.content_type, image.filename
            )
            extracted_text = ocr_result.text
            document_type = image.content_type

        result = await self.analyze(document_type, extracted_text, features, metadata)

        verification = result.to_dict()
        verification["moderationStatus"] = result.moderation_status
        envelope = {
            "status": "success",
            "verification": verification,
            "rateLimit": window.to_dict(),
        }
        if result.mock_reason:
            envelope["mockImplementation"] = True
            envelope["mockReason"] = result.mock_reason
        return envelope

    async def analyze(
        self,
        document_type: str,
        extracted_text: str,
        image_features: Optional[List[float]] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> VerificationResult:
        """Ask the model for a verdict; any failure yields the fixed safe fallback."""
        prompt = build_prompt(document_type, extracted_text, image_features, metadata)

        try:
            logger.debug("Sending prompt to Gemini API")
            response = await asyncio.wait_for(
                self.model.generate_content_async(prompt),
                timeout=self.config.timeout_seconds,
            )
            result = result_from_model(parse_model_response(response.text))
            logger.info("Successfully parsed Gemini response JSON")
            return result

        except asyncio.TimeoutError:
            message = f"Gemini API timeout after {self.config.timeout_seconds:g} seconds"
        except Exception as e:
            message = str(e) or e.__class__.__name__

        logger.error(f"Error analyzing with Gemini API: {message}")
        reason = fallback_reason(message)
        return VerificationResult(
            is_likely_genuine=True,
            is_likely_ai_generated=False,
            detected_anomalies=[],
            confidence_score=0.9,
            analysis_explanation=f"{MOCK_PREFIX}{reason}",
            mock_reason=message,
        )
