#!/usr/bin/env python3
"""
Unit Tests for Gemini Verification Service

Tests prompt construction, response parsing, mock verdicts and the
verifier's request handling against a fake model and fake Redis.
"""

import asyncio
import json
from unittest.mock import patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from docverify.api.rate_limiting import FixedWindowCounter
from docverify.config import GeminiConfig
from docverify.gemini_service import (
    GeminiVerifier,
    LARGE_PDF_TEXT,
    ModelResponseError,
    UploadedImage,
    VerificationForm,
    build_prompt,
    fallback_reason,
    friendly_reason,
    mock_verification,
    optimized_pdf_upload,
    parse_model_response,
)

from tests.utils import AI_VERDICT, FakeModel, FakeOCR, FixedRandom, make_png, make_redis

class TestBuildPrompt:
    """Test cases for prompt construction."""

    def test_long_text_is_truncated(self):
        prompt = build_prompt("image/png", "x" * 1500)

        assert "x" * 1000 + "... (text truncated for brevity)" in prompt
        assert "x" * 1001 not in prompt

    def test_metadata_is_prioritized(self):
        metadata = {f"Extra {i}": str(i) for i in range(8)}
        metadata.update({"Title": "Report", "File Type": "application/pdf", "Valid PDF Header": "Yes"})

        prompt = build_prompt("application/pdf", "text", metadata=metadata)
        lines = prompt.split("Document metadata:\n", 1)[1].split("\n\n", 1)[0].splitlines()

        assert lines[:3] == ["Title: Report", "File Type: application/pdf", "Valid PDF Header: Yes"]
        assert lines[3:] == [f"Extra {i}: {i}" for i in range(5)]

    def test_metadata_capped_at_ten(self):
        metadata = {
            "Title": "t", "Author": "a", "Creator": "c", "Producer": "p",
            "Creation Date": "d", "File Type": "f", "Valid PDF Header": "Yes",
            "One": "1", "Two": "2", "Three": "3", "Four": "4",
        }
        prompt = build_prompt("application/pdf", "text", metadata=metadata)

        assert "Three: 3" in prompt
        assert "Four: 4" not in prompt

    def test_empty_metadata_and_features(self):
        prompt = build_prompt("image/jpeg", "text")

        assert "No metadata available for this document." in prompt
        assert "No AI feature extraction available for this image." in prompt

    def test_first_five_features(self):
        prompt = build_prompt("image/jpeg", "text", image_features=[0.1, 0.2, 0.3, 0.4, 0.5, 0.6])

        assert "0.1, 0.2, 0.3, 0.4, 0.5" in prompt
        assert "0.6" not in prompt

    def test_response_schema(self):
        prompt = build_prompt("image/jpeg", "text")

        for key in ("isLikelyGenuine", "isLikelyAiGenerated", "detectedAnomalies",
                    "confidenceScore", "analysisExplanation"):
            assert f'"{key}"' in prompt

class TestParseModelResponse:
    """Test cases for model reply parsing."""

    def test_json_inside_fences(self):
        text = "Here is my analysis:\n```json\n" + json.dumps(AI_VERDICT) + "\n```"
        assert parse_model_response(text) == AI_VERDICT

    def test_no_json(self):
        with pytest.raises(ModelResponseError):
            parse_model_response("I cannot help with that.")

    def test_invalid_json(self):
        with pytest.raises(ModelResponseError):
            parse_model_response("{isLikelyGenuine: yes}")

class TestMockVerdicts:
    """Test cases for mock verdicts and reason mapping."""

    @pytest.mark.parametrize("reason,expected", [
        ("API key missing", "API configuration issue"),
        ("API key is empty or undefined", "API configuration issue"),
        ("Rate limit exceeded", "API rate limit reached"),
        ("429 Too Many Requests", "API rate limit reached"),
        ("quota exhausted", "API rate limit reached"),
        ("Gemini API timeout after 30 seconds", "API request timed out - document may be too complex"),
        ("connection reset", "API temporarily unavailable"),
    ])
    def test_friendly_reason(self, reason, expected):
        assert friendly_reason(reason) == expected

    @pytest.mark.parametrize("message,expected", [
        ("429 Too Many Requests", "API rate limit reached"),
        ("403 Forbidden", "API authentication error"),
        ("Gemini API timeout after 30 seconds", "API request timed out"),
        ("Failed to parse Gemini API response", "API connection issue"),
    ])
    def test_fallback_reason(self, message, expected):
        assert fallback_reason(message) == expected

    def test_safe_mock_with_metadata(self):
        verdict = mock_verification("Rate limit exceeded", {"File Name": "a.png"}, FixedRandom(0.5))

        assert verdict["isLikelyGenuine"] is True
        assert verdict["moderationStatus"] == "safe"
        assert verdict["detectedAnomalies"] == []
        assert verdict["confidenceScore"] == pytest.approx(0.925)
        assert verdict["analysisExplanation"] == (
            "This is a mock verification result. Reason: API rate limit reached. "
            "Based on available metadata and document properties, no suspicious elements were detected."
        )

    def test_safe_mock_without_metadata(self):
        verdict = mock_verification("API key missing", {}, FixedRandom(0.9))

        assert "Based on available metadata, no suspicious" in verdict["analysisExplanation"]

    def test_flagged_mock(self):
        verdict = mock_verification("connection reset", None, FixedRandom(0.1, 0.3, 0.5))

        assert verdict["isLikelyGenuine"] is False
        assert verdict["isLikelyAiGenerated"] is True
        assert verdict["moderationStatus"] == "flagged"
        assert len(verdict["detectedAnomalies"]) == 3
        assert verdict["confidenceScore"] == pytest.approx(0.85)
        assert verdict["analysisExplanation"].endswith(
            "The document contains some suspicious elements that warrant further review."
        )

    def test_timeouts_are_rarely_flagged(self):
        # 0.1 would flag a normal failure but not a timeout
        verdict = mock_verification("timeout", None, FixedRandom(0.1))
        assert verdict["moderationStatus"] == "safe"

class TestGeminiVerifier:
    """Test cases for GeminiVerifier request handling."""

    def _verifier(self, model=None, api_key="key", ocr=None):
        config = GeminiConfig(api_key=api_key)
        counter = FixedWindowCounter(make_redis(), prefix="test")
        return GeminiVerifier(config, ocr or FakeOCR(), counter, model=model, rng=FixedRandom(0.9))

    def _form(self, **kwargs):
        image = UploadedImage(filename="id.png", content_type="image/png", content=make_png())
        return VerificationForm(image=image, **kwargs)

    def test_successful_verification(self):
        model = FakeModel(reply=AI_VERDICT)

        async def run():
            verifier = self._verifier(model=model)
            return await verifier.verify(self._form(metadata=json.dumps({"Title": "ID card"})))

        envelope = asyncio.run(run())

        assert envelope["status"] == "success"
        assert "mockImplementation" not in envelope
        assert envelope["verification"]["isLikelyAiGenerated"] is True
        assert envelope["verification"]["moderationStatus"] == "flagged"
        assert envelope["rateLimit"]["callsInLastMinute"] == 1
        assert 0 <= envelope["rateLimit"]["resetInMs"] <= 60000
        assert "Title: ID card" in model.prompts[0]
        assert "Certificate of Completion" in model.prompts[0]

    def test_missing_api_key(self):
        async def run():
            return await self._verifier(api_key="").verify(self._form())

        envelope = asyncio.run(run())

        assert envelope["mockImplementation"] is True
        assert envelope["mockReason"] == "API key missing"
        assert "API configuration issue" in envelope["verification"]["analysisExplanation"]

    def test_missing_image(self):
        async def run():
            return await self._verifier(model=FakeModel()).verify(VerificationForm())

        envelope = asyncio.run(run())

        assert envelope["error"] is True
        assert envelope["message"] == "No image file provided"
        assert envelope["verification"]["detectedAnomalies"] == ["No image provided"]
        assert envelope["verification"]["moderationStatus"] == "flagged"

    def test_mock_mode(self):
        model = FakeModel()

        async def run():
            return await self._verifier(model=model).verify(self._form(), mock_mode=True)

        envelope = asyncio.run(run())

        assert envelope["mockReason"] == "Mock mode enabled"
        assert model.prompts == []

    def test_call_budget_exceeded(self):
        model = FakeModel()

        async def run():
            verifier = self._verifier(model=model)
            envelopes = []
            for _ in range(3):
                envelopes.append(await verifier.verify(self._form(), call_budget=2))
            return envelopes

        envelopes = asyncio.run(run())

        assert [e.get("mockImplementation", False) for e in envelopes] == [False, False, True]
        assert envelopes[2]["mockReason"] == "Rate limit exceeded"
        assert envelopes[2]["rateLimit"]["callsInLastMinute"] == 3
        assert len(model.prompts) == 2

    def test_redis_outage_still_calls_model(self):
        model = FakeModel()

        async def run():
            verifier = self._verifier(model=model)
            with patch.object(FixedWindowCounter, "hit", side_effect=RedisConnectionError("redis down")):
                return await verifier.verify(self._form())

        envelope = asyncio.run(run())

        assert "mockImplementation" not in envelope
        assert envelope["rateLimit"] == {"callsInLastMinute": 0, "resetInMs": 60000}
        assert len(model.prompts) == 1

    def test_invalid_json_fields_are_ignored(self):
        model = FakeModel()

        async def run():
            form = self._form(features="not-json", metadata="{broken")
            return await self._verifier(model=model).verify(form)

        envelope = asyncio.run(run())

        assert envelope["status"] == "success"
        assert "No metadata available for this document." in model.prompts[0]
        assert "No AI feature extraction available" in model.prompts[0]

    def test_optimized_large_pdf(self):
        model = FakeModel()

        async def run():
            form = VerificationForm(image=optimized_pdf_upload("annual.pdf", 2048000))
            return await self._verifier(model=model).verify(form)

        asyncio.run(run())
        prompt = model.prompts[0]

        assert "Document type: application/pdf" in prompt
        assert LARGE_PDF_TEXT in prompt
        assert "File Size: 2000.00 KB" in prompt

    def test_model_failure_falls_back(self):
        model = FakeModel(error=RuntimeError("429 Too Many Requests"))

        async def run():
            return await self._verifier(model=model).verify(self._form())

        envelope = asyncio.run(run())

        assert envelope["verification"]["isLikelyGenuine"] is True
        assert envelope["verification"]["confidenceScore"] == 0.9
        assert envelope["verification"]["analysisExplanation"] == (
            "This is a mock verification result. Reason: API rate limit reached"
        )
        assert envelope["mockImplementation"] is True

    def test_unparseable_reply_falls_back(self):
        model = FakeModel(text="Sorry, no verdict today")

        async def run():
            return await self._verifier(model=model).analyze("image/png", "text")

        result = asyncio.run(run())

        assert result.confidence_score == 0.9
        assert result.analysis_explanation.endswith("Reason: API connection issue")
        assert result.mock_reason == "Failed to parse Gemini API response"

    def test_timeout_falls_back(self):
        class SlowModel:
            async def generate_content_async(self, prompt):
                await asyncio.sleep(1)

        async def run():
            verifier = self._verifier(model=SlowModel())
            verifier.config.timeout_seconds = 0.01
            return await verifier.analyze("image/png", "text")

        result = asyncio.run(run())

        assert result.analysis_explanation.endswith("Reason: API request timed out")
