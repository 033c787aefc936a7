#!/usr/bin/env python3
"""
Test Utilities

Fake external services and sample document builders for testing the
DocVerify service without Firebase, Gemini, Tesseract or model weights.
"""

import io
import json
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import fakeredis
import fakeredis.aioredis
from PIL import Image

from docverify.identity import IdentityUser, InvalidTokenError, UserNotFoundError
from docverify.ocr_service import OCRResult, PDF_PLACEHOLDER_TEXT

GENUINE_VERDICT = {
    "isLikelyGenuine": True,
    "isLikelyAiGenerated": False,
    "detectedAnomalies": [],
    "confidenceScore": 0.93,
    "analysisExplanation": "Consistent formatting and natural lighting.",
}

AI_VERDICT = {
    "isLikelyGenuine": False,
    "isLikelyAiGenerated": True,
    "detectedAnomalies": ["Irregular geometry in seal"],
    "confidenceScore": 0.81,
    "analysisExplanation": "The seal shows impossible geometry.",
}

class FakeIdentityProvider:
    """In-memory identity provider keyed by token."""

    def __init__(self):
        self.accounts: Dict[str, IdentityUser] = {}
        self.tokens: Dict[str, str] = {}

    def add_user(self, uid: str, email: str, token: Optional[str] = None,
                 email_verified: bool = True, display_name: Optional[str] = None) -> IdentityUser:
        account = IdentityUser(
            uid=uid,
            email=email,
            display_name=display_name,
            email_verified=email_verified,
        )
        self.accounts[uid] = account
        if token:
            self.tokens[token] = uid
        return account

    async def verify_id_token(self, token: str) -> Dict[str, Any]:
        uid = self.tokens.get(token)
        if uid is None:
            raise InvalidTokenError("Token is invalid")
        account = self.accounts[uid]
        return {"uid": uid, "email": account.email, "email_verified": account.email_verified}

    async def get_user(self, uid: str) -> IdentityUser:
        if uid not in self.accounts:
            raise UserNotFoundError(uid)
        return self.accounts[uid]

    async def list_users(self, max_results: int = 100) -> List[IdentityUser]:
        return list(self.accounts.values())[:max_results]

class FakeModel:
    """Stands in for a Gemini GenerativeModel."""

    def __init__(self, reply: Optional[Dict[str, Any]] = None, text: Optional[str] = None,
                 error: Optional[Exception] = None):
        self.text = text if text is not None else "```json\n" + json.dumps(reply or GENUINE_VERDICT) + "\n```"
        self.error = error
        self.prompts: List[str] = []

    async def generate_content_async(self, prompt: str):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.text)

class FakeOCR:
    """OCR returning fixed text for images and the placeholder for PDFs."""

    def __init__(self, text: str = "Certificate of Completion awarded to Jane Doe", confidence: float = 0.91):
        self.text = text
        self.confidence = confidence
        self.calls = 0

    def extract_text(self, content: bytes, mime_type: str, filename: str = "") -> OCRResult:
        self.calls += 1
        if mime_type == "application/pdf":
            return OCRResult(text=PDF_PLACEHOLDER_TEXT, confidence=0.5)
        return OCRResult(text=self.text, confidence=self.confidence)

class FakeClassifier:
    """Classifier returning a fixed feature vector."""

    def __init__(self, features: Optional[List[float]] = None):
        self.features = features if features is not None else [0.61, 0.22, 0.05, 0.8, 0.6, 1.3333]

    def extract_features(self, content: bytes) -> List[float]:
        return list(self.features)

class FixedRandom:
    """random.Random stand-in returning a fixed sequence."""

    def __init__(self, *values: float):
        self.values = list(values)

    def random(self) -> float:
        return self.values.pop(0) if len(self.values) > 1 else self.values[0]

def make_redis():
    """Async fake Redis with its own empty server."""
    return fakeredis.aioredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)

def make_png(width: int = 120, height: int = 80) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color="white").save(buffer, format="PNG")
    return buffer.getvalue()

def make_pdf(title: str = "Quarterly Report", author: str = "Finance Team",
             creator: str = "Microsoft Word", producer: str = "Acrobat Distiller",
             padding: int = 12000) -> bytes:
    """Minimal PDF-looking bytes with an info dictionary."""
    info = f"/Title ({title}) /Author ({author}) /Creator ({creator}) /Producer ({producer})"
    body = "%PDF-1.7\n1 0 obj\n<< " + info + " >>\nendobj\n"
    return body.encode("latin-1") + b"0" * padding + b"\n%%EOF"
