#!/usr/bin/env python3
"""
AI Verification Routes

Single-file AI verification: accepts the file with optional client-side
features and metadata and returns the verifier's envelope.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status

from ...gemini_service import UploadedImage, VerificationForm
from ..dependencies import ServiceContainer, get_current_user, get_services, get_settings

# Configure logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter()

async def read_upload(upload: UploadFile, max_size: int) -> UploadedImage:
    """Read an uploaded file, enforcing the size limit."""
    content = await upload.read(max_size + 1)
    if len(content) > max_size:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File {upload.filename} exceeds the {max_size // (1024 * 1024)}MB limit",
        )
    return UploadedImage(
        filename=upload.filename or "upload",
        content_type=upload.content_type or "application/octet-stream",
        content=content,
    )

@router.post("/gemini-verification")
async def gemini_verification(
    request: Request,
    image: Optional[UploadFile] = File(None),
    features: Optional[str] = Form(None),
    metadata: Optional[str] = Form(None),
    claims: Dict[str, Any] = Depends(get_current_user),
    settings: Dict[str, Any] = Depends(get_settings),
    services: ServiceContainer = Depends(get_services),
) -> Dict[str, Any]:
    """Verify one document with the AI model."""
    logger.info(f"Gemini document verification request from {claims['uid']}")

    uploaded = None
    if image is not None:
        uploaded = await read_upload(image, services.config.api.max_upload_size)

    form = VerificationForm(image=uploaded, features=features, metadata=metadata)
    envelope = await services.verifier.verify(
        form,
        call_budget=settings.get("rateLimit"),
        mock_mode=bool(settings.get("mockModeEnabled")),
    )

    request.app.state.metrics["ai_verification_calls_total"].labels(
        mock=str(bool(envelope.get("mockImplementation"))).lower()
    ).inc()
    return envelope
