#!/usr/bin/env python3
"""
Document Routes

Upload verification, upload history and dashboard statistics for the
signed-in user.
"""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile, status
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from ...database import HistoryStatus, ModerationStatus
from ...database.repository import DocumentRepository
from ...gemini_service import CALL_COUNTER_ID
from ..dependencies import ServiceContainer, get_current_user, get_services, get_session, get_settings
from ..models import DocumentStats, VerifyDocumentsResponse
from ..rate_limiting import WindowStatus
from .verification import read_upload

# Configure logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter()

@router.post("/verify", response_model=VerifyDocumentsResponse)
async def verify_documents(
    request: Request,
    files: List[UploadFile] = File(...),
    claims: Dict[str, Any] = Depends(get_current_user),
    settings: Dict[str, Any] = Depends(get_settings),
    services: ServiceContainer = Depends(get_services),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    """Verify one or more uploads and store the results."""
    uid = claims["uid"]

    if settings.get("requireEmailVerification") and not claims.get("email_verified"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Email verification required")

    documents = DocumentRepository(session)
    limit = settings.get("maxDocumentsPerUser")
    if limit:
        existing = await documents.count(user_id=uid)
        if existing + len(files) > limit:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=f"Document limit reached ({limit} per user)",
            )

    uploads = [await read_upload(upload, services.config.api.max_upload_size) for upload in files]

    results = []
    for upload in uploads:
        verification = await services.pipeline.verify_file(
            upload,
            call_budget=settings.get("rateLimit"),
            mock_mode=bool(settings.get("mockModeEnabled")),
        )
        await documents.add(**verification.to_record(uid))
        results.append(verification)

        request.app.state.metrics["documents_verified_total"].labels(
            status=verification.moderation_status
        ).inc()

    await session.commit()

    window_size = services.config.gemini.rate_limit_window
    try:
        window = await services.counter.current(CALL_COUNTER_ID, window_size)
    except RedisError as e:
        logger.error(f"Could not read Gemini call window: {e}")
        window = WindowStatus(count=0, limit=None, window_size=window_size, reset_in_ms=window_size * 1000)
    logger.info(f"Verified {len(results)} document(s) for {uid}")

    return {
        "files": [result.to_dict() for result in results],
        "usingMockModeration": any(result.mock_implementation for result in results),
        "rateLimit": window.to_dict(),
    }

@router.get("/history")
async def history(
    status_filter: HistoryStatus = Query(HistoryStatus.ALL, alias="status"),
    claims: Dict[str, Any] = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    """The caller's uploads, newest first, optionally filtered by status."""
    documents = await DocumentRepository(session).list_for_user(claims["uid"])
    if status_filter != HistoryStatus.ALL:
        documents = [doc for doc in documents if doc.history_status == status_filter.value]

    return {
        "documents": [doc.to_dict() for doc in documents],
        "total": len(documents),
    }

@router.get("/stats", response_model=DocumentStats)
async def stats(
    claims: Dict[str, Any] = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, int]:
    """Dashboard totals for the caller."""
    counts = await DocumentRepository(session).count_by_status(user_id=claims["uid"])
    return {
        "total": sum(counts.values()),
        "verified": counts.get(ModerationStatus.SAFE.value, 0),
        "pending": counts.get(ModerationStatus.PENDING.value, 0),
        "rejected": counts.get(ModerationStatus.FLAGGED.value, 0),
    }
