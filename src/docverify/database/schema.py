#!/usr/bin/env python3
"""
Database Schema Design

Schema for the document verification store:
- User profiles mirrored from the identity provider, with admin flags
- Verified documents with their moderation outcome
- Admin-managed system settings
"""

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    Column, String, Text, DateTime, Boolean, Float, Integer, JSON, Index
)
from sqlalchemy.orm import declarative_base

# Configure logging
logger = logging.getLogger(__name__)

# Base class for all models
Base = declarative_base()

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def new_id() -> str:
    return str(uuid.uuid4())

class ModerationStatus(str, Enum):
    """Moderation outcome of a verified document."""
    PENDING = "pending"
    SAFE = "safe"
    FLAGGED = "flagged"

class HistoryStatus(str, Enum):
    """Status shown in a user's upload history."""
    ALL = "all"
    AUTHENTIC = "authentic"
    FAKE = "fake"
    SUSPICIOUS = "suspicious"

class User(Base):
    """User profile keyed by the identity provider uid."""
    __tablename__ = 'users'

    uid = Column(String(128), primary_key=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    display_name = Column(String(255), nullable=True)
    photo_url = Column(Text, nullable=True)
    is_admin = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=True)
    updated_by = Column(String(128), nullable=True)

    @property
    def is_registered(self) -> bool:
        """False for bare rows created by an admin grant before the first login."""
        return self.last_login_at is not None

    def to_profile(self) -> dict:
        return {
            "uid": self.uid,
            "email": self.email,
            "displayName": self.display_name,
            "photoURL": self.photo_url,
            "isAdmin": bool(self.is_admin),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "lastLoginAt": self.last_login_at.isoformat() if self.last_login_at else None,
        }

class Document(Base):
    """A single verified upload."""
    __tablename__ = 'documents'

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(128), nullable=False, index=True)
    name = Column(String(512), nullable=False)
    mime_type = Column(String(255), nullable=False)
    size = Column(Integer, nullable=False, default=0)
    moderation_status = Column(String(20), nullable=False, default=ModerationStatus.PENDING.value)
    is_likely_genuine = Column(Boolean, nullable=False, default=False)
    is_likely_ai_generated = Column(Boolean, nullable=False, default=False)
    confidence_score = Column(Float, nullable=False, default=0.0)
    detected_anomalies = Column(JSON, nullable=False, default=list)
    analysis_explanation = Column(Text, nullable=True)
    document_metadata = Column(JSON, nullable=True)
    extracted_text = Column(Text, nullable=True)
    text_confidence = Column(Float, nullable=True)
    mock_implementation = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index('idx_documents_user_created', 'user_id', 'created_at'),
        Index('idx_documents_status', 'moderation_status'),
    )

    @property
    def history_status(self) -> str:
        """Map the moderation outcome onto the history view."""
        if self.moderation_status == ModerationStatus.SAFE.value:
            return HistoryStatus.AUTHENTIC.value
        if self.moderation_status == ModerationStatus.FLAGGED.value:
            if self.is_likely_ai_generated:
                return HistoryStatus.FAKE.value
            return HistoryStatus.SUSPICIOUS.value
        return ModerationStatus.PENDING.value

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "name": self.name,
            "type": self.mime_type,
            "size": self.size,
            "moderationStatus": self.moderation_status,
            "status": self.history_status,
            "isLikelyGenuine": bool(self.is_likely_genuine),
            "isLikelyAiGenerated": bool(self.is_likely_ai_generated),
            "confidenceScore": self.confidence_score,
            "detectedAnomalies": list(self.detected_anomalies or []),
            "analysisExplanation": self.analysis_explanation,
            "metadata": self.document_metadata or {},
            "extractedText": self.extracted_text,
            "textConfidence": self.text_confidence,
            "mockImplementation": bool(self.mock_implementation),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

class SystemSetting(Base):
    """Key/value settings edited from the admin panel."""
    __tablename__ = 'system_settings'

    key = Column(String(100), primary_key=True)
    value = Column(JSON, nullable=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    updated_by = Column(String(128), nullable=True)
