#!/usr/bin/env python3
"""
API Models

Pydantic request and response models for the DocVerify API.
Field aliases follow the camelCase names used by the web client.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

class CamelModel(BaseModel):
    """Accepts both field names and their camelCase aliases."""
    model_config = ConfigDict(populate_by_name=True)

# Authentication

class RegisterRequest(CamelModel):
    """Register or record a login for the signed-in user."""
    uid: Optional[str] = Field(None, description="Identity provider uid")
    email: Optional[str] = Field(None, description="Account email")
    display_name: Optional[str] = Field(None, alias="displayName")
    photo_url: Optional[str] = Field(None, alias="photoURL")

class UserProfile(CamelModel):
    uid: str
    email: str
    display_name: Optional[str] = Field(None, alias="displayName")
    photo_url: Optional[str] = Field(None, alias="photoURL")
    is_admin: bool = Field(False, alias="isAdmin")
    created_at: Optional[str] = Field(None, alias="createdAt")
    last_login_at: Optional[str] = Field(None, alias="lastLoginAt")

class RegisterResponse(BaseModel):
    success: bool
    message: str
    user: UserProfile

# Admin

class MakeAdminRequest(CamelModel):
    target_user_id: Optional[str] = Field(None, alias="targetUserId")

class ApiSettings(CamelModel):
    """AI moderation settings."""
    hive_api_enabled: bool = Field(False, alias="hiveApiEnabled")
    mock_mode_enabled: bool = Field(False, alias="mockModeEnabled")
    rate_limit: int = Field(10, alias="rateLimit", ge=1, le=1000, description="AI calls per minute")

class UserSettings(CamelModel):
    """Account policy settings."""
    allow_signups: bool = Field(True, alias="allowSignups")
    require_email_verification: bool = Field(False, alias="requireEmailVerification")
    max_documents_per_user: int = Field(50, alias="maxDocumentsPerUser", ge=1, le=100000)

class SettingsResponse(CamelModel):
    api_settings: ApiSettings = Field(..., alias="apiSettings")
    user_settings: UserSettings = Field(..., alias="userSettings")

    @classmethod
    def from_store(cls, values: Dict[str, Any]) -> "SettingsResponse":
        return cls(
            apiSettings=ApiSettings.model_validate(values),
            userSettings=UserSettings.model_validate(values),
        )

class ApiSettingsUpdate(CamelModel):
    hive_api_enabled: Optional[bool] = Field(None, alias="hiveApiEnabled")
    mock_mode_enabled: Optional[bool] = Field(None, alias="mockModeEnabled")
    rate_limit: Optional[int] = Field(None, alias="rateLimit", ge=1, le=1000)

class UserSettingsUpdate(CamelModel):
    allow_signups: Optional[bool] = Field(None, alias="allowSignups")
    require_email_verification: Optional[bool] = Field(None, alias="requireEmailVerification")
    max_documents_per_user: Optional[int] = Field(None, alias="maxDocumentsPerUser", ge=1, le=100000)

class SettingsUpdate(CamelModel):
    """Partial settings update; omitted fields keep their value."""
    api_settings: Optional[ApiSettingsUpdate] = Field(None, alias="apiSettings")
    user_settings: Optional[UserSettingsUpdate] = Field(None, alias="userSettings")

    def to_store(self) -> Dict[str, Any]:
        """Flatten to stored keys, dropping unset fields."""
        values: Dict[str, Any] = {}
        for group in (self.api_settings, self.user_settings):
            if group is not None:
                values.update(group.model_dump(by_alias=True, exclude_none=True))
        return values

class Pagination(BaseModel):
    total: int
    pages: int
    currentPage: int
    limit: int

class AdminDocumentsResponse(BaseModel):
    documents: List[Dict[str, Any]]
    pagination: Pagination

class AdminStats(BaseModel):
    totalUsers: int
    totalDocuments: int
    verifiedDocuments: int
    flaggedDocuments: int
    newUsersToday: int
    newDocumentsToday: int

class DocumentStats(BaseModel):
    total: int
    verified: int
    pending: int
    rejected: int

class VerifyDocumentsResponse(BaseModel):
    files: List[Dict[str, Any]]
    usingMockModeration: bool
    rateLimit: Dict[str, int]
