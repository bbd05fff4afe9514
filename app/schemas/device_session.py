"""
Pydantic schemas for device sessions.
"""

from pydantic import BaseModel, ConfigDict, UUID4
from typing import Optional
from datetime import datetime

from app.core.auth_config import VerificationMethod


class DeviceResponse(BaseModel):
    device_name: str
    browser: str
    os: str
    ip_address: Optional[str]

    class Config:
        from_attributes = True


class DeviceSessionCreateRequest(BaseModel):
    """
    Open a device session for the current browser.

    The device fingerprint comes from the request headers and the login
    method from the access token; neither can be supplied here.
    """
    user_id: UUID4


class DeviceSessionResponse(BaseModel):
    id: UUID4
    user_id: UUID4
    device: DeviceResponse
    is_trusted: bool
    needs_verification: bool
    confidence_score: int
    aal: str
    last_verified: Optional[datetime]
    last_sensitive_verification_at: Optional[datetime]
    last_active: Optional[datetime]
    created_at: datetime
    expires_at: datetime
    is_current: bool = False

    class Config:
        from_attributes = True


class DeviceSessionUpdate(BaseModel):
    """
    Partial update sent by a client.

    Unknown keys are kept so the store can reject attempts to touch
    server-owned fields instead of silently ignoring them.
    """
    model_config = ConfigDict(extra="allow")

    last_active: Optional[datetime] = None


class RevokeRequest(BaseModel):
    """Optional inline step-up verification for a revoke."""
    method: Optional[VerificationMethod] = None
    code: Optional[str] = None
    factor_id: Optional[UUID4] = None
    challenge_id: Optional[UUID4] = None


class RevokeResponse(BaseModel):
    success: bool
    revoked: bool
    logged_out: bool = False


class RevokeAllResponse(BaseModel):
    success: bool
    revoked_count: int
