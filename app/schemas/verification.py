"""
Pydantic schemas for verification endpoints.
"""

from pydantic import BaseModel, Field, UUID4, field_validator
from typing import List, Optional
from datetime import datetime

from app.core.auth_config import VerificationMethod


class VerifyRequest(BaseModel):
    """Verify with one method. `code` is the password for the password method."""
    method: VerificationMethod
    code: str = Field(..., min_length=1, max_length=256)
    factor_id: Optional[UUID4] = None
    challenge_id: Optional[UUID4] = None


class VerifyResponse(BaseModel):
    success: bool
    method: VerificationMethod
    aal: str
    raised_assurance: bool
    # Only present on the verification that activated the first second factor
    backup_codes: Optional[List[str]] = None


class ChallengeRequest(BaseModel):
    method: VerificationMethod
    factor_id: Optional[UUID4] = None

    @field_validator('method')
    @classmethod
    def validate_challenge_method(cls, v: VerificationMethod) -> VerificationMethod:
        if v not in (VerificationMethod.AUTHENTICATOR, VerificationMethod.SMS):
            raise ValueError('Challenges are only issued for authenticator and sms')
        return v


class ChallengeResponse(BaseModel):
    method: VerificationMethod
    challenge_id: Optional[UUID4]
    factor_id: Optional[UUID4]
    expires_at: datetime


class DeviceCodeRequest(BaseModel):
    """Email code sent to verify the current device."""
    code: str = Field(..., min_length=4, max_length=12)

    @field_validator('code')
    @classmethod
    def validate_code_format(cls, v: str) -> str:
        v = v.strip()
        if not v.isdigit():
            raise ValueError('Code must contain digits only')
        return v


class SendCodeResponse(BaseModel):
    """Response after sending an email verification code"""
    success: bool
    message: str
    expires_in_minutes: int


class DeviceVerificationResponse(BaseModel):
    success: bool
    is_trusted: bool
    needs_verification: bool
