"""
Pydantic schemas for second-factor management.
"""

from pydantic import BaseModel, Field, UUID4, model_validator
from typing import Optional
from datetime import datetime

from app.models.mfa_factor import FactorType


class EnrollRequest(BaseModel):
    factor_type: FactorType
    # Required when the account has a password
    password: Optional[str] = None
    phone: Optional[str] = Field(None, description="E.164 phone number, required for phone factors")
    friendly_name: Optional[str] = Field(None, max_length=255)

    @model_validator(mode="after")
    def check_phone(self) -> "EnrollRequest":
        if self.factor_type == FactorType.PHONE and not self.phone:
            raise ValueError("phone is required for phone factors")
        return self


class EnrollResponse(BaseModel):
    factor_id: UUID4
    factor_type: FactorType
    # Authenticator enrollment only; shown once
    secret: Optional[str] = None
    otpauth_uri: Optional[str] = None
    # SMS enrollment only
    challenge_id: Optional[UUID4] = None
    expires_at: Optional[datetime] = None


class DisableRequest(BaseModel):
    factor_id: UUID4


class DisableResponse(BaseModel):
    success: bool
    backup_codes_removed: int


class FactorResponse(BaseModel):
    id: UUID4
    factor_type: str
    status: str
    friendly_name: Optional[str]
    verified_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True
