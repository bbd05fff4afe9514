"""
Pydantic schemas for registration, login and the caller's profile.
"""

from pydantic import BaseModel, EmailStr, Field, UUID4, field_validator
from typing import List, Optional
from datetime import datetime
import re


class UserRegisterRequest(BaseModel):
    """Request schema for user registration."""
    email: EmailStr
    password: str = Field(
        ...,
        min_length=8,
        max_length=72,  # bcrypt limit
        description="Password must be 8-72 characters with uppercase, lowercase and a number"
    )
    full_name: Optional[str] = None

    @field_validator('password')
    @classmethod
    def validate_password_strength(cls, v: str) -> str:
        """Validate password contains required character types."""
        if not re.search(r'[a-z]', v):
            raise ValueError('Password must contain at least one lowercase letter')
        if not re.search(r'[A-Z]', v):
            raise ValueError('Password must contain at least one uppercase letter')
        if not re.search(r'\d', v):
            raise ValueError('Password must contain at least one number')
        return v


class UserLoginRequest(BaseModel):
    """Request schema for user login (OAuth2 compatible)."""
    username: EmailStr  # OAuth2 spec uses 'username', but we accept email
    password: str


class UserResponse(BaseModel):
    """User profile response (no sensitive data)."""
    id: UUID4
    email: str
    full_name: Optional[str]
    is_active: bool
    email_verified: bool
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    """JWT token response."""
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class CurrentUserResponse(UserResponse):
    """Profile plus the verification state the security UI needs."""
    has_password: bool
    two_factor_methods: List[str] = []
    available_verification_methods: List[str] = []
