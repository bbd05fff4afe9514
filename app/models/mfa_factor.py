"""
Second-factor enrollments and their verification challenges.

A factor is either a TOTP authenticator (encrypted seed) or a phone number
for SMS codes. It starts unverified and becomes verified on the first
successful challenge.
"""

import enum
import uuid
from sqlalchemy import Column, String, DateTime, BigInteger, ForeignKey, Index, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from app.core.database import Base
from app.core.timeutils import utcnow


class FactorType(str, enum.Enum):
    TOTP = "totp"
    PHONE = "phone"


class FactorStatus(str, enum.Enum):
    UNVERIFIED = "unverified"
    VERIFIED = "verified"


class MfaFactor(Base):
    __tablename__ = "mfa_factors"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    factor_type = Column(String(16), nullable=False)
    status = Column(String(16), nullable=False, default=FactorStatus.UNVERIFIED.value)
    friendly_name = Column(String(255), nullable=True)

    # TOTP seed (Fernet-encrypted)
    secret_encrypted = Column(String, nullable=True)
    # E.164 phone number for SMS factors
    phone = Column(String(32), nullable=True)

    # Highest TOTP time-step accepted so far (replay guard)
    last_used_timestep = Column(BigInteger, nullable=True)

    verified_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", back_populates="mfa_factors")
    challenges = relationship("MfaChallenge", back_populates="factor", cascade="all, delete-orphan", passive_deletes=True)

    __table_args__ = (
        Index("ix_mfa_factors_user_status", "user_id", "status"),
    )

    @property
    def is_verified(self) -> bool:
        return self.status == FactorStatus.VERIFIED.value

    def __repr__(self):
        return f"<MfaFactor(id={self.id}, type={self.factor_type}, status={self.status})>"


class MfaChallenge(Base):
    """
    A time-boxed challenge issued against one factor.

    SMS challenges carry the hashed code that was sent; TOTP challenges
    carry no code (the authenticator app computes it).
    """
    __tablename__ = "mfa_challenges"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    factor_id = Column(UUID(as_uuid=True), ForeignKey("mfa_factors.id", ondelete="CASCADE"), nullable=False, index=True)

    code_hash = Column(String(128), nullable=True)
    salt = Column(String(64), nullable=True)
    ip_address = Column(String(64), nullable=True)

    expires_at = Column(DateTime(timezone=True), nullable=False)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    factor = relationship("MfaFactor", back_populates="challenges")

    def __repr__(self):
        return f"<MfaChallenge(id={self.id}, factor_id={self.factor_id}, verified={self.verified_at is not None})>"
