"""
DeviceSession model: the unit of device trust.

A device session binds one browser client to a user. The client holds
only the opaque session id, in an HTTP-only cookie. Trust and assurance
fields are written by the server alone.
"""

import enum
import uuid
from sqlalchemy import Column, String, Boolean, DateTime, Integer, ForeignKey, Index, CheckConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from app.core.database import Base
from app.core.timeutils import utcnow


class AssuranceLevel(str, enum.Enum):
    """
    Authentication assurance level of a device session.

    - AAL1: one factor proven (the primary credential)
    - AAL2: an independent second factor proven on this session
    """
    AAL1 = "aal1"
    AAL2 = "aal2"


class DeviceSession(Base):
    __tablename__ = "device_sessions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    device_id = Column(UUID(as_uuid=True), ForeignKey("devices.id", ondelete="CASCADE"), nullable=False, index=True)

    # Server-authoritative trust state
    is_trusted = Column(Boolean, nullable=False, default=False)
    needs_verification = Column(Boolean, nullable=False, default=True)
    confidence_score = Column(Integer, nullable=False, default=0)
    aal = Column(String(8), nullable=False, default=AssuranceLevel.AAL1.value)

    # When the device itself was verified (email code after an unknown-device login)
    last_verified = Column(DateTime(timezone=True), nullable=True)
    # When a sensitive action was last verified on this session (step-up freshness)
    last_sensitive_verification_at = Column(DateTime(timezone=True), nullable=True)

    last_active = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=False)

    user = relationship("User", back_populates="device_sessions")
    device = relationship("Device", back_populates="sessions", lazy="joined")
    verification_codes = relationship("VerificationCode", back_populates="device_session", cascade="all, delete-orphan", passive_deletes=True)

    __table_args__ = (
        CheckConstraint("confidence_score >= 0 AND confidence_score <= 100", name="ck_device_sessions_confidence"),
        Index("ix_device_sessions_user_created", "user_id", "created_at"),
    )

    def __repr__(self):
        return f"<DeviceSession(id={self.id}, user_id={self.user_id}, trusted={self.is_trusted}, aal={self.aal})>"
