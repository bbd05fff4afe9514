"""
Email verification codes bound to a device session.

Codes are single-use and time-limited. Only a salted scrypt hash is
stored; expired rows are ignored at read time rather than swept.
"""

import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from app.core.database import Base
from app.core.timeutils import utcnow


class VerificationCode(Base):
    __tablename__ = "verification_codes"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    device_session_id = Column(
        UUID(as_uuid=True),
        ForeignKey("device_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    code_hash = Column(String(128), nullable=False)
    salt = Column(String(64), nullable=False)

    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    device_session = relationship("DeviceSession", back_populates="verification_codes")

    __table_args__ = (
        Index("ix_verification_codes_session_expires", "device_session_id", "expires_at"),
    )

    def __repr__(self):
        return f"<VerificationCode(device_session_id={self.device_session_id}, expires_at={self.expires_at})>"
