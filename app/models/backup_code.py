"""
One-time backup codes for account recovery.

A batch is generated when the user's first second factor is verified.
Each code moves from unused to used exactly once; used codes are kept.
"""

import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from app.core.database import Base
from app.core.timeutils import utcnow


class BackupCode(Base):
    __tablename__ = "backup_codes"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    code_hash = Column(String(128), nullable=False)
    salt = Column(String(64), nullable=False)

    used_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    user = relationship("User", back_populates="backup_codes")

    __table_args__ = (
        Index("ix_backup_codes_user_used", "user_id", "used_at"),
    )

    @property
    def is_used(self) -> bool:
        return self.used_at is not None

    def __repr__(self):
        return f"<BackupCode(id={self.id}, user_id={self.user_id}, used={self.is_used})>"
