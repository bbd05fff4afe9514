"""
Append-only audit trail of security-relevant account events.
"""

import enum
import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey, Index, JSON
from sqlalchemy.dialects.postgresql import UUID, JSONB
from app.core.database import Base
from app.core.timeutils import utcnow


class AccountEventType(str, enum.Enum):
    TWO_FACTOR_ENABLED = "2FA_ENABLED"
    TWO_FACTOR_DISABLED = "2FA_DISABLED"
    BACKUP_CODES_GENERATED = "BACKUP_CODES_GENERATED"
    BACKUP_CODE_USED = "BACKUP_CODE_USED"
    NEW_DEVICE_LOGIN = "NEW_DEVICE_LOGIN"
    DEVICE_VERIFIED = "DEVICE_VERIFIED"
    DEVICE_TRUSTED_AUTO = "DEVICE_TRUSTED_AUTO"
    DEVICE_REVOKED = "DEVICE_REVOKED"
    SENSITIVE_ACTION_VERIFIED = "SENSITIVE_ACTION_VERIFIED"
    ACCOUNT_CREATED = "ACCOUNT_CREATED"


class AccountEvent(Base):
    __tablename__ = "account_events"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    event_type = Column(String(64), nullable=False, index=True)
    # No FK: events outlive the sessions they describe
    device_session_id = Column(UUID(as_uuid=True), nullable=True)

    # "metadata" is reserved on declarative classes
    event_metadata = Column("metadata", JSON().with_variant(JSONB, "postgresql"), nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_account_events_user_created", "user_id", "created_at"),
    )

    def __repr__(self):
        return f"<AccountEvent(id={self.id}, type={self.event_type}, user_id={self.user_id})>"
