"""
Append-only audit log of account security events.

Recording an event must never fail the operation it describes. Each write
runs inside a SAVEPOINT: if the insert fails, only the savepoint is rolled
back and the full event goes to the `security.audit_fallback` logger.
"""

import logging
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.logging_config import AUDIT_FALLBACK_LOGGER
from app.crud import account_event as crud_event
from app.models.account_event import AccountEventType

logger = logging.getLogger(__name__)
fallback_logger = logging.getLogger(AUDIT_FALLBACK_LOGGER)


class AuditLog:
    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        user_id: UUID,
        event_type: AccountEventType,
        device_session_id: Optional[UUID] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> bool:
        """
        Append one event. Returns False if it could only be logged to the fallback channel.
        """
        try:
            with self.db.begin_nested():
                crud_event.add_event(
                    self.db,
                    user_id=user_id,
                    event_type=event_type,
                    device_session_id=device_session_id,
                    metadata=metadata,
                )
            self.db.commit()
            logger.info(f"Account event {event_type.value} recorded for user {user_id}")
            return True
        except SQLAlchemyError as e:
            if not self.db.is_active:
                self.db.rollback()
            fallback_logger.error(
                "Failed to persist account event",
                extra={
                    "user_id": str(user_id),
                    "event_type": event_type.value,
                    "device_session_id": str(device_session_id) if device_session_id else None,
                    "event_metadata": metadata or {},
                    "error": str(e),
                },
            )
            return False
