"""
CRUD operations for account events.

Events are append-only: there is no update or delete here.
"""

from typing import Any, Dict, List, Optional
from uuid import UUID
from sqlalchemy.orm import Session

from app.models.account_event import AccountEvent, AccountEventType


def add_event(
    db: Session,
    user_id: UUID,
    event_type: AccountEventType,
    device_session_id: Optional[UUID] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AccountEvent:
    """Stage an event on the session; the caller controls the transaction."""
    event = AccountEvent(
        user_id=user_id,
        event_type=event_type.value,
        device_session_id=device_session_id,
        event_metadata=metadata or {},
    )
    db.add(event)
    return event


def list_recent_events(db: Session, user_id: UUID, limit: int = 50) -> List[AccountEvent]:
    return db.query(AccountEvent).filter(
        AccountEvent.user_id == user_id
    ).order_by(AccountEvent.created_at.desc()).limit(limit).all()


def count_events(db: Session, user_id: UUID, event_type: Optional[AccountEventType] = None) -> int:
    query = db.query(AccountEvent).filter(AccountEvent.user_id == user_id)
    if event_type is not None:
        query = query.filter(AccountEvent.event_type == event_type.value)
    return query.count()
