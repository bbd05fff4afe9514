"""
CRUD operations for device sessions.

Every read that resolves a single session filters out expired rows, so an
expired session behaves exactly like a missing one. Deletes and assurance
updates are conditional statements whose row count tells the caller
whether this request was the one that changed the row.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID
from sqlalchemy.orm import Session

from app.core.errors import Unauthorized
from app.core.timeutils import utcnow
from app.core.trust import TrustDecision
from app.models.device import Device
from app.models.device_session import AssuranceLevel, DeviceSession

# Fields a client may change on its own session
CLIENT_MUTABLE_FIELDS = frozenset({"last_active"})

# Fields only the server may change
PROTECTED_FIELDS = frozenset({
    "id",
    "user_id",
    "device_id",
    "is_trusted",
    "needs_verification",
    "confidence_score",
    "aal",
    "last_verified",
    "last_sensitive_verification_at",
    "created_at",
    "expires_at",
})


def create_device_session(
    db: Session,
    user_id: UUID,
    device_id: UUID,
    decision: TrustDecision,
    expires_at: datetime
) -> DeviceSession:
    now = utcnow()
    session = DeviceSession(
        user_id=user_id,
        device_id=device_id,
        is_trusted=decision.is_trusted,
        needs_verification=decision.needs_verification,
        confidence_score=decision.score,
        aal=AssuranceLevel.AAL1.value,
        last_active=now,
        created_at=now,
        expires_at=expires_at,
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    return session


def get_active_session(db: Session, session_id: UUID, user_id: UUID) -> Optional[DeviceSession]:
    """The session if it exists, belongs to `user_id` and has not expired."""
    return db.query(DeviceSession).filter(
        DeviceSession.id == session_id,
        DeviceSession.user_id == user_id,
        DeviceSession.expires_at > utcnow(),
    ).first()


def session_exists(db: Session, session_id: UUID) -> bool:
    return db.query(DeviceSession.id).filter(DeviceSession.id == session_id).first() is not None


def has_any_session(db: Session, user_id: UUID) -> bool:
    return db.query(DeviceSession.id).filter(DeviceSession.user_id == user_id).first() is not None


def list_sessions(db: Session, user_id: UUID, order_by: str = "created_at") -> List[DeviceSession]:
    """
    Unexpired sessions for a user, most recently relevant first.

    Args:
        order_by: "created_at" or "last_active"
    """
    column = DeviceSession.last_active if order_by == "last_active" else DeviceSession.created_at
    return db.query(DeviceSession).filter(
        DeviceSession.user_id == user_id,
        DeviceSession.expires_at > utcnow(),
    ).order_by(column.desc(), DeviceSession.created_at.desc()).all()


def list_trusted_sessions(db: Session, user_id: UUID) -> List[DeviceSession]:
    return db.query(DeviceSession).filter(
        DeviceSession.user_id == user_id,
        DeviceSession.is_trusted.is_(True),
        DeviceSession.expires_at > utcnow(),
    ).order_by(DeviceSession.created_at.desc()).all()


def list_trusted_devices(db: Session, user_id: UUID) -> List[Device]:
    """Devices behind the user's trusted, unexpired sessions (the trust comparison set)."""
    return db.query(Device).join(DeviceSession, DeviceSession.device_id == Device.id).filter(
        DeviceSession.user_id == user_id,
        DeviceSession.is_trusted.is_(True),
        DeviceSession.expires_at > utcnow(),
    ).distinct().all()


def list_other_session_ids(db: Session, user_id: UUID, keep_session_id: UUID) -> List[UUID]:
    query = db.query(DeviceSession.id).filter(
        DeviceSession.user_id == user_id,
        DeviceSession.id != keep_session_id,
    )
    return [row.id for row in query.all()]


def delete_session(db: Session, session_id: UUID, user_id: UUID) -> bool:
    """
    Compare-and-delete a session owned by `user_id`.

    Returns True only for the call that actually removed the row; a
    concurrent or repeated delete gets False.
    """
    deleted = db.query(DeviceSession).filter(
        DeviceSession.id == session_id,
        DeviceSession.user_id == user_id,
    ).delete(synchronize_session=False)
    db.commit()
    return deleted == 1


def mark_step_up_verified(db: Session, session_id: UUID, raise_assurance: bool) -> bool:
    """
    Record a successful sensitive-action verification on one session.

    Freshness is always refreshed; assurance only moves up to aal2 when the
    method was an independent second factor.
    """
    values: Dict[str, Any] = {"last_sensitive_verification_at": utcnow()}
    if raise_assurance:
        values["aal"] = AssuranceLevel.AAL2.value

    updated = db.query(DeviceSession).filter(
        DeviceSession.id == session_id,
        DeviceSession.expires_at > utcnow(),
    ).update(values, synchronize_session=False)
    db.commit()
    return updated == 1


def mark_device_verified(db: Session, session: DeviceSession) -> DeviceSession:
    now = utcnow()
    session.needs_verification = False
    session.is_trusted = True
    session.last_verified = now
    db.commit()
    db.refresh(session)
    return session


def apply_client_update(db: Session, session: DeviceSession, updates: Dict[str, Any]) -> DeviceSession:
    """
    Apply a client-supplied partial update.

    Only whitelisted fields are written. A protected field anywhere in the
    payload rejects the whole update; unknown fields are dropped.

    Raises:
        Unauthorized: if `updates` names a protected field
    """
    attempted = PROTECTED_FIELDS.intersection(updates)
    if attempted:
        raise Unauthorized(f"Field(s) cannot be modified: {', '.join(sorted(attempted))}")

    applied = False
    for field in CLIENT_MUTABLE_FIELDS.intersection(updates):
        setattr(session, field, updates[field])
        applied = True

    if applied:
        db.commit()
        db.refresh(session)
    return session
