"""
CRUD operations for device-session email codes.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID
from sqlalchemy.orm import Session

from app.models.verification_code import VerificationCode


def create_code(db: Session, device_session_id: UUID, code_hash: str, salt: str, expires_at: datetime) -> VerificationCode:
    """
    Store a new code for a session, replacing any earlier ones.

    Only the newest code is ever checked, so older codes are removed
    rather than left to expire.
    """
    db.query(VerificationCode).filter(
        VerificationCode.device_session_id == device_session_id
    ).delete(synchronize_session=False)

    code = VerificationCode(
        device_session_id=device_session_id,
        code_hash=code_hash,
        salt=salt,
        expires_at=expires_at,
    )
    db.add(code)
    db.commit()
    db.refresh(code)
    return code


def get_latest_code(db: Session, device_session_id: UUID) -> Optional[VerificationCode]:
    """Most recent code for the session, expired or not."""
    return db.query(VerificationCode).filter(
        VerificationCode.device_session_id == device_session_id
    ).order_by(VerificationCode.created_at.desc()).first()


def consume_code(db: Session, code_id: UUID) -> bool:
    """Delete a matched code. Only one concurrent caller gets True."""
    deleted = db.query(VerificationCode).filter(
        VerificationCode.id == code_id
    ).delete(synchronize_session=False)
    db.commit()
    return deleted == 1
