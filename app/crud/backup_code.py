"""
CRUD operations for backup codes.

Consumption is a conditional update (`used_at IS NULL` in the WHERE
clause), so two requests racing with the same code cannot both win.
"""

from typing import Iterable, List, Tuple
from uuid import UUID
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.timeutils import utcnow
from app.models.backup_code import BackupCode


def create_batch(db: Session, user_id: UUID, hashed_codes: Iterable[Tuple[str, str]]) -> List[BackupCode]:
    """
    Store a batch of hashed codes.

    Args:
        hashed_codes: (code_hash, salt) pairs
    """
    now = utcnow()
    codes = [
        BackupCode(user_id=user_id, code_hash=code_hash, salt=salt, created_at=now)
        for code_hash, salt in hashed_codes
    ]
    db.add_all(codes)
    db.commit()
    return codes


def list_unused(db: Session, user_id: UUID) -> List[BackupCode]:
    """Unused codes in a fixed order: oldest first."""
    return db.query(BackupCode).filter(
        BackupCode.user_id == user_id,
        BackupCode.used_at.is_(None),
    ).order_by(BackupCode.created_at.asc(), BackupCode.id.asc()).all()


def count_unused(db: Session, user_id: UUID) -> int:
    return db.query(func.count(BackupCode.id)).filter(
        BackupCode.user_id == user_id,
        BackupCode.used_at.is_(None),
    ).scalar() or 0


def count_all(db: Session, user_id: UUID) -> int:
    return db.query(func.count(BackupCode.id)).filter(BackupCode.user_id == user_id).scalar() or 0


def mark_used(db: Session, code_id: UUID) -> bool:
    """
    Flip one code from unused to used.

    Returns False if the code was already used (or no longer exists).
    """
    updated = db.query(BackupCode).filter(
        BackupCode.id == code_id,
        BackupCode.used_at.is_(None),
    ).update({"used_at": utcnow()}, synchronize_session=False)
    db.commit()
    return updated == 1


def delete_unused(db: Session, user_id: UUID) -> int:
    """Remove unused codes; used codes stay as an audit trail."""
    deleted = db.query(BackupCode).filter(
        BackupCode.user_id == user_id,
        BackupCode.used_at.is_(None),
    ).delete(synchronize_session=False)
    db.commit()
    return deleted
