"""
CRUD operations for second factors and their challenges.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.timeutils import utcnow
from app.models.mfa_factor import FactorStatus, FactorType, MfaChallenge, MfaFactor


def create_factor(
    db: Session,
    user_id: UUID,
    factor_type: FactorType,
    secret_encrypted: Optional[str] = None,
    phone: Optional[str] = None,
    friendly_name: Optional[str] = None
) -> MfaFactor:
    factor = MfaFactor(
        user_id=user_id,
        factor_type=factor_type.value,
        status=FactorStatus.UNVERIFIED.value,
        secret_encrypted=secret_encrypted,
        phone=phone,
        friendly_name=friendly_name,
    )
    db.add(factor)
    db.commit()
    db.refresh(factor)
    return factor


def get_factor(db: Session, factor_id: UUID, user_id: UUID) -> Optional[MfaFactor]:
    return db.query(MfaFactor).filter(
        MfaFactor.id == factor_id,
        MfaFactor.user_id == user_id,
    ).first()


def list_factors(db: Session, user_id: UUID) -> List[MfaFactor]:
    return db.query(MfaFactor).filter(MfaFactor.user_id == user_id).order_by(MfaFactor.created_at.asc()).all()


def list_verified_factors(db: Session, user_id: UUID, factor_type: Optional[FactorType] = None) -> List[MfaFactor]:
    query = db.query(MfaFactor).filter(
        MfaFactor.user_id == user_id,
        MfaFactor.status == FactorStatus.VERIFIED.value,
    )
    if factor_type is not None:
        query = query.filter(MfaFactor.factor_type == factor_type.value)
    return query.order_by(MfaFactor.created_at.asc()).all()


def first_verified_factor(db: Session, user_id: UUID, factor_type: FactorType) -> Optional[MfaFactor]:
    factors = list_verified_factors(db, user_id, factor_type)
    return factors[0] if factors else None


def mark_factor_verified(db: Session, factor_id: UUID) -> bool:
    """
    Transition a factor from unverified to verified.

    Returns True only for the request that performed the transition.
    """
    updated = db.query(MfaFactor).filter(
        MfaFactor.id == factor_id,
        MfaFactor.status == FactorStatus.UNVERIFIED.value,
    ).update(
        {"status": FactorStatus.VERIFIED.value, "verified_at": utcnow()},
        synchronize_session=False,
    )
    db.commit()
    return updated == 1


def record_timestep(db: Session, factor_id: UUID, timestep: int) -> bool:
    """
    Accept a TOTP time-step for a factor at most once.

    The update only matches while the stored step is older, so a replayed
    (or concurrently submitted) code for the same step is refused.
    """
    updated = db.query(MfaFactor).filter(
        MfaFactor.id == factor_id,
        or_(MfaFactor.last_used_timestep.is_(None), MfaFactor.last_used_timestep < timestep),
    ).update({"last_used_timestep": timestep}, synchronize_session=False)
    db.commit()
    return updated == 1


def delete_factor(db: Session, factor_id: UUID, user_id: UUID) -> bool:
    # Challenges first: bulk deletes bypass ORM cascades
    db.query(MfaChallenge).filter(MfaChallenge.factor_id == factor_id).delete(synchronize_session=False)
    deleted = db.query(MfaFactor).filter(
        MfaFactor.id == factor_id,
        MfaFactor.user_id == user_id,
    ).delete(synchronize_session=False)
    db.commit()
    return deleted == 1


def delete_unverified_factors(db: Session, user_id: UUID, factor_type: FactorType) -> int:
    stale_ids = [
        row.id for row in db.query(MfaFactor.id).filter(
            MfaFactor.user_id == user_id,
            MfaFactor.factor_type == factor_type.value,
            MfaFactor.status == FactorStatus.UNVERIFIED.value,
        ).all()
    ]
    if not stale_ids:
        return 0
    db.query(MfaChallenge).filter(MfaChallenge.factor_id.in_(stale_ids)).delete(synchronize_session=False)
    deleted = db.query(MfaFactor).filter(MfaFactor.id.in_(stale_ids)).delete(synchronize_session=False)
    db.commit()
    return deleted


def create_challenge(
    db: Session,
    factor_id: UUID,
    expires_at: datetime,
    code_hash: Optional[str] = None,
    salt: Optional[str] = None,
    ip_address: Optional[str] = None
) -> MfaChallenge:
    challenge = MfaChallenge(
        factor_id=factor_id,
        code_hash=code_hash,
        salt=salt,
        ip_address=ip_address,
        expires_at=expires_at,
    )
    db.add(challenge)
    db.commit()
    db.refresh(challenge)
    return challenge


def get_open_challenge(db: Session, challenge_id: UUID, factor_id: UUID) -> Optional[MfaChallenge]:
    """An unexpired, unconsumed challenge issued for this exact factor."""
    return db.query(MfaChallenge).filter(
        MfaChallenge.id == challenge_id,
        MfaChallenge.factor_id == factor_id,
        MfaChallenge.verified_at.is_(None),
        MfaChallenge.expires_at > utcnow(),
    ).first()


def consume_challenge(db: Session, challenge_id: UUID) -> bool:
    """Mark a challenge used. Only one caller can consume a given challenge."""
    updated = db.query(MfaChallenge).filter(
        MfaChallenge.id == challenge_id,
        MfaChallenge.verified_at.is_(None),
    ).update({"verified_at": utcnow()}, synchronize_session=False)
    db.commit()
    return updated == 1
