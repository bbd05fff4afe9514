"""
CRUD operations for user accounts.
"""

from typing import Optional
from uuid import UUID
from sqlalchemy.orm import Session

from app.core.security import get_password_hash
from app.core.timeutils import utcnow
from app.models.user import User


def get_user(db: Session, user_id: UUID) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == email.lower()).first()


def create_user(
    db: Session,
    email: str,
    password: Optional[str] = None,
    full_name: Optional[str] = None,
    email_verified: bool = False
) -> User:
    """
    Create a new account. OAuth-only accounts are created without a password.
    """
    user = User(
        email=email.lower(),
        hashed_password=get_password_hash(password) if password else None,
        full_name=full_name,
        is_active=True,
        email_verified=email_verified,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def record_login(db: Session, user: User) -> None:
    user.last_login_at = utcnow()
    db.commit()
