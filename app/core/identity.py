"""
Identity provider boundary.

The security layer never touches passwords or primary tokens directly; it
goes through an IdentityProvider. LocalIdentityProvider implements the
contract with JWT access tokens, bcrypt password hashes and a Redis
deny-list of revoked token ids.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol
from uuid import UUID

import redis
from jose import JWTError
from sqlalchemy.orm import Session

from app.core.errors import Unauthenticated
from app.core.security import create_access_token, decode_token, verify_password as check_password_hash
from app.core.trust import AuthMethod
from app.models.user import User

logger = logging.getLogger(__name__)

REVOKED_TOKEN_PREFIX = "revoked_jti:"


@dataclass(frozen=True)
class CurrentUser:
    """The authenticated caller, as asserted by the primary credential."""
    id: UUID
    email: str
    auth_method: AuthMethod
    is_new_user: bool
    token: str


class IdentityProvider(Protocol):
    def get_current_user(self, token: str) -> CurrentUser: ...

    def verify_password(self, email: str, password: str) -> bool: ...

    def invalidate_primary_session(self, token: str) -> None: ...


def issue_access_token(user: User, auth_method: AuthMethod = AuthMethod.PASSWORD, new_user: bool = False) -> str:
    """
    Mint a primary credential for `user`.

    The login method and new-account flag travel inside the token so the
    device session policy never has to trust the request body for them.
    """
    return create_access_token({
        "sub": str(user.id),
        "email": user.email,
        "auth_method": auth_method.value,
        "new_user": new_user,
    })


class LocalIdentityProvider:
    def __init__(self, db: Session, redis_client: redis.Redis):
        self.db = db
        self.redis_client = redis_client

    def get_current_user(self, token: str) -> CurrentUser:
        """
        Resolve a bearer token to the calling user.

        Raises:
            Unauthenticated: invalid, expired or revoked token, or inactive user
        """
        try:
            payload = decode_token(token)
        except JWTError:
            raise Unauthenticated()

        user_id = payload.get("sub")
        jti = payload.get("jti")
        if not user_id or not jti:
            raise Unauthenticated()

        if self._is_revoked(jti):
            raise Unauthenticated()

        try:
            user_uuid = UUID(user_id)
        except ValueError:
            raise Unauthenticated()

        user = self.db.query(User).filter(User.id == user_uuid).first()
        if user is None or not user.is_active:
            raise Unauthenticated()

        try:
            auth_method = AuthMethod(payload.get("auth_method", AuthMethod.PASSWORD.value))
        except ValueError:
            raise Unauthenticated()

        return CurrentUser(
            id=user.id,
            email=user.email,
            auth_method=auth_method,
            is_new_user=bool(payload.get("new_user", False)),
            token=token,
        )

    def verify_password(self, email: str, password: str) -> bool:
        user = self.db.query(User).filter(User.email == email).first()
        if user is None or not user.hashed_password:
            return False
        return check_password_hash(password, user.hashed_password)

    def invalidate_primary_session(self, token: str) -> None:
        """Deny-list the token id until the token would have expired anyway."""
        try:
            payload = decode_token(token)
        except JWTError:
            # Already unusable
            return

        jti = payload.get("jti")
        exp = payload.get("exp")
        if not jti or not exp:
            return

        ttl = int(exp - datetime.now(timezone.utc).timestamp())
        if ttl <= 0:
            return

        try:
            self.redis_client.setex(f"{REVOKED_TOKEN_PREFIX}{jti}", ttl, "1")
            logger.info(f"Primary session {jti} invalidated")
        except redis.RedisError as e:
            logger.error(f"Failed to deny-list token {jti}: {e}")

    def _is_revoked(self, jti: str) -> bool:
        try:
            return bool(self.redis_client.exists(f"{REVOKED_TOKEN_PREFIX}{jti}"))
        except redis.RedisError as e:
            logger.error(f"Token deny-list lookup failed: {e}")
            return False
