"""
FastAPI dependencies for authentication and the security services.

Every collaborator (policy object, identity provider, notification
channel, rate limiter) comes in through a dependency here, so tests can
swap any of them with `app.dependency_overrides`.
"""

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Optional

from app.core.auth_config import AuthConfig, auth_config
from app.core.database import get_db
from app.core.errors import Unauthenticated
from app.core.identity import CurrentUser, IdentityProvider, LocalIdentityProvider
from app.core.rate_limiter import RateLimiter, rate_limiter
from app.core.session_cookie import read_device_session_id
from app.crud import user as crud_user
from app.models.device_session import DeviceSession
from app.models.user import User
from app.services.device_session_service import DeviceSessionService
from app.services.notifications import NotificationChannel, QueuedNotificationChannel
from app.services.step_up import StepUpPolicy
from app.services.two_factor_service import TwoFactorService
from app.services.verification import VerificationDispatcher

# HTTP Bearer token scheme (Authorization: Bearer <token>).
# auto_error is off so a missing header raises our own Unauthenticated.
security = HTTPBearer(auto_error=False)

_notifier = QueuedNotificationChannel()


def get_auth_config() -> AuthConfig:
    return auth_config


def get_rate_limiter() -> RateLimiter:
    return rate_limiter


def get_notifier() -> NotificationChannel:
    return _notifier


def get_identity_provider(
    db: Session = Depends(get_db),
    limiter: RateLimiter = Depends(get_rate_limiter)
) -> IdentityProvider:
    return LocalIdentityProvider(db, limiter.redis_client)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    identity_provider: IdentityProvider = Depends(get_identity_provider)
) -> CurrentUser:
    """
    Resolve the Bearer token to the calling user.

    Raises:
        Unauthenticated: missing, invalid, expired or revoked token
    """
    if credentials is None or not credentials.credentials:
        raise Unauthenticated()
    return identity_provider.get_current_user(credentials.credentials)


def get_user_record(
    caller: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> User:
    """The caller's User row (for endpoints that need profile or factor state)."""
    user = crud_user.get_user(db, caller.id)
    if user is None:
        raise Unauthenticated()
    return user


def get_step_up_policy(
    db: Session = Depends(get_db),
    config: AuthConfig = Depends(get_auth_config)
) -> StepUpPolicy:
    return StepUpPolicy(db, config)


def get_device_session_service(
    db: Session = Depends(get_db),
    config: AuthConfig = Depends(get_auth_config),
    identity_provider: IdentityProvider = Depends(get_identity_provider),
    notifier: NotificationChannel = Depends(get_notifier)
) -> DeviceSessionService:
    return DeviceSessionService(db, config, identity_provider, notifier)


def get_verification_dispatcher(
    db: Session = Depends(get_db),
    config: AuthConfig = Depends(get_auth_config),
    identity_provider: IdentityProvider = Depends(get_identity_provider),
    notifier: NotificationChannel = Depends(get_notifier),
    limiter: RateLimiter = Depends(get_rate_limiter),
    step_up: StepUpPolicy = Depends(get_step_up_policy)
) -> VerificationDispatcher:
    return VerificationDispatcher(db, config, identity_provider, notifier, limiter, step_up=step_up)


def get_two_factor_service(
    db: Session = Depends(get_db),
    config: AuthConfig = Depends(get_auth_config),
    dispatcher: VerificationDispatcher = Depends(get_verification_dispatcher),
    notifier: NotificationChannel = Depends(get_notifier)
) -> TwoFactorService:
    return TwoFactorService(db, config, dispatcher, notifier)


def get_current_device_session(
    request: Request,
    caller: CurrentUser = Depends(get_current_user),
    service: DeviceSessionService = Depends(get_device_session_service)
) -> DeviceSession:
    """
    The device session bound to this browser by the HTTP-only cookie.

    Raises:
        NotFound: no cookie, or the session is expired or not the caller's
    """
    return service.get_current(read_device_session_id(request), caller)
