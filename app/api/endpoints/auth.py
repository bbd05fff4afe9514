"""
Authentication endpoints for the local identity provider.

- POST /register: Create an account and sign in (token marked as new user)
- POST /login: Authenticate with email and password
- POST /logout: End the primary session and the current device session
- GET /me: Current profile with 2FA and verification method state
"""

import logging
from fastapi import APIRouter, HTTPException, Depends, Request, Response, status
from sqlalchemy.orm import Session

from app.core.api_rate_limiter import check_auth_rate_limit, get_client_ip
from app.core.auth_config import AuthConfig
from app.core.database import get_db
from app.core.deps import (
    get_auth_config,
    get_current_user,
    get_device_session_service,
    get_identity_provider,
    get_rate_limiter,
    get_step_up_policy,
    get_user_record,
)
from app.core.errors import Unauthenticated
from app.core.identity import CurrentUser, IdentityProvider, issue_access_token
from app.core.rate_limiter import RateLimiter
from app.core.session_cookie import clear_device_session_cookie, read_device_session_id
from app.core.trust import AuthMethod
from app.crud import user as crud_user
from app.models.account_event import AccountEventType
from app.models.user import User
from app.schemas.user import CurrentUserResponse, TokenResponse, UserLoginRequest, UserRegisterRequest, UserResponse
from app.services.audit_log import AuditLog
from app.services.device_session_service import DeviceSessionService
from app.services.step_up import StepUpPolicy

router = APIRouter(prefix="/auth", tags=["Authentication"])
logger = logging.getLogger(__name__)


@router.post("/register", status_code=201, response_model=TokenResponse)
def register(
    payload: UserRegisterRequest,
    request: Request,
    db: Session = Depends(get_db),
    config: AuthConfig = Depends(get_auth_config),
    limiter: RateLimiter = Depends(get_rate_limiter)
):
    """
    Register a new user account.

    The returned token carries `new_user=true`, so the first device session
    opened with it is trusted without verification.
    """
    check_auth_rate_limit(get_client_ip(request), config.rate_limits, endpoint="register", limiter=limiter)

    if crud_user.get_user_by_email(db, payload.email):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered"
        )

    user = crud_user.create_user(db, payload.email, password=payload.password, full_name=payload.full_name)
    AuditLog(db).record(user.id, AccountEventType.ACCOUNT_CREATED, metadata={"auth_method": AuthMethod.PASSWORD.value})

    logger.info(f"New user registered: {user.email}")

    return TokenResponse(
        access_token=issue_access_token(user, AuthMethod.PASSWORD, new_user=True),
        token_type="bearer",
        user=UserResponse.model_validate(user)
    )


@router.post("/login", response_model=TokenResponse)
def login(
    payload: UserLoginRequest,
    request: Request,
    db: Session = Depends(get_db),
    config: AuthConfig = Depends(get_auth_config),
    limiter: RateLimiter = Depends(get_rate_limiter),
    identity_provider: IdentityProvider = Depends(get_identity_provider)
):
    """
    Authenticate with email and password.

    Unknown email, wrong password and inactive account all get the same 401.
    """
    check_auth_rate_limit(get_client_ip(request), config.rate_limits, endpoint="login", limiter=limiter)

    user = crud_user.get_user_by_email(db, payload.username)
    if not user or not user.is_active or not identity_provider.verify_password(user.email, payload.password):
        raise Unauthenticated("Incorrect email or password")

    crud_user.record_login(db, user)
    logger.info(f"User logged in: {user.email}")

    return TokenResponse(
        access_token=issue_access_token(user, AuthMethod.PASSWORD),
        token_type="bearer",
        user=UserResponse.model_validate(user)
    )


@router.post("/logout")
def logout(
    request: Request,
    response: Response,
    caller: CurrentUser = Depends(get_current_user),
    service: DeviceSessionService = Depends(get_device_session_service)
):
    """
    Full logout: the access token is deny-listed, the current device
    session is deleted and the cookie cleared.
    """
    service.logout(caller, read_device_session_id(request))
    clear_device_session_cookie(response)
    logger.info(f"User {caller.id} logged out")
    return {"success": True}


@router.get("/me", response_model=CurrentUserResponse)
def get_current_user_profile(
    user: User = Depends(get_user_record),
    step_up: StepUpPolicy = Depends(get_step_up_policy)
):
    """
    Get the current user's profile.

    Includes the second factors in use and the methods the account can
    verify a sensitive action with right now.
    """
    profile = UserResponse.model_validate(user).model_dump()
    return CurrentUserResponse(
        **profile,
        has_password=user.has_password,
        two_factor_methods=[m.value for m in step_up.enabled_two_factor_methods(user)],
        available_verification_methods=[m.value for m in step_up.available_methods(user)],
    )
