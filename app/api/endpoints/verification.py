"""
Verification endpoints.

Step-up verification for the current device session, and email-code
verification of a device after an unknown-device login.
"""

import logging
from fastapi import APIRouter, HTTPException, Depends, Request, status

from app.core.api_rate_limiter import check_auth_rate_limit, get_client_ip
from app.core.auth_config import AuthConfig, VerificationMethod
from app.core.deps import (
    get_auth_config,
    get_current_device_session,
    get_device_session_service,
    get_rate_limiter,
    get_user_record,
    get_verification_dispatcher,
)
from app.core.rate_limiter import RateLimiter
from app.models.device_session import DeviceSession
from app.models.user import User
from app.schemas.verification import (
    ChallengeRequest,
    ChallengeResponse,
    DeviceCodeRequest,
    DeviceVerificationResponse,
    SendCodeResponse,
    VerifyRequest,
    VerifyResponse,
)
from app.services.device_session_service import DeviceSessionService
from app.services.verification import VerificationContext, VerificationDispatcher

router = APIRouter(tags=["Verification"])
logger = logging.getLogger(__name__)


@router.post("/verify", response_model=VerifyResponse)
def verify(
    payload: VerifyRequest,
    request: Request,
    user: User = Depends(get_user_record),
    session: DeviceSession = Depends(get_current_device_session),
    dispatcher: VerificationDispatcher = Depends(get_verification_dispatcher)
):
    """
    Verify the current device session with one method.

    Success refreshes step-up freshness on this session only. A second
    factor (authenticator, SMS, backup code) also raises it to aal2. The
    verification that activates the account's first second factor returns
    the backup codes, once. Activating a later factor only completes its
    enrollment.

    Raises:
        HTTPException 400: invalid code (generic), or a method the account
            is not offered
        HTTPException 403: method disabled
        HTTPException 429: too many attempts
    """
    context = VerificationContext(
        user=user,
        device_session=session,
        ip_address=get_client_ip(request),
        factor_id=payload.factor_id,
        challenge_id=payload.challenge_id,
    )
    result = dispatcher.verify(payload.method, payload.code, context)

    return VerifyResponse(
        success=result.success,
        method=result.method,
        aal=session.aal,
        raised_assurance=result.raised_assurance,
        backup_codes=result.new_backup_codes,
    )


@router.post("/verify/challenge", response_model=ChallengeResponse)
def issue_challenge(
    payload: ChallengeRequest,
    request: Request,
    user: User = Depends(get_user_record),
    session: DeviceSession = Depends(get_current_device_session),
    dispatcher: VerificationDispatcher = Depends(get_verification_dispatcher)
):
    """
    Start an authenticator or SMS challenge.

    SMS challenges send a code and count against the per-user daily and
    per-IP hourly SMS quotas.
    """
    context = VerificationContext(
        user=user,
        device_session=session,
        ip_address=get_client_ip(request),
        factor_id=payload.factor_id,
    )
    challenge = dispatcher.issue_challenge(payload.method, context)
    return ChallengeResponse(
        method=challenge.method,
        challenge_id=challenge.challenge_id,
        factor_id=challenge.factor_id,
        expires_at=challenge.expires_at,
    )


@router.post("/verify/email/send-code", response_model=SendCodeResponse)
def send_step_up_email_code(
    request: Request,
    user: User = Depends(get_user_record),
    session: DeviceSession = Depends(get_current_device_session),
    dispatcher: VerificationDispatcher = Depends(get_verification_dispatcher),
    config: AuthConfig = Depends(get_auth_config),
    limiter: RateLimiter = Depends(get_rate_limiter)
):
    """Email a step-up code for the current device session."""
    ip_address = get_client_ip(request)
    check_auth_rate_limit(ip_address, config.rate_limits, endpoint="email_code", limiter=limiter)

    context = VerificationContext(user=user, device_session=session, ip_address=ip_address)
    dispatcher.issue_challenge(VerificationMethod.EMAIL, context)

    return SendCodeResponse(
        success=True,
        message="Verification code sent",
        expires_in_minutes=config.email_code_expire_minutes,
    )


@router.post("/verify-device/send-code", response_model=SendCodeResponse)
def send_device_code(
    request: Request,
    user: User = Depends(get_user_record),
    session: DeviceSession = Depends(get_current_device_session),
    dispatcher: VerificationDispatcher = Depends(get_verification_dispatcher),
    config: AuthConfig = Depends(get_auth_config),
    limiter: RateLimiter = Depends(get_rate_limiter)
):
    """
    Email a code that verifies this device.

    Raises:
        HTTPException 400: the device does not need verification
        HTTPException 429: rate limit exceeded
    """
    if not session.needs_verification:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Device is already verified"
        )

    ip_address = get_client_ip(request)
    check_auth_rate_limit(ip_address, config.rate_limits, endpoint="device_code", limiter=limiter)

    dispatcher.issue_device_code(VerificationContext(user=user, device_session=session, ip_address=ip_address))

    return SendCodeResponse(
        success=True,
        message="Verification code sent",
        expires_in_minutes=config.email_code_expire_minutes,
    )


@router.post("/verify-device", response_model=DeviceVerificationResponse)
def verify_device(
    payload: DeviceCodeRequest,
    request: Request,
    user: User = Depends(get_user_record),
    session: DeviceSession = Depends(get_current_device_session),
    dispatcher: VerificationDispatcher = Depends(get_verification_dispatcher),
    service: DeviceSessionService = Depends(get_device_session_service)
):
    """
    Verify this device with the emailed code.

    On success the session is trusted and no longer needs verification.
    """
    context = VerificationContext(user=user, device_session=session, ip_address=get_client_ip(request))
    dispatcher.verify_device_code(payload.code, context)

    session = service.mark_verified(session)
    logger.info(f"Device session {session.id} verified for user {user.id}")

    return DeviceVerificationResponse(
        success=True,
        is_trusted=session.is_trusted,
        needs_verification=session.needs_verification,
    )
