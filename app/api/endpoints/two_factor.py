"""
Two-factor management endpoints.

- POST /2fa/enroll: Start authenticator or SMS enrollment (step-up: enroll_2fa at aal2 once a factor is active)
- POST /2fa/disable: Remove a factor (step-up: disable_2fa)
- GET /2fa/factors: List the caller's factors

An enrolled factor becomes active through POST /verify with its factor id.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, Request

from app.core.api_rate_limiter import check_verify_attempts_limit, get_client_ip
from app.core.auth_config import AuthConfig
from app.core.deps import (
    get_auth_config,
    get_current_device_session,
    get_identity_provider,
    get_rate_limiter,
    get_step_up_policy,
    get_two_factor_service,
    get_user_record,
)
from app.core.errors import InvalidCode
from app.core.identity import IdentityProvider
from app.core.rate_limiter import RateLimiter
from app.models.device_session import DeviceSession
from app.models.mfa_factor import FactorType
from app.models.user import User
from app.schemas.two_factor import DisableRequest, DisableResponse, EnrollRequest, EnrollResponse, FactorResponse
from app.services.step_up import DISABLE_2FA, ENROLL_2FA, StepUpPolicy
from app.services.two_factor_service import TwoFactorService

router = APIRouter(prefix="/2fa", tags=["Two-Factor Authentication"])
logger = logging.getLogger(__name__)


@router.post("/enroll", response_model=EnrollResponse)
def enroll(
    payload: EnrollRequest,
    request: Request,
    user: User = Depends(get_user_record),
    session: DeviceSession = Depends(get_current_device_session),
    service: TwoFactorService = Depends(get_two_factor_service),
    identity_provider: IdentityProvider = Depends(get_identity_provider),
    step_up: StepUpPolicy = Depends(get_step_up_policy),
    config: AuthConfig = Depends(get_auth_config),
    limiter: RateLimiter = Depends(get_rate_limiter)
):
    """
    Start enrolling a second factor.

    Accounts with a password must confirm it. Once the account has an
    active second factor, adding another also needs a recent aal2
    verification on this device session. Authenticator enrollment
    returns the secret and otpauth URI once; SMS enrollment sends the
    first code and returns its challenge.

    Raises:
        HTTPException 400: wrong password or malformed phone number
        HTTPException 403: method disabled, or step-up with a second factor required
        HTTPException 429: too many attempts or SMS quota exhausted
    """
    if user.has_password:
        check_verify_attempts_limit(str(user.id), config.rate_limits, limiter=limiter)
        if not payload.password or not identity_provider.verify_password(user.email, payload.password):
            raise InvalidCode()

    if step_up.enabled_two_factor_methods(user):
        step_up.enforce(session, user, ENROLL_2FA, require_aal2=True)

    if payload.factor_type == FactorType.TOTP:
        enrollment = service.enroll_authenticator(user, payload.friendly_name)
        return EnrollResponse(
            factor_id=enrollment.factor_id,
            factor_type=FactorType.TOTP,
            secret=enrollment.secret,
            otpauth_uri=enrollment.otpauth_uri,
        )

    enrollment = service.enroll_sms(user, session, payload.phone, get_client_ip(request))
    return EnrollResponse(
        factor_id=enrollment.factor_id,
        factor_type=FactorType.PHONE,
        challenge_id=enrollment.challenge.challenge_id,
        expires_at=enrollment.challenge.expires_at,
    )


@router.post("/disable", response_model=DisableResponse)
def disable(
    payload: DisableRequest,
    user: User = Depends(get_user_record),
    session: DeviceSession = Depends(get_current_device_session),
    service: TwoFactorService = Depends(get_two_factor_service),
    step_up: StepUpPolicy = Depends(get_step_up_policy)
):
    """
    Remove a second factor.

    Requires a recent verification on this device session. Removing the
    last verified factor also deletes the unused backup codes.
    """
    step_up.enforce(session, user, DISABLE_2FA)
    removed = service.disable(user, session, payload.factor_id)
    return DisableResponse(success=True, backup_codes_removed=removed)


@router.get("/factors", response_model=List[FactorResponse])
def list_factors(
    user: User = Depends(get_user_record),
    service: TwoFactorService = Depends(get_two_factor_service)
):
    return service.list_factors(user)
