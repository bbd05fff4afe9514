"""
Device session endpoints.

- POST /device-sessions: Open a session for this browser (sets the HTTP-only cookie)
- GET /device-sessions: List the caller's sessions, most recent first
- GET /device-sessions/current: The session bound to this browser
- GET /device-sessions/trusted: Trusted sessions only
- PATCH /device-sessions/{id}: Client-reported activity on a session
- DELETE /device-sessions/{id}: Revoke one session (step-up: revoke_device)
- DELETE /device-sessions?revoke_all=true: Revoke all others (step-up: revoke_all_devices)
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, Response, status

from app.core.api_rate_limiter import check_ip_rate_limit, get_client_ip
from app.core.auth_config import AuthConfig
from app.core.deps import (
    get_auth_config,
    get_current_device_session,
    get_current_user,
    get_device_session_service,
    get_rate_limiter,
    get_step_up_policy,
    get_user_record,
    get_verification_dispatcher,
)
from app.core.identity import CurrentUser
from app.core.rate_limiter import RateLimiter
from app.core.session_cookie import clear_device_session_cookie, read_device_session_id, set_device_session_cookie
from app.models.device_session import DeviceSession
from app.models.user import User
from app.schemas.device_session import (
    DeviceSessionCreateRequest,
    DeviceSessionResponse,
    DeviceSessionUpdate,
    RevokeAllResponse,
    RevokeRequest,
    RevokeResponse,
)
from app.services.device_info import fingerprint_from_request
from app.services.device_session_service import DeviceSessionService
from app.services.step_up import REVOKE_ALL_DEVICES, REVOKE_DEVICE, StepUpPolicy
from app.services.verification import VerificationContext, VerificationDispatcher

router = APIRouter(prefix="/device-sessions", tags=["Device Sessions"])
logger = logging.getLogger(__name__)


def to_response(session: DeviceSession, current_session_id: Optional[UUID]) -> DeviceSessionResponse:
    response = DeviceSessionResponse.model_validate(session)
    return response.model_copy(update={"is_current": session.id == current_session_id})


def verify_inline(
    payload: Optional[RevokeRequest],
    request: Request,
    user: User,
    session: DeviceSession,
    dispatcher: VerificationDispatcher
) -> None:
    """Satisfy step-up in the same request when the body carries a code."""
    if payload is None or payload.method is None or not payload.code:
        return
    context = VerificationContext(
        user=user,
        device_session=session,
        ip_address=get_client_ip(request),
        factor_id=payload.factor_id,
        challenge_id=payload.challenge_id,
    )
    dispatcher.verify(payload.method, payload.code, context)


@router.post("", status_code=201, response_model=DeviceSessionResponse)
def create_device_session(
    payload: DeviceSessionCreateRequest,
    request: Request,
    response: Response,
    caller: CurrentUser = Depends(get_current_user),
    service: DeviceSessionService = Depends(get_device_session_service),
    config: AuthConfig = Depends(get_auth_config),
    limiter: RateLimiter = Depends(get_rate_limiter)
):
    """
    Open a device session for the calling browser.

    Trust is decided server-side from the User-Agent, the source IP and
    the login method in the access token. The new session id is returned
    only as an HTTP-only cookie value.

    Raises:
        HTTPException 403: `user_id` is not the caller
    """
    check_ip_rate_limit(get_client_ip(request), config.rate_limits, endpoint="device_sessions", limiter=limiter)

    session = service.create(caller, payload.user_id, fingerprint_from_request(request))
    set_device_session_cookie(response, session.id, config.device_session_max_age_days)
    return to_response(session, session.id)


@router.get("", response_model=List[DeviceSessionResponse])
def list_device_sessions(
    request: Request,
    order_by: str = Query("created_at", pattern="^(created_at|last_active)$"),
    caller: CurrentUser = Depends(get_current_user),
    service: DeviceSessionService = Depends(get_device_session_service)
):
    """List the caller's unexpired sessions, most recently relevant first."""
    current_id = read_device_session_id(request)
    return [to_response(s, current_id) for s in service.list(caller.id, order_by=order_by)]


@router.get("/current", response_model=DeviceSessionResponse)
def get_current_device_session_endpoint(
    session: DeviceSession = Depends(get_current_device_session)
):
    """
    The session bound to this browser.

    Raises:
        HTTPException 404: no cookie, or the session is expired or not the caller's
    """
    return to_response(session, session.id)


@router.get("/trusted", response_model=List[DeviceSessionResponse])
def list_trusted_device_sessions(
    request: Request,
    caller: CurrentUser = Depends(get_current_user),
    service: DeviceSessionService = Depends(get_device_session_service)
):
    current_id = read_device_session_id(request)
    return [to_response(s, current_id) for s in service.list_trusted(caller.id)]


@router.patch("/{session_id}", response_model=DeviceSessionResponse)
def update_device_session(
    session_id: UUID,
    payload: DeviceSessionUpdate,
    request: Request,
    caller: CurrentUser = Depends(get_current_user),
    service: DeviceSessionService = Depends(get_device_session_service)
):
    """
    Apply a client-reported update.

    Only `last_active` may be written. Any server-owned field in the body
    (trust flags, assurance, expiry, ownership) rejects the whole request.

    Raises:
        HTTPException 403: the body names a server-owned field
        HTTPException 404: not the caller's live session
    """
    session = service.update(session_id, caller, payload.model_dump(exclude_unset=True))
    return to_response(session, read_device_session_id(request))


@router.delete("/{session_id}", response_model=RevokeResponse)
def revoke_device_session(
    session_id: UUID,
    request: Request,
    response: Response,
    payload: Optional[RevokeRequest] = Body(None),
    caller: CurrentUser = Depends(get_current_user),
    user: User = Depends(get_user_record),
    current: DeviceSession = Depends(get_current_device_session),
    service: DeviceSessionService = Depends(get_device_session_service),
    step_up: StepUpPolicy = Depends(get_step_up_policy),
    dispatcher: VerificationDispatcher = Depends(get_verification_dispatcher)
):
    """
    Revoke one device session.

    The body may carry a verification (`method`, `code`) to satisfy step-up
    inline. Revoking a session that is already gone succeeds. Revoking this
    browser's own session logs it out and clears the cookie.

    Raises:
        HTTPException 403: step-up required (with available methods), or not the owner
        HTTPException 409: step-up required but the account has no methods
    """
    verify_inline(payload, request, user, current, dispatcher)
    step_up.enforce(current, user, REVOKE_DEVICE)

    result = service.revoke(session_id, caller, current.id)
    if result.logged_out:
        clear_device_session_cookie(response)

    return RevokeResponse(success=True, revoked=result.revoked, logged_out=result.logged_out)


@router.delete("", response_model=RevokeAllResponse)
def revoke_all_device_sessions(
    request: Request,
    revoke_all: bool = Query(False),
    payload: Optional[RevokeRequest] = Body(None),
    caller: CurrentUser = Depends(get_current_user),
    user: User = Depends(get_user_record),
    current: DeviceSession = Depends(get_current_device_session),
    service: DeviceSessionService = Depends(get_device_session_service),
    step_up: StepUpPolicy = Depends(get_step_up_policy),
    dispatcher: VerificationDispatcher = Depends(get_verification_dispatcher)
):
    """
    Revoke every session except this browser's.

    Requires `revoke_all=true` so a bare DELETE on the collection does nothing.
    """
    if not revoke_all:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Set revoke_all=true to revoke all other sessions"
        )

    verify_inline(payload, request, user, current, dispatcher)
    step_up.enforce(current, user, REVOKE_ALL_DEVICES)

    count = service.revoke_all_except_current(caller, current.id)
    return RevokeAllResponse(success=True, revoked_count=count)
