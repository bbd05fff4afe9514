"""
Device session cookie.

The cookie carries only the opaque device session id. It is HTTP-only
(never readable by page script), Secure outside development and
SameSite=Lax.
"""

from typing import Optional
from uuid import UUID

from fastapi import Request, Response

from app.core.config import settings


def set_device_session_cookie(response: Response, session_id: UUID, max_age_days: Optional[int] = None) -> None:
    days = settings.DEVICE_SESSION_MAX_AGE_DAYS if max_age_days is None else max_age_days
    response.set_cookie(
        key=settings.DEVICE_SESSION_COOKIE_NAME,
        value=str(session_id),
        max_age=days * 24 * 3600,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        path="/",
    )


def clear_device_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.DEVICE_SESSION_COOKIE_NAME,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        path="/",
    )


def read_device_session_id(request: Request) -> Optional[UUID]:
    """The session id from the cookie, or None if absent or malformed."""
    raw = request.cookies.get(settings.DEVICE_SESSION_COOKIE_NAME)
    if not raw:
        return None
    try:
        return UUID(raw)
    except ValueError:
        return None
