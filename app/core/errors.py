"""
Security error taxonomy.

Every error is an HTTPException carrying a machine-readable code so it
propagates through FastAPI untouched. Messages are deliberately generic:
callers learn enough to react (which methods they may use, when to retry)
but never enough to enumerate accounts or factors.
"""

from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status


class SecurityError(HTTPException):
    """Base class for all errors raised by the account-security layer."""
    code = "SECURITY_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Request could not be completed"

    def __init__(
        self,
        message: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = message or self.default_message
        detail: Dict[str, Any] = {"code": self.code, "message": self.message}
        if extra:
            detail.update(extra)
        super().__init__(status_code=self.status_code, detail=detail, headers=headers)


class Unauthenticated(SecurityError):
    code = "UNAUTHENTICATED"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Could not validate credentials"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class Unauthorized(SecurityError):
    """Authenticated, but not allowed to act on this resource or field."""
    code = "UNAUTHORIZED"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Not allowed"


class StepUpRequired(SecurityError):
    """
    Redirection signal rather than a hard failure: the caller must verify
    with one of `available_methods` and retry the action.
    """
    code = "STEP_UP_REQUIRED"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Verification required"

    def __init__(self, available_methods: List[Dict[str, Any]], action_class: Optional[str] = None):
        self.available_methods = available_methods
        self.action_class = action_class
        super().__init__(extra={
            "requires_verification": True,
            "available_methods": available_methods,
            "action": action_class,
        })


class MethodDisabled(SecurityError):
    code = "METHOD_DISABLED"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Verification method is not enabled"


class InvalidCode(SecurityError):
    """
    Covers wrong, expired, already-used and malformed codes alike.

    `expired` is only set for the email-code flow, where the user needs to
    know to request a new code.
    """
    code = "INVALID_CODE"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid verification code"

    def __init__(self, expired: bool = False):
        self.expired = expired
        super().__init__(extra={"expired": True} if expired else None)


class RateLimited(SecurityError):
    code = "RATE_LIMITED"
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many requests. Please try again later."

    def __init__(self, message: Optional[str] = None, retry_after: int = 60):
        self.retry_after = max(int(retry_after), 1)
        super().__init__(
            message,
            extra={"retry_after": self.retry_after},
            headers={"Retry-After": str(self.retry_after)},
        )


class NoVerificationMethodsAvailable(SecurityError):
    """Step-up is needed but the account has nothing to verify with. Never a pass-through."""
    code = "NO_VERIFICATION_METHODS"
    status_code = status.HTTP_409_CONFLICT
    default_message = "No verification methods available for this account"


class NotFound(SecurityError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"
