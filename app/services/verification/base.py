"""
Shared types for verification methods.

Each method is a strategy with one `verify` entry point; methods that need
a challenge round-trip (authenticator, SMS, email) also implement
`issue_challenge`. Every failure surfaces as the same InvalidCode.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.auth_config import AuthConfig, VerificationMethod
from app.core.errors import MethodDisabled
from app.core.rate_limiter import RateLimiter
from app.models.device_session import DeviceSession
from app.models.user import User
from app.services.audit_log import AuditLog
from app.services.notifications import NotificationChannel


@dataclass
class VerificationContext:
    """Request-scoped inputs shared by all methods."""
    user: User
    device_session: DeviceSession
    ip_address: str = "unknown"
    factor_id: Optional[UUID] = None
    challenge_id: Optional[UUID] = None


@dataclass
class MethodOutcome:
    """What a strategy reports back after a successful check."""
    factor_id: Optional[UUID] = None
    # This request moved the factor from unverified to verified
    factor_newly_verified: bool = False


@dataclass
class ChallengeResult:
    method: VerificationMethod
    challenge_id: Optional[UUID]
    factor_id: Optional[UUID]
    expires_at: datetime


@dataclass
class VerificationResult:
    success: bool
    method: VerificationMethod
    raised_assurance: bool
    new_backup_codes: Optional[List[str]] = None
    factor_id: Optional[UUID] = None


class VerificationStrategy(ABC):
    method: VerificationMethod

    def __init__(
        self,
        db: Session,
        config: AuthConfig,
        notifier: NotificationChannel,
        limiter: RateLimiter,
        audit: AuditLog,
    ):
        self.db = db
        self.config = config
        self.notifier = notifier
        self.limiter = limiter
        self.audit = audit

    @abstractmethod
    def verify(self, code: str, context: VerificationContext) -> MethodOutcome:
        """
        Check `code` for this method.

        Raises:
            InvalidCode: on any mismatch, expiry, replay or missing factor
        """

    def issue_challenge(self, context: VerificationContext) -> ChallengeResult:
        raise MethodDisabled(f"{self.method.value} does not issue challenges")
