"""
Step-up policy engine.

Decides whether a sensitive action on a device session needs a fresh
proof of identity, and which proofs the account can offer. Two axes are
tracked per device session:

- assurance level (aal1 -> aal2), raised only by an independent second
  factor (authenticator, SMS or backup code);
- freshness (`last_sensitive_verification_at`), checked against the grace
  period of the action class.

Freshness is per device session: verifying on one device never authorizes
a sensitive action on another.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.auth_config import AuthConfig, TWO_FACTOR_METHODS, VerificationMethod
from app.core.errors import NoVerificationMethodsAvailable, StepUpRequired
from app.core.timeutils import as_utc, utcnow
from app.crud import backup_code as crud_backup
from app.crud import device_session as crud_session
from app.crud import mfa_factor as crud_factor
from app.models.device_session import AssuranceLevel, DeviceSession
from app.models.mfa_factor import FactorType
from app.models.user import User

logger = logging.getLogger(__name__)

# Action classes with their own grace period
REVOKE_DEVICE = "revoke_device"
REVOKE_ALL_DEVICES = "revoke_all_devices"
DISABLE_2FA = "disable_2fa"
ENROLL_2FA = "enroll_2fa"


class StepUpPolicy:
    def __init__(self, db: Session, config: AuthConfig):
        self.db = db
        self.config = config

    def enabled_two_factor_methods(self, user: User) -> List[VerificationMethod]:
        """Second factors the account has set up, restricted to globally enabled methods."""
        methods = []
        if crud_factor.list_verified_factors(self.db, user.id, FactorType.TOTP):
            methods.append(VerificationMethod.AUTHENTICATOR)
        if crud_factor.list_verified_factors(self.db, user.id, FactorType.PHONE):
            methods.append(VerificationMethod.SMS)
        if methods and crud_backup.count_unused(self.db, user.id) > 0:
            methods.append(VerificationMethod.BACKUP_CODES)
        return [method for method in methods if self.config.is_method_enabled(method)]

    def available_methods(self, user: User) -> List[VerificationMethod]:
        """
        Methods this account can verify with right now.

        Accounts with a usable second factor verify with it; otherwise they
        fall back to their password and (with a verified address) email.
        """
        two_factor = self.enabled_two_factor_methods(user)
        if two_factor:
            return two_factor

        methods = []
        if user.has_password and self.config.is_method_enabled(VerificationMethod.PASSWORD):
            methods.append(VerificationMethod.PASSWORD)
        if user.email_verified and self.config.is_method_enabled(VerificationMethod.EMAIL):
            methods.append(VerificationMethod.EMAIL)
        return methods

    def describe_methods(self, user: User, methods: Optional[List[VerificationMethod]] = None) -> List[Dict[str, Any]]:
        """Methods as presented to the client, with factor ids where the method needs one."""
        if methods is None:
            methods = self.available_methods(user)

        described = []
        for method in methods:
            entry: Dict[str, Any] = {"type": method.value}
            if method == VerificationMethod.AUTHENTICATOR:
                factor = crud_factor.first_verified_factor(self.db, user.id, FactorType.TOTP)
                entry["factor_id"] = str(factor.id) if factor else None
            elif method == VerificationMethod.SMS:
                factor = crud_factor.first_verified_factor(self.db, user.id, FactorType.PHONE)
                entry["factor_id"] = str(factor.id) if factor else None
            described.append(entry)
        return described

    def is_fresh(self, session: DeviceSession, action_class: Optional[str], now: Optional[datetime] = None) -> bool:
        """True while the last sensitive verification on this session is within the grace period."""
        last = as_utc(session.last_sensitive_verification_at)
        if last is None:
            return False
        grace = timedelta(minutes=self.config.grace_period_minutes(action_class))
        return (now or utcnow()) - last < grace

    def requires_step_up(self, session: DeviceSession, user: User, action_class: Optional[str], now: Optional[datetime] = None) -> bool:
        """
        True if the account has a verification method and this session's
        verification is stale for `action_class`.
        """
        if self.is_fresh(session, action_class, now):
            return False
        return bool(self.available_methods(user))

    def enforce(self, session: DeviceSession, user: User, action_class: Optional[str], require_aal2: bool = False) -> None:
        """
        Let the action through only if this session verified recently enough.

        With `require_aal2`, the recent verification must also have been
        made with a second factor.

        Raises:
            StepUpRequired: with the methods the caller may verify with
            NoVerificationMethodsAvailable: stale session and nothing to verify with
        """
        if self.is_fresh(session, action_class) and (
            not require_aal2 or self.current_aal(session) == AssuranceLevel.AAL2
        ):
            return

        methods = self.available_methods(user)
        if not methods:
            logger.error(
                f"Step-up required for {action_class} but user {user.id} has no verification methods"
            )
            raise NoVerificationMethodsAvailable()

        raise StepUpRequired(self.describe_methods(user, methods), action_class=action_class)

    def record_verification(self, session: DeviceSession, method: VerificationMethod) -> bool:
        """
        Apply a successful verification to this session only.

        Returns whether assurance was raised to aal2.
        """
        raise_assurance = method in TWO_FACTOR_METHODS
        crud_session.mark_step_up_verified(self.db, session.id, raise_assurance)
        self.db.refresh(session)
        return raise_assurance

    @staticmethod
    def current_aal(session: DeviceSession) -> AssuranceLevel:
        return AssuranceLevel(session.aal)
