"""
Second-factor enrollment and removal.

Enrollment creates an unverified factor; it only counts once a challenge
against it succeeds through the verification dispatcher. Removing the last
verified factor also removes the unused backup codes, since they would
otherwise be a second factor with nothing to back up.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional
from uuid import UUID

import pyotp
from sqlalchemy.orm import Session

from app.core.auth_config import AuthConfig, VerificationMethod
from app.core.encryption import secret_encryption
from app.core.errors import InvalidCode, MethodDisabled, NotFound
from app.crud import backup_code as crud_backup
from app.crud import mfa_factor as crud_factor
from app.models.account_event import AccountEventType
from app.models.device_session import DeviceSession
from app.models.mfa_factor import FactorType, MfaFactor
from app.models.user import User
from app.services.audit_log import AuditLog
from app.services.notifications import NotificationChannel, NotificationTemplate
from app.services.verification import ChallengeResult, VerificationContext, VerificationDispatcher

logger = logging.getLogger(__name__)

E164_PATTERN = re.compile(r"^\+[1-9]\d{7,14}$")

FACTOR_METHODS = {
    FactorType.TOTP.value: VerificationMethod.AUTHENTICATOR,
    FactorType.PHONE.value: VerificationMethod.SMS,
}


@dataclass
class AuthenticatorEnrollment:
    factor_id: UUID
    secret: str
    otpauth_uri: str


@dataclass
class SmsEnrollment:
    factor_id: UUID
    challenge: ChallengeResult


class TwoFactorService:
    def __init__(
        self,
        db: Session,
        config: AuthConfig,
        dispatcher: VerificationDispatcher,
        notifier: NotificationChannel,
        audit: Optional[AuditLog] = None,
    ):
        self.db = db
        self.config = config
        self.dispatcher = dispatcher
        self.notifier = notifier
        self.audit = audit or AuditLog(db)

    def _require_enabled(self, method: VerificationMethod) -> None:
        if not self.config.is_method_enabled(method):
            raise MethodDisabled()

    def enroll_authenticator(self, user: User, friendly_name: Optional[str] = None) -> AuthenticatorEnrollment:
        """
        Start TOTP enrollment.

        Abandoned unverified TOTP factors are removed first, so each user
        has at most one pending authenticator setup.
        """
        self._require_enabled(VerificationMethod.AUTHENTICATOR)

        removed = crud_factor.delete_unverified_factors(self.db, user.id, FactorType.TOTP)
        if removed:
            logger.info(f"Removed {removed} stale authenticator enrollment(s) for user {user.id}")

        secret = pyotp.random_base32()
        factor = crud_factor.create_factor(
            self.db,
            user.id,
            FactorType.TOTP,
            secret_encrypted=secret_encryption.encrypt(secret),
            friendly_name=friendly_name or "Authenticator app",
        )
        uri = pyotp.TOTP(secret).provisioning_uri(name=user.email, issuer_name=self.config.issuer_name)
        return AuthenticatorEnrollment(factor_id=factor.id, secret=secret, otpauth_uri=uri)

    def enroll_sms(self, user: User, session: DeviceSession, phone: str, ip_address: str) -> SmsEnrollment:
        """
        Register a phone number and send the first code to it.

        Raises:
            MethodDisabled: SMS is switched off
            InvalidCode: phone number is not E.164
            RateLimited: SMS quotas exhausted
        """
        self._require_enabled(VerificationMethod.SMS)

        phone = phone.replace(" ", "")
        if not E164_PATTERN.match(phone):
            raise InvalidCode()

        crud_factor.delete_unverified_factors(self.db, user.id, FactorType.PHONE)
        factor = crud_factor.create_factor(self.db, user.id, FactorType.PHONE, phone=phone, friendly_name="SMS")

        context = VerificationContext(user=user, device_session=session, ip_address=ip_address, factor_id=factor.id)
        challenge = self.dispatcher.issue_challenge(VerificationMethod.SMS, context)
        return SmsEnrollment(factor_id=factor.id, challenge=challenge)

    def list_factors(self, user: User) -> List[MfaFactor]:
        return crud_factor.list_factors(self.db, user.id)

    def disable(self, user: User, session: DeviceSession, factor_id: UUID) -> int:
        """
        Remove a factor. Step-up (`disable_2fa`) is enforced by the caller.

        Returns the number of unused backup codes deleted (0 while another
        verified factor remains).

        Raises:
            NotFound: no such factor on this account
        """
        factor = crud_factor.get_factor(self.db, factor_id, user.id)
        if factor is None:
            raise NotFound("Factor not found")

        method = FACTOR_METHODS.get(factor.factor_type)
        was_verified = factor.is_verified
        crud_factor.delete_factor(self.db, factor.id, user.id)

        removed_codes = 0
        if not crud_factor.list_verified_factors(self.db, user.id):
            removed_codes = crud_backup.delete_unused(self.db, user.id)

        if was_verified:
            self.audit.record(
                user.id,
                AccountEventType.TWO_FACTOR_DISABLED,
                device_session_id=session.id,
                metadata={"method": method.value if method else factor.factor_type, "factor_id": str(factor_id)},
            )
            if self.config.alerts.enabled and self.config.alerts.on_2fa_disable:
                self.notifier.send(
                    user.id,
                    NotificationTemplate.TWO_FACTOR_DISABLED,
                    {"email": user.email, "method": method.value if method else factor.factor_type},
                )

        logger.info(f"Factor {factor_id} removed for user {user.id} ({removed_codes} backup codes deleted)")
        return removed_codes
