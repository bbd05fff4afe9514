"""
Verification dispatcher.

Routes a verification attempt to the strategy for its method, then applies
the shared consequences of success:

1. the device session's step-up freshness (and, for second factors, its
   assurance level) is updated, on that session only;
2. when this verification moved the account's first second factor from
   unverified to verified, one batch of backup codes is generated and
   returned in plaintext exactly once; activating any later factor leaves
   the session's step-up state alone;
3. the outcome is written to the audit log.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.api_rate_limiter import check_verify_attempts_limit
from app.core.auth_config import AuthConfig, VerificationMethod
from app.core.errors import InvalidCode, MethodDisabled
from app.core.identity import IdentityProvider
from app.core.rate_limiter import RateLimiter
from app.crud import backup_code as crud_backup
from app.crud import mfa_factor as crud_factor
from app.models.account_event import AccountEventType
from app.services import backup_code_generator
from app.services.audit_log import AuditLog
from app.services.notifications import NotificationChannel
from app.services.step_up import StepUpPolicy
from app.services.verification.authenticator import AuthenticatorVerification
from app.services.verification.backup_codes import BackupCodeVerification
from app.services.verification.base import ChallengeResult, VerificationContext, VerificationResult, VerificationStrategy
from app.services.verification.email import EmailVerification
from app.services.verification.password import PasswordVerification
from app.services.verification.sms import SmsVerification

logger = logging.getLogger(__name__)

# Methods whose first success can activate a pending factor
ACTIVATION_METHODS = frozenset({VerificationMethod.AUTHENTICATOR, VerificationMethod.SMS})


class VerificationDispatcher:
    def __init__(
        self,
        db: Session,
        config: AuthConfig,
        identity_provider: IdentityProvider,
        notifier: NotificationChannel,
        limiter: RateLimiter,
        audit: Optional[AuditLog] = None,
        step_up: Optional[StepUpPolicy] = None,
    ):
        self.db = db
        self.config = config
        self.limiter = limiter
        self.audit = audit or AuditLog(db)
        self.step_up = step_up or StepUpPolicy(db, config)

        shared = dict(db=db, config=config, notifier=notifier, limiter=limiter, audit=self.audit)
        self.strategies: Dict[VerificationMethod, VerificationStrategy] = {
            VerificationMethod.AUTHENTICATOR: AuthenticatorVerification(**shared),
            VerificationMethod.SMS: SmsVerification(**shared),
            VerificationMethod.BACKUP_CODES: BackupCodeVerification(**shared),
            VerificationMethod.PASSWORD: PasswordVerification(identity_provider=identity_provider, **shared),
            VerificationMethod.EMAIL: EmailVerification(**shared),
        }

    def _strategy(self, method: VerificationMethod) -> VerificationStrategy:
        if not self.config.is_method_enabled(method):
            raise MethodDisabled()
        return self.strategies[method]

    def issue_challenge(self, method: VerificationMethod, context: VerificationContext) -> ChallengeResult:
        """
        Start a challenge for methods with a round-trip (authenticator, SMS, email).

        Raises:
            MethodDisabled: method switched off, or it has no challenge step
            RateLimited: SMS quotas exhausted
            InvalidCode: the account has no matching factor
        """
        return self._strategy(method).issue_challenge(context)

    def verify(self, method: VerificationMethod, code: str, context: VerificationContext) -> VerificationResult:
        """
        Verify `code` with `method` for the caller's current device session.

        Only the methods the account is offered count towards step-up. The
        one exception is activating the account's first second factor.
        Activating an additional factor completes its enrollment without
        touching freshness or assurance.

        Raises:
            MethodDisabled: the method is switched off globally
            RateLimited: too many attempts for this user
            InvalidCode: any failure of the code itself, or a method this
                account is not offered
        """
        strategy = self._strategy(method)
        user = context.user
        session = context.device_session

        check_verify_attempts_limit(str(user.id), self.config.rate_limits, limiter=self.limiter)

        # Read before verifying: what the account offered, and whether any
        # second factor was already active
        offered = self.step_up.available_methods(user)
        had_verified_factor = bool(crud_factor.list_verified_factors(self.db, user.id))

        if method not in offered and method not in ACTIVATION_METHODS:
            logger.warning(f"User {user.id} tried {method.value}, which the account is not offered")
            raise InvalidCode()

        try:
            outcome = strategy.verify(code, context)
        except InvalidCode:
            logger.info(f"Verification with {method.value} failed for user {user.id}")
            raise

        activation = outcome.factor_newly_verified
        if not activation and method not in offered:
            logger.warning(f"User {user.id} verified with {method.value}, which the account is not offered")
            raise InvalidCode()

        new_backup_codes: Optional[List[str]] = None
        first_factor = False
        if activation:
            self.audit.record(
                user.id,
                AccountEventType.TWO_FACTOR_ENABLED,
                device_session_id=session.id,
                metadata={"method": method.value, "factor_id": str(outcome.factor_id)},
            )
            first_factor = not had_verified_factor and self._is_earliest_factor(user.id, outcome.factor_id)
            if first_factor:
                new_backup_codes = self._generate_backup_codes(user.id, session.id)

        if activation and not first_factor:
            logger.info(f"User {user.id} activated an additional {method.value} factor on session {session.id}")
            return VerificationResult(
                success=True,
                method=method,
                raised_assurance=False,
                factor_id=outcome.factor_id,
            )

        raised = self.step_up.record_verification(session, method)

        self.audit.record(
            user.id,
            AccountEventType.SENSITIVE_ACTION_VERIFIED,
            device_session_id=session.id,
            metadata={"method": method.value, "aal": session.aal},
        )
        logger.info(f"User {user.id} verified with {method.value} on session {session.id}")

        return VerificationResult(
            success=True,
            method=method,
            raised_assurance=raised,
            new_backup_codes=new_backup_codes,
            factor_id=outcome.factor_id,
        )

    def issue_device_code(self, context: VerificationContext) -> ChallengeResult:
        """
        Email a code that verifies the current device after an unknown-device login.

        Uses the email code channel regardless of whether email is offered
        as a step-up method.
        """
        return self.strategies[VerificationMethod.EMAIL].issue_challenge(context)

    def verify_device_code(self, code: str, context: VerificationContext) -> None:
        """
        Check a device verification code. Step-up state is left untouched.

        Raises:
            RateLimited: too many attempts for this user
            InvalidCode: wrong, expired or already-used code
        """
        check_verify_attempts_limit(str(context.user.id), self.config.rate_limits, limiter=self.limiter)
        self.strategies[VerificationMethod.EMAIL].verify(code, context)

    def _generate_backup_codes(self, user_id, session_id) -> Optional[List[str]]:
        if not self.config.is_method_enabled(VerificationMethod.BACKUP_CODES):
            return None

        codes = backup_code_generator.generate_codes(self.config.backup_codes)
        crud_backup.create_batch(self.db, user_id, backup_code_generator.hash_codes(codes))
        self.audit.record(
            user_id,
            AccountEventType.BACKUP_CODES_GENERATED,
            device_session_id=session_id,
            metadata={"count": len(codes), "format": self.config.backup_codes.format.value},
        )
        return codes

    def _is_earliest_factor(self, user_id, factor_id) -> bool:
        """
        Re-check after activation: another first factor may have been
        activated concurrently. Only the earliest-created one counts as first.
        """
        verified = crud_factor.list_verified_factors(self.db, user_id)
        return bool(verified) and verified[0].id == factor_id
