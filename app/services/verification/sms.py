"""
SMS verification.

Every challenge costs money to deliver, so issuing one is gated by two
independent limits (per user per day, per source IP per hour) before a
code is generated.
"""

import logging
from datetime import timedelta

from app.core.api_rate_limiter import check_sms_ip_limit, check_sms_user_limit
from app.core.auth_config import VerificationMethod
from app.core.errors import InvalidCode
from app.core.security import generate_numeric_code, hash_code, verify_code_hash
from app.core.timeutils import utcnow
from app.crud import mfa_factor as crud_factor
from app.models.mfa_factor import FactorType
from app.services.notifications import NotificationTemplate
from app.services.verification.authenticator import resolve_factor
from app.services.verification.base import ChallengeResult, MethodOutcome, VerificationContext, VerificationStrategy

logger = logging.getLogger(__name__)

SMS_CODE_LENGTH = 6


class SmsVerification(VerificationStrategy):
    method = VerificationMethod.SMS

    def issue_challenge(self, context: VerificationContext) -> ChallengeResult:
        factor = resolve_factor(self.db, context, FactorType.PHONE)
        if factor is None or not factor.phone:
            raise InvalidCode()

        policy = self.config.rate_limits
        check_sms_user_limit(str(context.user.id), policy, limiter=self.limiter)
        check_sms_ip_limit(context.ip_address, policy, limiter=self.limiter)

        code = generate_numeric_code(SMS_CODE_LENGTH)
        code_hash, salt = hash_code(code)
        challenge = crud_factor.create_challenge(
            self.db,
            factor_id=factor.id,
            expires_at=utcnow() + timedelta(minutes=self.config.challenge_expire_minutes),
            code_hash=code_hash,
            salt=salt,
            ip_address=context.ip_address,
        )

        self.notifier.send(context.user.id, NotificationTemplate.SMS_CODE, {"phone": factor.phone, "code": code})
        logger.info(f"SMS challenge {challenge.id} issued for factor {factor.id}")

        return ChallengeResult(self.method, challenge.id, factor.id, challenge.expires_at)

    def verify(self, code: str, context: VerificationContext) -> MethodOutcome:
        code = (code or "").strip()
        if context.challenge_id is None or not code.isdigit():
            raise InvalidCode()

        factor = resolve_factor(self.db, context, FactorType.PHONE)
        if factor is None:
            raise InvalidCode()

        challenge = crud_factor.get_open_challenge(self.db, context.challenge_id, factor.id)
        if challenge is None or not challenge.code_hash:
            raise InvalidCode()

        if not verify_code_hash(code, challenge.code_hash, challenge.salt):
            raise InvalidCode()

        if not crud_factor.consume_challenge(self.db, challenge.id):
            raise InvalidCode()

        newly_verified = False
        if not factor.is_verified:
            newly_verified = crud_factor.mark_factor_verified(self.db, factor.id)

        return MethodOutcome(factor_id=factor.id, factor_newly_verified=newly_verified)
