"""
Email code verification.

Codes are bound to the device session they were sent for and checked
against the most recent one. The same codes serve device verification
after an unknown-device login and step-up verification.
"""

import logging
from datetime import timedelta

from app.core.auth_config import VerificationMethod
from app.core.errors import InvalidCode
from app.core.security import generate_numeric_code, hash_code, verify_code_hash
from app.core.timeutils import is_expired, utcnow
from app.crud import verification_code as crud_code
from app.services.notifications import NotificationTemplate
from app.services.verification.base import ChallengeResult, MethodOutcome, VerificationContext, VerificationStrategy

logger = logging.getLogger(__name__)


class EmailVerification(VerificationStrategy):
    method = VerificationMethod.EMAIL

    def issue_challenge(self, context: VerificationContext) -> ChallengeResult:
        """Create a code for the current device session and email it."""
        session = context.device_session
        code = generate_numeric_code(self.config.email_code_length)
        code_hash, salt = hash_code(code)
        expires_at = utcnow() + timedelta(minutes=self.config.email_code_expire_minutes)

        record = crud_code.create_code(self.db, session.id, code_hash, salt, expires_at)

        device = session.device
        self.notifier.send(
            context.user.id,
            NotificationTemplate.EMAIL_VERIFICATION_CODE,
            {
                "email": context.user.email,
                "code": code,
                "expires_in_minutes": self.config.email_code_expire_minutes,
                "device": {
                    "device_name": device.device_name,
                    "browser": device.browser,
                    "os": device.os,
                    "ip_address": device.ip_address,
                } if device is not None else None,
            },
        )
        logger.info(f"Email code issued for device session {session.id}")
        return ChallengeResult(self.method, record.id, None, expires_at)

    def verify(self, code: str, context: VerificationContext) -> MethodOutcome:
        code = (code or "").strip()
        if not code.isdigit():
            raise InvalidCode()

        record = crud_code.get_latest_code(self.db, context.device_session.id)
        if record is None:
            raise InvalidCode()
        if is_expired(record.expires_at):
            # The one case where the user needs to know: request a new code
            raise InvalidCode(expired=True)

        if not verify_code_hash(code, record.code_hash, record.salt):
            raise InvalidCode()

        if not crud_code.consume_code(self.db, record.id):
            raise InvalidCode()

        return MethodOutcome()
