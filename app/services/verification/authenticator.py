"""
TOTP authenticator verification.

A code is always checked against a specific challenge. When the client
does not supply one, a challenge is issued and consumed in the same
request. Each accepted TOTP time-step is recorded on the factor and can
never be accepted again.
"""

import hmac
import logging
from datetime import timedelta
from typing import Optional

import pyotp
from cryptography.fernet import InvalidToken

from app.core.auth_config import VerificationMethod
from app.core.encryption import secret_encryption
from app.core.errors import InvalidCode
from app.core.timeutils import utcnow
from app.crud import mfa_factor as crud_factor
from app.models.mfa_factor import FactorType, MfaFactor
from app.services.verification.base import ChallengeResult, MethodOutcome, VerificationContext, VerificationStrategy

logger = logging.getLogger(__name__)

# Accept the previous, current and next 30-second window
VALID_WINDOW = 1
TOTP_DIGITS = 6


def resolve_factor(db, context: VerificationContext, factor_type: FactorType) -> Optional[MfaFactor]:
    """
    The factor named by the request, or the account's first verified one.

    A factor id belonging to another account resolves to None.
    """
    if context.factor_id is not None:
        factor = crud_factor.get_factor(db, context.factor_id, context.user.id)
        if factor is None or factor.factor_type != factor_type.value:
            return None
        return factor
    return crud_factor.first_verified_factor(db, context.user.id, factor_type)


def matching_timestep(secret: str, code: str, valid_window: int = VALID_WINDOW) -> Optional[int]:
    """The TOTP time-step `code` belongs to, or None."""
    totp = pyotp.TOTP(secret, digits=TOTP_DIGITS)
    current = totp.timecode(utcnow())
    for offset in range(-valid_window, valid_window + 1):
        step = current + offset
        if hmac.compare_digest(totp.generate_otp(step), code):
            return step
    return None


class AuthenticatorVerification(VerificationStrategy):
    method = VerificationMethod.AUTHENTICATOR

    def issue_challenge(self, context: VerificationContext) -> ChallengeResult:
        factor = resolve_factor(self.db, context, FactorType.TOTP)
        if factor is None:
            raise InvalidCode()

        challenge = crud_factor.create_challenge(
            self.db,
            factor_id=factor.id,
            expires_at=utcnow() + timedelta(minutes=self.config.challenge_expire_minutes),
            ip_address=context.ip_address,
        )
        return ChallengeResult(self.method, challenge.id, factor.id, challenge.expires_at)

    def verify(self, code: str, context: VerificationContext) -> MethodOutcome:
        code = (code or "").replace(" ", "")
        if len(code) != TOTP_DIGITS or not code.isdigit():
            raise InvalidCode()

        factor = resolve_factor(self.db, context, FactorType.TOTP)
        if factor is None or not factor.secret_encrypted:
            raise InvalidCode()

        if context.challenge_id is not None:
            challenge = crud_factor.get_open_challenge(self.db, context.challenge_id, factor.id)
        else:
            challenge = crud_factor.create_challenge(
                self.db,
                factor_id=factor.id,
                expires_at=utcnow() + timedelta(minutes=self.config.challenge_expire_minutes),
                ip_address=context.ip_address,
            )
        if challenge is None:
            raise InvalidCode()

        try:
            secret = secret_encryption.decrypt(factor.secret_encrypted)
        except InvalidToken:
            raise InvalidCode()

        step = matching_timestep(secret, code)
        if step is None:
            raise InvalidCode()

        if not crud_factor.consume_challenge(self.db, challenge.id):
            raise InvalidCode()

        if not crud_factor.record_timestep(self.db, factor.id, step):
            logger.warning(f"Replayed TOTP time-step rejected for factor {factor.id}")
            raise InvalidCode()

        newly_verified = False
        if not factor.is_verified:
            newly_verified = crud_factor.mark_factor_verified(self.db, factor.id)

        return MethodOutcome(factor_id=factor.id, factor_newly_verified=newly_verified)
