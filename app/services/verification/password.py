"""
Password re-verification, delegated to the identity provider.
"""

from app.core.auth_config import VerificationMethod
from app.core.errors import InvalidCode
from app.core.identity import IdentityProvider
from app.services.verification.base import MethodOutcome, VerificationContext, VerificationStrategy


class PasswordVerification(VerificationStrategy):
    method = VerificationMethod.PASSWORD

    def __init__(self, *args, identity_provider: IdentityProvider, **kwargs):
        super().__init__(*args, **kwargs)
        self.identity_provider = identity_provider

    def verify(self, code: str, context: VerificationContext) -> MethodOutcome:
        if not code or not context.user.has_password:
            raise InvalidCode()
        if not self.identity_provider.verify_password(context.user.email, code):
            raise InvalidCode()
        return MethodOutcome()
