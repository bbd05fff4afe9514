"""
Multi-method verification (authenticator, SMS, backup codes, password, email).
"""

from app.services.verification.base import ChallengeResult, VerificationContext, VerificationResult
from app.services.verification.dispatcher import VerificationDispatcher

__all__ = ["ChallengeResult", "VerificationContext", "VerificationDispatcher", "VerificationResult"]
