"""
Database models package.
"""

from app.models.user import User
from app.models.device import Device
from app.models.device_session import DeviceSession, AssuranceLevel
from app.models.verification_code import VerificationCode
from app.models.backup_code import BackupCode
from app.models.mfa_factor import MfaFactor, MfaChallenge, FactorType, FactorStatus
from app.models.account_event import AccountEvent, AccountEventType

__all__ = [
    "User",
    "Device",
    "DeviceSession",
    "AssuranceLevel",
    "VerificationCode",
    "BackupCode",
    "MfaFactor",
    "MfaChallenge",
    "FactorType",
    "FactorStatus",
    "AccountEvent",
    "AccountEventType",
]
