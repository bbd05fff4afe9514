"""
Security policy configuration.

AuthConfig is the injected policy object consumed by the trust scorer,
the step-up policy engine, the verification dispatcher and the device
session service. It is built once from Settings, but every component
takes it as a constructor argument so tests can vary policy per case.
"""

import enum
from typing import Dict, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.core.config import Settings, settings


class VerificationMethod(str, enum.Enum):
    """All ways a user can prove their identity for a sensitive action."""
    AUTHENTICATOR = "authenticator"
    SMS = "sms"
    BACKUP_CODES = "backup_codes"
    PASSWORD = "password"
    EMAIL = "email"


# Independent second factors. Verifying with one of these raises the session to aal2.
TWO_FACTOR_METHODS: FrozenSet[VerificationMethod] = frozenset({
    VerificationMethod.AUTHENTICATOR,
    VerificationMethod.SMS,
    VerificationMethod.BACKUP_CODES,
})


class BackupCodeFormat(str, enum.Enum):
    WORDS = "words"
    ALPHANUMERIC = "alphanumeric"
    NUMERIC = "numeric"


class TrustThresholds(BaseModel):
    model_config = ConfigDict(frozen=True)

    high: int = Field(70, ge=0, le=100)
    medium: int = Field(40, ge=0, le=100)

    @model_validator(mode="after")
    def check_order(self) -> "TrustThresholds":
        if self.medium > self.high:
            raise ValueError("medium threshold cannot exceed high threshold")
        return self


class BackupCodePolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    count: int = Field(8, ge=1, le=32)
    format: BackupCodeFormat = BackupCodeFormat.WORDS
    word_count: int = Field(4, ge=1, le=24)
    alphanumeric_length: int = Field(10, ge=6, le=64)


class RateLimitPolicy(BaseModel):
    """Fixed-window quotas: (max requests, window seconds)."""
    model_config = ConfigDict(frozen=True)

    sms_user_daily: int = 10
    sms_ip_hourly: int = 5
    verify_attempts: int = 10
    verify_window_seconds: int = 600
    auth_requests: int = 10
    auth_window_seconds: int = 10
    api_requests: int = 100
    api_window_seconds: int = 60


class AlertPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    on_new_device: bool = True
    on_revoke: bool = True
    on_2fa_disable: bool = True


class AuthConfig(BaseModel):
    """Immutable security policy passed into the security components."""
    model_config = ConfigDict(frozen=True)

    trust: TrustThresholds = TrustThresholds()

    two_factor_enabled: bool = True
    enabled_methods: FrozenSet[VerificationMethod] = frozenset({
        VerificationMethod.AUTHENTICATOR,
        VerificationMethod.BACKUP_CODES,
        VerificationMethod.PASSWORD,
        VerificationMethod.EMAIL,
    })

    default_grace_minutes: int = Field(5, ge=0)
    grace_periods: Dict[str, int] = Field(default_factory=dict)

    device_session_max_age_days: int = 365
    email_code_expire_minutes: int = 10
    email_code_length: int = 6
    challenge_expire_minutes: int = 5

    backup_codes: BackupCodePolicy = BackupCodePolicy()
    rate_limits: RateLimitPolicy = RateLimitPolicy()
    alerts: AlertPolicy = AlertPolicy()

    issuer_name: str = "Device Guard"

    def is_method_enabled(self, method: VerificationMethod) -> bool:
        if method in TWO_FACTOR_METHODS and not self.two_factor_enabled:
            return False
        return method in self.enabled_methods

    def grace_period_minutes(self, action_class: Optional[str]) -> int:
        if action_class is None:
            return self.default_grace_minutes
        return self.grace_periods.get(action_class, self.default_grace_minutes)


def build_auth_config(source: Settings = settings) -> AuthConfig:
    """Translate flat environment settings into the policy object."""
    flags = {
        VerificationMethod.AUTHENTICATOR: source.AUTHENTICATOR_ENABLED,
        VerificationMethod.SMS: source.SMS_ENABLED,
        VerificationMethod.BACKUP_CODES: source.BACKUP_CODES_ENABLED,
        VerificationMethod.PASSWORD: source.PASSWORD_VERIFICATION_ENABLED,
        VerificationMethod.EMAIL: source.EMAIL_VERIFICATION_ENABLED,
    }

    return AuthConfig(
        trust=TrustThresholds(
            high=source.TRUST_HIGH_THRESHOLD,
            medium=source.TRUST_MEDIUM_THRESHOLD,
        ),
        two_factor_enabled=source.TWO_FACTOR_ENABLED,
        enabled_methods=frozenset(method for method, enabled in flags.items() if enabled),
        default_grace_minutes=source.STEP_UP_DEFAULT_GRACE_MINUTES,
        grace_periods=dict(source.STEP_UP_GRACE_PERIODS),
        device_session_max_age_days=source.DEVICE_SESSION_MAX_AGE_DAYS,
        email_code_expire_minutes=source.EMAIL_CODE_EXPIRE_MINUTES,
        email_code_length=source.EMAIL_CODE_LENGTH,
        challenge_expire_minutes=source.CHALLENGE_EXPIRE_MINUTES,
        backup_codes=BackupCodePolicy(
            count=source.BACKUP_CODE_COUNT,
            format=BackupCodeFormat(source.BACKUP_CODE_FORMAT),
            word_count=source.BACKUP_CODE_WORD_COUNT,
            alphanumeric_length=source.BACKUP_CODE_ALPHANUMERIC_LENGTH,
        ),
        rate_limits=RateLimitPolicy(
            sms_user_daily=source.SMS_USER_DAILY_LIMIT,
            sms_ip_hourly=source.SMS_IP_HOURLY_LIMIT,
            verify_attempts=source.VERIFY_ATTEMPTS_PER_USER,
            verify_window_seconds=source.VERIFY_ATTEMPTS_WINDOW_SECONDS,
            auth_requests=source.AUTH_RATE_LIMIT,
            auth_window_seconds=source.AUTH_RATE_WINDOW_SECONDS,
            api_requests=source.API_RATE_LIMIT,
            api_window_seconds=source.API_RATE_WINDOW_SECONDS,
        ),
        alerts=AlertPolicy(
            enabled=source.ALERTS_ENABLED,
            on_new_device=source.ALERT_ON_NEW_DEVICE,
            on_revoke=source.ALERT_ON_REVOKE,
            on_2fa_disable=source.ALERT_ON_2FA_DISABLE,
        ),
        issuer_name=source.PROJECT_NAME,
    )


auth_config = build_auth_config()
