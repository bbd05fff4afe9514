from pydantic_settings import BaseSettings
from typing import Dict, List, Optional, Union
from pydantic import field_validator
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # API Settings
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Device Guard API"
    ENVIRONMENT: str = "development"

    # Database Settings
    POSTGRES_USER: str = "user"
    POSTGRES_PASSWORD: str = "password"
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: str = "5432"
    POSTGRES_DB: str = "device_guard"

    @property
    def DATABASE_URL(self) -> str:
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # Redis Settings (rate-limit counters, token deny-list, Celery broker)
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    @property
    def REDIS_URL(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # JWT Settings (primary credential session)
    SECRET_KEY: str = "change-me-in-production-please-32b"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Fernet key for factor secrets at rest
    ENCRYPTION_KEY: str = ""

    # AWS (SES for email, SNS for SMS)
    AWS_REGION: str = "us-east-1"
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    AWS_SES_FROM_EMAIL: str = "security@example.com"
    AWS_SES_FROM_NAME: str = "Device Guard"

    # Device session cookie
    DEVICE_SESSION_COOKIE_NAME: str = "device_session_id"
    DEVICE_SESSION_MAX_AGE_DAYS: int = 365

    @property
    def COOKIE_SECURE(self) -> bool:
        return self.ENVIRONMENT == "production"

    # Device trust scoring
    TRUST_HIGH_THRESHOLD: int = 70
    TRUST_MEDIUM_THRESHOLD: int = 40

    # Step-up verification (grace periods in minutes, keyed by action class)
    STEP_UP_DEFAULT_GRACE_MINUTES: int = 5
    STEP_UP_GRACE_PERIODS: Union[Dict[str, int], str] = {
        "revoke_device": 5,
        "revoke_all_devices": 5,
        "disable_2fa": 5,
        "enroll_2fa": 5,
    }

    @field_validator("STEP_UP_GRACE_PERIODS", mode="before")
    @classmethod
    def parse_grace_periods(cls, v: Union[Dict[str, int], str]) -> Dict[str, int]:
        """Parse grace periods from a JSON object string"""
        if isinstance(v, str):
            return {key: int(value) for key, value in json.loads(v).items()}
        return v

    # Verification methods (feature flags, not user preferences)
    TWO_FACTOR_ENABLED: bool = True
    AUTHENTICATOR_ENABLED: bool = True
    SMS_ENABLED: bool = False
    BACKUP_CODES_ENABLED: bool = True
    PASSWORD_VERIFICATION_ENABLED: bool = True
    EMAIL_VERIFICATION_ENABLED: bool = True

    # Verification codes
    EMAIL_CODE_EXPIRE_MINUTES: int = 10
    EMAIL_CODE_LENGTH: int = 6
    CHALLENGE_EXPIRE_MINUTES: int = 5

    # Backup codes
    BACKUP_CODE_COUNT: int = 8
    BACKUP_CODE_FORMAT: str = "words"  # words | alphanumeric | numeric
    BACKUP_CODE_WORD_COUNT: int = 4
    BACKUP_CODE_ALPHANUMERIC_LENGTH: int = 10

    # Rate limits
    SMS_USER_DAILY_LIMIT: int = 10
    SMS_IP_HOURLY_LIMIT: int = 5
    VERIFY_ATTEMPTS_PER_USER: int = 10
    VERIFY_ATTEMPTS_WINDOW_SECONDS: int = 600
    AUTH_RATE_LIMIT: int = 10
    AUTH_RATE_WINDOW_SECONDS: int = 10
    API_RATE_LIMIT: int = 100
    API_RATE_WINDOW_SECONDS: int = 60

    # Email alerts
    ALERTS_ENABLED: bool = True
    ALERT_ON_NEW_DEVICE: bool = True
    ALERT_ON_REVOKE: bool = True
    ALERT_ON_2FA_DISABLE: bool = True

    # Logging
    LOG_LEVEL: str = "INFO"
    JSON_LOGS: bool = False

    # CORS Settings - can be set as JSON string in .env
    BACKEND_CORS_ORIGINS: Union[List[str], str] = ["http://localhost:3000", "http://localhost:8000"]

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Union[List[str], str]) -> List[str]:
        """Parse CORS origins from JSON string or list"""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                # If not valid JSON, split by comma
                return [origin.strip() for origin in v.split(",")]
        return v

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
