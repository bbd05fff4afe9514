"""
Security utilities for JWT authentication, password hashing and code hashing.

Primary credentials are stateless JWTs (HS256) carrying a unique `jti` so
individual tokens can be deny-listed on logout. Passwords are hashed with
bcrypt; one-time codes (email codes, SMS challenges, backup codes) are
hashed with scrypt and a per-code random salt and never stored in plaintext.
"""

import hashlib
import hmac
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
from jose import JWTError, jwt
from passlib.context import CryptContext
from app.core.config import settings

# Password hashing context (bcrypt)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# scrypt cost parameters for one-time codes
SCRYPT_N = 2 ** 14
SCRYPT_R = 8
SCRYPT_P = 1
SCRYPT_DKLEN = 64
SALT_BYTES = 16


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against a hashed password."""
    # Bcrypt has a 72-byte limit - truncate if necessary
    password_bytes = plain_password.encode('utf-8')[:72]
    return pwd_context.verify(password_bytes, hashed_password)


def get_password_hash(password: str) -> str:
    """
    Hash a password using bcrypt.

    Note: Bcrypt has a 72-byte limit. Passwords longer than 72 bytes
    are automatically truncated to comply with this limitation.
    """
    password_bytes = password.encode('utf-8')[:72]
    return pwd_context.hash(password_bytes)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Args:
        data: Claims to encode, e.g. {"sub": user_id, "email": ..., "auth_method": "password"}
        expires_delta: Optional expiration time delta (default: ACCESS_TOKEN_EXPIRE_MINUTES)

    Returns:
        Encoded JWT token as a string
    """
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))

    to_encode.update({"exp": expire, "iat": now, "jti": uuid.uuid4().hex})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> dict:
    """
    Decode and validate a JWT token.

    Raises:
        JWTError: If token is invalid or expired
    """
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])


def hash_code(code: str, salt: Optional[str] = None) -> Tuple[str, str]:
    """
    Hash a one-time code with scrypt.

    Args:
        code: Plaintext code (already normalized by the caller)
        salt: Hex salt; a fresh random salt is generated when omitted

    Returns:
        (hash_hex, salt_hex)
    """
    if salt is None:
        salt = secrets.token_hex(SALT_BYTES)
    digest = hashlib.scrypt(
        code.encode("utf-8"),
        salt=bytes.fromhex(salt),
        n=SCRYPT_N,
        r=SCRYPT_R,
        p=SCRYPT_P,
        dklen=SCRYPT_DKLEN,
    )
    return digest.hex(), salt


def verify_code_hash(code: str, code_hash: str, salt: str) -> bool:
    """Constant-time comparison of a submitted code against a stored scrypt hash."""
    try:
        candidate, _ = hash_code(code, salt)
    except ValueError:
        # Malformed salt in storage
        return False
    return hmac.compare_digest(candidate, code_hash)


def generate_numeric_code(length: int = 6) -> str:
    """Generate a numeric code from a cryptographically secure source."""
    return ''.join(secrets.choice('0123456789') for _ in range(length))


__all__ = [
    "JWTError",
    "create_access_token",
    "decode_token",
    "generate_numeric_code",
    "get_password_hash",
    "hash_code",
    "verify_code_hash",
    "verify_password",
]
