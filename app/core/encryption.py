"""
Encryption utilities for second-factor secrets.

Uses Fernet (symmetric encryption) to encrypt TOTP seeds at rest.
Secrets are encrypted before storage and decrypted only to check a code.
"""

import logging
from typing import Optional
from cryptography.fernet import Fernet, InvalidToken
from app.core.config import settings

logger = logging.getLogger(__name__)


class SecretEncryption:
    """
    Encrypt/decrypt factor secrets using Fernet symmetric encryption.

    Fernet guarantees that a message encrypted using it cannot be
    manipulated or read without the key.
    """

    def __init__(self, key: Optional[str] = None):
        key = settings.ENCRYPTION_KEY if key is None else key
        if not key:
            logger.warning(
                "ENCRYPTION_KEY not set. Factor secrets will be stored unencrypted. "
                "Generate a key with Fernet.generate_key()"
            )
            self.cipher = None
        else:
            try:
                self.cipher = Fernet(key.encode())
            except ValueError as e:
                logger.error(f"Invalid ENCRYPTION_KEY: {e}")
                self.cipher = None

    def encrypt(self, secret: str) -> str:
        """Encrypt a secret for storage."""
        if not self.cipher:
            return secret
        return self.cipher.encrypt(secret.encode()).decode()

    def decrypt(self, encrypted_secret: str) -> str:
        """
        Decrypt a stored secret.

        Raises:
            InvalidToken: If the ciphertext was tampered with or the key changed
        """
        if not self.cipher:
            return encrypted_secret
        try:
            return self.cipher.decrypt(encrypted_secret.encode()).decode()
        except InvalidToken:
            logger.error("Factor secret decryption failed (wrong key or corrupted value)")
            raise


# Singleton instance
secret_encryption = SecretEncryption()
