"""
Tests for security building blocks.

Tests:
- Password and one-time code hashing
- Secret encryption at rest
- Backup code formats
- Rate limiting (including fail-open)
- Audit log fallback channel
- Device fingerprinting
"""

import logging

import pytest
from cryptography.fernet import Fernet, InvalidToken
from mnemonic import Mnemonic
from sqlalchemy.exc import SQLAlchemyError

from app.core.auth_config import BackupCodeFormat, BackupCodePolicy
from app.core.encryption import SecretEncryption
from app.core.errors import RateLimited
from app.core.logging_config import AUDIT_FALLBACK_LOGGER
from app.core.security import get_password_hash, hash_code, verify_code_hash, verify_password
from app.crud import account_event as crud_event
from app.models.account_event import AccountEventType
from app.services import backup_code_generator
from app.services.device_info import fingerprint_from_user_agent

from conftest import IPHONE_UA, WINDOWS_CHROME_UA


class TestHashing:
    """Test password and code hashing"""

    def test_password_roundtrip(self):
        hashed = get_password_hash("SecurePass123")
        assert hashed != "SecurePass123"
        assert verify_password("SecurePass123", hashed)
        assert not verify_password("SecurePass124", hashed)

    def test_code_hash_is_salted(self):
        first_hash, first_salt = hash_code("123456")
        second_hash, second_salt = hash_code("123456")

        assert first_salt != second_salt
        assert first_hash != second_hash
        assert verify_code_hash("123456", first_hash, first_salt)
        assert not verify_code_hash("123457", first_hash, first_salt)

    def test_malformed_salt_never_matches(self):
        code_hash, _ = hash_code("123456")
        assert verify_code_hash("123456", code_hash, "not-hex") is False


class TestEncryption:
    """Test factor secret encryption"""

    def test_roundtrip_with_key(self):
        encryption = SecretEncryption(key=Fernet.generate_key().decode())

        token = encryption.encrypt("JBSWY3DPEHPK3PXP")

        assert token != "JBSWY3DPEHPK3PXP"
        assert encryption.decrypt(token) == "JBSWY3DPEHPK3PXP"

    def test_wrong_key_raises(self):
        token = SecretEncryption(key=Fernet.generate_key().decode()).encrypt("JBSWY3DPEHPK3PXP")

        with pytest.raises(InvalidToken):
            SecretEncryption(key=Fernet.generate_key().decode()).decrypt(token)


class TestBackupCodeGenerator:
    """Test backup code formats"""

    def test_words_format(self):
        policy = BackupCodePolicy(count=8, format=BackupCodeFormat.WORDS, word_count=4)
        wordlist = set(Mnemonic("english").wordlist)

        codes = backup_code_generator.generate_codes(policy)

        assert len(codes) == len(set(codes)) == 8
        for code in codes:
            words = code.split("-")
            assert len(words) == 4
            assert set(words) <= wordlist

    def test_alphanumeric_format(self):
        policy = BackupCodePolicy(count=4, format=BackupCodeFormat.ALPHANUMERIC, alphanumeric_length=12)

        for code in backup_code_generator.generate_codes(policy):
            assert len(code) == 12
            assert set(code) <= set(backup_code_generator.ALPHANUMERIC_ALPHABET)

    def test_numeric_format_carries_checksum(self):
        policy = BackupCodePolicy(count=4, format=BackupCodeFormat.NUMERIC)

        for code in backup_code_generator.generate_codes(policy):
            assert backup_code_generator.NUMERIC_PATTERN.match(code)
            assert backup_code_generator.has_valid_checksum(code)

    def test_checksum_catches_typos(self):
        assert backup_code_generator.has_valid_checksum("1234-5678-9012-3456-066")
        assert not backup_code_generator.has_valid_checksum("1234-5678-9012-3457-066")

    def test_normalize(self):
        assert backup_code_generator.normalize("  Ocean Tribe  LAMP velvet ") == "ocean-tribe-lamp-velvet"


class TestRateLimiter:
    """Test the fixed-window limiter"""

    def test_counts_within_window(self, limiter):
        results = [limiter.check_and_increment("test:key", 2, 60) for _ in range(3)]

        assert [r.allowed for r in results] == [True, True, False]
        assert results[-1].count == 3
        assert 0 < results[-1].retry_after <= 60

    def test_raises_with_retry_after(self, limiter):
        limiter.check_rate_limit("test:key", 1, 60)

        with pytest.raises(RateLimited) as exc_info:
            limiter.check_rate_limit("test:key", 1, 60)

        assert exc_info.value.status_code == 429
        assert exc_info.value.headers["Retry-After"] == str(exc_info.value.retry_after)

    def test_reset(self, limiter):
        limiter.check_rate_limit("test:key", 1, 60)
        limiter.reset_limit("test:key")
        limiter.check_rate_limit("test:key", 1, 60)

    def test_fails_open_when_redis_is_down(self, limiter, fake_redis):
        fake_redis.fail = True

        for _ in range(5):
            limiter.check_rate_limit("test:key", 1, 60)


class TestAuditLog:
    """Test that a failed audit write never fails the operation"""

    def test_record_persists(self, audit, user, db_session):
        assert audit.record(user.id, AccountEventType.ACCOUNT_CREATED, metadata={"auth_method": "password"}) is True
        assert crud_event.count_events(db_session, user.id, AccountEventType.ACCOUNT_CREATED) == 1

    def test_failed_write_goes_to_fallback_logger(self, audit, user, monkeypatch, caplog):
        def broken_add_event(*args, **kwargs):
            raise SQLAlchemyError("disk full")

        monkeypatch.setattr(crud_event, "add_event", broken_add_event)

        with caplog.at_level(logging.ERROR, logger=AUDIT_FALLBACK_LOGGER):
            recorded = audit.record(user.id, AccountEventType.DEVICE_REVOKED, metadata={"count": 1})

        assert recorded is False
        fallback = [r for r in caplog.records if r.name == AUDIT_FALLBACK_LOGGER]
        assert fallback[0].event_type == AccountEventType.DEVICE_REVOKED.value
        assert fallback[0].event_metadata == {"count": 1}

    def test_revoke_succeeds_when_audit_fails(self, session_service, user, caller_for, make_session, monkeypatch):
        current = make_session(user)
        other = make_session(user, fingerprint_from_user_agent(IPHONE_UA, "203.0.113.10"))

        def broken_add_event(*args, **kwargs):
            raise SQLAlchemyError("down")

        monkeypatch.setattr(crud_event, "add_event", broken_add_event)

        result = session_service.revoke(other.id, caller_for(user), current.id)

        assert result.revoked is True
        assert [s.id for s in session_service.list(user.id)] == [current.id]


class TestDeviceInfo:
    """Test fingerprinting from the User-Agent"""

    def test_iphone(self):
        fingerprint = fingerprint_from_user_agent(IPHONE_UA, "203.0.113.10")

        assert fingerprint.device_name == "iPhone"
        assert fingerprint.browser == "Mobile Safari"
        assert fingerprint.os.startswith("iOS 17")
        assert fingerprint.ip_address == "203.0.113.10"

    def test_desktop_without_model(self):
        fingerprint = fingerprint_from_user_agent(WINDOWS_CHROME_UA)

        assert fingerprint.device_name == "Unknown Device"
        assert fingerprint.browser == "Chrome"
        assert fingerprint.os.startswith("Windows")

    def test_empty_user_agent(self):
        fingerprint = fingerprint_from_user_agent("")
        assert fingerprint.browser == "Unknown Browser"
