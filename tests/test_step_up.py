"""
Tests for the step-up policy engine.

Tests:
- Grace period per action class
- Per-session scoping of freshness
- Available methods and the no-methods failure
- Assurance level transitions
"""

from datetime import timedelta

import pytest

from app.core.auth_config import AuthConfig, VerificationMethod
from app.core.errors import NoVerificationMethodsAvailable, StepUpRequired
from app.core.timeutils import utcnow
from app.core.trust import DeviceFingerprint
from app.crud import backup_code as crud_backup
from app.crud import mfa_factor as crud_factor
from app.models.device_session import AssuranceLevel
from app.models.mfa_factor import FactorType
from app.services import backup_code_generator
from app.services.step_up import DISABLE_2FA, ENROLL_2FA, REVOKE_DEVICE, StepUpPolicy
from app.services.verification import VerificationContext

from conftest import PASSWORD


def verified_totp(db, user):
    factor = crud_factor.create_factor(db, user.id, FactorType.TOTP, secret_encrypted="JBSWY3DPEHPK3PXP")
    crud_factor.mark_factor_verified(db, factor.id)
    return factor


class TestGracePeriod:
    """Test freshness against the grace period"""

    def test_nine_minutes_is_fresh_eleven_is_stale(self, step_up, user, make_session, db_session):
        session = make_session(user)
        now = utcnow()

        session.last_sensitive_verification_at = now - timedelta(minutes=9)
        db_session.commit()
        assert step_up.requires_step_up(session, user, REVOKE_DEVICE, now=now) is False

        session.last_sensitive_verification_at = now - timedelta(minutes=11)
        db_session.commit()
        assert step_up.requires_step_up(session, user, REVOKE_DEVICE, now=now) is True

    def test_never_verified_requires_step_up(self, step_up, user, make_session):
        assert step_up.requires_step_up(make_session(user), user, REVOKE_DEVICE) is True

    def test_grace_period_is_per_action_class(self, step_up, user, make_session, db_session):
        session = make_session(user)
        now = utcnow()
        session.last_sensitive_verification_at = now - timedelta(minutes=7)
        db_session.commit()

        # revoke_device has 10 minutes, disable_2fa has 5
        assert step_up.requires_step_up(session, user, REVOKE_DEVICE, now=now) is False
        assert step_up.requires_step_up(session, user, DISABLE_2FA, now=now) is True

    def test_unknown_action_class_uses_default(self, user, make_session, db_session):
        policy = StepUpPolicy(db_session, AuthConfig(default_grace_minutes=15))
        session = make_session(user)
        now = utcnow()
        session.last_sensitive_verification_at = now - timedelta(minutes=14)
        db_session.commit()

        assert policy.requires_step_up(session, user, "change_email", now=now) is False


class TestScoping:
    """Test that verification on one session does not authorize another"""

    def test_verifying_on_a_does_not_touch_b(self, dispatcher, step_up, user, make_session, db_session):
        session_a = make_session(user, DeviceFingerprint("Laptop", "Firefox", "Linux", "192.0.2.1"))
        session_b = make_session(user, DeviceFingerprint("Phone", "Chrome Mobile", "Android 14", "192.0.2.2"))

        dispatcher.verify(VerificationMethod.PASSWORD, PASSWORD, VerificationContext(user=user, device_session=session_a))

        db_session.refresh(session_b)
        assert session_a.last_sensitive_verification_at is not None
        assert session_b.last_sensitive_verification_at is None
        assert step_up.requires_step_up(session_a, user, REVOKE_DEVICE) is False
        assert step_up.requires_step_up(session_b, user, REVOKE_DEVICE) is True


class TestAvailableMethods:
    """Test which methods are offered"""

    def test_password_and_email_without_second_factor(self, step_up, user):
        assert step_up.available_methods(user) == [VerificationMethod.PASSWORD, VerificationMethod.EMAIL]

    def test_unverified_email_is_not_offered(self, step_up, make_user):
        user = make_user("new@example.com", email_verified=False)
        assert step_up.available_methods(user) == [VerificationMethod.PASSWORD]

    def test_second_factor_replaces_fallbacks(self, step_up, user, db_session):
        verified_totp(db_session, user)
        codes = backup_code_generator.generate_codes(step_up.config.backup_codes)
        crud_backup.create_batch(db_session, user.id, backup_code_generator.hash_codes(codes))

        assert step_up.available_methods(user) == [VerificationMethod.AUTHENTICATOR, VerificationMethod.BACKUP_CODES]

    def test_unverified_factor_is_not_offered(self, step_up, user, db_session):
        crud_factor.create_factor(db_session, user.id, FactorType.TOTP, secret_encrypted="JBSWY3DPEHPK3PXP")
        assert VerificationMethod.AUTHENTICATOR not in step_up.available_methods(user)

    def test_globally_disabled_methods_are_not_offered(self, user, db_session):
        config = AuthConfig(enabled_methods=frozenset({VerificationMethod.EMAIL}))
        assert StepUpPolicy(db_session, config).available_methods(user) == [VerificationMethod.EMAIL]

    def test_enforce_raises_step_up_with_methods(self, step_up, user, make_session, db_session):
        factor = verified_totp(db_session, user)

        with pytest.raises(StepUpRequired) as exc_info:
            step_up.enforce(make_session(user), user, REVOKE_DEVICE)

        detail = exc_info.value.detail
        assert exc_info.value.status_code == 403
        assert detail["requires_verification"] is True
        assert detail["available_methods"] == [{"type": "authenticator", "factor_id": str(factor.id)}]

    def test_no_methods_blocks_the_action(self, user, make_session, db_session, caplog):
        config = AuthConfig(enabled_methods=frozenset({VerificationMethod.AUTHENTICATOR}))
        policy = StepUpPolicy(db_session, config)

        with pytest.raises(NoVerificationMethodsAvailable):
            policy.enforce(make_session(user), user, REVOKE_DEVICE)
        assert any(record.levelname == "ERROR" for record in caplog.records)

    def test_fresh_session_passes(self, step_up, user, make_session, db_session):
        session = make_session(user)
        session.last_sensitive_verification_at = utcnow()
        db_session.commit()

        step_up.enforce(session, user, REVOKE_DEVICE)


class TestAssuranceLevel:
    """Test aal transitions on successful verification"""

    @pytest.mark.parametrize("method", [VerificationMethod.PASSWORD, VerificationMethod.EMAIL])
    def test_knowledge_methods_keep_aal1(self, step_up, user, make_session, method):
        session = make_session(user)

        raised = step_up.record_verification(session, method)

        assert raised is False
        assert StepUpPolicy.current_aal(session) == AssuranceLevel.AAL1
        assert session.last_sensitive_verification_at is not None

    @pytest.mark.parametrize("method", [
        VerificationMethod.AUTHENTICATOR,
        VerificationMethod.SMS,
        VerificationMethod.BACKUP_CODES,
    ])
    def test_second_factors_raise_to_aal2(self, step_up, user, make_session, method):
        session = make_session(user)

        raised = step_up.record_verification(session, method)

        assert raised is True
        assert StepUpPolicy.current_aal(session) == AssuranceLevel.AAL2

    def test_password_after_aal2_does_not_lower_it(self, step_up, user, make_session):
        session = make_session(user)
        step_up.record_verification(session, VerificationMethod.AUTHENTICATOR)
        step_up.record_verification(session, VerificationMethod.PASSWORD)

        assert session.aal == AssuranceLevel.AAL2.value

    def test_aal2_requirement_needs_a_second_factor(self, step_up, user, make_session, db_session):
        verified_totp(db_session, user)
        session = make_session(user)
        step_up.record_verification(session, VerificationMethod.PASSWORD)

        step_up.enforce(session, user, ENROLL_2FA)
        with pytest.raises(StepUpRequired):
            step_up.enforce(session, user, ENROLL_2FA, require_aal2=True)

        step_up.record_verification(session, VerificationMethod.AUTHENTICATOR)
        step_up.enforce(session, user, ENROLL_2FA, require_aal2=True)
