"""
Integration tests for two-factor management.

Tests:
- Authenticator enrollment through to aal2 and backup codes
- Password confirmation on enrollment
- Adding a factor needs a fresh second-factor verification
- Disabling behind step-up, and backup code cleanup
"""

from datetime import timedelta
from uuid import UUID

import pyotp
import pytest

from app.core.identity import issue_access_token
from app.core.timeutils import utcnow
from app.crud import backup_code as crud_backup
from app.models.device_session import DeviceSession
from app.services.notifications import NotificationTemplate

from conftest import IPHONE_UA, PASSWORD, auth_headers


@pytest.fixture
def signed_in(client, user):
    """Headers for `user` with a device session cookie on the client."""
    headers = auth_headers(issue_access_token(user))
    created = client.post("/api/v1/device-sessions", json={"user_id": str(user.id)}, headers=headers)
    assert created.status_code == 201
    return {"headers": headers, "session_id": UUID(created.json()["id"])}


@pytest.fixture
def enrolled(client, signed_in):
    """An authenticator enrolled and activated on the current session."""
    enrollment = client.post(
        "/api/v1/2fa/enroll",
        json={"factor_type": "totp", "password": PASSWORD},
        headers=signed_in["headers"],
    ).json()
    verified = client.post(
        "/api/v1/verify",
        json={
            "method": "authenticator",
            "code": pyotp.TOTP(enrollment["secret"]).now(),
            "factor_id": enrollment["factor_id"],
        },
        headers=signed_in["headers"],
    )
    assert verified.status_code == 200
    return {**signed_in, **enrollment, "verify": verified.json()}


class TestEnroll:
    """Test POST /2fa/enroll"""

    def test_authenticator_enrollment(self, client, signed_in):
        response = client.post(
            "/api/v1/2fa/enroll",
            json={"factor_type": "totp", "password": PASSWORD, "friendly_name": "Phone"},
            headers=signed_in["headers"],
        )

        assert response.status_code == 200
        data = response.json()
        assert data["factor_type"] == "totp"
        assert data["secret"]
        assert data["otpauth_uri"].startswith("otpauth://totp/")

        factors = client.get("/api/v1/2fa/factors", headers=signed_in["headers"]).json()
        assert [(f["friendly_name"], f["status"]) for f in factors] == [("Phone", "unverified")]

    def test_wrong_password_is_refused(self, client, signed_in):
        response = client.post(
            "/api/v1/2fa/enroll",
            json={"factor_type": "totp", "password": "WrongPass123"},
            headers=signed_in["headers"],
        )

        assert response.status_code == 400
        assert client.get("/api/v1/2fa/factors", headers=signed_in["headers"]).json() == []

    def test_missing_password_is_refused(self, client, signed_in):
        response = client.post("/api/v1/2fa/enroll", json={"factor_type": "totp"}, headers=signed_in["headers"])
        assert response.status_code == 400

    def test_phone_factor_needs_number(self, client, signed_in):
        response = client.post(
            "/api/v1/2fa/enroll",
            json={"factor_type": "phone", "password": PASSWORD},
            headers=signed_in["headers"],
        )
        assert response.status_code == 422

    def test_phone_enrollment_sends_code(self, client, signed_in, notifier):
        response = client.post(
            "/api/v1/2fa/enroll",
            json={"factor_type": "phone", "password": PASSWORD, "phone": "+14155550100"},
            headers=signed_in["headers"],
        )

        assert response.status_code == 200
        assert response.json()["challenge_id"]
        assert notifier.last_code(NotificationTemplate.SMS_CODE) is not None


class TestActivation:
    """Test the first successful verification of a factor"""

    def test_first_verification_returns_backup_codes(self, enrolled, db_session, user):
        result = enrolled["verify"]

        assert result["aal"] == "aal2"
        assert result["raised_assurance"] is True
        assert len(result["backup_codes"]) == 8
        assert crud_backup.count_unused(db_session, user.id) == 8

    def test_profile_lists_second_factors(self, client, enrolled):
        profile = client.get("/api/v1/auth/me", headers=enrolled["headers"]).json()

        assert profile["two_factor_methods"] == ["authenticator", "backup_codes"]
        assert profile["available_verification_methods"] == ["authenticator", "backup_codes"]

    def test_backup_code_verifies_once(self, client, enrolled):
        code = enrolled["verify"]["backup_codes"][0]
        body = {"method": "backup_codes", "code": code}

        first = client.post("/api/v1/verify", json=body, headers=enrolled["headers"])
        second = client.post("/api/v1/verify", json=body, headers=enrolled["headers"])

        assert first.status_code == 200
        assert first.json()["backup_codes"] is None
        assert second.status_code == 400

    def test_challenge_endpoint_only_for_round_trip_methods(self, client, enrolled):
        ok = client.post(
            "/api/v1/verify/challenge",
            json={"method": "authenticator", "factor_id": enrolled["factor_id"]},
            headers=enrolled["headers"],
        )
        refused = client.post("/api/v1/verify/challenge", json={"method": "password"}, headers=enrolled["headers"])

        assert ok.status_code == 200
        assert ok.json()["challenge_id"]
        assert refused.status_code == 422

    def test_fresh_second_factor_session_can_add_factor(self, client, enrolled):
        response = client.post(
            "/api/v1/2fa/enroll",
            json={"factor_type": "phone", "password": PASSWORD, "phone": "+14155550100"},
            headers=enrolled["headers"],
        )
        assert response.status_code == 200

    def test_password_only_session_cannot_add_factor(self, client, enrolled, user):
        """A stolen password must not be enough to enroll a replacement authenticator"""
        token = client.post(
            "/api/v1/auth/login",
            json={"username": "alice@example.com", "password": PASSWORD}
        ).json()["access_token"]
        headers = auth_headers(token, user_agent=IPHONE_UA, ip="203.0.113.10")
        created = client.post("/api/v1/device-sessions", json={"user_id": str(user.id)}, headers=headers)
        assert created.status_code == 201

        verified = client.post("/api/v1/verify", json={"method": "password", "code": PASSWORD}, headers=headers)
        response = client.post("/api/v1/2fa/enroll", json={"factor_type": "totp", "password": PASSWORD}, headers=headers)

        assert verified.status_code == 400
        assert response.status_code == 403
        detail = response.json()["detail"]
        assert detail["code"] == "STEP_UP_REQUIRED"
        assert [m["type"] for m in detail["available_methods"]] == ["authenticator", "backup_codes"]


class TestDisable:
    """Test POST /2fa/disable"""

    def test_disable_last_factor_removes_backup_codes(self, client, enrolled, db_session, user, notifier):
        response = client.post(
            "/api/v1/2fa/disable",
            json={"factor_id": enrolled["factor_id"]},
            headers=enrolled["headers"],
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "backup_codes_removed": 8}
        assert crud_backup.count_unused(db_session, user.id) == 0
        assert notifier.of_template(NotificationTemplate.TWO_FACTOR_DISABLED)[0]["method"] == "authenticator"

        events = client.get("/api/v1/account/events", headers=enrolled["headers"]).json()
        assert "2FA_DISABLED" in [e["event_type"] for e in events]

    def test_stale_session_needs_step_up(self, client, enrolled, db_session):
        session = db_session.get(DeviceSession, enrolled["session_id"])
        session.last_sensitive_verification_at = utcnow() - timedelta(minutes=6)
        db_session.commit()

        response = client.post(
            "/api/v1/2fa/disable",
            json={"factor_id": enrolled["factor_id"]},
            headers=enrolled["headers"],
        )

        assert response.status_code == 403
        methods = response.json()["detail"]["available_methods"]
        assert methods[0] == {"type": "authenticator", "factor_id": enrolled["factor_id"]}

    def test_unknown_factor_is_404(self, client, enrolled):
        response = client.post(
            "/api/v1/2fa/disable",
            json={"factor_id": "00000000-0000-4000-8000-000000000000"},
            headers=enrolled["headers"],
        )
        assert response.status_code == 404
