"""
Integration tests for the device session, verification and account event endpoints.

Tests:
- Session creation sets the HTTP-only cookie
- Client updates cannot touch server-owned fields
- Revocation behind step-up, with inline verification
- Device verification by emailed code
- Account event feed
"""

import pytest

from app.core.identity import issue_access_token
from app.crud import user as crud_user
from app.services.notifications import NotificationTemplate

from conftest import IPHONE_UA, PASSWORD, auth_headers


COOKIE = "device_session_id"


@pytest.fixture
def registered(client):
    """A freshly registered account with its first device session open."""
    response = client.post(
        "/api/v1/auth/register",
        json={"email": "alice@example.com", "password": PASSWORD, "full_name": "Alice"}
    )
    assert response.status_code == 201
    data = response.json()
    headers = auth_headers(data["access_token"])

    created = client.post("/api/v1/device-sessions", json={"user_id": data["user"]["id"]}, headers=headers)
    assert created.status_code == 201
    return {"user_id": data["user"]["id"], "headers": headers, "session": created.json()}


class TestCreateSession:
    """Test POST /device-sessions"""

    def test_first_device_is_trusted_and_cookie_set(self, client, registered):
        session = registered["session"]

        assert session["is_trusted"] is True
        assert session["needs_verification"] is False
        assert session["is_current"] is True
        assert client.cookies.get(COOKIE) == session["id"]

    def test_cookie_is_http_only(self, client, user):
        response = client.post(
            "/api/v1/device-sessions",
            json={"user_id": str(user.id)},
            headers=auth_headers(issue_access_token(user)),
        )

        set_cookie = response.headers["set-cookie"].lower()
        assert "httponly" in set_cookie
        assert "samesite=lax" in set_cookie

    def test_unknown_device_needs_verification(self, client, registered):
        """A second device on a password login is not trusted"""
        token = client.post(
            "/api/v1/auth/login",
            json={"username": "alice@example.com", "password": PASSWORD}
        ).json()["access_token"]

        response = client.post(
            "/api/v1/device-sessions",
            json={"user_id": registered["user_id"]},
            headers=auth_headers(token, user_agent=IPHONE_UA, ip="203.0.113.10"),
        )

        assert response.status_code == 201
        assert response.json()["is_trusted"] is False
        assert response.json()["needs_verification"] is True

    def test_cannot_create_for_someone_else(self, client, user, make_user):
        bob = make_user("bob@example.com")

        response = client.post(
            "/api/v1/device-sessions",
            json={"user_id": str(bob.id)},
            headers=auth_headers(issue_access_token(user)),
        )

        assert response.status_code == 403

    def test_requires_authentication(self, client, user):
        response = client.post("/api/v1/device-sessions", json={"user_id": str(user.id)})
        assert response.status_code == 401


class TestReadSessions:
    """Test listing and the current session"""

    def test_current(self, client, registered):
        response = client.get("/api/v1/device-sessions/current", headers=registered["headers"])

        assert response.status_code == 200
        assert response.json()["id"] == registered["session"]["id"]

    def test_current_without_cookie_is_404(self, client, registered):
        client.cookies.clear()

        response = client.get("/api/v1/device-sessions/current", headers=registered["headers"])

        assert response.status_code == 404

    def test_list_marks_current(self, client, registered):
        response = client.get("/api/v1/device-sessions", headers=registered["headers"])

        assert response.status_code == 200
        assert [(s["id"], s["is_current"]) for s in response.json()] == [(registered["session"]["id"], True)]

    def test_list_rejects_unknown_order(self, client, registered):
        response = client.get("/api/v1/device-sessions?order_by=is_trusted", headers=registered["headers"])
        assert response.status_code == 422

    def test_trusted(self, client, registered):
        response = client.get("/api/v1/device-sessions/trusted", headers=registered["headers"])
        assert [s["id"] for s in response.json()] == [registered["session"]["id"]]


class TestUpdateSession:
    """Test PATCH /device-sessions/{id}"""

    def test_server_owned_field_is_forbidden(self, client, registered):
        session_id = registered["session"]["id"]

        response = client.patch(
            f"/api/v1/device-sessions/{session_id}",
            json={"needs_verification": False, "is_trusted": True},
            headers=registered["headers"],
        )

        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "UNAUTHORIZED"

    def test_last_active_is_accepted(self, client, registered):
        session_id = registered["session"]["id"]

        response = client.patch(
            f"/api/v1/device-sessions/{session_id}",
            json={"last_active": "2020-01-01T00:00:00Z"},
            headers=registered["headers"],
        )

        assert response.status_code == 200
        assert response.json()["last_active"].startswith("2020-01-01")


class TestRevoke:
    """Test revocation behind step-up"""

    @pytest.fixture
    def other_session(self, user_for_registered, make_session):
        return make_session(user_for_registered)

    @pytest.fixture
    def user_for_registered(self, registered, db_session):
        return crud_user.get_user_by_email(db_session, "alice@example.com")

    def test_revoke_requires_step_up(self, client, registered, other_session):
        response = client.delete(f"/api/v1/device-sessions/{other_session.id}", headers=registered["headers"])

        assert response.status_code == 403
        detail = response.json()["detail"]
        assert detail["code"] == "STEP_UP_REQUIRED"
        assert detail["requires_verification"] is True
        assert [m["type"] for m in detail["available_methods"]] == ["password"]

    def test_revoke_with_inline_password(self, client, registered, other_session):
        response = client.request(
            "DELETE",
            f"/api/v1/device-sessions/{other_session.id}",
            json={"method": "password", "code": PASSWORD},
            headers=registered["headers"],
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "revoked": True, "logged_out": False}

    def test_revoke_after_verify_then_again(self, client, registered, other_session):
        verified = client.post(
            "/api/v1/verify",
            json={"method": "password", "code": PASSWORD},
            headers=registered["headers"],
        )
        assert verified.status_code == 200
        assert verified.json()["aal"] == "aal1"

        url = f"/api/v1/device-sessions/{other_session.id}"

        first = client.delete(url, headers=registered["headers"])
        second = client.delete(url, headers=registered["headers"])

        assert first.json()["revoked"] is True
        assert second.status_code == 200
        assert second.json()["revoked"] is False

    def test_wrong_inline_password(self, client, registered, other_session):
        response = client.request(
            "DELETE",
            f"/api/v1/device-sessions/{other_session.id}",
            json={"method": "password", "code": "WrongPass123"},
            headers=registered["headers"],
        )

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_CODE"

    def test_revoke_own_session_logs_out(self, client, registered):
        session_id = registered["session"]["id"]
        client.post("/api/v1/verify", json={"method": "password", "code": PASSWORD}, headers=registered["headers"])

        response = client.delete(f"/api/v1/device-sessions/{session_id}", headers=registered["headers"])

        assert response.json()["logged_out"] is True
        assert client.cookies.get(COOKIE) is None
        assert client.get("/api/v1/auth/me", headers=registered["headers"]).status_code == 401

    def test_revoke_all_needs_explicit_flag(self, client, registered):
        response = client.delete("/api/v1/device-sessions", headers=registered["headers"])
        assert response.status_code == 400

    def test_revoke_all(self, client, registered, user_for_registered, make_session, notifier):
        make_session(user_for_registered)
        client.post("/api/v1/verify", json={"method": "password", "code": PASSWORD}, headers=registered["headers"])

        response = client.delete("/api/v1/device-sessions?revoke_all=true", headers=registered["headers"])

        assert response.status_code == 200
        assert response.json() == {"success": True, "revoked_count": 1}
        assert notifier.of_template(NotificationTemplate.DEVICES_REVOKED)[0]["count"] == 1


class TestDeviceVerification:
    """Test verifying an unknown device by emailed code"""

    @pytest.fixture
    def unknown_device(self, client, registered):
        token = client.post(
            "/api/v1/auth/login",
            json={"username": "alice@example.com", "password": PASSWORD}
        ).json()["access_token"]
        headers = auth_headers(token, user_agent=IPHONE_UA, ip="203.0.113.10")
        client.post("/api/v1/device-sessions", json={"user_id": registered["user_id"]}, headers=headers)
        return headers

    def test_send_and_verify_code(self, client, unknown_device, notifier):
        sent = client.post("/api/v1/verify-device/send-code", headers=unknown_device)
        assert sent.status_code == 200
        assert sent.json()["expires_in_minutes"] == 10

        code = notifier.last_code(NotificationTemplate.EMAIL_VERIFICATION_CODE)
        response = client.post("/api/v1/verify-device", json={"code": code}, headers=unknown_device)

        assert response.status_code == 200
        assert response.json() == {"success": True, "is_trusted": True, "needs_verification": False}
        current = client.get("/api/v1/device-sessions/current", headers=unknown_device).json()
        assert current["is_trusted"] is True
        assert current["last_sensitive_verification_at"] is None

    def test_wrong_code(self, client, unknown_device):
        client.post("/api/v1/verify-device/send-code", headers=unknown_device)

        response = client.post("/api/v1/verify-device", json={"code": "000000"}, headers=unknown_device)

        assert response.status_code == 400

    def test_already_verified_device(self, client, registered):
        response = client.post("/api/v1/verify-device/send-code", headers=registered["headers"])
        assert response.status_code == 400

    def test_non_numeric_code_is_rejected(self, client, unknown_device):
        response = client.post("/api/v1/verify-device", json={"code": "abcdef"}, headers=unknown_device)
        assert response.status_code == 422


class TestAccountEvents:
    """Test the account event feed"""

    def test_events_newest_first(self, client, registered):
        response = client.get("/api/v1/account/events", headers=registered["headers"])

        assert response.status_code == 200
        event_types = [e["event_type"] for e in response.json()]
        assert "ACCOUNT_CREATED" in event_types
        assert "DEVICE_TRUSTED_AUTO" in event_types
        assert "NEW_DEVICE_LOGIN" in event_types

    def test_limit_is_bounded(self, client, registered):
        response = client.get("/api/v1/account/events?limit=500", headers=registered["headers"])
        assert response.status_code == 422
