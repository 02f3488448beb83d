"""
Authentication tests.

Verifies:
- Login issues a bearer token; logout revokes it
- Password strength rules and password change
- Only admins can create staff logins
"""

import pytest

from zors.services.auth_service import PasswordValidationError, validate_password_strength
from zors.services import session_service

PASSWORD = "Password123!"


def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


# =============================================================================
# PASSWORD RULES
# =============================================================================


class TestPasswordStrength:

    @pytest.mark.parametrize(
        "password",
        ["Short1!", "alllower1!", "ALLUPPER1!", "NoDigits!!", "NoSpecial12"],
    )
    def test_weak_passwords_rejected(self, password):
        with pytest.raises(PasswordValidationError):
            validate_password_strength(password)

    def test_strong_password_accepted(self):
        validate_password_strength(PASSWORD)


# =============================================================================
# LOGIN / LOGOUT
# =============================================================================


class TestLogin:

    def test_login_by_username(self, client, cashier_user):
        resp = client.post("/api/auth/login", json={"username": "cashier", "password": PASSWORD})

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["user"]["role"] == "cashier"
        assert body["token"]
        assert body["expires_at"].endswith("Z")

        me = client.get("/api/auth/me", headers=auth_headers(body["token"]))
        assert me.status_code == 200
        assert me.get_json()["user"]["username"] == "cashier"

    def test_login_by_email(self, client, cashier_user):
        resp = client.post("/api/auth/login", json={"email": "cashier@zors.test", "password": PASSWORD})
        assert resp.status_code == 200

    def test_wrong_password(self, client, cashier_user):
        resp = client.post("/api/auth/login", json={"username": "cashier", "password": "Wrong123!"})
        assert resp.status_code == 401

    def test_inactive_user(self, client, db_session, cashier_user):
        cashier_user.is_active = False
        db_session.commit()

        resp = client.post("/api/auth/login", json={"username": "cashier", "password": PASSWORD})
        assert resp.status_code == 401

    def test_missing_credentials(self, client, db_session):
        resp = client.post("/api/auth/login", json={"username": "cashier"})
        assert resp.status_code == 400

    def test_logout_revokes_token(self, client, cashier_headers):
        resp = client.post("/api/auth/logout", headers=cashier_headers)
        assert resp.status_code == 200

        assert client.get("/api/auth/me", headers=cashier_headers).status_code == 401


class TestTokenChecks:

    def test_missing_header(self, client, db_session):
        assert client.get("/api/auth/me").status_code == 401

    def test_garbage_token(self, client, db_session):
        assert client.get("/api/auth/me", headers=auth_headers("nope")).status_code == 401

    def test_non_bearer_scheme(self, client, cashier_token):
        resp = client.get("/api/auth/me", headers={"Authorization": f"Basic {cashier_token}"})
        assert resp.status_code == 401

    def test_deactivated_user_token_rejected(self, client, db_session, cashier_user, cashier_headers):
        cashier_user.is_active = False
        db_session.commit()

        assert client.get("/api/auth/me", headers=cashier_headers).status_code == 401


# =============================================================================
# PASSWORD CHANGE
# =============================================================================


class TestChangePassword:

    def test_change_revokes_other_sessions(self, client, cashier_user, cashier_headers):
        _, other_token = session_service.create_session(cashier_user.id)

        resp = client.post(
            "/api/auth/change-password",
            json={"old_password": PASSWORD, "new_password": "NewPassword456!"},
            headers=cashier_headers,
        )

        assert resp.status_code == 200
        assert resp.get_json()["revoked_sessions"] == 1
        assert client.get("/api/auth/me", headers=cashier_headers).status_code == 200
        assert client.get("/api/auth/me", headers=auth_headers(other_token)).status_code == 401

        login = client.post("/api/auth/login", json={"username": "cashier", "password": "NewPassword456!"})
        assert login.status_code == 200

    def test_wrong_old_password(self, client, cashier_headers):
        resp = client.post(
            "/api/auth/change-password",
            json={"old_password": "Wrong123!", "new_password": "NewPassword456!"},
            headers=cashier_headers,
        )
        assert resp.status_code == 400

    def test_weak_new_password(self, client, cashier_headers):
        resp = client.post(
            "/api/auth/change-password",
            json={"old_password": PASSWORD, "new_password": "weak"},
            headers=cashier_headers,
        )
        assert resp.status_code == 400


# =============================================================================
# STAFF LOGINS
# =============================================================================


class TestRegister:

    def _body(self, **overrides):
        body = {
            "username": "newbie",
            "email": "newbie@zors.test",
            "password": "Password789!",
            "role": "cashier",
        }
        body.update(overrides)
        return body

    def test_admin_creates_user(self, client, admin_headers):
        resp = client.post("/api/auth/register", json=self._body(), headers=admin_headers)

        assert resp.status_code == 201
        assert resp.get_json()["user"]["username"] == "newbie"

    def test_duplicate_username(self, client, admin_headers):
        client.post("/api/auth/register", json=self._body(), headers=admin_headers)

        resp = client.post(
            "/api/auth/register",
            json=self._body(email="other@zors.test"),
            headers=admin_headers,
        )
        assert resp.status_code == 409

    def test_unknown_role(self, client, admin_headers):
        resp = client.post("/api/auth/register", json=self._body(role="owner"), headers=admin_headers)
        assert resp.status_code == 400

    def test_weak_password(self, client, admin_headers):
        resp = client.post("/api/auth/register", json=self._body(password="abc"), headers=admin_headers)
        assert resp.status_code == 400

    @pytest.mark.parametrize("headers_fixture", ["manager_headers", "cashier_headers"])
    def test_non_admin_denied(self, client, request, headers_fixture):
        headers = request.getfixturevalue(headers_fixture)

        resp = client.post("/api/auth/register", json=self._body(), headers=headers)

        assert resp.status_code == 403
        assert resp.get_json()["required_roles"] == ["admin"]
