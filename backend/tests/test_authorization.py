"""
Authorization tests.

Verifies:
- Unauthenticated requests return 401
- Roles are denied operations outside their seat (403)
- Login / logout / me lifecycle
"""

import pytest

from conftest import auth_headers


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("GET", "/api/bookings"),
            ("POST", "/api/bookings"),
            ("GET", "/api/bookings/1"),
            ("PATCH", "/api/bookings/1/status"),
            ("POST", "/api/bookings/1/cancel"),
            ("POST", "/api/payments/confirm-client"),
            ("GET", "/api/payments/status"),
            ("GET", "/api/payments/refresh-status"),
            ("GET", "/api/adminkos/ledger/balance"),
            ("GET", "/api/adminkos/ledger/entries"),
            ("GET", "/api/adminkos/payouts"),
            ("POST", "/api/adminkos/bookings/manual"),
            ("GET", "/api/superadmin/payouts"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token(self, client, db_session):
        resp = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-real-token"})
        assert resp.status_code == 401

    def test_public_endpoints(self, client, db_session):
        assert client.get("/api/payments/config").status_code == 200
        assert client.get("/api/midtrans/notify").status_code == 200


# =============================================================================
# ROLE CHECKS (403)
# =============================================================================


class TestRoleDenied:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/adminkos/ledger/balance"),
            ("GET", "/api/adminkos/payouts"),
            ("GET", "/api/superadmin/payouts"),
            ("PATCH", "/api/bookings/1/status"),
        ],
    )
    def test_customer_denied(self, client, customer, method, path):
        resp = getattr(client, method.lower())(path, headers=auth_headers(customer), json={})
        assert resp.status_code == 403

    def test_adminkos_cannot_use_superadmin(self, client, adminkos):
        resp = client.get("/api/superadmin/bank-accounts", headers=auth_headers(adminkos))
        assert resp.status_code == 403
        assert resp.get_json()["required_roles"] == ["SUPERADMIN"]

    def test_receptionist_cannot_read_ledger(self, client, receptionist):
        resp = client.get("/api/adminkos/ledger/balance", headers=auth_headers(receptionist))
        assert resp.status_code == 403

    def test_superadmin_sees_payouts(self, client, superadmin):
        resp = client.get("/api/superadmin/payouts", headers=auth_headers(superadmin))
        assert resp.status_code == 200


# =============================================================================
# SESSION LIFECYCLE
# =============================================================================


class TestSessionLifecycle:
    def test_login_me_logout(self, client, customer):
        resp = client.post("/api/auth/login", json={"email": "Customer@kos.test", "password": "Password123!"})
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["user"]["role"] == "CUSTOMER"
        assert "password_hash" not in data["user"]
        headers = {"Authorization": f"Bearer {data['token']}"}

        me = client.get("/api/auth/me", headers=headers)
        assert me.status_code == 200
        assert me.get_json()["data"]["user"]["id"] == customer.id

        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401
        assert client.post("/api/auth/logout", headers=headers).status_code == 401

    def test_wrong_password(self, client, customer):
        resp = client.post("/api/auth/login", json={"email": "customer@kos.test", "password": "Wrong123!"})
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Invalid credentials"

    def test_missing_credentials(self, client, db_session):
        assert client.post("/api/auth/login", json={"email": "x@kos.test"}).status_code == 400

    def test_deactivated_user_token_is_rejected(self, client, db_session, customer):
        headers = auth_headers(customer)
        customer.is_active = False
        db_session.commit()
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_logout_without_header(self, client, db_session):
        assert client.post("/api/auth/logout").status_code == 401
