"""
Payment route tests: client confirmation, status lookups, gateway refresh.
"""

import pytest

from conftest import auth_headers
from kosbook.models import LedgerEntry
from kosbook.services import booking_service


@pytest.fixture
def deposit_booking(db_session, midtrans, customer, room, check_in):
    return booking_service.create_booking(
        customer, room_id=room.id, lease_type="MONTHLY", check_in_date=check_in, deposit_only=True,
    )


def _gateway_calls(midtrans):
    return [r for r in midtrans.requests if r.url.path.startswith("/v2/")]


class TestConfirmClient:
    def test_pending_callback_does_not_hit_gateway(self, client, midtrans, customer, deposit_booking):
        _, payment = deposit_booking
        resp = client.post("/api/payments/confirm-client", headers=auth_headers(customer), json={
            "orderId": payment.midtrans_order_id,
            "transactionStatus": "pending",
        })
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["status"] == "pending"
        assert data["paymentStatus"] == "PENDING"
        assert _gateway_calls(midtrans) == []

    def test_settlement_is_verified_with_gateway(self, client, db_session, midtrans, customer, deposit_booking):
        booking, payment = deposit_booking
        midtrans.settle(payment.midtrans_order_id, payment.amount)

        resp = client.post("/api/payments/confirm-client", headers=auth_headers(customer), json={
            "orderId": payment.midtrans_order_id,
            "transactionStatus": "settlement",
        })
        data = resp.get_json()["data"]
        assert data["status"] == "processed"
        assert data["paymentStatus"] == "SUCCESS"
        assert data["bookingStatus"] == "DEPOSIT_PAID"
        assert db_session.query(LedgerEntry).filter_by(ref_type="PAYMENT").count() == 1

    def test_browser_claim_not_backed_by_gateway(self, client, midtrans, customer, deposit_booking):
        _, payment = deposit_booking
        midtrans.settle(payment.midtrans_order_id, payment.amount, transaction_status="pending")

        resp = client.post("/api/payments/confirm-client", headers=auth_headers(customer), json={
            "orderId": payment.midtrans_order_id,
            "transactionStatus": "settlement",
        })
        data = resp.get_json()["data"]
        assert data["status"] == "unchanged"
        assert data["paymentStatus"] == "PENDING"
        assert data["bookingStatus"] == "UNPAID"

    def test_missing_fields(self, client, db_session, customer):
        resp = client.post("/api/payments/confirm-client", headers=auth_headers(customer), json={})
        assert resp.status_code == 400

    def test_other_customer_is_forbidden(self, client, midtrans, other_customer, deposit_booking):
        _, payment = deposit_booking
        resp = client.post("/api/payments/confirm-client", headers=auth_headers(other_customer), json={
            "orderId": payment.midtrans_order_id,
            "transactionStatus": "settlement",
        })
        assert resp.status_code == 403


class TestStatus:
    def test_customer_reads_own_payment(self, client, customer, deposit_booking):
        booking, payment = deposit_booking
        resp = client.get(
            "/api/payments/status", headers=auth_headers(customer),
            query_string={"orderId": payment.midtrans_order_id},
        )
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["payment"]["id"] == payment.id
        assert data["booking"]["id"] == booking.id

    def test_owner_reads_payment_for_their_property(self, client, adminkos, deposit_booking):
        _, payment = deposit_booking
        resp = client.get(
            "/api/payments/status", headers=auth_headers(adminkos),
            query_string={"orderId": payment.midtrans_order_id},
        )
        assert resp.status_code == 200

    def test_order_id_required(self, client, db_session, customer):
        resp = client.get("/api/payments/status", headers=auth_headers(customer))
        assert resp.status_code == 400

    def test_unknown_order(self, client, db_session, customer):
        resp = client.get("/api/payments/status?orderId=DEP-1-NOPE", headers=auth_headers(customer))
        assert resp.status_code == 404


class TestRefreshStatus:
    def test_refresh_applies_gateway_status(self, client, db_session, midtrans, customer, deposit_booking):
        _, payment = deposit_booking
        midtrans.settle(payment.midtrans_order_id, payment.amount)

        resp = client.post("/api/payments/refresh-status", headers=auth_headers(customer),
                           json={"orderId": payment.midtrans_order_id})
        data = resp.get_json()["data"]
        assert data["previousStatus"] == "PENDING"
        assert data["currentStatus"] == "SUCCESS"
        assert data["bookingStatus"] == "DEPOSIT_PAID"
        assert data["updated"] is True

    def test_settled_payment_is_not_requeried(self, client, midtrans, customer, deposit_booking):
        _, payment = deposit_booking
        booking_service.confirm_payment(payment.midtrans_order_id, "SUCCESS")

        resp = client.get("/api/payments/refresh-status", headers=auth_headers(customer),
                          query_string={"orderId": payment.midtrans_order_id})
        assert resp.get_json()["data"]["updated"] is False
        assert _gateway_calls(midtrans) == []

    def test_unknown_at_gateway(self, client, midtrans, customer, deposit_booking):
        _, payment = deposit_booking
        resp = client.get("/api/payments/refresh-status", headers=auth_headers(customer),
                          query_string={"orderId": payment.midtrans_order_id})
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "Transaksi tidak ditemukan di Midtrans"

    def test_gateway_expire(self, client, db_session, midtrans, customer, room, deposit_booking):
        booking, payment = deposit_booking
        midtrans.settle(payment.midtrans_order_id, payment.amount, transaction_status="expire", status_code="407")

        resp = client.get("/api/payments/refresh-status", headers=auth_headers(customer),
                          query_string={"orderId": payment.midtrans_order_id})
        data = resp.get_json()["data"]
        assert data["currentStatus"] == "EXPIRED"
        assert data["bookingStatus"] == "EXPIRED"
        db_session.refresh(room)
        assert room.is_available is True


def test_public_config(client):
    resp = client.get("/api/payments/config")
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["client_key"] == "SB-Mid-client-TEST"
    assert data["snap_script_url"] == "https://app.sandbox.midtrans.com/snap/snap.js"
    assert data["is_production"] is False
