"""
Booking API tests: checkout, visibility, staff status changes, extensions.
"""

from conftest import auth_headers
from kosbook.services import booking_service


def _create(client, customer, room, check_in, **extra):
    body = {"room_id": room.id, "lease_type": "MONTHLY", "check_in_date": check_in.isoformat()}
    body.update(extra)
    return client.post("/api/bookings", headers=auth_headers(customer), json=body)


class TestCreateBookingRoute:
    def test_checkout_payload(self, client, db_session, midtrans, customer, room, check_in):
        resp = _create(client, customer, room, check_in, deposit_only=True)
        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["booking"]["status"] == "UNPAID"
        assert data["payment"]["payment_type"] == "DEPOSIT"
        assert data["snap"]["token"] == f"snap-{data['payment']['midtrans_order_id']}"
        assert data["snap"]["client_key"] == "SB-Mid-client-TEST"

    def test_missing_field(self, client, db_session, midtrans, customer, room):
        resp = client.post("/api/bookings", headers=auth_headers(customer), json={"room_id": room.id})
        assert resp.status_code == 400

    def test_unknown_room(self, client, db_session, midtrans, customer, kos, check_in):
        resp = client.post("/api/bookings", headers=auth_headers(customer), json={
            "room_id": 9999, "lease_type": "MONTHLY", "check_in_date": check_in.isoformat(),
        })
        assert resp.status_code == 404

    def test_room_taken_is_conflict(self, client, db_session, midtrans, customer, other_customer, room, check_in):
        assert _create(client, customer, room, check_in).status_code == 201
        resp = _create(client, other_customer, room, check_in)
        assert resp.status_code == 409
        assert resp.get_json()["error"] == "Kamar tidak tersedia"

    def test_gateway_down_is_bad_gateway(self, client, db_session, midtrans, customer, room, check_in):
        midtrans.snap_status = 503
        resp = _create(client, customer, room, check_in)
        assert resp.status_code == 502
        db_session.refresh(room)
        assert room.is_available is True

    def test_staff_cannot_book(self, client, db_session, midtrans, adminkos, room, check_in):
        assert _create(client, adminkos, room, check_in).status_code == 403


class TestVisibility:
    def test_lists_are_scoped(self, client, db_session, midtrans, customer, other_customer,
                              adminkos, other_adminkos, room, room_no_deposit, check_in):
        _create(client, customer, room, check_in)
        _create(client, other_customer, room_no_deposit, check_in)

        mine = client.get("/api/bookings", headers=auth_headers(customer)).get_json()["data"]
        assert mine["total"] == 1

        owner = client.get("/api/bookings", headers=auth_headers(adminkos)).get_json()["data"]
        assert owner["total"] == 2

        stranger = client.get("/api/bookings", headers=auth_headers(other_adminkos)).get_json()["data"]
        assert stranger["total"] == 0

    def test_other_customer_cannot_read_booking(self, client, db_session, midtrans, customer, other_customer, room, check_in):
        booking_id = _create(client, customer, room, check_in).get_json()["data"]["booking"]["id"]
        resp = client.get(f"/api/bookings/{booking_id}", headers=auth_headers(other_customer))
        assert resp.status_code == 403

        resp = client.get(f"/api/bookings/{booking_id}", headers=auth_headers(customer))
        assert resp.status_code == 200
        assert len(resp.get_json()["data"]["payments"]) == 1

    def test_invalid_status_filter(self, client, db_session, customer):
        resp = client.get("/api/bookings?status=ARCHIVED", headers=auth_headers(customer))
        assert resp.status_code == 400


class TestStatusRoute:
    def test_staff_check_in(self, client, db_session, midtrans, customer, receptionist, room_no_deposit, check_in):
        booking, payment = booking_service.create_booking(
            customer, room_id=room_no_deposit.id, lease_type="MONTHLY", check_in_date=check_in,
        )
        booking_service.confirm_payment(payment.midtrans_order_id, "SUCCESS")

        resp = client.patch(f"/api/bookings/{booking.id}/status", headers=auth_headers(receptionist),
                            json={"status": "checked_in"})
        assert resp.status_code == 200
        assert resp.get_json()["data"]["changed"] is True
        assert resp.get_json()["data"]["booking"]["status"] == "CHECKED_IN"

    def test_customer_cannot_change_status(self, client, db_session, midtrans, customer, room, check_in):
        booking_id = _create(client, customer, room, check_in).get_json()["data"]["booking"]["id"]
        resp = client.patch(f"/api/bookings/{booking_id}/status", headers=auth_headers(customer),
                            json={"status": "CONFIRMED"})
        assert resp.status_code == 403

    def test_invalid_transition(self, client, db_session, midtrans, customer, adminkos, room, check_in):
        booking_id = _create(client, customer, room, check_in).get_json()["data"]["booking"]["id"]
        resp = client.patch(f"/api/bookings/{booking_id}/status", headers=auth_headers(adminkos),
                            json={"status": "COMPLETED"})
        assert resp.status_code == 409

    def test_cancel_route(self, client, db_session, midtrans, customer, room, check_in):
        booking_id = _create(client, customer, room, check_in).get_json()["data"]["booking"]["id"]
        resp = client.post(f"/api/bookings/{booking_id}/cancel", headers=auth_headers(customer),
                           json={"reason": "Tidak jadi"})
        assert resp.status_code == 200
        assert resp.get_json()["data"]["booking"]["status"] == "CANCELLED"


class TestPaymentFollowUps:
    def test_full_payment_after_deposit(self, client, db_session, midtrans, customer, room, check_in):
        booking, payment = booking_service.create_booking(
            customer, room_id=room.id, lease_type="MONTHLY", check_in_date=check_in, deposit_only=True,
        )
        booking_service.confirm_payment(payment.midtrans_order_id, "SUCCESS")

        resp = client.post(f"/api/bookings/{booking.id}/full-payment", headers=auth_headers(customer))
        assert resp.status_code == 201
        assert resp.get_json()["data"]["payment"]["amount"] == 1_050_000

    def test_extension_routes(self, client, db_session, midtrans, customer, room_no_deposit, check_in):
        booking, payment = booking_service.create_booking(
            customer, room_id=room_no_deposit.id, lease_type="MONTHLY", check_in_date=check_in,
        )
        booking_service.confirm_payment(payment.midtrans_order_id, "SUCCESS")
        headers = auth_headers(customer)

        info = client.get(f"/api/bookings/{booking.id}/extend", headers=headers).get_json()["data"]
        assert info["eligible"] is True

        resp = client.post(f"/api/bookings/{booking.id}/extend", headers=headers, json={"periods": 3})
        assert resp.status_code == 201
        extension = resp.get_json()["data"]["booking"]
        assert extension["parent_booking_id"] == booking.id
        assert extension["total_amount"] == 6_000_000


class TestDepositFlag:
    def test_string_false_is_full_payment(self, client, db_session, midtrans, customer, room, check_in):
        resp = _create(client, customer, room, check_in, deposit_only="false")
        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["payment"]["payment_type"] == "FULL"
        assert data["payment"]["amount"] == 1_500_000

    def test_string_true_is_deposit(self, client, db_session, midtrans, customer, room, check_in):
        resp = _create(client, customer, room, check_in, deposit_only="TRUE")
        assert resp.get_json()["data"]["payment"]["payment_type"] == "DEPOSIT"

    def test_other_values_rejected(self, client, db_session, midtrans, customer, room, check_in):
        resp = _create(client, customer, room, check_in, deposit_only="yes")
        assert resp.status_code == 400
        db_session.refresh(room)
        assert room.is_available is True


class TestManualBookingRoute:
    def _post(self, client, owner, body):
        return client.post("/api/adminkos/bookings/manual", headers=auth_headers(owner), json=body)

    def _body(self, customer, room, check_in, **extra):
        body = {
            "customer_id": customer.id,
            "room_id": room.id,
            "lease_type": "MONTHLY",
            "check_in_date": check_in.isoformat(),
        }
        body.update(extra)
        return body

    def test_owner_creates_booking(self, client, db_session, midtrans, adminkos, customer, room, check_in):
        resp = self._post(client, adminkos, self._body(customer, room, check_in, deposit_only=True))
        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["booking"]["customer_id"] == customer.id
        assert data["booking"]["status"] == "UNPAID"
        assert data["payment"]["payment_type"] == "DEPOSIT"
        assert data["snap"]["token"] == f"snap-{data['payment']['midtrans_order_id']}"

        mine = client.get("/api/bookings", headers=auth_headers(customer)).get_json()["data"]
        assert mine["total"] == 1

    def test_customer_denied(self, client, db_session, midtrans, customer, other_customer, room, check_in):
        resp = self._post(client, customer, self._body(other_customer, room, check_in))
        assert resp.status_code == 403

    def test_other_owners_room(self, client, db_session, midtrans, other_adminkos, customer, room, check_in):
        resp = self._post(client, other_adminkos, self._body(customer, room, check_in))
        assert resp.status_code == 403
        assert resp.get_json()["error"] == "You can only create bookings for your own properties"

    def test_missing_customer(self, client, db_session, midtrans, adminkos, room, check_in):
        body = {"room_id": room.id, "lease_type": "MONTHLY", "check_in_date": check_in.isoformat()}
        assert self._post(client, adminkos, body).status_code == 400

    def test_unknown_customer(self, client, db_session, midtrans, adminkos, customer, room, check_in):
        resp = self._post(client, adminkos, self._body(customer, room, check_in, customer_id=9999))
        assert resp.status_code == 404

    def test_room_taken(self, client, db_session, midtrans, adminkos, customer, other_customer, room, check_in):
        assert _create(client, customer, room, check_in).status_code == 201
        resp = self._post(client, adminkos, self._body(other_customer, room, check_in))
        assert resp.status_code == 409
