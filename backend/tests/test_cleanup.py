"""
Booking cleanup job tests.

Verifies:
- Overdue PENDING payments expire and their UNPAID bookings are deleted
- Rooms are released and property availability recounted
- Open checkouts, paid bookings and fresh bookings are left alone
- A second run deletes nothing
"""

from datetime import timedelta

import pytest

from kosbook.models import Booking, Payment, Property, Room
from kosbook.services import booking_service, cleanup_service
from kosbook.services.cleanup_service import DEFAULT_GRACE_MINUTES, parse_grace_minutes
from kosbook.time_utils import utcnow
from kosbook.validation import ValidationError


def _deposit_booking(customer, room, check_in):
    return booking_service.create_booking(
        customer, room_id=room.id, lease_type="MONTHLY", check_in_date=check_in, deposit_only=True,
    )


def _bare_booking(db_session, customer, room, check_in, created_at):
    """An UNPAID booking whose checkout was never opened."""
    booking = Booking(
        booking_code=f"BK-BARE-{room.id}-{created_at:%H%M%S}",
        customer_id=customer.id,
        property_id=room.property_id,
        room_id=room.id,
        lease_type="MONTHLY",
        check_in_date=check_in,
        check_out_date=check_in + timedelta(days=30),
        total_amount=room.monthly_price,
        created_at=created_at,
    )
    room.is_available = False
    db_session.add(booking)
    db_session.commit()
    return booking


class TestCleanup:
    def test_expired_checkout_is_removed_and_room_released(self, db_session, midtrans, customer, room, kos, check_in):
        booking, payment = _deposit_booking(customer, room, check_in)
        booking_id, payment_id = booking.id, payment.id
        later = payment.expiry_time + timedelta(minutes=5)

        report = cleanup_service.cleanup_expired_bookings(30, now=later)

        assert report.expired_payments_count == 1
        assert report.deleted_booking_ids == [booking_id]
        assert db_session.get(Booking, booking_id) is None
        assert db_session.get(Payment, payment_id) is None

        db_session.expire_all()
        assert db_session.get(Room, room.id).is_available is True
        assert db_session.get(Property, kos.id).available_rooms == 2

    def test_second_run_deletes_nothing(self, db_session, midtrans, customer, room, check_in):
        _, payment = _deposit_booking(customer, room, check_in)
        later = payment.expiry_time + timedelta(minutes=5)

        cleanup_service.cleanup_expired_bookings(30, now=later)
        again = cleanup_service.cleanup_expired_bookings(30, now=later)

        assert again.expired_payments_count == 0
        assert again.deleted_bookings_count == 0

    def test_open_checkout_is_kept_however_old(self, db_session, midtrans, customer, room, check_in):
        booking, payment = _deposit_booking(customer, room, check_in)
        before_expiry = payment.expiry_time - timedelta(minutes=1)

        report = cleanup_service.cleanup_expired_bookings(0, now=before_expiry)

        assert report.deleted_bookings_count == 0
        db_session.refresh(payment)
        assert payment.status == "PENDING"
        assert db_session.get(Booking, booking.id).status == "UNPAID"

    def test_paid_booking_is_kept(self, db_session, midtrans, customer, room, check_in):
        booking, payment = _deposit_booking(customer, room, check_in)
        booking_service.confirm_payment(payment.midtrans_order_id, "SUCCESS")

        report = cleanup_service.cleanup_expired_bookings(30, now=utcnow() + timedelta(days=3))

        assert report.deleted_bookings_count == 0
        assert db_session.get(Booking, booking.id).status == "DEPOSIT_PAID"
        db_session.refresh(payment)
        assert payment.status == "SUCCESS"

    def test_booking_without_payment_respects_grace(self, db_session, customer, room, check_in):
        now = utcnow()
        stale = _bare_booking(db_session, customer, room, check_in, created_at=now - timedelta(minutes=45))
        stale_id = stale.id

        report = cleanup_service.cleanup_expired_bookings(60, now=now)
        assert report.deleted_bookings_count == 0

        report = cleanup_service.cleanup_expired_bookings(30, now=now)
        assert report.deleted_booking_ids == [stale_id]
        db_session.expire_all()
        assert db_session.get(Room, room.id).is_available is True

    def test_room_held_by_another_booking_stays_locked(self, db_session, midtrans, customer, other_customer, room, check_in):
        # A paid booking still holds the room; a stray unpaid one on the same room goes away.
        booking, payment = _deposit_booking(customer, room, check_in)
        booking_service.confirm_payment(payment.midtrans_order_id, "SUCCESS")
        now = utcnow()
        stray = _bare_booking(db_session, other_customer, room, check_in + timedelta(days=90),
                              created_at=now - timedelta(hours=2))

        report = cleanup_service.cleanup_expired_bookings(30, now=now)

        assert report.deleted_booking_ids == [stray.id]
        db_session.expire_all()
        assert db_session.get(Room, room.id).is_available is False

    def test_report_shape(self, db_session):
        report = cleanup_service.cleanup_expired_bookings(15)
        data = report.to_dict()
        assert data["graceMinutes"] == 15
        assert data["executedAt"].endswith("Z")
        assert data["deletedBookingIds"] == []

    def test_negative_grace_rejected(self, db_session):
        with pytest.raises(ValidationError):
            cleanup_service.cleanup_expired_bookings(-1)


class TestParseGraceMinutes:
    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_default(self, raw):
        assert parse_grace_minutes(raw) == DEFAULT_GRACE_MINUTES

    @pytest.mark.parametrize("raw,expected", [("0", 0), ("45", 45), (" 10 ", 10), (90, 90)])
    def test_valid(self, raw, expected):
        assert parse_grace_minutes(raw) == expected

    @pytest.mark.parametrize("raw", ["-5", "abc", "1.5", True])
    def test_invalid(self, raw):
        with pytest.raises(ValidationError):
            parse_grace_minutes(raw)
