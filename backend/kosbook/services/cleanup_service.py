# Overview: Service-layer sweep that expires overdue payments and removes abandoned unpaid bookings.

"""
Booking Cleanup Job

Runs from cron (GET /api/cron/cleanup-expired) or the CLI
(flask bookings cleanup-expired). One transaction:

1. PENDING payments with expiry_time < now      -> EXPIRED
2. UNPAID bookings that have an EXPIRED payment, or have no payment and
   were created before now - grace              -> selected
3. selected bookings (and their payments)       -> deleted
4. their rooms                                  -> released
5. Property.available_rooms                     -> recounted

A booking whose payment is still PENDING and unexpired is never selected,
however old it is. Running the job twice deletes nothing the second time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import exists

from ..extensions import db
from ..models import Booking, Payment
from ..models.booking import BOOKING_UNPAID, PAYMENT_EXPIRED
from ..validation import ValidationError
from . import booking_service, payment_service
from kosbook.time_utils import utcnow, to_utc_z


DEFAULT_GRACE_MINUTES = 30


@dataclass
class CleanupReport:
    executed_at: datetime
    grace_minutes: int
    expired_payments_count: int = 0
    deleted_booking_ids: list[int] = field(default_factory=list)

    @property
    def deleted_bookings_count(self) -> int:
        return len(self.deleted_booking_ids)

    def to_dict(self) -> dict:
        return {
            "executedAt": to_utc_z(self.executed_at),
            "graceMinutes": self.grace_minutes,
            "expiredPaymentsCount": self.expired_payments_count,
            "deletedBookingsCount": self.deleted_bookings_count,
            "deletedBookingIds": list(self.deleted_booking_ids),
        }


def parse_grace_minutes(raw) -> int:
    """
    BOOKING_UNPAID_GRACE_MINUTES as a non-negative integer.

    None / "" fall back to DEFAULT_GRACE_MINUTES.
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return DEFAULT_GRACE_MINUTES
    if isinstance(raw, bool):
        raise ValidationError("BOOKING_UNPAID_GRACE_MINUTES must be a non-negative integer")
    try:
        value = int(str(raw).strip())
    except ValueError:
        raise ValidationError("BOOKING_UNPAID_GRACE_MINUTES must be a non-negative integer")
    if value < 0:
        raise ValidationError("BOOKING_UNPAID_GRACE_MINUTES must be a non-negative integer")
    return value


def _stale_unpaid_bookings(now: datetime, grace_minutes: int) -> list[Booking]:
    cutoff = now - timedelta(minutes=grace_minutes)
    has_expired_payment = exists().where(
        Payment.booking_id == Booking.id,
        Payment.status == PAYMENT_EXPIRED,
    )
    has_any_payment = exists().where(Payment.booking_id == Booking.id)

    return (
        db.session.query(Booking)
        .filter(Booking.status == BOOKING_UNPAID)
        .filter(
            has_expired_payment
            | (~has_any_payment & (Booking.created_at < cutoff))
        )
        .order_by(Booking.id.asc())
        .all()
    )


def cleanup_expired_bookings(grace_minutes: int = DEFAULT_GRACE_MINUTES, now: datetime | None = None) -> CleanupReport:
    """Run the sweep in a single transaction and return what it did."""
    if not isinstance(grace_minutes, int) or isinstance(grace_minutes, bool) or grace_minutes < 0:
        raise ValidationError("grace_minutes must be a non-negative integer")

    now = now or utcnow()
    report = CleanupReport(executed_at=now, grace_minutes=grace_minutes)

    try:
        expired = payment_service.expire_overdue_payments(now)
        report.expired_payments_count = len(expired)

        stale = _stale_unpaid_bookings(now, grace_minutes)
        deleted_ids = [b.id for b in stale]
        room_ids = sorted({b.room_id for b in stale})

        for booking in stale:
            db.session.delete(booking)
        db.session.flush()

        for room_id in room_ids:
            booking_service.release_room(room_id, exclude_booking_ids=deleted_ids)

        report.deleted_booking_ids = deleted_ids
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Cleanup: %s payments expired, %s bookings deleted %s",
        report.expired_payments_count, report.deleted_bookings_count, report.deleted_booking_ids,
    )
    return report
