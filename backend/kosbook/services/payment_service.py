# Overview: Service-layer operations for payment records; encapsulates business logic and database work.

"""
Payment Record Store

WHY: Every attempt to pay for a booking is one Payment row keyed by its
Midtrans order id. The gateway settles against that id, so it is also the
idempotency key for notifications.

DESIGN:
- Records are created inside the booking transaction (flush only) and the
  Snap token is requested after commit, so a gateway outage never rolls back
  a booking silently
- DEPOSIT checkouts stay open 24h, FULL checkouts 1h
- Status changes driven by the gateway live in booking_service.confirm_payment
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta

from flask import current_app

from ..extensions import db
from ..models import Booking, Payment, User
from ..models.auth import ROLE_SUPERADMIN
from ..models.booking import (
    PAYMENT_PENDING,
    PAYMENT_EXPIRED,
    PAYMENT_SUCCESS,
    PAYMENT_TYPE_DEPOSIT,
    PAYMENT_TYPE_FULL,
)
from ..validation import DomainError, ForbiddenError, NotFoundError, enforce_amount
from . import midtrans_client
from .concurrency import lock_for_update
from kosbook.time_utils import base36, epoch_millis, format_wib, utcnow


VALID_PAYMENT_TYPES = {PAYMENT_TYPE_DEPOSIT, PAYMENT_TYPE_FULL}

PAYMENT_EXPIRY_HOURS = {
    PAYMENT_TYPE_DEPOSIT: 24,
    PAYMENT_TYPE_FULL: 1,
}

# Midtrans rejects item names longer than 50 characters
MAX_ITEM_NAME_LENGTH = 50


class PaymentError(DomainError):
    """Raised when a payment operation fails validation."""
    pass


def generate_order_id(booking_id: int, payment_type: str, now: datetime | None = None) -> str:
    """DEP-/FULL- prefix, booking id, base36 millisecond clock and a short random tail."""
    prefix = "DEP" if payment_type == PAYMENT_TYPE_DEPOSIT else "FULL"
    tail = base36(secrets.randbelow(36 ** 3)).rjust(3, "0")
    return f"{prefix}-{booking_id}-{base36(epoch_millis(now))}{tail}".upper()


def payment_expiry(payment_type: str, now: datetime | None = None) -> datetime:
    now = now or utcnow()
    return now + timedelta(hours=PAYMENT_EXPIRY_HOURS[payment_type])


def create_payment_record(
    booking: Booking,
    *,
    payment_type: str,
    amount: int,
    user_id: int,
    now: datetime | None = None,
    expiry_hours: int | None = None,
) -> Payment:
    """
    Insert a PENDING payment for a booking. Flushes only; the caller commits.

    expiry_hours overrides the checkout window of the payment type.
    """
    if payment_type not in VALID_PAYMENT_TYPES:
        raise PaymentError(f"Invalid payment type: {payment_type}")
    enforce_amount(amount)

    now = now or utcnow()
    payment = Payment(
        booking_id=booking.id,
        user_id=user_id,
        midtrans_order_id=generate_order_id(booking.id, payment_type, now),
        amount=amount,
        status=PAYMENT_PENDING,
        payment_type=payment_type,
        expiry_time=(
            now + timedelta(hours=expiry_hours) if expiry_hours else payment_expiry(payment_type, now)
        ),
        created_at=now,
    )
    db.session.add(payment)
    db.session.flush()
    return payment


def build_snap_params(payment: Payment) -> dict:
    booking = payment.booking
    room = booking.room
    customer = booking.customer

    label = "Deposit" if payment.payment_type == PAYMENT_TYPE_DEPOSIT else "Full Payment"
    item_name = f"{label} - {room.room_type} {room.room_number}"[:MAX_ITEM_NAME_LENGTH]
    created = payment.created_at
    window_hours = max(1, int((payment.expiry_time - created).total_seconds() // 3600))

    base_url = current_app.config.get("APP_BASE_URL", "").rstrip("/")
    return {
        "transaction_details": {
            "order_id": payment.midtrans_order_id,
            "gross_amount": payment.amount,
        },
        "customer_details": {
            "first_name": customer.name,
            "email": customer.email,
            "phone": customer.phone or "",
        },
        "item_details": [
            {
                "id": str(room.id),
                "price": payment.amount,
                "quantity": 1,
                "name": item_name,
            }
        ],
        "expiry": {
            "start_time": format_wib(created),
            "unit": "hour",
            "duration": window_hours,
        },
        "callbacks": {
            "finish": f"{base_url}/bookings/{booking.id}",
        },
    }


def request_snap_token(payment: Payment) -> Payment:
    """
    Ask Midtrans for a Snap checkout token and store it on the payment.

    Raises MidtransError; the caller decides what happens to the booking.
    """
    snap = midtrans_client.create_snap_transaction(build_snap_params(payment))
    payment.payment_token = snap.token
    payment.redirect_url = snap.redirect_url
    db.session.flush()
    return payment


def get_payment_by_order_id(order_id: str, *, lock: bool = False) -> Payment | None:
    q = db.session.query(Payment).filter_by(midtrans_order_id=order_id)
    if lock:
        q = lock_for_update(q)
    return q.first()


def can_view_payment(user: User, payment: Payment) -> bool:
    if user.role == ROLE_SUPERADMIN:
        return True
    if payment.user_id == user.id:
        return True
    owner_id = user.managing_owner_id
    return owner_id is not None and payment.booking.property.owner_id == owner_id


def get_payment_for_user(order_id: str, user: User) -> Payment:
    payment = get_payment_by_order_id(order_id)
    if not payment:
        raise NotFoundError("Payment not found")
    if not can_view_payment(user, payment):
        raise ForbiddenError("Access denied")
    return payment


def paid_amount(booking: Booking) -> int:
    """Sum of SUCCESS payments on a booking."""
    return sum(p.amount for p in booking.payments if p.status == PAYMENT_SUCCESS)


def pending_payments(booking: Booking, *, exclude_payment_id: int | None = None) -> list[Payment]:
    return [
        p for p in booking.payments
        if p.status == PAYMENT_PENDING and p.id != exclude_payment_id
    ]


def expire_overdue_payments(now: datetime | None = None) -> list[Payment]:
    """
    Mark PENDING payments whose expiry_time has passed as EXPIRED.

    Flushes only. SUCCESS / FAILED payments are never touched.
    """
    now = now or utcnow()
    overdue = (
        db.session.query(Payment)
        .filter(
            Payment.status == PAYMENT_PENDING,
            Payment.expiry_time.isnot(None),
            Payment.expiry_time < now,
        )
        .all()
    )
    for payment in overdue:
        payment.status = PAYMENT_EXPIRED
    db.session.flush()
    return overdue
