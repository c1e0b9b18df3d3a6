# Overview: Service-layer operations for bookings; encapsulates business logic and database work.

"""
Booking State Engine

WHY: A booking holds a room and is paid for through the gateway. Every
change to its status, whether from a webhook, the cleanup job or an admin,
goes through this module so the room lock and the ledger stay consistent
with the booking.

State graph (forward only):

    UNPAID        -> DEPOSIT_PAID | CONFIRMED | EXPIRED | CANCELLED
    DEPOSIT_PAID  -> CONFIRMED | CHECKED_IN
    CONFIRMED     -> CHECKED_IN
    CHECKED_IN    -> COMPLETED

EXPIRED, CANCELLED and COMPLETED are terminal. A request to move a terminal
booking is a no-op, not an error, so replayed events are harmless.

DESIGN:
- Room exclusivity: booking creation locks the Room row (SELECT ... FOR
  UPDATE) and re-checks availability and date overlap in the same
  transaction; run_with_retry replays the whole check on contention
- A room is released only when no other active booking (e.g. an extension)
  still holds it; Property.available_rooms is recounted on every change
- Extensions are new bookings chained by parent_booking_id
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
import secrets

from flask import current_app
from sqlalchemy import func, or_

from ..extensions import db
from ..models import Booking, Payment, Property, Room, User
from ..models.auth import ROLE_ADMINKOS, ROLE_CUSTOMER, ROLE_RECEPTIONIST, ROLE_SUPERADMIN
from ..models.booking import (
    BOOKING_UNPAID,
    BOOKING_DEPOSIT_PAID,
    BOOKING_CONFIRMED,
    BOOKING_CHECKED_IN,
    BOOKING_COMPLETED,
    BOOKING_EXPIRED,
    BOOKING_CANCELLED,
    PAYMENT_PENDING,
    PAYMENT_SUCCESS,
    PAYMENT_FAILED,
    PAYMENT_EXPIRED,
    PAYMENT_TYPE_DEPOSIT,
    PAYMENT_TYPE_FULL,
)
from ..models.property import (
    LEASE_DAILY,
    LEASE_WEEKLY,
    LEASE_MONTHLY,
    LEASE_QUARTERLY,
    LEASE_YEARLY,
    VALID_LEASE_TYPES,
    DEPOSIT_FIXED,
    DEPOSIT_PERCENTAGE,
)
from ..validation import ConflictError, DomainError, ForbiddenError, NotFoundError, ValidationError
from . import ledger_service, midtrans_client, payment_service
from .concurrency import lock_for_update, run_with_retry
from kosbook.time_utils import base36, epoch_millis, utcnow


VALID_STATUSES = {
    BOOKING_UNPAID,
    BOOKING_DEPOSIT_PAID,
    BOOKING_CONFIRMED,
    BOOKING_CHECKED_IN,
    BOOKING_COMPLETED,
    BOOKING_EXPIRED,
    BOOKING_CANCELLED,
}

TERMINAL_STATUSES = {BOOKING_EXPIRED, BOOKING_CANCELLED, BOOKING_COMPLETED}
ACTIVE_STATUSES = VALID_STATUSES - TERMINAL_STATUSES

TRANSITIONS = {
    BOOKING_UNPAID: {BOOKING_DEPOSIT_PAID, BOOKING_CONFIRMED, BOOKING_EXPIRED, BOOKING_CANCELLED},
    BOOKING_DEPOSIT_PAID: {BOOKING_CONFIRMED, BOOKING_CHECKED_IN},
    BOOKING_CONFIRMED: {BOOKING_CHECKED_IN},
    BOOKING_CHECKED_IN: {BOOKING_COMPLETED},
}

# Bookings in these states do not block a room for overlapping dates
NON_BLOCKING_STATUSES = {BOOKING_CANCELLED, BOOKING_EXPIRED}

EXTENDABLE_STATUSES = {BOOKING_DEPOSIT_PAID, BOOKING_CONFIRMED, BOOKING_CHECKED_IN}
EXTENSION_DEPOSIT_PERCENT = 30
MAX_EXTENSION_PERIODS = 12

# Owner-created bookings give the customer a day to pay, whatever the payment type
MANUAL_PAYMENT_EXPIRY_HOURS = 24

LEASE_DAYS = {
    LEASE_DAILY: 1,
    LEASE_WEEKLY: 7,
    LEASE_MONTHLY: 30,
    LEASE_QUARTERLY: 90,
    LEASE_YEARLY: 365,
}


class BookingError(DomainError):
    """Raised when a booking operation breaks a business rule."""
    pass


@dataclass
class PaymentConfirmation:
    """Outcome of applying a gateway status to a payment."""
    payment: Payment
    booking: Booking
    previous_status: str
    changed: bool


# =============================================================================
# STATE GRAPH
# =============================================================================


def validate_status(status: str) -> None:
    if status not in VALID_STATUSES:
        raise ValidationError(f"Invalid booking status: {status}")


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in TRANSITIONS.get(from_status, set())


# =============================================================================
# ROOM LOCK
# =============================================================================


def recount_available_rooms(property_id: int) -> int:
    """Property.available_rooms = number of rooms with is_available=True. Flushes only."""
    db.session.flush()
    count = db.session.query(func.count(Room.id)).filter(
        Room.property_id == property_id,
        Room.is_available.is_(True),
    ).scalar() or 0
    prop = db.session.get(Property, property_id)
    if prop is not None:
        prop.available_rooms = int(count)
    db.session.flush()
    return int(count)


def room_is_held(room_id: int, *, exclude_booking_ids=()) -> bool:
    q = db.session.query(Booking.id).filter(
        Booking.room_id == room_id,
        Booking.status.in_(ACTIVE_STATUSES),
    )
    exclude = [i for i in exclude_booking_ids if i is not None]
    if exclude:
        q = q.filter(Booking.id.notin_(exclude))
    return q.first() is not None


def lock_room(room: Room) -> None:
    room.is_available = False
    recount_available_rooms(room.property_id)


def release_room(room_id: int, *, exclude_booking_ids=()) -> bool:
    """
    Make a room available again unless another active booking still holds it.

    Returns True if the room was released.
    """
    room = db.session.get(Room, room_id)
    if room is None:
        return False
    db.session.flush()
    if room_is_held(room_id, exclude_booking_ids=exclude_booking_ids):
        return False
    room.is_available = True
    recount_available_rooms(room.property_id)
    return True


# =============================================================================
# TRANSITIONS
# =============================================================================


def apply_transition(booking: Booking, to_status: str, *, now: datetime | None = None) -> bool:
    """
    Move a booking along the state graph and apply the room side effects.

    Returns False (no-op) when the booking is already in to_status or is
    terminal. Raises BookingError(409) for a move the graph does not allow.
    Flushes only.
    """
    validate_status(to_status)
    from_status = booking.status
    if from_status == to_status or is_terminal(from_status):
        return False
    if not can_transition(from_status, to_status):
        raise BookingError(
            f"Invalid status transition: {from_status} -> {to_status}",
            status_code=409,
        )

    now = now or utcnow()
    booking.status = to_status

    if to_status == BOOKING_CHECKED_IN:
        booking.actual_check_in_at = now
    elif to_status == BOOKING_COMPLETED:
        booking.actual_check_out_at = now

    if to_status in TERMINAL_STATUSES:
        release_room(booking.room_id, exclude_booking_ids=[booking.id])

    db.session.flush()
    return True


def apply_payment_event(payment: Payment, new_status: str, *, now: datetime | None = None) -> bool:
    """
    Apply a payment's new status to its booking.

    SUCCESS: DEPOSIT -> DEPOSIT_PAID, FULL -> CONFIRMED, and the payment is
    mirrored into the owner's ledger. FAILED / EXPIRED: an UNPAID booking
    with no other PENDING payment expires and frees its room.

    Returns True if the booking status changed. Flushes only.
    """
    booking = payment.booking
    changed = False

    if new_status == PAYMENT_SUCCESS:
        target = BOOKING_DEPOSIT_PAID if payment.payment_type == PAYMENT_TYPE_DEPOSIT else BOOKING_CONFIRMED
        if is_terminal(booking.status):
            current_app.logger.warning(
                "Payment %s settled for %s booking %s; booking left unchanged",
                payment.midtrans_order_id, booking.status, booking.id,
            )
        elif can_transition(booking.status, target):
            changed = apply_transition(booking, target, now=now)
        ledger_service.sync_payment_to_ledger(payment)

    elif new_status in (PAYMENT_FAILED, PAYMENT_EXPIRED):
        others = payment_service.pending_payments(booking, exclude_payment_id=payment.id)
        if booking.status == BOOKING_UNPAID and not others:
            changed = apply_transition(booking, BOOKING_EXPIRED, now=now)

    booking.payment_status = new_status
    db.session.flush()
    return changed


def confirm_payment(
    order_id: str,
    new_status: str,
    *,
    transaction_id: str | None = None,
    payment_method: str | None = None,
    transaction_time: datetime | None = None,
    now: datetime | None = None,
) -> PaymentConfirmation:
    """
    Apply a gateway-reported status to the payment and its booking.

    Idempotent: only a PENDING payment moves. A payment already in a final
    state is returned unchanged, so duplicate notifications are no-ops.
    A PENDING payment past its expiry that the gateway still reports as
    pending is expired first.

    Raises NotFoundError for an unknown order id.
    """
    def _op():
        current = now or utcnow()
        payment = payment_service.get_payment_by_order_id(order_id, lock=True)
        if not payment:
            raise NotFoundError("Payment not found")
        booking = payment.booking
        previous = payment.status

        if payment.status != PAYMENT_PENDING:
            return PaymentConfirmation(payment, booking, previous, False)

        status = new_status
        if status == PAYMENT_PENDING and payment.expiry_time and payment.expiry_time < current:
            status = PAYMENT_EXPIRED

        if payment_method:
            payment.payment_method = payment_method
        if transaction_id:
            payment.transaction_id = transaction_id
        if transaction_time:
            payment.transaction_time = transaction_time

        if status == PAYMENT_PENDING:
            db.session.commit()
            return PaymentConfirmation(payment, booking, previous, False)

        payment.status = status
        if status == PAYMENT_SUCCESS:
            payment.paid_at = transaction_time or current
        apply_payment_event(payment, status, now=current)
        db.session.commit()

        current_app.logger.info(
            "Payment %s %s -> %s (booking %s now %s)",
            order_id, previous, status, booking.id, booking.status,
        )
        return PaymentConfirmation(payment, booking, previous, True)

    return run_with_retry(_op)


# =============================================================================
# PRICING
# =============================================================================


def validate_lease_type(lease_type: str) -> str:
    lease_type = (lease_type or "").upper()
    if lease_type not in VALID_LEASE_TYPES:
        raise ValidationError(f"Invalid lease type: {lease_type}")
    return lease_type


def calculate_check_out_date(check_in: date, lease_type: str, periods: int = 1) -> date:
    return check_in + timedelta(days=LEASE_DAYS[lease_type] * periods)


def get_price_for_lease(room: Room, lease_type: str) -> int:
    """Explicit per-lease price, else derived from the monthly price."""
    monthly = room.monthly_price
    if lease_type == LEASE_DAILY:
        return room.daily_price or round(monthly / 30)
    if lease_type == LEASE_WEEKLY:
        return room.weekly_price or round(monthly * 7 / 30)
    if lease_type == LEASE_QUARTERLY:
        return room.quarterly_price or monthly * 3
    if lease_type == LEASE_YEARLY:
        return room.yearly_price or monthly * 12
    return monthly


def calculate_deposit(room: Room, total: int) -> int | None:
    if not room.deposit_required or not room.deposit_type or not room.deposit_value:
        return None
    if room.deposit_type == DEPOSIT_FIXED:
        return min(room.deposit_value, total)
    if room.deposit_type == DEPOSIT_PERCENTAGE:
        return round(total * room.deposit_value / 100)
    return None


def calculate_amounts(room: Room, lease_type: str, periods: int = 1) -> tuple[int, int | None]:
    """Returns (total_amount, deposit_amount_or_None) in rupiah."""
    total = get_price_for_lease(room, lease_type) * periods
    return total, calculate_deposit(room, total)


def generate_booking_code(now: datetime | None = None) -> str:
    tail = base36(secrets.randbelow(36 ** 4)).rjust(4, "0")
    return f"BK{base36(epoch_millis(now))}{tail}".upper()


def find_overlapping_booking(
    room_id: int,
    check_in: date,
    check_out: date,
    *,
    exclude_booking_id: int | None = None,
) -> Booking | None:
    q = db.session.query(Booking).filter(
        Booking.room_id == room_id,
        Booking.status.notin_(NON_BLOCKING_STATUSES),
        Booking.check_in_date < check_out,
        or_(Booking.check_out_date.is_(None), Booking.check_out_date > check_in),
    )
    if exclude_booking_id is not None:
        q = q.filter(Booking.id != exclude_booking_id)
    return q.first()


# =============================================================================
# ACCESS
# =============================================================================


def can_manage(user: User, booking: Booking) -> bool:
    """Superadmin, or the AdminKos (or their receptionist) owning the property."""
    if user.role == ROLE_SUPERADMIN:
        return True
    owner_id = user.managing_owner_id
    return owner_id is not None and booking.property.owner_id == owner_id


def can_view(user: User, booking: Booking) -> bool:
    return booking.customer_id == user.id or can_manage(user, booking)


def get_booking(booking_id: int) -> Booking:
    booking = db.session.get(Booking, booking_id)
    if not booking:
        raise NotFoundError("Booking not found")
    return booking


def get_booking_for_user(booking_id: int, user: User) -> Booking:
    booking = get_booking(booking_id)
    if not can_view(user, booking):
        raise ForbiddenError("Access denied")
    return booking


def list_bookings(
    user: User,
    *,
    status: str | None = None,
    property_id: int | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Booking], int]:
    """Bookings visible to the user: own bookings for customers, property bookings for staff."""
    q = db.session.query(Booking)
    if user.role == ROLE_CUSTOMER:
        q = q.filter(Booking.customer_id == user.id)
    elif user.role in (ROLE_ADMINKOS, ROLE_RECEPTIONIST):
        q = q.join(Property, Property.id == Booking.property_id).filter(
            Property.owner_id == user.managing_owner_id
        )
    if status:
        validate_status(status)
        q = q.filter(Booking.status == status)
    if property_id is not None:
        q = q.filter(Booking.property_id == property_id)

    total = q.count()
    rows = q.order_by(Booking.created_at.desc(), Booking.id.desc()).offset(offset).limit(limit).all()
    return rows, total


# =============================================================================
# CHECKOUT
# =============================================================================


def _attach_snap_token(payment: Payment) -> Payment:
    """
    Request the Snap token after the booking is committed.

    On gateway failure the payment is marked FAILED (which expires an UNPAID
    booking and frees its room) and the MidtransError is re-raised.
    """
    try:
        payment_service.request_snap_token(payment)
        db.session.commit()
        return payment
    except midtrans_client.MidtransError:
        current_app.logger.exception(
            "Failed to create Snap transaction for %s", payment.midtrans_order_id
        )
        db.session.rollback()
        payment = db.session.get(Payment, payment.id)
        payment.status = PAYMENT_FAILED
        apply_payment_event(payment, PAYMENT_FAILED)
        db.session.commit()
        raise


def create_booking(
    customer: User,
    *,
    room_id: int,
    lease_type: str,
    check_in_date: date,
    deposit_only: bool = False,
    now: datetime | None = None,
) -> tuple[Booking, Payment]:
    """
    Create an UNPAID booking, lock its room and open a Snap checkout.

    Raises:
        ForbiddenError: caller is not a customer
        NotFoundError: room does not exist
        ConflictError: room unavailable or already booked for the dates
        BookingError: deposit requested for a room without deposits
        MidtransError: gateway refused the checkout (booking is expired)
    """
    if customer.role != ROLE_CUSTOMER:
        raise ForbiddenError("Only customers can create bookings")
    lease_type = validate_lease_type(lease_type)
    current = now or utcnow()
    if check_in_date < current.date():
        raise ValidationError("Check-in date cannot be in the past")

    def _op():
        booking, payment = _reserve_room(
            customer_id=customer.id,
            room_id=room_id,
            lease_type=lease_type,
            check_in_date=check_in_date,
            deposit_only=deposit_only,
            now=current,
        )
        db.session.commit()
        return booking, payment

    booking, payment = run_with_retry(_op)
    current_app.logger.info("Booking %s created for room %s", booking.booking_code, room_id)
    return booking, _attach_snap_token(payment)


def create_manual_booking(
    owner: User,
    *,
    customer_id: int,
    room_id: int,
    lease_type: str,
    check_in_date: date,
    deposit_only: bool = False,
    now: datetime | None = None,
) -> tuple[Booking, Payment]:
    """
    AdminKos books one of their own rooms on behalf of a customer.

    Same availability, overlap and pricing rules as a customer checkout. The
    payment stays open for MANUAL_PAYMENT_EXPIRY_HOURS and is charged to the
    customer, who pays through the returned Snap link.

    Raises:
        ForbiddenError: caller is not an AdminKos, or the room is not theirs
        NotFoundError: room or customer does not exist
        ConflictError: room unavailable or already booked for the dates
    """
    if owner.role != ROLE_ADMINKOS:
        raise ForbiddenError("Only AdminKos can create manual bookings")
    lease_type = validate_lease_type(lease_type)
    current = now or utcnow()
    if check_in_date < current.date():
        raise ValidationError("Check-in date cannot be in the past")

    customer = db.session.get(User, customer_id)
    if not customer or customer.role != ROLE_CUSTOMER or not customer.is_active:
        raise NotFoundError("Customer not found")

    def _op():
        booking, payment = _reserve_room(
            customer_id=customer.id,
            room_id=room_id,
            lease_type=lease_type,
            check_in_date=check_in_date,
            deposit_only=deposit_only,
            now=current,
            owner_id=owner.id,
            expiry_hours=MANUAL_PAYMENT_EXPIRY_HOURS,
        )
        db.session.commit()
        return booking, payment

    booking, payment = run_with_retry(_op)
    current_app.logger.info(
        "Manual booking %s created by owner %s for customer %s",
        booking.booking_code, owner.id, customer.id,
    )
    return booking, _attach_snap_token(payment)


def _reserve_room(
    *,
    customer_id: int,
    room_id: int,
    lease_type: str,
    check_in_date: date,
    deposit_only: bool,
    now: datetime,
    owner_id: int | None = None,
    expiry_hours: int | None = None,
) -> tuple[Booking, Payment]:
    """Lock the room, insert the UNPAID booking and its PENDING payment. Flushes only."""
    room = lock_for_update(db.session.query(Room).filter_by(id=room_id)).first()
    if not room:
        raise NotFoundError("Room not found")
    if owner_id is not None and (not room.property or room.property.owner_id != owner_id):
        raise ForbiddenError("You can only create bookings for your own properties")
    if not room.property or not room.property.is_active:
        raise ConflictError("Property is not accepting bookings")
    if not room.is_available:
        raise ConflictError("Kamar tidak tersedia")

    check_out = calculate_check_out_date(check_in_date, lease_type)
    if find_overlapping_booking(room.id, check_in_date, check_out):
        raise ConflictError("Kamar sudah dibooking pada tanggal tersebut")

    total, deposit = calculate_amounts(room, lease_type)
    if deposit_only and not deposit:
        raise BookingError("Kamar ini tidak menerima pembayaran deposit")

    booking = Booking(
        booking_code=generate_booking_code(now),
        customer_id=customer_id,
        property_id=room.property_id,
        room_id=room.id,
        lease_type=lease_type,
        check_in_date=check_in_date,
        check_out_date=check_out,
        status=BOOKING_UNPAID,
        payment_status=PAYMENT_PENDING,
        total_amount=total,
        deposit_amount=deposit,
        created_at=now,
    )
    db.session.add(booking)
    db.session.flush()

    lock_room(room)

    payment = payment_service.create_payment_record(
        booking,
        payment_type=PAYMENT_TYPE_DEPOSIT if deposit_only else PAYMENT_TYPE_FULL,
        amount=deposit if deposit_only else total,
        user_id=customer_id,
        now=now,
        expiry_hours=expiry_hours,
    )
    return booking, payment


def create_full_payment(booking: Booking, customer: User, *, now: datetime | None = None) -> Payment:
    """
    Open a FULL payment for the remainder of a DEPOSIT_PAID booking.

    An unexpired PENDING FULL payment is reused.
    """
    if booking.customer_id != customer.id:
        raise ForbiddenError("Access denied")
    if booking.status != BOOKING_DEPOSIT_PAID:
        raise BookingError("Pelunasan hanya untuk booking dengan status DEPOSIT_PAID")

    current = now or utcnow()
    for p in payment_service.pending_payments(booking):
        if p.payment_type == PAYMENT_TYPE_FULL and p.payment_token and p.expiry_time and p.expiry_time > current:
            return p

    remaining = booking.total_amount - payment_service.paid_amount(booking)
    if remaining <= 0:
        raise BookingError("Booking sudah lunas")

    def _op():
        payment = payment_service.create_payment_record(
            booking,
            payment_type=PAYMENT_TYPE_FULL,
            amount=remaining,
            user_id=customer.id,
            now=current,
        )
        db.session.commit()
        return payment

    return _attach_snap_token(run_with_retry(_op))


# =============================================================================
# EXTENSIONS
# =============================================================================


def get_extension_info(booking: Booking) -> dict:
    eligible = booking.status in EXTENDABLE_STATUSES and booking.check_out_date is not None
    reason = None
    if booking.status not in EXTENDABLE_STATUSES:
        reason = f"Booking dengan status {booking.status} tidak dapat diperpanjang"
    elif booking.check_out_date is None:
        reason = "Booking tidak memiliki tanggal check-out"

    room = booking.room
    price = get_price_for_lease(room, booking.lease_type)
    return {
        "booking_id": booking.id,
        "eligible": eligible,
        "reason": reason,
        "lease_type": booking.lease_type,
        "current_check_out_date": booking.check_out_date.isoformat() if booking.check_out_date else None,
        "price_per_period": price,
        "deposit_required": bool(room.deposit_required),
        "deposit_percent": EXTENSION_DEPOSIT_PERCENT if room.deposit_required else None,
        "max_periods": MAX_EXTENSION_PERIODS,
    }


def extend_booking(
    booking: Booking,
    customer: User,
    *,
    periods: int = 1,
    deposit_only: bool = False,
    now: datetime | None = None,
) -> tuple[Booking, Payment]:
    """
    Extend a stay by creating a new UNPAID booking starting at the current
    check-out date. The original booking is not modified and the room stays
    held by it, so the extension does not lock the room again.
    """
    if booking.customer_id != customer.id:
        raise ForbiddenError("Access denied")
    if booking.status not in EXTENDABLE_STATUSES:
        raise BookingError(f"Booking dengan status {booking.status} tidak dapat diperpanjang")
    if booking.check_out_date is None:
        raise BookingError("Booking tidak memiliki tanggal check-out")
    if not isinstance(periods, int) or isinstance(periods, bool) or not 1 <= periods <= MAX_EXTENSION_PERIODS:
        raise ValidationError(f"periods must be between 1 and {MAX_EXTENSION_PERIODS}")

    current = now or utcnow()

    def _op():
        room = lock_for_update(db.session.query(Room).filter_by(id=booking.room_id)).first()
        new_check_in = booking.check_out_date
        new_check_out = calculate_check_out_date(new_check_in, booking.lease_type, periods)
        if find_overlapping_booking(room.id, new_check_in, new_check_out, exclude_booking_id=booking.id):
            raise ConflictError("Kamar sudah dibooking pada periode perpanjangan")

        total = get_price_for_lease(room, booking.lease_type) * periods
        deposit = round(total * EXTENSION_DEPOSIT_PERCENT / 100) if room.deposit_required else None
        if deposit_only and not deposit:
            raise BookingError("Kamar ini tidak menerima pembayaran deposit")

        extension = Booking(
            booking_code=generate_booking_code(current),
            customer_id=customer.id,
            property_id=booking.property_id,
            room_id=room.id,
            parent_booking_id=booking.id,
            lease_type=booking.lease_type,
            check_in_date=new_check_in,
            check_out_date=new_check_out,
            status=BOOKING_UNPAID,
            payment_status=PAYMENT_PENDING,
            total_amount=total,
            deposit_amount=deposit,
            created_at=current,
        )
        db.session.add(extension)
        db.session.flush()

        payment = payment_service.create_payment_record(
            extension,
            payment_type=PAYMENT_TYPE_DEPOSIT if deposit_only else PAYMENT_TYPE_FULL,
            amount=deposit if deposit_only else total,
            user_id=customer.id,
            now=current,
        )
        db.session.commit()
        return extension, payment

    extension, payment = run_with_retry(_op)
    current_app.logger.info(
        "Booking %s extended by %s x %s as %s",
        booking.booking_code, periods, booking.lease_type, extension.booking_code,
    )
    return extension, _attach_snap_token(payment)


# =============================================================================
# MANUAL CHANGES
# =============================================================================


def update_status(booking: Booking, to_status: str, actor: User, *, reason: str | None = None) -> bool:
    """
    Manual status change by the property's staff or the superadmin.

    Returns False when nothing changed (same status or terminal booking).
    """
    if not can_manage(actor, booking):
        raise ForbiddenError("Access denied")
    validate_status(to_status)

    def _op():
        changed = apply_transition(booking, to_status)
        if changed and to_status == BOOKING_CANCELLED:
            booking.cancel_reason = reason
            _fail_pending_payments(booking)
        db.session.commit()
        return changed

    return run_with_retry(_op)


def _fail_pending_payments(booking: Booking) -> list[Payment]:
    failed = []
    for payment in payment_service.pending_payments(booking):
        payment.status = PAYMENT_FAILED
        failed.append(payment)
    if failed:
        booking.payment_status = PAYMENT_FAILED
    db.session.flush()
    return failed


def cancel_booking(booking: Booking, actor: User, *, reason: str | None = None) -> bool:
    """
    Cancel an UNPAID booking (by its customer or the property's staff).

    Pending payments are failed locally and the gateway is asked to cancel
    them; gateway errors are logged because the local state is authoritative.
    """
    if booking.customer_id != actor.id and not can_manage(actor, booking):
        raise ForbiddenError("Access denied")
    if booking.status != BOOKING_UNPAID:
        if is_terminal(booking.status):
            return False
        raise BookingError("Hanya booking yang belum dibayar yang dapat dibatalkan")

    def _op():
        changed = apply_transition(booking, BOOKING_CANCELLED)
        booking.cancel_reason = reason
        failed = _fail_pending_payments(booking)
        db.session.commit()
        return changed, [p.midtrans_order_id for p in failed]

    changed, order_ids = run_with_retry(_op)
    for order_id in order_ids:
        try:
            midtrans_client.cancel_transaction(order_id)
        except midtrans_client.MidtransError as exc:
            current_app.logger.warning("Could not cancel %s at Midtrans: %s", order_id, exc)
    return changed
