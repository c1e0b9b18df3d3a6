from __future__ import annotations

from ..extensions import db
from kosbook.time_utils import to_utc_z, to_iso_date


BOOKING_UNPAID = "UNPAID"
BOOKING_DEPOSIT_PAID = "DEPOSIT_PAID"
BOOKING_CONFIRMED = "CONFIRMED"
BOOKING_CHECKED_IN = "CHECKED_IN"
BOOKING_COMPLETED = "COMPLETED"
BOOKING_EXPIRED = "EXPIRED"
BOOKING_CANCELLED = "CANCELLED"

PAYMENT_PENDING = "PENDING"
PAYMENT_SUCCESS = "SUCCESS"
PAYMENT_FAILED = "FAILED"
PAYMENT_EXPIRED = "EXPIRED"
PAYMENT_REFUNDED = "REFUNDED"

PAYMENT_TYPE_DEPOSIT = "DEPOSIT"
PAYMENT_TYPE_FULL = "FULL"


class Booking(db.Model):
    """
    A customer's reservation of one room for one lease period.

    WHY: The booking is the unit the payment gateway settles against and the
    thing that holds a room. Its status only moves forward through the
    booking state graph (see services/booking_service.py).

    DESIGN:
    - booking_code is the human-facing reference (BK...)
    - payment_status mirrors the most recent payment's status
    - Extensions are new bookings chained through parent_booking_id;
      the original booking's dates are never rewritten
    - version_id enables optimistic locking between webhook, cron and admins
    """
    __tablename__ = "bookings"
    __table_args__ = (
        db.Index("ix_bookings_room_status", "room_id", "status"),
        db.Index("ix_bookings_customer_id", "customer_id"),
        db.Index("ix_bookings_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    booking_code = db.Column(db.String(32), nullable=False, unique=True, index=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    property_id = db.Column(db.Integer, db.ForeignKey("properties.id"), nullable=False, index=True)
    room_id = db.Column(db.Integer, db.ForeignKey("rooms.id"), nullable=False)
    parent_booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=True, index=True)

    lease_type = db.Column(db.String(16), nullable=False)
    check_in_date = db.Column(db.Date, nullable=False)
    check_out_date = db.Column(db.Date, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=BOOKING_UNPAID)
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_PENDING)

    total_amount = db.Column(db.Integer, nullable=False)
    deposit_amount = db.Column(db.Integer, nullable=True)

    actual_check_in_at = db.Column(db.DateTime(timezone=True), nullable=True)
    actual_check_out_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    customer = db.relationship("User", backref=db.backref("bookings", lazy=True))
    property = db.relationship("Property", backref=db.backref("bookings", lazy=True))
    room = db.relationship("Room", backref=db.backref("bookings", lazy=True))
    parent_booking = db.relationship("Booking", remote_side=[id], backref=db.backref("extensions", lazy=True))
    payments = db.relationship(
        "Payment",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="Payment.id",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<Booking id={self.id} code={self.booking_code} status={self.status}>"

    def to_dict(self, include_payments: bool = False) -> dict:
        data = {
            "id": self.id,
            "booking_code": self.booking_code,
            "customer_id": self.customer_id,
            "property_id": self.property_id,
            "room_id": self.room_id,
            "parent_booking_id": self.parent_booking_id,
            "lease_type": self.lease_type,
            "check_in_date": to_iso_date(self.check_in_date),
            "check_out_date": to_iso_date(self.check_out_date),
            "status": self.status,
            "payment_status": self.payment_status,
            "total_amount": self.total_amount,
            "deposit_amount": self.deposit_amount,
            "actual_check_in_at": to_utc_z(self.actual_check_in_at),
            "actual_check_out_at": to_utc_z(self.actual_check_out_at),
            "cancel_reason": self.cancel_reason,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_payments:
            data["payments"] = [p.to_dict() for p in self.payments]
        return data


class Payment(db.Model):
    """
    One payment attempt against a booking, keyed by its Midtrans order id.

    WHY: The gateway notifies by order id, so midtrans_order_id is the
    idempotency key for webhook processing.

    DESIGN:
    - payment_type DEPOSIT or FULL decides the booking transition on SUCCESS
    - PENDING past expiry_time is reaped to EXPIRED by the cleanup job
    - amount is whole rupiah (Midtrans gross_amount is an integer for IDR)
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_booking_status", "booking_id", "status"),
        db.Index("ix_payments_status_expiry", "status", "expiry_time"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    midtrans_order_id = db.Column(db.String(64), nullable=False, unique=True, index=True)
    amount = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=PAYMENT_PENDING)
    payment_type = db.Column(db.String(16), nullable=False)  # DEPOSIT | FULL
    payment_method = db.Column(db.String(64), nullable=True)

    transaction_id = db.Column(db.String(128), nullable=True)
    transaction_time = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    expiry_time = db.Column(db.DateTime(timezone=True), nullable=True)

    payment_token = db.Column(db.String(255), nullable=True)
    redirect_url = db.Column(db.String(500), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    booking = db.relationship("Booking", back_populates="payments")
    user = db.relationship("User")

    def __repr__(self) -> str:
        return f"<Payment id={self.id} order={self.midtrans_order_id} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "booking_id": self.booking_id,
            "user_id": self.user_id,
            "midtrans_order_id": self.midtrans_order_id,
            "amount": self.amount,
            "status": self.status,
            "payment_type": self.payment_type,
            "payment_method": self.payment_method,
            "transaction_id": self.transaction_id,
            "transaction_time": to_utc_z(self.transaction_time),
            "paid_at": to_utc_z(self.paid_at),
            "expiry_time": to_utc_z(self.expiry_time),
            "payment_token": self.payment_token,
            "redirect_url": self.redirect_url,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
