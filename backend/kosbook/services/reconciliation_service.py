# Overview: Service-layer operations that reconcile Midtrans transaction state into payments and bookings.

"""
Gateway Reconciliation

Three ways a payment status reaches us, all ending in
booking_service.confirm_payment():

1. Webhook notification (signed by Midtrans)          -> handle_notification
2. Client-side Snap callback (browser says "paid")     -> confirm_from_client
3. Manual refresh (user presses "check status")        -> refresh_status

WHY 2 and 3 re-query the gateway: a browser callback is unsigned, so the
status it reports is only a hint to go and ask Midtrans.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..models import User
from ..models.booking import PAYMENT_SUCCESS
from ..validation import DomainError, NotFoundError, ValidationError, require_fields
from . import booking_service, midtrans_client, payment_service
from kosbook.time_utils import parse_gateway_time


WEBHOOK_REQUIRED_FIELDS = (
    "order_id",
    "transaction_status",
    "status_code",
    "gross_amount",
    "signature_key",
)

CLIENT_CONFIRM_REQUIRED_FIELDS = ("orderId", "transactionStatus")

# Client callbacks worth acting on; anything else is reported back as pending
CLIENT_SETTLED_STATUSES = {"settlement", "capture"}


class InvalidSignatureError(DomainError):
    """Notification signature does not match our server key."""
    status_code = 401


@dataclass
class NotificationResult:
    order_id: str
    processed: bool
    message: str
    payment_status: str | None = None
    booking_status: str | None = None

    def to_dict(self) -> dict:
        return {
            "orderId": self.order_id,
            "processed": self.processed,
            "message": self.message,
            "paymentStatus": self.payment_status,
            "bookingStatus": self.booking_status,
        }


def _gross_amount_matches(gross_amount, amount: int) -> bool:
    try:
        return round(float(gross_amount)) == amount
    except (TypeError, ValueError):
        return False


def _apply_gateway_status(order_id: str, status_payload: dict):
    mapped = midtrans_client.map_transaction_status(
        status_payload.get("transaction_status"),
        status_payload.get("fraud_status"),
    )
    return booking_service.confirm_payment(
        order_id,
        mapped,
        transaction_id=status_payload.get("transaction_id"),
        payment_method=status_payload.get("payment_type"),
        transaction_time=parse_gateway_time(status_payload.get("transaction_time")),
    )


def handle_notification(payload: dict | None) -> NotificationResult:
    """
    Verify and apply a Midtrans HTTP notification.

    Raises:
        ValidationError: required fields missing
        InvalidSignatureError: signature_key does not verify
    Unknown order ids and amount mismatches are ignored (logged), so the
    gateway never retries them.
    """
    payload = require_fields(payload, WEBHOOK_REQUIRED_FIELDS)
    order_id = str(payload["order_id"])

    if not midtrans_client.verify_signature(
        order_id,
        str(payload["status_code"]),
        str(payload["gross_amount"]),
        str(payload["signature_key"]),
    ):
        raise InvalidSignatureError("Invalid signature")

    payment = payment_service.get_payment_by_order_id(order_id)
    if not payment:
        current_app.logger.warning("Notification for unknown order %s ignored", order_id)
        return NotificationResult(order_id, False, "Unknown order id")

    if not _gross_amount_matches(payload["gross_amount"], payment.amount):
        current_app.logger.warning(
            "Notification for %s has gross_amount %s, expected %s; ignored",
            order_id, payload["gross_amount"], payment.amount,
        )
        return NotificationResult(order_id, False, "Amount mismatch", payment.status, payment.booking.status)

    result = _apply_gateway_status(order_id, payload)
    return NotificationResult(
        order_id,
        result.changed,
        "Processed" if result.changed else "No change",
        result.payment.status,
        result.booking.status,
    )


def confirm_from_client(user: User, payload: dict | None) -> dict:
    """
    Client-side fallback for when the webhook has not arrived yet.

    Only settlement / accepted capture callbacks trigger a gateway check;
    other callbacks report the payment as pending.
    """
    payload = require_fields(payload, CLIENT_CONFIRM_REQUIRED_FIELDS)
    order_id = str(payload["orderId"])
    payment = payment_service.get_payment_for_user(order_id, user)

    transaction_status = str(payload.get("transactionStatus", "")).lower()
    fraud_status = payload.get("fraudStatus")
    settled = transaction_status in CLIENT_SETTLED_STATUSES and (
        transaction_status != "capture" or (fraud_status or "accept").lower() == "accept"
    )
    if not settled:
        return {
            "status": "pending",
            "orderId": order_id,
            "paymentStatus": payment.status,
            "bookingStatus": payment.booking.status,
        }

    status_payload = midtrans_client.get_transaction_status(order_id)
    result = _apply_gateway_status(order_id, status_payload)
    return {
        "status": "processed" if result.changed else "unchanged",
        "orderId": order_id,
        "paymentStatus": result.payment.status,
        "bookingStatus": result.booking.status,
    }


def refresh_status(user: User, order_id: str | None) -> dict:
    """
    Re-query Midtrans for a payment and apply the answer.

    A payment that is already SUCCESS is not re-queried.
    Raises NotFoundError if either side does not know the order.
    """
    if not order_id:
        raise ValidationError("orderId is required")
    payment = payment_service.get_payment_for_user(order_id, user)
    previous = payment.status

    if previous == PAYMENT_SUCCESS:
        return {
            "orderId": order_id,
            "previousStatus": previous,
            "currentStatus": previous,
            "bookingStatus": payment.booking.status,
            "updated": False,
        }

    try:
        status_payload = midtrans_client.get_transaction_status(order_id)
    except midtrans_client.TransactionNotFound:
        raise NotFoundError("Transaksi tidak ditemukan di Midtrans")

    result = _apply_gateway_status(order_id, status_payload)
    return {
        "orderId": order_id,
        "previousStatus": previous,
        "currentStatus": result.payment.status,
        "bookingStatus": result.booking.status,
        "transactionStatus": status_payload.get("transaction_status"),
        "updated": result.payment.status != previous,
    }


def get_status(user: User, order_id: str | None) -> dict:
    if not order_id:
        raise ValidationError("orderId is required")
    payment = payment_service.get_payment_for_user(order_id, user)
    return {
        "payment": payment.to_dict(),
        "booking": payment.booking.to_dict(),
    }
