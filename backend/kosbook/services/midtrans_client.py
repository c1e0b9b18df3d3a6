# Overview: Outbound Midtrans gateway calls (Snap checkout, Core status API) and webhook signature checks.

"""
Midtrans Gateway Adapter

WHY: The gateway is the source of truth for whether money moved. This
module is the only place that talks to it, so the rest of the service
layer deals in plain dicts and our own status vocabulary.

DESIGN:
- Synchronous httpx.Client per call, HTTP basic auth with the server key
- Sandbox vs production base URLs chosen by MIDTRANS_IS_PRODUCTION
- Every failure surfaces as MidtransError (status_code kept for routes)
- MIDTRANS_HTTP_TRANSPORT (config) lets tests plug in httpx.MockTransport
"""

from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass

import httpx
from flask import current_app

from ..models.booking import (
    PAYMENT_PENDING,
    PAYMENT_SUCCESS,
    PAYMENT_FAILED,
    PAYMENT_EXPIRED,
    PAYMENT_REFUNDED,
)
from ..validation import DomainError


SANDBOX_SNAP_URL = "https://app.sandbox.midtrans.com"
SANDBOX_API_URL = "https://api.sandbox.midtrans.com"
PRODUCTION_SNAP_URL = "https://app.midtrans.com"
PRODUCTION_API_URL = "https://api.midtrans.com"

# Midtrans transaction_status -> our payment status (capture handled separately)
_TRANSACTION_STATUS_MAP = {
    "settlement": PAYMENT_SUCCESS,
    "pending": PAYMENT_PENDING,
    "deny": PAYMENT_FAILED,
    "cancel": PAYMENT_FAILED,
    "failure": PAYMENT_FAILED,
    "expire": PAYMENT_EXPIRED,
    "refund": PAYMENT_REFUNDED,
    "partial_refund": PAYMENT_REFUNDED,
}


class MidtransError(DomainError):
    """Gateway call failed or returned an error payload."""
    status_code = 502


class TransactionNotFound(MidtransError):
    """Gateway has no transaction for the order id."""
    status_code = 404


@dataclass(frozen=True)
class SnapTransaction:
    token: str
    redirect_url: str | None


def is_production() -> bool:
    return bool(current_app.config.get("MIDTRANS_IS_PRODUCTION"))


def snap_base_url() -> str:
    return PRODUCTION_SNAP_URL if is_production() else SANDBOX_SNAP_URL


def api_base_url() -> str:
    return PRODUCTION_API_URL if is_production() else SANDBOX_API_URL


def snap_script_url() -> str:
    return f"{snap_base_url()}/snap/snap.js"


def client_key() -> str:
    return current_app.config.get("MIDTRANS_CLIENT_KEY") or ""


def server_key() -> str:
    key = current_app.config.get("MIDTRANS_SERVER_KEY")
    if not key:
        raise MidtransError("Midtrans server key is not configured", status_code=500)
    return key


def _make_client(base_url: str) -> httpx.Client:
    return httpx.Client(
        base_url=base_url,
        timeout=current_app.config.get("MIDTRANS_TIMEOUT_SECONDS", 15),
        auth=(server_key(), ""),
        headers={"Accept": "application/json", "Content-Type": "application/json"},
        transport=current_app.config.get("MIDTRANS_HTTP_TRANSPORT"),
    )


def _request(base_url: str, method: str, path: str, payload: dict | None = None) -> dict:
    try:
        with _make_client(base_url) as client:
            response = client.request(method, path, json=payload)
    except httpx.HTTPError as exc:
        raise MidtransError(f"Midtrans request failed: {exc}") from exc

    try:
        body = response.json()
    except ValueError:
        body = {}

    if response.status_code == 404:
        raise TransactionNotFound("Transaction not found")
    if response.status_code >= 400:
        messages = body.get("error_messages") or [body.get("status_message") or response.text]
        raise MidtransError(f"Midtrans error {response.status_code}: {'; '.join(map(str, messages))}")

    # Core API answers HTTP 200 with the real status code in the body;
    # 407 means "transaction expired" and is a normal status answer
    body_status = str(body.get("status_code", ""))
    if body_status == "404":
        raise TransactionNotFound("Transaction not found")
    if body_status.startswith(("4", "5")) and body_status != "407":
        raise MidtransError(f"Midtrans error {body_status}: {body.get('status_message', '')}")

    return body


# =============================================================================
# SNAP
# =============================================================================


def create_snap_transaction(params: dict) -> SnapTransaction:
    """
    Create a Snap checkout session.

    params follows the Snap request schema (transaction_details,
    customer_details, item_details, expiry, callbacks).
    """
    body = _request(snap_base_url(), "POST", "/snap/v1/transactions", params)
    token = body.get("token")
    if not token:
        raise MidtransError("Midtrans did not return a Snap token")
    return SnapTransaction(token=token, redirect_url=body.get("redirect_url"))


# =============================================================================
# CORE API
# =============================================================================


def get_transaction_status(order_id: str) -> dict:
    """GET /v2/{order_id}/status. Raises TransactionNotFound for unknown orders."""
    return _request(api_base_url(), "GET", f"/v2/{order_id}/status")


def cancel_transaction(order_id: str) -> dict:
    return _request(api_base_url(), "POST", f"/v2/{order_id}/cancel")


def expire_transaction(order_id: str) -> dict:
    return _request(api_base_url(), "POST", f"/v2/{order_id}/expire")


def approve_transaction(order_id: str) -> dict:
    """Approve a capture held by fraud_status=challenge."""
    return _request(api_base_url(), "POST", f"/v2/{order_id}/approve")


# =============================================================================
# NOTIFICATIONS
# =============================================================================


def compute_signature(order_id: str, status_code: str, gross_amount: str, key: str | None = None) -> str:
    """SHA-512 hex of order_id + status_code + gross_amount + server_key."""
    raw = f"{order_id}{status_code}{gross_amount}{key if key is not None else server_key()}"
    return hashlib.sha512(raw.encode("utf-8")).hexdigest()


def verify_signature(order_id: str, status_code: str, gross_amount: str, signature_key: str) -> bool:
    if not signature_key:
        return False
    expected = compute_signature(str(order_id), str(status_code), str(gross_amount))
    return hmac.compare_digest(expected, str(signature_key).lower())


def map_transaction_status(transaction_status: str | None, fraud_status: str | None = None) -> str:
    """
    Translate a Midtrans transaction_status into our payment status.

    capture is only SUCCESS once fraud screening accepts it (card payments
    without fraud_status count as accepted); unknown statuses stay PENDING.
    """
    status = (transaction_status or "").lower()
    if status == "capture":
        fraud = (fraud_status or "accept").lower()
        return PAYMENT_SUCCESS if fraud == "accept" else PAYMENT_PENDING
    return _TRANSACTION_STATUS_MAP.get(status, PAYMENT_PENDING)
