# Overview: Flask API routes for payment status operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..decorators import require_auth
from ..services import midtrans_client, reconciliation_service
from ..validation import DomainError


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("/confirm-client")
@require_auth
def confirm_client_route():
    """
    Client-side Snap callback fallback.

    Request body:
    {
        "orderId": "DEP-12-LX3K9Q0AB",
        "transactionStatus": "settlement",
        "paymentType": "bank_transfer",
        "transactionTime": "2026-01-14 17:56:06",
        "transactionId": "...",
        "fraudStatus": "accept"
    }

    Only settlement / accepted capture callbacks are acted on, and then only
    after Midtrans confirms the status.
    """
    try:
        data = reconciliation_service.confirm_from_client(g.current_user, request.get_json(silent=True))
        return jsonify({"success": True, "data": data}), 200
    except DomainError as e:
        db.session.rollback()
        return jsonify({"success": False, "error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to confirm client payment")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@payments_bp.get("/status")
@require_auth
def payment_status_route():
    """GET /api/payments/status?orderId=... -> payment and booking as stored."""
    try:
        data = reconciliation_service.get_status(g.current_user, request.args.get("orderId"))
        return jsonify({"success": True, "data": data}), 200
    except DomainError as e:
        return jsonify({"success": False, "error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get payment status")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@payments_bp.route("/refresh-status", methods=["GET", "POST"])
@require_auth
def refresh_status_route():
    """
    Re-query Midtrans for a payment.

    orderId comes from the query string or the JSON body.

    Returns:
    {"success": true, "data": {"orderId", "previousStatus", "currentStatus", "bookingStatus", "updated"}}
    """
    order_id = request.args.get("orderId")
    if not order_id and request.method == "POST":
        body = request.get_json(silent=True) or {}
        order_id = body.get("orderId")

    try:
        data = reconciliation_service.refresh_status(g.current_user, order_id)
        return jsonify({"success": True, "data": data}), 200
    except DomainError as e:
        db.session.rollback()
        return jsonify({"success": False, "error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to refresh payment status")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@payments_bp.get("/config")
def payment_config_route():
    """Public Snap settings for the checkout page."""
    return jsonify({
        "success": True,
        "data": {
            "client_key": midtrans_client.client_key(),
            "snap_script_url": midtrans_client.snap_script_url(),
            "is_production": midtrans_client.is_production(),
        },
    }), 200
