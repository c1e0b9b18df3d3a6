# Overview: Flask API routes for Midtrans HTTP notifications; always answers 200 to the gateway.

"""
Midtrans webhook

Both notification URLs that have been configured in the Midtrans dashboard
over time are served by the same handler.

Midtrans retries any non-2xx answer, so every outcome (bad payload, bad
signature, unknown order, internal failure) is answered with HTTP 200 and
logged; only "success" in the body says whether the notification was used.
"""

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..services import reconciliation_service
from ..services.reconciliation_service import InvalidSignatureError
from ..validation import ValidationError
from kosbook.time_utils import utcnow, to_utc_z


midtrans_bp = Blueprint("midtrans", __name__)


@midtrans_bp.post("/api/midtrans/notify")
@midtrans_bp.post("/api/bookings/payment/webhook")
def midtrans_notification_route():
    """
    Handle a Midtrans payment notification.

    Request body:
    {
        "order_id": "DEP-12-LX3K9Q0AB",
        "transaction_status": "settlement",
        "status_code": "200",
        "gross_amount": "500000.00",
        "signature_key": "<sha512 hex>",
        "payment_type": "bank_transfer",
        "transaction_time": "2026-01-14 17:56:06",
        "transaction_id": "...",
        "fraud_status": "accept"
    }
    """
    payload = request.get_json(silent=True)
    order_id = payload.get("order_id") if isinstance(payload, dict) else None

    try:
        result = reconciliation_service.handle_notification(payload)
        return jsonify({"success": True, "data": result.to_dict()}), 200

    except InvalidSignatureError:
        current_app.logger.warning(
            "Rejected Midtrans notification with invalid signature (order_id=%s, ip=%s)",
            order_id, request.remote_addr,
        )
        return jsonify({"success": False, "error": "Invalid signature"}), 200

    except ValidationError as e:
        current_app.logger.warning("Malformed Midtrans notification (order_id=%s): %s", order_id, e)
        return jsonify({"success": False, "error": str(e)}), 200

    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to process Midtrans notification (order_id=%s)", order_id)
        return jsonify({"success": False, "error": "Notification could not be processed"}), 200


@midtrans_bp.get("/api/midtrans/notify")
@midtrans_bp.get("/api/bookings/payment/webhook")
def midtrans_notification_health_route():
    return jsonify({
        "success": True,
        "data": {"status": "ok", "timestamp": to_utc_z(utcnow())},
    }), 200
