# Overview: Flask API routes for externally scheduled jobs guarded by the cron bearer secret.

import hmac

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..services import cleanup_service
from ..validation import ValidationError


cron_bp = Blueprint("cron", __name__, url_prefix="/api/cron")


@cron_bp.get("/cleanup-expired")
def cleanup_expired_route():
    """
    Expire overdue payments and delete abandoned unpaid bookings.

    Header: Authorization: Bearer <CRON_SECRET>

    Returns:
    {
        "success": true,
        "data": {
            "executedAt": "...Z",
            "graceMinutes": 30,
            "expiredPaymentsCount": 1,
            "deletedBookingsCount": 1,
            "deletedBookingIds": [12]
        }
    }

    Misconfiguration (no CRON_SECRET, bad BOOKING_UNPAID_GRACE_MINUTES)
    answers 500. A failing run is logged and answered 200 with
    success=false so the scheduler does not hammer a broken job.
    """
    secret = current_app.config.get("CRON_SECRET")
    if not secret:
        current_app.logger.error("CRON_SECRET is not configured; refusing to run cleanup")
        return jsonify({"success": False, "error": "Cron secret is not configured"}), 500

    auth_header = request.headers.get("Authorization") or ""
    if not hmac.compare_digest(auth_header.encode("utf-8"), f"Bearer {secret}".encode("utf-8")):
        current_app.logger.warning("Unauthorized cron call from %s", request.remote_addr)
        return jsonify({"success": False, "error": "Unauthorized"}), 401

    try:
        grace_minutes = cleanup_service.parse_grace_minutes(
            current_app.config.get("BOOKING_UNPAID_GRACE_MINUTES")
        )
    except ValidationError as e:
        current_app.logger.error("Invalid cleanup configuration: %s", e)
        return jsonify({"success": False, "error": str(e)}), 500

    try:
        report = cleanup_service.cleanup_expired_bookings(grace_minutes)
        return jsonify({"success": True, "data": report.to_dict()}), 200
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to clean up expired bookings")
        return jsonify({"success": False, "error": "Cleanup failed"}), 200
