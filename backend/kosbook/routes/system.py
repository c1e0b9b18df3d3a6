# backend/kosbook/routes/system.py
"""
System health endpoint.

Reports database reachability and whether the payment gateway is
configured. Never exposes keys.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Booking, Payment, Property, Room, User
from ..models.booking import BOOKING_UNPAID, PAYMENT_PENDING
from kosbook.time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        details = {
            "users": db.session.query(User).count(),
            "properties": db.session.query(Property).count(),
            "rooms": db.session.query(Room).count(),
            "unpaid_bookings": db.session.query(Booking).filter_by(status=BOOKING_UNPAID).count(),
            "pending_payments": db.session.query(Payment).filter_by(status=PAYMENT_PENDING).count(),
        }
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": details,
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_gateway_config() -> dict:
    configured = bool(current_app.config.get("MIDTRANS_SERVER_KEY")) and bool(
        current_app.config.get("MIDTRANS_CLIENT_KEY")
    )
    return {
        "status": "healthy" if configured else "degraded",
        "details": {
            "midtrans_configured": configured,
            "midtrans_production": bool(current_app.config.get("MIDTRANS_IS_PRODUCTION")),
            "cron_secret_configured": bool(current_app.config.get("CRON_SECRET")),
        },
    }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy, or degraded (gateway keys missing)
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    gateway_health = check_gateway_config()

    if database_health["status"] == "unhealthy":
        overall_status, http_status = "unhealthy", 503
    elif gateway_health["status"] == "degraded":
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    return {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "payment_gateway": gateway_health,
        }
    }, http_status
