# Overview: Flask API routes for booking operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..decorators import require_auth, require_role
from ..models.auth import ROLE_ADMINKOS, ROLE_CUSTOMER, ROLE_RECEPTIONIST, ROLE_SUPERADMIN
from ..services import booking_service, midtrans_client
from ..validation import DomainError, ValidationError, coerce_bool, coerce_date, coerce_int


bookings_bp = Blueprint("bookings", __name__, url_prefix="/api/bookings")
adminkos_bookings_bp = Blueprint("adminkos_bookings", __name__, url_prefix="/api/adminkos/bookings")


def _checkout_payload(booking, payment) -> dict:
    return {
        "booking": booking.to_dict(),
        "payment": payment.to_dict(),
        "snap": {
            "token": payment.payment_token,
            "redirect_url": payment.redirect_url,
            "client_key": midtrans_client.client_key(),
            "script_url": midtrans_client.snap_script_url(),
        },
    }


@bookings_bp.post("")
@require_auth
@require_role(ROLE_CUSTOMER)
def create_booking_route():
    """
    Create a booking and open the Snap checkout.

    Request body:
    {
        "room_id": 3,
        "lease_type": "MONTHLY",
        "check_in_date": "2026-11-01",
        "deposit_only": false
    }

    Returns 201 with booking, payment and snap token. A gateway failure
    answers 502 and the booking is expired (room released).
    """
    try:
        data = request.get_json(silent=True) or {}
        for field in ("room_id", "lease_type", "check_in_date"):
            if data.get(field) in (None, ""):
                raise ValidationError(f"{field} is required")

        booking, payment = booking_service.create_booking(
            g.current_user,
            room_id=coerce_int(data["room_id"], "room_id"),
            lease_type=data["lease_type"],
            check_in_date=coerce_date(data["check_in_date"], "check_in_date"),
            deposit_only=coerce_bool(data.get("deposit_only", False), "deposit_only"),
        )
        return jsonify({"success": True, "data": _checkout_payload(booking, payment)}), 201

    except DomainError as e:
        db.session.rollback()
        return jsonify({"success": False, "error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create booking")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@bookings_bp.get("")
@require_auth
def list_bookings_route():
    """
    Query params: status, property_id, limit (default 50, max 200), offset.
    """
    try:
        limit = max(1, min(request.args.get("limit", default=50, type=int), 200))
        offset = max(0, request.args.get("offset", default=0, type=int))
        rows, total = booking_service.list_bookings(
            g.current_user,
            status=request.args.get("status"),
            property_id=request.args.get("property_id", type=int),
            limit=limit,
            offset=offset,
        )
        return jsonify({
            "success": True,
            "data": {
                "items": [b.to_dict() for b in rows],
                "total": total,
                "limit": limit,
                "offset": offset,
            },
        }), 200
    except DomainError as e:
        return jsonify({"success": False, "error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list bookings")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@bookings_bp.get("/<int:booking_id>")
@require_auth
def get_booking_route(booking_id: int):
    try:
        booking = booking_service.get_booking_for_user(booking_id, g.current_user)
        return jsonify({"success": True, "data": booking.to_dict(include_payments=True)}), 200
    except DomainError as e:
        return jsonify({"success": False, "error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get booking")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@bookings_bp.patch("/<int:booking_id>/status")
@require_auth
@require_role(ROLE_ADMINKOS, ROLE_RECEPTIONIST, ROLE_SUPERADMIN)
def update_booking_status_route(booking_id: int):
    """
    Manual status change (check-in, check-out, confirm, cancel).

    Request body: {"status": "CHECKED_IN", "reason": "optional, for CANCELLED"}

    Returns {"booking": ..., "changed": bool}; changed=false means the
    booking was already in that status or is final.
    """
    try:
        data = request.get_json(silent=True) or {}
        status = (data.get("status") or "").upper()
        if not status:
            raise ValidationError("status is required")

        booking = booking_service.get_booking(booking_id)
        changed = booking_service.update_status(booking, status, g.current_user, reason=data.get("reason"))
        return jsonify({"success": True, "data": {"booking": booking.to_dict(), "changed": changed}}), 200

    except DomainError as e:
        db.session.rollback()
        return jsonify({"success": False, "error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update booking status")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@bookings_bp.post("/<int:booking_id>/cancel")
@require_auth
def cancel_booking_route(booking_id: int):
    """Request body: {"reason": "optional"}"""
    try:
        data = request.get_json(silent=True) or {}
        booking = booking_service.get_booking(booking_id)
        changed = booking_service.cancel_booking(booking, g.current_user, reason=data.get("reason"))
        return jsonify({"success": True, "data": {"booking": booking.to_dict(), "changed": changed}}), 200
    except DomainError as e:
        db.session.rollback()
        return jsonify({"success": False, "error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to cancel booking")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@bookings_bp.post("/<int:booking_id>/full-payment")
@require_auth
@require_role(ROLE_CUSTOMER)
def full_payment_route(booking_id: int):
    """Open the FULL payment for the remainder of a DEPOSIT_PAID booking."""
    try:
        booking = booking_service.get_booking(booking_id)
        payment = booking_service.create_full_payment(booking, g.current_user)
        return jsonify({"success": True, "data": _checkout_payload(booking, payment)}), 201
    except DomainError as e:
        db.session.rollback()
        return jsonify({"success": False, "error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create full payment")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@bookings_bp.get("/<int:booking_id>/extend")
@require_auth
def extension_info_route(booking_id: int):
    try:
        booking = booking_service.get_booking_for_user(booking_id, g.current_user)
        return jsonify({"success": True, "data": booking_service.get_extension_info(booking)}), 200
    except DomainError as e:
        return jsonify({"success": False, "error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get extension info")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@bookings_bp.post("/<int:booking_id>/extend")
@require_auth
@require_role(ROLE_CUSTOMER)
def extend_booking_route(booking_id: int):
    """
    Request body: {"periods": 1, "deposit_only": false}

    Creates a new booking chained to this one and opens its checkout.
    """
    try:
        data = request.get_json(silent=True) or {}
        booking = booking_service.get_booking(booking_id)
        extension, payment = booking_service.extend_booking(
            booking,
            g.current_user,
            periods=coerce_int(data.get("periods", 1), "periods"),
            deposit_only=coerce_bool(data.get("deposit_only", False), "deposit_only"),
        )
        return jsonify({"success": True, "data": _checkout_payload(extension, payment)}), 201
    except DomainError as e:
        db.session.rollback()
        return jsonify({"success": False, "error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to extend booking")
        return jsonify({"success": False, "error": "Internal server error"}), 500


# =============================================================================
# ADMINKOS MANUAL BOOKINGS
# =============================================================================


@adminkos_bookings_bp.post("/manual")
@require_auth
@require_role(ROLE_ADMINKOS)
def create_manual_booking_route():
    """
    Book a room in one of the caller's properties on behalf of a customer.

    Request body:
    {
        "customer_id": 12,
        "room_id": 3,
        "lease_type": "MONTHLY",
        "check_in_date": "2026-11-01",
        "deposit_only": false
    }

    Returns 201 with the same checkout payload as a customer booking; the
    payment link stays open for 24 hours.
    """
    try:
        data = request.get_json(silent=True) or {}
        for field in ("customer_id", "room_id", "lease_type", "check_in_date"):
            if data.get(field) in (None, ""):
                raise ValidationError(f"{field} is required")

        booking, payment = booking_service.create_manual_booking(
            g.current_user,
            customer_id=coerce_int(data["customer_id"], "customer_id"),
            room_id=coerce_int(data["room_id"], "room_id"),
            lease_type=data["lease_type"],
            check_in_date=coerce_date(data["check_in_date"], "check_in_date"),
            deposit_only=coerce_bool(data.get("deposit_only", False), "deposit_only"),
        )
        return jsonify({"success": True, "data": _checkout_payload(booking, payment)}), 201

    except DomainError as e:
        db.session.rollback()
        return jsonify({"success": False, "error": str(e)}), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create manual booking")
        return jsonify({"success": False, "error": "Internal server error"}), 500
