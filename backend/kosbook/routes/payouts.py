# Overview: Flask API routes for bank accounts and payouts (AdminKos requests, superadmin decisions).

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..decorators import require_auth, require_role
from ..models.auth import ROLE_ADMINKOS, ROLE_SUPERADMIN
from ..services import ledger_service, payout_service
from ..validation import DomainError, ValidationError


payouts_bp = Blueprint("payouts", __name__, url_prefix="/api/adminkos")
superadmin_bp = Blueprint("superadmin", __name__, url_prefix="/api/superadmin")


def _error(e: DomainError):
    db.session.rollback()
    return jsonify({"success": False, "error": str(e)}), e.status_code


def _internal(message: str):
    db.session.rollback()
    current_app.logger.exception(message)
    return jsonify({"success": False, "error": "Internal server error"}), 500


# =============================================================================
# ADMINKOS
# =============================================================================


@payouts_bp.get("/bank-accounts")
@require_auth
@require_role(ROLE_ADMINKOS)
def list_bank_accounts_route():
    try:
        accounts = payout_service.list_bank_accounts(owner_id=g.current_user.id)
        return jsonify({"success": True, "data": [a.to_dict() for a in accounts]}), 200
    except Exception:
        return _internal("Failed to list bank accounts")


@payouts_bp.post("/bank-accounts")
@require_auth
@require_role(ROLE_ADMINKOS)
def create_bank_account_route():
    """
    Request body:
    {"bank_name": "BCA", "account_number": "1234567890", "account_name": "Budi"}

    New accounts are PENDING until a superadmin approves them.
    """
    try:
        data = request.get_json(silent=True) or {}
        account = payout_service.create_bank_account(
            g.current_user,
            bank_name=data.get("bank_name"),
            account_number=str(data.get("account_number") or ""),
            account_name=data.get("account_name"),
        )
        return jsonify({"success": True, "data": account.to_dict()}), 201
    except DomainError as e:
        return _error(e)
    except Exception:
        return _internal("Failed to create bank account")


@payouts_bp.get("/payouts")
@require_auth
@require_role(ROLE_ADMINKOS)
def list_payouts_route():
    """Query params: status (PENDING | APPROVED | REJECTED | COMPLETED)"""
    try:
        payouts = payout_service.list_payouts(
            owner_id=g.current_user.id, status=request.args.get("status")
        )
        return jsonify({"success": True, "data": [p.to_dict() for p in payouts]}), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        return _internal("Failed to list payouts")


@payouts_bp.post("/payouts")
@require_auth
@require_role(ROLE_ADMINKOS)
def request_payout_route():
    """
    Request body:
    {"bank_account_id": 1, "amount": 500000, "reason": "Penarikan bulanan", "notes": "optional"}

    400 when the amount exceeds the available balance; nothing is written.
    """
    try:
        data = request.get_json(silent=True) or {}
        for field in ("bank_account_id", "amount"):
            if data.get(field) in (None, ""):
                raise ValidationError(f"{field} is required")

        payout = payout_service.request_payout(
            g.current_user,
            bank_account_id=data["bank_account_id"],
            amount=data["amount"],
            reason=data.get("reason"),
            notes=data.get("notes"),
        )
        return jsonify({"success": True, "data": payout.to_dict()}), 201
    except DomainError as e:
        return _error(e)
    except Exception:
        return _internal("Failed to request payout")


@payouts_bp.get("/payouts/balance")
@require_auth
@require_role(ROLE_ADMINKOS)
def payout_balance_route():
    try:
        return jsonify({"success": True, "data": ledger_service.calculate_balance(g.current_user.id)}), 200
    except Exception:
        return _internal("Failed to calculate balance")


# =============================================================================
# SUPERADMIN
# =============================================================================


@superadmin_bp.get("/payouts")
@require_auth
@require_role(ROLE_SUPERADMIN)
def superadmin_list_payouts_route():
    try:
        payouts = payout_service.list_payouts(status=request.args.get("status"))
        return jsonify({"success": True, "data": [p.to_dict() for p in payouts]}), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        return _internal("Failed to list payouts")


@superadmin_bp.post("/payouts/<int:payout_id>/approve")
@require_auth
@require_role(ROLE_SUPERADMIN)
def approve_payout_route(payout_id: int):
    """
    Request body: {"attachments": ["https://.../bukti.jpg"], "notes": "optional"}

    Writes the OUT ledger entry in the same commit as the approval.
    """
    try:
        data = request.get_json(silent=True) or {}
        payout = payout_service.approve_payout(
            payout_id, g.current_user,
            attachments=data.get("attachments"),
            notes=data.get("notes"),
        )
        return jsonify({"success": True, "data": payout.to_dict()}), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        return _internal("Failed to approve payout")


@superadmin_bp.post("/payouts/<int:payout_id>/reject")
@require_auth
@require_role(ROLE_SUPERADMIN)
def reject_payout_route(payout_id: int):
    """Request body: {"reason": "..."}"""
    try:
        data = request.get_json(silent=True) or {}
        payout = payout_service.reject_payout(payout_id, g.current_user, reason=data.get("reason"))
        return jsonify({"success": True, "data": payout.to_dict()}), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        return _internal("Failed to reject payout")


@superadmin_bp.post("/payouts/<int:payout_id>/complete")
@require_auth
@require_role(ROLE_SUPERADMIN)
def complete_payout_route(payout_id: int):
    try:
        payout = payout_service.complete_payout(payout_id)
        return jsonify({"success": True, "data": payout.to_dict()}), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        return _internal("Failed to complete payout")


@superadmin_bp.get("/bank-accounts")
@require_auth
@require_role(ROLE_SUPERADMIN)
def superadmin_list_bank_accounts_route():
    try:
        accounts = payout_service.list_bank_accounts(status=request.args.get("status"))
        return jsonify({"success": True, "data": [a.to_dict() for a in accounts]}), 200
    except Exception:
        return _internal("Failed to list bank accounts")


@superadmin_bp.post("/bank-accounts/<int:account_id>/approve")
@require_auth
@require_role(ROLE_SUPERADMIN)
def approve_bank_account_route(account_id: int):
    try:
        account = payout_service.approve_bank_account(account_id)
        return jsonify({"success": True, "data": account.to_dict()}), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        return _internal("Failed to approve bank account")


@superadmin_bp.post("/bank-accounts/<int:account_id>/reject")
@require_auth
@require_role(ROLE_SUPERADMIN)
def reject_bank_account_route(account_id: int):
    """Request body: {"reason": "..."}"""
    try:
        data = request.get_json(silent=True) or {}
        account = payout_service.reject_bank_account(account_id, data.get("reason"))
        return jsonify({"success": True, "data": account.to_dict()}), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        return _internal("Failed to reject bank account")
