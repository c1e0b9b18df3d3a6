# Overview: Flask API routes for the AdminKos ledger; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..decorators import require_auth, require_role
from ..models.auth import ROLE_ADMINKOS
from ..services import ledger_service, ledger_sync_service
from ..validation import DomainError, ValidationError, coerce_int
from kosbook.time_utils import parse_iso_datetime

"""
Time semantics:
- API accepts ISO-8601 datetimes with Z/offsets; backend normalizes to UTC-naive internally.
- start / end filters are inclusive.
"""

ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/adminkos/ledger")


def _date_range():
    try:
        start = parse_iso_datetime(request.args.get("start_date"))
        end = parse_iso_datetime(request.args.get("end_date"))
    except ValueError:
        raise ValidationError("start_date and end_date must be ISO-8601 datetimes")
    return start, end


def _error(e: DomainError):
    db.session.rollback()
    return jsonify({"success": False, "error": str(e)}), e.status_code


def _internal(message: str):
    db.session.rollback()
    current_app.logger.exception(message)
    return jsonify({"success": False, "error": "Internal server error"}), 500


# =============================================================================
# ACCOUNTS
# =============================================================================


@ledger_bp.get("/accounts")
@require_auth
@require_role(ROLE_ADMINKOS)
def list_accounts_route():
    try:
        include_inactive = request.args.get("include_inactive", "false").lower() == "true"
        accounts = ledger_service.list_accounts(g.current_user.id, include_inactive=include_inactive)
        return jsonify({"success": True, "data": [a.to_dict() for a in accounts]}), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        return _internal("Failed to list ledger accounts")


@ledger_bp.post("/accounts")
@require_auth
@require_role(ROLE_ADMINKOS)
def create_account_route():
    """Request body: {"name": "Listrik", "type": "EXPENSE"}"""
    try:
        account = ledger_service.create_account(g.current_user.id, request.get_json(silent=True))
        return jsonify({"success": True, "data": account.to_dict()}), 201
    except DomainError as e:
        return _error(e)
    except Exception:
        return _internal("Failed to create ledger account")


@ledger_bp.patch("/accounts/<int:account_id>")
@require_auth
@require_role(ROLE_ADMINKOS)
def update_account_route(account_id: int):
    """Request body: any of {"name", "type", "is_active"}"""
    try:
        account = ledger_service.get_account(g.current_user.id, account_id)
        account = ledger_service.update_account(account, request.get_json(silent=True))
        return jsonify({"success": True, "data": account.to_dict()}), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        return _internal("Failed to update ledger account")


# =============================================================================
# ENTRIES
# =============================================================================


@ledger_bp.get("/entries")
@require_auth
@require_role(ROLE_ADMINKOS)
def list_entries_route():
    """
    Query params: account_id, direction, ref_type, property_id,
    start_date, end_date, limit (max 500), cursor (<ISO-8601>|<id>).
    """
    try:
        limit = max(1, min(request.args.get("limit", default=100, type=int), 500))
        start, end = _date_range()

        cursor = None
        cursor_raw = request.args.get("cursor")
        if cursor_raw:
            try:
                cursor_parts = cursor_raw.split("|")
                cursor = (parse_iso_datetime(cursor_parts[0]), int(cursor_parts[1]))
            except (ValueError, IndexError):
                raise ValidationError("cursor must be in format <ISO-8601>|<id>")

        rows, next_cursor = ledger_service.list_entries(
            g.current_user.id,
            account_id=request.args.get("account_id", type=int),
            direction=request.args.get("direction"),
            ref_type=request.args.get("ref_type"),
            property_id=request.args.get("property_id", type=int),
            start=start,
            end=end,
            cursor=cursor,
            limit=limit,
        )
        return jsonify({
            "success": True,
            "data": {
                "items": [r.to_dict() for r in rows],
                "next_cursor": next_cursor,
                "limit": limit,
            },
        }), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        return _internal("Failed to list ledger entries")


@ledger_bp.post("/entries")
@require_auth
@require_role(ROLE_ADMINKOS)
def create_entry_route():
    """
    Request body:
    {
        "account_id": 4,
        "direction": "OUT",
        "amount": 150000,
        "note": "Tagihan listrik",
        "date": "2026-01-14T10:00:00Z",
        "property_id": 1
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        for field in ("account_id", "direction", "amount"):
            if data.get(field) in (None, ""):
                raise ValidationError(f"{field} is required")
        try:
            date = parse_iso_datetime(data.get("date"))
        except ValueError:
            raise ValidationError("date must be an ISO-8601 datetime")

        property_id = data.get("property_id")
        entry = ledger_service.create_manual_entry(
            owner_id=g.current_user.id,
            account_id=coerce_int(data["account_id"], "account_id"),
            direction=str(data["direction"]).upper(),
            amount=coerce_int(data["amount"], "amount"),
            created_by=g.current_user.id,
            note=data.get("note"),
            date=date,
            property_id=coerce_int(property_id, "property_id") if property_id is not None else None,
        )
        return jsonify({"success": True, "data": entry.to_dict()}), 201
    except DomainError as e:
        return _error(e)
    except Exception:
        return _internal("Failed to create ledger entry")


@ledger_bp.patch("/entries/<int:entry_id>")
@require_auth
@require_role(ROLE_ADMINKOS)
def adjust_entry_route(entry_id: int):
    """
    Edit a manual entry. note/date change in place; amount/direction
    changes are recorded as an ADJUSTMENT entry.

    Returns {"entry": ..., "adjustment": ... | null}
    """
    try:
        data = request.get_json(silent=True) or {}
        try:
            date = parse_iso_datetime(data.get("date"))
        except ValueError:
            raise ValidationError("date must be an ISO-8601 datetime")

        entry = ledger_service.get_entry(g.current_user.id, entry_id)
        entry, adjustment = ledger_service.adjust_entry(
            entry,
            created_by=g.current_user.id,
            amount=coerce_int(data["amount"], "amount") if data.get("amount") is not None else None,
            direction=str(data["direction"]).upper() if data.get("direction") else None,
            note=data.get("note"),
            date=date,
        )
        return jsonify({
            "success": True,
            "data": {
                "entry": entry.to_dict(),
                "adjustment": adjustment.to_dict() if adjustment else None,
            },
        }), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        return _internal("Failed to adjust ledger entry")


@ledger_bp.delete("/entries/<int:entry_id>")
@require_auth
@require_role(ROLE_ADMINKOS)
def reverse_entry_route(entry_id: int):
    """Cancel a manual entry by appending its reversal."""
    try:
        entry = ledger_service.get_entry(g.current_user.id, entry_id)
        reversal = ledger_service.reverse_entry(entry, created_by=g.current_user.id)
        return jsonify({"success": True, "data": reversal.to_dict()}), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        return _internal("Failed to reverse ledger entry")


# =============================================================================
# REPORTS
# =============================================================================


@ledger_bp.get("/balance")
@require_auth
@require_role(ROLE_ADMINKOS)
def balance_route():
    try:
        return jsonify({"success": True, "data": ledger_service.calculate_balance(g.current_user.id)}), 200
    except Exception:
        return _internal("Failed to calculate ledger balance")


@ledger_bp.get("/summary")
@require_auth
@require_role(ROLE_ADMINKOS)
def summary_route():
    try:
        start, end = _date_range()
        return jsonify({"success": True, "data": ledger_service.get_summary(g.current_user.id, start, end)}), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        return _internal("Failed to build ledger summary")


@ledger_bp.get("/breakdown")
@require_auth
@require_role(ROLE_ADMINKOS)
def breakdown_route():
    try:
        start, end = _date_range()
        return jsonify({"success": True, "data": ledger_service.get_breakdown(g.current_user.id, start, end)}), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        return _internal("Failed to build ledger breakdown")


@ledger_bp.get("/timeseries")
@require_auth
@require_role(ROLE_ADMINKOS)
def timeseries_route():
    """Query params: start_date, end_date, group_by (day | week | month)."""
    try:
        start, end = _date_range()
        series = ledger_service.get_timeseries(
            g.current_user.id, start, end, request.args.get("group_by", "day")
        )
        return jsonify({"success": True, "data": series}), 200
    except DomainError as e:
        return _error(e)
    except Exception:
        return _internal("Failed to build ledger timeseries")


# =============================================================================
# SYNC
# =============================================================================


@ledger_bp.get("/sync")
@require_auth
@require_role(ROLE_ADMINKOS)
def sync_status_route():
    try:
        return jsonify({"success": True, "data": ledger_sync_service.get_sync_status(g.current_user.id)}), 200
    except Exception:
        return _internal("Failed to get ledger sync status")


@ledger_bp.post("/sync")
@require_auth
@require_role(ROLE_ADMINKOS)
def sync_fix_route():
    """Backfill ledger entries for settled payments and approved payouts."""
    try:
        return jsonify({"success": True, "data": ledger_sync_service.fix_missing_entries(g.current_user.id)}), 200
    except Exception:
        return _internal("Failed to sync ledger")
