# Overview: Ledger integrity checks and backfill for payments and payouts missing their entries.

from __future__ import annotations

from flask import current_app
from sqlalchemy import String, cast, func, select

from ..extensions import db
from ..models import Booking, LedgerEntry, Payment, Payout, Property
from ..models.booking import PAYMENT_SUCCESS
from . import ledger_service
from .ledger_service import REF_ADJUSTMENT, REF_MANUAL, REF_PAYMENT, REF_PAYOUT


SYNCED_PAYOUT_STATUSES = ("APPROVED", "COMPLETED")


def _unsynced_payments_query(owner_id: int | None = None):
    synced = select(LedgerEntry.ref_id).where(LedgerEntry.ref_type == REF_PAYMENT)
    q = (
        db.session.query(Payment)
        .join(Booking, Booking.id == Payment.booking_id)
        .join(Property, Property.id == Booking.property_id)
        .filter(Payment.status == PAYMENT_SUCCESS)
        .filter(cast(Payment.id, String).notin_(synced))
    )
    if owner_id is not None:
        q = q.filter(Property.owner_id == owner_id)
    return q


def _unsynced_payouts_query(owner_id: int | None = None):
    synced = select(LedgerEntry.ref_id).where(LedgerEntry.ref_type == REF_PAYOUT)
    q = (
        db.session.query(Payout)
        .filter(Payout.status.in_(SYNCED_PAYOUT_STATUSES))
        .filter(cast(Payout.id, String).notin_(synced))
    )
    if owner_id is not None:
        q = q.filter(Payout.owner_id == owner_id)
    return q


def validate_payment_sync(owner_id: int | None = None) -> dict:
    """SUCCESS payments that have no PAYMENT ledger entry."""
    missing = _unsynced_payments_query(owner_id).order_by(Payment.id.asc()).all()
    return {
        "is_valid": not missing,
        "missing_count": len(missing),
        "missing_payment_ids": [p.id for p in missing],
    }


def validate_payout_sync(owner_id: int | None = None) -> dict:
    """APPROVED / COMPLETED payouts that have no PAYOUT ledger entry."""
    missing = _unsynced_payouts_query(owner_id).order_by(Payout.id.asc()).all()
    return {
        "is_valid": not missing,
        "missing_count": len(missing),
        "missing_payout_ids": [p.id for p in missing],
    }


def _backfill(items, sync, label: str) -> dict:
    """
    Sync each item; a row that fails validation is reported and skipped.
    The sync hooks validate before writing, so a failure leaves nothing behind.
    """
    result = {"processed": 0, "synced": 0, "errors": []}
    for item in items:
        result["processed"] += 1
        try:
            sync(item)
            result["synced"] += 1
        except (ledger_service.LedgerError, ValueError) as exc:
            current_app.logger.warning("Ledger backfill failed for %s %s: %s", label, item.id, exc)
            result["errors"].append({"id": item.id, "error": str(exc)})
    db.session.commit()
    return result


def sync_existing_success_payments(owner_id: int | None = None) -> dict:
    items = _unsynced_payments_query(owner_id).order_by(Payment.id.asc()).all()
    return _backfill(items, ledger_service.sync_payment_to_ledger, "payment")


def sync_existing_approved_payouts(owner_id: int | None = None) -> dict:
    items = _unsynced_payouts_query(owner_id).order_by(Payout.id.asc()).all()
    return _backfill(items, ledger_service.sync_payout_to_ledger, "payout")


def fix_missing_entries(owner_id: int | None = None) -> dict:
    """Backfill every missing payment and payout entry."""
    payments = sync_existing_success_payments(owner_id)
    payouts = sync_existing_approved_payouts(owner_id)
    current_app.logger.info(
        "Ledger backfill (owner=%s): %s payment entries, %s payout entries",
        owner_id, payments["synced"], payouts["synced"],
    )
    return {"payments": payments, "payouts": payouts}


def get_sync_status(owner_id: int) -> dict:
    counts = dict(
        db.session.query(LedgerEntry.ref_type, func.count(LedgerEntry.id))
        .filter(LedgerEntry.owner_id == owner_id)
        .group_by(LedgerEntry.ref_type)
        .all()
    )
    return {
        "entries": {
            ref_type: int(counts.get(ref_type, 0))
            for ref_type in (REF_PAYMENT, REF_PAYOUT, REF_MANUAL, REF_ADJUSTMENT)
        },
        "missing_payments": validate_payment_sync(owner_id)["missing_count"],
        "missing_payouts": validate_payout_sync(owner_id)["missing_count"],
    }
