# Overview: Service-layer operations for the AdminKos ledger; encapsulates business logic and database work.

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import and_, func, or_

from ..extensions import db
from ..models import Booking, LedgerAccount, LedgerEntry, Payment, Payout
from ..validation import DomainError, ModelValidationPolicy, NotFoundError, ValidationError, enforce_amount, validate_payload
from .concurrency import run_with_retry
from kosbook.time_utils import utcnow, to_utc_z

"""
AdminKos Ledger Invariants (authoritative)

- balance = sum(IN) - sum(OUT) over an owner's entries, nothing else.
- Entry amounts are append-only. A correction is an ADJUSTMENT entry that
  points at the entry it corrects (adjusts_entry_id); historical amounts
  are never rewritten.
- A payment or payout is mirrored at most once: (ref_type, ref_id) is unique
  and every sync looks the reference up first.
- append_entry() only flushes; the caller owns the transaction so the entry
  commits together with the payment / payout change it records.
"""

DIRECTION_IN = "IN"
DIRECTION_OUT = "OUT"
VALID_DIRECTIONS = {DIRECTION_IN, DIRECTION_OUT}

ACCOUNT_INCOME = "INCOME"
ACCOUNT_EXPENSE = "EXPENSE"
ACCOUNT_OTHER = "OTHER"
VALID_ACCOUNT_TYPES = {ACCOUNT_INCOME, ACCOUNT_EXPENSE, ACCOUNT_OTHER}

REF_PAYMENT = "PAYMENT"
REF_PAYOUT = "PAYOUT"
REF_MANUAL = "MANUAL"
REF_ADJUSTMENT = "ADJUSTMENT"

SYSTEM_ACTOR = "SYSTEM"

PAYMENT_ACCOUNT_NAME = "Pembayaran Kos"
PAYOUT_ACCOUNT_NAME = "Penarikan Dana"

SYSTEM_ACCOUNTS = (
    (PAYMENT_ACCOUNT_NAME, ACCOUNT_INCOME),
    (PAYOUT_ACCOUNT_NAME, ACCOUNT_OTHER),
)

# Which account types may carry which direction
_DIRECTION_ACCOUNT_TYPES = {
    DIRECTION_IN: {ACCOUNT_INCOME, ACCOUNT_OTHER},
    DIRECTION_OUT: {ACCOUNT_EXPENSE, ACCOUNT_OTHER},
}

ACCOUNT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "type", "is_active"},
    required_on_create={"name", "type"},
)

VALID_GROUP_BY = {"day", "week", "month"}


class LedgerError(DomainError):
    """Raised when a ledger operation breaks an accounting rule."""
    pass


# =============================================================================
# ACCOUNTS
# =============================================================================


def ensure_system_accounts(owner_id: int) -> dict[str, LedgerAccount]:
    """
    Idempotently create the system accounts for an owner.

    System account names are reserved per owner; a non-system account holding
    one raises LedgerError instead of being used for synced entries.
    Flushes only; safe to call inside another operation's transaction.
    """
    reserved = [name for name, _ in SYSTEM_ACCOUNTS]
    existing = {}
    for account in db.session.query(LedgerAccount).filter(
        LedgerAccount.owner_id == owner_id,
        LedgerAccount.name.in_(reserved),
    ).all():
        if not account.is_system:
            raise LedgerError(f"Nama akun '{account.name}' dicadangkan untuk akun sistem", status_code=409)
        existing[account.name] = account
    for name, account_type in SYSTEM_ACCOUNTS:
        if name not in existing:
            account = LedgerAccount(
                owner_id=owner_id,
                name=name,
                type=account_type,
                is_system=True,
                is_active=True,
            )
            db.session.add(account)
            existing[name] = account
    db.session.flush()
    return existing


def get_account(owner_id: int, account_id: int) -> LedgerAccount:
    account = db.session.query(LedgerAccount).filter_by(id=account_id, owner_id=owner_id).first()
    if not account:
        raise NotFoundError("Akun tidak ditemukan")
    return account


def list_accounts(owner_id: int, include_inactive: bool = False) -> list[LedgerAccount]:
    ensure_system_accounts(owner_id)
    db.session.commit()
    q = db.session.query(LedgerAccount).filter(LedgerAccount.owner_id == owner_id)
    if not include_inactive:
        q = q.filter(LedgerAccount.is_active.is_(True))
    return q.order_by(LedgerAccount.is_system.desc(), LedgerAccount.name.asc()).all()


def create_account(owner_id: int, payload: dict) -> LedgerAccount:
    patch = validate_payload(model=LedgerAccount, payload=payload, policy=ACCOUNT_POLICY, partial=False)
    account_type = patch["type"].upper()
    if account_type not in VALID_ACCOUNT_TYPES:
        raise ValidationError(f"Invalid account type: {patch['type']}")

    ensure_system_accounts(owner_id)
    if db.session.query(LedgerAccount).filter_by(owner_id=owner_id, name=patch["name"]).first():
        raise LedgerError("Nama akun sudah digunakan", status_code=409)

    account = LedgerAccount(
        owner_id=owner_id,
        name=patch["name"],
        type=account_type,
        is_system=False,
        is_active=patch.get("is_active", True),
    )
    db.session.add(account)
    db.session.commit()
    return account


def update_account(account: LedgerAccount, payload: dict) -> LedgerAccount:
    """Rename / retype / (de)activate a non-system account."""
    if account.is_system:
        raise LedgerError("Akun sistem tidak dapat diubah", status_code=403)
    ensure_system_accounts(account.owner_id)

    patch = validate_payload(model=LedgerAccount, payload=payload, policy=ACCOUNT_POLICY, partial=True)
    if "type" in patch:
        new_type = patch["type"].upper()
        if new_type not in VALID_ACCOUNT_TYPES:
            raise ValidationError(f"Invalid account type: {patch['type']}")
        has_entries = db.session.query(LedgerEntry.id).filter_by(account_id=account.id).first() is not None
        if has_entries and new_type != account.type:
            raise LedgerError("Tipe akun tidak dapat diubah karena sudah memiliki entri", status_code=409)
        account.type = new_type
    if "name" in patch and patch["name"] != account.name:
        clash = db.session.query(LedgerAccount).filter_by(owner_id=account.owner_id, name=patch["name"]).first()
        if clash:
            raise LedgerError("Nama akun sudah digunakan", status_code=409)
        account.name = patch["name"]
    if "is_active" in patch:
        account.is_active = patch["is_active"]

    db.session.commit()
    return account


# =============================================================================
# ENTRIES
# =============================================================================


def append_entry(
    *,
    owner_id: int,
    account: LedgerAccount,
    direction: str,
    amount: int,
    ref_type: str,
    ref_id: str | None = None,
    note: str | None = None,
    date: Optional[datetime] = None,
    property_id: int | None = None,
    created_by: str = SYSTEM_ACTOR,
    adjusts_entry_id: int | None = None,
) -> LedgerEntry:
    """
    Append-only ledger write.

    - No updates of existing entries.
    - Flushes only; the caller commits.
    - ADJUSTMENT entries skip the direction/account-type rule because a
      correction may need to move either way on the original account.
    """
    if direction not in VALID_DIRECTIONS:
        raise ValidationError(f"Invalid direction: {direction}")
    enforce_amount(amount)
    if account.owner_id != owner_id:
        raise LedgerError("Akun bukan milik pemilik ledger ini", status_code=403)
    if ref_type != REF_ADJUSTMENT and account.type not in _DIRECTION_ACCOUNT_TYPES[direction]:
        raise LedgerError(
            f"Arah {direction} tidak sesuai dengan tipe akun {account.type}"
        )

    entry = LedgerEntry(
        owner_id=owner_id,
        account_id=account.id,
        direction=direction,
        amount=amount,
        date=(date or utcnow()).replace(microsecond=0),
        note=note,
        ref_type=ref_type,
        ref_id=ref_id,
        property_id=property_id,
        created_by=created_by,
        adjusts_entry_id=adjusts_entry_id,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def find_entry_by_ref(ref_type: str, ref_id) -> LedgerEntry | None:
    return db.session.query(LedgerEntry).filter_by(ref_type=ref_type, ref_id=str(ref_id)).first()


def get_entry(owner_id: int, entry_id: int) -> LedgerEntry:
    entry = db.session.query(LedgerEntry).filter_by(id=entry_id, owner_id=owner_id).first()
    if not entry:
        raise NotFoundError("Entri tidak ditemukan")
    return entry


def create_manual_entry(
    *,
    owner_id: int,
    account_id: int,
    direction: str,
    amount: int,
    created_by: int,
    note: str | None = None,
    date: Optional[datetime] = None,
    property_id: int | None = None,
) -> LedgerEntry:
    def _op():
        account = get_account(owner_id, account_id)
        if not account.is_active:
            raise LedgerError("Akun tidak aktif")
        entry = append_entry(
            owner_id=owner_id,
            account=account,
            direction=direction,
            amount=amount,
            ref_type=REF_MANUAL,
            note=note,
            date=date,
            property_id=property_id,
            created_by=str(created_by),
        )
        db.session.commit()
        return entry

    return run_with_retry(_op)


def _signed(direction: str, amount: int) -> int:
    return amount if direction == DIRECTION_IN else -amount


def effective_amount(entry: LedgerEntry) -> int:
    """Signed value of an entry after all ADJUSTMENT entries that correct it."""
    total = _signed(entry.direction, entry.amount)
    for adj in db.session.query(LedgerEntry).filter_by(adjusts_entry_id=entry.id).all():
        total += _signed(adj.direction, adj.amount)
    return total


def _append_correction(entry: LedgerEntry, delta: int, created_by: int, note: str) -> LedgerEntry:
    return append_entry(
        owner_id=entry.owner_id,
        account=entry.account,
        direction=DIRECTION_IN if delta > 0 else DIRECTION_OUT,
        amount=abs(delta),
        ref_type=REF_ADJUSTMENT,
        note=note,
        property_id=entry.property_id,
        created_by=str(created_by),
        adjusts_entry_id=entry.id,
    )


def adjust_entry(
    entry: LedgerEntry,
    *,
    created_by: int,
    amount: int | None = None,
    direction: str | None = None,
    note: str | None = None,
    date: Optional[datetime] = None,
) -> tuple[LedgerEntry, LedgerEntry | None]:
    """
    Edit a MANUAL entry.

    note/date are descriptive and change in place. An amount or direction
    change writes an ADJUSTMENT entry for the signed difference between the
    entry's current effective value and the requested one.

    Returns (entry, adjustment_or_None).
    """
    if entry.ref_type != REF_MANUAL:
        raise LedgerError("Hanya entri manual yang dapat diubah", status_code=403)

    def _op():
        if note is not None:
            entry.note = note
        if date is not None:
            entry.date = date.replace(microsecond=0)

        adjustment = None
        if amount is not None or direction is not None:
            target_direction = direction or entry.direction
            if target_direction not in VALID_DIRECTIONS:
                raise ValidationError(f"Invalid direction: {target_direction}")
            target_amount = entry.amount if amount is None else amount
            enforce_amount(target_amount)
            if entry.account.type not in _DIRECTION_ACCOUNT_TYPES[target_direction]:
                raise LedgerError(
                    f"Arah {target_direction} tidak sesuai dengan tipe akun {entry.account.type}"
                )
            delta = _signed(target_direction, target_amount) - effective_amount(entry)
            if delta:
                adjustment = _append_correction(
                    entry, delta, created_by, f"Koreksi entri #{entry.id}"
                )

        db.session.commit()
        return entry, adjustment

    return run_with_retry(_op)


def reverse_entry(entry: LedgerEntry, *, created_by: int) -> LedgerEntry:
    """Cancel a MANUAL entry by appending the opposite ADJUSTMENT."""
    if entry.ref_type != REF_MANUAL:
        raise LedgerError("Hanya entri manual yang dapat dibatalkan", status_code=403)

    def _op():
        remaining = effective_amount(entry)
        if remaining == 0:
            raise LedgerError("Entri sudah dibatalkan", status_code=409)
        reversal = _append_correction(
            entry, -remaining, created_by, f"Pembatalan entri #{entry.id}"
        )
        db.session.commit()
        return reversal

    return run_with_retry(_op)


def list_entries(
    owner_id: int,
    *,
    account_id: int | None = None,
    direction: str | None = None,
    ref_type: str | None = None,
    property_id: int | None = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    cursor: tuple[datetime, int] | None = None,
    limit: int = 100,
) -> tuple[list[LedgerEntry], str | None]:
    """Newest-first page of entries plus the "<ISO-8601>|<id>" cursor for the next page."""
    q = db.session.query(LedgerEntry).filter(LedgerEntry.owner_id == owner_id)
    if account_id is not None:
        q = q.filter(LedgerEntry.account_id == account_id)
    if direction:
        q = q.filter(LedgerEntry.direction == direction)
    if ref_type:
        q = q.filter(LedgerEntry.ref_type == ref_type)
    if property_id is not None:
        q = q.filter(LedgerEntry.property_id == property_id)
    if start is not None:
        q = q.filter(LedgerEntry.date >= start)
    if end is not None:
        q = q.filter(LedgerEntry.date <= end)
    if cursor is not None:
        cursor_dt, cursor_id = cursor
        q = q.filter(
            or_(
                LedgerEntry.date < cursor_dt,
                and_(LedgerEntry.date == cursor_dt, LedgerEntry.id < cursor_id),
            )
        )

    rows = q.order_by(LedgerEntry.date.desc(), LedgerEntry.id.desc()).limit(limit).all()
    next_cursor = None
    if len(rows) == limit:
        last = rows[-1]
        next_cursor = f"{to_utc_z(last.date)}|{last.id}"
    return rows, next_cursor


# =============================================================================
# SYNC HOOKS
# =============================================================================


def sync_payment_to_ledger(payment: Payment) -> LedgerEntry:
    """
    Mirror a SUCCESS payment into its property owner's ledger.

    Idempotent: returns the existing entry if the payment is already synced.
    Flushes only; commits with the caller's payment update.
    """
    if payment.status != "SUCCESS":
        raise LedgerError(f"Payment {payment.id} is not SUCCESS")

    existing = find_entry_by_ref(REF_PAYMENT, payment.id)
    if existing:
        return existing

    booking = payment.booking or db.session.get(Booking, payment.booking_id)
    owner_id = booking.property.owner_id
    accounts = ensure_system_accounts(owner_id)

    return append_entry(
        owner_id=owner_id,
        account=accounts[PAYMENT_ACCOUNT_NAME],
        direction=DIRECTION_IN,
        amount=payment.amount,
        ref_type=REF_PAYMENT,
        ref_id=str(payment.id),
        note=f"Pembayaran booking dari Payment ID: {payment.id}",
        date=payment.paid_at or utcnow(),
        property_id=booking.property_id,
        created_by=SYSTEM_ACTOR,
    )


def sync_payout_to_ledger(payout: Payout) -> LedgerEntry:
    """
    Mirror an APPROVED / COMPLETED payout as an OUT entry. Idempotent, flush only.
    """
    if payout.status not in ("APPROVED", "COMPLETED"):
        raise LedgerError(f"Payout {payout.id} is not approved")

    existing = find_entry_by_ref(REF_PAYOUT, payout.id)
    if existing:
        return existing

    accounts = ensure_system_accounts(payout.owner_id)
    return append_entry(
        owner_id=payout.owner_id,
        account=accounts[PAYOUT_ACCOUNT_NAME],
        direction=DIRECTION_OUT,
        amount=payout.amount,
        ref_type=REF_PAYOUT,
        ref_id=str(payout.id),
        note=f"Penarikan dana dari Payout ID: {payout.id}",
        date=payout.processed_at or utcnow(),
        created_by=SYSTEM_ACTOR,
    )


# =============================================================================
# BALANCES & REPORTS
# =============================================================================


def _sum_entries(owner_id: int, direction: str, start=None, end=None) -> int:
    q = db.session.query(func.coalesce(func.sum(LedgerEntry.amount), 0)).filter(
        LedgerEntry.owner_id == owner_id,
        LedgerEntry.direction == direction,
    )
    if start is not None:
        q = q.filter(LedgerEntry.date >= start)
    if end is not None:
        q = q.filter(LedgerEntry.date <= end)
    return int(q.scalar() or 0)


def _sum_payouts(owner_id: int, statuses: tuple[str, ...]) -> int:
    total = db.session.query(func.coalesce(func.sum(Payout.amount), 0)).filter(
        Payout.owner_id == owner_id,
        Payout.status.in_(statuses),
    ).scalar()
    return int(total or 0)


def calculate_balance(owner_id: int) -> dict:
    """
    Owner balance.

    total_balance = sum(IN) - sum(OUT); approved payouts are already OUT
    entries, so only PENDING payouts are subtracted again for
    available_balance.
    """
    total_income = _sum_entries(owner_id, DIRECTION_IN)
    total_expense = _sum_entries(owner_id, DIRECTION_OUT)
    total_balance = total_income - total_expense
    pending_withdrawals = _sum_payouts(owner_id, ("PENDING",))

    return {
        "total_income": total_income,
        "total_expense": total_expense,
        "total_balance": total_balance,
        "pending_withdrawals": pending_withdrawals,
        "available_balance": total_balance - pending_withdrawals,
        "total_withdrawals": _sum_payouts(owner_id, ("APPROVED", "COMPLETED")),
    }


def get_summary(owner_id: int, start: Optional[datetime] = None, end: Optional[datetime] = None) -> dict:
    income = _sum_entries(owner_id, DIRECTION_IN, start, end)
    expense = _sum_entries(owner_id, DIRECTION_OUT, start, end)
    q = db.session.query(func.count(LedgerEntry.id)).filter(LedgerEntry.owner_id == owner_id)
    if start is not None:
        q = q.filter(LedgerEntry.date >= start)
    if end is not None:
        q = q.filter(LedgerEntry.date <= end)
    return {
        "start": to_utc_z(start),
        "end": to_utc_z(end),
        "total_in": income,
        "total_out": expense,
        "net": income - expense,
        "entry_count": int(q.scalar() or 0),
    }


def get_breakdown(owner_id: int, start: Optional[datetime] = None, end: Optional[datetime] = None) -> list[dict]:
    """Per-account IN / OUT totals for the period."""
    q = (
        db.session.query(
            LedgerAccount.id,
            LedgerAccount.name,
            LedgerAccount.type,
            LedgerEntry.direction,
            func.coalesce(func.sum(LedgerEntry.amount), 0),
            func.count(LedgerEntry.id),
        )
        .join(LedgerEntry, LedgerEntry.account_id == LedgerAccount.id)
        .filter(LedgerEntry.owner_id == owner_id)
    )
    if start is not None:
        q = q.filter(LedgerEntry.date >= start)
    if end is not None:
        q = q.filter(LedgerEntry.date <= end)
    q = q.group_by(LedgerAccount.id, LedgerAccount.name, LedgerAccount.type, LedgerEntry.direction)

    rows: "OrderedDict[int, dict]" = OrderedDict()
    for account_id, name, account_type, direction, total, count in q.all():
        row = rows.setdefault(account_id, {
            "account_id": account_id,
            "account_name": name,
            "account_type": account_type,
            "total_in": 0,
            "total_out": 0,
            "entry_count": 0,
        })
        if direction == DIRECTION_IN:
            row["total_in"] += int(total)
        else:
            row["total_out"] += int(total)
        row["entry_count"] += int(count)

    for row in rows.values():
        row["net"] = row["total_in"] - row["total_out"]
    return sorted(rows.values(), key=lambda r: (-(r["total_in"] + r["total_out"]), r["account_name"]))


def _bucket_key(dt: datetime, group_by: str) -> str:
    if group_by == "day":
        return dt.date().isoformat()
    if group_by == "week":
        monday = dt.date() - timedelta(days=dt.weekday())
        return monday.isoformat()
    return dt.strftime("%Y-%m")


def get_timeseries(
    owner_id: int,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    group_by: str = "day",
) -> list[dict]:
    """
    IN / OUT totals per day, ISO week (keyed by Monday) or month, with the
    running balance at the end of each bucket.
    """
    if group_by not in VALID_GROUP_BY:
        raise ValidationError(f"group_by must be one of: {', '.join(sorted(VALID_GROUP_BY))}")

    opening = 0
    if start is not None:
        before = start - timedelta(microseconds=1)
        opening = _sum_entries(owner_id, DIRECTION_IN, None, before) - _sum_entries(owner_id, DIRECTION_OUT, None, before)

    q = db.session.query(LedgerEntry).filter(LedgerEntry.owner_id == owner_id)
    if start is not None:
        q = q.filter(LedgerEntry.date >= start)
    if end is not None:
        q = q.filter(LedgerEntry.date <= end)

    buckets: "OrderedDict[str, dict]" = OrderedDict()
    for entry in q.order_by(LedgerEntry.date.asc(), LedgerEntry.id.asc()).all():
        key = _bucket_key(entry.date, group_by)
        bucket = buckets.setdefault(key, {"period": key, "total_in": 0, "total_out": 0})
        if entry.direction == DIRECTION_IN:
            bucket["total_in"] += entry.amount
        else:
            bucket["total_out"] += entry.amount

    running = opening
    for bucket in buckets.values():
        bucket["net"] = bucket["total_in"] - bucket["total_out"]
        running += bucket["net"]
        bucket["balance"] = running
    return list(buckets.values())
