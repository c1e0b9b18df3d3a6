# Overview: Service-layer operations for AdminKos bank accounts and payouts; encapsulates business logic and database work.

"""
Payouts

WHY: An AdminKos withdraws money the ledger says they have. The request is
checked against the available balance (ledger balance minus payouts still
PENDING) before anything is written; the OUT ledger entry is only written
when the superadmin approves.

Status flow: PENDING -> APPROVED -> COMPLETED, or PENDING -> REJECTED.
"""

from __future__ import annotations

from ..extensions import db
from ..models import BankAccount, Payout, User
from ..models.auth import ROLE_ADMINKOS
from ..validation import DomainError, ForbiddenError, NotFoundError, ValidationError, coerce_int
from . import ledger_service
from .concurrency import lock_for_update, run_with_retry
from kosbook.time_utils import utcnow


PAYOUT_PENDING = "PENDING"
PAYOUT_APPROVED = "APPROVED"
PAYOUT_REJECTED = "REJECTED"
PAYOUT_COMPLETED = "COMPLETED"
VALID_PAYOUT_STATUSES = {PAYOUT_PENDING, PAYOUT_APPROVED, PAYOUT_REJECTED, PAYOUT_COMPLETED}

BANK_PENDING = "PENDING"
BANK_APPROVED = "APPROVED"
BANK_REJECTED = "REJECTED"


class PayoutError(DomainError):
    """Raised when a payout request or decision breaks a business rule."""
    pass


def format_rupiah(amount: int) -> str:
    """12500000 -> '12.500.000'"""
    return f"{amount:,}".replace(",", ".")


# =============================================================================
# BANK ACCOUNTS
# =============================================================================


def create_bank_account(owner: User, *, bank_name: str, account_number: str, account_name: str) -> BankAccount:
    if owner.role != ROLE_ADMINKOS:
        raise ForbiddenError("Only AdminKos can register bank accounts")
    bank_name = (bank_name or "").strip()
    account_number = (account_number or "").strip()
    account_name = (account_name or "").strip()
    if not bank_name or not account_number or not account_name:
        raise ValidationError("bank_name, account_number and account_name are required")
    if not account_number.isdigit():
        raise ValidationError("account_number must contain digits only")

    duplicate = db.session.query(BankAccount).filter_by(
        owner_id=owner.id, bank_name=bank_name, account_number=account_number
    ).first()
    if duplicate:
        raise PayoutError("Rekening sudah terdaftar", status_code=409)

    account = BankAccount(
        owner_id=owner.id,
        bank_name=bank_name,
        account_number=account_number,
        account_name=account_name,
        status=BANK_PENDING,
    )
    db.session.add(account)
    db.session.commit()
    return account


def list_bank_accounts(owner_id: int | None = None, status: str | None = None) -> list[BankAccount]:
    q = db.session.query(BankAccount)
    if owner_id is not None:
        q = q.filter(BankAccount.owner_id == owner_id)
    if status:
        q = q.filter(BankAccount.status == status)
    return q.order_by(BankAccount.created_at.desc(), BankAccount.id.desc()).all()


def _get_bank_account(account_id: int) -> BankAccount:
    account = db.session.get(BankAccount, account_id)
    if not account:
        raise NotFoundError("Rekening tidak ditemukan")
    return account


def approve_bank_account(account_id: int) -> BankAccount:
    account = _get_bank_account(account_id)
    if account.status != BANK_PENDING:
        raise PayoutError(f"Rekening sudah berstatus {account.status}")
    account.status = BANK_APPROVED
    account.rejection_reason = None
    db.session.commit()
    return account


def reject_bank_account(account_id: int, reason: str | None) -> BankAccount:
    if not reason or not reason.strip():
        raise ValidationError("Alasan penolakan wajib diisi")
    account = _get_bank_account(account_id)
    if account.status != BANK_PENDING:
        raise PayoutError(f"Rekening sudah berstatus {account.status}")
    account.status = BANK_REJECTED
    account.rejection_reason = reason.strip()
    db.session.commit()
    return account


# =============================================================================
# PAYOUTS
# =============================================================================


def get_payout(payout_id: int, *, lock: bool = False) -> Payout:
    q = db.session.query(Payout).filter_by(id=payout_id)
    if lock:
        q = lock_for_update(q)
    payout = q.first()
    if not payout:
        raise NotFoundError("Payout tidak ditemukan")
    return payout


def list_payouts(owner_id: int | None = None, status: str | None = None) -> list[Payout]:
    q = db.session.query(Payout)
    if owner_id is not None:
        q = q.filter(Payout.owner_id == owner_id)
    if status:
        if status not in VALID_PAYOUT_STATUSES:
            raise ValidationError(f"Invalid payout status: {status}")
        q = q.filter(Payout.status == status)
    return q.order_by(Payout.created_at.desc(), Payout.id.desc()).all()


def request_payout(
    owner: User,
    *,
    bank_account_id,
    amount,
    reason: str | None,
    notes: str | None = None,
) -> Payout:
    """
    Create a PENDING payout.

    Raises PayoutError before writing anything when the amount exceeds the
    owner's available balance.
    """
    if owner.role != ROLE_ADMINKOS:
        raise ForbiddenError("Only AdminKos can request payouts")
    amount = coerce_int(amount, "amount")
    if amount <= 0:
        raise PayoutError("Jumlah penarikan harus lebih dari 0")
    if not reason or not reason.strip():
        raise ValidationError("Alasan penarikan wajib diisi")
    bank_account_id = coerce_int(bank_account_id, "bank_account_id")

    def _op():
        # Serializes concurrent requests from one owner so each sees the others' PENDING payouts
        lock_for_update(db.session.query(User).filter_by(id=owner.id)).first()

        account = db.session.query(BankAccount).filter_by(id=bank_account_id, owner_id=owner.id).first()
        if not account:
            raise NotFoundError("Rekening tidak ditemukan")
        if account.status != BANK_APPROVED:
            raise PayoutError("Rekening belum disetujui")

        balance = ledger_service.calculate_balance(owner.id)
        available = balance["available_balance"]
        if amount > available:
            raise PayoutError(
                f"Saldo tidak mencukupi. Saldo tersedia: Rp {format_rupiah(max(available, 0))}"
            )

        payout = Payout(
            owner_id=owner.id,
            bank_account_id=account.id,
            amount=amount,
            balance_before=available,
            balance_after=available - amount,
            status=PAYOUT_PENDING,
            reason=reason.strip(),
            notes=notes,
            attachments=[],
        )
        db.session.add(payout)
        db.session.commit()
        return payout

    return run_with_retry(_op)


def approve_payout(payout_id: int, approver: User, *, attachments, notes: str | None = None) -> Payout:
    """
    Approve a PENDING payout and write its OUT ledger entry in the same commit.

    attachments is the list of transfer-proof URLs; at least one is required.
    """
    if not attachments or not isinstance(attachments, list) or not all(
        isinstance(a, str) and a.strip() for a in attachments
    ):
        raise ValidationError("Bukti transfer wajib diupload")

    def _op():
        payout = get_payout(payout_id, lock=True)
        if payout.status != PAYOUT_PENDING:
            raise PayoutError(f"Payout sudah berstatus {payout.status}")
        payout.status = PAYOUT_APPROVED
        payout.attachments = [a.strip() for a in attachments]
        if notes:
            payout.notes = notes
        payout.processed_by = approver.id
        payout.processed_at = utcnow()
        ledger_service.sync_payout_to_ledger(payout)
        db.session.commit()
        return payout

    return run_with_retry(_op)


def reject_payout(payout_id: int, approver: User, *, reason: str | None) -> Payout:
    if not reason or not reason.strip():
        raise ValidationError("Alasan penolakan wajib diisi")

    def _op():
        payout = get_payout(payout_id, lock=True)
        if payout.status != PAYOUT_PENDING:
            raise PayoutError(f"Payout sudah berstatus {payout.status}")
        payout.status = PAYOUT_REJECTED
        payout.rejection_reason = reason.strip()
        payout.processed_by = approver.id
        payout.processed_at = utcnow()
        db.session.commit()
        return payout

    return run_with_retry(_op)


def complete_payout(payout_id: int) -> Payout:
    """Mark an APPROVED payout as transferred."""
    def _op():
        payout = get_payout(payout_id, lock=True)
        if payout.status != PAYOUT_APPROVED:
            raise PayoutError("Hanya payout APPROVED yang dapat diselesaikan")
        payout.status = PAYOUT_COMPLETED
        db.session.commit()
        return payout

    return run_with_retry(_op)
