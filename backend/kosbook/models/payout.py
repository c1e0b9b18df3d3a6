from __future__ import annotations

from ..extensions import db
from kosbook.time_utils import to_utc_z


class BankAccount(db.Model):
    """
    AdminKos destination account for payouts. Must be APPROVED by the
    superadmin before a payout can reference it.
    """
    __tablename__ = "bank_accounts"
    __table_args__ = (
        db.UniqueConstraint("owner_id", "bank_name", "account_number", name="uq_bank_accounts_owner_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    bank_name = db.Column(db.String(64), nullable=False)
    account_number = db.Column(db.String(64), nullable=False)
    account_name = db.Column(db.String(120), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="PENDING")  # PENDING | APPROVED | REJECTED
    rejection_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "bank_name": self.bank_name,
            "account_number": self.account_number,
            "account_name": self.account_name,
            "status": self.status,
            "rejection_reason": self.rejection_reason,
            "created_at": to_utc_z(self.created_at),
        }


class Payout(db.Model):
    """
    AdminKos withdrawal request against the ledger balance.

    WHY balance_before / balance_after: the request is checked against the
    available balance at request time and that snapshot is kept for audit.
    The OUT ledger entry is only written when the superadmin approves.
    """
    __tablename__ = "payouts"
    __table_args__ = (
        db.Index("ix_payouts_owner_status", "owner_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    bank_account_id = db.Column(db.Integer, db.ForeignKey("bank_accounts.id"), nullable=False)

    amount = db.Column(db.Integer, nullable=False)
    balance_before = db.Column(db.Integer, nullable=False)
    balance_after = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="PENDING")  # PENDING | APPROVED | REJECTED | COMPLETED
    reason = db.Column(db.String(255), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    attachments = db.Column(db.JSON, nullable=False, default=list)

    processed_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    bank_account = db.relationship("BankAccount")

    def __repr__(self) -> str:
        return f"<Payout id={self.id} amount={self.amount} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "bank_account_id": self.bank_account_id,
            "bank_account": self.bank_account.to_dict() if self.bank_account else None,
            "amount": self.amount,
            "balance_before": self.balance_before,
            "balance_after": self.balance_after,
            "status": self.status,
            "reason": self.reason,
            "notes": self.notes,
            "attachments": list(self.attachments or []),
            "processed_by": self.processed_by,
            "processed_at": to_utc_z(self.processed_at),
            "rejection_reason": self.rejection_reason,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }
