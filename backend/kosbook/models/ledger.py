from __future__ import annotations

from ..extensions import db
from kosbook.time_utils import to_utc_z


class LedgerAccount(db.Model):
    """
    Per-AdminKos chart of accounts.

    System accounts ("Pembayaran Kos", "Penarikan Dana") are created on
    demand and receive the automatically synced payment / payout entries.
    """
    __tablename__ = "ledger_accounts"
    __table_args__ = (
        db.UniqueConstraint("owner_id", "name", name="uq_ledger_accounts_owner_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    type = db.Column(db.String(16), nullable=False)  # INCOME | EXPENSE | OTHER
    is_system = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<LedgerAccount id={self.id} name={self.name!r} type={self.type}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "name": self.name,
            "type": self.type,
            "is_system": self.is_system,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class LedgerEntry(db.Model):
    """
    Append-only money movement for one AdminKos.

    WHY: balance = sum(IN) - sum(OUT) must be reproducible from history, so
    amounts are never edited; corrections are ADJUSTMENT entries.

    DESIGN:
    - (ref_type, ref_id) is unique so a payment or payout is mirrored at most once
    - created_by is a user id (as text) or "SYSTEM" for synced entries
    """
    __tablename__ = "ledger_entries"
    __table_args__ = (
        db.UniqueConstraint("ref_type", "ref_id", name="uq_ledger_entries_ref"),
        db.Index("ix_ledger_entries_owner_date", "owner_id", "date"),
        db.Index("ix_ledger_entries_account_id", "account_id"),
        db.CheckConstraint("amount > 0", name="ck_ledger_entries_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    account_id = db.Column(db.Integer, db.ForeignKey("ledger_accounts.id"), nullable=False)

    direction = db.Column(db.String(8), nullable=False)  # IN | OUT
    amount = db.Column(db.Integer, nullable=False)
    date = db.Column(db.DateTime(timezone=True), nullable=False)
    note = db.Column(db.String(500), nullable=True)

    ref_type = db.Column(db.String(16), nullable=False)  # PAYMENT | PAYOUT | MANUAL | ADJUSTMENT
    # Payment / payout id for synced entries, NULL for MANUAL and ADJUSTMENT
    ref_id = db.Column(db.String(64), nullable=True)
    adjusts_entry_id = db.Column(db.Integer, db.ForeignKey("ledger_entries.id"), nullable=True, index=True)

    property_id = db.Column(db.Integer, db.ForeignKey("properties.id"), nullable=True, index=True)
    created_by = db.Column(db.String(64), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    account = db.relationship("LedgerAccount", backref=db.backref("entries", lazy=True))

    def __repr__(self) -> str:
        return f"<LedgerEntry id={self.id} {self.direction} {self.amount} ref={self.ref_type}:{self.ref_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "account_id": self.account_id,
            "account_name": self.account.name if self.account else None,
            "direction": self.direction,
            "amount": self.amount,
            "date": to_utc_z(self.date),
            "note": self.note,
            "ref_type": self.ref_type,
            "ref_id": self.ref_id,
            "adjusts_entry_id": self.adjusts_entry_id,
            "property_id": self.property_id,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
