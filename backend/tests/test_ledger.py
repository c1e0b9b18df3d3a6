"""
AdminKos ledger tests.

Verifies:
- balance = sum(IN) - sum(OUT)
- Manual entries are corrected by ADJUSTMENT entries, never rewritten
- Payment sync is idempotent and the backfill finds what was missed
- Ledger routes are scoped to the calling owner
"""

from datetime import datetime

import pytest

from conftest import auth_headers, signed_notification
from kosbook.models import LedgerAccount, LedgerEntry
from kosbook.services import booking_service, ledger_service, ledger_sync_service
from kosbook.services.ledger_service import LedgerError


def _account(owner, name="Listrik", account_type="EXPENSE"):
    return ledger_service.create_account(owner.id, {"name": name, "type": account_type})


def _manual(owner, account, direction, amount, date=None, note=None):
    return ledger_service.create_manual_entry(
        owner_id=owner.id,
        account_id=account.id,
        direction=direction,
        amount=amount,
        created_by=owner.id,
        date=date,
        note=note,
    )


def _paid_booking(customer, room, check_in):
    booking, payment = booking_service.create_booking(
        customer, room_id=room.id, lease_type="MONTHLY", check_in_date=check_in, deposit_only=True,
    )
    booking_service.confirm_payment(payment.midtrans_order_id, "SUCCESS")
    return booking, payment


class TestAccounts:
    def test_system_accounts_created_once(self, db_session, adminkos):
        first = ledger_service.ensure_system_accounts(adminkos.id)
        second = ledger_service.ensure_system_accounts(adminkos.id)
        assert set(first) == {"Pembayaran Kos", "Penarikan Dana"}
        assert {a.id for a in first.values()} == {a.id for a in second.values()}

    def test_duplicate_name_rejected(self, db_session, adminkos):
        _account(adminkos)
        with pytest.raises(LedgerError) as exc:
            _account(adminkos)
        assert exc.value.status_code == 409

    def test_system_account_is_read_only(self, db_session, adminkos):
        accounts = ledger_service.ensure_system_accounts(adminkos.id)
        with pytest.raises(LedgerError) as exc:
            ledger_service.update_account(accounts["Pembayaran Kos"], {"name": "Lain"})
        assert exc.value.status_code == 403

    def test_type_locked_once_used(self, db_session, adminkos):
        account = _account(adminkos)
        _manual(adminkos, account, "OUT", 100_000)
        with pytest.raises(LedgerError):
            ledger_service.update_account(account, {"type": "INCOME"})

    def test_system_names_reserved_before_first_sync(self, db_session, adminkos):
        with pytest.raises(LedgerError) as exc:
            _account(adminkos, name="Pembayaran Kos", account_type="EXPENSE")
        assert exc.value.status_code == 409

        accounts = ledger_service.ensure_system_accounts(adminkos.id)
        assert accounts["Pembayaran Kos"].is_system is True
        assert accounts["Pembayaran Kos"].type == "INCOME"

    def test_rename_to_system_name_rejected(self, db_session, adminkos):
        account = _account(adminkos)
        with pytest.raises(LedgerError) as exc:
            ledger_service.update_account(account, {"name": "Penarikan Dana"})
        assert exc.value.status_code == 409

    def test_non_system_account_with_reserved_name_is_not_used(self, db_session, adminkos):
        db_session.add(LedgerAccount(
            owner_id=adminkos.id, name="Pembayaran Kos", type="EXPENSE", is_system=False, is_active=True,
        ))
        db_session.commit()
        with pytest.raises(LedgerError):
            ledger_service.ensure_system_accounts(adminkos.id)

    def test_settlement_after_reserved_name_attempt(self, client, db_session, midtrans, adminkos, customer,
                                                   room, check_in):
        resp = client.post("/api/adminkos/ledger/accounts", headers=auth_headers(adminkos),
                           json={"name": "Pembayaran Kos", "type": "EXPENSE"})
        assert resp.status_code == 409

        booking, payment = booking_service.create_booking(
            customer, room_id=room.id, lease_type="MONTHLY", check_in_date=check_in, deposit_only=True,
        )
        resp = client.post("/api/midtrans/notify", json=signed_notification(payment.midtrans_order_id, payment.amount))
        body = resp.get_json()
        assert body["success"] is True
        assert body["data"]["bookingStatus"] == "DEPOSIT_PAID"
        assert ledger_service.calculate_balance(adminkos.id)["total_balance"] == 450_000


class TestEntries:
    def test_direction_must_match_account_type(self, db_session, adminkos):
        account = _account(adminkos)
        with pytest.raises(LedgerError):
            _manual(adminkos, account, "IN", 100_000)

    def test_amount_must_be_positive(self, db_session, adminkos):
        from kosbook.validation import ValidationError
        account = _account(adminkos)
        with pytest.raises(ValidationError):
            _manual(adminkos, account, "OUT", 0)

    def test_balance_is_in_minus_out(self, db_session, adminkos):
        other = _account(adminkos, "Lain-lain", "OTHER")
        expense = _account(adminkos)
        _manual(adminkos, other, "IN", 500_000)
        _manual(adminkos, expense, "OUT", 150_000)

        balance = ledger_service.calculate_balance(adminkos.id)
        assert balance["total_income"] == 500_000
        assert balance["total_expense"] == 150_000
        assert balance["total_balance"] == 350_000
        assert balance["available_balance"] == 350_000

    def test_adjust_amount_appends_correction(self, db_session, adminkos):
        account = _account(adminkos)
        entry = _manual(adminkos, account, "OUT", 150_000)

        entry, adjustment = ledger_service.adjust_entry(entry, created_by=adminkos.id, amount=100_000)

        assert entry.amount == 150_000
        assert adjustment.ref_type == "ADJUSTMENT"
        assert adjustment.adjusts_entry_id == entry.id
        assert adjustment.direction == "IN"
        assert adjustment.amount == 50_000
        assert ledger_service.effective_amount(entry) == -100_000
        assert ledger_service.calculate_balance(adminkos.id)["total_balance"] == -100_000

    def test_note_edit_is_in_place(self, db_session, adminkos):
        account = _account(adminkos)
        entry = _manual(adminkos, account, "OUT", 150_000, note="Listrik Jan")
        entry, adjustment = ledger_service.adjust_entry(entry, created_by=adminkos.id, note="Listrik Februari")
        assert adjustment is None
        assert entry.note == "Listrik Februari"
        assert db_session.query(LedgerEntry).count() == 1

    def test_direction_change_must_fit_account(self, db_session, adminkos):
        account = _account(adminkos)
        entry = _manual(adminkos, account, "OUT", 150_000)
        with pytest.raises(LedgerError):
            ledger_service.adjust_entry(entry, created_by=adminkos.id, direction="IN")

    def test_reverse_then_reverse_again(self, db_session, adminkos):
        account = _account(adminkos)
        entry = _manual(adminkos, account, "OUT", 150_000)
        ledger_service.adjust_entry(entry, created_by=adminkos.id, amount=100_000)

        reversal = ledger_service.reverse_entry(entry, created_by=adminkos.id)
        assert reversal.direction == "IN"
        assert reversal.amount == 100_000
        assert ledger_service.calculate_balance(adminkos.id)["total_balance"] == 0

        with pytest.raises(LedgerError, match="Entri sudah dibatalkan"):
            ledger_service.reverse_entry(entry, created_by=adminkos.id)

    def test_synced_entries_cannot_be_edited(self, db_session, midtrans, customer, adminkos, room, check_in):
        _, payment = _paid_booking(customer, room, check_in)
        entry = ledger_service.find_entry_by_ref("PAYMENT", payment.id)
        with pytest.raises(LedgerError):
            ledger_service.adjust_entry(entry, created_by=adminkos.id, amount=1)
        with pytest.raises(LedgerError):
            ledger_service.reverse_entry(entry, created_by=adminkos.id)


class TestReports:
    @pytest.fixture
    def history(self, db_session, adminkos):
        other = _account(adminkos, "Lain-lain", "OTHER")
        _manual(adminkos, other, "IN", 100_000, date=datetime(2026, 1, 5, 9, 0))
        _manual(adminkos, other, "OUT", 30_000, date=datetime(2026, 1, 6, 9, 0))
        _manual(adminkos, other, "IN", 50_000, date=datetime(2026, 2, 1, 9, 0))
        return other

    def test_monthly_timeseries(self, adminkos, history):
        series = ledger_service.get_timeseries(adminkos.id, group_by="month")
        assert series == [
            {"period": "2026-01", "total_in": 100_000, "total_out": 30_000, "net": 70_000, "balance": 70_000},
            {"period": "2026-02", "total_in": 50_000, "total_out": 0, "net": 50_000, "balance": 120_000},
        ]

    def test_timeseries_opening_balance(self, adminkos, history):
        series = ledger_service.get_timeseries(adminkos.id, start=datetime(2026, 1, 6), group_by="day")
        assert [b["period"] for b in series] == ["2026-01-06", "2026-02-01"]
        assert [b["balance"] for b in series] == [70_000, 120_000]

    def test_invalid_group_by(self, adminkos, history):
        from kosbook.validation import ValidationError
        with pytest.raises(ValidationError):
            ledger_service.get_timeseries(adminkos.id, group_by="year")

    def test_summary_for_period(self, adminkos, history):
        summary = ledger_service.get_summary(adminkos.id, start=datetime(2026, 1, 1), end=datetime(2026, 1, 31))
        assert summary["total_in"] == 100_000
        assert summary["total_out"] == 30_000
        assert summary["net"] == 70_000
        assert summary["entry_count"] == 2

    def test_breakdown(self, adminkos, history):
        rows = ledger_service.get_breakdown(adminkos.id)
        assert len(rows) == 1
        assert rows[0]["account_name"] == "Lain-lain"
        assert rows[0]["net"] == 120_000
        assert rows[0]["entry_count"] == 3


class TestSync:
    def test_payment_sync_is_idempotent(self, db_session, midtrans, customer, room, check_in):
        _, payment = _paid_booking(customer, room, check_in)
        first = ledger_service.find_entry_by_ref("PAYMENT", payment.id)
        again = ledger_service.sync_payment_to_ledger(payment)
        assert again.id == first.id
        assert db_session.query(LedgerEntry).filter_by(ref_type="PAYMENT").count() == 1

    def test_pending_payment_cannot_sync(self, db_session, midtrans, customer, room, check_in):
        _, payment = booking_service.create_booking(
            customer, room_id=room.id, lease_type="MONTHLY", check_in_date=check_in, deposit_only=True,
        )
        with pytest.raises(LedgerError):
            ledger_service.sync_payment_to_ledger(payment)

    def test_backfill_missing_payment_entry(self, db_session, midtrans, customer, adminkos, room, check_in):
        _, payment = booking_service.create_booking(
            customer, room_id=room.id, lease_type="MONTHLY", check_in_date=check_in, deposit_only=True,
        )
        # Settled outside the normal flow, so no ledger entry was written
        payment.status = "SUCCESS"
        db_session.commit()

        report = ledger_sync_service.validate_payment_sync(adminkos.id)
        assert report == {"is_valid": False, "missing_count": 1, "missing_payment_ids": [payment.id]}

        fixed = ledger_sync_service.fix_missing_entries(adminkos.id)
        assert fixed["payments"]["synced"] == 1
        assert fixed["payouts"]["synced"] == 0

        assert ledger_sync_service.validate_payment_sync(adminkos.id)["is_valid"] is True
        assert ledger_sync_service.fix_missing_entries(adminkos.id)["payments"]["processed"] == 0
        assert ledger_service.calculate_balance(adminkos.id)["total_balance"] == payment.amount

    def test_sync_status_counts(self, db_session, midtrans, customer, adminkos, room, check_in):
        _paid_booking(customer, room, check_in)
        status = ledger_sync_service.get_sync_status(adminkos.id)
        assert status["entries"]["PAYMENT"] == 1
        assert status["entries"]["MANUAL"] == 0
        assert status["missing_payments"] == 0


class TestLedgerRoutes:
    def test_customer_is_forbidden(self, client, db_session, customer):
        resp = client.get("/api/adminkos/ledger/balance", headers=auth_headers(customer))
        assert resp.status_code == 403

    def test_create_and_list_entries(self, client, db_session, adminkos):
        headers = auth_headers(adminkos)
        resp = client.post("/api/adminkos/ledger/accounts", headers=headers,
                           json={"name": "Lain-lain", "type": "OTHER"})
        assert resp.status_code == 201
        account_id = resp.get_json()["data"]["id"]

        for day, amount in ((1, 100_000), (2, 200_000), (3, 300_000)):
            resp = client.post("/api/adminkos/ledger/entries", headers=headers, json={
                "account_id": account_id,
                "direction": "in",
                "amount": amount,
                "date": f"2026-03-0{day}T08:00:00Z",
            })
            assert resp.status_code == 201

        page = client.get("/api/adminkos/ledger/entries?limit=2", headers=headers).get_json()["data"]
        assert [i["amount"] for i in page["items"]] == [300_000, 200_000]
        assert page["next_cursor"] is not None

        page2 = client.get(
            "/api/adminkos/ledger/entries", headers=headers,
            query_string={"limit": 2, "cursor": page["next_cursor"]},
        ).get_json()["data"]
        assert [i["amount"] for i in page2["items"]] == [100_000]
        assert page2["next_cursor"] is None

        balance = client.get("/api/adminkos/ledger/balance", headers=headers).get_json()["data"]
        assert balance["total_balance"] == 600_000

    def test_entry_requires_fields(self, client, db_session, adminkos):
        resp = client.post("/api/adminkos/ledger/entries", headers=auth_headers(adminkos), json={"amount": 1})
        assert resp.status_code == 400
        assert resp.get_json()["success"] is False

    def test_bad_cursor(self, client, db_session, adminkos):
        resp = client.get("/api/adminkos/ledger/entries?cursor=garbage", headers=auth_headers(adminkos))
        assert resp.status_code == 400

    def test_patch_and_delete_entry(self, client, db_session, adminkos):
        headers = auth_headers(adminkos)
        account = _account(adminkos)
        entry = _manual(adminkos, account, "OUT", 150_000)

        resp = client.patch(f"/api/adminkos/ledger/entries/{entry.id}", headers=headers, json={"amount": 120_000})
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["entry"]["amount"] == 150_000
        assert data["adjustment"]["amount"] == 30_000
        assert data["adjustment"]["direction"] == "IN"

        resp = client.delete(f"/api/adminkos/ledger/entries/{entry.id}", headers=headers)
        assert resp.status_code == 200
        resp = client.delete(f"/api/adminkos/ledger/entries/{entry.id}", headers=headers)
        assert resp.status_code == 409

    def test_other_owner_cannot_touch_entry(self, client, db_session, adminkos, other_adminkos):
        account = _account(adminkos)
        entry = _manual(adminkos, account, "OUT", 150_000)
        resp = client.delete(f"/api/adminkos/ledger/entries/{entry.id}", headers=auth_headers(other_adminkos))
        assert resp.status_code == 404

    def test_sync_routes(self, client, db_session, adminkos):
        headers = auth_headers(adminkos)
        status = client.get("/api/adminkos/ledger/sync", headers=headers)
        assert status.status_code == 200
        assert status.get_json()["data"]["missing_payments"] == 0
        fixed = client.post("/api/adminkos/ledger/sync", headers=headers)
        assert fixed.status_code == 200
        assert fixed.get_json()["data"]["payments"]["processed"] == 0

    def test_timeseries_rejects_bad_group(self, client, db_session, adminkos):
        resp = client.get("/api/adminkos/ledger/timeseries?group_by=year", headers=auth_headers(adminkos))
        assert resp.status_code == 400
