"""Tests for deposits, withdrawals and transfers."""

from decimal import Decimal

import pytest

from coopbank.exceptions import EntityNotFoundError, InsufficientFundsError, InvalidStateError, ValidationError
from coopbank.models.account_model import AccountMovement
from coopbank.models.ledger_model import LedgerEntry
from coopbank.services import accounting_service, banking_service
from tests.conftest import open_account


class TestAvailableBalance:
    def test_formula(self, db, member) -> None:
        acc = open_account(
            db, member, "ACC-AV", "100000",
            blocked_amount=Decimal("20000"), minimum_balance=Decimal("5000"), overdraft_limit=Decimal("10000"),
        )
        assert banking_service.available_balance(acc) == Decimal("85000")


class TestDeposit:
    def test_deposit_credits_and_posts(self, db, account) -> None:
        movement = banking_service.deposit(db, account.account_id, 50000, "Versement", user_id=3)
        db.commit()

        assert Decimal(account.balance) == Decimal("150000")
        assert movement.direction == "C"
        assert Decimal(movement.balance_before) == Decimal("100000")
        assert Decimal(movement.balance_after) == Decimal("150000")
        assert movement.ledger_entry_id is not None

        entry = db.query(LedgerEntry).filter(LedgerEntry.ledger_entry_id == movement.ledger_entry_id).one()
        debit = sum(Decimal(l.amount) for l in entry.lines if l.side == "D")
        credit = sum(Decimal(l.amount) for l in entry.lines if l.side == "C")
        assert debit == credit == Decimal("50000")

    def test_non_positive_amount(self, db, account) -> None:
        with pytest.raises(ValidationError):
            banking_service.deposit(db, account.account_id, 0)

    def test_unknown_account(self, db) -> None:
        with pytest.raises(EntityNotFoundError, match="Account not found"):
            banking_service.deposit(db, 999, 100)

    def test_blocked_account(self, db, member) -> None:
        acc = open_account(db, member, "ACC-BLK", "0", status="BLOCKED")
        with pytest.raises(InvalidStateError):
            banking_service.deposit(db, acc.account_id, 100)

    def test_posting_failure_keeps_the_deposit(self, db, account, monkeypatch) -> None:
        def boom(*args, **kwargs):
            raise RuntimeError("ledger down")

        monkeypatch.setattr(accounting_service, "post_deposit", boom)

        movement = banking_service.deposit(db, account.account_id, 1000)
        db.commit()

        db.refresh(account)
        assert Decimal(account.balance) == Decimal("101000")
        assert movement.ledger_entry_id is None
        assert db.query(LedgerEntry).count() == 0


class TestWithdraw:
    def test_withdraw_within_available(self, db, account) -> None:
        movement = banking_service.withdraw(db, account.account_id, 40000)
        db.commit()

        assert Decimal(account.balance) == Decimal("60000")
        assert movement.direction == "D"
        assert movement.operation_type == "WITHDRAWAL"

    def test_insufficient_funds_leaves_balance_untouched(self, db, member) -> None:
        acc = open_account(db, member, "ACC-MIN", "100000", minimum_balance=Decimal("10000"))

        with pytest.raises(InsufficientFundsError, match="Available: 90000"):
            banking_service.withdraw(db, acc.account_id, 95000)

        db.rollback()
        db.refresh(acc)
        assert Decimal(acc.balance) == Decimal("100000")
        assert db.query(AccountMovement).count() == 0
        assert db.query(LedgerEntry).count() == 0

    def test_overdraft_extends_available(self, db, member) -> None:
        acc = open_account(db, member, "ACC-OD", "1000", overdraft_limit=Decimal("5000"))
        banking_service.withdraw(db, acc.account_id, 6000)
        assert Decimal(acc.balance) == Decimal("-5000")


class TestTransfer:
    def test_transfer_moves_funds(self, db, account, second_account) -> None:
        debit_mv, credit_mv = banking_service.transfer(db, account.account_id, second_account.account_id, 30000)
        db.commit()

        assert Decimal(account.balance) == Decimal("70000")
        assert Decimal(second_account.balance) == Decimal("30000")
        assert debit_mv.ledger_entry_id == credit_mv.ledger_entry_id is not None
        assert db.query(LedgerEntry).count() == 1

    def test_same_account_refused(self, db, account) -> None:
        with pytest.raises(ValidationError, match="same account"):
            banking_service.transfer(db, account.account_id, account.account_id, 10)

    def test_missing_destination(self, db, account) -> None:
        with pytest.raises(EntityNotFoundError, match="Destination account not found"):
            banking_service.transfer(db, account.account_id, 404, 10)

    def test_inactive_destination(self, db, account, member) -> None:
        closed = open_account(db, member, "ACC-CLS", "0", status="CLOSED")
        with pytest.raises(InvalidStateError, match="Destination account is not active"):
            banking_service.transfer(db, account.account_id, closed.account_id, 10)

    def test_insufficient_source(self, db, account, second_account) -> None:
        with pytest.raises(InsufficientFundsError):
            banking_service.transfer(db, second_account.account_id, account.account_id, 1)
        db.rollback()
        db.refresh(account)
        assert Decimal(account.balance) == Decimal("100000")
