import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from coopbank.exceptions import EntityNotFoundError, InsufficientFundsError, InvalidStateError, ValidationError
from coopbank.models.account_model import Account, AccountMovement
from coopbank.services import accounting_service

logger = logging.getLogger(__name__)


def available_balance(account: Account) -> Decimal:
    """balance - blocked - minimum + overdraft allowance."""
    return (
            Decimal(account.balance or 0)
            - Decimal(account.blocked_amount or 0)
            - Decimal(account.minimum_balance or 0)
            + Decimal(account.overdraft_limit or 0)
    )


def get_account(db: Session, account_id: int, role: str = "Account") -> Account:
    account = db.query(Account).filter(Account.account_id == account_id).first()
    if not account:
        raise EntityNotFoundError(f"{role} not found")
    return account


def get_active_account(db: Session, account_id: int, role: str = "Account") -> Account:
    account = get_account(db, account_id, role)
    if account.status != "ACTIVE":
        raise InvalidStateError(f"{role} is not active")
    return account


def positive_amount(amount) -> Decimal:
    amount = Decimal(str(amount))
    if amount <= 0:
        raise ValidationError("Amount must be > 0")
    return amount


def credit_account(
        db: Session,
        account: Account,
        amount: Decimal,
        operation_type: str,
        label: str,
        user_id: Optional[int] = None,
) -> AccountMovement:
    old_balance = Decimal(account.balance or 0)
    account.balance = old_balance + amount
    movement = AccountMovement(
        account_id=account.account_id,
        branch_id=account.branch_id,
        direction="C",
        amount=amount,
        balance_before=old_balance,
        balance_after=account.balance,
        operation_type=operation_type,
        label=label,
        user_id=user_id,
    )
    db.add(movement)
    return movement


def debit_account(
        db: Session,
        account: Account,
        amount: Decimal,
        operation_type: str,
        label: str,
        user_id: Optional[int] = None,
        check_funds: bool = True,
) -> AccountMovement:
    if check_funds:
        available = available_balance(account)
        if amount > available:
            raise InsufficientFundsError(available)

    old_balance = Decimal(account.balance or 0)
    account.balance = old_balance - amount
    movement = AccountMovement(
        account_id=account.account_id,
        branch_id=account.branch_id,
        direction="D",
        amount=amount,
        balance_before=old_balance,
        balance_after=account.balance,
        operation_type=operation_type,
        label=label,
        user_id=user_id,
    )
    db.add(movement)
    return movement


def link_entry(entry, *movements: AccountMovement) -> Optional[int]:
    if entry is None:
        return None
    for m in movements:
        m.ledger_entry_id = entry.ledger_entry_id
    return entry.ledger_entry_id


# -------------------------------------------------
# Counter operations
# -------------------------------------------------
def deposit(db: Session, account_id: int, amount, description: Optional[str] = None,
            user_id: Optional[int] = None) -> AccountMovement:
    amount = positive_amount(amount)
    account = get_active_account(db, account_id)

    movement = credit_account(db, account, amount, "DEPOSIT", description or "Dépôt espèces", user_id)
    db.flush()

    entry = accounting_service.try_post(
        db, accounting_service.post_deposit, account.branch_id, account.account_id, amount, description
    )
    link_entry(entry, movement)

    logger.info("Deposit of %s to account %s by user %s", amount, account_id, user_id)
    return movement


def withdraw(db: Session, account_id: int, amount, description: Optional[str] = None,
             user_id: Optional[int] = None) -> AccountMovement:
    amount = positive_amount(amount)
    account = get_active_account(db, account_id)

    movement = debit_account(db, account, amount, "WITHDRAWAL", description or "Retrait espèces", user_id)
    db.flush()

    entry = accounting_service.try_post(
        db, accounting_service.post_withdrawal, account.branch_id, account.account_id, amount, description
    )
    link_entry(entry, movement)

    logger.info("Withdrawal of %s from account %s by user %s", amount, account_id, user_id)
    return movement


def transfer(db: Session, from_account_id: int, to_account_id: int, amount,
             description: Optional[str] = None, user_id: Optional[int] = None):
    amount = positive_amount(amount)
    if from_account_id == to_account_id:
        raise ValidationError("Cannot transfer to the same account")

    source = get_account(db, from_account_id, "Source account")
    dest = get_account(db, to_account_id, "Destination account")
    if source.status != "ACTIVE":
        raise InvalidStateError("Source account is not active")
    if dest.status != "ACTIVE":
        raise InvalidStateError("Destination account is not active")

    debit_mv = debit_account(
        db, source, amount, "TRANSFER", description or f"Virement vers {dest.account_no}", user_id
    )
    credit_mv = credit_account(
        db, dest, amount, "TRANSFER", description or f"Virement de {source.account_no}", user_id
    )
    db.flush()

    entry = accounting_service.try_post(
        db, accounting_service.post_internal_transfer,
        source.branch_id, source.account_id, dest.account_id, amount, description,
    )
    link_entry(entry, debit_mv, credit_mv)

    logger.info("Transfer of %s from %s to %s by user %s", amount, from_account_id, to_account_id, user_id)
    return debit_mv, credit_mv
