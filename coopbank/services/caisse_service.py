"""
Teller till (caisse) sessions.

A teller opens one session per branch per day with a denomination count,
asks the vault for funding or hands cash back through movements that a
supervisor validates, and closes with a second count. The difference
between the closing count and opening + inflows - outflows is the
variance, posted as a shortage or surplus.
"""
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from coopbank.core import config
from coopbank.exceptions import EntityNotFoundError, InvalidStateError, ValidationError
from coopbank.models.caisse_model import CaisseCount, CaisseMovement, CaisseSession
from coopbank.services import accounting_service, banking_service

logger = logging.getLogger(__name__)

BIF_NOTES = {
    "notes_10000": 10000,
    "notes_5000": 5000,
    "notes_2000": 2000,
    "notes_1000": 1000,
    "notes_500": 500,
    "notes_100": 100,
    "notes_50": 50,
    "notes_20": 20,
    "notes_10": 10,
}

BIF_COINS = {
    "coins_50": 50,
    "coins_10": 10,
    "coins_5": 5,
    "coins_1": 1,
}

# counted for foreign-currency operations, kept out of the BIF total
USD_NOTES = {
    "usd_100": 100,
    "usd_50": 50,
    "usd_20": 20,
    "usd_10": 10,
    "usd_5": 5,
    "usd_1": 1,
}


def count_totals(denominations: dict) -> tuple[Decimal, Decimal, Decimal]:
    """Return (notes, coins, total) in BIF for a denomination count."""
    notes = sum(Decimal(denominations.get(k) or 0) * v for k, v in BIF_NOTES.items())
    coins = sum(Decimal(denominations.get(k) or 0) * v for k, v in BIF_COINS.items())
    return Decimal(notes), Decimal(coins), Decimal(notes + coins)


def theoretical_balance(session: CaisseSession) -> Decimal:
    return (
            Decimal(session.opening_amount or 0)
            + Decimal(session.total_in or 0)
            - Decimal(session.total_out or 0)
    )


def _record_count(db: Session, session: CaisseSession, count_type: str, denominations: dict,
                  currency: Optional[str] = None, comment: Optional[str] = None) -> CaisseCount:
    notes, coins, total = count_totals(denominations)
    count = CaisseCount(
        session_id=session.session_id,
        count_type=count_type,
        currency=currency or config.DEFAULT_CURRENCY,
        denominations=dict(denominations),
        total_notes=notes,
        total_coins=coins,
        total=total,
        comment=comment,
    )
    db.add(count)
    return count


def get_open_session(db: Session, teller_id: int, branch_id: int, on: Optional[date] = None) -> Optional[CaisseSession]:
    return (
        db.query(CaisseSession)
        .filter(
            CaisseSession.teller_id == teller_id,
            CaisseSession.branch_id == branch_id,
            CaisseSession.session_date == (on or date.today()),
            CaisseSession.status == "OPEN",
        )
        .first()
    )


def require_open_session(db: Session, teller_id: int, branch_id: int) -> CaisseSession:
    session = get_open_session(db, teller_id, branch_id)
    if not session:
        raise InvalidStateError("No open till session; open the till first")
    return session


def open_session(db: Session, teller_id: int, branch_id: int, denominations: dict,
                 currency: Optional[str] = None, comment: Optional[str] = None):
    today = date.today()
    existing = (
        db.query(CaisseSession)
        .filter(
            CaisseSession.teller_id == teller_id,
            CaisseSession.branch_id == branch_id,
            CaisseSession.session_date == today,
        )
        .first()
    )
    if existing:
        raise InvalidStateError("A till session already exists for today")

    _, _, total = count_totals(denominations)
    session = CaisseSession(
        branch_id=branch_id,
        teller_id=teller_id,
        session_date=today,
        opened_at=datetime.now(),
        opening_amount=total,
        total_in=Decimal("0"),
        total_out=Decimal("0"),
        operations_count=0,
        status="OPEN",
    )
    db.add(session)
    db.flush()
    count = _record_count(db, session, "OPENING", denominations, currency, comment)
    db.flush()

    logger.info("Till opened: teller %s, branch %s, amount %s", teller_id, branch_id, total)
    return session, count


def close_session(db: Session, teller_id: int, branch_id: int, denominations: dict,
                  currency: Optional[str] = None, comment: Optional[str] = None):
    """
    Close today's session. Returns (session, count, theoretical, variance, entry_id).
    """
    session = get_open_session(db, teller_id, branch_id)
    if not session:
        raise InvalidStateError("No open till session")

    pending = (
        db.query(CaisseMovement)
        .filter(CaisseMovement.session_id == session.session_id, CaisseMovement.status == "PENDING")
        .count()
    )
    if pending:
        raise InvalidStateError(f"{pending} movement(s) awaiting validation; process them before closing")

    count = _record_count(db, session, "CLOSING", denominations, currency, comment)
    theoretical = theoretical_balance(session)
    variance = count.total - theoretical

    session.closed_at = datetime.now()
    session.closing_amount = count.total
    session.variance = variance
    session.variance_note = f"Écart de {variance} BIF" if variance else None
    session.status = "CLOSED"
    db.flush()

    entry = None
    if variance < 0:
        entry = accounting_service.try_post(
            db, accounting_service.post_caisse_shortage, branch_id, -variance, teller_id
        )
    elif variance > 0:
        entry = accounting_service.try_post(
            db, accounting_service.post_caisse_surplus, branch_id, variance, teller_id
        )
    entry_id = entry.ledger_entry_id if entry is not None else None
    session.variance_entry_id = entry_id

    logger.info("Till closed: teller %s, branch %s, counted %s, variance %s, entry %s",
                teller_id, branch_id, count.total, variance, entry_id)
    return session, count, theoretical, variance, entry_id


def request_funding(db: Session, teller_id: int, branch_id: int, amount,
                    denominations: Optional[dict] = None, currency: Optional[str] = None,
                    comment: Optional[str] = None) -> CaisseMovement:
    amount = banking_service.positive_amount(amount)
    session = require_open_session(db, teller_id, branch_id)

    movement = CaisseMovement(
        session_id=session.session_id,
        branch_id=branch_id,
        movement_type="FUNDING",
        amount=amount,
        currency=currency or config.DEFAULT_CURRENCY,
        requested_by=teller_id,
        status="PENDING",
        comment=comment,
    )
    db.add(movement)
    if denominations:
        _record_count(db, session, "FUNDING", denominations, currency, comment)
    db.flush()

    logger.info("Funding request %s: teller %s, amount %s", movement.movement_id, teller_id, amount)
    return movement


def request_return(db: Session, teller_id: int, branch_id: int, amount, denominations: dict,
                   currency: Optional[str] = None, comment: Optional[str] = None) -> CaisseMovement:
    amount = banking_service.positive_amount(amount)
    session = require_open_session(db, teller_id, branch_id)

    current = theoretical_balance(session)
    if amount > current:
        raise ValidationError(f"Insufficient till balance. Current balance: {current}")

    _, _, counted = count_totals(denominations)
    if counted != amount:
        raise ValidationError(f"Count ({counted}) does not match the requested amount ({amount})")

    movement = CaisseMovement(
        session_id=session.session_id,
        branch_id=branch_id,
        movement_type="RETURN",
        amount=amount,
        currency=currency or config.DEFAULT_CURRENCY,
        requested_by=teller_id,
        status="PENDING",
        comment=comment,
    )
    db.add(movement)
    _record_count(db, session, "RETURN", denominations, currency, comment)
    db.flush()

    logger.info("Return request %s: teller %s, amount %s", movement.movement_id, teller_id, amount)
    return movement


def _pending_movement(db: Session, movement_id: int) -> CaisseMovement:
    movement = db.query(CaisseMovement).filter(CaisseMovement.movement_id == movement_id).first()
    if not movement:
        raise EntityNotFoundError("Movement not found")
    if movement.status != "PENDING":
        raise InvalidStateError("This movement has already been processed")
    return movement


def validate_movement(db: Session, movement_id: int, supervisor_id: Optional[int] = None) -> CaisseMovement:
    movement = _pending_movement(db, movement_id)
    session = movement.session
    amount = Decimal(movement.amount)

    # other returns may have been validated since this one was requested
    if movement.movement_type == "RETURN":
        current = theoretical_balance(session)
        if amount > current:
            raise ValidationError(f"Insufficient till balance. Current balance: {current}")

    movement.status = "VALIDATED"
    movement.validated_by = supervisor_id
    movement.validated_at = datetime.now()

    if movement.movement_type == "FUNDING":
        session.total_in = Decimal(session.total_in or 0) + amount
        builder = accounting_service.post_caisse_funding
    else:
        session.total_out = Decimal(session.total_out or 0) + amount
        builder = accounting_service.post_caisse_return
    session.operations_count = (session.operations_count or 0) + 1
    db.flush()

    entry = accounting_service.try_post(db, builder, movement.branch_id, amount, movement.requested_by)
    movement.ledger_entry_id = entry.ledger_entry_id if entry is not None else None

    logger.info("Till movement %s validated by %s (entry %s)", movement_id, supervisor_id, movement.ledger_entry_id)
    return movement


def reject_movement(db: Session, movement_id: int, reason: str, supervisor_id: Optional[int] = None) -> CaisseMovement:
    if not reason or not reason.strip():
        raise ValidationError("A rejection reason is required")
    movement = _pending_movement(db, movement_id)

    movement.status = "REJECTED"
    movement.validated_by = supervisor_id
    movement.validated_at = datetime.now()
    movement.rejection_reason = reason

    logger.info("Till movement %s rejected by %s: %s", movement_id, supervisor_id, reason)
    return movement


def pending_movements(db: Session, branch_id: Optional[int] = None) -> list[CaisseMovement]:
    q = db.query(CaisseMovement).filter(CaisseMovement.status == "PENDING")
    if branch_id is not None:
        q = q.filter(CaisseMovement.branch_id == branch_id)
    return q.order_by(CaisseMovement.created_on.asc(), CaisseMovement.movement_id.asc()).all()
