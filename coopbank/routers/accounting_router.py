from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session
from starlette import status

from coopbank.core import config
from coopbank.utils.database import get_db
from coopbank.models.account_model import AccountMovement
from coopbank.models.ledger_model import ChartAccount, LedgerEntry, LedgerLine
from coopbank.services import accounting_service
from coopbank.services.accounting_service import CREDIT, DEBIT, LedgerLeg
from coopbank.schemas.accounting_schema import (
    ChartAccountOut,
    JournalEntryCreate,
    JournalEntryOut,
    TrialBalanceOut,
    GeneralLedgerRow,
    VaultTransferIn,
    ValidationReport,
)

router = APIRouter(prefix="/accounting", tags=["Accounting"])

ZERO = Decimal("0")

debit_sum = func.coalesce(func.sum(case((LedgerLine.side == DEBIT, LedgerLine.amount), else_=0)), 0)
credit_sum = func.coalesce(func.sum(case((LedgerLine.side == CREDIT, LedgerLine.amount), else_=0)), 0)


@router.get("/chart", response_model=list[ChartAccountOut])
def chart_of_accounts(account_class: Optional[int] = Query(None), db: Session = Depends(get_db)):
    q = db.query(ChartAccount)
    if account_class is not None:
        q = q.filter(ChartAccount.account_class == account_class)
    return q.order_by(ChartAccount.code.asc()).all()


@router.get("/journal", response_model=list[JournalEntryOut])
def journal(
        branch_id: Optional[int] = Query(None),
        date_from: Optional[date] = Query(None),
        date_to: Optional[date] = Query(None),
        page: int = Query(1, ge=1),
        page_size: int = Query(config.DEFAULT_PAGE_SIZE, ge=1, le=config.MAX_PAGE_SIZE),
        db: Session = Depends(get_db),
):
    q = db.query(LedgerEntry)
    if branch_id is not None:
        q = q.filter(LedgerEntry.branch_id == branch_id)
    if date_from:
        q = q.filter(LedgerEntry.value_date >= date_from)
    if date_to:
        q = q.filter(LedgerEntry.value_date <= date_to)
    return (
        q.order_by(LedgerEntry.value_date.desc(), LedgerEntry.ledger_entry_id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )


@router.post("/journal", response_model=JournalEntryOut, status_code=status.HTTP_201_CREATED)
def manual_entry(payload: JournalEntryCreate, db: Session = Depends(get_db)):
    legs = [LedgerLeg(l.account_code.strip(), l.side, Decimal(str(l.amount))) for l in payload.lines]
    try:
        entry = accounting_service.post_entry(
            db,
            payload.branch_id,
            payload.label,
            legs,
            value_date=payload.value_date,
            created_by=payload.user_id,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(entry)
    return entry


@router.get("/trial-balance", response_model=TrialBalanceOut)
def trial_balance(
        branch_id: Optional[int] = Query(None),
        date_to: Optional[date] = Query(None),
        db: Session = Depends(get_db),
):
    q = (
        db.query(LedgerLine.account_code, debit_sum, credit_sum)
        .join(LedgerEntry, LedgerEntry.ledger_entry_id == LedgerLine.ledger_entry_id)
    )
    if branch_id is not None:
        q = q.filter(LedgerEntry.branch_id == branch_id)
    if date_to:
        q = q.filter(LedgerEntry.value_date <= date_to)

    labels = {c.code: c.label for c in db.query(ChartAccount).all()}

    rows = []
    total_debit = total_credit = ZERO
    for code, d, c in q.group_by(LedgerLine.account_code).order_by(LedgerLine.account_code.asc()).all():
        d, c = Decimal(d), Decimal(c)
        label = labels.get(code)
        if label is None and code.startswith(accounting_service.ChartAccounts.TELLER_TILL + "."):
            label = f"Caisse guichetier {code.rsplit('.', 1)[-1]}"
        rows.append(
            {"account_code": code, "label": label, "total_debit": d, "total_credit": c, "balance": d - c}
        )
        total_debit += d
        total_credit += c

    return {
        "rows": rows,
        "total_debit": total_debit,
        "total_credit": total_credit,
        "is_balanced": total_debit == total_credit,
    }


@router.get("/general-ledger/{account_code}", response_model=list[GeneralLedgerRow])
def general_ledger(
        account_code: str,
        branch_id: Optional[int] = Query(None),
        date_from: Optional[date] = Query(None),
        date_to: Optional[date] = Query(None),
        db: Session = Depends(get_db),
):
    """Legs of one account (and its sub-accounts) with a running debit - credit balance."""
    q = (
        db.query(LedgerLine, LedgerEntry)
        .join(LedgerEntry, LedgerEntry.ledger_entry_id == LedgerLine.ledger_entry_id)
        .filter(or_(LedgerLine.account_code == account_code, LedgerLine.account_code.like(account_code + ".%")))
    )
    if branch_id is not None:
        q = q.filter(LedgerEntry.branch_id == branch_id)
    if date_from:
        q = q.filter(LedgerEntry.value_date >= date_from)
    if date_to:
        q = q.filter(LedgerEntry.value_date <= date_to)

    running = ZERO
    out = []
    for line, entry in q.order_by(LedgerEntry.value_date.asc(), LedgerLine.line_id.asc()).all():
        amount = Decimal(line.amount)
        debit = amount if line.side == DEBIT else ZERO
        credit = amount if line.side == CREDIT else ZERO
        running += debit - credit
        out.append(
            {
                "ledger_entry_id": entry.ledger_entry_id,
                "entry_no": entry.entry_no,
                "value_date": entry.value_date,
                "label": entry.label,
                "debit": debit,
                "credit": credit,
                "running_balance": running,
            }
        )
    return out


@router.post("/vault-transfers", response_model=JournalEntryOut, status_code=status.HTTP_201_CREATED)
def vault_transfer(payload: VaultTransferIn, db: Session = Depends(get_db)):
    amount = Decimal(str(payload.amount))

    if payload.kind == "INTER_VAULT":
        if payload.dest_branch_id is None:
            raise HTTPException(400, "dest_branch_id is required for an inter-vault transfer")
        if payload.dest_branch_id == payload.branch_id:
            raise HTTPException(400, "Source and destination branches must differ")
        builder, args = accounting_service.post_inter_vault, (payload.branch_id, payload.dest_branch_id, amount)
    else:
        bank = payload.bank_account or accounting_service.ChartAccounts.BANK_BRB
        if bank not in accounting_service.BANK_ACCOUNTS:
            raise HTTPException(400, f"Unknown bank account {bank}")
        if payload.kind == "VAULT_TO_BANK":
            builder = accounting_service.post_vault_to_bank
        else:
            builder = accounting_service.post_bank_to_vault
        args = (payload.branch_id, amount, bank)

    try:
        entry = builder(db, *args)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(entry)
    return entry


@router.get("/validation", response_model=ValidationReport)
def validation(db: Session = Depends(get_db)):
    total_debit, total_credit = db.query(debit_sum, credit_sum).one()
    total_debit, total_credit = Decimal(total_debit), Decimal(total_credit)

    unbalanced = [
        {"ledger_entry_id": eid, "detail": f"debit={Decimal(d)}, credit={Decimal(c)}"}
        for eid, d, c in (
            db.query(LedgerLine.ledger_entry_id, debit_sum, credit_sum)
            .group_by(LedgerLine.ledger_entry_id)
            .having(debit_sum != credit_sum)
            .all()
        )
    ]

    non_positive = [
        {"ledger_entry_id": l.ledger_entry_id, "detail": f"{l.account_code}: {l.amount}"}
        for l in db.query(LedgerLine).filter(LedgerLine.amount <= 0).all()
    ]

    invalid_sides = [
        {"ledger_entry_id": l.ledger_entry_id, "detail": f"{l.account_code}: side {l.side!r}"}
        for l in db.query(LedgerLine).filter(LedgerLine.side.notin_([DEBIT, CREDIT])).all()
    ]

    unposted = [
        {"movement_id": m.movement_id, "detail": f"{m.operation_type} {m.amount} on account {m.account_id}"}
        for m in (
            db.query(AccountMovement)
            .filter(AccountMovement.ledger_entry_id.is_(None))
            .order_by(AccountMovement.movement_id.asc())
            .all()
        )
    ]

    globally_balanced = total_debit == total_credit
    return {
        "total_debit": total_debit,
        "total_credit": total_credit,
        "globally_balanced": globally_balanced,
        "unbalanced_entries": unbalanced,
        "non_positive_amounts": non_positive,
        "invalid_sides": invalid_sides,
        "unposted_movements": unposted,
        "is_valid": globally_balanced and not (unbalanced or non_positive or invalid_sides or unposted),
    }
