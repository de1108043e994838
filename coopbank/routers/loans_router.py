from dataclasses import asdict
from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from starlette import status

from coopbank.core import config
from coopbank.utils.database import get_db
from coopbank.utils.loan_calculations import risk_level
from coopbank.models.client_model import Client
from coopbank.models.loan_model import Loan, LoanStatus
from coopbank.models.loan_installment_model import LoanInstallment
from coopbank.models.loan_payment_model import LoanPayment
from coopbank.services import loan_service
from coopbank.schemas.loan_schema import (
    LoanCreate,
    LoanOut,
    LoanDetailOut,
    LoanApprove,
    ReasonIn,
    RejectIn,
    DisburseIn,
    DisburseResult,
    ScheduleOut,
    PaymentCreate,
    PaymentResult,
    PaymentOut,
    ArrearsOut,
    DelinquentLoanOut,
    DelinquentClientOut,
    UpcomingInstallmentOut,
    RefreshResult,
    PortfolioStatsOut,
)

router = APIRouter(prefix="/loans", tags=["Loans"])


# -------------------------------------------------
# Helpers
# -------------------------------------------------
def line_out(line) -> dict:
    return {
        "number": line.number,
        "due_date": line.due_date,
        "principal": line.principal,
        "interest": line.interest,
        "total": line.total,
        "principal_remaining": line.principal_remaining,
        "interest_remaining": line.interest_remaining,
        "amount_paid": line.amount_paid,
        "status": line.status,
        "paid_date": line.paid_date,
    }


def arrears_out(loan_id: int, summary) -> dict:
    out = asdict(summary)
    out["loan_id"] = loan_id
    out["risk_level"] = risk_level(summary.days_overdue)
    return out


def commit_or_rollback(db: Session):
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise


# =================================================
# 🔹 STATIC ROUTES (FIRST)
# =================================================
@router.get("/delinquent", response_model=list[DelinquentLoanOut])
def delinquent_loans(
        min_days: int = Query(1, ge=1),
        branch_id: Optional[int] = Query(None),
        as_of: Optional[date] = Query(None),
        db: Session = Depends(get_db),
):
    out = []
    for loan, s in loan_service.active_loans_with_arrears(db, as_of, branch_id):
        if not s.is_overdue or s.days_overdue < min_days:
            continue
        out.append(
            {
                "loan_id": loan.loan_id,
                "loan_account_no": loan.loan_account_no,
                "client_id": loan.client_id,
                "client_name": loan.client.full_name if loan.client else None,
                "branch_id": loan.branch_id,
                "status": loan.status,
                "days_overdue": s.days_overdue,
                "risk_level": risk_level(s.days_overdue),
                "overdue_capital": s.overdue_capital,
                "overdue_interest": s.overdue_interest,
                "overdue_total": s.overdue_total,
                "outstanding_principal": loan_service.outstanding_principal(loan, s),
            }
        )
    out.sort(key=lambda r: r["days_overdue"], reverse=True)
    return out


@router.get("/clients/delinquent", response_model=list[DelinquentClientOut])
def delinquent_clients(
        branch_id: Optional[int] = Query(None),
        as_of: Optional[date] = Query(None),
        db: Session = Depends(get_db),
):
    by_client = {}
    for loan, s in loan_service.active_loans_with_arrears(db, as_of, branch_id):
        if not s.is_overdue:
            continue
        row = by_client.setdefault(
            loan.client_id,
            {
                "client_id": loan.client_id,
                "client_name": loan.client.full_name if loan.client else None,
                "loans": 0,
                "max_days_overdue": 0,
                "total_overdue": 0,
            },
        )
        row["loans"] += 1
        row["max_days_overdue"] = max(row["max_days_overdue"], s.days_overdue)
        row["total_overdue"] += s.overdue_total

    out = []
    for row in by_client.values():
        row["risk_level"] = risk_level(row["max_days_overdue"])
        out.append(row)
    out.sort(key=lambda r: r["max_days_overdue"], reverse=True)
    return out


@router.get("/schedule/upcoming", response_model=list[UpcomingInstallmentOut])
def upcoming_installments(
        days: int = Query(7, ge=0, le=90),
        branch_id: Optional[int] = Query(None),
        db: Session = Depends(get_db),
):
    today = date.today()
    q = (
        db.query(LoanInstallment, Loan, Client)
        .join(Loan, Loan.loan_id == LoanInstallment.loan_id)
        .join(Client, Client.client_id == Loan.client_id)
        .filter(
            LoanInstallment.status == "PENDING",
            LoanInstallment.due_date >= today,
            LoanInstallment.due_date <= today + timedelta(days=days),
            Loan.status.in_(LoanStatus.ACTIVE),
        )
    )
    if branch_id is not None:
        q = q.filter(Loan.branch_id == branch_id)

    return [
        {
            "installment_id": i.installment_id,
            "loan_id": i.loan_id,
            "installment_no": i.installment_no,
            "due_date": i.due_date,
            "due_left": i.principal_remaining + i.interest_remaining,
            "client_id": c.client_id,
            "client_name": c.full_name,
        }
        for i, loan, c in q.order_by(LoanInstallment.due_date.asc()).all()
    ]


@router.get("/portfolio/stats", response_model=PortfolioStatsOut)
def portfolio_stats(
        branch_id: Optional[int] = Query(None),
        as_of: Optional[date] = Query(None),
        db: Session = Depends(get_db),
):
    summary = loan_service.portfolio_summary(db, as_of, branch_id)

    q = db.query(Loan.status, func.count(Loan.loan_id))
    if branch_id is not None:
        q = q.filter(Loan.branch_id == branch_id)
    by_status = {s: c for s, c in q.group_by(Loan.status).all()}

    out = asdict(summary)
    out["by_status"] = by_status
    return out


@router.post("/status/refresh", response_model=RefreshResult)
def refresh_statuses(as_of: Optional[date] = Query(None), db: Session = Depends(get_db)):
    result = loan_service.refresh_statuses(db, as_of)
    commit_or_rollback(db)
    return result


@router.post("", response_model=LoanOut, status_code=status.HTTP_201_CREATED)
def create_loan(payload: LoanCreate, db: Session = Depends(get_db)):
    try:
        loan = loan_service.create_request(
            db,
            payload.client_id,
            payload.requested_amount,
            payload.term_months,
            payload.purpose,
            payload.purpose_detail,
            payload.loan_account_no,
            payload.user_id,
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Loan account number already exists",
        )
    except Exception:
        db.rollback()
        raise

    db.refresh(loan)
    return loan


@router.get("", response_model=list[LoanOut])
def list_loans(
        status_filter: Optional[str] = Query(None, alias="status"),
        client_id: Optional[int] = Query(None),
        branch_id: Optional[int] = Query(None),
        page: int = Query(1, ge=1),
        page_size: int = Query(config.DEFAULT_PAGE_SIZE, ge=1, le=config.MAX_PAGE_SIZE),
        db: Session = Depends(get_db),
):
    q = db.query(Loan)
    if status_filter:
        q = q.filter(Loan.status == status_filter.upper())
    if client_id is not None:
        q = q.filter(Loan.client_id == client_id)
    if branch_id is not None:
        q = q.filter(Loan.branch_id == branch_id)
    return q.order_by(Loan.loan_id.desc()).offset((page - 1) * page_size).limit(page_size).all()


# =================================================
# 🔹 DYNAMIC ROUTES (LAST)
# =================================================
@router.get("/{loan_id}", response_model=LoanDetailOut)
def get_loan(loan_id: int, db: Session = Depends(get_db)):
    loan = loan_service.get_loan(db, loan_id)
    lines = loan_service.get_effective_schedule(db, loan)
    summary = loan_service.loan_arrears(db, loan)

    out = LoanOut.model_validate(loan).model_dump()
    out.update(
        {
            "installments_count": len(lines),
            "total_principal": sum(l.principal for l in lines),
            "total_interest": sum(l.interest for l in lines),
            "outstanding_principal": loan_service.outstanding_principal(loan, summary),
            "schedule_persisted": bool(loan.installments),
        }
    )
    return out


@router.put("/{loan_id}/review", response_model=LoanOut)
def review_loan(loan_id: int, db: Session = Depends(get_db)):
    loan = loan_service.start_review(db, loan_id)
    commit_or_rollback(db)
    db.refresh(loan)
    return loan


@router.put("/{loan_id}/approve", response_model=LoanOut)
def approve_loan(loan_id: int, payload: LoanApprove, db: Session = Depends(get_db)):
    loan = loan_service.approve(
        db,
        loan_id,
        payload.approved_amount,
        payload.annual_rate,
        payload.term_months,
        payload.processing_fee,
        payload.insurance_fee,
        payload.comment,
    )
    commit_or_rollback(db)
    db.refresh(loan)
    return loan


@router.put("/{loan_id}/reject", response_model=LoanOut)
def reject_loan(loan_id: int, payload: RejectIn, db: Session = Depends(get_db)):
    loan = loan_service.reject(db, loan_id, payload.reason)
    commit_or_rollback(db)
    db.refresh(loan)
    return loan


@router.put("/{loan_id}/cancel", response_model=LoanOut)
def cancel_loan(loan_id: int, payload: ReasonIn, db: Session = Depends(get_db)):
    loan = loan_service.cancel(db, loan_id, payload.reason)
    commit_or_rollback(db)
    db.refresh(loan)
    return loan


@router.put("/{loan_id}/disburse", response_model=DisburseResult)
def disburse_loan(loan_id: int, payload: DisburseIn, db: Session = Depends(get_db)):
    try:
        loan, entry_id = loan_service.disburse(
            db, loan_id, payload.account_id, payload.disbursed_on, payload.user_id
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(loan)
    return {
        "message": "Loan disbursed",
        "loan": loan,
        "installments": len(loan.installments),
        "ledger_entry_id": entry_id,
    }


@router.get("/{loan_id}/schedule", response_model=ScheduleOut)
def get_schedule(loan_id: int, db: Session = Depends(get_db)):
    loan = loan_service.get_loan(db, loan_id)
    lines = loan_service.get_effective_schedule(db, loan)
    return {
        "loan_id": loan_id,
        "persisted": bool(loan.installments),
        "lines": [line_out(l) for l in lines],
    }


@router.post("/{loan_id}/generate-schedule", response_model=ScheduleOut)
def generate_schedule(loan_id: int, db: Session = Depends(get_db)):
    try:
        loan_service.generate_missing_schedule(db, loan_id)
        db.commit()
    except Exception:
        db.rollback()
        raise

    loan = loan_service.get_loan(db, loan_id)
    lines = loan_service.get_effective_schedule(db, loan)
    return {"loan_id": loan_id, "persisted": True, "lines": [line_out(l) for l in lines]}


@router.get("/{loan_id}/arrears", response_model=ArrearsOut)
def get_arrears(loan_id: int, as_of: Optional[date] = Query(None), db: Session = Depends(get_db)):
    loan = loan_service.get_loan(db, loan_id)
    return arrears_out(loan_id, loan_service.loan_arrears(db, loan, as_of))


@router.post("/{loan_id}/payments", response_model=PaymentResult)
def add_payment(loan_id: int, payload: PaymentCreate, db: Session = Depends(get_db)):
    try:
        payment, applied, unapplied = loan_service.record_payment(
            db,
            loan_id,
            payload.amount,
            payload.penalty,
            payload.payment_date,
            payload.account_id,
            payload.receipt_no,
            payload.remarks,
            payload.user_id,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    loan = loan_service.get_loan(db, loan_id)
    return {
        "payment_id": payment.payment_id,
        "principal_paid": payment.principal_paid,
        "interest_paid": payment.interest_paid,
        "penalty_paid": payment.penalty_paid,
        "applied_to_installments": applied,
        "unapplied_amount": unapplied,
        "loan_status": loan.status,
    }


@router.get("/{loan_id}/payments", response_model=list[PaymentOut])
def list_payments(loan_id: int, db: Session = Depends(get_db)):
    loan_service.get_loan(db, loan_id)
    return (
        db.query(LoanPayment)
        .filter(LoanPayment.loan_id == loan_id)
        .order_by(LoanPayment.payment_date.desc(), LoanPayment.payment_id.desc())
        .all()
    )


@router.post("/{loan_id}/payments/{payment_id}/reverse", response_model=PaymentOut)
def reverse_payment(loan_id: int, payment_id: int, user_id: Optional[int] = Query(None),
                    db: Session = Depends(get_db)):
    try:
        payment = loan_service.reverse_payment(db, loan_id, payment_id, user_id)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(payment)
    return payment


@router.put("/{loan_id}/mark-closed", response_model=LoanOut)
def mark_closed(loan_id: int, payload: ReasonIn, db: Session = Depends(get_db)):
    loan = loan_service.mark_closed(db, loan_id, payload.reason)
    commit_or_rollback(db)
    db.refresh(loan)
    return loan


@router.put("/{loan_id}/reopen", response_model=LoanOut)
def reopen_loan(loan_id: int, payload: ReasonIn, db: Session = Depends(get_db)):
    loan = loan_service.reopen(db, loan_id, payload.reason)
    commit_or_rollback(db)
    db.refresh(loan)
    return loan
