from dataclasses import asdict
from datetime import date, datetime, time, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from sqlalchemy import text

from coopbank.utils.database import get_db
from coopbank.services import loan_service

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get("/dashboard")
def dashboard(db: Session = Depends(get_db)):
    start = datetime.combine(date.today(), time.min)
    end = start + timedelta(days=1)

    counts = db.execute(
        text("""
             select (select count(*) from clients where is_active = :yes)                        as clients,
                    (select count(*) from accounts where status = 'ACTIVE')                     as accounts,
                    (select count(*) from loans where status in ('DISBURSED', 'DELINQUENT'))    as active_loans,
                    (select count(*) from loans where status in ('REQUESTED', 'UNDER_REVIEW'))  as pending_loans,
                    (select coalesce(sum(balance), 0) from accounts where status <> 'CLOSED')   as total_deposits
             """),
        {"yes": True},
    ).mappings().first()

    today = db.execute(
        text("""
             select coalesce(sum(case when operation_type = 'DEPOSIT' then amount else 0 end), 0)    as deposits,
                    coalesce(sum(case when operation_type = 'WITHDRAWAL' then amount else 0 end), 0) as withdrawals,
                    count(*)                                                                          as operations
             from account_movements
             where movement_date >= :start
               and movement_date < :end
             """),
        {"start": start, "end": end},
    ).mappings().first()

    summary = loan_service.portfolio_summary(db)

    return {
        "clients": int(counts["clients"]),
        "accounts": int(counts["accounts"]),
        "active_loans": int(counts["active_loans"]),
        "pending_loans": int(counts["pending_loans"]),
        "total_deposits": float(counts["total_deposits"]),
        "outstanding_principal": float(summary.total_outstanding),
        "par_ratio": float(summary.par_ratio),
        "today": {
            "deposits": float(today["deposits"]),
            "withdrawals": float(today["withdrawals"]),
            "operations": int(today["operations"]),
        },
    }


@router.get("/portfolio")
def portfolio(
        branch_id: Optional[int] = Query(None),
        as_of: Optional[date] = Query(None),
        db: Session = Depends(get_db),
):
    sql = "select status, count(*) as c, coalesce(sum(approved_amount), 0) as amount from loans"
    params = {}
    if branch_id is not None:
        sql += " where branch_id = :bid"
        params["bid"] = branch_id
    sql += " group by status order by status"

    rows = db.execute(text(sql), params).mappings().all()
    summary = loan_service.portfolio_summary(db, as_of, branch_id)

    return {
        "branch_id": branch_id,
        "by_status": [
            {"status": r["status"], "loans": int(r["c"]), "amount": float(r["amount"])}
            for r in rows
        ],
        "summary": asdict(summary),
    }


@router.get("/overdue")
def overdue_report(as_on: Optional[date] = Query(None), db: Session = Depends(get_db)):
    rows = db.execute(
        text("""
             select l.loan_id,
                    l.loan_account_no,
                    l.client_id,
                    c.full_name                                      as client_name,
                    l.branch_id,
                    i.installment_no,
                    i.due_date,
                    (i.principal_remaining + i.interest_remaining)  as due_left
             from loan_installments i
                      join loans l on l.loan_id = i.loan_id
                      join clients c on c.client_id = l.client_id
             where i.status = 'PENDING'
               and i.due_date <= :as_on
               and l.status in ('DISBURSED', 'DELINQUENT')
             order by i.due_date asc, l.loan_id asc
             """),
        {"as_on": as_on or date.today()},
    ).mappings().all()

    return [
        {
            "loan_id": r["loan_id"],
            "loan_account_no": r["loan_account_no"],
            "client_id": r["client_id"],
            "client_name": r["client_name"],
            "branch_id": r["branch_id"],
            "installment_no": r["installment_no"],
            "due_date": r["due_date"],
            "due_left": float(r["due_left"]),
        }
        for r in rows
    ]
