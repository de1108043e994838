import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from coopbank.core import config
from coopbank.exceptions import EntityNotFoundError, InvalidStateError, ValidationError
from coopbank.models.client_model import Client
from coopbank.models.loan_installment_model import LoanInstallment
from coopbank.models.loan_model import Loan, LoanStatus
from coopbank.models.loan_payment_allocation_model import LoanPaymentAllocation
from coopbank.models.loan_payment_model import LoanPayment
from coopbank.services import accounting_service, banking_service
from coopbank.services.settings_service import get_setting
from coopbank.utils.loan_calculations import (
    ArrearsSummary,
    PaymentRecord,
    ScheduleLine,
    analyze_loan_status,
    generate_schedule,
    money,
    summarize_portfolio,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def get_loan(db: Session, loan_id: int) -> Loan:
    loan = db.query(Loan).filter(Loan.loan_id == loan_id).first()
    if not loan:
        raise EntityNotFoundError("Loan not found")
    return loan


# -------------------------------------------------
# Schedule / arrears
# -------------------------------------------------
def installment_to_line(inst: LoanInstallment) -> ScheduleLine:
    return ScheduleLine(
        number=inst.installment_no,
        due_date=inst.due_date,
        principal=Decimal(inst.principal_due),
        interest=Decimal(inst.interest_due),
        principal_remaining=Decimal(inst.principal_remaining),
        interest_remaining=Decimal(inst.interest_remaining),
        amount_paid=Decimal(inst.amount_paid or 0),
        paid_date=inst.paid_date,
        status=inst.status,
    )


def theoretical_schedule(loan: Loan) -> list[ScheduleLine]:
    if loan.disbursed_on is None:
        return []
    return generate_schedule(loan.approved_amount, loan.annual_rate, loan.term_months, loan.disbursed_on)


def get_effective_schedule(db: Session, loan: Loan) -> list[ScheduleLine]:
    """Persisted installments when the loan has them, the generated schedule otherwise."""
    rows = (
        db.query(LoanInstallment)
        .filter(LoanInstallment.loan_id == loan.loan_id)
        .order_by(LoanInstallment.installment_no.asc())
        .all()
    )
    if rows:
        return [installment_to_line(r) for r in rows]
    return theoretical_schedule(loan)


def payment_records(db: Session, loan_id: int) -> list[PaymentRecord]:
    rows = (
        db.query(LoanPayment)
        .filter(LoanPayment.loan_id == loan_id)
        .order_by(LoanPayment.payment_date.asc(), LoanPayment.payment_id.asc())
        .all()
    )
    return [
        PaymentRecord(
            payment_date=r.payment_date,
            principal=Decimal(r.principal_paid or 0),
            interest=Decimal(r.interest_paid or 0),
            penalty=Decimal(r.penalty_paid or 0),
            is_reversed=bool(r.is_reversed),
        )
        for r in rows
    ]


def loan_arrears(db: Session, loan: Loan, as_of: Optional[date] = None) -> ArrearsSummary:
    return analyze_loan_status(
        loan.approved_amount,
        loan.annual_rate,
        loan.term_months,
        loan.disbursed_on,
        payment_records(db, loan.loan_id),
        as_of=as_of,
    )


def outstanding_principal(loan: Loan, summary: ArrearsSummary) -> Decimal:
    return max(ZERO, Decimal(loan.approved_amount or 0) - summary.paid_capital)


def persist_schedule(db: Session, loan: Loan) -> list[LoanInstallment]:
    if loan.installments:
        raise InvalidStateError("Loan already has a repayment schedule")
    if loan.disbursed_on is None:
        raise InvalidStateError("Loan has not been disbursed")

    for line in theoretical_schedule(loan):
        loan.installments.append(
            LoanInstallment(
                installment_no=line.number,
                due_date=line.due_date,
                principal_due=line.principal,
                interest_due=line.interest,
                principal_remaining=line.principal_remaining,
                interest_remaining=line.interest_remaining,
                amount_paid=ZERO,
                status="PENDING",
            )
        )
    db.flush()
    return loan.installments


# -------------------------------------------------
# Allocation
# -------------------------------------------------
def alloc_to_installments(db: Session, loan_id: int, amount: Decimal, paid_on: Optional[date] = None):
    """
    Allocates 'amount' to pending installments, oldest first, interest
    before principal.
    Returns:
      allocations_list, remaining_amount, applied_installments_count, applied_total

    allocations_list contains dicts:
      - installment_id
      - installment_no
      - principal_alloc (Decimal)
      - interest_alloc  (Decimal)
    """
    amount = money(amount)
    allocations = []
    applied_installments = 0
    applied_total = ZERO

    installments = (
        db.query(LoanInstallment)
        .filter(LoanInstallment.loan_id == loan_id, LoanInstallment.status == "PENDING")
        .order_by(LoanInstallment.installment_no.asc())
        .all()
    )

    for inst in installments:
        if amount <= 0:
            break

        interest_left = Decimal(inst.interest_remaining)
        principal_left = Decimal(inst.principal_remaining)

        in_add = min(amount, interest_left)
        pr_add = min(amount - in_add, principal_left)
        if in_add + pr_add <= 0:
            continue

        inst.interest_remaining = interest_left - in_add
        inst.principal_remaining = principal_left - pr_add
        inst.amount_paid = Decimal(inst.amount_paid or 0) + in_add + pr_add

        if inst.interest_remaining <= 0 and inst.principal_remaining <= 0:
            inst.status = "PAID"
            inst.paid_date = paid_on or date.today()
            applied_installments += 1

        allocations.append(
            {
                "installment_id": inst.installment_id,
                "installment_no": inst.installment_no,
                "principal_alloc": pr_add,
                "interest_alloc": in_add,
            }
        )

        applied_total += in_add + pr_add
        amount -= in_add + pr_add

    return allocations, amount, applied_installments, applied_total


def outstanding_on_schedule(db: Session, loan_id: int) -> Decimal:
    rows = (
        db.query(LoanInstallment)
        .filter(LoanInstallment.loan_id == loan_id, LoanInstallment.status == "PENDING")
        .all()
    )
    return sum((Decimal(r.principal_remaining) + Decimal(r.interest_remaining) for r in rows), ZERO)


# -------------------------------------------------
# Lifecycle
# -------------------------------------------------
def create_request(
        db: Session,
        client_id: int,
        requested_amount,
        term_months: int,
        purpose: Optional[int] = None,
        purpose_detail: Optional[str] = None,
        loan_account_no: Optional[str] = None,
        user_id: Optional[int] = None,
) -> Loan:
    client = db.query(Client).filter(Client.client_id == client_id).first()
    if not client:
        raise EntityNotFoundError("Client not found")
    if not client.is_active:
        raise InvalidStateError("Client is not active")

    max_term = int(get_setting(db, "MAX_LOAN_TERM_MONTHS", str(config.MAX_LOAN_TERM_MONTHS)))
    if term_months > max_term:
        raise ValidationError(f"Term cannot exceed {max_term} months")

    loan = Loan(
        loan_account_no=loan_account_no,
        client_id=client_id,
        branch_id=client.branch_id,
        purpose=purpose,
        purpose_detail=purpose_detail,
        requested_amount=money(requested_amount),
        requested_on=date.today(),
        term_months=term_months,
        status=LoanStatus.REQUESTED,
        created_by=user_id,
    )
    db.add(loan)
    db.flush()

    logger.info("Loan request %s created for client %s (%s)", loan.loan_id, client_id, loan.requested_amount)
    return loan


def start_review(db: Session, loan_id: int) -> Loan:
    loan = get_loan(db, loan_id)
    if loan.status != LoanStatus.REQUESTED:
        raise InvalidStateError(f"Loan cannot be reviewed in status {loan.status}")
    loan.status = LoanStatus.UNDER_REVIEW
    return loan


def approve(
        db: Session,
        loan_id: int,
        approved_amount,
        annual_rate=None,
        term_months: Optional[int] = None,
        processing_fee=0,
        insurance_fee=0,
        comment: Optional[str] = None,
) -> Loan:
    loan = get_loan(db, loan_id)
    if loan.status not in LoanStatus.PENDING_DECISION:
        raise InvalidStateError("Loan already processed")

    approved_amount = money(approved_amount)
    processing_fee = money(processing_fee)
    insurance_fee = money(insurance_fee)
    if processing_fee + insurance_fee >= approved_amount:
        raise ValidationError("Fees cannot absorb the whole approved amount")

    if annual_rate is None:
        annual_rate = get_setting(db, "DEFAULT_INTEREST_RATE", config.DEFAULT_INTEREST_RATE)

    loan.approved_amount = approved_amount
    loan.annual_rate = Decimal(str(annual_rate))
    loan.term_months = term_months or loan.term_months
    loan.processing_fee = processing_fee
    loan.insurance_fee = insurance_fee
    loan.approved_on = date.today()
    loan.status = LoanStatus.APPROVED
    loan.status_reason = comment

    logger.info("Loan %s approved: %s at %s%%", loan_id, approved_amount, annual_rate)
    return loan


def reject(db: Session, loan_id: int, reason: str) -> Loan:
    loan = get_loan(db, loan_id)
    if loan.status not in LoanStatus.PENDING_DECISION + (LoanStatus.APPROVED,):
        raise InvalidStateError(f"Loan cannot be rejected in status {loan.status}")
    loan.status = LoanStatus.REJECTED
    loan.status_reason = reason
    logger.info("Loan %s rejected: %s", loan_id, reason)
    return loan


def cancel(db: Session, loan_id: int, reason: Optional[str] = None) -> Loan:
    loan = get_loan(db, loan_id)
    if loan.status not in LoanStatus.PENDING_DECISION + (LoanStatus.APPROVED,):
        raise InvalidStateError(f"Loan cannot be cancelled in status {loan.status}")
    loan.status = LoanStatus.CANCELLED
    loan.status_reason = reason
    return loan


def disburse(
        db: Session,
        loan_id: int,
        account_id: int,
        disbursed_on: Optional[date] = None,
        user_id: Optional[int] = None,
):
    """
    Release the approved amount to the borrower's account, net the fees,
    persist the schedule and post the accounting entries.
    Returns (loan, ledger_entry_id or None).
    """
    loan = get_loan(db, loan_id)
    if loan.status != LoanStatus.APPROVED:
        raise InvalidStateError("Loan must be approved before disbursement")

    account = banking_service.get_active_account(db, account_id)
    if account.client_id != loan.client_id:
        raise ValidationError("Account does not belong to the borrower")

    amount = Decimal(loan.approved_amount)
    processing_fee = Decimal(loan.processing_fee or 0)
    insurance_fee = Decimal(loan.insurance_fee or 0)

    movements = [
        banking_service.credit_account(
            db, account, amount, "DISBURSEMENT", f"Déblocage crédit #{loan_id}", user_id
        )
    ]
    for fee, label in ((processing_fee, "Frais de dossier"), (insurance_fee, "Assurance crédit")):
        if fee > 0:
            movements.append(
                banking_service.debit_account(
                    db, account, fee, "LOAN_FEE", f"{label} crédit #{loan_id}", user_id, check_funds=False
                )
            )

    loan.disbursed_on = disbursed_on or date.today()
    loan.disbursement_account_id = account.account_id
    loan.status = LoanStatus.DISBURSED
    persist_schedule(db, loan)

    entry = accounting_service.try_post(
        db,
        accounting_service.post_disbursement,
        loan.branch_id or account.branch_id,
        loan.loan_id,
        account.account_id,
        amount,
        loan.purpose,
        processing_fee,
        insurance_fee,
    )
    entry_id = banking_service.link_entry(entry, *movements)

    logger.info("Loan %s disbursed to account %s: %s", loan_id, account_id, amount)
    return loan, entry_id


def generate_missing_schedule(db: Session, loan_id: int) -> list[LoanInstallment]:
    """Persist the schedule of a legacy loan and replay its recorded payments onto it."""
    loan = get_loan(db, loan_id)
    if loan.status not in LoanStatus.ACTIVE:
        raise InvalidStateError("Only disbursed loans can get a schedule")
    if not loan.approved_amount or not loan.term_months:
        raise InvalidStateError("Loan has no financial parameters")

    persist_schedule(db, loan)

    payments = (
        db.query(LoanPayment)
        .filter(LoanPayment.loan_id == loan_id, LoanPayment.is_reversed.is_(False))
        .order_by(LoanPayment.payment_date.asc(), LoanPayment.payment_id.asc())
        .all()
    )
    for p in payments:
        allocations, _, _, _ = alloc_to_installments(
            db, loan_id, Decimal(p.principal_paid or 0) + Decimal(p.interest_paid or 0), p.payment_date
        )
        for a in allocations:
            db.add(
                LoanPaymentAllocation(
                    payment_id=p.payment_id,
                    installment_id=a["installment_id"],
                    principal_alloc=a["principal_alloc"],
                    interest_alloc=a["interest_alloc"],
                )
            )
    db.flush()
    return loan.installments


def _sync_status(db: Session, loan: Loan, settled_on: Optional[date] = None) -> None:
    """Settle a fully paid loan, otherwise flag or clear delinquency as of today."""
    if loan.installments and all(i.status == "PAID" for i in loan.installments):
        loan.status = LoanStatus.SETTLED
        loan.closed_on = settled_on or date.today()
        return

    if loan.status not in LoanStatus.ACTIVE:
        return

    summary = loan_arrears(db, loan)
    if summary.is_overdue and loan.status == LoanStatus.DISBURSED:
        loan.status = LoanStatus.DELINQUENT
    elif not summary.is_overdue and loan.status == LoanStatus.DELINQUENT:
        loan.status = LoanStatus.DISBURSED


def record_payment(
        db: Session,
        loan_id: int,
        amount,
        penalty=0,
        payment_date: Optional[date] = None,
        account_id: Optional[int] = None,
        receipt_no: Optional[str] = None,
        remarks: Optional[str] = None,
        user_id: Optional[int] = None,
):
    """
    Debit the borrower's account and apply the amount to the schedule.
    Anything above the outstanding schedule is not taken.
    Returns (payment, applied_installments, unapplied_amount).
    """
    loan = get_loan(db, loan_id)
    if loan.status not in LoanStatus.ACTIVE:
        raise InvalidStateError(f"Loan status not eligible for payment: {loan.status}")

    amount = money(amount)
    penalty = money(penalty)
    if amount <= 0:
        raise ValidationError("Payment amount must be > 0")
    if penalty < 0:
        raise ValidationError("Penalty cannot be negative")

    if not loan.installments:
        raise InvalidStateError("Loan has no repayment schedule; generate it first")

    outstanding = outstanding_on_schedule(db, loan_id)
    if outstanding <= 0:
        raise InvalidStateError("Nothing left to repay on this loan")
    to_apply = min(amount, outstanding)

    account_id = account_id or loan.disbursement_account_id
    if not account_id:
        raise ValidationError("No account to debit for this payment")
    account = banking_service.get_active_account(db, account_id)

    paid_on = payment_date or date.today()
    movement = banking_service.debit_account(
        db, account, to_apply + penalty, "LOAN_REPAYMENT", f"Remboursement crédit #{loan_id}", user_id
    )

    allocations, _, applied_installments, applied_total = alloc_to_installments(db, loan_id, to_apply, paid_on)
    total_principal = sum((a["principal_alloc"] for a in allocations), ZERO)
    total_interest = sum((a["interest_alloc"] for a in allocations), ZERO)

    payment = LoanPayment(
        loan_id=loan_id,
        account_id=account.account_id,
        payment_date=paid_on,
        amount_received=applied_total + penalty,
        principal_paid=total_principal,
        interest_paid=total_interest,
        penalty_paid=penalty,
        is_reversed=False,
        receipt_no=receipt_no,
        remarks=remarks,
        collected_by=user_id,
    )
    db.add(payment)
    db.flush()  # gives payment.payment_id

    for a in allocations:
        db.add(
            LoanPaymentAllocation(
                payment_id=payment.payment_id,
                installment_id=a["installment_id"],
                principal_alloc=a["principal_alloc"],
                interest_alloc=a["interest_alloc"],
            )
        )
    db.flush()

    entry = accounting_service.try_post(
        db,
        accounting_service.post_loan_repayment,
        loan.branch_id or account.branch_id,
        loan_id,
        account.account_id,
        loan.purpose,
        total_principal,
        total_interest,
        penalty,
    )
    banking_service.link_entry(entry, movement)

    _sync_status(db, loan, settled_on=paid_on)

    logger.info("Payment %s on loan %s: principal %s, interest %s, penalty %s",
                payment.payment_id, loan_id, total_principal, total_interest, penalty)
    return payment, applied_installments, amount - applied_total


def reverse_payment(db: Session, loan_id: int, payment_id: int, user_id: Optional[int] = None) -> LoanPayment:
    loan = get_loan(db, loan_id)
    payment = (
        db.query(LoanPayment)
        .filter(LoanPayment.payment_id == payment_id, LoanPayment.loan_id == loan_id)
        .first()
    )
    if not payment:
        raise EntityNotFoundError("Payment not found")
    if payment.is_reversed:
        raise InvalidStateError("Payment already reversed")

    allocations = (
        db.query(LoanPaymentAllocation)
        .filter(LoanPaymentAllocation.payment_id == payment_id)
        .all()
    )
    for a in allocations:
        inst = db.query(LoanInstallment).filter(LoanInstallment.installment_id == a.installment_id).first()
        inst.principal_remaining = Decimal(inst.principal_remaining) + Decimal(a.principal_alloc)
        inst.interest_remaining = Decimal(inst.interest_remaining) + Decimal(a.interest_alloc)
        inst.amount_paid = Decimal(inst.amount_paid) - Decimal(a.principal_alloc) - Decimal(a.interest_alloc)
        inst.status = "PENDING"
        inst.paid_date = None

    payment.is_reversed = True
    payment.reversed_on = datetime.now()

    movement = None
    account_id = payment.account_id or loan.disbursement_account_id
    if account_id:
        account = banking_service.get_account(db, account_id)
        movement = banking_service.credit_account(
            db, account, Decimal(payment.amount_received), "REPAYMENT_REVERSAL",
            f"Annulation remboursement #{payment_id}", user_id,
        )
    db.flush()

    if movement is not None:
        entry = accounting_service.try_post(
            db,
            accounting_service.post_repayment_reversal,
            loan.branch_id or account.branch_id,
            loan_id,
            account.account_id,
            loan.purpose,
            payment.principal_paid,
            payment.interest_paid,
            payment.penalty_paid,
        )
        banking_service.link_entry(entry, movement)

    if loan.status == LoanStatus.SETTLED:
        loan.status = LoanStatus.DISBURSED
        loan.closed_on = None
    db.flush()
    _sync_status(db, loan)

    logger.info("Payment %s on loan %s reversed by user %s", payment_id, loan_id, user_id)
    return payment


def mark_closed(db: Session, loan_id: int, reason: Optional[str] = None) -> Loan:
    """Close a legacy loan that was paid off outside the system."""
    loan = get_loan(db, loan_id)
    if loan.status not in LoanStatus.ACTIVE:
        raise InvalidStateError(f"Loan cannot be closed in status {loan.status}")
    loan.status = LoanStatus.SETTLED
    loan.closed_on = date.today()
    loan.status_reason = reason or "Clôturé manuellement"
    return loan


def reopen(db: Session, loan_id: int, reason: Optional[str] = None) -> Loan:
    loan = get_loan(db, loan_id)
    if loan.status != LoanStatus.SETTLED:
        raise InvalidStateError("Only settled loans can be reopened")
    loan.status = LoanStatus.DISBURSED
    loan.closed_on = None
    loan.status_reason = reason
    _sync_status(db, loan)
    return loan


def refresh_statuses(db: Session, as_of: Optional[date] = None) -> dict:
    """Flip DISBURSED <-> DELINQUENT for every running loan."""
    flagged = cleared = 0
    loans = db.query(Loan).filter(Loan.status.in_(LoanStatus.ACTIVE)).all()
    for loan in loans:
        summary = loan_arrears(db, loan, as_of)
        if summary.is_overdue and loan.status == LoanStatus.DISBURSED:
            loan.status = LoanStatus.DELINQUENT
            flagged += 1
        elif not summary.is_overdue and loan.status == LoanStatus.DELINQUENT:
            loan.status = LoanStatus.DISBURSED
            cleared += 1
    return {"checked": len(loans), "flagged_delinquent": flagged, "cleared": cleared}


# -------------------------------------------------
# Portfolio
# -------------------------------------------------
def active_loans_with_arrears(db: Session, as_of: Optional[date] = None, branch_id: Optional[int] = None):
    q = db.query(Loan).filter(Loan.status.in_(LoanStatus.ACTIVE))
    if branch_id is not None:
        q = q.filter(Loan.branch_id == branch_id)
    return [(loan, loan_arrears(db, loan, as_of)) for loan in q.order_by(Loan.loan_id.asc()).all()]


def portfolio_summary(db: Session, as_of: Optional[date] = None, branch_id: Optional[int] = None):
    pairs = active_loans_with_arrears(db, as_of, branch_id)
    return summarize_portfolio((outstanding_principal(loan, s), s) for loan, s in pairs)
