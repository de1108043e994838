from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Sequence

from dateutil.relativedelta import relativedelta

ZERO = Decimal("0")


def money(x) -> Decimal:
    """Always return a whole-unit Decimal with HALF_UP rounding (no sub-unit currency)."""
    if x is None:
        x = 0
    if not isinstance(x, Decimal):
        x = Decimal(str(x))
    return x.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def add_months(start: date, months: int) -> date:
    """Calendar month increment; day clamped to the end of shorter months."""
    return start + relativedelta(months=months)


@dataclass(frozen=True)
class ScheduleLine:
    number: int
    due_date: date
    principal: Decimal
    interest: Decimal
    principal_remaining: Decimal
    interest_remaining: Decimal
    amount_paid: Decimal = ZERO
    paid_date: Optional[date] = None
    status: str = "PENDING"

    @property
    def total(self) -> Decimal:
        return self.principal + self.interest


@dataclass(frozen=True)
class PaymentRecord:
    payment_date: date
    principal: Decimal
    interest: Decimal
    penalty: Decimal = ZERO
    is_reversed: bool = False


@dataclass(frozen=True)
class ArrearsSummary:
    is_overdue: bool = False
    days_overdue: int = 0
    expected_payments: int = 0
    actual_payments: int = 0
    expected_capital: Decimal = ZERO
    expected_interest: Decimal = ZERO
    paid_capital: Decimal = ZERO
    paid_interest: Decimal = ZERO
    overdue_capital: Decimal = ZERO
    overdue_interest: Decimal = ZERO
    overdue_total: Decimal = ZERO
    next_due_date: Optional[date] = None
    next_due_amount: Optional[Decimal] = None


def generate_schedule(
        principal,
        annual_rate_percent,
        term_months: int,
        start_date: date,
) -> list[ScheduleLine]:
    """
    CONSTANT PRINCIPAL, DECLINING-BALANCE INTEREST:
      principal_i = principal / term            (same every month)
      interest_i  = balance_before_i * rate% / 100 / 12
      due_i       = start_date + i months

    Only the displayed line amounts are rounded; the running balance is
    reduced by the unrounded share. The last line does not absorb the
    rounding remainder.

    Example:
      1_200_000 at 18% over 12 months -> line 1: 100_000 + 18_000,
      line 12: 100_000 + 1_500
    """
    principal = Decimal(str(principal or 0))
    term_months = int(term_months or 0)
    if principal <= 0 or term_months <= 0:
        return []

    monthly_rate = Decimal(str(annual_rate_percent or 0)) / Decimal("100") / Decimal("12")
    share = principal / Decimal(term_months)

    lines = []
    balance = principal
    for i in range(1, term_months + 1):
        interest_i = money(balance * monthly_rate)
        principal_i = money(share)
        lines.append(
            ScheduleLine(
                number=i,
                due_date=add_months(start_date, i),
                principal=principal_i,
                interest=interest_i,
                principal_remaining=principal_i,
                interest_remaining=interest_i,
            )
        )
        balance -= share

    return lines


def _oldest_unpaid(past_due: Sequence[ScheduleLine], paid_capital: Decimal) -> Optional[ScheduleLine]:
    # paid capital settles the oldest lines first; interest does not move the age
    capital_left = paid_capital
    for line in past_due:
        if capital_left >= line.principal:
            capital_left -= line.principal
            continue
        return line
    return None


def analyze_loan_status(
        principal,
        annual_rate_percent,
        term_months: int,
        disbursement_date: Optional[date],
        payments: Iterable[PaymentRecord],
        as_of: Optional[date] = None,
) -> ArrearsSummary:
    """
    Reconcile the theoretical schedule with recorded payments.

    Lines due on or before ``as_of`` are expected; reversed payments are
    ignored. Days overdue are measured from the oldest line the payments
    do not cover. A loan without a disbursement date or without financial
    parameters is reported as not overdue.
    """
    if disbursement_date is None or not principal or Decimal(str(principal)) <= 0 or not term_months or term_months <= 0:
        return ArrearsSummary()

    today = as_of or date.today()
    schedule = generate_schedule(principal, annual_rate_percent, term_months, disbursement_date)

    past_due = [line for line in schedule if line.due_date <= today]
    future = [line for line in schedule if line.due_date > today]

    valid = [p for p in payments if not p.is_reversed]
    paid_capital = sum((Decimal(str(p.principal)) for p in valid), ZERO)
    paid_interest = sum((Decimal(str(p.interest)) for p in valid), ZERO)

    expected_capital = sum((line.principal for line in past_due), ZERO)
    expected_interest = sum((line.interest for line in past_due), ZERO)

    overdue_capital = max(ZERO, expected_capital - paid_capital)
    overdue_interest = max(ZERO, expected_interest - paid_interest)
    overdue_total = overdue_capital + overdue_interest

    days_overdue = 0
    if overdue_total > 0:
        oldest = _oldest_unpaid(past_due, paid_capital)
        if oldest is not None:
            days_overdue = (today - oldest.due_date).days

    next_line = future[0] if future else None

    return ArrearsSummary(
        is_overdue=overdue_total > 0,
        days_overdue=days_overdue,
        expected_payments=len(past_due),
        actual_payments=len(valid),
        expected_capital=expected_capital,
        expected_interest=expected_interest,
        paid_capital=paid_capital,
        paid_interest=paid_interest,
        overdue_capital=overdue_capital,
        overdue_interest=overdue_interest,
        overdue_total=overdue_total,
        next_due_date=next_line.due_date if next_line else None,
        next_due_amount=next_line.total if next_line else None,
    )


# -------------------------------------------------
# Risk classification
# -------------------------------------------------
AGE_BUCKETS = ("1-30", "31-60", "61-90", "90+")


def risk_level(days_overdue: int) -> str:
    if days_overdue > 90:
        return "critical"
    if days_overdue > 60:
        return "high"
    if days_overdue > 30:
        return "medium"
    if days_overdue > 0:
        return "low"
    return "none"


def age_bucket(days_overdue: int) -> Optional[str]:
    if days_overdue <= 0:
        return None
    if days_overdue <= 30:
        return "1-30"
    if days_overdue <= 60:
        return "31-60"
    if days_overdue <= 90:
        return "61-90"
    return "90+"


@dataclass
class BucketTotals:
    loans: int = 0
    amount: Decimal = ZERO


@dataclass
class PortfolioSummary:
    active_loans: int = 0
    total_outstanding: Decimal = ZERO
    loans_at_risk: int = 0
    overdue_principal: Decimal = ZERO
    overdue_total: Decimal = ZERO
    par_ratio: Decimal = ZERO
    buckets: dict = field(default_factory=lambda: {b: BucketTotals() for b in AGE_BUCKETS})


def summarize_portfolio(items: Iterable[tuple]) -> PortfolioSummary:
    """
    Portfolio-at-risk over ``(outstanding_principal, ArrearsSummary)`` pairs.

    PAR = overdue principal / outstanding principal, in percent (2 dp).
    Overdue loans are counted once, in the bucket of their age.
    """
    out = PortfolioSummary()
    for outstanding, summary in items:
        out.active_loans += 1
        out.total_outstanding += Decimal(str(outstanding))

        if not summary.is_overdue:
            continue

        out.loans_at_risk += 1
        out.overdue_principal += summary.overdue_capital
        out.overdue_total += summary.overdue_total

        bucket = age_bucket(summary.days_overdue)
        if bucket:
            out.buckets[bucket].loans += 1
            out.buckets[bucket].amount += summary.overdue_total

    if out.total_outstanding > 0:
        out.par_ratio = (out.overdue_principal * Decimal("100") / out.total_outstanding).quantize(
            Decimal("0.01"), rounding=ROUND_HALF_UP
        )
    return out
