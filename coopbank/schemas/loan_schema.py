from pydantic import BaseModel, Field, field_validator
from datetime import date, datetime
from typing import Optional, List, Dict


class LoanCreate(BaseModel):
    client_id: int
    loan_account_no: Optional[str] = None

    requested_amount: float = Field(gt=0)
    term_months: int = Field(gt=0)

    purpose: Optional[int] = Field(None, ge=1, le=6)
    purpose_detail: Optional[str] = None
    user_id: Optional[int] = None


class LoanOut(BaseModel):
    loan_id: int
    loan_account_no: Optional[str] = None
    client_id: int
    branch_id: Optional[int] = None

    purpose: Optional[int] = None
    purpose_detail: Optional[str] = None

    requested_amount: float
    requested_on: date
    term_months: int

    approved_amount: Optional[float] = None
    annual_rate: Optional[float] = None
    processing_fee: float = 0
    insurance_fee: float = 0
    approved_on: Optional[date] = None

    disbursed_on: Optional[date] = None
    disbursement_account_id: Optional[int] = None

    status: str
    status_reason: Optional[str] = None
    closed_on: Optional[date] = None

    class Config:
        from_attributes = True


class LoanDetailOut(LoanOut):
    installments_count: int
    total_principal: float
    total_interest: float
    outstanding_principal: float
    schedule_persisted: bool


class LoanApprove(BaseModel):
    approved_amount: float = Field(gt=0)
    annual_rate: Optional[float] = Field(None, ge=0, le=100)
    term_months: Optional[int] = Field(None, gt=0)
    processing_fee: float = Field(0, ge=0)
    insurance_fee: float = Field(0, ge=0)
    comment: Optional[str] = None


class ReasonIn(BaseModel):
    reason: Optional[str] = None


class RejectIn(BaseModel):
    reason: str = Field(..., min_length=1)


class DisburseIn(BaseModel):
    account_id: int
    disbursed_on: Optional[date] = None
    user_id: Optional[int] = None


class DisburseResult(BaseModel):
    message: str
    loan: LoanOut
    installments: int
    ledger_entry_id: Optional[int] = None


class ScheduleLineOut(BaseModel):
    number: int
    due_date: date

    principal: float
    interest: float
    total: float

    principal_remaining: float
    interest_remaining: float
    amount_paid: float

    status: str
    paid_date: Optional[date] = None

    class Config:
        from_attributes = True


class ScheduleOut(BaseModel):
    loan_id: int
    persisted: bool
    lines: List[ScheduleLineOut]


class PaymentCreate(BaseModel):
    payment_date: Optional[date] = None
    amount: float = Field(gt=0)
    penalty: float = Field(0, ge=0)
    account_id: Optional[int] = None
    receipt_no: Optional[str] = None
    remarks: Optional[str] = None
    user_id: Optional[int] = None

    @field_validator("receipt_no", "remarks", mode="before")
    def empty_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class PaymentResult(BaseModel):
    payment_id: int
    principal_paid: float
    interest_paid: float
    penalty_paid: float
    applied_to_installments: int
    unapplied_amount: float
    loan_status: str


class PaymentOut(BaseModel):
    payment_id: int
    loan_id: int
    account_id: Optional[int] = None
    payment_date: date
    amount_received: float
    principal_paid: float
    interest_paid: float
    penalty_paid: float
    is_reversed: bool
    reversed_on: Optional[datetime] = None
    receipt_no: Optional[str] = None
    remarks: Optional[str] = None

    class Config:
        from_attributes = True


class ArrearsOut(BaseModel):
    loan_id: int
    is_overdue: bool
    days_overdue: int
    risk_level: str

    expected_payments: int
    actual_payments: int

    expected_capital: float
    expected_interest: float
    paid_capital: float
    paid_interest: float

    overdue_capital: float
    overdue_interest: float
    overdue_total: float

    next_due_date: Optional[date] = None
    next_due_amount: Optional[float] = None


class DelinquentLoanOut(BaseModel):
    loan_id: int
    loan_account_no: Optional[str] = None
    client_id: int
    client_name: Optional[str] = None
    branch_id: Optional[int] = None
    status: str

    days_overdue: int
    risk_level: str
    overdue_capital: float
    overdue_interest: float
    overdue_total: float
    outstanding_principal: float


class DelinquentClientOut(BaseModel):
    client_id: int
    client_name: Optional[str] = None
    loans: int
    max_days_overdue: int
    total_overdue: float
    risk_level: str


class UpcomingInstallmentOut(BaseModel):
    installment_id: int
    loan_id: int
    installment_no: int
    due_date: date
    due_left: float
    client_id: int
    client_name: Optional[str] = None


class RefreshResult(BaseModel):
    checked: int
    flagged_delinquent: int
    cleared: int


class BucketOut(BaseModel):
    loans: int = 0
    amount: float = 0


class PortfolioStatsOut(BaseModel):
    active_loans: int = 0
    total_outstanding: float = 0
    loans_at_risk: int = 0
    overdue_principal: float = 0
    overdue_total: float = 0
    par_ratio: float = 0
    buckets: Dict[str, BucketOut] = {}
    by_status: Dict[str, int] = {}
