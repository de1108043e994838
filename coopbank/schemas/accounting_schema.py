from pydantic import BaseModel, Field, field_validator
from datetime import date, datetime
from typing import Optional, List, Literal


class ChartAccountOut(BaseModel):
    code: str
    label: str
    account_class: int

    class Config:
        from_attributes = True


class LedgerLineIn(BaseModel):
    account_code: str = Field(..., min_length=1)
    side: Literal["D", "C"]
    amount: float = Field(gt=0)


class LedgerLineOut(BaseModel):
    line_id: int
    account_code: str
    side: str
    amount: float

    class Config:
        from_attributes = True


class JournalEntryCreate(BaseModel):
    branch_id: int
    label: str = Field(..., min_length=1)
    value_date: Optional[date] = None
    lines: List[LedgerLineIn] = Field(..., min_length=2)
    user_id: Optional[int] = None

    @field_validator("label", mode="before")
    def strip_label(cls, v):
        return str(v).strip() if v is not None else v


class JournalEntryOut(BaseModel):
    ledger_entry_id: int
    branch_id: int
    entry_no: int
    value_date: date
    label: str
    currency: str
    client_account_id: Optional[int] = None
    created_by: Optional[int] = None
    created_on: Optional[datetime] = None
    lines: List[LedgerLineOut] = []

    class Config:
        from_attributes = True


class TrialBalanceRow(BaseModel):
    account_code: str
    label: Optional[str] = None
    total_debit: float
    total_credit: float
    balance: float


class TrialBalanceOut(BaseModel):
    rows: List[TrialBalanceRow]
    total_debit: float
    total_credit: float
    is_balanced: bool


class GeneralLedgerRow(BaseModel):
    ledger_entry_id: int
    entry_no: int
    value_date: date
    label: str
    debit: float
    credit: float
    running_balance: float


class VaultTransferIn(BaseModel):
    kind: Literal["VAULT_TO_BANK", "BANK_TO_VAULT", "INTER_VAULT"]
    branch_id: int
    amount: float = Field(gt=0)
    bank_account: Optional[str] = None
    dest_branch_id: Optional[int] = None


class ValidationIssue(BaseModel):
    ledger_entry_id: Optional[int] = None
    movement_id: Optional[int] = None
    detail: str


class ValidationReport(BaseModel):
    total_debit: float
    total_credit: float
    globally_balanced: bool
    unbalanced_entries: List[ValidationIssue]
    non_positive_amounts: List[ValidationIssue]
    invalid_sides: List[ValidationIssue]
    unposted_movements: List[ValidationIssue]
    is_valid: bool
