from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Optional, List, Dict, Any


class CashCount(BaseModel):
    """Denomination count: how many notes/coins of each value."""

    currency: str = "BIF"

    # BIF notes
    notes_10000: int = Field(0, ge=0)
    notes_5000: int = Field(0, ge=0)
    notes_2000: int = Field(0, ge=0)
    notes_1000: int = Field(0, ge=0)
    notes_500: int = Field(0, ge=0)
    notes_100: int = Field(0, ge=0)
    notes_50: int = Field(0, ge=0)
    notes_20: int = Field(0, ge=0)
    notes_10: int = Field(0, ge=0)

    # BIF coins
    coins_50: int = Field(0, ge=0)
    coins_10: int = Field(0, ge=0)
    coins_5: int = Field(0, ge=0)
    coins_1: int = Field(0, ge=0)

    # USD notes
    usd_100: int = Field(0, ge=0)
    usd_50: int = Field(0, ge=0)
    usd_20: int = Field(0, ge=0)
    usd_10: int = Field(0, ge=0)
    usd_5: int = Field(0, ge=0)
    usd_1: int = Field(0, ge=0)

    comment: Optional[str] = None

    def denominations(self) -> Dict[str, int]:
        return self.model_dump(exclude={"currency", "comment"})


class TellerIn(BaseModel):
    teller_id: int
    branch_id: int


class SessionOpenIn(TellerIn):
    count: CashCount


class SessionCloseIn(TellerIn):
    count: CashCount


class FundingIn(TellerIn):
    amount: float = Field(gt=0)
    count: Optional[CashCount] = None
    comment: Optional[str] = None


class ReturnIn(TellerIn):
    amount: float = Field(gt=0)
    count: CashCount
    comment: Optional[str] = None


class ValidateIn(BaseModel):
    supervisor_id: Optional[int] = None


class RejectMovementIn(BaseModel):
    reason: str = Field(..., min_length=1)
    supervisor_id: Optional[int] = None


class CountOut(BaseModel):
    count_id: int
    count_type: str
    currency: str
    denominations: Dict[str, Any]
    total_notes: float
    total_coins: float
    total: float
    comment: Optional[str] = None

    class Config:
        from_attributes = True


class SessionOut(BaseModel):
    session_id: int
    branch_id: int
    teller_id: int
    session_date: date
    opened_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    opening_amount: float
    closing_amount: Optional[float] = None
    total_in: float
    total_out: float
    operations_count: int

    variance: Optional[float] = None
    variance_note: Optional[str] = None
    variance_entry_id: Optional[int] = None
    status: str

    class Config:
        from_attributes = True


class CaisseMovementOut(BaseModel):
    movement_id: int
    session_id: int
    branch_id: int
    movement_type: str
    amount: float
    currency: str
    requested_by: int
    status: str
    validated_by: Optional[int] = None
    validated_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    comment: Optional[str] = None
    ledger_entry_id: Optional[int] = None
    created_on: Optional[datetime] = None

    class Config:
        from_attributes = True


class CurrentSessionOut(BaseModel):
    session: Optional[SessionOut] = None
    theoretical_balance: float = 0
    movements: List[CaisseMovementOut] = []


class SessionOpenResult(BaseModel):
    message: str
    session: SessionOut
    count: CountOut


class SessionCloseResult(BaseModel):
    message: str
    session: SessionOut
    count: CountOut
    theoretical_balance: float
    variance: float
    ledger_entry_id: Optional[int] = None
