from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional, List


class AccountCreate(BaseModel):
    client_id: int
    account_no: str = Field(..., min_length=1, max_length=50)
    account_type: str = "SIGHT"
    minimum_balance: float = Field(0, ge=0)
    overdraft_limit: float = Field(0, ge=0)


class AccountOut(BaseModel):
    account_id: int
    account_no: str
    client_id: int
    branch_id: Optional[int] = None
    account_type: str
    currency: str

    balance: float
    blocked_amount: float
    minimum_balance: float
    overdraft_limit: float

    status: str
    block_reason: Optional[str] = None
    opened_on: Optional[datetime] = None

    class Config:
        from_attributes = True


class BalanceOut(BaseModel):
    account_id: int
    account_no: str
    currency: str
    balance: float
    blocked_amount: float
    minimum_balance: float
    overdraft_limit: float
    available_balance: float


class BlockRequest(BaseModel):
    reason: str = Field(..., min_length=1)
    amount: Optional[float] = Field(None, gt=0)


class MovementOut(BaseModel):
    movement_id: int
    account_id: int
    movement_date: Optional[datetime] = None
    direction: str
    amount: float
    balance_before: float
    balance_after: float
    operation_type: str
    label: Optional[str] = None
    ledger_entry_id: Optional[int] = None

    class Config:
        from_attributes = True


class DepositRequest(BaseModel):
    account_id: int
    amount: float = Field(gt=0)
    description: Optional[str] = None
    user_id: Optional[int] = None

    @field_validator("description", mode="before")
    def empty_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class WithdrawRequest(DepositRequest):
    pass


class TransferRequest(BaseModel):
    from_account_id: int
    to_account_id: int
    amount: float = Field(gt=0)
    description: Optional[str] = None
    user_id: Optional[int] = None


class OperationResult(BaseModel):
    message: str
    movement: MovementOut
    new_balance: float


class TransferResult(BaseModel):
    message: str
    movements: List[MovementOut]
    source_balance: float
    destination_balance: float
