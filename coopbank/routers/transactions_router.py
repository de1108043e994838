from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from coopbank.utils.database import get_db
from coopbank.services import banking_service
from coopbank.schemas.account_schema import (
    DepositRequest,
    WithdrawRequest,
    TransferRequest,
    OperationResult,
    TransferResult,
)

router = APIRouter(prefix="/transactions", tags=["Transactions"])


@router.post("/deposit", response_model=OperationResult)
def deposit(payload: DepositRequest, db: Session = Depends(get_db)):
    try:
        movement = banking_service.deposit(
            db, payload.account_id, payload.amount, payload.description, payload.user_id
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(movement)
    return {"message": "Deposit recorded", "movement": movement, "new_balance": movement.balance_after}


@router.post("/withdraw", response_model=OperationResult)
def withdraw(payload: WithdrawRequest, db: Session = Depends(get_db)):
    try:
        movement = banking_service.withdraw(
            db, payload.account_id, payload.amount, payload.description, payload.user_id
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(movement)
    return {"message": "Withdrawal recorded", "movement": movement, "new_balance": movement.balance_after}


@router.post("/transfer", response_model=TransferResult)
def transfer(payload: TransferRequest, db: Session = Depends(get_db)):
    try:
        debit_mv, credit_mv = banking_service.transfer(
            db,
            payload.from_account_id,
            payload.to_account_id,
            payload.amount,
            payload.description,
            payload.user_id,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(debit_mv)
    db.refresh(credit_mv)
    return {
        "message": "Transfer completed",
        "movements": [debit_mv, credit_mv],
        "source_balance": debit_mv.balance_after,
        "destination_balance": credit_mv.balance_after,
    }
