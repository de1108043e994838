from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from starlette import status

from coopbank.core import config
from coopbank.utils.database import get_db
from coopbank.models.account_model import Account, AccountMovement
from coopbank.models.client_model import Client
from coopbank.services import banking_service
from coopbank.schemas.account_schema import (
    AccountCreate,
    AccountOut,
    BalanceOut,
    BlockRequest,
    MovementOut,
)

router = APIRouter(prefix="/accounts", tags=["Accounts"])


@router.post("", response_model=AccountOut, status_code=status.HTTP_201_CREATED)
def open_account(payload: AccountCreate, db: Session = Depends(get_db)):
    client = db.query(Client).filter(Client.client_id == payload.client_id).first()
    if not client or not client.is_active:
        raise HTTPException(404, "Client not found / inactive")

    account = Account(
        account_no=payload.account_no.strip(),
        client_id=client.client_id,
        branch_id=client.branch_id,
        account_type=payload.account_type,
        currency=config.DEFAULT_CURRENCY,
        balance=0,
        blocked_amount=0,
        minimum_balance=payload.minimum_balance,
        overdraft_limit=payload.overdraft_limit,
        status="ACTIVE",
    )
    try:
        db.add(account)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Account number already exists")

    db.refresh(account)
    return account


@router.get("/{account_id}", response_model=AccountOut)
def get_account(account_id: int, db: Session = Depends(get_db)):
    return banking_service.get_account(db, account_id)


@router.get("/{account_id}/balance", response_model=BalanceOut)
def get_balance(account_id: int, db: Session = Depends(get_db)):
    account = banking_service.get_account(db, account_id)
    return {
        "account_id": account.account_id,
        "account_no": account.account_no,
        "currency": account.currency,
        "balance": account.balance,
        "blocked_amount": account.blocked_amount,
        "minimum_balance": account.minimum_balance,
        "overdraft_limit": account.overdraft_limit,
        "available_balance": banking_service.available_balance(account),
    }


@router.get("/{account_id}/transactions", response_model=list[MovementOut])
def list_transactions(
        account_id: int,
        page: int = Query(1, ge=1),
        page_size: int = Query(config.DEFAULT_PAGE_SIZE, ge=1, le=config.MAX_PAGE_SIZE),
        db: Session = Depends(get_db),
):
    banking_service.get_account(db, account_id)
    return (
        db.query(AccountMovement)
        .filter(AccountMovement.account_id == account_id)
        .order_by(AccountMovement.movement_id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )


@router.post("/{account_id}/block", response_model=AccountOut)
def block_account(account_id: int, payload: BlockRequest, db: Session = Depends(get_db)):
    """Block the whole account, or only put `amount` on hold when given."""
    account = banking_service.get_account(db, account_id)
    if account.status == "CLOSED":
        raise HTTPException(400, "Account is closed")

    if payload.amount is not None:
        account.blocked_amount = payload.amount
    else:
        account.status = "BLOCKED"
    account.block_reason = payload.reason
    db.commit()
    db.refresh(account)
    return account


@router.post("/{account_id}/unblock", response_model=AccountOut)
def unblock_account(account_id: int, db: Session = Depends(get_db)):
    account = banking_service.get_account(db, account_id)
    if account.status == "CLOSED":
        raise HTTPException(400, "Account is closed")

    account.status = "ACTIVE"
    account.blocked_amount = 0
    account.block_reason = None
    db.commit()
    db.refresh(account)
    return account
