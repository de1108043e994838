from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from starlette import status

from coopbank.utils.database import get_db
from coopbank.services import caisse_service
from coopbank.schemas.caisse_schema import (
    SessionOpenIn,
    SessionCloseIn,
    FundingIn,
    ReturnIn,
    ValidateIn,
    RejectMovementIn,
    SessionOpenResult,
    SessionCloseResult,
    CurrentSessionOut,
    CaisseMovementOut,
)

router = APIRouter(prefix="/caisse", tags=["Caisse"])


def _run(db: Session, fn, *args, **kwargs):
    try:
        result = fn(db, *args, **kwargs)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return result


@router.get("/session/current", response_model=CurrentSessionOut)
def current_session(
        teller_id: int = Query(...),
        branch_id: int = Query(...),
        db: Session = Depends(get_db),
):
    session = caisse_service.get_open_session(db, teller_id, branch_id)
    if not session:
        return {"session": None, "theoretical_balance": 0, "movements": []}
    return {
        "session": session,
        "theoretical_balance": caisse_service.theoretical_balance(session),
        "movements": session.movements,
    }


@router.post("/session/open", response_model=SessionOpenResult, status_code=status.HTTP_201_CREATED)
def open_session(payload: SessionOpenIn, db: Session = Depends(get_db)):
    session, count = _run(
        db,
        caisse_service.open_session,
        payload.teller_id,
        payload.branch_id,
        payload.count.denominations(),
        payload.count.currency,
        payload.count.comment,
    )
    db.refresh(session)
    db.refresh(count)
    return {"message": "Till opened", "session": session, "count": count}


@router.post("/session/close", response_model=SessionCloseResult)
def close_session(payload: SessionCloseIn, db: Session = Depends(get_db)):
    session, count, theoretical, variance, entry_id = _run(
        db,
        caisse_service.close_session,
        payload.teller_id,
        payload.branch_id,
        payload.count.denominations(),
        payload.count.currency,
        payload.count.comment,
    )
    db.refresh(session)
    db.refresh(count)
    return {
        "message": "Till closed",
        "session": session,
        "count": count,
        "theoretical_balance": theoretical,
        "variance": variance,
        "ledger_entry_id": entry_id,
    }


@router.post("/funding", response_model=CaisseMovementOut, status_code=status.HTTP_201_CREATED)
def request_funding(payload: FundingIn, db: Session = Depends(get_db)):
    movement = _run(
        db,
        caisse_service.request_funding,
        payload.teller_id,
        payload.branch_id,
        payload.amount,
        payload.count.denominations() if payload.count else None,
        payload.count.currency if payload.count else None,
        payload.comment,
    )
    db.refresh(movement)
    return movement


@router.post("/return", response_model=CaisseMovementOut, status_code=status.HTTP_201_CREATED)
def request_return(payload: ReturnIn, db: Session = Depends(get_db)):
    movement = _run(
        db,
        caisse_service.request_return,
        payload.teller_id,
        payload.branch_id,
        payload.amount,
        payload.count.denominations(),
        payload.count.currency,
        payload.comment,
    )
    db.refresh(movement)
    return movement


@router.get("/movements/pending", response_model=list[CaisseMovementOut])
def pending_movements(branch_id: Optional[int] = Query(None), db: Session = Depends(get_db)):
    return caisse_service.pending_movements(db, branch_id)


@router.post("/movements/{movement_id}/validate", response_model=CaisseMovementOut)
def validate_movement(movement_id: int, payload: ValidateIn, db: Session = Depends(get_db)):
    movement = _run(db, caisse_service.validate_movement, movement_id, payload.supervisor_id)
    db.refresh(movement)
    return movement


@router.post("/movements/{movement_id}/reject", response_model=CaisseMovementOut)
def reject_movement(movement_id: int, payload: RejectMovementIn, db: Session = Depends(get_db)):
    movement = _run(db, caisse_service.reject_movement, movement_id, payload.reason, payload.supervisor_id)
    db.refresh(movement)
    return movement
