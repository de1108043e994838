from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from starlette import status

from coopbank.utils.database import get_db
from coopbank.services import settings_service
from coopbank.schemas.settings_schema import SettingCreate, SettingOut, SettingPatch

router = APIRouter(prefix="/settings", tags=["Settings"])


@router.get("", response_model=list[SettingOut])
def list_settings(db: Session = Depends(get_db)):
    return settings_service.list_settings(db)


@router.post("", response_model=SettingOut, status_code=status.HTTP_201_CREATED)
def create_setting(payload: SettingCreate, db: Session = Depends(get_db)):
    try:
        row = settings_service.create_setting(db, payload.key, payload.value, payload.description, payload.user_id)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(row)
    return row


@router.patch("", response_model=SettingOut)
def update_setting(payload: SettingPatch, db: Session = Depends(get_db)):
    try:
        row = settings_service.update_setting(db, payload.key, payload.value, payload.user_id)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(row)
    return row


@router.get("/{key}", response_model=SettingOut)
def get_setting(key: str, db: Session = Depends(get_db)):
    return settings_service.find_setting(db, key)
