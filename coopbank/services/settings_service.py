"""Runtime business settings stored in ``system_settings``."""
import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy.orm import Session

from coopbank.exceptions import DuplicateError, EntityNotFoundError, ValidationError
from coopbank.models.system_settings_model import SystemSetting

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS = {
    "DEFAULT_INTEREST_RATE": ("18", "Taux d'intérêt annuel par défaut (%)"),
    "MAX_LOAN_TERM_MONTHS": ("120", "Durée maximale d'un crédit (mois)"),
}


def get_setting(db: Session, key: str, default: str) -> str:
    row = db.query(SystemSetting).filter(SystemSetting.key == key).first()
    return row.value if row else default


def _check_value(key: str, value: str) -> str:
    value = str(value).strip()
    if not value:
        raise ValidationError("Setting value cannot be empty")

    if key == "DEFAULT_INTEREST_RATE":
        try:
            rate = Decimal(value)
        except InvalidOperation:
            raise ValidationError("DEFAULT_INTEREST_RATE must be a number")
        if rate < 0 or rate > 100:
            raise ValidationError("DEFAULT_INTEREST_RATE must be between 0 and 100")
    elif key == "MAX_LOAN_TERM_MONTHS":
        if not value.isdigit() or int(value) < 1:
            raise ValidationError("MAX_LOAN_TERM_MONTHS must be a positive whole number")
    return value


def list_settings(db: Session) -> list[SystemSetting]:
    return db.query(SystemSetting).order_by(SystemSetting.key.asc()).all()


def find_setting(db: Session, key: str) -> SystemSetting:
    row = db.query(SystemSetting).filter(SystemSetting.key == key.strip().upper()).first()
    if not row:
        raise EntityNotFoundError("Setting not found")
    return row


def create_setting(db: Session, key: str, value: str, description: Optional[str] = None,
                   user_id: Optional[int] = None) -> SystemSetting:
    key = key.strip().upper()
    if db.query(SystemSetting).filter(SystemSetting.key == key).first():
        raise DuplicateError("Setting key already exists")

    row = SystemSetting(
        key=key,
        value=_check_value(key, value),
        description=(description or "").strip(),
        updated_by=user_id,
    )
    db.add(row)
    db.flush()
    logger.info("Setting %s created", key)
    return row


def update_setting(db: Session, key: str, value: str, user_id: Optional[int] = None) -> SystemSetting:
    row = find_setting(db, key)
    old = row.value
    row.value = _check_value(row.key, value)
    row.updated_by = user_id
    db.flush()
    logger.info("Setting %s changed from %s to %s by %s", row.key, old, row.value, user_id)
    return row
