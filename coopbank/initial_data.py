import logging

from sqlalchemy.orm import Session

from coopbank.utils.database import SessionLocal
from coopbank.models.ledger_model import ChartAccount
from coopbank.models.system_settings_model import SystemSetting
from coopbank.services.accounting_service import CHART_LABELS
from coopbank.services.settings_service import DEFAULT_SETTINGS

logger = logging.getLogger(__name__)


def seed_chart(db: Session) -> int:
    existing = {code for (code,) in db.query(ChartAccount.code).all()}
    added = 0
    for code, label in CHART_LABELS.items():
        if code in existing:
            continue
        db.add(ChartAccount(code=code, label=label, account_class=int(code.split(".")[0])))
        added += 1
    return added


def seed_settings(db: Session) -> int:
    existing = {key for (key,) in db.query(SystemSetting.key).all()}
    added = 0
    for key, (value, description) in DEFAULT_SETTINGS.items():
        if key in existing:
            continue
        db.add(SystemSetting(key=key, value=value, description=description))
        added += 1
    return added


def init_seed(db: Session = None):
    """Idempotent: only rows that are missing get inserted."""
    own_session = db is None
    db = db or SessionLocal()
    try:
        accounts = seed_chart(db)
        settings = seed_settings(db)
        db.commit()
        logger.info("Seed complete: %s chart accounts, %s settings added", accounts, settings)
    except Exception:
        db.rollback()
        raise
    finally:
        if own_session:
            db.close()
