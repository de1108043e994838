# coopbank/models/caisse_model.py
from sqlalchemy import (
    Column,
    Integer,
    String,
    Date,
    DateTime,
    Numeric,
    Text,
    JSON,
    ForeignKey,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from coopbank.utils.database import Base


class CaisseSession(Base):
    __tablename__ = "caisse_sessions"
    __table_args__ = (
        UniqueConstraint("teller_id", "branch_id", "session_date", name="uq_caisse_session_day"),
    )

    session_id = Column(Integer, primary_key=True, index=True)
    branch_id = Column(Integer, ForeignKey("branches.branch_id"), nullable=False, index=True)
    teller_id = Column(Integer, nullable=False, index=True)

    session_date = Column(Date, nullable=False)
    opened_at = Column(DateTime, server_default=func.now())
    closed_at = Column(DateTime, nullable=True)

    opening_amount = Column(Numeric(16, 2), nullable=False, default=0, server_default="0")
    closing_amount = Column(Numeric(16, 2), nullable=True)
    total_in = Column(Numeric(16, 2), nullable=False, default=0, server_default="0")
    total_out = Column(Numeric(16, 2), nullable=False, default=0, server_default="0")
    operations_count = Column(Integer, nullable=False, default=0, server_default="0")

    # counted - theoretical, negative = shortage
    variance = Column(Numeric(16, 2), nullable=True)
    variance_note = Column(Text, nullable=True)
    variance_entry_id = Column(Integer, ForeignKey("ledger_entries.ledger_entry_id"), nullable=True)

    # OPEN / CLOSED
    status = Column(String(20), nullable=False, default="OPEN", server_default="OPEN")

    counts = relationship("CaisseCount", back_populates="session", lazy="selectin")
    movements = relationship("CaisseMovement", back_populates="session", lazy="selectin")


class CaisseCount(Base):
    """Denomination count (décompte) taken at open, close, funding or return."""

    __tablename__ = "caisse_counts"

    count_id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("caisse_sessions.session_id"), nullable=False, index=True)

    # OPENING / CLOSING / FUNDING / RETURN
    count_type = Column(String(20), nullable=False)
    currency = Column(String(3), nullable=False, default="BIF", server_default="BIF")

    denominations = Column(JSON, nullable=False)
    total_notes = Column(Numeric(16, 2), nullable=False)
    total_coins = Column(Numeric(16, 2), nullable=False)
    total = Column(Numeric(16, 2), nullable=False)

    comment = Column(Text, nullable=True)
    created_on = Column(DateTime, server_default=func.now())

    session = relationship("CaisseSession", back_populates="counts")


class CaisseMovement(Base):
    """Funding (vault -> till) or return (till -> vault) awaiting validation."""

    __tablename__ = "caisse_movements"

    movement_id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("caisse_sessions.session_id"), nullable=False, index=True)
    branch_id = Column(Integer, ForeignKey("branches.branch_id"), nullable=False, index=True)

    # FUNDING / RETURN
    movement_type = Column(String(20), nullable=False)
    amount = Column(Numeric(16, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="BIF", server_default="BIF")

    requested_by = Column(Integer, nullable=False)

    # PENDING / VALIDATED / REJECTED
    status = Column(String(20), nullable=False, default="PENDING", server_default="PENDING")
    validated_by = Column(Integer, nullable=True)
    validated_at = Column(DateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    comment = Column(Text, nullable=True)

    ledger_entry_id = Column(Integer, ForeignKey("ledger_entries.ledger_entry_id"), nullable=True)
    created_on = Column(DateTime, server_default=func.now())

    session = relationship("CaisseSession", back_populates="movements")
