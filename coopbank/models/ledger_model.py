from sqlalchemy import (
    Column, Integer, String, Date, DateTime, Numeric, Text, ForeignKey, UniqueConstraint
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from coopbank.utils.database import Base


class ChartAccount(Base):
    __tablename__ = "chart_accounts"

    code = Column(String(30), primary_key=True)
    label = Column(String(150), nullable=False)
    account_class = Column(Integer, nullable=False)


class LedgerEntry(Base):
    """One balanced accounting entry (écriture); the legs hang off it."""

    __tablename__ = "ledger_entries"
    __table_args__ = (
        UniqueConstraint("branch_id", "entry_no", name="uq_ledger_entry_branch_no"),
    )

    ledger_entry_id = Column(Integer, primary_key=True, index=True)

    branch_id = Column(Integer, ForeignKey("branches.branch_id"), nullable=False, index=True)
    # sequence number within the branch
    entry_no = Column(Integer, nullable=False)

    value_date = Column(Date, nullable=False, index=True)
    label = Column(Text, nullable=False)
    currency = Column(String(3), nullable=False, default="BIF", server_default="BIF")

    client_account_id = Column(Integer, ForeignKey("accounts.account_id"), nullable=True)

    created_by = Column(Integer, nullable=True)
    created_on = Column(DateTime, server_default=func.now())

    lines = relationship(
        "LedgerLine",
        back_populates="entry",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="LedgerLine.line_id",
    )


class LedgerLine(Base):
    __tablename__ = "ledger_lines"

    line_id = Column(Integer, primary_key=True, index=True)
    ledger_entry_id = Column(Integer, ForeignKey("ledger_entries.ledger_entry_id"), nullable=False, index=True)

    account_code = Column(String(30), nullable=False, index=True)
    # D = debit, C = credit
    side = Column(String(1), nullable=False)
    amount = Column(Numeric(16, 2), nullable=False)

    entry = relationship("LedgerEntry", back_populates="lines")
