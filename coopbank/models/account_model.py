# coopbank/models/account_model.py

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Numeric,
    Text,
    ForeignKey,
    Index,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from coopbank.utils.database import Base


class Account(Base):
    __tablename__ = "accounts"

    account_id = Column(Integer, primary_key=True, index=True)
    account_no = Column(String(50), unique=True, nullable=False)

    client_id = Column(Integer, ForeignKey("clients.client_id", ondelete="RESTRICT"), nullable=False, index=True)
    branch_id = Column(Integer, ForeignKey("branches.branch_id", ondelete="SET NULL"), nullable=True)

    # SIGHT / TERM / BLOCKED_SAVINGS
    account_type = Column(String(20), nullable=False, default="SIGHT", server_default="SIGHT")
    currency = Column(String(3), nullable=False, default="BIF", server_default="BIF")

    balance = Column(Numeric(16, 2), nullable=False, default=0, server_default="0")
    blocked_amount = Column(Numeric(16, 2), nullable=False, default=0, server_default="0")
    minimum_balance = Column(Numeric(16, 2), nullable=False, default=0, server_default="0")
    overdraft_limit = Column(Numeric(16, 2), nullable=False, default=0, server_default="0")

    # ACTIVE / BLOCKED / CLOSED
    status = Column(String(20), nullable=False, default="ACTIVE", server_default="ACTIVE")
    block_reason = Column(Text, nullable=True)

    opened_on = Column(DateTime, server_default=func.now())
    updated_on = Column(DateTime, server_default=func.now(), onupdate=func.now())

    client = relationship("Client", back_populates="accounts")


class AccountMovement(Base):
    __tablename__ = "account_movements"

    __table_args__ = (
        Index("ix_account_movements_account_date", "account_id", "movement_date"),
    )

    movement_id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.account_id"), nullable=False, index=True)
    branch_id = Column(Integer, ForeignKey("branches.branch_id"), nullable=True)

    movement_date = Column(DateTime, server_default=func.now(), nullable=False)

    # C = credit (money in), D = debit (money out)
    direction = Column(String(1), nullable=False)
    amount = Column(Numeric(16, 2), nullable=False)
    balance_before = Column(Numeric(16, 2), nullable=False)
    balance_after = Column(Numeric(16, 2), nullable=False)

    # DEPOSIT / WITHDRAWAL / TRANSFER / DISBURSEMENT / LOAN_FEE /
    # LOAN_REPAYMENT / REPAYMENT_REVERSAL
    operation_type = Column(String(30), nullable=False)
    label = Column(String(255), nullable=True)

    # NULL when the accounting leg failed to post
    ledger_entry_id = Column(Integer, ForeignKey("ledger_entries.ledger_entry_id"), nullable=True)

    user_id = Column(Integer, nullable=True)
