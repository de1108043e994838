# coopbank/models/loan_model.py

from sqlalchemy import (
    Column,
    Integer,
    String,
    Date,
    DateTime,
    Numeric,
    Text,
    ForeignKey,
    Index,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from coopbank.utils.database import Base


class LoanStatus:
    REQUESTED = "REQUESTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    APPROVED = "APPROVED"
    DISBURSED = "DISBURSED"
    DELINQUENT = "DELINQUENT"
    SETTLED = "SETTLED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"

    # repayment clock running
    ACTIVE = (DISBURSED, DELINQUENT)
    # still open for a credit decision
    PENDING_DECISION = (REQUESTED, UNDER_REVIEW)


class Loan(Base):
    __tablename__ = "loans"

    __table_args__ = (
        Index("ix_loans_status", "status"),
        Index("ix_loans_client_status", "client_id", "status"),
        Index("ix_loans_branch_status", "branch_id", "status"),
    )

    loan_id = Column(Integer, primary_key=True, index=True)
    loan_account_no = Column(String(50), unique=True, nullable=True)

    client_id = Column(Integer, ForeignKey("clients.client_id", ondelete="RESTRICT"), nullable=False, index=True)
    branch_id = Column(Integer, ForeignKey("branches.branch_id", ondelete="SET NULL"), nullable=True)

    # loan purpose code, drives the loan account in the chart of accounts
    # 1 agriculture, 2 trade, 3 consumer, 4 housing, 5 livestock, 6 other
    purpose = Column(Integer, nullable=True)
    purpose_detail = Column(Text, nullable=True)

    requested_amount = Column(Numeric(16, 2), nullable=False)
    requested_on = Column(Date, nullable=False)
    term_months = Column(Integer, nullable=False)

    # credit decision
    approved_amount = Column(Numeric(16, 2), nullable=True)
    annual_rate = Column(Numeric(6, 2), nullable=True)
    processing_fee = Column(Numeric(16, 2), nullable=False, default=0, server_default="0")
    insurance_fee = Column(Numeric(16, 2), nullable=False, default=0, server_default="0")
    approved_on = Column(Date, nullable=True)

    # NULL until funds are released; starts the schedule clock
    disbursed_on = Column(Date, nullable=True)
    disbursement_account_id = Column(Integer, ForeignKey("accounts.account_id", ondelete="SET NULL"), nullable=True)

    status = Column(String(20), nullable=False, default=LoanStatus.REQUESTED, server_default=LoanStatus.REQUESTED)
    status_reason = Column(Text, nullable=True)
    closed_on = Column(Date, nullable=True)

    created_by = Column(Integer, nullable=True)
    created_on = Column(DateTime, server_default=func.now(), nullable=True)
    updated_on = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=True)

    client = relationship("Client")

    installments = relationship(
        "LoanInstallment",
        back_populates="loan",
        cascade="all, delete-orphan",
        order_by="LoanInstallment.installment_no",
        lazy="selectin",
        passive_deletes=True,
    )
