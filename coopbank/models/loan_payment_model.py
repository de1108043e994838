from sqlalchemy import (
    Column, Integer, String, Date, DateTime, Numeric, Boolean, Text, ForeignKey
)
from sqlalchemy.sql import func
from coopbank.utils.database import Base


class LoanPayment(Base):
    __tablename__ = "loan_payments"

    payment_id = Column(Integer, primary_key=True, index=True)

    loan_id = Column(Integer, ForeignKey("loans.loan_id"), nullable=False, index=True)
    account_id = Column(Integer, ForeignKey("accounts.account_id"), nullable=True)

    payment_date = Column(Date, nullable=False)
    amount_received = Column(Numeric(16, 2), nullable=False)

    principal_paid = Column(Numeric(16, 2), nullable=False, default=0)
    interest_paid = Column(Numeric(16, 2), nullable=False, default=0)
    penalty_paid = Column(Numeric(16, 2), nullable=False, default=0)

    is_reversed = Column(Boolean, nullable=False, default=False)
    reversed_on = Column(DateTime, nullable=True)

    receipt_no = Column(String(50), nullable=True)
    remarks = Column(Text, nullable=True)

    collected_by = Column(Integer, nullable=True)
    created_on = Column(DateTime, server_default=func.now())
