# coopbank/models/client_model.py
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, true
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from coopbank.utils.database import Base


class Client(Base):
    __tablename__ = "clients"

    client_id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(180), nullable=False)

    phone = Column(String(30), nullable=True)
    email = Column(String(120), nullable=True)
    address = Column(String(255), nullable=True)

    branch_id = Column(Integer, ForeignKey("branches.branch_id", ondelete="SET NULL"), nullable=True, index=True)

    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    created_on = Column(DateTime, server_default=func.now())

    branch = relationship("Branch", back_populates="clients")
    accounts = relationship("Account", back_populates="client")
