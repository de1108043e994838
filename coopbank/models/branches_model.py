# coopbank/models/branches_model.py
from sqlalchemy import Column, Integer, String, Boolean, true
from sqlalchemy.orm import relationship
from coopbank.utils.database import Base


class Branch(Base):
    __tablename__ = "branches"

    branch_id = Column(Integer, primary_key=True, index=True)
    branch_name = Column(String(100), unique=True, nullable=False)

    # chart-of-accounts code of this branch's vault (coffre-fort),
    # NULL -> head office vault
    vault_account_code = Column(String(30), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True, server_default=true())

    clients = relationship("Client", back_populates="branch")
