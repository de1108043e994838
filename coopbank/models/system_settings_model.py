from sqlalchemy import Column, String, Text, Integer, DateTime
from sqlalchemy.sql import func
from coopbank.utils.database import Base


class SystemSetting(Base):
    """Business parameter read at runtime, e.g. DEFAULT_INTEREST_RATE."""
    __tablename__ = "system_settings"

    key = Column(String(100), primary_key=True)
    value = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)

    created_on = Column(DateTime, server_default=func.now())
    updated_by = Column(Integer, nullable=True)
    updated_on = Column(DateTime, server_default=func.now(), onupdate=func.now())
