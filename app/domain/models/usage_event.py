"""Append-only analytics rows, one per charged send."""

from sqlalchemy import Column, Integer, String, Numeric, DateTime, JSON
from sqlalchemy.sql import func

from app.infrastructure.database import Base


class UsageEvent(Base):
    __tablename__ = "usage_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    resource = Column(String(20), nullable=False, default="fax")  # fax, storage, api_call
    unit = Column(String(20), nullable=False, default="page")  # page, byte, call
    amount = Column(Numeric(10, 4), nullable=False)
    timestamp = Column(DateTime(timezone=True), server_default=func.now())
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)

    def __repr__(self):
        return f"<UsageEvent {self.user_id} {self.amount} {self.unit}>"
