"""Account transfer audit trail, one row per transfer attempt."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, JSON
from sqlalchemy.sql import func

from app.infrastructure.database import Base

TRANSFER_IN_PROGRESS = "in_progress"
TRANSFER_COMPLETED = "completed"
TRANSFER_FAILED = "failed"


class TransferRecord(Base):
    __tablename__ = "transfer_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    from_user_id = Column(String(64), nullable=False, index=True)
    to_user_id = Column(String(64), nullable=False, index=True)
    reason = Column(String(100), nullable=False)
    status = Column(String(20), nullable=False, default=TRANSFER_IN_PROGRESS)
    transferred_grants = Column(Integer, nullable=False, default=0)
    transferred_usage = Column(Integer, nullable=False, default=0)
    transferred_faxes = Column(Integer, nullable=False, default=0)
    # {"source": {"grants", "usage", "faxes"}, "target": {...}} around the reassignment
    counts_before = Column(JSON, nullable=True)
    counts_after = Column(JSON, nullable=True)
    old_user_deleted = Column(Boolean, nullable=False, default=False)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<TransferRecord {self.from_user_id} -> {self.to_user_id} {self.status}>"
