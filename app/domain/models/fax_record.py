"""One row per fax submission. Appended and updated, never deleted."""

from sqlalchemy import Column, Integer, String, Numeric, DateTime, Text, JSON
from sqlalchemy.sql import func

from app.domain.fax_status import FaxStatus
from app.infrastructure.database import Base


class FaxRecord(Base):
    __tablename__ = "fax_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=True, index=True)  # NULL for anonymous sends
    provider = Column(String(32), nullable=False)
    status = Column(String(20), nullable=False, default=FaxStatus.QUEUED.value, index=True)
    original_status = Column(String(200), nullable=True)
    recipients = Column(JSON, nullable=False, default=list)
    sender_id = Column(String(64), nullable=True)
    subject = Column(Text, nullable=True)
    pages = Column(Integer, nullable=False, default=0)
    cost = Column(Numeric(10, 4), nullable=True)
    client_reference = Column(String(200), nullable=True)
    provider_fax_id = Column(String(200), nullable=True, unique=True, index=True)
    storage_urls = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<FaxRecord {self.id} {self.provider} {self.status}>"
