"""Webhook audit log. Doubles as the idempotency table for event ids."""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func

from app.infrastructure.database import Base


class WebhookEvent(Base):
    __tablename__ = "webhook_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    source = Column(String(32), nullable=False, index=True)  # notifyre, telnyx, revenuecat
    event_id = Column(String(200), nullable=True, unique=True)  # NULL when the sender assigns none
    event_type = Column(String(100), nullable=True)
    raw_payload = Column(JSON, nullable=False)
    result = Column(JSON, nullable=True)
    status = Column(String(20), nullable=False, default="received")  # received, processed, failed, ignored
    received_at = Column(DateTime(timezone=True), server_default=func.now())
    processed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<WebhookEvent {self.source} {self.event_id} {self.status}>"
