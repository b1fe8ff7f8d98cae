"""A prepaid allotment of fax pages. Deactivated, never deleted."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, CheckConstraint
from sqlalchemy.sql import func

from app.infrastructure.database import Base


class CreditGrant(Base):
    __tablename__ = "credit_grants"
    __table_args__ = (
        CheckConstraint("pages_used >= 0", name="ck_credit_grants_pages_used_positive"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    product_id = Column(String(200), nullable=False, index=True)
    kind = Column(String(20), nullable=False)  # subscription, consumable
    subscription_id = Column(String(200), nullable=True)
    entitlement_id = Column(String(200), nullable=True)
    page_limit = Column(Integer, nullable=False, default=0)
    pages_used = Column(Integer, nullable=False, default=0)
    purchased_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)  # NULL means it doesn't expire
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    @property
    def pages_available(self) -> int:
        return max((self.page_limit or 0) - (self.pages_used or 0), 0)

    def __repr__(self):
        return f"<CreditGrant {self.id} {self.kind} {self.pages_used}/{self.page_limit}>"
