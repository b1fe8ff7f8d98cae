"""Page allotments sold through the billing provider."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text
from sqlalchemy.sql import func

from app.infrastructure.database import Base

KIND_SUBSCRIPTION = "subscription"
KIND_CONSUMABLE = "consumable"


class Product(Base):
    __tablename__ = "products"

    product_id = Column(String(200), primary_key=True)
    display_name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    kind = Column(String(20), nullable=False, default=KIND_SUBSCRIPTION)  # subscription, consumable
    page_limit = Column(Integer, nullable=False, default=0)
    expire_days = Column(Integer, nullable=False, default=0)
    expire_period = Column(String(10), nullable=True)  # day, week, month, year
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<Product {self.product_id} - {self.page_limit} pages>"
