"""
SQLAlchemy Implementation of Product Repository.
"""

from typing import Optional

from app.domain.models.product import Product
from app.domain.repositories.product_repository import ProductRepository
from app.infrastructure.repositories.base_repository import translate_errors


class SQLAlchemyProductRepository(ProductRepository):
    """Product catalog lookups using SQLAlchemy."""

    def __init__(self, db):
        self.db = db

    def get_active(self, product_id: str) -> Optional[Product]:
        with translate_errors(self.db, "load product"):
            return (
                self.db.query(Product)
                .filter(Product.product_id == product_id, Product.is_active.is_(True))
                .first()
            )
