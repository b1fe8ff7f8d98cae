"""
Product Repository Interface.
"""

from typing import Optional, Protocol

from app.domain.models.product import Product


class ProductRepository(Protocol):

    def get_active(self, product_id: str) -> Optional[Product]:
        """Get a purchasable product by its billing-provider id."""
        ...
