import json
import sys
import os

# Add parent dir to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.infrastructure.database import SessionLocal, Base, engine
from app.domain.models.product import Product

FIELDS = ("display_name", "description", "kind", "page_limit", "expire_days", "expire_period", "is_active")


def seed(path):
    """Upsert the product catalog from a JSON list of products."""
    with open(path, encoding="utf-8") as fh:
        products = json.load(fh)

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        for item in products:
            product = db.get(Product, item["product_id"])
            if product is None:
                product = Product(product_id=item["product_id"])
                db.add(product)
                print(f"Adding product {item['product_id']}")
            else:
                print(f"Updating product {item['product_id']}")
            for field in FIELDS:
                if field in item:
                    setattr(product, field, item[field])
        db.commit()
        print(f"Seeded {len(products)} products.")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: python scripts/seed_products.py products.json")
        sys.exit(1)
    seed(sys.argv[1])
