"""
Script to register a product for price sync in the local database
"""
import argparse

from product_sync.constants.sync import YES, NO, ProductMeta
from product_sync.db.session import SessionLocal, init_db
from product_sync.repositories.product_repository import SqlProductStore


def create_product(name: str, url: str, add_tax: bool, margin: float):
    init_db()
    db = SessionLocal()
    try:
        store = SqlProductStore(db)
        existing = [p for p in store.list_with_urls() if p.source_url == url]
        if existing:
            print("✅ Product already registered!")
            print(f"   ID: {existing[0].id}")
            print(f"   Name: {existing[0].name}")
            return

        product = store.create(name, meta={
            ProductMeta.ENABLE_SYNC: YES,
            ProductMeta.SOURCE_URL: url,
            ProductMeta.ADD_TAX: YES if add_tax else NO,
            ProductMeta.ADD_MARGIN: YES if margin else NO,
            ProductMeta.MARGIN_PERCENT: margin or 1,
        })

        print("✅ Product registered successfully!")
        print(f"   ID: {product.id}")
        print(f"   URL: {product.source_url}")
    except Exception as e:
        print(f"❌ Error registering product: {e}")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("name")
    parser.add_argument("url")
    parser.add_argument("--add-tax", action="store_true")
    parser.add_argument("--margin", type=float, default=0)
    args = parser.parse_args()
    create_product(args.name, args.url, args.add_tax, args.margin)
