"""
Product repository.

SQL implementation of the product store: core fields on ``products``,
sync settings and state as key/value rows on ``product_meta``.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from product_sync.constants.sync import ProductMeta, Visibility
from product_sync.models.sync_models import ProductMetaRecord, ProductRecord
from product_sync.schemas.sync_schemas import EligibilityFilter, Product
from product_sync.services.product_store import (
    ProductNotFoundError,
    build_product,
    is_eligible,
)

logger = logging.getLogger(__name__)

PRICE_KEYS = (ProductMeta.REGULAR_PRICE, ProductMeta.SALE_PRICE)


class SqlProductStore:
    """Product store over the local database."""

    def __init__(self, db: Session):
        """
        Initialize repository with database session.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db

    def _record(self, product_id: int) -> Optional[ProductRecord]:
        return self.db.query(ProductRecord).filter(ProductRecord.id == product_id).first()

    def _require(self, product_id: int) -> ProductRecord:
        record = self._record(product_id)
        if record is None:
            raise ProductNotFoundError(f"Product {product_id} not found")
        return record

    def _meta_row(self, product_id: int, key: str) -> Optional[ProductMetaRecord]:
        return self.db.query(ProductMetaRecord).filter(
            ProductMetaRecord.product_id == product_id,
            ProductMetaRecord.meta_key == key
        ).first()

    def _to_product(self, record: ProductRecord) -> Product:
        meta = {row.meta_key: row.meta_value for row in record.meta}
        return build_product(
            record.id,
            record.name,
            record.catalog_visibility,
            record.regular_price,
            record.sale_price,
            meta,
        )

    def get(self, product_id: int) -> Optional[Product]:
        record = self._record(product_id)
        return self._to_product(record) if record else None

    def get_meta(self, product_id: int, key: str) -> Any:
        if key in PRICE_KEYS:
            return getattr(self._require(product_id), key)
        row = self._meta_row(product_id, key)
        return row.meta_value if row else None

    def set_meta(self, product_id: int, key: str, value: Any) -> None:
        """
        Write a meta value.

        The ``regular_price`` and ``sale_price`` keys update the product's
        own price columns and recompute its active price.
        """
        record = self._require(product_id)
        if key in PRICE_KEYS:
            setattr(record, key, float(value) if value not in (None, "") else None)
            sale = record.sale_price or 0
            record.price = sale if sale > 0 else record.regular_price
        else:
            row = self._meta_row(product_id, key)
            if row is None:
                row = ProductMetaRecord(product_id=product_id, meta_key=key)
                self.db.add(row)
            row.meta_value = None if value is None else str(value)
        self.db.commit()

    def delete_meta(self, product_id: int, key: str) -> None:
        row = self._meta_row(product_id, key)
        if row is not None:
            self.db.delete(row)
            self.db.commit()

    def set_visibility(self, product_id: int, visibility: Visibility) -> None:
        record = self._require(product_id)
        record.catalog_visibility = Visibility(visibility).value
        self.db.commit()
        logger.info(f"Product {product_id} visibility set to {record.catalog_visibility}")

    def query_eligible(self, filters: EligibilityFilter) -> List[Product]:
        """
        Published products with sync enabled and a source URL.

        Args:
            filters: optional skip-recent window

        Returns:
            List of eligible products, unordered
        """
        records = self.db.query(ProductRecord).filter(ProductRecord.status == "publish").all()
        products = [self._to_product(record) for record in records]
        return [p for p in products if is_eligible(p, filters)]

    def list_with_urls(self) -> List[Product]:
        records = self.db.query(ProductRecord).order_by(ProductRecord.id).all()
        products = [self._to_product(record) for record in records]
        return [p for p in products if p.source_url]

    def rollback(self) -> None:
        self.db.rollback()

    def create(self, name: str, meta: Dict[str, Any] = None, **fields) -> Product:
        """
        Create a product with optional meta values.

        Args:
            name: Product name
            meta: Meta key/values to attach
            **fields: Extra ProductRecord columns (status, prices, ...)

        Returns:
            The created product
        """
        record = ProductRecord(name=name, **fields)
        self.db.add(record)
        self.db.flush()
        for key, value in (meta or {}).items():
            self.db.add(ProductMetaRecord(
                product_id=record.id,
                meta_key=key,
                meta_value=None if value is None else str(value)
            ))
        self.db.commit()
        self.db.refresh(record)
        return self._to_product(record)
