"""SQLAlchemy models for products and sync activity."""

from sqlalchemy import Column, Integer, String, Float, Text, DateTime, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import relationship

from product_sync.db.base import Base


class ProductRecord(Base):
    """Catalog product with its core price fields."""

    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(255), nullable=False, default="")
    status = Column(String(20), nullable=False, default="publish",
                    comment="publish, draft, private")
    catalog_visibility = Column(String(20), nullable=False, default="visible",
                                comment="visible, hidden")
    regular_price = Column(Float, nullable=True)
    sale_price = Column(Float, nullable=True)
    # Active price: sale price when set, regular otherwise
    price = Column(Float, nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False,
                        server_default=func.now(), onupdate=func.now())

    meta = relationship("ProductMetaRecord", back_populates="product",
                        cascade="all, delete-orphan")

    def __repr__(self):
        return f"<ProductRecord(id={self.id}, name={self.name})>"


class ProductMetaRecord(Base):
    """Key/value meta attached to a product."""

    __tablename__ = "product_meta"
    __table_args__ = (UniqueConstraint("product_id", "meta_key", name="uq_product_meta_key"),)

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"),
                        nullable=False, index=True)
    meta_key = Column(String(255), nullable=False, index=True)
    meta_value = Column(Text, nullable=True)

    product = relationship("ProductRecord", back_populates="meta")


class SyncLog(Base):
    """One row per product sync attempt."""

    __tablename__ = "sync_log"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    product_id = Column(Integer, nullable=False, index=True)
    status = Column(String(20), nullable=False, comment="success, error")
    message = Column(Text, nullable=True)
    old_price = Column(Float, nullable=True)
    new_price = Column(Float, nullable=True)
    old_sale_price = Column(Float, nullable=True)
    new_sale_price = Column(Float, nullable=True)
    sync_time = Column(DateTime, nullable=False, index=True, server_default=func.now())

    def __repr__(self):
        return f"<SyncLog(id={self.id}, product={self.product_id}, status={self.status})>"
