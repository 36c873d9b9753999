"""Product ORM - the catalog-owned row whose stock columns this engine maintains.

Invariants:
    - Owned by the catalog; the inventory core only reads delivery_type,
      source_type and the low-stock config, and writes the three stock
      counters and is_published (auto-unpublish)
    - stock_available/stock_reserved/stock_sold mirror live item counts at
      every quiescent point

Design Decisions:
    - Counters denormalized onto the product: fast storefront reads, healed
      periodically by the stock-count sync pass
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Integer, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import UUID

from stockroom.db.base import Base


class Product(Base):
    """Catalog product (subset of columns relevant to inventory)."""
    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    source_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="custom",
    )
    delivery_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="key",
    )

    # Cached stock counters
    stock_available: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0,
    )
    stock_reserved: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0,
    )
    stock_sold: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0,
    )

    # Low-stock configuration
    low_stock_threshold: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0,
    )
    auto_unpublish_when_out_of_stock: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    is_published: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    items: Mapped[list["InventoryItem"]] = relationship(
        "InventoryItem", back_populates="product",
        cascade="all, delete-orphan", lazy="raise", passive_deletes=True,
    )
