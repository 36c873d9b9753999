"""InventoryItem ORM - one sellable unit of encrypted digital content.

Invariants:
    - Always belongs to a Product (product_id FK, cascade delete)
    - payload_* columns hold AES-256-GCM output; plaintext is never stored
    - reserved_for_order_id/reserved_at set iff status == reserved
    - sold_to_order_id/sold_at/sold_price set iff status == sold; sold rows
      are otherwise immutable
    - invalid_reason/invalidated_by/invalidated_at set iff status == invalid
    - content_hash is for duplicate detection only, never for authentication
    - At most one active (available/reserved/sold) row per (product_id,
      content_hash), enforced by a partial unique index

Design Decisions:
    - Binary columns for ciphertext/nonce/tag: no base64 round-trip on every read
    - Composite (product_id, status) index serves both FIFO claim and stats queries
    - status stored as string: matches ItemStatus values without a DB enum type
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    String, Text, Boolean, DateTime, LargeBinary, Numeric, ForeignKey, Index, text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import UUID

from stockroom.db.base import Base

# Rows covered by the duplicate-content constraint
ACTIVE_ITEM_CLAUSE = "status IN ('available', 'reserved', 'sold')"


class InventoryItem(Base):
    """Inventory item entity - encrypted payload plus lifecycle state."""
    __tablename__ = "inventory_items"
    __table_args__ = (
        Index("ix_inventory_items_product_status", "product_id", "status"),
        Index(
            "uq_inventory_items_product_hash_active", "product_id", "content_hash",
            unique=True,
            postgresql_where=text(ACTIVE_ITEM_CLAUSE),
            sqlite_where=text(ACTIVE_ITEM_CLAUSE),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    delivery_type: Mapped[str] = mapped_column(String(20), nullable=False)

    # Encrypted content
    payload_ciphertext: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    payload_nonce: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    payload_tag: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    masked_preview: Mapped[str] = mapped_column(String(255), nullable=False)

    # Lifecycle
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="available", index=True,
    )
    reserved_for_order_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True, index=True,
    )
    reserved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True,
    )
    sold_to_order_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True, index=True,
    )
    sold_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    sold_price: Mapped[Decimal | None] = mapped_column(
        Numeric(10, 2), nullable=True,
    )
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True,
    )

    # Provenance
    supplier: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cost: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    uploaded_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Quality
    was_reported: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    invalid_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    invalidated_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    invalidated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    product: Mapped["Product"] = relationship(
        "Product", back_populates="items",
    )
