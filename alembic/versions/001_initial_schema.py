"""Initial schema - products, inventory_items, audit_logs.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "products",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(255), nullable=False, unique=True),
        sa.Column("source_type", sa.String(20), nullable=False, server_default="custom"),
        sa.Column("delivery_type", sa.String(20), nullable=False, server_default="key"),
        sa.Column("stock_available", sa.Integer, nullable=False, server_default="0"),
        sa.Column("stock_reserved", sa.Integer, nullable=False, server_default="0"),
        sa.Column("stock_sold", sa.Integer, nullable=False, server_default="0"),
        sa.Column("low_stock_threshold", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "auto_unpublish_when_out_of_stock", sa.Boolean,
            nullable=False, server_default="false",
        ),
        sa.Column("is_published", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "inventory_items",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "product_id", UUID(as_uuid=True),
            sa.ForeignKey("products.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("delivery_type", sa.String(20), nullable=False),
        sa.Column("payload_ciphertext", sa.LargeBinary, nullable=False),
        sa.Column("payload_nonce", sa.LargeBinary, nullable=False),
        sa.Column("payload_tag", sa.LargeBinary, nullable=False),
        sa.Column("content_hash", sa.String(64), nullable=False),
        sa.Column("masked_preview", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="available"),
        sa.Column("reserved_for_order_id", UUID(as_uuid=True), nullable=True),
        sa.Column("reserved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sold_to_order_id", UUID(as_uuid=True), nullable=True),
        sa.Column("sold_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sold_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("supplier", sa.String(255), nullable=True),
        sa.Column("cost", sa.Numeric(10, 2), nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("uploaded_by", sa.String(64), nullable=True),
        sa.Column("was_reported", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("invalid_reason", sa.Text, nullable=True),
        sa.Column("invalidated_by", sa.String(64), nullable=True),
        sa.Column("invalidated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_inventory_items_product_id", "inventory_items", ["product_id"])
    op.create_index("ix_inventory_items_status", "inventory_items", ["status"])
    op.create_index(
        "ix_inventory_items_product_status", "inventory_items", ["product_id", "status"],
    )
    active = sa.text("status IN ('available', 'reserved', 'sold')")
    op.create_index(
        "uq_inventory_items_product_hash_active", "inventory_items",
        ["product_id", "content_hash"],
        unique=True,
        postgresql_where=active,
        sqlite_where=active,
    )
    op.create_index(
        "ix_inventory_items_reserved_for_order_id", "inventory_items", ["reserved_for_order_id"],
    )
    op.create_index(
        "ix_inventory_items_sold_to_order_id", "inventory_items", ["sold_to_order_id"],
    )
    op.create_index("ix_inventory_items_reserved_at", "inventory_items", ["reserved_at"])
    op.create_index("ix_inventory_items_expires_at", "inventory_items", ["expires_at"])

    op.create_table(
        "audit_logs",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("actor_id", sa.String(64), nullable=False),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("target", sa.String(255), nullable=False),
        sa.Column("payload", sa.JSON, nullable=True),
        sa.Column("details", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("inventory_items")
    op.drop_table("products")
