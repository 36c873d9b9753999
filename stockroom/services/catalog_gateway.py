"""Catalog Gateway - SQL implementation of the product-catalog collaborator boundary.

Invariants:
    - Operates on the caller's AsyncSession: counter writes join the caller's
      transaction and are committed (or rolled back) with the item change
    - Counter increments are relative UPDATEs (col = col + delta), never
      read-modify-write in Python
    - Never commits
"""

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from stockroom.core.domain_types import DeliveryType, MANAGED_SOURCE_TYPE, ProductId
from stockroom.core.low_stock import LowStockSnapshot
from stockroom.core.transitions import CounterDelta
from stockroom.models.product import Product


def snapshot_of(product: Product) -> LowStockSnapshot:
    return LowStockSnapshot(
        product_id=str(product.id),
        title=product.title,
        slug=product.slug,
        available=product.stock_available or 0,
        threshold=product.low_stock_threshold or 0,
        auto_unpublish=bool(product.auto_unpublish_when_out_of_stock),
        is_published=bool(product.is_published),
    )


class SqlCatalogGateway:
    """CatalogGateway over the products table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_product(self, product_id: ProductId) -> Product | None:
        result = await self.db.execute(
            select(Product).where(Product.id == product_id),
        )
        return result.scalar_one_or_none()

    async def product_exists(self, product_id: ProductId) -> bool:
        result = await self.db.execute(
            select(Product.id).where(Product.id == product_id),
        )
        return result.scalar_one_or_none() is not None

    async def get_delivery_type(self, product_id: ProductId) -> DeliveryType | None:
        result = await self.db.execute(
            select(Product.delivery_type).where(Product.id == product_id),
        )
        value = result.scalar_one_or_none()
        return DeliveryType(value) if value is not None else None

    async def get_low_stock_config(
        self, product_id: ProductId,
    ) -> LowStockSnapshot | None:
        product = await self.get_product(product_id)
        return snapshot_of(product) if product else None

    async def set_published(self, product_id: ProductId, published: bool) -> None:
        await self.db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(is_published=published),
        )

    async def increment_counters(
        self, product_id: ProductId, delta: CounterDelta,
    ) -> None:
        if delta.is_zero:
            return
        await self.db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(
                stock_available=Product.stock_available + delta.available,
                stock_reserved=Product.stock_reserved + delta.reserved,
                stock_sold=Product.stock_sold + delta.sold,
            ),
        )

    async def set_counters(
        self, product_id: ProductId, counts: dict[str, int],
    ) -> None:
        await self.db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(
                stock_available=counts.get("available", 0),
                stock_reserved=counts.get("reserved", 0),
                stock_sold=counts.get("sold", 0),
            ),
        )

    async def list_managed_products(self) -> list[Product]:
        """Products whose inventory this engine owns (source_type custom)."""
        result = await self.db.execute(
            select(Product)
            .where(Product.source_type == MANAGED_SOURCE_TYPE)
            .order_by(Product.created_at.asc()),
        )
        return list(result.scalars().all())

    async def list_low_stock_candidates(self) -> list[LowStockSnapshot]:
        result = await self.db.execute(
            select(Product)
            .where(Product.source_type == MANAGED_SOURCE_TYPE)
            .where(Product.low_stock_threshold > 0)
            .where(Product.stock_available <= Product.low_stock_threshold)
            .order_by(Product.stock_available.asc()),
        )
        return [snapshot_of(p) for p in result.scalars().all()]

    async def managed_product_counts(self) -> tuple[int, int, int]:
        """(total, low stock, out of stock) over managed products."""
        result = await self.db.execute(
            select(
                func.count(Product.id),
                func.coalesce(func.sum(case(
                    (
                        (Product.low_stock_threshold > 0)
                        & (Product.stock_available <= Product.low_stock_threshold),
                        1,
                    ),
                    else_=0,
                )), 0),
                func.coalesce(func.sum(case(
                    (Product.stock_available == 0, 1), else_=0,
                )), 0),
            ).where(Product.source_type == MANAGED_SOURCE_TYPE),
        )
        total, low, out = result.one()
        return int(total or 0), int(low or 0), int(out or 0)
