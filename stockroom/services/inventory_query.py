"""Inventory Query - read-only listing and statistics.

Invariants:
    - Strictly read-only: never flushes or commits
    - limit is clamped to 1..100, page to >= 1
    - Payloads are never decrypted here; rows expose masked_preview only
"""

from sqlalchemy.ext.asyncio import AsyncSession

from stockroom.core.domain_types import (
    ItemStatus, ListSortField, ProductId, SortDirection,
)
from stockroom.core.errors import NotFoundError
from stockroom.core.inventory_stats import (
    compute_global_stats, compute_product_stats, normalize_status_counts,
    page_offset, total_pages,
)
from stockroom.services.catalog_gateway import SqlCatalogGateway
from stockroom.services.item_store import InventoryItemStore

MAX_PAGE_SIZE = 100


class InventoryQueryService:
    """Admin-facing reads over inventory items."""

    def __init__(self, db: AsyncSession, catalog: SqlCatalogGateway | None = None):
        self.db = db
        self.catalog = catalog or SqlCatalogGateway(db)
        self.store = InventoryItemStore(db)

    async def list_items(
        self,
        product_id: ProductId,
        status: ItemStatus | None = None,
        supplier: str | None = None,
        sort_by: ListSortField = ListSortField.UPLOADED_AT,
        sort_dir: SortDirection = SortDirection.DESC,
        page: int = 1,
        limit: int = 50,
    ) -> dict:
        """Paginated listing: {data, total, page, limit, total_pages}."""
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        items, total = await self.store.list_page(
            product_id, status, supplier,
            ListSortField(sort_by), SortDirection(sort_dir),
            page_offset(page, limit), limit,
        )
        return {
            "data": items,
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": total_pages(total, limit),
        }

    async def get_stats(self, product_id: ProductId) -> dict:
        if not await self.catalog.product_exists(product_id):
            raise NotFoundError("Product", str(product_id))
        counts = normalize_status_counts(await self.store.status_counts(product_id))
        total_cost, avg_cost, total_revenue = await self.store.cost_and_revenue(product_id)
        return compute_product_stats(counts, total_cost, avg_cost, total_revenue)

    async def get_global_stats(self) -> dict:
        counts = normalize_status_counts(await self.store.status_counts())
        total, low, out = await self.catalog.managed_product_counts()
        return compute_global_stats(counts, total, low, out)
