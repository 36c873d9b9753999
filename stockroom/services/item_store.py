"""Inventory Item Store - transactional read/update primitives over inventory_items.

Invariants:
    - Never commits: the calling service owns the transaction boundary
    - claim_oldest_available() must run inside reservation_guard() and the
      caller must commit before leaving the guard
    - Conditional updates (transition, delete) return whether the precondition
      still held; 0 rows means another writer got there first
    - Every status write goes through transition/bulk_transition, which refuse
      edges missing from the state machine table
    - Duplicate lookup only considers active items (available/reserved/sold)

Design Decisions:
    - PostgreSQL: FOR UPDATE SKIP LOCKED with a transaction-local lock_timeout,
      so concurrent claimers take the next row instead of re-reading a row the
      winner just flipped (which would yield a false "sold out")
    - SQLite (tests, single process): FOR UPDATE is not rendered, so a
      per-product asyncio.Lock serializes claimers; the registry holds locks
      weakly, so a product's lock lives only while some claimer holds it
    - Optimistic WHERE status = ... preconditions for every other mutation
"""

import asyncio
import logging
import weakref
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator
from uuid import UUID

from sqlalchemy import and_, case, delete, func, or_, select, text, update
from sqlalchemy.ext.asyncio import AsyncSession

from stockroom.core.domain_types import (
    ACTIVE_STATUSES, ItemStatus, ListSortField, OrderId, ProductId, SortDirection,
)
from stockroom.core.errors import ValidationError
from stockroom.core.transitions import check_transition
from stockroom.infrastructure.database import supports_row_locks
from stockroom.models.inventory_item import InventoryItem

logger = logging.getLogger(__name__)

# In-process claim locks, used only when the backend has no row locks
_local_claim_locks: "weakref.WeakValueDictionary[UUID, asyncio.Lock]" = (
    weakref.WeakValueDictionary()
)

_SORT_COLUMNS = {
    ListSortField.UPLOADED_AT: InventoryItem.uploaded_at,
    ListSortField.SOLD_AT: InventoryItem.sold_at,
    ListSortField.EXPIRES_AT: InventoryItem.expires_at,
    ListSortField.COST: InventoryItem.cost,
}


def _require_edge(source: ItemStatus, target: ItemStatus) -> None:
    error = check_transition(source, target)
    if error:
        raise ValidationError(error)


class InventoryItemStore:
    """Row-level access to inventory items for one session/transaction."""

    def __init__(self, db: AsyncSession, lock_timeout_ms: int = 3000):
        self.db = db
        self.lock_timeout_ms = lock_timeout_ms

    # ─── Reads ───────────────────────────────────────────────────

    async def get(
        self, item_id: UUID, product_id: ProductId | None = None,
    ) -> InventoryItem | None:
        query = select(InventoryItem).where(InventoryItem.id == item_id)
        if product_id is not None:
            query = query.where(InventoryItem.product_id == product_id)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def find_active_duplicate(
        self, product_id: ProductId, content_hash: str,
    ) -> InventoryItem | None:
        result = await self.db.execute(
            select(InventoryItem)
            .where(InventoryItem.product_id == product_id)
            .where(InventoryItem.content_hash == content_hash)
            .where(InventoryItem.status.in_([s.value for s in ACTIVE_STATUSES]))
            .limit(1),
        )
        return result.scalar_one_or_none()

    async def find_by_order(self, order_id: OrderId) -> list[InventoryItem]:
        result = await self.db.execute(
            select(InventoryItem)
            .where(or_(
                InventoryItem.reserved_for_order_id == order_id,
                InventoryItem.sold_to_order_id == order_id,
            ))
            .order_by(InventoryItem.uploaded_at.asc()),
        )
        return list(result.scalars().all())

    async def list_page(
        self,
        product_id: ProductId,
        status: ItemStatus | None,
        supplier: str | None,
        sort_by: ListSortField,
        sort_dir: SortDirection,
        offset: int,
        limit: int,
    ) -> tuple[list[InventoryItem], int]:
        conditions = [InventoryItem.product_id == product_id]
        if status is not None:
            conditions.append(InventoryItem.status == status.value)
        if supplier:
            conditions.append(InventoryItem.supplier == supplier)

        total = await self.db.scalar(
            select(func.count()).select_from(InventoryItem).where(and_(*conditions)),
        )
        column = _SORT_COLUMNS[sort_by]
        ordering = column.asc() if sort_dir == SortDirection.ASC else column.desc()
        result = await self.db.execute(
            select(InventoryItem)
            .where(and_(*conditions))
            .order_by(ordering, InventoryItem.id)
            .offset(offset)
            .limit(limit),
        )
        return list(result.scalars().all()), int(total or 0)

    async def status_counts(
        self, product_id: ProductId | None = None,
    ) -> list[tuple[str, int]]:
        query = select(InventoryItem.status, func.count()).group_by(InventoryItem.status)
        if product_id is not None:
            query = query.where(InventoryItem.product_id == product_id)
        result = await self.db.execute(query)
        return [(row[0], row[1]) for row in result.all()]

    async def status_counts_by_product(self) -> dict[UUID, dict[str, int]]:
        """Ground truth for the counter resync: product -> status -> count."""
        result = await self.db.execute(
            select(InventoryItem.product_id, InventoryItem.status, func.count())
            .group_by(InventoryItem.product_id, InventoryItem.status),
        )
        counts: dict[UUID, dict[str, int]] = defaultdict(dict)
        for product_id, status, count in result.all():
            counts[product_id][status] = int(count)
        return dict(counts)

    async def cost_and_revenue(self, product_id: ProductId) -> tuple:
        """(total_cost, avg_cost, total_revenue) for one product."""
        result = await self.db.execute(
            select(
                func.coalesce(func.sum(InventoryItem.cost), 0),
                func.coalesce(func.avg(InventoryItem.cost), 0),
                func.coalesce(
                    func.sum(case(
                        (
                            InventoryItem.status == ItemStatus.SOLD.value,
                            InventoryItem.sold_price,
                        ),
                        else_=0,
                    )),
                    0,
                ),
            ).where(InventoryItem.product_id == product_id),
        )
        return tuple(result.one())

    async def find_expired_available(self, now: datetime) -> list[InventoryItem]:
        result = await self.db.execute(
            select(InventoryItem)
            .where(InventoryItem.status == ItemStatus.AVAILABLE.value)
            .where(InventoryItem.expires_at.is_not(None))
            .where(InventoryItem.expires_at < now),
        )
        return list(result.scalars().all())

    async def find_stale_reservations(self, cutoff: datetime) -> list[InventoryItem]:
        result = await self.db.execute(
            select(InventoryItem)
            .where(InventoryItem.status == ItemStatus.RESERVED.value)
            .where(InventoryItem.reserved_at.is_not(None))
            .where(InventoryItem.reserved_at < cutoff),
        )
        return list(result.scalars().all())

    # ─── Reservation claim ───────────────────────────────────────

    @asynccontextmanager
    async def reservation_guard(self, product_id: ProductId) -> AsyncIterator[None]:
        """Mutual exclusion for claimers of one product's oldest row."""
        if supports_row_locks(self.db):
            await self.db.execute(
                text(f"SET LOCAL lock_timeout = '{int(self.lock_timeout_ms)}ms'"),
            )
            yield
            return
        lock = _local_claim_locks.get(product_id)
        if lock is None:
            lock = asyncio.Lock()
            _local_claim_locks[product_id] = lock
        async with lock:
            yield

    async def claim_oldest_available(
        self, product_id: ProductId, now: datetime,
    ) -> InventoryItem | None:
        """Select the FIFO head under an exclusive row lock held until commit."""
        result = await self.db.execute(
            select(InventoryItem)
            .where(InventoryItem.product_id == product_id)
            .where(InventoryItem.status == ItemStatus.AVAILABLE.value)
            .where(or_(
                InventoryItem.expires_at.is_(None),
                InventoryItem.expires_at > now,
            ))
            .order_by(InventoryItem.uploaded_at.asc(), InventoryItem.id.asc())
            .limit(1)
            .with_for_update(skip_locked=True),
        )
        return result.scalar_one_or_none()

    # ─── Writes ──────────────────────────────────────────────────

    async def insert(self, item: InventoryItem) -> InventoryItem:
        self.db.add(item)
        await self.db.flush()
        return item

    async def transition(
        self,
        item_id: UUID,
        source: ItemStatus,
        target: ItemStatus,
        values: dict | None = None,
        extra_conditions: tuple = (),
    ) -> bool:
        """UPDATE ... SET status = target WHERE status = source; True when the row matched."""
        _require_edge(source, target)
        result = await self.db.execute(
            update(InventoryItem)
            .where(InventoryItem.id == item_id)
            .where(InventoryItem.status == source.value)
            .where(*extra_conditions)
            .values(status=target.value, **(values or {})),
        )
        return result.rowcount == 1

    async def bulk_transition(
        self,
        item_ids: list[UUID],
        source: ItemStatus,
        target: ItemStatus,
        values: dict | None = None,
    ) -> int:
        _require_edge(source, target)
        if not item_ids:
            return 0
        result = await self.db.execute(
            update(InventoryItem)
            .where(InventoryItem.id.in_(item_ids))
            .where(InventoryItem.status == source.value)
            .values(status=target.value, **(values or {})),
        )
        return result.rowcount

    async def delete_available(self, item_id: UUID) -> bool:
        result = await self.db.execute(
            delete(InventoryItem)
            .where(InventoryItem.id == item_id)
            .where(InventoryItem.status == ItemStatus.AVAILABLE.value)
        )
        return result.rowcount == 1
