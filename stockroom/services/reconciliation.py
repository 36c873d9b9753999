"""Reconciliation Service - expiry, stale-reservation release, low-stock alerts, counter resync.

Invariants:
    - Each pass only moves items along existing state edges and recomputes
      counters from item rows, so passes are idempotent and safe to interleave
      with reservation traffic
    - A pass never overlaps a still-running instance of itself in this
      process: a second invocation is skipped, not queued
    - run_all() isolates failures per pass; one failing pass never prevents
      the others from running
    - Counters are adjusted per product in the same transaction as the items

Design Decisions:
    - Module-level asyncio.Lock per pass: services are built per request or
      per job, the locks must outlive them
    - Counter resync is kept alongside incremental updates: incremental for
      cheap reads, resync to heal drift
"""

import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from stockroom.config import Settings, get_settings
from stockroom.core.domain_types import ItemStatus, SYSTEM_ACTOR
from stockroom.core.inventory_stats import counted_totals, counters_diverge
from stockroom.core.low_stock import (
    LowStockAlert, evaluate_low_stock, should_auto_unpublish,
)
from stockroom.core.repository_protocols import AuditSink, CatalogGateway
from stockroom.core.transitions import counter_delta
from stockroom.infrastructure.audit_log import emit_audit
from stockroom.models.inventory_item import InventoryItem
from stockroom.services.catalog_gateway import SqlCatalogGateway
from stockroom.services.item_store import InventoryItemStore

logger = logging.getLogger(__name__)

INVENTORY_TARGET = "product_inventory"

_pass_locks: dict[str, asyncio.Lock] = {
    "expire": asyncio.Lock(),
    "release": asyncio.Lock(),
    "low_stock": asyncio.Lock(),
    "sync": asyncio.Lock(),
}


def _group_by_product(items: list[InventoryItem]) -> dict[UUID, list[UUID]]:
    grouped: dict[UUID, list[UUID]] = defaultdict(list)
    for item in items:
        grouped[item.product_id].append(item.id)
    return dict(grouped)


class ReconciliationService:
    """Periodic self-healing passes over the inventory."""

    def __init__(
        self,
        db: AsyncSession,
        audit: AuditSink,
        catalog: CatalogGateway | None = None,
        settings: Settings | None = None,
    ):
        self.db = db
        self.audit = audit
        self.catalog = catalog or SqlCatalogGateway(db)
        self.settings = settings or get_settings()
        self.store = InventoryItemStore(db)

    async def _bulk_move(
        self,
        items: list[InventoryItem],
        source: ItemStatus,
        target: ItemStatus,
        values: dict | None = None,
    ) -> tuple[int, list[UUID]]:
        moved = 0
        affected: list[UUID] = []
        for product_id, item_ids in _group_by_product(items).items():
            count = await self.store.bulk_transition(
                item_ids, source, target, values,
            )
            if count:
                await self.catalog.increment_counters(
                    product_id, counter_delta(source, target) * count,
                )
                moved += count
                affected.append(product_id)
        return moved, affected

    # ─── Passes ──────────────────────────────────────────────────

    async def expire_items(self) -> dict:
        """Move available items past expires_at to expired."""
        lock = _pass_locks["expire"]
        if lock.locked():
            logger.info("Expire pass already running, skipped", extra={"job": "expire"})
            return {"expired_count": 0, "products_affected": 0, "skipped": True}

        async with lock:
            now = datetime.now(timezone.utc)
            expired = await self.store.find_expired_available(now)
            if not expired:
                return {"expired_count": 0, "products_affected": 0}

            count, affected = await self._bulk_move(
                expired, ItemStatus.AVAILABLE, ItemStatus.EXPIRED,
            )
            await self.db.commit()

        logger.info(
            f"Expired {count} inventory items across {len(affected)} products",
            extra={"job": "expire", "count": count, "products_affected": len(affected)},
        )
        await emit_audit(
            self.audit, SYSTEM_ACTOR, "inventory_items_expired", INVENTORY_TARGET,
            {"expired_count": count, "product_ids": affected},
            f"Expired {count} inventory items",
        )
        return {"expired_count": count, "products_affected": len(affected)}

    async def release_stale_reservations(
        self, max_age_minutes: int | None = None,
    ) -> dict:
        """Return reservations older than the timeout to the available pool."""
        lock = _pass_locks["release"]
        if lock.locked():
            logger.info("Release pass already running, skipped", extra={"job": "release"})
            return {"released_count": 0, "products_affected": 0, "skipped": True}

        minutes = (
            self.settings.reservation_timeout_minutes
            if max_age_minutes is None else max_age_minutes
        )
        async with lock:
            cutoff = datetime.now(timezone.utc) - timedelta(minutes=minutes)
            stale = await self.store.find_stale_reservations(cutoff)
            if not stale:
                return {"released_count": 0, "products_affected": 0}

            count, affected = await self._bulk_move(
                stale, ItemStatus.RESERVED, ItemStatus.AVAILABLE,
                {"reserved_for_order_id": None, "reserved_at": None},
            )
            await self.db.commit()

        logger.info(
            f"Released {count} stale reservations older than {minutes} minutes",
            extra={"job": "release", "count": count, "products_affected": len(affected)},
        )
        await emit_audit(
            self.audit, SYSTEM_ACTOR, "inventory_reservations_released", INVENTORY_TARGET,
            {
                "released_count": count,
                "product_ids": affected,
                "max_age_minutes": minutes,
            },
            f"Released {count} stale reservations",
        )
        return {"released_count": count, "products_affected": len(affected)}

    async def check_low_stock(self) -> list[dict]:
        """Alert on threshold breaches; auto-unpublish sold-out opted-in products."""
        lock = _pass_locks["low_stock"]
        if lock.locked():
            logger.info("Low-stock pass already running, skipped", extra={"job": "low_stock"})
            return []

        unpublished: list[LowStockAlert] = []
        async with lock:
            alerts: list[LowStockAlert] = []
            for snapshot in await self.catalog.list_low_stock_candidates():
                alert = evaluate_low_stock(snapshot)
                if alert is None:
                    continue
                alerts.append(alert)
                logger.warning(
                    f"Low stock: {alert.product_title} has {alert.available} "
                    f"available (threshold {alert.threshold})",
                    extra={"job": "low_stock", "product_id": alert.product_id},
                )
                if should_auto_unpublish(snapshot):
                    await self.catalog.set_published(UUID(snapshot.product_id), False)
                    unpublished.append(alert)
            if unpublished:
                await self.db.commit()

        for alert in unpublished:
            logger.warning(
                f"Auto-unpublished out-of-stock product {alert.slug}",
                extra={"job": "low_stock", "product_id": alert.product_id},
            )
            await emit_audit(
                self.audit, SYSTEM_ACTOR, "product_auto_unpublished",
                f"product:{alert.product_id}",
                {"product_id": alert.product_id, "slug": alert.slug},
                f"Product {alert.product_title} auto-unpublished: out of stock",
            )
        return [alert.to_dict() for alert in alerts]

    async def sync_stock_counts(self) -> dict:
        """Overwrite cached counters that diverge from the item rows."""
        lock = _pass_locks["sync"]
        if lock.locked():
            logger.info("Stock sync already running, skipped", extra={"job": "sync"})
            return {"updated_count": 0, "skipped": True}

        async with lock:
            truth_by_product = await self.store.status_counts_by_product()
            updated = 0
            for product in await self.catalog.list_managed_products():
                truth = counted_totals(truth_by_product.get(product.id, {}))
                cached = {
                    ItemStatus.AVAILABLE.value: product.stock_available,
                    ItemStatus.RESERVED.value: product.stock_reserved,
                    ItemStatus.SOLD.value: product.stock_sold,
                }
                if counters_diverge(cached, truth):
                    logger.info(
                        f"Counter drift on product {product.id}: cached {cached}, actual {truth}",
                        extra={"job": "sync", "product_id": str(product.id)},
                    )
                    await self.catalog.set_counters(product.id, truth)
                    updated += 1
            if updated:
                await self.db.commit()

        logger.info(
            f"Stock count sync updated {updated} products",
            extra={"job": "sync", "count": updated},
        )
        return {"updated_count": updated}

    async def run_all(self) -> dict:
        """Run every pass in order; failures are reported per pass."""
        passes: list[tuple[str, Callable[[], Awaitable]]] = [
            ("expiration", self.expire_items),
            ("reservations", self.release_stale_reservations),
            ("low_stock", self.check_low_stock),
            ("sync", self.sync_stock_counts),
        ]
        results: dict = {}
        for name, run_pass in passes:
            try:
                outcome = await run_pass()
                results[name] = {"alerts": outcome} if name == "low_stock" else outcome
            except Exception as e:
                logger.error(
                    f"Reconciliation pass '{name}' failed: {e}",
                    exc_info=True, extra={"job": name},
                )
                await self.db.rollback()
                results[name] = {"error": str(e)}

        await emit_audit(
            self.audit, SYSTEM_ACTOR, "inventory_full_sync", INVENTORY_TARGET,
            results, "Full inventory reconciliation",
        )
        return results

    # ─── Read-only ───────────────────────────────────────────────

    async def get_low_stock_products(self) -> list[dict]:
        alerts = [
            evaluate_low_stock(snapshot)
            for snapshot in await self.catalog.list_low_stock_candidates()
        ]
        return [alert.to_dict() for alert in alerts if alert is not None]
