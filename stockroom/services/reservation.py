"""Reservation Engine - FIFO claim, sale finalization, release, admin toggles, delivery decrypt.

Invariants:
    - reserve() is the only operation that takes a row lock; the claim and both
      counter updates commit before the lock (or in-process guard) is released
    - Every other mutation is an optimistic UPDATE/DELETE WHERE status = ...;
      0 affected rows means the precondition no longer holds
    - Item change and counter change always commit in one transaction
    - Decrypted payloads are returned to the caller and never cached
    - Audit events go out after commit; an audit failure never undoes the change

Design Decisions:
    - Returning None (not raising) when nothing is eligible: "sold out" is a
      normal outcome for the order workflow
    - Lock wait overrun -> ConcurrencyError (retryable) instead of blocking
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import exc as sa_exc
from sqlalchemy.ext.asyncio import AsyncSession

from stockroom.config import Settings, get_settings
from stockroom.core.domain_types import (
    ActorId, ItemStatus, OrderId, ProductId, SYSTEM_ACTOR,
)
from stockroom.core.errors import (
    ConcurrencyError, ConflictError, ErrorContext, IntegrityError, NotFoundError,
    ValidationError,
)
from stockroom.core.repository_protocols import AuditSink, CatalogGateway
from stockroom.core.transitions import (
    CounterDelta, check_admin_toggle, check_transition, counter_delta,
)
from stockroom.infrastructure.audit_log import emit_audit
from stockroom.infrastructure.database import is_lock_timeout
from stockroom.infrastructure.payload_codec import PayloadCodec
from stockroom.models.inventory_item import InventoryItem
from stockroom.services.catalog_gateway import SqlCatalogGateway
from stockroom.services.item_store import InventoryItemStore

logger = logging.getLogger(__name__)

_DELIVERABLE_STATUSES = (ItemStatus.RESERVED.value, ItemStatus.SOLD.value)


def _item_target(item: InventoryItem) -> str:
    return f"product:{item.product_id}/item:{item.id}"


class ReservationEngine:
    """Item state machine operations for fulfillment and admin."""

    def __init__(
        self,
        db: AsyncSession,
        audit: AuditSink,
        codec: PayloadCodec | None = None,
        catalog: CatalogGateway | None = None,
        settings: Settings | None = None,
    ):
        self.db = db
        self.audit = audit
        self.codec = codec
        self.catalog = catalog or SqlCatalogGateway(db)
        self.settings = settings or get_settings()
        self.store = InventoryItemStore(
            db, self.settings.reservation_lock_timeout_ms,
        )

    async def _get_or_404(
        self, item_id, product_id: ProductId | None = None,
    ) -> InventoryItem:
        item = await self.store.get(item_id, product_id)
        if item is None:
            raise NotFoundError("Inventory item", str(item_id))
        return item

    # ─── Fulfillment ─────────────────────────────────────────────

    async def reserve(
        self, product_id: ProductId, order_id: OrderId,
    ) -> InventoryItem | None:
        """Claim the oldest available, unexpired item for order_id."""
        try:
            async with self.store.reservation_guard(product_id):
                now = datetime.now(timezone.utc)
                item = await self.store.claim_oldest_available(product_id, now)
                if item is None:
                    await self.db.rollback()
                    logger.info(
                        f"No available inventory for product {product_id}",
                        extra={"product_id": str(product_id), "order_id": str(order_id)},
                    )
                    return None

                claimed = await self.store.transition(
                    item.id, ItemStatus.AVAILABLE, ItemStatus.RESERVED,
                    {
                        "reserved_for_order_id": order_id,
                        "reserved_at": now,
                    },
                )
                if not claimed:
                    await self.db.rollback()
                    return None
                await self.catalog.increment_counters(
                    product_id, counter_delta(ItemStatus.AVAILABLE, ItemStatus.RESERVED),
                )
                await self.db.commit()
        except sa_exc.DBAPIError as e:
            await self.db.rollback()
            if is_lock_timeout(e):
                logger.warning(
                    f"Reservation lock wait exceeded for product {product_id}",
                    extra={"product_id": str(product_id), "error_code": "CONCURRENCY_CONFLICT"},
                )
                raise ConcurrencyError(
                    "Inventory is busy, retry the reservation",
                    context=ErrorContext(product_id=str(product_id), order_id=str(order_id)),
                )
            raise

        logger.info(
            f"Reserved item {item.id} for order {order_id}",
            extra={"product_id": str(product_id), "item_id": str(item.id), "order_id": str(order_id)},
        )
        await emit_audit(
            self.audit, SYSTEM_ACTOR, "inventory:reserve", _item_target(item),
            {"item_id": item.id, "order_id": order_id},
        )
        return item

    async def mark_sold(
        self, item_id, order_id: OrderId, sold_price: Decimal | float,
    ) -> InventoryItem:
        item = await self._get_or_404(item_id)
        ctx = ErrorContext(item_id=str(item_id), order_id=str(order_id))
        edge_error = check_transition(ItemStatus(item.status), ItemStatus.SOLD)
        if edge_error:
            raise ValidationError(edge_error, ctx)
        if item.reserved_for_order_id != order_id:
            raise ValidationError("Item is reserved for a different order", ctx)

        now = datetime.now(timezone.utc)
        sold = await self.store.transition(
            item.id, ItemStatus.RESERVED, ItemStatus.SOLD,
            {
                "sold_to_order_id": order_id,
                "sold_at": now,
                "sold_price": Decimal(str(sold_price)),
                "reserved_for_order_id": None,
                "reserved_at": None,
            },
            extra_conditions=(InventoryItem.reserved_for_order_id == order_id,),
        )
        if not sold:
            await self.db.rollback()
            raise ValidationError("Item is no longer reserved for this order", ctx)
        await self.catalog.increment_counters(
            item.product_id, counter_delta(ItemStatus.RESERVED, ItemStatus.SOLD),
        )
        await self.db.commit()
        await self.db.refresh(item)

        logger.info(
            f"Item {item_id} sold to order {order_id}",
            extra={"item_id": str(item_id), "order_id": str(order_id)},
        )
        await emit_audit(
            self.audit, SYSTEM_ACTOR, "inventory:sold", _item_target(item),
            {"order_id": order_id, "sold_price": item.sold_price},
        )
        return item

    async def release(self, item_id) -> InventoryItem:
        """Return a reserved item to the available pool."""
        item = await self._get_or_404(item_id)
        if item.status != ItemStatus.RESERVED.value:
            raise ValidationError(
                f"Item is '{item.status}', only reserved items can be released",
                ErrorContext(item_id=str(item_id)),
            )
        order_id = item.reserved_for_order_id

        released = await self.store.transition(
            item.id, ItemStatus.RESERVED, ItemStatus.AVAILABLE,
            {
                "reserved_for_order_id": None,
                "reserved_at": None,
            },
        )
        if not released:
            await self.db.rollback()
            raise ValidationError(
                "Item is no longer reserved", ErrorContext(item_id=str(item_id)),
            )
        await self.catalog.increment_counters(
            item.product_id, counter_delta(ItemStatus.RESERVED, ItemStatus.AVAILABLE),
        )
        await self.db.commit()
        await self.db.refresh(item)

        logger.info(
            f"Released reservation of item {item_id}",
            extra={"item_id": str(item_id), "order_id": str(order_id)},
        )
        await emit_audit(
            self.audit, SYSTEM_ACTOR, "inventory:release", _item_target(item),
            {"order_id": order_id},
        )
        return item

    async def get_items_by_order(self, order_id: OrderId) -> list[InventoryItem]:
        return await self.store.find_by_order(order_id)

    async def get_decrypted_payload_for_delivery(self, item_id) -> dict:
        """Decrypt on demand for delivery rendering. Never cached."""
        if self.codec is None:
            raise ValidationError("Delivery requires the payload codec")
        item = await self._get_or_404(item_id)
        if item.status not in _DELIVERABLE_STATUSES:
            raise ValidationError(
                f"Item is '{item.status}', only reserved or sold items can be delivered",
                ErrorContext(item_id=str(item_id)),
            )
        try:
            return self.codec.decrypt(
                item.payload_ciphertext, item.payload_nonce, item.payload_tag,
            )
        except IntegrityError as e:
            e.context.item_id = str(item_id)
            e.context.product_id = str(item.product_id)
            logger.critical(
                f"Payload integrity failure for item {item_id}",
                extra={"item_id": str(item_id), "error_code": e.code},
            )
            raise

    # ─── Admin ───────────────────────────────────────────────────

    async def update_status(
        self,
        item_id,
        new_status: ItemStatus,
        reason: str | None = None,
        actor_id: ActorId = ActorId("admin"),
        product_id: ProductId | None = None,
    ) -> InventoryItem:
        """Toggle an item between available and invalid."""
        item = await self._get_or_404(item_id, product_id)
        current = ItemStatus(item.status)
        error = check_admin_toggle(current, new_status)
        if error:
            raise ValidationError(error, ErrorContext(item_id=str(item_id)))

        if new_status == ItemStatus.INVALID:
            values = {
                "invalid_reason": reason,
                "invalidated_by": str(actor_id),
                "invalidated_at": datetime.now(timezone.utc),
            }
        else:
            values = {
                "invalid_reason": None,
                "invalidated_by": None,
                "invalidated_at": None,
            }
        try:
            moved = await self.store.transition(item.id, current, new_status, values)
        except sa_exc.IntegrityError:
            # revalidating while another active item carries the same content
            await self.db.rollback()
            raise ConflictError(
                "An active item with identical content already exists for this product",
                ErrorContext(item_id=str(item_id), product_id=str(item.product_id)),
            )
        if not moved:
            await self.db.rollback()
            raise ValidationError(
                "Item status changed concurrently, reload and retry",
                ErrorContext(item_id=str(item_id)),
            )
        await self.catalog.increment_counters(
            item.product_id, counter_delta(current, new_status),
        )
        await self.db.commit()
        await self.db.refresh(item)

        suffix = f": {reason}" if reason else ""
        await emit_audit(
            self.audit, actor_id, "inventory:status-change", _item_target(item),
            {"old_status": current.value, "new_status": new_status.value},
            f"Changed status from {current.value} to {new_status.value}{suffix}",
        )
        return item

    async def delete_item(
        self,
        item_id,
        actor_id: ActorId = ActorId("admin"),
        product_id: ProductId | None = None,
    ) -> None:
        item = await self._get_or_404(item_id, product_id)
        if item.status != ItemStatus.AVAILABLE.value:
            raise ValidationError(
                f"Cannot delete item with status '{item.status}', "
                "only available items can be deleted",
                ErrorContext(item_id=str(item_id)),
            )
        target = _item_target(item)
        preview = item.masked_preview
        owner = item.product_id

        if not await self.store.delete_available(item.id):
            await self.db.rollback()
            raise ValidationError(
                "Item is no longer available", ErrorContext(item_id=str(item_id)),
            )
        await self.catalog.increment_counters(
            owner, CounterDelta(available=-1),
        )
        await self.db.commit()

        await emit_audit(
            self.audit, actor_id, "inventory:delete", target,
            {"item_id": item_id}, f"Deleted inventory item ({preview})",
        )

    async def report_item(
        self,
        item_id,
        actor_id: ActorId = ActorId("admin"),
        reason: str | None = None,
        product_id: ProductId | None = None,
    ) -> InventoryItem:
        """Flag an item as reported by a customer; status is untouched."""
        item = await self._get_or_404(item_id, product_id)
        item.was_reported = True
        await self.db.commit()

        logger.warning(
            f"Inventory item {item_id} reported",
            extra={"item_id": str(item_id), "product_id": str(item.product_id)},
        )
        await emit_audit(
            self.audit, actor_id, "inventory:reported", _item_target(item),
            {"item_id": item_id, "status": item.status}, reason,
        )
        return item
