"""Intake Service - single and bulk ingestion of encrypted inventory items.

Invariants:
    - Items are accepted only for existing products of the managed source type
    - Payload type must equal the product's delivery type, then the variant's
      own rules apply (ValidationError otherwise)
    - No two active items of a product share a content hash; the read-side
      check gives the friendly error, the partial unique index settles races
    - Item insert and stock_available increment commit together
    - Bulk: one item's failure never aborts the batch; the counter is bumped
      once by the number actually inserted

Design Decisions:
    - Savepoint per bulk item (begin_nested): an unexpected insert error rolls
      back that item only
    - In-batch duplicates tracked by hash set: the second copy never reaches
      the database
"""

import logging
from decimal import Decimal

from sqlalchemy import exc as sa_exc
from sqlalchemy.ext.asyncio import AsyncSession

from stockroom.config import Settings, get_settings
from stockroom.core.bulk_import import BulkImportResult, check_batch_size
from stockroom.core.domain_types import (
    ActorId, DeliveryType, ItemStatus, MANAGED_SOURCE_TYPE, ProductId,
)
from stockroom.core.errors import (
    ConflictError, ErrorContext, NotFoundError, StockroomError, ValidationError,
)
from stockroom.core.item_payload import mask_preview, validate_payload
from stockroom.core.repository_protocols import AuditSink, CatalogGateway
from stockroom.core.transitions import CounterDelta
from stockroom.infrastructure.audit_log import emit_audit
from stockroom.infrastructure.payload_codec import PayloadCodec, content_hash
from stockroom.models.inventory_item import InventoryItem
from stockroom.services.catalog_gateway import SqlCatalogGateway
from stockroom.services.item_store import InventoryItemStore

logger = logging.getLogger(__name__)


def _duplicate_error(product_id: ProductId) -> ConflictError:
    return ConflictError(
        "An item with identical content already exists for this product",
        ErrorContext(product_id=str(product_id)),
    )


def _record_duplicate(
    result: BulkImportResult, index: int, skip_duplicates: bool,
) -> None:
    if skip_duplicates:
        result.record_skipped()
    else:
        result.record_failure(index, "Duplicate item")


class IntakeService:
    """Validates, encrypts and stores new inventory items."""

    def __init__(
        self,
        db: AsyncSession,
        codec: PayloadCodec,
        audit: AuditSink,
        catalog: CatalogGateway | None = None,
        settings: Settings | None = None,
    ):
        self.db = db
        self.codec = codec
        self.audit = audit
        self.catalog = catalog or SqlCatalogGateway(db)
        self.settings = settings or get_settings()
        self.store = InventoryItemStore(
            db, self.settings.reservation_lock_timeout_ms,
        )

    async def _managed_delivery_type(self, product_id: ProductId) -> DeliveryType:
        product = await self.catalog.get_product(product_id)
        if product is None:
            raise NotFoundError("Product", str(product_id))
        if product.source_type != MANAGED_SOURCE_TYPE:
            raise ValidationError(
                "Inventory can only be managed for custom products; "
                f"product '{product_id}' is fulfilled by '{product.source_type}'",
                ErrorContext(product_id=str(product_id)),
            )
        return DeliveryType(product.delivery_type)

    def _build_item(
        self,
        product_id: ProductId,
        delivery_type: DeliveryType,
        payload: dict,
        digest: str,
        meta: dict,
        actor_id: ActorId,
    ) -> InventoryItem:
        sealed = self.codec.encrypt(payload)
        cost = meta.get("cost")
        return InventoryItem(
            product_id=product_id,
            delivery_type=delivery_type.value,
            payload_ciphertext=sealed.ciphertext,
            payload_nonce=sealed.nonce,
            payload_tag=sealed.tag,
            content_hash=digest,
            masked_preview=mask_preview(payload),
            status=ItemStatus.AVAILABLE.value,
            expires_at=meta.get("expires_at"),
            supplier=meta.get("supplier"),
            cost=Decimal(str(cost)) if cost is not None else None,
            notes=meta.get("notes"),
            uploaded_by=str(actor_id),
        )

    async def add_item(
        self,
        product_id: ProductId,
        payload: dict,
        meta: dict | None = None,
        actor_id: ActorId = ActorId("admin"),
    ) -> InventoryItem:
        """Add one item; returns the stored row (masked_preview is the view)."""
        meta = meta or {}
        delivery_type = await self._managed_delivery_type(product_id)

        error = validate_payload(delivery_type, payload)
        if error:
            raise ValidationError(error, ErrorContext(product_id=str(product_id)))

        digest = content_hash(payload)
        if await self.store.find_active_duplicate(product_id, digest):
            raise _duplicate_error(product_id)

        try:
            item = await self.store.insert(
                self._build_item(product_id, delivery_type, payload, digest, meta, actor_id),
            )
        except sa_exc.IntegrityError:
            await self.db.rollback()
            logger.info(
                f"Concurrent duplicate rejected for product {product_id}",
                extra={"product_id": str(product_id), "error_code": "DUPLICATE_ITEM"},
            )
            raise _duplicate_error(product_id)
        await self.catalog.increment_counters(product_id, CounterDelta(available=1))
        await self.db.commit()

        logger.info(
            f"Inventory item added to product {product_id}",
            extra={"product_id": str(product_id), "item_id": str(item.id)},
        )
        await emit_audit(
            self.audit, actor_id, "inventory:add", f"product:{product_id}",
            {"item_id": item.id},
            f"Added inventory item {item.id} ({item.masked_preview})",
        )
        return item

    async def bulk_import(
        self,
        product_id: ProductId,
        items: list[dict],
        skip_duplicates: bool = True,
        supplier: str | None = None,
        cost_per_item: float | Decimal | None = None,
        actor_id: ActorId = ActorId("admin"),
    ) -> BulkImportResult:
        """Import a batch; each entry is {"payload": {...}, optional meta fields}."""
        size_error = check_batch_size(len(items), self.settings.bulk_import_max_items)
        if size_error:
            raise ValidationError(size_error, ErrorContext(product_id=str(product_id)))

        delivery_type = await self._managed_delivery_type(product_id)
        result = BulkImportResult()
        seen_hashes: set[str] = set()

        for index, entry in enumerate(items):
            payload = entry.get("payload") if isinstance(entry, dict) else None
            error = validate_payload(delivery_type, payload)
            if error:
                result.record_failure(index, error)
                continue

            digest = content_hash(payload)
            duplicate = digest in seen_hashes or (
                await self.store.find_active_duplicate(product_id, digest)
            ) is not None
            if duplicate:
                _record_duplicate(result, index, skip_duplicates)
                continue

            meta = {
                "expires_at": entry.get("expires_at"),
                "supplier": entry.get("supplier") or supplier,
                "cost": entry.get("cost") if entry.get("cost") is not None else cost_per_item,
                "notes": entry.get("notes"),
            }
            try:
                async with self.db.begin_nested():
                    await self.store.insert(self._build_item(
                        product_id, delivery_type, payload, digest, meta, actor_id,
                    ))
            except sa_exc.IntegrityError:
                # another writer stored the same content since the lookup
                _record_duplicate(result, index, skip_duplicates)
                continue
            except StockroomError as e:
                result.record_failure(index, e.message)
                continue
            except Exception as e:
                logger.warning(
                    f"Bulk import item {index} failed: {e}",
                    extra={"product_id": str(product_id)},
                )
                result.record_failure(index, "Failed to store item")
                continue

            seen_hashes.add(digest)
            result.record_imported()

        if result.imported:
            await self.catalog.increment_counters(
                product_id, CounterDelta(available=result.imported),
            )
        await self.db.commit()

        logger.info(
            f"Bulk import for product {product_id}: {result.imported} imported, "
            f"{result.skipped_duplicates} skipped, {result.failed} failed",
            extra={"product_id": str(product_id), "count": result.imported},
        )
        await emit_audit(
            self.audit, actor_id, "inventory:bulk-import", f"product:{product_id}",
            {
                "imported": result.imported,
                "skipped": result.skipped_duplicates,
                "failed": result.failed,
            },
            f"Bulk imported {result.imported} items, skipped "
            f"{result.skipped_duplicates}, failed {result.failed}",
        )
        return result

