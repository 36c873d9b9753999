"""Concurrent reservation - no item is ever handed to two orders.

Invariants:
    - N concurrent reserves against M items yield exactly min(N, M) items
    - Every claimed item id is distinct
    - Counters end consistent with the item rows
"""

import asyncio
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from sqlalchemy import func, select

from stockroom.models.inventory_item import InventoryItem
from stockroom.models.product import Product
from stockroom.services.reservation import ReservationEngine


async def _seed(session_factory, codec, item_count: int) -> Product:
    async with session_factory() as db:
        product = Product(
            title="Race Product", slug=f"race-{uuid4().hex[:8]}",
            source_type="custom", delivery_type="key",
            stock_available=item_count,
        )
        db.add(product)
        await db.flush()
        base = datetime.now(timezone.utc) - timedelta(hours=1)
        for i in range(item_count):
            payload = {"type": "key", "key": f"RACE-{i}"}
            sealed = codec.encrypt(payload)
            db.add(InventoryItem(
                product_id=product.id,
                delivery_type="key",
                payload_ciphertext=sealed.ciphertext,
                payload_nonce=sealed.nonce,
                payload_tag=sealed.tag,
                content_hash=f"race-hash-{i}",
                masked_preview="****",
                status="available",
                uploaded_at=base + timedelta(seconds=i),
            ))
        await db.commit()
        return product


async def _reserve_once(session_factory, audit, settings, product_id):
    async with session_factory() as db:
        engine = ReservationEngine(db, audit, settings=settings)
        item = await engine.reserve(product_id, uuid4())
        return item.id if item is not None else None


async def test_concurrent_reserves_never_double_allocate(
    file_session_factory, codec, audit, settings,
):
    product = await _seed(file_session_factory, codec, item_count=3)

    results = await asyncio.gather(*[
        _reserve_once(file_session_factory, audit, settings, product.id)
        for _ in range(8)
    ])

    claimed = [r for r in results if r is not None]
    assert len(claimed) == 3
    assert len(set(claimed)) == 3
    assert results.count(None) == 5

    async with file_session_factory() as db:
        refreshed = await db.get(Product, product.id)
        reserved = await db.scalar(
            select(func.count()).select_from(InventoryItem)
            .where(InventoryItem.product_id == product.id)
            .where(InventoryItem.status == "reserved"),
        )
    assert reserved == 3
    assert refreshed.stock_available == 0
    assert refreshed.stock_reserved == 3


async def test_concurrent_reserves_with_more_stock_than_orders(
    file_session_factory, codec, audit, settings,
):
    product = await _seed(file_session_factory, codec, item_count=10)

    results = await asyncio.gather(*[
        _reserve_once(file_session_factory, audit, settings, product.id)
        for _ in range(4)
    ])

    assert None not in results
    assert len(set(results)) == 4
