"""Reservation Engine - FIFO claim, sell, release, admin toggle, delete, delivery.

Invariants:
    - Counters move with every transition and match live item counts
    - Only the reserving order may complete a sale
    - Delivery decrypts only reserved/sold items and detects tampering
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from stockroom.core.domain_types import ItemStatus
from stockroom.core.errors import (
    ConflictError, IntegrityError, NotFoundError, ValidationError,
)
from stockroom.models.inventory_item import InventoryItem
from stockroom.services.reservation import ReservationEngine


@pytest.fixture
def engine(test_db, audit, codec, settings):
    return ReservationEngine(test_db, audit, codec=codec, settings=settings)


@pytest.fixture
async def stocked(make_product, make_item):
    """Product with three available items uploaded one minute apart (oldest first)."""
    product = await make_product(stock_available=3)
    base = datetime.now(timezone.utc) - timedelta(hours=1)
    items = [
        await make_item(product, key=f"FIFO-KEY-{i}", uploaded_at=base + timedelta(minutes=i))
        for i in range(3)
    ]
    return product, items


async def _assert_counters_match_items(db, product):
    await db.refresh(product)
    rows = (await db.execute(
        select(InventoryItem.status, func.count())
        .where(InventoryItem.product_id == product.id)
        .group_by(InventoryItem.status),
    )).all()
    live = dict(rows)
    assert product.stock_available == live.get("available", 0)
    assert product.stock_reserved == live.get("reserved", 0)
    assert product.stock_sold == live.get("sold", 0)


# ─── reserve ─────────────────────────────────────────────────────

async def test_reserve_claims_oldest_item_first(engine, stocked, test_db):
    product, items = stocked
    order_id = uuid4()

    item = await engine.reserve(product.id, order_id)

    assert item.id == items[0].id
    assert item.status == ItemStatus.RESERVED.value
    assert item.reserved_for_order_id == order_id
    assert item.reserved_at is not None
    await _assert_counters_match_items(test_db, product)
    assert product.stock_reserved == 1


async def test_reserve_order_follows_upload_time(engine, stocked):
    product, items = stocked
    claimed = [await engine.reserve(product.id, uuid4()) for _ in range(3)]
    assert [c.id for c in claimed] == [i.id for i in items]


async def test_reserve_returns_none_when_sold_out(engine, make_product):
    product = await make_product()
    assert await engine.reserve(product.id, uuid4()) is None


async def test_reserve_skips_expired_items(engine, make_product, make_item):
    product = await make_product(stock_available=2)
    now = datetime.now(timezone.utc)
    await make_item(product, expires_at=now - timedelta(minutes=5), uploaded_at=now - timedelta(hours=2))
    fresh = await make_item(product, expires_at=now + timedelta(days=1), uploaded_at=now - timedelta(hours=1))

    item = await engine.reserve(product.id, uuid4())

    assert item.id == fresh.id


async def test_reserve_skips_invalid_and_sold(engine, make_product, make_item):
    product = await make_product()
    await make_item(product, status="invalid")
    await make_item(product, status="sold")
    assert await engine.reserve(product.id, uuid4()) is None


async def test_reserve_is_audited(engine, stocked, audit):
    product, _ = stocked
    await engine.reserve(product.id, uuid4())
    assert audit.actions() == ["inventory:reserve"]
    assert audit.events[0]["actor_id"] == "system"


# ─── mark_sold ───────────────────────────────────────────────────

async def test_mark_sold_by_reserving_order(engine, stocked, test_db):
    product, _ = stocked
    order_id = uuid4()
    reserved = await engine.reserve(product.id, order_id)

    sold = await engine.mark_sold(reserved.id, order_id, Decimal("19.99"))

    assert sold.status == ItemStatus.SOLD.value
    assert sold.sold_to_order_id == order_id
    assert sold.sold_price == Decimal("19.99")
    assert sold.reserved_for_order_id is None
    await _assert_counters_match_items(test_db, product)
    assert product.stock_sold == 1


async def test_mark_sold_rejects_other_order(engine, stocked, test_db):
    product, _ = stocked
    reserved = await engine.reserve(product.id, uuid4())

    with pytest.raises(ValidationError, match="different order"):
        await engine.mark_sold(reserved.id, uuid4(), 10)

    await test_db.refresh(reserved)
    assert reserved.status == ItemStatus.RESERVED.value


async def test_mark_sold_requires_reserved_status(engine, stocked):
    _, items = stocked
    with pytest.raises(ValidationError):
        await engine.mark_sold(items[0].id, uuid4(), 10)


async def test_mark_sold_unknown_item(engine):
    with pytest.raises(NotFoundError):
        await engine.mark_sold(uuid4(), uuid4(), 10)


# ─── release ─────────────────────────────────────────────────────

async def test_release_returns_item_to_pool(engine, stocked, test_db):
    product, _ = stocked
    reserved = await engine.reserve(product.id, uuid4())

    released = await engine.release(reserved.id)

    assert released.status == ItemStatus.AVAILABLE.value
    assert released.reserved_for_order_id is None
    assert released.reserved_at is None
    await _assert_counters_match_items(test_db, product)
    assert product.stock_available == 3


async def test_release_requires_reserved(engine, stocked):
    _, items = stocked
    with pytest.raises(ValidationError):
        await engine.release(items[0].id)


# ─── get_items_by_order ──────────────────────────────────────────

async def test_items_by_order_include_reserved_and_sold(engine, make_product, make_item):
    product = await make_product(stock_available=2)
    await make_item(product)
    await make_item(product)
    order_id = uuid4()
    first = await engine.reserve(product.id, order_id)
    second = await engine.reserve(product.id, order_id)
    await engine.mark_sold(first.id, order_id, 5)
    await engine.reserve(product.id, uuid4())

    items = await engine.get_items_by_order(order_id)

    assert {i.id for i in items} == {first.id, second.id}


# ─── update_status ───────────────────────────────────────────────

async def test_invalidate_records_reason_and_actor(engine, stocked, test_db, audit):
    product, items = stocked

    item = await engine.update_status(
        items[0].id, ItemStatus.INVALID, "Key already redeemed", "admin-7",
    )

    assert item.status == ItemStatus.INVALID.value
    assert item.invalid_reason == "Key already redeemed"
    assert item.invalidated_by == "admin-7"
    assert item.invalidated_at is not None
    await _assert_counters_match_items(test_db, product)
    assert product.stock_available == 2
    assert audit.events[-1]["action"] == "inventory:status-change"
    assert audit.events[-1]["metadata"] == {"old_status": "available", "new_status": "invalid"}


async def test_revalidate_clears_invalid_metadata(engine, stocked, test_db):
    product, items = stocked
    await engine.update_status(items[0].id, ItemStatus.INVALID, "oops", "admin")

    item = await engine.update_status(items[0].id, ItemStatus.AVAILABLE, None, "admin")

    assert item.status == ItemStatus.AVAILABLE.value
    assert item.invalid_reason is None
    assert item.invalidated_by is None
    await _assert_counters_match_items(test_db, product)


async def test_update_status_rejects_sold_items(engine, make_product, make_item):
    product = await make_product()
    item = await make_item(product, status="sold")
    with pytest.raises(ValidationError, match="sold"):
        await engine.update_status(item.id, ItemStatus.INVALID, None, "admin")


async def test_update_status_rejects_other_targets(engine, stocked):
    _, items = stocked
    with pytest.raises(ValidationError):
        await engine.update_status(items[0].id, ItemStatus.RESERVED, None, "admin")


async def test_update_status_scoped_to_product(engine, stocked, make_product):
    _, items = stocked
    other = await make_product()
    with pytest.raises(NotFoundError):
        await engine.update_status(
            items[0].id, ItemStatus.INVALID, None, "admin", product_id=other.id,
        )


# ─── delete_item ─────────────────────────────────────────────────

async def test_delete_available_item_decrements_counter(engine, stocked, test_db, audit):
    product, items = stocked

    await engine.delete_item(items[0].id, "admin")

    assert await test_db.get(InventoryItem, items[0].id, populate_existing=True) is None
    await test_db.refresh(product)
    assert product.stock_available == 2
    assert audit.events[-1]["action"] == "inventory:delete"


async def test_delete_reserved_item_rejected(engine, stocked, test_db):
    product, _ = stocked
    reserved = await engine.reserve(product.id, uuid4())
    with pytest.raises(ValidationError):
        await engine.delete_item(reserved.id, "admin")
    await _assert_counters_match_items(test_db, product)


# ─── delivery ────────────────────────────────────────────────────

async def test_delivery_decrypts_reserved_item(engine, stocked):
    product, _ = stocked
    reserved = await engine.reserve(product.id, uuid4())
    payload = await engine.get_decrypted_payload_for_delivery(reserved.id)
    assert payload == {"type": "key", "key": "FIFO-KEY-0"}


async def test_delivery_refuses_available_item(engine, stocked):
    _, items = stocked
    with pytest.raises(ValidationError):
        await engine.get_decrypted_payload_for_delivery(items[0].id)


async def test_delivery_detects_tampered_ciphertext(engine, stocked, test_db):
    product, _ = stocked
    reserved = await engine.reserve(product.id, uuid4())
    row = await test_db.get(InventoryItem, reserved.id)
    tampered = bytearray(row.payload_ciphertext)
    tampered[0] ^= 0xFF
    row.payload_ciphertext = bytes(tampered)
    await test_db.commit()

    with pytest.raises(IntegrityError) as exc_info:
        await engine.get_decrypted_payload_for_delivery(reserved.id)
    assert exc_info.value.context.item_id == str(reserved.id)


# ─── report ──────────────────────────────────────────────────────

async def test_report_flags_without_status_change(engine, stocked, audit):
    product, _ = stocked
    order_id = uuid4()
    reserved = await engine.reserve(product.id, order_id)
    await engine.mark_sold(reserved.id, order_id, 9)

    item = await engine.report_item(reserved.id, "customer-1", "Key does not work")

    assert item.was_reported is True
    assert item.status == ItemStatus.SOLD.value
    assert audit.events[-1]["action"] == "inventory:reported"
    assert audit.events[-1]["message"] == "Key does not work"


# ─── mixed operations ────────────────────────────────────────────

async def test_counters_hold_after_mixed_operations(engine, stocked, test_db):
    product, items = stocked
    order_a, order_b = uuid4(), uuid4()
    a = await engine.reserve(product.id, order_a)
    b = await engine.reserve(product.id, order_b)
    await engine.mark_sold(a.id, order_a, 12)
    await engine.release(b.id)
    await engine.update_status(items[2].id, ItemStatus.INVALID, "bad", "admin")
    await engine.delete_item(b.id, "admin")

    await _assert_counters_match_items(test_db, product)
    assert (product.stock_available, product.stock_reserved, product.stock_sold) == (0, 0, 1)


# ─── product scoping and duplicate content ───────────────────────

async def test_report_scoped_to_product(engine, stocked, make_product, test_db):
    _, items = stocked
    other = await make_product()

    with pytest.raises(NotFoundError):
        await engine.report_item(items[0].id, "admin", "broken", product_id=other.id)

    await test_db.refresh(items[0])
    assert items[0].was_reported is False


async def test_revalidate_blocked_by_active_copy(engine, make_product, make_item, test_db):
    product = await make_product(stock_available=1)
    shelved = await make_item(product, key="TWIN-KEY", status="invalid")
    await make_item(product, key="TWIN-KEY")

    with pytest.raises(ConflictError):
        await engine.update_status(shelved.id, ItemStatus.AVAILABLE, None, "admin")

    await test_db.refresh(shelved)
    assert shelved.status == ItemStatus.INVALID.value
    await _assert_counters_match_items(test_db, product)
