"""Reconciliation Service - expiry, stale release, low-stock, counter resync, run_all.

Invariants:
    - Expiry moves only available items past expires_at and decrements by
      exactly the number moved
    - Stale release clears the reservation fields
    - Auto-unpublish only for opted-in, published, sold-out products
    - Counter sync rewrites only diverging products
    - A pass already running is skipped, never queued
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from stockroom.core.domain_types import ItemStatus
from stockroom.services import reconciliation
from stockroom.services.reconciliation import ReconciliationService


@pytest.fixture
def service(test_db, audit, settings):
    return ReconciliationService(test_db, audit, settings=settings)


def _ago(**kwargs) -> datetime:
    return datetime.now(timezone.utc) - timedelta(**kwargs)


# ─── expire_items ────────────────────────────────────────────────

async def test_expire_moves_only_past_due_available_items(
    service, make_product, make_item, test_db, audit,
):
    product = await make_product(stock_available=2, stock_reserved=1)
    past_due = await make_item(product, expires_at=_ago(minutes=5))
    fresh = await make_item(product, expires_at=_ago(minutes=-60))
    held = await make_item(
        product, status="reserved", expires_at=_ago(minutes=5),
        reserved_for_order_id=uuid4(), reserved_at=_ago(minutes=1),
    )

    result = await service.expire_items()

    assert result == {"expired_count": 1, "products_affected": 1}
    for item in (past_due, fresh, held):
        await test_db.refresh(item)
    assert past_due.status == ItemStatus.EXPIRED.value
    assert fresh.status == ItemStatus.AVAILABLE.value
    assert held.status == ItemStatus.RESERVED.value
    await test_db.refresh(product)
    assert product.stock_available == 1
    assert product.stock_reserved == 1
    assert audit.actions() == ["inventory_items_expired"]


async def test_expire_with_nothing_due(service, make_product, make_item, audit):
    product = await make_product(stock_available=1)
    await make_item(product)
    assert await service.expire_items() == {"expired_count": 0, "products_affected": 0}
    assert audit.events == []


async def test_expire_skipped_while_running(service):
    lock = reconciliation._pass_locks["expire"]
    await lock.acquire()
    try:
        result = await service.expire_items()
    finally:
        lock.release()
    assert result["skipped"] is True
    assert result["expired_count"] == 0


# ─── release_stale_reservations ──────────────────────────────────

async def test_release_returns_stale_reservations(
    service, make_product, make_item, test_db,
):
    product = await make_product(stock_reserved=2)
    stale = await make_item(
        product, status="reserved",
        reserved_for_order_id=uuid4(), reserved_at=_ago(hours=2),
    )
    recent = await make_item(
        product, status="reserved",
        reserved_for_order_id=uuid4(), reserved_at=_ago(minutes=2),
    )

    result = await service.release_stale_reservations()

    assert result == {"released_count": 1, "products_affected": 1}
    await test_db.refresh(stale)
    await test_db.refresh(recent)
    assert stale.status == ItemStatus.AVAILABLE.value
    assert stale.reserved_for_order_id is None
    assert stale.reserved_at is None
    assert recent.status == ItemStatus.RESERVED.value
    await test_db.refresh(product)
    assert (product.stock_available, product.stock_reserved) == (1, 1)


async def test_release_honors_explicit_max_age(service, make_product, make_item):
    product = await make_product(stock_reserved=1)
    await make_item(
        product, status="reserved",
        reserved_for_order_id=uuid4(), reserved_at=_ago(minutes=10),
    )
    assert (await service.release_stale_reservations())["released_count"] == 0
    assert (await service.release_stale_reservations(5))["released_count"] == 1


async def test_release_zero_age_releases_every_reservation(service, make_product, make_item):
    product = await make_product(stock_reserved=1)
    await make_item(
        product, status="reserved",
        reserved_for_order_id=uuid4(), reserved_at=_ago(minutes=1),
    )
    assert (await service.release_stale_reservations())["released_count"] == 0
    assert (await service.release_stale_reservations(0))["released_count"] == 1


# ─── check_low_stock ─────────────────────────────────────────────

async def test_low_stock_alerts_below_threshold(service, make_product):
    low = await make_product(title="Low", stock_available=2, low_stock_threshold=5)
    await make_product(title="Fine", stock_available=10, low_stock_threshold=5)
    await make_product(title="Untracked", stock_available=0, low_stock_threshold=0)

    alerts = await service.check_low_stock()

    assert [a["product_id"] for a in alerts] == [str(low.id)]
    assert alerts[0]["available"] == 2
    assert alerts[0]["threshold"] == 5


async def test_low_stock_auto_unpublishes_sold_out_product(
    service, make_product, test_db, audit,
):
    opted_in = await make_product(
        stock_available=0, low_stock_threshold=3,
        auto_unpublish_when_out_of_stock=True,
    )
    opted_out = await make_product(stock_available=0, low_stock_threshold=3)

    alerts = await service.check_low_stock()

    assert len(alerts) == 2
    await test_db.refresh(opted_in)
    await test_db.refresh(opted_out)
    assert opted_in.is_published is False
    assert opted_out.is_published is True
    assert audit.actions() == ["product_auto_unpublished"]


async def test_low_stock_ignores_external_products(service, make_product):
    await make_product(source_type="external", stock_available=0, low_stock_threshold=5)
    assert await service.check_low_stock() == []


# ─── sync_stock_counts ───────────────────────────────────────────

async def test_sync_repairs_drifted_counters(service, make_product, make_item, test_db):
    drifted = await make_product(stock_available=7, stock_reserved=3, stock_sold=0)
    await make_item(drifted)
    await make_item(drifted, status="sold")
    accurate = await make_product(stock_available=1)
    await make_item(accurate)

    result = await service.sync_stock_counts()

    assert result == {"updated_count": 1}
    await test_db.refresh(drifted)
    assert (drifted.stock_available, drifted.stock_reserved, drifted.stock_sold) == (1, 0, 1)


async def test_sync_is_idempotent(service, make_product, make_item):
    product = await make_product(stock_available=4)
    await make_item(product)
    assert (await service.sync_stock_counts())["updated_count"] == 1
    assert (await service.sync_stock_counts())["updated_count"] == 0


# ─── run_all ─────────────────────────────────────────────────────

async def test_run_all_reports_each_pass(service, make_product, make_item, audit):
    product = await make_product(stock_available=1)
    await make_item(product, expires_at=_ago(minutes=1))

    results = await service.run_all()

    assert set(results) == {"expiration", "reservations", "low_stock", "sync"}
    assert results["expiration"]["expired_count"] == 1
    assert results["low_stock"] == {"alerts": []}
    assert audit.actions()[-1] == "inventory_full_sync"


async def test_run_all_isolates_failing_pass(service, monkeypatch):
    async def boom():
        raise RuntimeError("disk full")

    monkeypatch.setattr(service, "expire_items", boom)

    results = await service.run_all()

    assert results["expiration"] == {"error": "disk full"}
    assert results["reservations"] == {"released_count": 0, "products_affected": 0}
    assert results["sync"] == {"updated_count": 0}


# ─── get_low_stock_products ──────────────────────────────────────

async def test_get_low_stock_products_is_read_only(service, make_product, test_db):
    product = await make_product(
        stock_available=0, low_stock_threshold=2,
        auto_unpublish_when_out_of_stock=True,
    )

    listed = await service.get_low_stock_products()

    assert [p["slug"] for p in listed] == [product.slug]
    await test_db.refresh(product)
    assert product.is_published is True
