"""Admin Stock Sync Routes - manual triggers for the reconciliation passes and global stats.

Invariants:
    - Each trigger runs exactly one pass (run-all runs the four in order)
    - A pass already running in this process is reported as skipped
"""

from fastapi import APIRouter, Depends, Query

from stockroom.api.dependencies import get_query_service, get_reconciliation_service
from stockroom.services.inventory_query import InventoryQueryService
from stockroom.services.reconciliation import ReconciliationService

router = APIRouter(prefix="/api/v1/admin/stock-sync", tags=["admin-stock-sync"])


@router.post("/expire")
async def expire_items(
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    return await service.expire_items()


@router.post("/release-reservations")
async def release_stale_reservations(
    max_age_minutes: int | None = Query(None, ge=1),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    return await service.release_stale_reservations(max_age_minutes)


@router.post("/low-stock")
async def check_low_stock(
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """Run the low-stock pass (may auto-unpublish products)."""
    alerts = await service.check_low_stock()
    return {"alerts": alerts, "count": len(alerts)}


@router.get("/low-stock")
async def list_low_stock_products(
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """Read-only listing of products at or below their threshold."""
    return {"products": await service.get_low_stock_products()}


@router.post("/sync-counts")
async def sync_stock_counts(
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    return await service.sync_stock_counts()


@router.post("/run-all")
async def run_all(
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    return await service.run_all()


@router.get("/stats")
async def get_global_stats(
    query: InventoryQueryService = Depends(get_query_service),
):
    return await query.get_global_stats()
