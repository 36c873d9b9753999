"""Admin Inventory Routes - intake, listing, stats, status toggle, delete, report.

Invariants:
    - Every route is scoped to /admin/products/{product_id}/inventory; item
      routes check the item belongs to that product
    - Responses never contain decrypted payloads
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from stockroom.api.dependencies import (
    get_actor_id, get_intake_service, get_query_service, get_reservation_engine,
)
from stockroom.core.domain_types import (
    ActorId, ItemStatus, ListSortField, SortDirection,
)
from stockroom.schemas.inventory import (
    AddItemRequest, BulkImportRequest, BulkImportResponse, ItemListResponse,
    ItemResponse, ReportItemRequest, UpdateStatusRequest,
)
from stockroom.services.intake import IntakeService
from stockroom.services.inventory_query import InventoryQueryService
from stockroom.services.reservation import ReservationEngine

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/v1/admin/products/{product_id}/inventory",
    tags=["admin-inventory"],
)


@router.post(
    "", response_model=ItemResponse, status_code=status.HTTP_201_CREATED,
)
async def add_item(
    product_id: UUID,
    body: AddItemRequest,
    actor_id: ActorId = Depends(get_actor_id),
    intake: IntakeService = Depends(get_intake_service),
):
    """Add one encrypted item to the product's inventory."""
    item = await intake.add_item(
        product_id, body.payload,
        body.model_dump(exclude={"payload"}), actor_id,
    )
    return ItemResponse.model_validate(item)


@router.post("/bulk", response_model=BulkImportResponse)
async def bulk_import(
    product_id: UUID,
    body: BulkImportRequest,
    actor_id: ActorId = Depends(get_actor_id),
    intake: IntakeService = Depends(get_intake_service),
):
    result = await intake.bulk_import(
        product_id,
        [entry.model_dump() for entry in body.items],
        skip_duplicates=body.skip_duplicates,
        supplier=body.supplier,
        cost_per_item=body.cost_per_item,
        actor_id=actor_id,
    )
    return BulkImportResponse(**result.to_dict())


@router.get("", response_model=ItemListResponse)
async def list_items(
    product_id: UUID,
    status_filter: ItemStatus | None = Query(None, alias="status"),
    supplier: str | None = Query(None),
    sort_by: ListSortField = Query(ListSortField.UPLOADED_AT),
    sort_dir: SortDirection = Query(SortDirection.DESC),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    query: InventoryQueryService = Depends(get_query_service),
):
    """List items with pagination, filters and sorting."""
    listing = await query.list_items(
        product_id, status_filter, supplier, sort_by, sort_dir, page, limit,
    )
    return ItemListResponse(
        **{**listing, "data": [ItemResponse.model_validate(i) for i in listing["data"]]},
    )


@router.get("/stats")
async def get_stats(
    product_id: UUID,
    query: InventoryQueryService = Depends(get_query_service),
):
    return await query.get_stats(product_id)


@router.patch("/{item_id}/status", response_model=ItemResponse)
async def update_status(
    product_id: UUID,
    item_id: UUID,
    body: UpdateStatusRequest,
    actor_id: ActorId = Depends(get_actor_id),
    engine: ReservationEngine = Depends(get_reservation_engine),
):
    """Toggle an item between available and invalid."""
    item = await engine.update_status(
        item_id, body.status, body.reason, actor_id, product_id=product_id,
    )
    return ItemResponse.model_validate(item)


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_item(
    product_id: UUID,
    item_id: UUID,
    actor_id: ActorId = Depends(get_actor_id),
    engine: ReservationEngine = Depends(get_reservation_engine),
):
    await engine.delete_item(item_id, actor_id, product_id=product_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{item_id}/report", response_model=ItemResponse)
async def report_item(
    product_id: UUID,
    item_id: UUID,
    body: ReportItemRequest,
    actor_id: ActorId = Depends(get_actor_id),
    engine: ReservationEngine = Depends(get_reservation_engine),
):
    """Flag an item a customer reported as not working."""
    item = await engine.report_item(
        item_id, actor_id, body.reason, product_id=product_id,
    )
    return ItemResponse.model_validate(item)
