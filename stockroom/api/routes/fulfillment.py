"""Fulfillment Routes - reservation, sale, release and delivery for the order workflow.

Invariants:
    - POST /reservations returns null (200) when the product is sold out
    - Delivery decrypts on demand and is the only route exposing a payload
    - Lock contention surfaces as 409 with retry_after_ms (ConcurrencyError)
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends

from stockroom.api.dependencies import get_delivery_engine, get_reservation_engine
from stockroom.schemas.inventory import (
    DeliveryResponse, ItemResponse, MarkSoldRequest, ReserveRequest,
)
from stockroom.services.reservation import ReservationEngine

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/fulfillment", tags=["fulfillment"])


@router.post("/reservations", response_model=ItemResponse | None)
async def reserve_item(
    body: ReserveRequest,
    engine: ReservationEngine = Depends(get_reservation_engine),
):
    """Reserve the oldest available item of a product for an order."""
    item = await engine.reserve(body.product_id, body.order_id)
    return ItemResponse.model_validate(item) if item else None


@router.post("/items/{item_id}/sold", response_model=ItemResponse)
async def mark_sold(
    item_id: UUID,
    body: MarkSoldRequest,
    engine: ReservationEngine = Depends(get_reservation_engine),
):
    item = await engine.mark_sold(item_id, body.order_id, body.sold_price)
    return ItemResponse.model_validate(item)


@router.post("/items/{item_id}/release", response_model=ItemResponse)
async def release_item(
    item_id: UUID,
    engine: ReservationEngine = Depends(get_reservation_engine),
):
    item = await engine.release(item_id)
    return ItemResponse.model_validate(item)


@router.get("/orders/{order_id}/items", response_model=list[ItemResponse])
async def get_order_items(
    order_id: UUID,
    engine: ReservationEngine = Depends(get_reservation_engine),
):
    """Items reserved for or sold to an order."""
    items = await engine.get_items_by_order(order_id)
    return [ItemResponse.model_validate(i) for i in items]


@router.get("/items/{item_id}/delivery", response_model=DeliveryResponse)
async def get_delivery_payload(
    item_id: UUID,
    engine: ReservationEngine = Depends(get_delivery_engine),
):
    """Decrypted payload for delivery rendering. Not cached."""
    payload = await engine.get_decrypted_payload_for_delivery(item_id)
    logger.info(f"Delivery payload served for item {item_id}", extra={"item_id": str(item_id)})
    return DeliveryResponse(
        item_id=item_id, delivery_type=payload.get("type", ""), payload=payload,
    )
