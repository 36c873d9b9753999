"""Inventory Schemas - request and response models for the inventory API.

Invariants:
    - Item responses expose masked_preview only, never payload bytes
    - payload is an opaque JSON object here; its variant is checked by intake
    - Decimal money fields serialize as floats
"""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from stockroom.core.domain_types import ItemStatus


class ItemMeta(BaseModel):
    """Optional provenance attached to an item at intake."""
    expires_at: datetime | None = None
    supplier: str | None = Field(None, max_length=255)
    cost: Decimal | None = Field(None, ge=0)
    notes: str | None = Field(None, max_length=2000)


class AddItemRequest(ItemMeta):
    payload: dict[str, Any]

    @field_validator("payload")
    @classmethod
    def require_type(cls, v: dict) -> dict:
        if "type" not in v:
            raise ValueError("payload must declare its type")
        return v


class BulkImportEntry(ItemMeta):
    payload: dict[str, Any]


class BulkImportRequest(BaseModel):
    """Batch intake; the item cap is enforced by the intake service."""
    items: list[BulkImportEntry] = Field(min_length=1)
    skip_duplicates: bool = True
    supplier: str | None = Field(None, max_length=255)
    cost_per_item: Decimal | None = Field(None, ge=0)


class BulkImportResponse(BaseModel):
    imported: int
    skipped_duplicates: int
    failed: int
    errors: list[str]


class UpdateStatusRequest(BaseModel):
    status: ItemStatus
    reason: str | None = Field(None, max_length=500)


class ReportItemRequest(BaseModel):
    reason: str | None = Field(None, max_length=500)


class ItemResponse(BaseModel):
    """Admin/fulfillment view of an item."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    product_id: UUID
    delivery_type: str
    masked_preview: str
    status: ItemStatus
    reserved_for_order_id: UUID | None = None
    reserved_at: datetime | None = None
    sold_to_order_id: UUID | None = None
    sold_at: datetime | None = None
    sold_price: Decimal | None = None
    expires_at: datetime | None = None
    supplier: str | None = None
    cost: Decimal | None = None
    notes: str | None = None
    uploaded_at: datetime
    uploaded_by: str | None = None
    was_reported: bool = False
    invalid_reason: str | None = None
    invalidated_by: str | None = None
    invalidated_at: datetime | None = None

    @field_serializer("sold_price", "cost")
    def money(self, v: Decimal | None) -> float | None:
        return float(v) if v is not None else None


class ItemListResponse(BaseModel):
    data: list[ItemResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class ReserveRequest(BaseModel):
    product_id: UUID
    order_id: UUID


class MarkSoldRequest(BaseModel):
    order_id: UUID
    sold_price: Decimal = Field(ge=0)


class DeliveryResponse(BaseModel):
    item_id: UUID
    delivery_type: str
    payload: dict[str, Any]
