"""Boundary Protocols - contracts between the inventory core and its collaborators.

Invariants:
    - Core NEVER imports from shell; dependency arrows point inward only
    - The catalog gateway writes counters inside the caller's transaction
    - The audit sink is write-only and must not be relied on for control flow

Design Decisions:
    - Protocol over ABC: structural subtyping, test doubles need no base class
    - Async in Protocol: implementations do IO; core functions that reason
      about the returned values stay synchronous
"""

from typing import Protocol

from stockroom.core.domain_types import ActorId, DeliveryType, ProductId
from stockroom.core.low_stock import LowStockSnapshot
from stockroom.core.transitions import CounterDelta


class ProductLike(Protocol):
    """Structural contract for the catalog-owned product row."""
    id: ProductId
    title: str
    slug: str
    source_type: str
    delivery_type: str
    stock_available: int
    stock_reserved: int
    stock_sold: int
    low_stock_threshold: int
    auto_unpublish_when_out_of_stock: bool
    is_published: bool


class CatalogGateway(Protocol):
    """Product catalog collaborator: existence, type, config, visibility, counters."""
    async def product_exists(self, product_id: ProductId) -> bool: ...
    async def get_product(self, product_id: ProductId) -> ProductLike | None: ...
    async def get_delivery_type(self, product_id: ProductId) -> DeliveryType | None: ...
    async def get_low_stock_config(
        self, product_id: ProductId,
    ) -> LowStockSnapshot | None: ...
    async def set_published(self, product_id: ProductId, published: bool) -> None: ...
    async def increment_counters(
        self, product_id: ProductId, delta: CounterDelta,
    ) -> None: ...
    async def set_counters(
        self, product_id: ProductId, counts: dict[str, int],
    ) -> None: ...
    async def list_managed_products(self) -> list[ProductLike]: ...
    async def list_low_stock_candidates(self) -> list[LowStockSnapshot]: ...


class AuditSink(Protocol):
    """Write-only audit trail, invoked after every state-changing operation."""
    async def log(
        self,
        actor_id: ActorId,
        action: str,
        target: str,
        metadata: dict | None = None,
        message: str | None = None,
    ) -> None: ...
