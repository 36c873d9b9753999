"""Domain Types - rich types that replace bare primitives across the codebase.

Invariants:
    - ItemId, ProductId, OrderId wrap UUIDs; ActorId is a free-form string
      ("system" for scheduler-initiated changes)
    - All valid states encoded as Enums, never raw string matching

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: persist and serialize as their value without custom encoders
"""

from enum import Enum
from typing import NewType
from uuid import UUID


# ─── Identity Types ──────────────────────────────────────────────

ItemId = NewType("ItemId", UUID)
ProductId = NewType("ProductId", UUID)
OrderId = NewType("OrderId", UUID)
ActorId = NewType("ActorId", str)

SYSTEM_ACTOR = ActorId("system")


# ─── Limits ──────────────────────────────────────────────────────

BULK_IMPORT_MAX_ITEMS: int = 1000
DEFAULT_RESERVATION_TIMEOUT_MINUTES: int = 30
MANAGED_SOURCE_TYPE: str = "custom"


# ─── Enums ───────────────────────────────────────────────────────

class DeliveryType(str, Enum):
    """Payload variant of an item; must match the owning product's type."""
    KEY = "key"
    ACCOUNT = "account"
    CODE = "code"
    LICENSE = "license"
    BUNDLE = "bundle"
    CUSTOM = "custom"


class ItemStatus(str, Enum):
    """Item lifecycle states - maps to DB `status` column."""
    AVAILABLE = "available"
    RESERVED = "reserved"
    SOLD = "sold"
    EXPIRED = "expired"
    INVALID = "invalid"


# Statuses that still occupy a content hash for duplicate detection
ACTIVE_STATUSES = frozenset({
    ItemStatus.AVAILABLE, ItemStatus.RESERVED, ItemStatus.SOLD,
})

# Statuses mirrored by the catalog's cached stock counters
COUNTED_STATUSES = (
    ItemStatus.AVAILABLE, ItemStatus.RESERVED, ItemStatus.SOLD,
)


class ListSortField(str, Enum):
    """Columns the admin listing may be sorted by."""
    UPLOADED_AT = "uploaded_at"
    SOLD_AT = "sold_at"
    EXPIRES_AT = "expires_at"
    COST = "cost"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"
