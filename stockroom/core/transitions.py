"""Item State Machine - legal status edges and the stock-counter delta each edge implies.

Invariants:
    - ALLOWED_TRANSITIONS is the single source of truth for status edges
    - sold and expired have no outgoing edges
    - counter_delta(a, b) moves exactly one unit between the counted buckets
      (available/reserved/sold); expired and invalid are uncounted

Design Decisions:
    - Pure table + helpers: the item store refuses any status write whose edge
      is missing here, services then write the item row and the counters in
      the same transaction
    - CounterDelta is additive so reconciliation passes can sum per product
"""

from dataclasses import dataclass

from stockroom.core.domain_types import ItemStatus

ALLOWED_TRANSITIONS: dict[ItemStatus, frozenset[ItemStatus]] = {
    ItemStatus.AVAILABLE: frozenset({
        ItemStatus.RESERVED, ItemStatus.EXPIRED, ItemStatus.INVALID,
    }),
    ItemStatus.RESERVED: frozenset({ItemStatus.SOLD, ItemStatus.AVAILABLE}),
    ItemStatus.INVALID: frozenset({ItemStatus.AVAILABLE}),
    ItemStatus.SOLD: frozenset(),
    ItemStatus.EXPIRED: frozenset(),
}

# Edges an admin may trigger through update_status
ADMIN_TOGGLE_EDGES = frozenset({
    (ItemStatus.AVAILABLE, ItemStatus.INVALID),
    (ItemStatus.INVALID, ItemStatus.AVAILABLE),
})


@dataclass(frozen=True)
class CounterDelta:
    """Signed change to a product's cached stock counters."""
    available: int = 0
    reserved: int = 0
    sold: int = 0

    def __add__(self, other: "CounterDelta") -> "CounterDelta":
        return CounterDelta(
            self.available + other.available,
            self.reserved + other.reserved,
            self.sold + other.sold,
        )

    def __mul__(self, n: int) -> "CounterDelta":
        return CounterDelta(self.available * n, self.reserved * n, self.sold * n)

    @property
    def is_zero(self) -> bool:
        return self.available == 0 and self.reserved == 0 and self.sold == 0


def _bucket(status: ItemStatus) -> CounterDelta:
    if status == ItemStatus.AVAILABLE:
        return CounterDelta(available=1)
    if status == ItemStatus.RESERVED:
        return CounterDelta(reserved=1)
    if status == ItemStatus.SOLD:
        return CounterDelta(sold=1)
    return CounterDelta()


def can_transition(current: ItemStatus, target: ItemStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def check_transition(current: ItemStatus, target: ItemStatus) -> str | None:
    """Error message for an illegal edge, None when allowed. Pure."""
    if can_transition(current, target):
        return None
    return (
        f"Cannot move item from '{current.value}' to '{target.value}'"
    )


def check_admin_toggle(current: ItemStatus, target: ItemStatus) -> str | None:
    """Admin status updates only flip between available and invalid."""
    if current == ItemStatus.SOLD:
        return "Cannot change status of sold items"
    if target not in (ItemStatus.AVAILABLE, ItemStatus.INVALID):
        return f"Status can only be set to 'available' or 'invalid', got '{target.value}'"
    if (current, target) not in ADMIN_TOGGLE_EDGES:
        return f"Cannot change status from '{current.value}' to '{target.value}'"
    return None


def counter_delta(current: ItemStatus, target: ItemStatus) -> CounterDelta:
    """Counter change implied by moving one item from current to target."""
    return _bucket(target) + _bucket(current) * -1
