"""Low Stock Evaluation - decides alerts and auto-unpublish from a product snapshot.

Invariants:
    - A threshold of 0 (or less) disables alerting for the product
    - Alert when stock_available <= threshold
    - Auto-unpublish only when available == 0, the product opted in, and it
      is currently published
"""

from dataclasses import dataclass, asdict


@dataclass(frozen=True)
class LowStockSnapshot:
    """The catalog columns the low-stock pass reads."""
    product_id: str
    title: str
    slug: str
    available: int
    threshold: int
    auto_unpublish: bool
    is_published: bool


@dataclass(frozen=True)
class LowStockAlert:
    product_id: str
    product_title: str
    slug: str
    available: int
    threshold: int
    auto_unpublish: bool

    def to_dict(self) -> dict:
        return asdict(self)


def evaluate_low_stock(snapshot: LowStockSnapshot) -> LowStockAlert | None:
    """Return an alert when the product breaches its threshold. Pure."""
    if snapshot.threshold <= 0 or snapshot.available > snapshot.threshold:
        return None
    return LowStockAlert(
        product_id=snapshot.product_id,
        product_title=snapshot.title,
        slug=snapshot.slug,
        available=snapshot.available,
        threshold=snapshot.threshold,
        auto_unpublish=snapshot.auto_unpublish,
    )


def should_auto_unpublish(snapshot: LowStockSnapshot) -> bool:
    return (
        snapshot.auto_unpublish
        and snapshot.is_published
        and snapshot.available == 0
        and snapshot.threshold > 0
    )
