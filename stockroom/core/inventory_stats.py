"""Inventory Stats - pure shaping of aggregate query rows into statistics.

Invariants:
    - All inputs are plain mappings/tuples already fetched by the shell (no IO)
    - Missing or NULL aggregates default to 0, never raise
    - total_profit == total_revenue - total_cost

Design Decisions:
    - Pure functions, not ORM methods: the SQL does the counting, this module
      only normalizes driver-specific numeric types (Decimal, str, None)
"""

import math
from decimal import Decimal

from stockroom.core.domain_types import ItemStatus, COUNTED_STATUSES


def _to_int(value: object) -> int:
    if value is None:
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _to_float(value: object) -> float:
    if value is None:
        return 0.0
    if isinstance(value, Decimal):
        return float(value)
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def empty_status_counts() -> dict[str, int]:
    return {status.value: 0 for status in ItemStatus}


def normalize_status_counts(rows: list[tuple[object, object]]) -> dict[str, int]:
    """(status, count) rows -> one entry per ItemStatus."""
    counts = empty_status_counts()
    for status, count in rows:
        key = status.value if isinstance(status, ItemStatus) else str(status)
        if key in counts:
            counts[key] = _to_int(count)
    return counts


def compute_product_stats(
    status_counts: dict[str, int],
    total_cost: object,
    avg_cost: object,
    total_revenue: object,
) -> dict:
    """Per-product statistics. Pure, no IO."""
    cost = _to_float(total_cost)
    revenue = _to_float(total_revenue)
    return {
        "total": sum(status_counts.values()),
        **status_counts,
        "total_cost": round(cost, 2),
        "avg_cost": round(_to_float(avg_cost), 2),
        "total_revenue": round(revenue, 2),
        "total_profit": round(revenue - cost, 2),
    }


def compute_global_stats(
    status_counts: dict[str, int],
    total_products: object,
    low_stock_products: object,
    out_of_stock_products: object,
) -> dict:
    """Cross-product statistics for the admin dashboard."""
    return {
        "total_products": _to_int(total_products),
        "total_items": sum(status_counts.values()),
        "available_items": status_counts[ItemStatus.AVAILABLE.value],
        "reserved_items": status_counts[ItemStatus.RESERVED.value],
        "sold_items": status_counts[ItemStatus.SOLD.value],
        "expired_items": status_counts[ItemStatus.EXPIRED.value],
        "invalid_items": status_counts[ItemStatus.INVALID.value],
        "low_stock_products": _to_int(low_stock_products),
        "out_of_stock_products": _to_int(out_of_stock_products),
    }


def counted_totals(status_counts: dict[str, int]) -> dict[str, int]:
    """Ground-truth values for the cached counters of one product."""
    return {status.value: status_counts.get(status.value, 0) for status in COUNTED_STATUSES}


def counters_diverge(cached: dict[str, int], truth: dict[str, int]) -> bool:
    return any(cached.get(key, 0) != value for key, value in truth.items())


def page_offset(page: int, limit: int) -> int:
    return (max(page, 1) - 1) * limit


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit > 0 else 0
