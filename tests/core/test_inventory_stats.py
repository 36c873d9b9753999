"""Tests for inventory statistics shaping - pure, no IO."""

from decimal import Decimal

from stockroom.core.inventory_stats import (
    compute_global_stats, compute_product_stats, counted_totals, counters_diverge,
    normalize_status_counts, page_offset, total_pages,
)


def test_normalize_fills_missing_statuses_with_zero():
    counts = normalize_status_counts([("available", 3), ("sold", "2")])
    assert counts == {"available": 3, "reserved": 0, "sold": 2, "expired": 0, "invalid": 0}


def test_normalize_ignores_unknown_statuses():
    assert "archived" not in normalize_status_counts([("archived", 9)])


def test_product_stats_profit_is_revenue_minus_cost():
    counts = normalize_status_counts([("available", 2), ("sold", 1)])
    stats = compute_product_stats(counts, Decimal("15.00"), Decimal("5.00"), Decimal("24.99"))
    assert stats["total"] == 3
    assert stats["total_cost"] == 15.0
    assert stats["avg_cost"] == 5.0
    assert stats["total_revenue"] == 24.99
    assert stats["total_profit"] == 9.99


def test_product_stats_tolerates_null_aggregates():
    stats = compute_product_stats(normalize_status_counts([]), None, None, None)
    assert stats["total"] == 0
    assert stats["total_profit"] == 0.0


def test_global_stats_sums_items():
    counts = normalize_status_counts([("available", 4), ("reserved", 1), ("invalid", 2)])
    stats = compute_global_stats(counts, 3, 1, 1)
    assert stats["total_items"] == 7
    assert stats["available_items"] == 4
    assert stats["invalid_items"] == 2
    assert stats["total_products"] == 3


def test_counted_totals_excludes_uncounted_statuses():
    assert counted_totals({"available": 1, "expired": 5}) == {
        "available": 1, "reserved": 0, "sold": 0,
    }


def test_counters_diverge():
    truth = {"available": 1, "reserved": 0, "sold": 0}
    assert not counters_diverge({"available": 1, "reserved": 0, "sold": 0}, truth)
    assert counters_diverge({"available": 2, "reserved": 0, "sold": 0}, truth)


def test_pagination_helpers():
    assert page_offset(1, 50) == 0
    assert page_offset(3, 20) == 40
    assert page_offset(0, 20) == 0
    assert total_pages(101, 50) == 3
    assert total_pages(0, 50) == 0
