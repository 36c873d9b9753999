"""Tests for the item state machine and counter deltas - pure table lookups."""

import pytest

from stockroom.core.domain_types import ItemStatus
from stockroom.core.transitions import (
    CounterDelta, can_transition, check_admin_toggle, check_transition, counter_delta,
)

A, R, S, E, I = (
    ItemStatus.AVAILABLE, ItemStatus.RESERVED, ItemStatus.SOLD,
    ItemStatus.EXPIRED, ItemStatus.INVALID,
)


@pytest.mark.parametrize("current,target", [(A, R), (R, S), (A, E), (A, I), (I, A), (R, A)])
def test_allowed_edges(current, target):
    assert can_transition(current, target)
    assert check_transition(current, target) is None


@pytest.mark.parametrize("current", [S, E])
def test_terminal_states_have_no_exits(current):
    for target in ItemStatus:
        assert not can_transition(current, target)


def test_illegal_edge_message_names_both_states():
    assert check_transition(A, S) == "Cannot move item from 'available' to 'sold'"


def test_admin_toggle_rejects_sold_items():
    assert check_admin_toggle(S, I) == "Cannot change status of sold items"


def test_admin_toggle_only_targets_available_or_invalid():
    assert check_admin_toggle(A, R) is not None
    assert check_admin_toggle(R, I) is not None
    assert check_admin_toggle(A, I) is None
    assert check_admin_toggle(I, A) is None


def test_reserve_delta_moves_one_unit():
    assert counter_delta(A, R) == CounterDelta(available=-1, reserved=1)


def test_sell_delta():
    assert counter_delta(R, S) == CounterDelta(reserved=-1, sold=1)


def test_expire_and_invalidate_only_decrement_available():
    assert counter_delta(A, E) == CounterDelta(available=-1)
    assert counter_delta(A, I) == CounterDelta(available=-1)
    assert counter_delta(I, A) == CounterDelta(available=1)


def test_delta_arithmetic():
    total = counter_delta(A, R) * 3 + counter_delta(R, S)
    assert total == CounterDelta(available=-3, reserved=2, sold=1)
    assert (counter_delta(A, R) + counter_delta(R, A)).is_zero
