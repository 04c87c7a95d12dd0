"""
Tests for fractional position keys.
"""
import math

import pytest

from taskboard.errors import ValidationError
from taskboard.positions import (
    BASE_POSITION,
    POSITION_EPSILON,
    allocate,
    is_crowded,
    neighbors_at,
    position_for_drop,
    respace,
)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# allocate()
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestAllocate:

    def test_empty_column_gets_base(self):
        assert allocate(None, None) == BASE_POSITION

    def test_append_after_prev(self):
        assert allocate(4.0, None) == 5.0
        assert allocate(-3.5, None) > -3.5

    def test_prepend_before_next(self):
        assert allocate(None, 1.0) == 0.0
        assert allocate(None, -10.0) < -10.0

    def test_midpoint(self):
        assert allocate(1.0, 2.0) == 1.5

    @pytest.mark.parametrize("prev,nxt", [
        (0.0, 1.0), (-5.0, 5.0), (1.0, 1.001), (100.0, 100.5), (1e6, 1e6 + 1),
    ])
    def test_strictly_between(self, prev, nxt):
        result = allocate(prev, nxt)
        assert prev < result < nxt

    def test_tiny_gap_still_split(self):
        prev = 1.0
        nxt = prev + POSITION_EPSILON / 10
        result = allocate(prev, nxt)
        assert prev < result < nxt

    def test_adjacent_keys_step_past_next(self):
        prev = 1.0
        nxt = math.nextafter(prev, math.inf)
        assert allocate(prev, nxt) > nxt

    def test_equal_neighbors_still_progress(self):
        assert allocate(2.0, 2.0) > 2.0

    def test_huge_keys_still_progress(self):
        prev = 1e300
        assert allocate(prev, prev) > prev

    def test_repeated_inserts_at_same_spot_never_collide(self):
        # Keep dropping right after the first card: next is always the newest key
        prev, nxt = 1.0, 2.0
        keys = []
        for _ in range(40):
            key = allocate(prev, nxt)
            assert key not in keys
            assert key > prev
            keys.append(key)
            nxt = key

    def test_repeated_inserts_after_newest_increase(self):
        prev, nxt = 1.0, 2.0
        keys = []
        for _ in range(200):
            key = allocate(prev, nxt)
            keys.append(key)
            prev = key
        assert keys == sorted(keys)
        assert len(set(keys)) == len(keys)


class TestCrowding:

    def test_open_ends_never_crowded(self):
        assert not is_crowded(None, 1.0)
        assert not is_crowded(1.0, None)

    def test_gap_below_epsilon_is_crowded(self):
        assert is_crowded(1.0, 1.0 + POSITION_EPSILON / 2)
        assert not is_crowded(1.0, 1.5)

    def test_respace(self):
        assert respace(3) == [1.0, 2.0, 3.0]
        assert respace(0) == []


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Drop index → neighbors
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestNeighbors:

    def test_empty_column(self):
        assert neighbors_at([], 0) == (None, None)
        assert neighbors_at([], None) == (None, None)

    def test_top_of_column(self):
        assert neighbors_at([1.0, 2.0], 0) == (None, 1.0)

    def test_middle(self):
        assert neighbors_at([1.0, 2.0, 3.0], 2) == (2.0, 3.0)

    def test_none_appends(self):
        assert neighbors_at([1.0, 2.0], None) == (2.0, None)

    def test_past_end_appends(self):
        assert neighbors_at([1.0, 2.0], 99) == (2.0, None)

    def test_negative_rejected(self):
        with pytest.raises(ValidationError) as exc:
            neighbors_at([1.0], -1)
        assert exc.value.field == "dropIndex"

    def test_position_for_drop(self):
        assert position_for_drop([1.0, 2.0], 1) == 1.5
        assert position_for_drop([1.0, 2.0], 0) == 0.0
        assert position_for_drop([1.0, 2.0], None) == 3.0
