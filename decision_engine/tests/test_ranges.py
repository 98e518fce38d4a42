"""
Unit tests for traffic-range allocation.
"""

import pytest

from decision_engine.bucketing.ranges import (
    UNASSIGNED, allocate_ranges, allocate_rollout_range, find_range,
    get_variation_bucket_range, normalize_weights, scale_weights
)


class TestBucketRange:
    """Test cases for get_variation_bucket_range."""

    @pytest.mark.parametrize("weight,expected", [
        (50, 5000),
        (33.33, 3333),
        (12.345, 1235),
        (100, 10000),
        (150, 10000),
        (0, 0),
        (None, 0),
        (-5, 0),
    ])
    def test_range_width(self, weight, expected):
        """Test weight to range width conversion."""
        assert get_variation_bucket_range(weight) == expected


class TestWeights:
    """Test cases for weight normalization."""

    def test_scale_weights_sums_to_hundred(self):
        """Test weights are rescaled proportionally."""
        assert scale_weights([1, 1, 2]) == [25.0, 25.0, 50.0]

    def test_scale_all_zero_splits_equally(self):
        """Test an all-zero list is split equally."""
        assert scale_weights([0, 0, 0, 0]) == [25.0, 25.0, 25.0, 25.0]

    def test_normalize_leaves_hundred_untouched(self):
        """Test weights already summing to 100 are kept as declared."""
        weights = [33.33, 33.33, 33.34]
        assert normalize_weights(weights) == weights

    def test_normalize_rescales_other_sums(self):
        """Test weights not summing to 100 are rescaled."""
        assert normalize_weights([10, 30]) == [25.0, 75.0]


class TestAllocateRanges:
    """Test cases for allocate_ranges."""

    def test_contiguous_non_overlapping(self):
        """Test ranges follow declaration order without gaps."""
        ranges = allocate_ranges([("a", 50), ("b", 25), ("c", 25)])

        assert [(r.item, r.start, r.end) for r in ranges] == [
            ("a", 1, 5000),
            ("b", 5001, 7500),
            ("c", 7501, 10000),
        ]

    def test_zero_weight_is_unassigned(self):
        """Test zero-weight items never own a range."""
        ranges = allocate_ranges([("a", 100), ("b", 0)])

        assert ranges[1].start == UNASSIGNED
        assert ranges[1].end == UNASSIGNED
        assert not ranges[1].contains(5000)

    def test_inputs_are_not_mutated(self):
        """Test allocation returns new records and leaves inputs alone."""
        items = [("a", 10), ("b", 30)]
        allocate_ranges(items)
        assert items == [("a", 10), ("b", 30)]

    def test_without_normalization(self):
        """Test raw weights are used when normalization is off."""
        ranges = allocate_ranges([("a", 10), ("b", 30)], normalize=False)

        assert (ranges[0].start, ranges[0].end) == (1, 1000)
        assert (ranges[1].start, ranges[1].end) == (1001, 4000)

    def test_every_bucket_is_covered(self):
        """Test uneven weights still cover the full space."""
        ranges = allocate_ranges([("a", 33.33), ("b", 33.33), ("c", 33.34)])

        for bucket_value in (1, 3333, 3334, 6666, 6667, 10000):
            assert find_range(ranges, bucket_value) is not None


class TestRolloutRange:
    """Test cases for allocate_rollout_range and find_range."""

    def test_rollout_range_starts_at_one(self):
        """Test a rollout variation spans 1..weight*100."""
        allocated = allocate_rollout_range("on", 40)
        assert (allocated.start, allocated.end) == (1, 4000)

    def test_find_range_miss(self):
        """Test a bucket value outside every range finds nothing."""
        ranges = allocate_ranges([("a", 10)], normalize=False)
        assert find_range(ranges, 1001) is None
        assert find_range(ranges, 1000).item == "a"
