"""
Bucketing package.

- hasher: MurmurHash3-based bucket values (cross-SDK deterministic).
- ranges: weight-to-range allocation and range lookup.
"""

from .hasher import (
    get_hash_value, generate_bucket_value, get_bucket_value_for_user, calculate_bucket_value
)
from .ranges import (
    AllocatedRange, allocate_ranges, allocate_rollout_range, find_range,
    get_variation_bucket_range, normalize_weights, scale_weights
)

__all__ = [
    "get_hash_value", "generate_bucket_value", "get_bucket_value_for_user", "calculate_bucket_value",
    "AllocatedRange", "allocate_ranges", "allocate_rollout_range", "find_range",
    "get_variation_bucket_range", "normalize_weights", "scale_weights",
]
