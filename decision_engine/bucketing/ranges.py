"""
Traffic-range allocation.

Weights are percentages (0-100, up to two decimals); ranges live on the
integer space 1..10000. Allocation never mutates its inputs: callers get
back ``AllocatedRange`` records pairing each item with its range, so the
same variation objects can be re-ranged for whitelisting or group
negotiation without touching the settings snapshot.
"""

import math
from dataclasses import dataclass
from typing import Any, Generic, List, Optional, Sequence, Tuple, TypeVar

from ..constants import MAX_TRAFFIC_PERCENT, MAX_TRAFFIC_VALUE

T = TypeVar("T")

UNASSIGNED = -1


@dataclass(frozen=True)
class AllocatedRange(Generic[T]):
    item: T
    weight: float
    start: int
    end: float

    def contains(self, bucket_value: int) -> bool:
        return self.start <= bucket_value <= self.end


def get_variation_bucket_range(weight: Optional[float]) -> int:
    """Width of the range a weight occupies on the 1..10000 space."""
    if not weight or weight <= 0:
        return 0
    return min(math.ceil(weight * 100), MAX_TRAFFIC_VALUE)


def scale_weights(weights: Sequence[float]) -> List[float]:
    """Rescale weights so they sum to 100; an all-zero list splits equally."""
    if not weights:
        return []
    total = sum(w or 0 for w in weights)
    if total == 0:
        return [MAX_TRAFFIC_PERCENT / len(weights)] * len(weights)
    return [((w or 0) / total) * MAX_TRAFFIC_PERCENT for w in weights]


def normalize_weights(weights: Sequence[float]) -> List[float]:
    """Like ``scale_weights`` but leaves a list already summing to 100 untouched.

    Re-dividing a list that already sums to 100 can nudge a weight by one
    ulp, which ``ceil`` then turns into a one-bucket shift.
    """
    if math.isclose(sum(w or 0 for w in weights), MAX_TRAFFIC_PERCENT, abs_tol=1e-9):
        return [w or 0 for w in weights]
    return scale_weights(weights)


def allocate_ranges(items: Sequence[Tuple[T, float]], normalize: bool = True) -> List[AllocatedRange[T]]:
    """Assign contiguous, non-overlapping ranges in declaration order."""
    weights = [weight for _, weight in items]
    if normalize:
        weights = normalize_weights(weights)

    allocated: List[AllocatedRange[T]] = []
    current_allocation = 0
    for (item, _), weight in zip(items, weights):
        step = get_variation_bucket_range(weight)
        if step > 0:
            allocated.append(AllocatedRange(item, weight, current_allocation + 1, current_allocation + step))
            current_allocation += step
        else:
            allocated.append(AllocatedRange(item, weight, UNASSIGNED, UNASSIGNED))
    return allocated


def allocate_rollout_range(item: T, weight: float) -> AllocatedRange[T]:
    """Rollout and personalize variations do not share the space with siblings."""
    return AllocatedRange(item, weight, 1, (weight or 0) * 100)


def find_range(ranges: Sequence[AllocatedRange[Any]], bucket_value: int) -> Optional[AllocatedRange[Any]]:
    """First range containing ``bucket_value``; ranges are disjoint so it is unique."""
    for allocated in ranges:
        if allocated.contains(bucket_value):
            return allocated
    return None
