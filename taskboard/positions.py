"""
Fractional position keys for ordering tasks inside a column.

A new key is derived from the keys of the two tasks around the insertion
point, so an ordinary move writes a single row. When repeated drops into the
same slot squeeze two neighbours closer than POSITION_EPSILON the column is
crowded: the caller respaces its siblings with respace() before allocating.
Concurrent drops into the same slot may compute the same key; readers break
such ties by creation order.
"""
import math
from typing import List, Optional, Sequence, Tuple

from .errors import ValidationError

BASE_POSITION = 1.0
POSITION_STEP = 1.0
POSITION_EPSILON = 1e-6


def allocate(prev: Optional[float], next: Optional[float]) -> float:
    """
    Return an ordering key for an item inserted between prev and next.

    Either neighbor may be None (start/end of the column, or an empty column).
    The key is strictly between the two whenever a float exists there. With
    no room left (equal or adjacent neighbours) it lands just past next.
    """
    if prev is None and next is None:
        return BASE_POSITION
    if next is None:
        return prev + POSITION_STEP
    if prev is None:
        return next - POSITION_STEP

    mid = (prev + next) / 2
    if prev < mid < next:
        return mid
    between = math.nextafter(prev, next)
    if prev < between < next:
        return between
    return math.nextafter(max(prev, next), math.inf)


def is_crowded(prev: Optional[float], next: Optional[float]) -> bool:
    """True when prev and next are too close to keep splitting."""
    if prev is None or next is None:
        return False
    return next - prev < POSITION_EPSILON


def respace(count: int) -> List[float]:
    """Evenly spaced keys for count siblings, in their current order."""
    return [BASE_POSITION + i * POSITION_STEP for i in range(count)]


def neighbors_at(
    siblings: Sequence[float], drop_index: Optional[int]
) -> Tuple[Optional[float], Optional[float]]:
    """
    Positions surrounding drop_index in an ordered list of sibling positions.

    The moving task must already be excluded from siblings. None or an index
    past the end appends to the column.
    """
    if drop_index is None or drop_index >= len(siblings):
        return (siblings[-1] if siblings else None), None
    if drop_index < 0:
        raise ValidationError(f"Invalid drop index: {drop_index}", field="dropIndex")
    prev = siblings[drop_index - 1] if drop_index > 0 else None
    return prev, siblings[drop_index]


def position_for_drop(siblings: Sequence[float], drop_index: Optional[int]) -> float:
    prev, nxt = neighbors_at(siblings, drop_index)
    return allocate(prev, nxt)
